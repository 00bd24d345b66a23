"""Append-only activity log shared by every endpoint."""
from __future__ import annotations

import os
import re
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional, TextIO, Union

from .timeservice import LocalClock

LINE_PATTERN = re.compile(
    r"^\[(?P<timestamp>[^|]+) \| (?P<source>[^|]+) \| PID=(?P<pid>\d+) \| (?P<level>[A-Z]+)\] (?P<message>.*)$"
)


class ActivityLog:
    """Timestamped text log opened once and appended to for the life of a program.

    Each line carries the timestamp (with microseconds), its time source,
    the PID of the writer and a level, so lines written by several
    exercises into the same file can still be told apart.
    """

    def __init__(self, path: Union[str, Path], clock=None) -> None:
        self.path = Path(path)
        self.clock = clock or LocalClock()
        if self.path.parent != Path(""):
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle: Optional[TextIO] = self.path.open("a", encoding="utf-8")
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._handle is None

    def write(self, message: str, level: str = "INFO") -> str:
        timestamp, source = self.clock.timestamp_for_log()
        line = f"[{timestamp} | {source} | PID={os.getpid()} | {level.upper()}] {message.rstrip()}"
        with self._lock:
            if self._handle is not None:
                self._handle.write(line + "\n")
                self._handle.flush()
        return line

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None

    def __enter__(self) -> "ActivityLog":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def open_log(path: Optional[Union[str, Path]], clock=None) -> Optional[ActivityLog]:
    """Open an activity log, or return None when no path is given or it can't be created."""
    if not path:
        return None
    try:
        return ActivityLog(path, clock=clock)
    except OSError as exc:
        print(f"Warning: could not create activity log {path}: {exc}", file=sys.stderr)
        return None


def log_line(log: Optional[ActivityLog], message: str, level: str = "INFO") -> None:
    if log is not None:
        log.write(message, level=level)


def report(log: Optional[ActivityLog], message: str, level: str = "INFO") -> None:
    """Print a message to the console and record it in the log."""
    stream = sys.stderr if level.upper() == "ERROR" else sys.stdout
    print(message, file=stream)
    log_line(log, message, level=level)


def read_entries(path: Union[str, Path]) -> List[Dict[str, str]]:
    path = Path(path)
    if not path.exists():
        return []
    entries: List[Dict[str, str]] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        match = LINE_PATTERN.match(line)
        if match:
            entries.append(match.groupdict())
    return entries


def show_recent(path: Union[str, Path], limit: int = 10) -> None:
    entries = read_entries(path)
    if not entries:
        print("No log entries available.")
        return
    print(f"\nShowing the last {min(limit, len(entries))} log entries:")
    for entry in entries[-limit:]:
        print(f"[{entry['timestamp']} | {entry['source']} | {entry['level']}] PID {entry['pid']}: {entry['message']}")


def summarize(path: Union[str, Path]) -> Dict[str, int]:
    summary: Dict[str, int] = {}
    for entry in read_entries(path):
        summary[entry["level"]] = summary.get(entry["level"], 0) + 1
    return summary


def show_summary(path: Union[str, Path]) -> None:
    summary = summarize(path)
    if not summary:
        print("No log entries to summarise.")
        return
    print("\nLog Summary by Level:")
    for level, count in sorted(summary.items()):
        print(f"  {level:<7} : {count}")
