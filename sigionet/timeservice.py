"""Clocks used to timestamp activity log lines."""
from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Optional, Tuple

import ntplib

TIMESTAMP_FORMAT = "%a, %d %b %Y, %H:%M:%S.%f"


class LocalClock:
    """Clock backed only by the local system time."""

    source = "Local"

    def get_current_times(self, force_refresh: bool = False) -> Tuple[Optional[datetime], datetime, Optional[str]]:
        return None, datetime.now(), None

    def timestamp_for_log(self) -> Tuple[str, str]:
        return datetime.now().strftime(TIMESTAMP_FORMAT), self.source


class TimeService:
    """Retrieve time information from an NTP server with graceful fallbacks."""

    def __init__(self, server: str = "pool.ntp.org", refresh_interval: int = 300, timeout: float = 5.0) -> None:
        self.server = server
        self.refresh_interval = refresh_interval
        self.timeout = timeout
        self._client = ntplib.NTPClient()
        self._last_sync: Optional[datetime] = None
        self._last_ntp: Optional[datetime] = None
        self._last_attempt: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._lock = threading.Lock()

    def _fetch_time(self) -> Tuple[Optional[datetime], Optional[str]]:
        self._last_attempt = datetime.now()
        try:
            response = self._client.request(self.server, version=3, timeout=self.timeout)
        except (ntplib.NTPException, OSError) as exc:
            self._last_error = str(exc)
            return None, str(exc)
        ntp_time = datetime.fromtimestamp(response.tx_time)
        self._last_sync = datetime.now()
        self._last_ntp = ntp_time
        self._last_error = None
        return ntp_time, None

    def get_current_times(self, force_refresh: bool = False) -> Tuple[Optional[datetime], datetime, Optional[str]]:
        """Return (ntp_time, local_time, error).

        The server is asked at most once per refresh interval, whether the
        previous request succeeded or not; in between, a failed request
        keeps answering with the local clock.
        """
        with self._lock:
            local_now = datetime.now()
            needs_refresh = (
                force_refresh
                or self._last_attempt is None
                or (local_now - self._last_attempt) > timedelta(seconds=self.refresh_interval)
            )
            if needs_refresh:
                ntp_time, error = self._fetch_time()
                if ntp_time is None:
                    return None, local_now, error

            if self._last_error is not None or self._last_ntp is None or self._last_sync is None:
                return None, local_now, self._last_error

            drift = datetime.now() - self._last_sync
            return self._last_ntp + drift, local_now, None

    def timestamp_for_log(self) -> Tuple[str, str]:
        ntp_time, local_time, _ = self.get_current_times()
        if ntp_time is not None:
            return ntp_time.strftime(TIMESTAMP_FORMAT), "NTP"
        return local_time.strftime(TIMESTAMP_FORMAT), "Local"

    def display_time_information(self) -> None:
        ntp_time, local_time, error = self.get_current_times(force_refresh=True)
        print("\nSNTP Time Check")
        print("----------------")
        if ntp_time is not None:
            print(f"NTP server ({self.server}) time : {ntp_time:%Y-%m-%d %H:%M:%S}")
            print(f"Local system time           : {local_time:%Y-%m-%d %H:%M:%S}")
            delta = ntp_time - local_time
            print(f"Clock difference            : {delta.total_seconds():.3f} seconds")
        else:
            print("Unable to reach NTP server; showing local time only.")
            print(f"Local system time           : {local_time:%Y-%m-%d %H:%M:%S}")
            if error:
                print(f"Reason: {error}")


def make_clock(ntp_server: Optional[str] = None):
    """Return an NTP backed clock when a server is given, the local clock otherwise."""
    if ntp_server:
        return TimeService(ntp_server)
    return LocalClock()
