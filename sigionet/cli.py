"""Command line entry point: one subcommand per exercise."""
from __future__ import annotations

import argparse
import sys
from typing import Callable, Dict, List, Optional

from . import __version__
from . import config as defaults
from . import programs
from .activity import show_recent, show_summary
from .codec import CODECS, FRAMING_MODES
from .config import ProgramConfig, parse_ip, parse_non_negative, parse_port, parse_positive
from .endpoint import SocketSettings
from .errors import ConfigurationError, FatalIOError


def _argtype(parser: Callable, *extra) -> Callable[[str], object]:
    def convert(text: str):
        try:
            return parser(text, *extra)
        except ConfigurationError as exc:
            raise argparse.ArgumentTypeError(str(exc)) from None

    convert.__name__ = parser.__name__.replace("parse_", "")
    return convert


port_type = _argtype(parse_port)
ip_type = _argtype(parse_ip)


def _common_parent(default_log: Optional[str]) -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    log_group = parent.add_mutually_exclusive_group()
    log_group.add_argument("-l", "--log", default=default_log, help=f"activity log file (default: {default_log})")
    log_group.add_argument("-n", "--no-log", action="store_true", help="do not create an activity log")
    parent.add_argument("--ntp-server", default=None, help="timestamp log lines with this NTP server's clock")
    parent.add_argument("--no-public-ip", action="store_true", help="skip the public IP lookup")
    parent.add_argument("--timeout", type=_argtype(parse_non_negative, "timeout"), default=0.0)
    parent.add_argument("--rcvbuf", type=_argtype(parse_positive, "receive buffer"), default=0)
    parent.add_argument("--sndbuf", type=_argtype(parse_positive, "send buffer"), default=0)
    return parent


def _add_message_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-b", "--max-bytes", type=_argtype(parse_positive, "max bytes"), default=defaults.MAX_BYTES)
    parser.add_argument("--framing", choices=FRAMING_MODES, default="legacy")


def _add_server_options(parser: argparse.ArgumentParser, default_port: int) -> None:
    parser.add_argument("port_arg", nargs="?", type=port_type, metavar="PORT")
    parser.add_argument("-p", "--port", type=port_type, default=None, help=f"port to listen on (default: {default_port})")
    parser.add_argument("--single", action="store_true", help="stop after the first message or client")
    parser.set_defaults(default_port=default_port)


def _add_client_options(parser: argparse.ArgumentParser, default_port: int) -> None:
    parser.add_argument("ip_arg", nargs="?", type=ip_type, metavar="IP")
    parser.add_argument("remote_port_arg", nargs="?", type=port_type, metavar="PORT")
    parser.add_argument("-i", "--ip", type=ip_type, default=None, help=f"server IP (default: {defaults.LOCALHOST})")
    parser.add_argument("-p", "--port", type=port_type, default=None, help=f"server port (default: {default_port})")
    parser.set_defaults(default_remote_port=default_port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sigionet", description="Signal driven socket exercises")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="program", metavar="PROGRAM")
    sub.required = True

    p = sub.add_parser("receiver", parents=[_common_parent(defaults.RECEIVER_LOG)], help="UDP receiver")
    _add_server_options(p, defaults.RECEIVER_PORT)
    _add_message_options(p)
    p.add_argument("--codec", choices=sorted(CODECS), default="text")
    p.set_defaults(func=programs.run_receiver)

    p = sub.add_parser("sender", parents=[_common_parent(defaults.SENDER_LOG)], help="UDP sender")
    p.add_argument("local_port_arg", nargs="?", type=port_type, metavar="LOCAL_PORT")
    _add_client_options(p, defaults.RECEIVER_PORT)
    p.add_argument("-o", "--local-port", type=port_type, default=None, help=f"port to send from (default: {defaults.SENDER_PORT})")
    _add_message_options(p)
    p.add_argument("--codec", choices=sorted(CODECS), default="text")
    p.add_argument("-m", "--message", default=None, help="text to send instead of the greeting")
    p.set_defaults(func=programs.run_sender, default_local_port=defaults.SENDER_PORT)

    p = sub.add_parser("greet-server", parents=[_common_parent(defaults.GREET_LOG)], help="TCP greeting server")
    _add_server_options(p, defaults.GREET_PORT)
    p.add_argument("-b", "--backlog", type=_argtype(parse_positive, "backlog"), default=defaults.GREET_BACKLOG)
    p.set_defaults(func=programs.run_greet_server)

    p = sub.add_parser("greet-client", parents=[_common_parent(None)], help="TCP greeting client")
    _add_client_options(p, defaults.GREET_PORT)
    p.set_defaults(func=programs.run_greet_client)

    p = sub.add_parser("echo-server", parents=[_common_parent(None)], help="TCP echo server")
    _add_server_options(p, defaults.ECHO_PORT)
    p.add_argument("-b", "--backlog", type=_argtype(parse_positive, "backlog"), default=defaults.ECHO_BACKLOG)
    p.set_defaults(func=programs.run_echo_server)

    p = sub.add_parser("echo-client", parents=[_common_parent(None)], help="TCP echo client")
    _add_client_options(p, defaults.ECHO_PORT)
    p.add_argument("-m", "--message", default=defaults.ECHO_MESSAGE)
    p.set_defaults(func=programs.run_echo_client)

    p = sub.add_parser("upper-server", parents=[_common_parent(defaults.UPPER_SERVER_LOG)], help="UDP uppercase server")
    _add_server_options(p, defaults.UPPER_SERVER_PORT)
    _add_message_options(p)
    p.set_defaults(func=programs.run_upper_server)

    p = sub.add_parser("upper-client", parents=[_common_parent(defaults.UPPER_CLIENT_LOG)], help="UDP uppercase client")
    _add_client_options(p, defaults.UPPER_SERVER_PORT)
    p.add_argument("-o", "--local-port", type=port_type, default=None, help=f"port to send from (default: {defaults.UPPER_CLIENT_PORT})")
    p.add_argument("-f", "--file", dest="input_file", default=defaults.UPPER_INPUT_FILE)
    p.add_argument("-b", "--max-bytes", type=_argtype(parse_positive, "max bytes"), default=defaults.MAX_BYTES)
    p.set_defaults(func=programs.run_upper_client, default_local_port=defaults.UPPER_CLIENT_PORT)

    p = sub.add_parser("info", help="machine information")
    p.add_argument("--no-public-ip", action="store_true")
    p.add_argument("--ntp-server", default=None)
    p.set_defaults(func=programs.run_info)

    p = sub.add_parser("log", help="show an activity log")
    p.add_argument("path")
    p.add_argument("--limit", type=_argtype(parse_positive, "limit"), default=10)
    p.add_argument("--summary", action="store_true")
    p.set_defaults(func=None)

    return parser


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def config_from_args(args: argparse.Namespace) -> ProgramConfig:
    """Turn parsed options into a ProgramConfig; options win over positionals."""
    values: Dict[str, object] = {"program": args.program}
    if hasattr(args, "default_port"):
        values["port"] = _first(args.port, args.port_arg, args.default_port)
        values["single_shot"] = args.single
    if hasattr(args, "default_remote_port"):
        values["remote_ip"] = _first(args.ip, args.ip_arg, defaults.LOCALHOST)
        values["remote_port"] = _first(args.port, args.remote_port_arg, args.default_remote_port)
    if hasattr(args, "default_local_port"):
        values["port"] = _first(args.local_port, getattr(args, "local_port_arg", None), args.default_local_port)
    for name in ("max_bytes", "framing", "codec", "backlog", "message", "input_file", "ntp_server"):
        if getattr(args, name, None) is not None:
            values[name] = getattr(args, name)
    if hasattr(args, "no_log"):
        values["log_path"] = None if args.no_log else args.log
        values["settings"] = SocketSettings(timeout=args.timeout, recv_buffer=args.rcvbuf, send_buffer=args.sndbuf)
    values["lookup_public"] = not getattr(args, "no_public_ip", False)
    return ProgramConfig(**values)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.program == "log":
        if args.summary:
            show_summary(args.path)
        else:
            show_recent(args.path, args.limit)
        return 0

    try:
        config = config_from_args(args)
    except ConfigurationError as exc:
        parser.error(str(exc))

    try:
        return args.func(config)
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except FatalIOError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user. Exiting...")
        return 130


if __name__ == "__main__":
    sys.exit(main())
