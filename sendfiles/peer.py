"""
sf — send files in LAN quickly.

Main entry point.  Without a destination it receives; with one it sends.

Usage:
    sf                          # receive into the current directory
    sf --strip-prefix           # receive, dropping the common path prefix
    sf 192.168.1.20 photos/     # send a directory to a known receiver
    sf auto a.txt b.txt         # find the receiver via broadcast, then send
    sf --tui auto photos/       # same, with a live dashboard
"""

import argparse
import ipaddress
import os
import sys

from .config import AUTO_ADDRESS, DISCOVERY_TIMEOUT, PORT
from .client import format_size, send_files
from .discovery import get_interface_addresses, resolve_via_discovery
from .errors import TransferError
from .logging_config import setup_logging
from .server import Receiver


def _parse_target(target: str, default_port: int) -> tuple[str, int]:
    """
    Parse 'host', 'host:port', an IPv6 literal or '[v6]:port'.
    If port is omitted, *default_port* is used.
    """
    if target.startswith("["):
        host, _, rest = target[1:].partition("]")
        port = int(rest[1:]) if rest.startswith(":") else default_port
        return host, port
    try:
        ipaddress.ip_address(target)
        return target, default_port
    except ValueError:
        pass
    if ":" in target:
        host, port_str = target.rsplit(":", 1)
        return host, int(port_str)
    return target, default_port


def expand_paths(args: list[str]) -> list[str]:
    """Expand directories into the files below them, keeping argument order."""
    paths = []
    for arg in args:
        if not os.path.isdir(arg):
            paths.append(arg)
            continue
        for root, dirs, files in os.walk(arg):
            dirs.sort()
            for name in sorted(files):
                path = os.path.join(root, name)
                if os.path.isfile(path):
                    paths.append(path)
    return paths


def _console_progress(count: int | None):
    """Print one line per file as it starts."""
    state = {"n": 0}
    width = len(str(count)) if count else 0

    def progress(path: str, current: int, total: int) -> None:
        if current != 0:
            return
        state["n"] += 1
        position = f"{state['n']:>{width}}/{count}" if count else str(state["n"])
        print(f"  [{position}] {path} ({format_size(total)})")

    return progress


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sf",
        description="Send files in LAN quickly.  Receives when no destination is given.",
    )
    parser.add_argument(
        "destination",
        nargs="?",
        help=f"receiver IP address, or '{AUTO_ADDRESS}' to discover it",
    )
    parser.add_argument("files", nargs="*", help="files or directories to send")
    parser.add_argument(
        "-s",
        "--strip-prefix",
        action="store_true",
        help="strip the path prefix shared by all received files "
        "(useful for absolute paths from a drive you don't have)",
    )
    parser.add_argument(
        "--no-broadcast",
        action="store_true",
        help="do not announce this receiver on the LAN",
    )
    parser.add_argument("--port", type=int, default=PORT, help="TCP port")
    parser.add_argument("--dest", default=None, help="directory to receive into")
    parser.add_argument(
        "--timeout",
        type=float,
        default=DISCOVERY_TIMEOUT,
        help="seconds to wait for a receiver in auto mode",
    )
    parser.add_argument("--tui", action="store_true", help="show a live dashboard")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def receive(args: argparse.Namespace) -> None:
    with Receiver(
        ("0.0.0.0", args.port),
        strip_prefix=args.strip_prefix,
        broadcast=not args.no_broadcast,
        dest_dir=args.dest,
        progress_callback=_console_progress(None),
    ) as receiver:
        host, port = receiver.address
        hosts = [host]
        if host == "0.0.0.0":
            hosts = [address for address, _ in get_interface_addresses()] or hosts
        mode = "broadcasting own address" if receiver.broadcast else "direct ip only"
        print(f"  Waiting for a sender on {', '.join(hosts)} port {port} ({mode})...")
        summary = receiver.serve()
    print(f"  Received {len(summary.files)} file(s), {format_size(summary.total_bytes)}.")


def resolve(args: argparse.Namespace) -> tuple[str, int]:
    if args.destination == AUTO_ADDRESS:
        print("  Looking for a receiver...")
        host, port = resolve_via_discovery(timeout=args.timeout)
        print(f"  Found receiver at {host}:{port}")
        return host, port
    return args.address


def send(args: argparse.Namespace) -> None:
    paths = expand_paths(args.files)
    addr = resolve(args)
    print(f"  Sending {len(paths)} file(s) to {addr[0]}:{addr[1]}...")
    summary = send_files(addr, paths, progress_callback=_console_progress(len(paths)))
    print(f"  Sent {len(summary.files)} file(s), {format_size(summary.total_bytes)}.")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    args.address = None
    if args.destination not in (None, AUTO_ADDRESS):
        try:
            args.address = _parse_target(args.destination, args.port)
        except ValueError:
            parser.error(f"invalid destination: {args.destination}")

    setup_logging("DEBUG" if args.verbose else None)

    if args.tui:
        from .tui import run_tui

        return run_tui(args)

    try:
        if args.destination is None:
            receive(args)
        else:
            send(args)
    except TransferError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n  Interrupted.")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
