"""Shared CLI infrastructure for fl-run/fl-ping/fl-cp."""

import argparse
import logging
import signal
import sys
from typing import Any, Callable, Optional

from fleetlink.transport.ssh import SSHTransport

# Exit codes
EXIT_OK = 0
EXIT_REMOTE_ERROR = 1
EXIT_USAGE_ERROR = 2
EXIT_UNAVAILABLE = 3


def base_parser(description: str, host: bool = True) -> argparse.ArgumentParser:
    """Create ArgumentParser with common flags shared by all CLI tools."""
    parser = argparse.ArgumentParser(description=description)
    if host:
        parser.add_argument("host", help="remote host ([user@]host)")
    parser.add_argument("-u", "--user", default=None, help="login name (default: current user)")
    parser.add_argument("-p", "--port", type=int, default=None, help="SSH port (default: 22)")
    parser.add_argument("-i", "--identity", default=None, help="private key file")
    parser.add_argument("--prefix", default=None, help='prepended to every remote command (e.g. "sudo ")')
    parser.add_argument(
        "--connect-timeout", type=float, default=None, help="initial connect timeout in seconds (default: 10.0)"
    )
    parser.add_argument("--no-pty", action="store_true", help="never request a pseudo-terminal")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="verbose output (-vv for debug)")
    return parser


def configure_logging(verbose: int) -> None:
    """WARNING by default, INFO with -v, DEBUG with -vv."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s", stream=sys.stderr)
    if verbose < 3:
        # paramiko's transport logging drowns everything at DEBUG
        logging.getLogger("paramiko").setLevel(max(level, logging.WARNING))


def split_user_host(target: str, user: Optional[str] = None) -> tuple[Optional[str], str]:
    """Split "user@host" into (user, host). An explicit user wins."""
    if "@" in target:
        target_user, host = target.rsplit("@", 1)
        return user or target_user or None, host
    return user, target


def make_transport(args, host: Optional[str] = None, **options: Any) -> SSHTransport:
    """Create SSHTransport from parsed args.

    ``options`` are extra transport options (stream, stream_stdout, ...).
    """
    username, hostname = split_user_host(host if host is not None else args.host, args.user)
    if not hostname:
        raise ValueError("host cannot be empty")
    ssh_options: dict[str, Any] = {}
    if args.port is not None:
        ssh_options["port"] = args.port
    if args.identity is not None:
        ssh_options["key_filename"] = args.identity
    if args.prefix:
        options["prefix"] = args.prefix
    if args.no_pty:
        options["ssh_pty_enable"] = False
    return SSHTransport(hostname, username, ssh_options, options, connect_timeout=args.connect_timeout)


def install_signal_handlers(cleanup_fn: Callable[[], None]) -> None:
    """Install SIGINT/SIGTERM handlers that call cleanup_fn then exit."""

    def _handler(signum, frame):
        cleanup_fn()
        sys.exit(128 + signum)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
