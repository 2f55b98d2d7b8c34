"""fl-cp -- Copy a file to or from a remote host."""

import sys
from typing import Optional

import paramiko

from fleetlink.cli._common import (
    EXIT_OK,
    EXIT_REMOTE_ERROR,
    EXIT_UNAVAILABLE,
    EXIT_USAGE_ERROR,
    base_parser,
    configure_logging,
    make_transport,
)
from fleetlink.errors import CommandError, InitialConnectTimeout, TransferError, TransportError


def parse_remote(arg: str) -> Optional[tuple[str, str]]:
    """Split "[user@]host:path" into (host, path); None for a local path.

    A colon after the first slash belongs to a local path (./a:b, /x:y).
    """
    colon = arg.find(":")
    if colon <= 0:
        return None
    slash = arg.find("/")
    if 0 <= slash < colon:
        return None
    return arg[:colon], arg[colon + 1 :]


def main() -> int:
    parser = base_parser("Copy a file to or from a remote host over SSH", host=False)
    parser.add_argument("src", metavar="SRC", help="local path or [user@]host:path")
    parser.add_argument("dst", metavar="DST", help="local path or [user@]host:path")
    args = parser.parse_args()
    configure_logging(args.verbose)

    src_remote = parse_remote(args.src)
    dst_remote = parse_remote(args.dst)
    if (src_remote is None) == (dst_remote is None):
        print("Error: exactly one of SRC and DST must be HOST:PATH", file=sys.stderr)
        return EXIT_USAGE_ERROR

    host, remote_path = src_remote or dst_remote  # type: ignore[misc]
    if not remote_path:
        print("Error: remote path cannot be empty", file=sys.stderr)
        return EXIT_USAGE_ERROR

    try:
        transport = make_transport(args, host=host)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE_ERROR

    try:
        if src_remote is not None:
            transport.download_file(remote_path, args.dst)
        else:
            transport.upload_file(args.src, remote_path)
    except KeyboardInterrupt:
        return 130
    except (CommandError, TransferError, FileNotFoundError, PermissionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_REMOTE_ERROR
    except InitialConnectTimeout as e:
        print(f"Connection error: {e}", file=sys.stderr)
        return EXIT_UNAVAILABLE
    except (TransportError, paramiko.SSHException, OSError) as e:
        print(f"Connection error: {e}", file=sys.stderr)
        return EXIT_UNAVAILABLE
    finally:
        transport.disconnect()

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
