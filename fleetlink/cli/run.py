"""fl-run -- Run a shell command on a remote host."""

import sys

import paramiko

from fleetlink.cli._common import (
    EXIT_REMOTE_ERROR,
    EXIT_UNAVAILABLE,
    EXIT_USAGE_ERROR,
    base_parser,
    configure_logging,
    make_transport,
)
from fleetlink.errors import InitialConnectTimeout, TransportError, TransportTimeoutError


def main() -> int:
    parser = base_parser("Run a shell command on a remote host over SSH")
    parser.add_argument("command", nargs="+", metavar="COMMAND", help="command text (use -- before options)")
    parser.add_argument("--timeout", type=float, default=None, help="command timeout in seconds (default: none)")
    parser.add_argument("-q", "--quiet", action="store_true", help="do not echo remote output")
    args = parser.parse_args()
    configure_logging(args.verbose)

    if args.timeout is not None and args.timeout <= 0:
        print(f"Invalid timeout: {args.timeout}", file=sys.stderr)
        return EXIT_USAGE_ERROR

    try:
        transport = make_transport(args, stream=not args.quiet)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE_ERROR

    command = " ".join(args.command)
    try:
        result = transport.execute(command, timeout=args.timeout)
    except KeyboardInterrupt:
        return 130
    except InitialConnectTimeout as e:
        print(f"Connection error: {e}", file=sys.stderr)
        return EXIT_UNAVAILABLE
    except TransportTimeoutError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_REMOTE_ERROR
    except (TransportError, paramiko.SSHException, OSError) as e:
        print(f"Connection error: {e}", file=sys.stderr)
        return EXIT_UNAVAILABLE
    finally:
        transport.disconnect()

    if result.exit_status is None:
        print(f"Error: no exit status reported for {command!r}", file=sys.stderr)
        return EXIT_REMOTE_ERROR
    return result.exit_status


if __name__ == "__main__":
    sys.exit(main())
