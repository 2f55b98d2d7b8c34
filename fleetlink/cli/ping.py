"""fl-ping -- Check whether remote hosts accept SSH commands."""

import sys

from fleetlink.cli._common import (
    EXIT_OK,
    EXIT_UNAVAILABLE,
    EXIT_USAGE_ERROR,
    base_parser,
    configure_logging,
    make_transport,
)


def main() -> int:
    parser = base_parser("Check whether remote hosts are available over SSH", host=False)
    parser.add_argument("hosts", nargs="+", metavar="HOST", help="remote host(s) ([user@]host)")
    args = parser.parse_args()
    configure_logging(args.verbose)

    unavailable = 0
    for host in args.hosts:
        try:
            transport = make_transport(args, host=host)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_USAGE_ERROR
        try:
            ok = transport.available()
        except KeyboardInterrupt:
            return 130
        except OSError as e:
            # Name resolution and other local socket failures
            print(f"Connection error: {host}: {e}", file=sys.stderr)
            ok = False
        finally:
            transport.disconnect()
        print(f"{host}: {'available' if ok else 'unavailable'}")
        if not ok:
            unavailable += 1

    return EXIT_UNAVAILABLE if unavailable else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
