"""CLI entry point for http-speedtest."""

import argparse
import logging
import sys

from http_speedtest.__version__ import __version__
from http_speedtest.server import SpeedtestServer, DEFAULT_PATH

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("http-speedtest")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="http-speedtest",
        description="Serve an HTTP endpoint for measuring download and upload speed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  http-speedtest                       # Serve http://0.0.0.0:8080/speedtest
  http-speedtest -p 9000 --path /st    # Serve http://0.0.0.0:9000/st
  http-speedtest --dashboard           # Show live transfers in a dashboard

Measuring from a client:
  curl -o /dev/null 'http://server:8080/speedtest?bytes=100MB'
  head -c 100000000 /dev/urandom | curl --data-binary @- http://server:8080/speedtest
        """,
    )
    parser.add_argument("--host", default="0.0.0.0", help="Address to listen on (default: 0.0.0.0)")
    parser.add_argument("-p", "--port", type=int, default=8080, help="Port to listen on (default: 8080)")
    parser.add_argument(
        "--path",
        default=DEFAULT_PATH,
        help=f"Endpoint path serving the speed test (default: {DEFAULT_PATH})",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Per-connection socket timeout (default: none)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--dashboard",
        action="store_true",
        help="Show an interactive dashboard of transfers instead of console logs",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.verbose:
        logger.setLevel(logging.DEBUG)

    if not 0 <= args.port <= 65535:
        logger.error("Invalid port. Use an integer between 0 and 65535")
        sys.exit(1)

    if not args.path.startswith("/"):
        logger.error("Invalid path. It must start with '/' (e.g., /speedtest)")
        sys.exit(1)

    if args.timeout is not None and args.timeout <= 0:
        logger.error("Invalid timeout. Use a positive number of seconds")
        sys.exit(1)

    try:
        server = SpeedtestServer(
            (args.host, args.port),
            route_path=args.path,
            request_timeout=args.timeout,
        )
    except OSError as e:
        logger.error(f"Cannot listen on {args.host}:{args.port}: {e}")
        sys.exit(1)

    if args.dashboard:
        server.run_dashboard()
    else:
        server.run()


if __name__ == "__main__":
    main()
