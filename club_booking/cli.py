import argparse
import logging
import sys
import time

from club_booking import run
from club_booking.api import ApiError

# --- Logging Setup ---

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool):
    """Configures logging to stderr with local time."""
    level = logging.DEBUG if verbose else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s]: %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    formatter.converter = time.localtime
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def parse_arguments(argv=None):
    """Parses command line arguments."""
    parser = argparse.ArgumentParser(description="View court availability and book courts at the club.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")

    # Subcommands accept -v too; SUPPRESS keeps them from resetting a top-level -v.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS,
                        help="Enable verbose logging.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    show_parser = subparsers.add_parser("show", parents=[common], help="Show occupied slots per court.")
    show_parser.add_argument("--date", type=str, help="Date in YYYY-MM-DD format. Defaults to today.")
    show_parser.add_argument("--days", type=int, default=1, help="Number of days to show. Defaults to 1.")

    book_parser = subparsers.add_parser("book", parents=[common],
                                        help="Book a court, resolving booking-limit conflicts.")
    book_parser.add_argument("--court", type=int, required=True, help="Court id.")
    book_parser.add_argument("--date", type=str, help="Date in YYYY-MM-DD format. Defaults to today.")
    book_parser.add_argument("--time", type=str, required=True, help="Start time in HH:MM format.")
    member_group = book_parser.add_mutually_exclusive_group()
    member_group.add_argument("--for", dest="member_id", type=str,
                              help="Book for another member, given by member id.")
    member_group.add_argument("--for-search", dest="member_query", type=str,
                              help="Book for another member, picked as the first search hit for this name.")

    return parser.parse_args(argv)


def main():
    args = parse_arguments()
    setup_logging(args.verbose)

    try:
        if args.command == "show":
            run.show(start_date=args.date, days=args.days)
        elif args.command == "book":
            if not run.book(args.court, args.date, args.time, member_query=args.member_query,
                            member_id=args.member_id):
                sys.exit(1)
    except ApiError as e:
        logger.error(f"Request failed: {e}")
        sys.exit(1)
