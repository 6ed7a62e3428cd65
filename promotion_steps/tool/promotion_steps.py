"""Command line tool for running promotion steps against local manifests."""

import argparse
import asyncio
import logging
import sys
import traceback

from promotion_steps.exceptions import PromotionException
from . import list_runners, run

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command line utility for running promotion steps.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    run.RunAction.register(subparsers)
    list_runners.ListAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Promotion-steps command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except PromotionException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("promotion-steps error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
