# main.py

"""Entry point for the sourcing search CLI."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging
from src.config.settings import Settings

logger = logging.getLogger("sourcing.main")


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(Settings.source_ids())

    parser = argparse.ArgumentParser(
        prog="sourcing_search",
        description="Multi-source supplier product search.",
        epilog=f"Available sources: {valid_ids}",
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Search query (semicolon-separated with --batch).",
    )
    parser.add_argument(
        "-s",
        "--sources",
        default=None,
        help="Comma-separated source IDs (default: all).",
    )
    parser.add_argument(
        "-l",
        "--limit",
        type=_positive_int,
        default=None,
        help=(
            "Max results per source "
            f"(default: {Settings.DEFAULT_RESULT_LIMIT})."
        ),
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "--batch",
        action="store_true",
        default=False,
        help="Run semicolon-separated queries one after another.",
    )
    parser.add_argument(
        "--cj-filter",
        action="append",
        default=None,
        metavar="KEY=VALUE",
        dest="cj_filters",
        help=(
            "Narrow the CJ Dropshipping search; repeatable. Keys: "
            "category_id, country_code, min_price, max_price, "
            "free_shipping, product_type, sort_by, sort_order."
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Show INFO logs (attempts, token refreshes) on stderr.",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Check authentication/connectivity for every source.",
    )
    parser.add_argument(
        "--clear-credential",
        default=None,
        metavar="SOURCE",
        dest="clear_credential",
        help="Drop the cached access token for SOURCE.",
    )
    return parser


def main() -> None:
    """Route to health check, credential reset or a search."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(console_level="INFO" if args.verbose else None)
    logger.info("sourcing_search starting, log file: %s", log_file)

    from src.cli import runner

    if args.health:
        exit_code = asyncio.run(runner.run_health_check())
    elif args.clear_credential:
        exit_code = asyncio.run(
            runner.run_clear_credential(args.clear_credential)
        )
    elif args.query is None:
        parser.print_help()
        exit_code = 2
    else:
        exit_code = asyncio.run(
            runner.cli_search(
                query=args.query,
                source_csv=args.sources,
                limit=args.limit,
                output_format=args.output_format,
                batch=args.batch,
                cj_filters=args.cj_filters,
            )
        )
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
