#!/usr/bin/env python
"""Operate the hospital embedding index.

Usage:
    python -m scripts.run_indexing index --batch-size 10 --delay 1.0
    python -m scripts.run_indexing index --force
    python -m scripts.run_indexing reindex <hospital-id> [<hospital-id> ...]
    python -m scripts.run_indexing reset --yes
    python -m scripts.run_indexing status

Prints a JSON report and exits non-zero when any hospital failed, so it can
run from cron or a CI job.
"""

import argparse
import asyncio
import json
import sys
from typing import Any

from hospital_search.api.dependencies import Services
from hospital_search.config import get_settings
from hospital_search.embeddings.service import validate_embedding_settings
from hospital_search.exceptions import HospitalSearchError
from hospital_search.indexing.models import IndexingOptions
from hospital_search.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


async def run_command(args: argparse.Namespace) -> tuple[dict[str, Any], bool]:
    """Execute one subcommand.

    Args:
        args: Parsed command line.

    Returns:
        The JSON-ready report and whether the command fully succeeded.
    """
    settings = get_settings()
    validation = validate_embedding_settings(settings)
    for warning in validation.warnings:
        logger.warning(warning)
    if args.command in ("index", "reindex") and not validation.is_valid:
        return {"errors": validation.errors}, False

    services = Services.build(settings)
    try:
        await services.store.ensure_collections()
        indexer = services.indexer

        if args.command == "status":
            status = await indexer.get_embedding_status()
            return {"statistics": status.model_dump(mode="json", by_alias=True)}, True

        if args.command == "reset":
            cleared = await indexer.reset_embeddings()
            return {"cleared": cleared}, True

        if args.command == "reindex":
            progress = await indexer.reindex_hospitals(args.hospital_ids)
        else:
            progress = await indexer.start_indexing(
                IndexingOptions(
                    batch_size=args.batch_size,
                    force_regenerate=args.force,
                    delay_between_batches=args.delay,
                    include_stale=args.include_stale,
                )
            )
        return {"progress": progress.model_dump(mode="json", by_alias=True)}, progress.failed == 0
    finally:
        await services.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage hospital embeddings",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    index = subcommands.add_parser("index", help="Embed hospitals that need a vector")
    index.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Hospitals per batch (default from INDEXING_BATCH_SIZE)",
    )
    index.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds between batches (default from INDEXING_DELAY_BETWEEN_BATCHES)",
    )
    index.add_argument(
        "--force",
        action="store_true",
        help="Re-embed every active hospital",
    )
    index.add_argument(
        "--include-stale",
        action="store_true",
        help="Also re-embed hospitals edited since their vector was generated",
    )

    reindex = subcommands.add_parser("reindex", help="Re-embed specific hospitals")
    reindex.add_argument("hospital_ids", nargs="+", help="Hospital ids")

    reset = subcommands.add_parser("reset", help="Clear every stored embedding")
    reset.add_argument(
        "--yes",
        action="store_true",
        help="Confirm the irreversible reset",
    )

    subcommands.add_parser("status", help="Show embedding coverage")
    return parser


def main() -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if args.command == "reset" and not args.yes:
        parser.error("reset clears every embedding; pass --yes to confirm")

    setup_logging(level=args.log_level)

    try:
        report, ok = asyncio.run(run_command(args))
    except HospitalSearchError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(json.dumps(e.to_dict(), indent=2))
        sys.exit(2)

    print(json.dumps(report, indent=2))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
