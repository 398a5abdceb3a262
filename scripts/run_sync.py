"""
Script to run one AppFolio sync from the command line
"""

import argparse
import asyncio
import sys
import os
import logging
from dataclasses import replace
from datetime import date

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import engine, async_session_maker
from core.logging import setup_logging
from core.exceptions import UnknownResourceError
from ingestion.resources import parse_resource_type
from ingestion.runner import SyncOptions
from ingestion.sync_job import get_or_create_default_connection, run_sync
from models.base import SyncMode, SyncStatus

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run an AppFolio sync")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in SyncMode],
        default=SyncMode.INCREMENTAL.value,
        help="full or incremental (default: incremental)"
    )
    parser.add_argument(
        "--resource",
        action="append",
        dest="resources",
        help="Resource type to sync; repeat for several (default: SYNC_RESOURCES)"
    )
    parser.add_argument("--from-date", type=date.fromisoformat, help="Custom range start (YYYY-MM-DD)")
    parser.add_argument("--to-date", type=date.fromisoformat, help="Custom range end (YYYY-MM-DD)")

    args = parser.parse_args(argv)
    if bool(args.from_date) != bool(args.to_date):
        parser.error("--from-date and --to-date must be given together")
    for resource in args.resources or []:
        try:
            parse_resource_type(resource)
        except UnknownResourceError:
            parser.error(f"unknown resource type: {resource}")
    return args


async def main(args: argparse.Namespace) -> int:
    options = SyncOptions.from_settings(settings)
    if args.resources:
        options = replace(options, resources=tuple(args.resources))

    date_range = (args.from_date, args.to_date) if args.from_date else None

    try:
        async with async_session_maker() as session:
            connection = await get_or_create_default_connection(session, settings)
            run = await run_sync(
                session,
                connection,
                SyncMode(args.mode),
                settings=settings,
                options=options,
                date_range=date_range,
            )

            summary = run.get_summary()
            logger.info(
                f"Sync run {run.id} {summary['status']}: "
                f"created={summary['total_created']}, updated={summary['total_updated']}, "
                f"skipped={summary['total_skipped']}, errors={run.errors_count}"
            )
            if run.error_summary:
                logger.info(f"Errors:\n{run.error_summary}")

            return 0 if SyncStatus(run.status) == SyncStatus.COMPLETED else 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main(parse_args())))
