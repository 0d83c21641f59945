"""
Script to run the market sync (and optionally the status refresh) once
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, engine
from core.exceptions import FatalConfigurationError
from core.logging import setup_logging
from ingestion.extractors.provider_client import ProviderClient
from ingestion.runner import SyncOrchestrator
from ingestion.status_refresh import StatusRefresher

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync corporate-owned property transactions")
    parser.add_argument(
        "--market",
        action="append",
        dest="markets",
        metavar="MARKET_ID",
        help="Market to sync (repeatable). Defaults to every configured market."
    )
    parser.add_argument(
        "--refresh-status",
        action="store_true",
        help="Refresh listing status of stored properties instead of syncing"
    )
    return parser


async def refresh_status() -> int:
    if not settings.PROVIDER_API_URL or not settings.PROVIDER_API_KEY:
        logger.error("PROVIDER_API_URL and PROVIDER_API_KEY must be set")
        return 2

    async with ProviderClient(
        settings.PROVIDER_API_URL,
        settings.PROVIDER_API_KEY,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    ) as client:
        async with async_session_maker() as session:
            refresher = StatusRefresher(
                session,
                client,
                batch_size=settings.SYNC_DETAIL_BATCH_SIZE,
                db_chunk_size=settings.STATUS_REFRESH_DB_CHUNK,
                rate_limit_delay=settings.SYNC_RATE_LIMIT_DELAY_SECONDS,
            )
            report = await refresher.run()

    print(report.model_dump_json(indent=2))
    return 0


async def run_sync(markets) -> int:
    try:
        report = await SyncOrchestrator().run_sync(markets)
    except FatalConfigurationError as e:
        logger.error(f"Sync aborted: {e.message}")
        return 2

    print(report.model_dump_json(indent=2))
    return 1 if report.errors else 0


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.refresh_status:
            return await refresh_status()
        return await run_sync(args.markets)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main()))
