import argparse
import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import build_engine, build_session_maker
from core.logging import setup_logging
import models  # noqa: F401  registers every table on Base.metadata
from models.base import Base
from ingestion.sync_job import get_or_create_default_connection

logger = logging.getLogger(__name__)


async def init_database(seed_connection: bool = True):
    logger.info("Connecting to database...")
    engine = build_engine(settings.DATABASE_URL)

    async with engine.begin() as conn:
        logger.info("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables created successfully.")

    if seed_connection:
        async with build_session_maker(engine)() as session:
            connection = await get_or_create_default_connection(session, settings)
            logger.info(
                f"AppFolio connection {connection.id} "
                f"({'configured' if connection.is_configured() else 'not configured'})"
            )

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create tables and the default AppFolio connection")
    parser.add_argument("--no-seed", action="store_true", help="Only create tables")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(init_database(seed_connection=not args.no_seed))
