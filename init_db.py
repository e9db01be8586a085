"""Initialize database schema for the travel CRM.

Creates the tenant, package and email tables. Run this before starting the
API server. Pass --drop to recreate the schema from scratch.
"""

import argparse
import asyncio
import logging
import sys

from crm.config import settings
from crm.db import engine
from crm.logging_config import setup_logging
from crm.models import Base

logger = logging.getLogger("init_db")


async def init_database(drop: bool = False):
    """Create all database tables."""
    logger.info(f"Initializing database: {settings.db.url.split('@')[-1]}")

    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
            logger.info("Dropped existing tables")

        await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Created tables: {', '.join(Base.metadata.tables.keys())}")

    await engine.dispose()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()

    setup_logging()
    try:
        asyncio.run(init_database(drop=args.drop))
    except Exception as e:
        logger.exception(f"Error initializing database: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
