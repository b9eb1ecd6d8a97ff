#!/usr/bin/env python3
"""
Initialize the Library Circulation database.

This script:
1. Creates all database tables
2. Writes default policy settings
3. Optionally loads Faker-generated sample data

Usage:
    python scripts/init_database.py [--drop-existing] [--sample-data] [--database-url URL]
"""

import argparse
import logging
import sys

from sqlalchemy import inspect

from library_circulation_mcp.database import get_db_manager
from library_circulation_mcp.database.seed import seed_sample_data, seed_settings

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"branches", "books", "members", "loans", "reservations", "settings"}


def main():
    parser = argparse.ArgumentParser(
        description="Initialize the Library Circulation MCP Server database"
    )
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Load sample branches, books, members, loans and reservations",
    )
    parser.add_argument(
        "--database-url",
        help="Override default database URL",
    )
    args = parser.parse_args()

    db_manager = get_db_manager(args.database_url)

    if not db_manager.verify_connection():
        logger.error("Failed to connect to database")
        sys.exit(1)

    try:
        logger.info("Creating database schema...")
        db_manager.init_database(drop_existing=args.drop_existing)

        missing = EXPECTED_TABLES - set(inspect(db_manager.engine).get_table_names())
        if missing:
            logger.error("Missing expected tables: %s", sorted(missing))
            sys.exit(1)

        with db_manager.session_scope() as session:
            if args.sample_data:
                counts = seed_sample_data(session)
                logger.info("Sample data loaded: %s", counts)
            else:
                seed_settings(session)
                logger.info("Default settings written")

        logger.info("Database initialization complete")
    except Exception:
        logger.exception("Database initialization failed")
        sys.exit(1)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()
