"""
Database initialization and schema creation.

This module provides functions to create the movies table and check that it
exists before the store is used.
"""

import logging
from typing import Optional

from sqlalchemy import inspect

from app.database.connection import DatabaseManager, get_db_manager

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {'movies'}


def init_database(database_url: Optional[str] = None, reset: bool = False) -> DatabaseManager:
    """
    Initialize the database and create all tables.

    Args:
        database_url: SQLAlchemy URL (default: from DATABASE_URL)
        reset: If True, drop existing tables before creating new ones

    Returns:
        DatabaseManager instance
    """
    db_manager = get_db_manager(database_url=database_url)

    if reset:
        logger.warning("Resetting database (dropping all tables)...")
        db_manager.reset_database()
        logger.info("Database reset complete.")
    else:
        logger.info("Creating database tables...")
        db_manager.create_tables()
        logger.info("Database tables created.")

    return db_manager


def verify_schema(db_manager: DatabaseManager) -> bool:
    """
    Verify that all tables exist in the database.

    Args:
        db_manager: DatabaseManager instance

    Returns:
        True if all tables exist, False otherwise
    """
    inspector = inspect(db_manager.engine)
    existing_tables = set(inspector.get_table_names())

    missing_tables = EXPECTED_TABLES - existing_tables

    if missing_tables:
        logger.error("Missing tables: %s", missing_tables)
        return False

    logger.info("All tables exist: %s", existing_tables)
    return True


if __name__ == "__main__":
    import argparse

    from app.config import get_log_level
    from app.utils.logging_config import setup_logging

    parser = argparse.ArgumentParser(description="Create the movie catalog schema")
    parser.add_argument("--reset", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()

    setup_logging(level=get_log_level())
    db_manager = init_database(reset=args.reset)
    db_manager.ping()

    if verify_schema(db_manager):
        print("\n✅ Database initialization successful!")
    else:
        print("\n❌ Database initialization failed!")
