#!/usr/bin/env python3
"""
Database migration entry point for deployments.

Upgrades the configured database (DATABASE_URL, or the local SQLite file)
to the latest Alembic revision.
"""

import logging
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config as AlembicConfig
from alembic.util.exc import CommandError
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("notemind.migrate")

BACKEND_DIR = Path(__file__).resolve().parent


def run_migrations(revision: str = "head") -> int:
    """Run all pending database migrations"""
    logger.info("Running database migrations")
    logger.info("Database: %s", os.getenv("DATABASE_URL", "SQLite (development)"))

    cfg = AlembicConfig(str(BACKEND_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))

    try:
        command.upgrade(cfg, revision)
    except (CommandError, SQLAlchemyError) as e:
        logger.error("Migration failed: %s", e)
        return 1

    logger.info("Migrations completed successfully")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    sys.exit(run_migrations(*sys.argv[1:2]))
