#!/usr/bin/env python3
"""
Database migration script.

Run before starting the API so the schema is up to date.

Usage:
    python scripts/run_migrations.py

Environment Variables:
    DATABASE_URL - Database connection string

Exit Codes:
    0 - Success
    1 - Migration failed
"""

import asyncio
import logging
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from assistline.core.db import init_models
from assistline.core.settings import get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main() -> int:
    try:
        settings = get_settings()
        logger.info("Database URL: %s", settings.database_url_sync.split("@")[-1])
        logger.info("Running migrations...")
        await init_models()
        logger.info("Migrations completed successfully")
        return 0
    except Exception as e:
        logger.error("Migration failed: %s", e, exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
