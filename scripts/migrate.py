"""Create tables and apply column migrations. Run from project root: python scripts/migrate.py"""
import asyncio
import logging
import sys
from pathlib import Path

_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_root))

from teamy.models.base import engine, init_db

logger = logging.getLogger("teamy.scripts")


async def main() -> None:
    await init_db()
    await engine.dispose()
    logger.info("Database schema is up to date")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
