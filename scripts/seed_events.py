"""Load the Division B and C event catalog and conflict blocks. Run from project root: python scripts/seed_events.py"""
import asyncio
import logging
import sys
from pathlib import Path

_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_root))

from teamy.models.base import async_session_factory, engine, init_db
from teamy.services.events import seed_events


async def main() -> None:
    await init_db()
    async with async_session_factory() as session:
        await seed_events(session)
    await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
