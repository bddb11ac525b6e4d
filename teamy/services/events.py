"""Built-in event catalog and conflict blocks, seeded into an empty database."""
from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamy.models import ConflictGroup, ConflictGroupEvent, Event
from teamy.utils import slugify

logger = logging.getLogger("teamy.db")

# Block number -> events running in that time slot
EVENT_BLOCKS: dict[str, dict[int, list[str]]] = {
    "B": {
        1: ["Codebusters", "Disease Detectives", "Remote Sensing"],
        2: ["Anatomy and Physiology", "Meteorology", "Road Scholar"],
        3: ["Crime Busters", "Entomology", "Solar System"],
        4: ["Dynamic Planet", "Metric Mastery", "Potions and Poisons"],
        5: ["Ecology", "Fossils", "Wind Power"],
        6: ["Experimental Design", "Heredity", "Write It Do It"],
    },
    "C": {
        1: ["Codebusters", "Disease Detectives", "Fossils"],
        2: ["Anatomy and Physiology", "Astronomy", "Forensics"],
        3: ["Chem Lab", "Dynamic Planet", "Entomology"],
        4: ["Materials Science", "Rocks and Minerals", "Water Quality"],
        5: ["Cell Biology", "Designer Genes", "Ecology"],
        6: ["Experimental Design", "Machines", "Write It Do It"],
    },
}

# Build/self-scheduled events outside any block
UNBLOCKED_EVENTS: dict[str, list[str]] = {
    "B": ["Air Trajectory", "Helicopter", "Mission Possible", "Scrambler", "Tower"],
    "C": ["Boomilever", "Electric Vehicle", "Helicopter", "Robot Tour", "Wind Power"],
}

# Events that field three competitors instead of two
THREE_COMPETITOR_EVENTS = {"Experimental Design"}


async def seed_events(session: AsyncSession) -> int:
    """Insert the catalog if the events table is empty. Returns the number of events created."""
    existing = await session.scalar(select(func.count(Event.id)))
    if existing:
        logger.info("Event catalog already present (%d events), skipping seed", existing)
        return 0
    created = 0
    for division, blocks in EVENT_BLOCKS.items():
        for block_number, names in blocks.items():
            group = ConflictGroup(division=division, block_number=block_number, name=f"Block {block_number}")
            session.add(group)
            for name in names:
                event = Event(
                    name=name,
                    slug=slugify(name),
                    division=division,
                    max_competitors=3 if name in THREE_COMPETITOR_EVENTS else 2,
                )
                session.add(event)
                group.events.append(ConflictGroupEvent(event=event))
                created += 1
        for name in UNBLOCKED_EVENTS.get(division, []):
            session.add(Event(name=name, slug=slugify(name), division=division, max_competitors=2))
            created += 1
    await session.commit()
    logger.info("Seeded %d events", created)
    return created
