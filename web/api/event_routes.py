"""Event catalog and conflict blocks (read-only)."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from teamy.models import ConflictGroup, ConflictGroupEvent, Event, User
from teamy.models.base import async_session_factory
from web.api.utils import event_dict
from web.auth import require_user

router = APIRouter(prefix="/api", tags=["events"])


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    division: str
    max_competitors: int


@router.get("/events")
async def list_events(division: Optional[str] = None, user: User = Depends(require_user)):
    """All events, optionally for one division, by name."""
    async with async_session_factory() as session:
        query = select(Event).order_by(Event.name, Event.id)
        if division:
            query = query.where(Event.division == division)
        result = await session.execute(query)
        return {"events": [EventResponse.model_validate(e).model_dump() for e in result.scalars().all()]}


@router.get("/conflicts")
async def list_conflict_groups(division: Optional[str] = None, user: User = Depends(require_user)):
    """Conflict blocks for a division, by block number, each with its events."""
    if not division:
        raise HTTPException(400, "Division parameter required")
    async with async_session_factory() as session:
        result = await session.execute(
            select(ConflictGroup)
            .where(ConflictGroup.division == division)
            .options(selectinload(ConflictGroup.events).selectinload(ConflictGroupEvent.event))
            .order_by(ConflictGroup.block_number, ConflictGroup.id)
        )
        return {
            "conflict_groups": [
                {
                    "id": g.id,
                    "division": g.division,
                    "block_number": g.block_number,
                    "name": g.name,
                    "events": [event_dict(link.event) for link in sorted(g.events, key=lambda l: l.event.name)],
                }
                for g in result.scalars().all()
            ]
        }
