"""Roster validation: event capacity and conflict-block checks."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from teamy.models import ConflictGroup, Event, Membership, RosterAssignment


@dataclass
class RosterValidationError:
    code: str
    message: str


async def build_conflict_map(session: AsyncSession, division: str) -> dict[int, set[int]]:
    """Map event_id -> ids of every other event sharing a conflict group in this division.

    Built fresh on every call so edits to conflict groups are seen immediately.
    """
    result = await session.execute(
        select(ConflictGroup)
        .where(ConflictGroup.division == division)
        .options(selectinload(ConflictGroup.events))
    )
    conflict_map: dict[int, set[int]] = {}
    for group in result.scalars().all():
        event_ids = [link.event_id for link in group.events]
        for event_id in event_ids:
            others = conflict_map.setdefault(event_id, set())
            others.update(e for e in event_ids if e != event_id)
    return conflict_map


def get_conflicting_events(conflict_map: dict[int, set[int]], event_id: int) -> list[int]:
    return sorted(conflict_map.get(event_id, ()))


async def check_conflicts(
    session: AsyncSession, membership_id: int, subteam_id: int, event_id: int
) -> tuple[bool, list[str]]:
    """Return (has_conflict, names of already-assigned events in the same block)."""
    event = await session.get(Event, event_id)
    if event is None:
        raise ValueError("Event not found")
    conflict_map = await build_conflict_map(session, event.division)
    conflicting_ids = get_conflicting_events(conflict_map, event_id)
    if not conflicting_ids:
        return False, []
    result = await session.execute(
        select(Event.name)
        .join(RosterAssignment, RosterAssignment.event_id == Event.id)
        .where(
            RosterAssignment.membership_id == membership_id,
            RosterAssignment.subteam_id == subteam_id,
            RosterAssignment.event_id.in_(conflicting_ids),
        )
        .order_by(Event.name)
    )
    names = [row[0] for row in result.all()]
    return bool(names), names


async def check_capacity(session: AsyncSession, subteam_id: int, event_id: int) -> tuple[bool, int, int]:
    """Return (at_capacity, current_count, max_competitors)."""
    event = await session.get(Event, event_id)
    if event is None:
        raise ValueError("Event not found")
    current = await session.scalar(
        select(func.count(RosterAssignment.id)).where(
            RosterAssignment.subteam_id == subteam_id,
            RosterAssignment.event_id == event_id,
        )
    )
    current = current or 0
    return current >= event.max_competitors, current, event.max_competitors


async def validate_roster_assignment(
    session: AsyncSession, membership_id: int, subteam_id: int, event_id: int
) -> Optional[RosterValidationError]:
    """Return None if the assignment may be created, else the first failing check."""
    existing = await session.execute(
        select(RosterAssignment.id).where(
            RosterAssignment.membership_id == membership_id,
            RosterAssignment.event_id == event_id,
        )
    )
    if existing.first() is not None:
        return RosterValidationError("ALREADY_ASSIGNED", "Member is already assigned to this event")

    event = await session.get(Event, event_id)
    if event is None:
        return RosterValidationError("EVENT_NOT_FOUND", "Event not found")

    at_capacity, _, max_count = await check_capacity(session, subteam_id, event_id)
    if at_capacity:
        return RosterValidationError("EVENT_AT_CAP", f"Event is at capacity ({max_count} competitors)")

    has_conflict, names = await check_conflicts(session, membership_id, subteam_id, event_id)
    if has_conflict:
        return RosterValidationError("CONFLICT_BLOCK", f"Conflicts with: {', '.join(names)}")

    result = await session.execute(
        select(Membership).where(Membership.id == membership_id).options(selectinload(Membership.team))
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        return RosterValidationError("MEMBERSHIP_NOT_FOUND", "Membership not found")

    if membership.subteam_id != subteam_id:
        return RosterValidationError("INVALID_TEAM", "Member does not belong to this team")

    if event.division != membership.team.division:
        return RosterValidationError(
            "DIVISION_MISMATCH",
            f"Event is for Division {event.division}, but team is Division {membership.team.division}",
        )
    return None
