"""Roster API: assign members to events within a subteam."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from teamy.models import Event, Membership, RosterAssignment, Subteam, User
from teamy.models.base import async_session_factory
from teamy.services.activity_log import log_activity
from teamy.services.conflicts import validate_roster_assignment
from teamy.services.rbac import require_admin, require_member
from teamy.utils import user_display_name
from web.api.utils import event_dict, membership_dict, subteam_dict
from web.auth import require_user

router = APIRouter(prefix="/api/roster", tags=["roster"])


class AssignmentCreate(BaseModel):
    subteam_id: int
    membership_id: int
    event_id: int


def _assignment_dict(a: RosterAssignment) -> dict:
    return {
        "id": a.id,
        "subteam_id": a.subteam_id,
        "membership_id": a.membership_id,
        "event_id": a.event_id,
        "membership": membership_dict(a.membership, with_subteam=False),
        "event": event_dict(a.event),
        "subteam": subteam_dict(a.subteam),
    }


async def _load_assignment(session, assignment_id: int) -> Optional[RosterAssignment]:
    result = await session.execute(
        select(RosterAssignment)
        .where(RosterAssignment.id == assignment_id)
        .options(
            selectinload(RosterAssignment.membership).selectinload(Membership.user),
            selectinload(RosterAssignment.event),
            selectinload(RosterAssignment.subteam),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@router.post("")
async def create_assignment(body: AssignmentCreate, user: User = Depends(require_user)):
    """Put a member on an event for a subteam (team admin only)."""
    async with async_session_factory() as session:
        subteam = await session.get(Subteam, body.subteam_id)
        if not subteam:
            raise HTTPException(404, "Subteam not found")
        await require_admin(session, user.id, subteam.team_id)
        error = await validate_roster_assignment(session, body.membership_id, body.subteam_id, body.event_id)
        if error:
            return JSONResponse(status_code=400, content={"error": error.message, "code": error.code})
        assignment = RosterAssignment(
            subteam_id=body.subteam_id, membership_id=body.membership_id, event_id=body.event_id
        )
        session.add(assignment)
        await session.commit()
        assignment = await _load_assignment(session, assignment.id)
        data = _assignment_dict(assignment)
    await log_activity(
        "ROSTER_ASSIGNED",
        f"{user_display_name(user)} assigned {data['membership']['user']['display_name']} "
        f"to {data['event']['name']} ({data['subteam']['name']})",
        user_id=user.id,
        metadata={"assignment_id": data["id"], "team_id": subteam.team_id},
    )
    return {"assignment": data}


@router.get("")
async def list_assignments(subteam_id: Optional[int] = None, user: User = Depends(require_user)):
    """Roster for one subteam (team members only)."""
    if subteam_id is None:
        raise HTTPException(400, "subteam_id is required")
    async with async_session_factory() as session:
        subteam = await session.get(Subteam, subteam_id)
        if not subteam:
            raise HTTPException(404, "Subteam not found")
        await require_member(session, user.id, subteam.team_id)
        result = await session.execute(
            select(RosterAssignment)
            .join(Event, Event.id == RosterAssignment.event_id)
            .where(RosterAssignment.subteam_id == subteam_id)
            .options(
                selectinload(RosterAssignment.membership).selectinload(Membership.user),
                selectinload(RosterAssignment.event),
                selectinload(RosterAssignment.subteam),
            )
            .order_by(Event.name, RosterAssignment.id)
            .execution_options(populate_existing=True)
        )
        return {"assignments": [_assignment_dict(a) for a in result.scalars().all()]}


@router.delete("/{assignment_id}")
async def delete_assignment(assignment_id: int, user: User = Depends(require_user)):
    async with async_session_factory() as session:
        assignment = await _load_assignment(session, assignment_id)
        if not assignment:
            raise HTTPException(404, "Assignment not found")
        await require_admin(session, user.id, assignment.subteam.team_id)
        await session.delete(assignment)
        await session.commit()
    return {"success": True}
