"""Tournament hosting requests: public submission, staff review."""
from __future__ import annotations

import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import or_, select

from teamy.models import TournamentHostingRequest, User
from teamy.models.base import async_session_factory
from teamy.models.tournament import HOSTING_STATUSES, TOURNAMENT_FORMATS
from teamy.services.activity_log import log_activity
from teamy.services.email import send_hosting_request_confirmation
from teamy.utils import TOURNAMENT_DIVISIONS, user_display_name
from web.api.utils import iso
from web.auth import require_staff_user

router = APIRouter(prefix="/api/tournament-requests", tags=["hosting"])

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class HostingRequestCreate(BaseModel):
    tournament_name: Optional[str] = None
    tournament_level: Optional[str] = None
    division: Optional[str] = None
    tournament_format: Optional[str] = None
    location: Optional[str] = None
    preferred_slug: Optional[str] = None
    director_name: Optional[str] = None
    director_email: Optional[str] = None
    director_phone: Optional[str] = None
    other_notes: Optional[str] = None


class HostingRequestReview(BaseModel):
    status: Optional[str] = None
    review_notes: Optional[str] = None


def hosting_request_dict(r: TournamentHostingRequest) -> dict:
    return {
        "id": r.id,
        "tournament_name": r.tournament_name,
        "tournament_level": r.tournament_level,
        "division": r.division,
        "tournament_format": r.tournament_format,
        "location": r.location,
        "preferred_slug": r.preferred_slug,
        "director_name": r.director_name,
        "director_email": r.director_email,
        "director_phone": r.director_phone,
        "other_notes": r.other_notes,
        "status": r.status,
        "review_notes": r.review_notes,
        "created_at": iso(r.created_at),
    }


@router.post("")
async def submit_hosting_request(body: HostingRequestCreate):
    """File a request to host a tournament. Public; sends the director a confirmation email."""
    required = (
        body.tournament_name,
        body.tournament_level,
        body.division,
        body.tournament_format,
        body.director_name,
        body.director_email,
    )
    if not all(v and v.strip() for v in required):
        raise HTTPException(400, "Missing required fields")
    if not EMAIL_RE.match(body.director_email.strip()):
        raise HTTPException(400, "Invalid email format")
    if body.tournament_format not in TOURNAMENT_FORMATS:
        raise HTTPException(400, "Invalid tournament format")
    if body.division not in TOURNAMENT_DIVISIONS:
        raise HTTPException(400, "Invalid division")

    async with async_session_factory() as session:
        request = TournamentHostingRequest(
            tournament_name=body.tournament_name.strip(),
            tournament_level=body.tournament_level.strip().lower(),
            division=body.division,
            tournament_format=body.tournament_format,
            location=body.location or None,
            preferred_slug=body.preferred_slug or None,
            director_name=body.director_name.strip(),
            director_email=body.director_email.strip(),
            director_phone=body.director_phone or None,
            other_notes=body.other_notes or None,
            status="PENDING",
        )
        session.add(request)
        await session.commit()
        await session.refresh(request)

    await send_hosting_request_confirmation(request)
    await log_activity(
        "HOSTING_REQUEST_SUBMITTED",
        f'{request.director_name} requested to host "{request.tournament_name}"',
        log_type="SYSTEM_EVENT",
        metadata={"request_id": request.id},
    )
    return {"success": True, "request_id": request.id}


@router.get("")
async def list_hosting_requests(
    status: Optional[str] = None,
    search: Optional[str] = None,
    staff: User = Depends(require_staff_user),
):
    """All hosting requests, newest first (staff only)."""
    query = select(TournamentHostingRequest).order_by(
        TournamentHostingRequest.created_at.desc(), TournamentHostingRequest.id.desc()
    )
    if status and status.lower() != "all":
        query = query.where(TournamentHostingRequest.status == status.upper())
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                TournamentHostingRequest.tournament_name.ilike(pattern),
                TournamentHostingRequest.director_name.ilike(pattern),
                TournamentHostingRequest.director_email.ilike(pattern),
            )
        )
    async with async_session_factory() as session:
        result = await session.execute(query)
        return {"requests": [hosting_request_dict(r) for r in result.scalars().all()]}


@router.patch("/{request_id}")
async def review_hosting_request(
    request_id: int, body: HostingRequestReview, staff: User = Depends(require_staff_user)
):
    """Approve, reject or reset a request (staff only)."""
    if body.status not in HOSTING_STATUSES:
        raise HTTPException(400, "Invalid status")
    async with async_session_factory() as session:
        request = await session.get(TournamentHostingRequest, request_id)
        if not request:
            raise HTTPException(404, "Request not found")
        request.status = body.status
        request.review_notes = body.review_notes or None
        await session.commit()
        await session.refresh(request)
    await log_activity(
        "HOSTING_REQUEST_REVIEWED",
        f'{user_display_name(staff)} marked hosting request "{request.tournament_name}" {body.status}',
        user_id=staff.id,
        log_type="ADMIN_ACTION",
        metadata={"request_id": request_id, "status": body.status},
    )
    return {"success": True, "request": hosting_request_dict(request)}


@router.delete("/{request_id}")
async def delete_hosting_request(request_id: int, staff: User = Depends(require_staff_user)):
    async with async_session_factory() as session:
        request = await session.get(TournamentHostingRequest, request_id)
        if not request:
            raise HTTPException(404, "Request not found")
        await session.delete(request)
        await session.commit()
    return {"success": True}
