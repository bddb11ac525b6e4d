"""Tournament API: listing, creation, team registration."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from teamy.models import (
    Event,
    Subteam,
    Team,
    Tournament,
    TournamentAdmin,
    TournamentEventSelection,
    TournamentRegistration,
    User,
)
from teamy.models.base import async_session_factory
from teamy.models.membership import ROLE_ADMIN
from teamy.services.activity_log import log_activity
from teamy.services.rbac import get_user_membership, is_tournament_admin
from teamy.utils import TOURNAMENT_DIVISIONS, divisions_match, to_naive_utc, user_display_name, utcnow
from web.api.utils import event_dict, iso, user_summary
from web.auth import get_current_user, require_user

router = APIRouter(prefix="/api/tournaments", tags=["tournaments"])

SORT_OPTIONS = ("date-asc", "date-desc", "price-asc", "price-desc", "popularity-asc", "popularity-desc")
PUBLIC_LIMIT = 50


class TournamentCreate(BaseModel):
    name: str
    division: str
    description: Optional[str] = None
    price: float = Field(0.0, ge=0)
    start_date: datetime
    end_date: datetime
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    slug: Optional[str] = None

    @field_validator("name")
    @classmethod
    def valid_name(cls, v):
        v = v.strip()
        if not v or len(v) > 200:
            raise ValueError("Name must be 1-200 characters")
        return v

    @field_validator("division")
    @classmethod
    def valid_division(cls, v):
        if v not in TOURNAMENT_DIVISIONS:
            raise ValueError("division must be B, C or B&C")
        return v

    @field_validator("start_date", "end_date", "start_time", "end_time")
    @classmethod
    def naive_utc(cls, v):
        return to_naive_utc(v)

    @field_validator("slug")
    @classmethod
    def clean_slug(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        return v or None


class RegistrationEntry(BaseModel):
    team_id: int
    subteam_id: Optional[int] = None
    event_ids: list[int] = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    registrations: list[RegistrationEntry] = Field(..., min_length=1)


class RegistrationUpdate(BaseModel):
    paid: bool


def tournament_dict(t: Tournament) -> dict:
    return {
        "id": t.id,
        "name": t.name,
        "slug": t.slug,
        "division": t.division,
        "description": t.description,
        "price": t.price,
        "start_date": iso(t.start_date),
        "end_date": iso(t.end_date),
        "start_time": iso(t.start_time),
        "end_time": iso(t.end_time),
        "location": t.location,
        "approved": t.approved,
        "created_by_id": t.created_by_id,
        "created_at": iso(t.created_at),
    }


def registration_dict(r: TournamentRegistration) -> dict:
    """Caller loads team, subteam and event selections."""
    return {
        "id": r.id,
        "tournament_id": r.tournament_id,
        "team": {"id": r.team.id, "name": r.team.name, "division": r.team.division},
        "subteam": {"id": r.subteam.id, "name": r.subteam.name} if r.subteam else None,
        "registered_by_id": r.registered_by_id,
        "status": r.status,
        "paid": r.paid,
        "created_at": iso(r.created_at),
        "event_selections": [{"id": s.id, "event": event_dict(s.event)} for s in r.event_selections],
    }


def _registration_options():
    return (
        selectinload(TournamentRegistration.team),
        selectinload(TournamentRegistration.subteam),
        selectinload(TournamentRegistration.event_selections).selectinload(TournamentEventSelection.event),
    )


@router.post("")
async def create_tournament(body: TournamentCreate, user: User = Depends(require_user)):
    """Create a tournament; the creator becomes a tournament admin. Listed publicly once approved."""
    if body.end_date < body.start_date or body.end_time < body.start_time:
        raise HTTPException(400, "End must not be before start")
    async with async_session_factory() as session:
        if body.slug:
            taken = await session.execute(select(Tournament.id).where(Tournament.slug == body.slug))
            if taken.first() is not None:
                raise HTTPException(400, "Slug is already in use")
        tournament = Tournament(**body.model_dump(), created_by_id=user.id)
        session.add(tournament)
        await session.flush()
        session.add(TournamentAdmin(tournament_id=tournament.id, user_id=user.id))
        await session.commit()
        await session.refresh(tournament)
    await log_activity(
        "TOURNAMENT_CREATED",
        f'{user_display_name(user)} created tournament "{tournament.name}"',
        user_id=user.id,
        metadata={"tournament_id": tournament.id},
    )
    return {"tournament": tournament_dict(tournament)}


@router.get("")
async def list_tournaments(
    division: Optional[str] = None,
    search: Optional[str] = None,
    upcoming: Optional[str] = None,
    created_by: Optional[str] = None,
    sort_by: str = "date-asc",
    user: User = Depends(require_user),
):
    """List tournaments with per-caller is_creator / is_admin flags."""
    if sort_by not in SORT_OPTIONS:
        sort_by = "date-asc"
    query = select(Tournament).options(selectinload(Tournament.registrations))
    if division:
        query = query.where(Tournament.division == division)
    if search:
        query = query.where(Tournament.name.ilike(f"%{search}%"))
    if upcoming == "true":
        query = query.where(Tournament.start_time > utcnow())
    if created_by:
        if created_by == "me":
            query = query.where(Tournament.created_by_id == user.id)
        elif created_by.isdigit():
            query = query.where(Tournament.created_by_id == int(created_by))
        else:
            raise HTTPException(400, "created_by must be 'me' or a user id")
    if sort_by == "date-desc":
        query = query.order_by(Tournament.start_date.desc(), Tournament.id.desc())
    elif sort_by == "price-asc":
        query = query.order_by(Tournament.price, Tournament.id)
    elif sort_by == "price-desc":
        query = query.order_by(Tournament.price.desc(), Tournament.id)
    else:
        query = query.order_by(Tournament.start_date, Tournament.id)

    async with async_session_factory() as session:
        result = await session.execute(query)
        tournaments = list(result.scalars().all())
        admin_rows = await session.execute(
            select(TournamentAdmin.tournament_id).where(TournamentAdmin.user_id == user.id)
        )
        admin_of = {row[0] for row in admin_rows.all()}

    rows = []
    for t in tournaments:
        is_creator = t.created_by_id == user.id
        rows.append(
            {
                **tournament_dict(t),
                "is_creator": is_creator,
                "is_admin": is_creator or t.id in admin_of,
                "registration_count": len(t.registrations),
            }
        )
    if sort_by == "popularity-desc":
        rows.sort(key=lambda r: r["registration_count"], reverse=True)
    elif sort_by == "popularity-asc":
        rows.sort(key=lambda r: r["registration_count"])
    return {"tournaments": rows}


@router.get("/public")
async def list_public_tournaments(division: Optional[str] = None):
    """Approved tournaments that have not started yet. No auth."""
    query = select(Tournament).where(Tournament.approved.is_(True), Tournament.start_time > utcnow())
    if division:
        query = query.where(Tournament.division == division)
    query = query.options(selectinload(Tournament.created_by)).order_by(Tournament.start_date, Tournament.id).limit(PUBLIC_LIMIT)
    async with async_session_factory() as session:
        result = await session.execute(query)
        return {
            "tournaments": [
                {**tournament_dict(t), "created_by": user_summary(t.created_by)} for t in result.scalars().all()
            ]
        }


@router.get("/{tournament_id}")
async def get_tournament(tournament_id: int, user: Optional[User] = Depends(get_current_user)):
    """Tournament detail with registrations and their event selections."""
    async with async_session_factory() as session:
        result = await session.execute(
            select(Tournament)
            .where(Tournament.id == tournament_id)
            .options(
                selectinload(Tournament.created_by),
                selectinload(Tournament.registrations).selectinload(TournamentRegistration.team),
                selectinload(Tournament.registrations).selectinload(TournamentRegistration.subteam),
                selectinload(Tournament.registrations)
                .selectinload(TournamentRegistration.event_selections)
                .selectinload(TournamentEventSelection.event),
            )
        )
        tournament = result.scalar_one_or_none()
        if not tournament:
            raise HTTPException(404, "Tournament not found")
        admin = bool(user) and (
            tournament.created_by_id == user.id or await is_tournament_admin(session, user.id, tournament_id)
        )
        registrations = sorted(tournament.registrations, key=lambda r: r.created_at)
        return {
            "tournament": {
                **tournament_dict(tournament),
                "created_by": user_summary(tournament.created_by),
                "registrations": [registration_dict(r) for r in registrations],
            },
            "is_admin": admin,
        }


@router.post("/{tournament_id}/register")
async def register_for_tournament(tournament_id: int, body: RegisterRequest, user: User = Depends(require_user)):
    """Register one or more teams (or subteams) with their event picks. Caller must be a team admin."""
    async with async_session_factory() as session:
        tournament = await session.get(Tournament, tournament_id)
        if not tournament:
            raise HTTPException(404, "Tournament not found")

        seen = set()
        for reg in body.registrations:
            membership = await get_user_membership(session, user.id, reg.team_id)
            if not membership:
                raise HTTPException(403, "You must be a member of this team")
            if membership.role != ROLE_ADMIN:
                raise HTTPException(403, f"You must be an admin of {membership.team.name} to register for tournaments")
            team = membership.team
            subteam = None
            if reg.subteam_id is not None:
                subteam = await session.get(Subteam, reg.subteam_id)
                if not subteam or subteam.team_id != reg.team_id:
                    raise HTTPException(400, "Subteam does not belong to the specified team")
            if not divisions_match(tournament.division, team.division):
                raise HTTPException(
                    400, f"{team.name} is Division {team.division} but this tournament is Division {tournament.division}"
                )
            existing = await session.execute(
                select(TournamentRegistration.id).where(
                    TournamentRegistration.tournament_id == tournament_id,
                    TournamentRegistration.team_id == reg.team_id,
                    TournamentRegistration.subteam_id.is_(None)
                    if reg.subteam_id is None
                    else TournamentRegistration.subteam_id == reg.subteam_id,
                )
            )
            if existing.first() is not None:
                label = f"{team.name} - {subteam.name}" if subteam else team.name
                raise HTTPException(400, f"{label} is already registered for this tournament")
            if (reg.team_id, reg.subteam_id) in seen:
                label = f"{team.name} - {subteam.name}" if subteam else team.name
                raise HTTPException(400, f"{label} is listed more than once in this registration")
            seen.add((reg.team_id, reg.subteam_id))
            event_ids = set(reg.event_ids)
            events = await session.execute(
                select(Event.id).where(Event.id.in_(event_ids), Event.division == team.division)
            )
            if len(events.all()) != len(event_ids):
                raise HTTPException(400, "Some events are invalid or do not match tournament division")

        created_ids = []
        for reg in body.registrations:
            registration = TournamentRegistration(
                tournament_id=tournament_id,
                team_id=reg.team_id,
                subteam_id=reg.subteam_id,
                registered_by_id=user.id,
                status="CONFIRMED",
            )
            registration.event_selections = [
                TournamentEventSelection(event_id=eid) for eid in dict.fromkeys(reg.event_ids)
            ]
            session.add(registration)
            await session.flush()
            created_ids.append(registration.id)
        await session.commit()

        result = await session.execute(
            select(TournamentRegistration)
            .where(TournamentRegistration.id.in_(created_ids))
            .options(*_registration_options())
            .order_by(TournamentRegistration.id)
            .execution_options(populate_existing=True)
        )
        registrations = [registration_dict(r) for r in result.scalars().all()]
        tournament_name = tournament.name

    await log_activity(
        "TOURNAMENT_REGISTERED",
        f'{user_display_name(user)} registered {len(registrations)} team(s) for "{tournament_name}"',
        user_id=user.id,
        metadata={"tournament_id": tournament_id, "registration_ids": created_ids},
    )
    return {"registrations": registrations}


async def _get_registration_in_tournament(session, tournament_id: int, registration_id: int) -> TournamentRegistration:
    result = await session.execute(
        select(TournamentRegistration)
        .where(TournamentRegistration.id == registration_id)
        .options(*_registration_options())
    )
    registration = result.scalar_one_or_none()
    if not registration:
        raise HTTPException(404, "Registration not found")
    if registration.tournament_id != tournament_id:
        raise HTTPException(400, "Registration does not belong to this tournament")
    return registration


@router.delete("/{tournament_id}/register/{registration_id}")
@router.delete("/{tournament_id}/roster/{registration_id}")
async def deregister(tournament_id: int, registration_id: int, user: User = Depends(require_user)):
    """Withdraw a registration (team admin only)."""
    async with async_session_factory() as session:
        registration = await _get_registration_in_tournament(session, tournament_id, registration_id)
        membership = await get_user_membership(session, user.id, registration.team_id)
        if not membership:
            raise HTTPException(403, "You must be a member of this team")
        if membership.role != ROLE_ADMIN:
            raise HTTPException(
                403, f"You must be an admin of {registration.team.name} to deregister from tournaments"
            )
        team_name = registration.team.name
        await session.delete(registration)
        await session.commit()
    await log_activity(
        "TOURNAMENT_DEREGISTERED",
        f"{user_display_name(user)} withdrew {team_name} from tournament {tournament_id}",
        user_id=user.id,
        metadata={"tournament_id": tournament_id, "registration_id": registration_id},
    )
    return {"success": True}


@router.patch("/{tournament_id}/register/{registration_id}")
async def update_registration(
    tournament_id: int, registration_id: int, body: RegistrationUpdate, user: User = Depends(require_user)
):
    """Mark a registration paid or unpaid (tournament admin only)."""
    async with async_session_factory() as session:
        if not await is_tournament_admin(session, user.id, tournament_id):
            raise HTTPException(403, "Tournament admin access required")
        registration = await _get_registration_in_tournament(session, tournament_id, registration_id)
        registration.paid = body.paid
        await session.commit()
        return {"registration": registration_dict(registration)}
