"""Team API: create/join teams, invite codes, subteams."""
from __future__ import annotations

import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from teamy.models import Membership, RosterAssignment, Subteam, Team, User
from teamy.models.base import async_session_factory
from teamy.models.membership import ROLE_ADMIN, ROLE_MEMBER
from teamy.services.activity_log import log_activity
from teamy.services.invite_codes import (
    create_invite_codes,
    decrypt_invite_code,
    encrypt_invite_code,
    generate_invite_code,
    hash_invite_code,
    verify_invite_code,
)
from teamy.services.rbac import get_user_membership, get_user_teams, require_admin, require_member
from teamy.utils import DIVISIONS, user_display_name
from web.api.utils import event_dict, membership_dict, subteam_dict, team_dict
from web.auth import require_user

router = APIRouter(prefix="/api/teams", tags=["teams"])

HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
BACKGROUND_TYPES = ("grid", "solid", "gradient")


def _check_name(v: Optional[str], limit: int) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not v or len(v) > limit:
        raise ValueError(f"Name must be 1-{limit} characters")
    return v


def _check_color(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not HEX_COLOR_RE.match(v):
        raise ValueError("Color must be #RRGGBB")
    return v


class TeamBackground(BaseModel):
    background_type: Optional[str] = None
    background_color: Optional[str] = None
    gradient_start_color: Optional[str] = None
    gradient_end_color: Optional[str] = None

    @field_validator("background_type")
    @classmethod
    def valid_type(cls, v):
        if v is not None and v not in BACKGROUND_TYPES:
            raise ValueError("background_type must be grid, solid or gradient")
        return v

    @field_validator("background_color", "gradient_start_color", "gradient_end_color")
    @classmethod
    def valid_color(cls, v):
        return _check_color(v)


class TeamCreate(TeamBackground):
    name: str
    division: str

    @field_validator("name")
    @classmethod
    def valid_name(cls, v):
        return _check_name(v, 100)

    @field_validator("division")
    @classmethod
    def valid_division(cls, v):
        if v not in DIVISIONS:
            raise ValueError("division must be B or C")
        return v


class TeamUpdate(TeamBackground):
    name: Optional[str] = None
    division: Optional[str] = None

    @field_validator("name")
    @classmethod
    def valid_name(cls, v):
        return _check_name(v, 100)

    @field_validator("division")
    @classmethod
    def valid_division(cls, v):
        if v is not None and v not in DIVISIONS:
            raise ValueError("division must be B or C")
        return v


class JoinRequest(BaseModel):
    code: str

    @field_validator("code")
    @classmethod
    def not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("code is required")
        return v


class RegenerateRequest(BaseModel):
    type: str  # admin | member

    @field_validator("type")
    @classmethod
    def valid_type(cls, v):
        if v not in ("admin", "member"):
            raise ValueError("type must be admin or member")
        return v


class SubteamCreate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def valid_name(cls, v):
        return _check_name(v, 100)


async def _get_team_or_404(session, team_id: int) -> Team:
    team = await session.get(Team, team_id)
    if not team:
        raise HTTPException(404, "Team not found")
    return team


async def _get_subteam_in_team(session, team_id: int, subteam_id: int) -> Subteam:
    subteam = await session.get(Subteam, subteam_id)
    if not subteam:
        raise HTTPException(404, "Subteam not found")
    if subteam.team_id != team_id:
        raise HTTPException(403, "Subteam does not belong to this team")
    return subteam


# --- Teams ---


@router.post("")
async def create_team(body: TeamCreate, user: User = Depends(require_user)):
    """Create a team. The creator becomes its first admin."""
    codes = create_invite_codes()
    async with async_session_factory() as session:
        team = Team(
            name=body.name,
            division=body.division,
            created_by_id=user.id,
            admin_invite_code_hash=codes["admin_hash"],
            member_invite_code_hash=codes["member_hash"],
            admin_invite_code_encrypted=codes["admin_encrypted"],
            member_invite_code_encrypted=codes["member_encrypted"],
            background_type=body.background_type or "grid",
            background_color=body.background_color,
            gradient_start_color=body.gradient_start_color,
            gradient_end_color=body.gradient_end_color,
        )
        session.add(team)
        await session.flush()
        session.add(Membership(user_id=user.id, team_id=team.id, role=ROLE_ADMIN, roles=[]))
        await session.commit()
        await session.refresh(team)
    await log_activity(
        "TEAM_CREATED",
        f'{user_display_name(user)} created team "{team.name}" (Division {team.division})',
        user_id=user.id,
        metadata={"team_id": team.id, "team_name": team.name, "division": team.division},
    )
    return {
        "team": team_dict(team),
        "invite_codes": {"admin": codes["admin_code"], "member": codes["member_code"]},
    }


@router.get("")
async def list_my_teams(user: User = Depends(require_user)):
    """Teams the caller belongs to, newest membership first."""
    async with async_session_factory() as session:
        memberships = await get_user_teams(session, user.id)
        return {
            "memberships": [
                {**membership_dict(m, with_user=False), "team": team_dict(m.team)} for m in memberships
            ]
        }


@router.post("/join")
async def join_team(body: JoinRequest, user: User = Depends(require_user)):
    """Join via invite code. Admin codes are checked before member codes."""
    async with async_session_factory() as session:
        result = await session.execute(select(Team).order_by(Team.id))
        matched: Optional[Team] = None
        role: Optional[str] = None
        for team in result.scalars().all():
            if verify_invite_code(body.code, team.admin_invite_code_hash):
                matched, role = team, ROLE_ADMIN
                break
            if verify_invite_code(body.code, team.member_invite_code_hash):
                matched, role = team, ROLE_MEMBER
                break
        if not matched:
            return JSONResponse(
                status_code=401,
                content={"error": "Invalid or expired invite code", "code": "INVALID_CODE"},
            )
        if await get_user_membership(session, user.id, matched.id):
            return JSONResponse(
                status_code=400,
                content={"error": "You are already a member of this team", "code": "ALREADY_MEMBER"},
            )
        membership = Membership(user_id=user.id, team_id=matched.id, role=role, roles=[])
        session.add(membership)
        await session.commit()
        await session.refresh(membership)
        team_data = team_dict(matched)
    await log_activity(
        "USER_JOINED_TEAM",
        f'{user_display_name(user)} joined team "{matched.name}" as {role}',
        user_id=user.id,
        metadata={"team_id": matched.id, "team_name": matched.name, "role": role, "membership_id": membership.id},
    )
    return {
        "membership": {**membership_dict(membership, with_user=False, with_subteam=False), "team": team_data},
        "message": f"Successfully joined team as {role.lower()}",
    }


@router.get("/{team_id}")
async def get_team(team_id: int, user: User = Depends(require_user)):
    """Team detail with members, their roster assignments and subteams (members only)."""
    async with async_session_factory() as session:
        await _get_team_or_404(session, team_id)
        await require_member(session, user.id, team_id)
        result = await session.execute(
            select(Team)
            .where(Team.id == team_id)
            .options(
                selectinload(Team.memberships).selectinload(Membership.user),
                selectinload(Team.memberships).selectinload(Membership.subteam),
                selectinload(Team.memberships)
                .selectinload(Membership.roster_assignments)
                .selectinload(RosterAssignment.event),
                selectinload(Team.subteams),
            )
            .execution_options(populate_existing=True)
        )
        team = result.scalar_one()
        memberships = []
        for m in sorted(team.memberships, key=lambda m: m.created_at):
            data = membership_dict(m)
            data["roster_assignments"] = [
                {"id": a.id, "subteam_id": a.subteam_id, "event": event_dict(a.event)}
                for a in m.roster_assignments
            ]
            memberships.append(data)
        return {
            "team": {
                **team_dict(team),
                "memberships": memberships,
                "subteams": [subteam_dict(s) for s in team.subteams],
            }
        }


@router.patch("/{team_id}")
async def update_team(team_id: int, body: TeamUpdate, user: User = Depends(require_user)):
    """Rename or restyle a team (admin only)."""
    async with async_session_factory() as session:
        team = await _get_team_or_404(session, team_id)
        await require_admin(session, user.id, team_id)
        for field, value in body.model_dump(exclude_unset=True).items():
            if field in ("name", "division", "background_type") and value is None:
                continue
            setattr(team, field, value)
        await session.commit()
        await session.refresh(team)
        return {"team": team_dict(team)}


@router.delete("/{team_id}")
async def delete_team(team_id: int, user: User = Depends(require_user)):
    """Delete a team and everything under it (admin only)."""
    async with async_session_factory() as session:
        team = await _get_team_or_404(session, team_id)
        await require_admin(session, user.id, team_id)
        name = team.name
        await session.delete(team)
        await session.commit()
    await log_activity(
        "TEAM_DELETED",
        f'{user_display_name(user)} deleted team "{name}"',
        user_id=user.id,
        metadata={"team_id": team_id, "team_name": name},
    )
    return {"success": True}


# --- Invite codes ---


@router.get("/{team_id}/invite/codes")
async def get_invite_codes(team_id: int, user: User = Depends(require_user)):
    """Show current invite codes (admin only)."""
    async with async_session_factory() as session:
        team = await _get_team_or_404(session, team_id)
        await require_admin(session, user.id, team_id)
        admin_code = decrypt_invite_code(team.admin_invite_code_encrypted)
        member_code = decrypt_invite_code(team.member_invite_code_encrypted)
    if admin_code is None or member_code is None:
        return {"needs_regeneration": True, "message": "Invite codes need to be regenerated"}
    return {"needs_regeneration": False, "admin_code": admin_code, "member_code": member_code}


@router.post("/{team_id}/invite/regenerate")
async def regenerate_invite_code(team_id: int, body: RegenerateRequest, user: User = Depends(require_user)):
    """Replace one invite code; the old one stops working immediately (admin only)."""
    code = generate_invite_code()
    async with async_session_factory() as session:
        team = await _get_team_or_404(session, team_id)
        await require_admin(session, user.id, team_id)
        if body.type == "admin":
            team.admin_invite_code_hash = hash_invite_code(code)
            team.admin_invite_code_encrypted = encrypt_invite_code(code)
        else:
            team.member_invite_code_hash = hash_invite_code(code)
            team.member_invite_code_encrypted = encrypt_invite_code(code)
        await session.commit()
    await log_activity(
        "INVITE_CODE_REGENERATED",
        f"{user_display_name(user)} regenerated the {body.type} invite code",
        user_id=user.id,
        metadata={"team_id": team_id, "type": body.type},
    )
    return {"type": body.type, "code": code}


# --- Subteams ---


@router.post("/{team_id}/subteams")
async def create_subteam(team_id: int, body: SubteamCreate, user: User = Depends(require_user)):
    async with async_session_factory() as session:
        await _get_team_or_404(session, team_id)
        await require_admin(session, user.id, team_id)
        subteam = Subteam(team_id=team_id, name=body.name)
        session.add(subteam)
        await session.commit()
        await session.refresh(subteam)
        return {"subteam": subteam_dict(subteam)}


@router.get("/{team_id}/subteams")
async def list_subteams(team_id: int, user: User = Depends(require_user)):
    """Subteams with their members, oldest first (members only)."""
    async with async_session_factory() as session:
        await _get_team_or_404(session, team_id)
        await require_member(session, user.id, team_id)
        result = await session.execute(
            select(Subteam)
            .where(Subteam.team_id == team_id)
            .options(selectinload(Subteam.members).selectinload(Membership.user))
            .order_by(Subteam.created_at, Subteam.id)
            .execution_options(populate_existing=True)
        )
        subteams = []
        for s in result.scalars().all():
            members = [membership_dict(m, with_subteam=False) for m in s.members]
            subteams.append({**subteam_dict(s), "members": members, "member_count": len(members)})
        return {"subteams": subteams}


@router.patch("/{team_id}/subteams/{subteam_id}")
async def rename_subteam(team_id: int, subteam_id: int, body: SubteamCreate, user: User = Depends(require_user)):
    async with async_session_factory() as session:
        await require_admin(session, user.id, team_id)
        subteam = await _get_subteam_in_team(session, team_id, subteam_id)
        subteam.name = body.name
        await session.commit()
        await session.refresh(subteam)
        return {"subteam": subteam_dict(subteam)}


@router.delete("/{team_id}/subteams/{subteam_id}")
async def delete_subteam(team_id: int, subteam_id: int, user: User = Depends(require_user)):
    """Delete a subteam. Its members stay on the team, unassigned."""
    async with async_session_factory() as session:
        await require_admin(session, user.id, team_id)
        subteam = await _get_subteam_in_team(session, team_id, subteam_id)
        await session.delete(subteam)
        await session.commit()
    return {"success": True}
