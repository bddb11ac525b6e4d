"""Membership API: list members, assign subteams and labels, remove members."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

import config
from teamy.models import Membership, Subteam, User
from teamy.models.base import async_session_factory
from teamy.models.membership import MEMBER_LABELS, ROLE_ADMIN, TEAM_ROLES
from teamy.services.activity_log import log_activity
from teamy.services.rbac import get_user_membership, require_admin, require_member
from teamy.utils import user_display_name
from web.api.utils import membership_dict
from web.auth import require_user

router = APIRouter(prefix="/api/memberships", tags=["memberships"])


class MembershipUpdate(BaseModel):
    subteam_id: Optional[int] = None
    roles: Optional[list[str]] = None
    role: Optional[str] = None

    @field_validator("roles")
    @classmethod
    def valid_labels(cls, v):
        if v is None:
            return v
        bad = [r for r in v if r not in MEMBER_LABELS]
        if bad:
            raise ValueError(f"roles may only contain {', '.join(MEMBER_LABELS)}")
        return list(dict.fromkeys(v))

    @field_validator("role")
    @classmethod
    def valid_role(cls, v):
        if v is not None and v not in TEAM_ROLES:
            raise ValueError("role must be ADMIN or MEMBER")
        return v


async def _count_admins(session, team_id: int) -> int:
    return await session.scalar(
        select(func.count(Membership.id)).where(Membership.team_id == team_id, Membership.role == ROLE_ADMIN)
    ) or 0


@router.get("")
async def list_memberships(team_id: Optional[int] = None, user: User = Depends(require_user)):
    """Members of a team (members only)."""
    if team_id is None:
        raise HTTPException(400, "team_id is required")
    async with async_session_factory() as session:
        await require_member(session, user.id, team_id)
        result = await session.execute(
            select(Membership)
            .where(Membership.team_id == team_id)
            .options(selectinload(Membership.user), selectinload(Membership.subteam))
            .order_by(Membership.created_at, Membership.id)
            .execution_options(populate_existing=True)
        )
        return {"memberships": [membership_dict(m) for m in result.scalars().all()]}


@router.patch("/{membership_id}")
async def update_membership(membership_id: int, body: MembershipUpdate, user: User = Depends(require_user)):
    """Move a member between subteams, set COACH/CAPTAIN labels or change access role (admin only)."""
    fields = body.model_fields_set
    async with async_session_factory() as session:
        membership = await session.get(Membership, membership_id)
        if not membership:
            raise HTTPException(404, "Membership not found")
        await require_admin(session, user.id, membership.team_id)

        if not fields:
            raise HTTPException(400, "No updates provided")

        if "subteam_id" in fields and body.subteam_id is not None:
            subteam = await session.get(Subteam, body.subteam_id)
            if not subteam or subteam.team_id != membership.team_id:
                raise HTTPException(400, "Invalid subteam")
            count = await session.scalar(
                select(func.count(Membership.id)).where(
                    Membership.subteam_id == body.subteam_id,
                    Membership.id != membership.id,
                )
            )
            if (count or 0) >= config.SUBTEAM_MAX_MEMBERS:
                raise HTTPException(
                    400, f"Subteam is full (maximum {config.SUBTEAM_MAX_MEMBERS} members per subteam)"
                )

        if "role" in fields and body.role is not None and body.role != membership.role:
            if membership.role == ROLE_ADMIN and await _count_admins(session, membership.team_id) <= 1:
                raise HTTPException(400, "Cannot demote the only admin. Promote another member first.")
            membership.role = body.role
        if "subteam_id" in fields:
            membership.subteam_id = body.subteam_id
        if "roles" in fields and body.roles is not None:
            membership.roles = body.roles

        await session.commit()
        result = await session.execute(
            select(Membership)
            .where(Membership.id == membership_id)
            .options(selectinload(Membership.user), selectinload(Membership.subteam))
            .execution_options(populate_existing=True)
        )
        return {"membership": membership_dict(result.scalar_one())}


@router.delete("/{membership_id}")
async def delete_membership(membership_id: int, user: User = Depends(require_user)):
    """Admins remove anyone; members may remove themselves. The last admin cannot leave."""
    async with async_session_factory() as session:
        result = await session.execute(
            select(Membership)
            .where(Membership.id == membership_id)
            .options(selectinload(Membership.user), selectinload(Membership.team))
        )
        membership = result.scalar_one_or_none()
        if not membership:
            raise HTTPException(404, "Membership not found")
        requester = await get_user_membership(session, user.id, membership.team_id)
        if not requester:
            raise HTTPException(403, "You are not a member of this team")
        is_self = membership.user_id == user.id
        if requester.role != ROLE_ADMIN and not is_self:
            raise HTTPException(403, "Only admins can remove other members")
        if membership.role == ROLE_ADMIN and await _count_admins(session, membership.team_id) <= 1:
            raise HTTPException(
                400,
                "Cannot remove the only admin. Please promote another member to admin first or delete the team.",
            )
        team_id = membership.team_id
        team_name = membership.team.name
        removed_name = user_display_name(membership.user)
        await session.delete(membership)
        await session.commit()
    await log_activity(
        "MEMBER_LEFT_TEAM" if is_self else "MEMBER_REMOVED",
        f'{removed_name} left team "{team_name}"' if is_self
        else f'{user_display_name(user)} removed {removed_name} from team "{team_name}"',
        user_id=user.id,
        metadata={"team_id": team_id, "membership_id": membership_id},
    )
    return {"success": True}
