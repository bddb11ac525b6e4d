"""Team role checks. Write operations go through require_admin / require_member."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from teamy.models import Membership, TournamentAdmin
from teamy.models.membership import ROLE_ADMIN


class AuthorizationError(Exception):
    """Raised when the caller lacks the team role an operation needs. Rendered as 403."""

    def __init__(self, message: str = "UNAUTHORIZED"):
        if not message.startswith("UNAUTHORIZED"):
            message = f"UNAUTHORIZED: {message}"
        super().__init__(message)
        self.message = message


async def get_user_membership(session: AsyncSession, user_id: int, team_id: int) -> Optional[Membership]:
    result = await session.execute(
        select(Membership)
        .where(Membership.user_id == user_id, Membership.team_id == team_id)
        .options(selectinload(Membership.team), selectinload(Membership.subteam))
    )
    return result.scalar_one_or_none()


async def is_admin(session: AsyncSession, user_id: int, team_id: int) -> bool:
    membership = await get_user_membership(session, user_id, team_id)
    return membership is not None and membership.role == ROLE_ADMIN


async def is_member(session: AsyncSession, user_id: int, team_id: int) -> bool:
    return await get_user_membership(session, user_id, team_id) is not None


async def require_admin(session: AsyncSession, user_id: int, team_id: int) -> Membership:
    """Return the caller's membership or raise AuthorizationError if they are not a team admin."""
    membership = await get_user_membership(session, user_id, team_id)
    if membership is None or membership.role != ROLE_ADMIN:
        raise AuthorizationError("UNAUTHORIZED: Admin role required")
    return membership


async def require_member(session: AsyncSession, user_id: int, team_id: int) -> Membership:
    membership = await get_user_membership(session, user_id, team_id)
    if membership is None:
        raise AuthorizationError("UNAUTHORIZED: Team membership required")
    return membership


async def get_user_teams(session: AsyncSession, user_id: int) -> list[Membership]:
    """All memberships of a user with team and subteam loaded, newest first."""
    result = await session.execute(
        select(Membership)
        .where(Membership.user_id == user_id)
        .options(selectinload(Membership.team), selectinload(Membership.subteam))
        .order_by(Membership.created_at.desc(), Membership.id.desc())
    )
    return list(result.scalars().all())


async def is_tournament_admin(session: AsyncSession, user_id: int, tournament_id: int) -> bool:
    result = await session.execute(
        select(TournamentAdmin.id).where(
            TournamentAdmin.user_id == user_id,
            TournamentAdmin.tournament_id == tournament_id,
        )
    )
    return result.first() is not None
