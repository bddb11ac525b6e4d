"""Membership model - user belongs to a team with a role."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teamy.models.base import Base
from teamy.utils import utcnow

ROLE_ADMIN = "ADMIN"
ROLE_MEMBER = "MEMBER"
TEAM_ROLES = (ROLE_ADMIN, ROLE_MEMBER)

# Display labels on top of the access role
MEMBER_LABELS = ("COACH", "CAPTAIN")


class Membership(Base):
    """One row per (user, team). role gates writes; roles are display labels."""

    __tablename__ = "memberships"
    __table_args__ = (UniqueConstraint("user_id", "team_id", name="uq_membership_user_team"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    subteam_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("subteams.id", ondelete="SET NULL"), nullable=True
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_MEMBER)  # ADMIN, MEMBER
    roles: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # COACH, CAPTAIN
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    user: Mapped["User"] = relationship("User", back_populates="memberships")
    team: Mapped["Team"] = relationship("Team", back_populates="memberships")
    subteam: Mapped[Optional["Subteam"]] = relationship("Subteam", back_populates="members")
    roster_assignments = relationship(
        "RosterAssignment", back_populates="membership", cascade="all, delete-orphan"
    )
    test_attempts = relationship(
        "TestAttempt", back_populates="membership", cascade="all, delete-orphan"
    )
