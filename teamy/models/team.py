"""Team and subteam models."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teamy.models.base import Base
from teamy.utils import utcnow


class Team(Base):
    """A Science Olympiad team (club) in division B or C."""

    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    division: Mapped[str] = mapped_column(String(4), nullable=False)  # B, C
    created_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    # Invite codes: bcrypt hash for joining, Fernet token so admins can re-display them
    admin_invite_code_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    member_invite_code_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    admin_invite_code_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    member_invite_code_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    background_type: Mapped[str] = mapped_column(String(16), default="grid")  # grid, solid, gradient
    background_color: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)
    gradient_start_color: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)
    gradient_end_color: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    memberships = relationship(
        "Membership", back_populates="team", cascade="all, delete-orphan"
    )
    subteams = relationship(
        "Subteam", back_populates="team", cascade="all, delete-orphan", order_by="Subteam.created_at"
    )
    registrations = relationship(
        "TournamentRegistration", back_populates="team", cascade="all, delete-orphan"
    )
    tests = relationship(
        "Test", back_populates="team", cascade="all, delete-orphan"
    )


class Subteam(Base):
    """Competition squad inside a team (e.g. "Team A")."""

    __tablename__ = "subteams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    team: Mapped["Team"] = relationship("Team", back_populates="subteams")
    members = relationship("Membership", back_populates="subteam")
    roster_assignments = relationship(
        "RosterAssignment", back_populates="subteam", cascade="all, delete-orphan"
    )
    registrations = relationship(
        "TournamentRegistration", back_populates="subteam", cascade="all, delete-orphan"
    )
    test_assignments = relationship(
        "TestAssignment", back_populates="subteam", cascade="all, delete-orphan"
    )
