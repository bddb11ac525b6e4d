"""Tournament, registration and hosting request models."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teamy.models.base import Base
from teamy.utils import utcnow

HOSTING_STATUSES = ("PENDING", "APPROVED", "REJECTED")
TOURNAMENT_FORMATS = ("in-person", "satellite", "mini-so")


class Tournament(Base):
    """Tournament listed for registration. Public listing requires staff approval."""

    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(120), unique=True, nullable=True)
    division: Mapped[str] = mapped_column(String(4), nullable=False)  # B, C, B&C
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Float, default=0.0)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    approved: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    created_by: Mapped[Optional["User"]] = relationship("User")
    admins = relationship(
        "TournamentAdmin", back_populates="tournament", cascade="all, delete-orphan"
    )
    registrations = relationship(
        "TournamentRegistration", back_populates="tournament", cascade="all, delete-orphan"
    )


class TournamentAdmin(Base):
    """User allowed to manage a tournament (creator is added on create)."""

    __tablename__ = "tournament_admins"
    __table_args__ = (UniqueConstraint("tournament_id", "user_id", name="uq_tournament_admin"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    tournament: Mapped["Tournament"] = relationship("Tournament", back_populates="admins")
    user: Mapped["User"] = relationship("User", back_populates="tournament_admin_rows")


class TournamentRegistration(Base):
    """Team (optionally a specific subteam) registered for a tournament."""

    __tablename__ = "tournament_registrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    subteam_id: Mapped[Optional[int]] = mapped_column(ForeignKey("subteams.id", ondelete="CASCADE"), nullable=True)
    registered_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(16), default="CONFIRMED")
    paid: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    tournament: Mapped["Tournament"] = relationship("Tournament", back_populates="registrations")
    team: Mapped["Team"] = relationship("Team", back_populates="registrations")
    subteam: Mapped[Optional["Subteam"]] = relationship("Subteam", back_populates="registrations")
    event_selections = relationship(
        "TournamentEventSelection", back_populates="registration", cascade="all, delete-orphan"
    )


class TournamentEventSelection(Base):
    __tablename__ = "tournament_event_selections"
    __table_args__ = (UniqueConstraint("registration_id", "event_id", name="uq_registration_event"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    registration_id: Mapped[int] = mapped_column(
        ForeignKey("tournament_registrations.id", ondelete="CASCADE"), nullable=False
    )
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)

    registration: Mapped["TournamentRegistration"] = relationship(
        "TournamentRegistration", back_populates="event_selections"
    )
    event: Mapped["Event"] = relationship("Event")


class TournamentHostingRequest(Base):
    """Tournament director's application to host a tournament, reviewed by staff."""

    __tablename__ = "tournament_hosting_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_name: Mapped[str] = mapped_column(String(200), nullable=False)
    tournament_level: Mapped[str] = mapped_column(String(32), nullable=False)  # invitational, regional, state...
    division: Mapped[str] = mapped_column(String(4), nullable=False)
    tournament_format: Mapped[str] = mapped_column(String(16), nullable=False)  # in-person, satellite, mini-so
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    preferred_slug: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    director_name: Mapped[str] = mapped_column(String(128), nullable=False)
    director_email: Mapped[str] = mapped_column(String(255), nullable=False)
    director_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    other_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="PENDING")
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
