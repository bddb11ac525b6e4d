"""Competition events and the conflict blocks that schedule them together."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teamy.models.base import Base


class Event(Base):
    """Science Olympiad event for one division."""

    __tablename__ = "events"
    __table_args__ = (UniqueConstraint("slug", "division", name="uq_event_slug_division"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), nullable=False)
    division: Mapped[str] = mapped_column(String(4), nullable=False, index=True)  # B, C
    max_competitors: Mapped[int] = mapped_column(Integer, default=2)

    conflict_links = relationship(
        "ConflictGroupEvent", back_populates="event", cascade="all, delete-orphan"
    )


class ConflictGroup(Base):
    """Time block: events in the same group run concurrently."""

    __tablename__ = "conflict_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    division: Mapped[str] = mapped_column(String(4), nullable=False, index=True)
    block_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    events = relationship(
        "ConflictGroupEvent", back_populates="group", cascade="all, delete-orphan"
    )


class ConflictGroupEvent(Base):
    __tablename__ = "conflict_group_events"
    __table_args__ = (UniqueConstraint("group_id", "event_id", name="uq_conflict_group_event"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("conflict_groups.id", ondelete="CASCADE"), nullable=False)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)

    group: Mapped["ConflictGroup"] = relationship("ConflictGroup", back_populates="events")
    event: Mapped["Event"] = relationship("Event", back_populates="conflict_links")
