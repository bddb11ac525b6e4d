"""Roster assignment - member competes in an event for a subteam."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teamy.models.base import Base
from teamy.utils import utcnow


class RosterAssignment(Base):
    """Member slotted into an event. A member holds each event at most once."""

    __tablename__ = "roster_assignments"
    __table_args__ = (UniqueConstraint("membership_id", "event_id", name="uq_roster_membership_event"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subteam_id: Mapped[int] = mapped_column(ForeignKey("subteams.id", ondelete="CASCADE"), nullable=False, index=True)
    membership_id: Mapped[int] = mapped_column(ForeignKey("memberships.id", ondelete="CASCADE"), nullable=False)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    subteam: Mapped["Subteam"] = relationship("Subteam", back_populates="roster_assignments")
    membership: Mapped["Membership"] = relationship("Membership", back_populates="roster_assignments")
    event: Mapped["Event"] = relationship("Event")
