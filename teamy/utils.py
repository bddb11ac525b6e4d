"""Shared helpers: divisions, timestamps, display names."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

DIVISIONS = ("B", "C")
TOURNAMENT_DIVISIONS = ("B", "C", "B&C")


def utcnow() -> datetime:
    """Naive UTC timestamp (the database stores naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC already."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def format_division(division: str) -> str:
    """Format a division for display, e.g. "B&C" -> "B & C"."""
    if not division:
        return ""
    if "&" in division or "and" in division:
        return re.sub(r"\s*&\s*", " & ", division).strip()
    return division


def divisions_match(tournament_division: str, team_division: str) -> bool:
    """True if a team in team_division may enter a tournament for tournament_division.

    A combined "B&C" tournament accepts both B and C teams.
    """
    if not tournament_division or not team_division:
        return False
    if tournament_division == team_division:
        return True
    if "B" in tournament_division and "C" in tournament_division:
        return team_division in ("B", "C")
    return False


def user_display_name(user) -> str:
    """Return a human-readable name for a user. Falls back to email."""
    if not user:
        return "Unknown user"
    name = (user.name or "").strip()
    if name:
        return name
    return user.email or "Unknown user"


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "item"
