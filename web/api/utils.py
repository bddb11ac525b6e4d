"""Shared API utilities: JSON shapes for rows reused across route modules."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from teamy.models import Event, Membership, Subteam, Team, User
from teamy.utils import user_display_name


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def user_summary(user: Optional[User]) -> Optional[dict]:
    """Public view of a user. Never includes the password hash."""
    if user is None:
        return None
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "display_name": user_display_name(user),
    }


def event_dict(event: Event) -> dict:
    return {
        "id": event.id,
        "name": event.name,
        "slug": event.slug,
        "division": event.division,
        "max_competitors": event.max_competitors,
    }


def team_dict(team: Team) -> dict:
    """Team columns only. Invite code hashes and ciphertexts stay server-side."""
    return {
        "id": team.id,
        "name": team.name,
        "division": team.division,
        "background_type": team.background_type,
        "background_color": team.background_color,
        "gradient_start_color": team.gradient_start_color,
        "gradient_end_color": team.gradient_end_color,
        "created_by_id": team.created_by_id,
        "created_at": iso(team.created_at),
    }


def subteam_dict(subteam: Optional[Subteam]) -> Optional[dict]:
    if subteam is None:
        return None
    return {"id": subteam.id, "team_id": subteam.team_id, "name": subteam.name, "created_at": iso(subteam.created_at)}


def membership_dict(membership: Membership, with_user: bool = True, with_subteam: bool = True) -> dict:
    """Caller must have loaded the relationships it asks for."""
    data = {
        "id": membership.id,
        "user_id": membership.user_id,
        "team_id": membership.team_id,
        "subteam_id": membership.subteam_id,
        "role": membership.role,
        "roles": list(membership.roles or []),
        "created_at": iso(membership.created_at),
    }
    if with_user:
        data["user"] = user_summary(membership.user)
    if with_subteam:
        data["subteam"] = subteam_dict(membership.subteam)
    return data
