"""Outbound email via the Resend HTTP API. Best-effort: failures are logged, never raised."""
from __future__ import annotations

import logging
from html import escape
from typing import Optional

import httpx

import config

logger = logging.getLogger("teamy.email")

_FORMAT_LABELS = {"in-person": "In-Person", "satellite": "Satellite", "mini-so": "Mini SO"}


async def send_email(to: list[str], subject: str, html: str) -> bool:
    """POST one message to Resend. Returns False when disabled or on failure."""
    if not config.RESEND_API_KEY or not to:
        return False
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(
                config.RESEND_API_URL,
                json={"from": config.EMAIL_FROM, "to": to, "subject": subject, "html": html},
                headers={"Authorization": f"Bearer {config.RESEND_API_KEY}"},
            )
            resp.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("Failed to send email %r to %s: %s", subject, ", ".join(to), e)
        return False
    except Exception:
        logger.exception("Unexpected error sending email %r to %s", subject, ", ".join(to))
        return False
    logger.info("Email %r sent to %s", subject, ", ".join(to))
    return True


def hosting_request_html(
    director_name: str,
    tournament_name: str,
    tournament_level: str,
    division: str,
    tournament_format: str,
    location: Optional[str] = None,
    preferred_slug: Optional[str] = None,
) -> str:
    rows = [
        ("Tournament Name", tournament_name),
        ("Level", tournament_level.capitalize()),
        ("Division", f"Division {division}"),
        ("Format", _FORMAT_LABELS.get(tournament_format, tournament_format)),
    ]
    if location:
        rows.append(("Location", location))
    if preferred_slug:
        rows.append(("Preferred URL", f"{config.PUBLIC_BASE_URL.rstrip('/')}/tournaments/{preferred_slug}"))
    table = "".join(
        f"<tr><td>{escape(label)}:</td><td>{escape(value)}</td></tr>" for label, value in rows
    )
    return (
        "<h2>Tournament Hosting Request Received</h2>"
        f"<p>Hi {escape(director_name)},</p>"
        f"<p>Thank you for your interest in hosting <strong>{escape(tournament_name)}</strong> on Teamy. "
        "Your request is <strong>pending approval</strong>; we will get back to you within 2-3 business days.</p>"
        f"<table>{table}</table>"
        f'<p><a href="{escape(config.PUBLIC_BASE_URL)}">Teamy</a></p>'
    )


async def send_hosting_request_confirmation(request) -> bool:
    """Confirmation to the tournament director after a hosting request is filed."""
    html = hosting_request_html(
        request.director_name,
        request.tournament_name,
        request.tournament_level,
        request.division,
        request.tournament_format,
        request.location,
        request.preferred_slug,
    )
    return await send_email(
        [request.director_email],
        f"Tournament Hosting Request Received - {request.tournament_name}",
        html,
    )
