"""Audit trail writes. Never raises: a failed log line must not fail the request."""
from __future__ import annotations

import logging
from typing import Any, Optional

from teamy.models import ActivityLog
from teamy.models.base import async_session_factory

logger = logging.getLogger("teamy.activity")


async def log_activity(
    action: str,
    description: str,
    user_id: Optional[int] = None,
    log_type: str = "USER_ACTION",
    severity: str = "INFO",
    route: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    """Insert an ActivityLog row in its own session."""
    try:
        async with async_session_factory() as session:
            session.add(
                ActivityLog(
                    action=action,
                    description=description,
                    user_id=user_id,
                    log_type=log_type,
                    severity=severity,
                    route=route,
                    metadata_json=metadata or None,
                )
            )
            await session.commit()
    except Exception:
        logger.exception("Failed to log activity %s", action)
