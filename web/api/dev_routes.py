"""Dev panel API (staff): approvals, logs, user management."""
from __future__ import annotations

import hmac
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import and_, delete, func, select
from sqlalchemy.orm import selectinload

import config
from teamy.models import (
    ActivityLog,
    ApiLog,
    ErrorLog,
    Membership,
    Tournament,
    TournamentAdmin,
    TournamentEventSelection,
    TournamentRegistration,
    User,
)
from teamy.models.base import async_session_factory
from teamy.services.activity_log import log_activity
from teamy.utils import to_naive_utc, user_display_name
from web.api.tournament_routes import tournament_dict
from web.api.utils import iso, user_summary
from web.auth import require_staff_user, require_user

router = APIRouter(prefix="/api/dev", tags=["dev"])

ACTIVITY_LOG_LIMIT = 500
SLOW_REQUEST_MS = 1000
MAX_PAGE_SIZE = 500


class DevAuthRequest(BaseModel):
    password: Optional[str] = None


class ApproveRequest(BaseModel):
    approved: bool = True


def _page_bounds(page: int, limit: int) -> tuple[int, int]:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return page, limit


def _pagination(page: int, limit: int, total: int) -> dict:
    return {"page": page, "limit": limit, "total": total, "total_pages": (total + limit - 1) // limit}


@router.post("/auth")
async def dev_auth(body: DevAuthRequest, user: User = Depends(require_user)):
    """Unlock the dev panel: a correct password promotes the caller to staff."""
    if not body.password:
        raise HTTPException(400, "Password is required")
    expected = config.DEV_PANEL_PASSWORD.strip().strip("\"'")
    if not expected:
        raise HTTPException(500, "Dev panel is not configured")
    if not hmac.compare_digest(body.password.strip().encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(401, "Incorrect password")
    async with async_session_factory() as session:
        db_user = await session.get(User, user.id)
        db_user.role = "staff"
        await session.commit()
    await log_activity(
        "DEV_PANEL_UNLOCKED",
        f"{user_display_name(user)} unlocked the dev panel",
        user_id=user.id,
        log_type="ADMIN_ACTION",
    )
    return {"success": True, "role": "staff"}


@router.patch("/tournaments/{tournament_id}/approve")
async def approve_tournament(
    tournament_id: int, body: Optional[ApproveRequest] = None, staff: User = Depends(require_staff_user)
):
    """Approve (or un-approve) a tournament for public listing."""
    approved = body.approved if body else True
    async with async_session_factory() as session:
        tournament = await session.get(Tournament, tournament_id)
        if not tournament:
            raise HTTPException(404, "Tournament not found")
        tournament.approved = approved
        await session.commit()
        await session.refresh(tournament)
    await log_activity(
        "TOURNAMENT_APPROVED" if approved else "TOURNAMENT_UNAPPROVED",
        f'{user_display_name(staff)} {"approved" if approved else "unapproved"} tournament "{tournament.name}"',
        user_id=staff.id,
        log_type="ADMIN_ACTION",
        metadata={"tournament_id": tournament_id},
    )
    return {"tournament": tournament_dict(tournament)}


@router.delete("/tournaments/clear")
async def clear_tournaments(staff: User = Depends(require_staff_user)):
    """Delete every tournament with its registrations and admins."""
    async with async_session_factory() as session:
        await session.execute(delete(TournamentEventSelection))
        await session.execute(delete(TournamentRegistration))
        await session.execute(delete(TournamentAdmin))
        result = await session.execute(delete(Tournament))
        await session.commit()
        deleted = result.rowcount or 0
    await log_activity(
        "TOURNAMENTS_CLEARED",
        f"{user_display_name(staff)} cleared {deleted} tournament(s)",
        user_id=staff.id,
        log_type="ADMIN_ACTION",
        severity="WARNING",
    )
    return {"success": True, "deleted_count": deleted}


@router.get("/logs")
async def list_activity_logs(staff: User = Depends(require_staff_user)):
    """Latest activity log entries, newest first."""
    async with async_session_factory() as session:
        result = await session.execute(
            select(ActivityLog)
            .options(selectinload(ActivityLog.user))
            .order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
            .limit(ACTIVITY_LOG_LIMIT)
        )
        return {
            "logs": [
                {
                    "id": log.id,
                    "action": log.action,
                    "description": log.description,
                    "log_type": log.log_type,
                    "severity": log.severity,
                    "route": log.route,
                    "metadata": log.metadata_json,
                    "timestamp": iso(log.timestamp),
                    "user": user_summary(log.user),
                }
                for log in result.scalars().all()
            ]
        }


@router.get("/api-logs")
async def list_api_logs(
    method: Optional[str] = None,
    route: Optional[str] = None,
    status_code: Optional[int] = None,
    user_id: Optional[int] = None,
    errors_only: bool = False,
    slow_only: bool = False,
    min_execution_time: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 100,
    staff: User = Depends(require_staff_user),
):
    """Filtered, paginated API call log with summary stats."""
    page, limit = _page_bounds(page, limit)
    conditions = []
    if method:
        conditions.append(ApiLog.method == method.upper())
    if route:
        conditions.append(ApiLog.route.ilike(f"%{route}%"))
    if status_code is not None:
        conditions.append(ApiLog.status_code == status_code)
    if user_id is not None:
        conditions.append(ApiLog.user_id == user_id)
    if errors_only:
        conditions.append(ApiLog.status_code >= 400)
    if slow_only:
        conditions.append(ApiLog.execution_time >= SLOW_REQUEST_MS)
    if min_execution_time is not None:
        conditions.append(ApiLog.execution_time >= min_execution_time)
    if start_date:
        conditions.append(ApiLog.timestamp >= to_naive_utc(start_date))
    if end_date:
        conditions.append(ApiLog.timestamp <= to_naive_utc(end_date))
    where = and_(*conditions) if conditions else None

    query = select(ApiLog).order_by(ApiLog.timestamp.desc(), ApiLog.id.desc())
    stats_query = select(
        func.count(ApiLog.id),
        func.avg(ApiLog.execution_time),
        func.count(ApiLog.id).filter(ApiLog.status_code >= 400),
    )
    if where is not None:
        query = query.where(where)
        stats_query = stats_query.where(where)

    async with async_session_factory() as session:
        result = await session.execute(query.offset((page - 1) * limit).limit(limit))
        logs = result.scalars().all()
        total, avg_time, error_count = (await session.execute(stats_query)).one()

    total = total or 0
    return {
        "logs": [
            {
                "id": log.id,
                "method": log.method,
                "route": log.route,
                "status_code": log.status_code,
                "execution_time": log.execution_time,
                "user_id": log.user_id,
                "ip_address": log.ip_address,
                "user_agent": log.user_agent,
                "request_body": log.request_body,
                "response_size": log.response_size,
                "error": log.error,
                "timestamp": iso(log.timestamp),
            }
            for log in logs
        ],
        "pagination": _pagination(page, limit, total),
        "stats": {
            "total": total,
            "average_execution_time": round(float(avg_time), 1) if avg_time is not None else 0,
            "error_count": error_count or 0,
        },
    }


@router.get("/error-logs")
async def list_error_logs(
    severity: Optional[str] = None,
    error_type: Optional[str] = None,
    route: Optional[str] = None,
    page: int = 1,
    limit: int = 100,
    staff: User = Depends(require_staff_user),
):
    page, limit = _page_bounds(page, limit)
    query = select(ErrorLog)
    count_query = select(func.count(ErrorLog.id))
    if severity:
        query = query.where(ErrorLog.severity == severity.upper())
        count_query = count_query.where(ErrorLog.severity == severity.upper())
    if error_type:
        query = query.where(ErrorLog.error_type == error_type)
        count_query = count_query.where(ErrorLog.error_type == error_type)
    if route:
        query = query.where(ErrorLog.route.ilike(f"%{route}%"))
        count_query = count_query.where(ErrorLog.route.ilike(f"%{route}%"))
    async with async_session_factory() as session:
        result = await session.execute(
            query.order_by(ErrorLog.timestamp.desc(), ErrorLog.id.desc()).offset((page - 1) * limit).limit(limit)
        )
        logs = result.scalars().all()
        total = await session.scalar(count_query) or 0
    return {
        "logs": [
            {
                "id": log.id,
                "error_type": log.error_type,
                "message": log.message,
                "stack": log.stack,
                "user_id": log.user_id,
                "route": log.route,
                "severity": log.severity,
                "metadata": log.metadata_json,
                "timestamp": iso(log.timestamp),
            }
            for log in logs
        ],
        "pagination": _pagination(page, limit, total),
    }


@router.get("/users")
async def list_users(staff: User = Depends(require_staff_user)):
    """All users with their team memberships."""
    async with async_session_factory() as session:
        result = await session.execute(
            select(User)
            .options(selectinload(User.memberships).selectinload(Membership.team))
            .order_by(User.created_at.desc(), User.id.desc())
        )
        users = []
        for u in result.scalars().all():
            users.append(
                {
                    **user_summary(u),
                    "role": u.role,
                    "created_at": iso(u.created_at),
                    "memberships": [
                        {
                            "id": m.id,
                            "role": m.role,
                            "team": {"id": m.team.id, "name": m.team.name, "division": m.team.division},
                        }
                        for m in u.memberships
                    ],
                }
            )
        return {"users": users}


@router.delete("/users/{user_id}")
async def delete_user(user_id: int, staff: User = Depends(require_staff_user)):
    """Delete a user and their memberships. Cannot delete self."""
    if user_id == staff.id:
        raise HTTPException(400, "Cannot delete your own account")
    async with async_session_factory() as session:
        user = await session.get(User, user_id)
        if not user:
            raise HTTPException(404, "User not found")
        label = user_display_name(user)
        email = user.email
        await session.delete(user)
        await session.commit()
    await log_activity(
        "USER_DELETED",
        f"{user_display_name(staff)} deleted user {label}",
        user_id=staff.id,
        log_type="ADMIN_ACTION",
        severity="WARNING",
        metadata={"deleted_user_id": user_id, "email": email},
    )
    return {"success": True}
