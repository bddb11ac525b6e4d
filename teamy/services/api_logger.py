"""Per-request API log rows and persisted error logs for the dev panel."""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

import config
from teamy.models import ApiLog, ErrorLog
from teamy.models.base import async_session_factory

logger = logging.getLogger("teamy.api")

ERROR_MESSAGE_LIMIT = 500
STACK_LIMIT = 5000


def _truncate(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    return value[:limit]


def scrub_body(body: Any) -> Any:
    """Replace password fields in a JSON body before it is stored."""
    if isinstance(body, dict):
        return {
            k: ("[REDACTED]" if "password" in str(k).lower() else scrub_body(v))
            for k, v in body.items()
        }
    if isinstance(body, list):
        return [scrub_body(v) for v in body]
    return body


async def log_api_call(
    method: str,
    route: str,
    status_code: int,
    execution_time: int,
    user_id: Optional[int] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    request_body: Any = None,
    response_size: Optional[int] = None,
    error: Optional[str] = None,
) -> None:
    try:
        async with async_session_factory() as session:
            session.add(
                ApiLog(
                    method=method,
                    route=route[:512],
                    status_code=status_code,
                    execution_time=execution_time,
                    user_id=user_id,
                    ip_address=ip_address,
                    user_agent=_truncate(user_agent, 512),
                    request_body=request_body,
                    response_size=response_size,
                    error=_truncate(error, ERROR_MESSAGE_LIMIT),
                )
            )
            await session.commit()
    except Exception:
        logger.exception("Failed to log API call %s %s", method, route)


async def log_error(
    error_type: str,
    message: str,
    stack: Optional[str] = None,
    user_id: Optional[int] = None,
    route: Optional[str] = None,
    severity: str = "ERROR",
    metadata: Optional[dict] = None,
) -> None:
    try:
        async with async_session_factory() as session:
            session.add(
                ErrorLog(
                    error_type=error_type[:128],
                    message=_truncate(message, ERROR_MESSAGE_LIMIT) or "",
                    stack=_truncate(stack, STACK_LIMIT),
                    user_id=user_id,
                    route=route,
                    severity=severity,
                    metadata_json=metadata,
                )
            )
            await session.commit()
    except Exception:
        logger.exception("Failed to log error %s", error_type)


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


def _should_log(path: str) -> bool:
    return path.startswith("/api") and not path.startswith("/api/auth")


class ApiLoggingMiddleware(BaseHTTPMiddleware):
    """Write one ApiLog row per /api call (auth endpoints excluded)."""

    def __init__(self, app, token_decoder: Optional[Callable[[str], Optional[dict]]] = None):
        super().__init__(app)
        self.token_decoder = token_decoder

    def _user_id(self, request: Request) -> Optional[int]:
        if self.token_decoder is None:
            return None
        auth = request.headers.get("authorization", "")
        token = auth[7:] if auth.lower().startswith("bearer ") else request.headers.get("x-auth-token")
        if not token:
            return None
        payload = self.token_decoder(token)
        if not payload:
            return None
        uid = payload.get("uid")
        return uid if isinstance(uid, int) else None

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not config.API_LOGGING_ENABLED or not _should_log(path):
            return await call_next(request)

        started = time.perf_counter()
        body = None
        if request.method not in ("GET", "HEAD") and "application/json" in request.headers.get("content-type", ""):
            raw = await request.body()
            if raw:
                try:
                    body = scrub_body(json.loads(raw))
                except ValueError:
                    body = None

        route = path + (f"?{request.url.query}" if request.url.query else "")
        try:
            response = await call_next(request)
        except Exception as exc:
            await log_api_call(
                method=request.method,
                route=route,
                status_code=500,
                execution_time=int((time.perf_counter() - started) * 1000),
                user_id=self._user_id(request),
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent"),
                request_body=body,
                error=str(exc) or type(exc).__name__,
            )
            raise
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        size = response.headers.get("content-length")
        await log_api_call(
            method=request.method,
            route=route,
            status_code=response.status_code,
            execution_time=elapsed_ms,
            user_id=self._user_id(request),
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            request_body=body,
            response_size=int(size) if size and size.isdigit() else None,
            error=f"HTTP {response.status_code}" if response.status_code >= 400 else None,
        )
        return response
