"""FastAPI app for Teamy - team, roster, tournament and test-builder API plus the built web UI."""
import logging
import traceback
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from teamy.models.base import init_db
from teamy.services.api_logger import ApiLoggingMiddleware, log_error
from teamy.services.rbac import AuthorizationError
from web.api.auth_routes import router as auth_router
from web.api.dev_routes import router as dev_router
from web.api.event_routes import router as event_router
from web.api.hosting_routes import router as hosting_router
from web.api.membership_routes import router as membership_router
from web.api.roster_routes import router as roster_router
from web.api.team_routes import router as team_router
from web.api.test_routes import router as test_router
from web.api.tournament_routes import router as tournament_router
from web.auth import decode_token

logger = logging.getLogger("teamy.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(title="Teamy API", lifespan=lifespan)

# SPA fallback: serve index.html for non-API 404s so client-side routes work
_frontend_dist = Path(__file__).resolve().parent.parent / "frontend" / "dist"


class SPAFallbackMiddleware(BaseHTTPMiddleware):
    """Serve index.html for 404s on non-API paths (enables /login, /teams/1, etc.)."""

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        if response.status_code == 404 and not request.url.path.startswith("/api"):
            index_path = _frontend_dist / "index.html"
            if index_path.exists():
                return FileResponse(str(index_path), media_type="text/html")
        return response


if _frontend_dist.exists():
    app.add_middleware(SPAFallbackMiddleware)

app.add_middleware(ApiLoggingMiddleware, token_decoder=decode_token)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        content = dict(exc.detail)
    else:
        content = {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid input", "details": details})


@app.exception_handler(AuthorizationError)
async def authorization_exception_handler(request: Request, exc: AuthorizationError):
    logger.info("Authorization failed for %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=403, content={"error": "Unauthorized"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    await log_error(
        type(exc).__name__,
        str(exc),
        stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        route=request.url.path,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(auth_router)
app.include_router(team_router)
app.include_router(membership_router)
app.include_router(event_router)
app.include_router(roster_router)
app.include_router(tournament_router)
app.include_router(hosting_router)
app.include_router(dev_router)
app.include_router(test_router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}


# Serve built frontend (SPA fallback handled by SPAFallbackMiddleware above)
if _frontend_dist.exists():
    app.mount("/", StaticFiles(directory=str(_frontend_dist), html=True), name="frontend")
