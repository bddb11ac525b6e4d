"""Configuration for the Teamy API."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


ENV = os.getenv("ENV", "development").strip().lower()

# Database
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(__file__).parent / 'teamy.db'}",
)

# Web auth (JWT secret, initial staff bootstrap)
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production-use-long-random-string")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_DAYS = 7
INITIAL_STAFF_EMAIL = os.getenv("INITIAL_STAFF_EMAIL", "").strip().lower()
INITIAL_STAFF_PASSWORD = os.getenv("INITIAL_STAFF_PASSWORD", "")  # Set to bootstrap first staff account
ALLOW_SIGNUP = _parse_bool(os.getenv("ALLOW_SIGNUP", "true"))

# Dev panel password (promotes the logged-in user to staff)
DEV_PANEL_PASSWORD = os.getenv("DEV_PANEL_PASSWORD", "")

# Invite codes are stored hashed and Fernet-encrypted with a key derived from this
INVITE_CODE_SECRET = os.getenv("INVITE_CODE_SECRET", JWT_SECRET)

# Outbound email (Resend HTTP API). Empty key disables sending.
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
EMAIL_FROM = os.getenv("EMAIL_FROM", "Teamy <noreply@teamy.io>")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "https://teamy.io")

# Per-request API log rows (dev panel)
API_LOGGING_ENABLED = _parse_bool(os.getenv("API_LOGGING_ENABLED", "true"))

# Limits
SUBTEAM_MAX_MEMBERS = int(os.getenv("SUBTEAM_MAX_MEMBERS", "15"))
