"""Team invite codes: 12-char URL-safe codes, stored bcrypt-hashed plus a Fernet copy for re-display."""
from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from passlib.context import CryptContext

import config

INVITE_CODE_LENGTH = 12

_code_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def generate_invite_code() -> str:
    return secrets.token_urlsafe(16)[:INVITE_CODE_LENGTH]


def hash_invite_code(code: str) -> str:
    return _code_context.hash(code)


def verify_invite_code(code: str, code_hash: Optional[str]) -> bool:
    if not code or not code_hash:
        return False
    try:
        return _code_context.verify(code, code_hash)
    except ValueError:
        return False


def _fernet() -> Fernet:
    key = hashlib.sha256(config.INVITE_CODE_SECRET.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(key))


def encrypt_invite_code(code: str) -> str:
    return _fernet().encrypt(code.encode("utf-8")).decode("ascii")


def decrypt_invite_code(token: Optional[str]) -> Optional[str]:
    """Return the plain code, or None if missing or not decryptable with the current secret."""
    if not token:
        return None
    try:
        return _fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, ValueError):
        return None


def create_invite_codes() -> dict[str, str]:
    """Generate admin and member codes with their hashes and encrypted copies."""
    admin_code = generate_invite_code()
    member_code = generate_invite_code()
    return {
        "admin_code": admin_code,
        "admin_hash": hash_invite_code(admin_code),
        "admin_encrypted": encrypt_invite_code(admin_code),
        "member_code": member_code,
        "member_hash": hash_invite_code(member_code),
        "member_encrypted": encrypt_invite_code(member_code),
    }
