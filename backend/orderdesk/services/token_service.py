# Overview: Bearer token issue and validation for API callers.

"""
API token management.

Login flows live in the platform's auth service; this service only needs
to turn a bearer token into a user. Tokens are issued from the CLI.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute expiry (API_TOKEN_TTL_HOURS)
- Revocable
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import ApiToken, User
from orderdesk.time_utils import utcnow


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 hex digest for storage.

    Tokens are already high-entropy, so a slow password hash adds nothing.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def issue_token(user_id: int, label: str | None = None, ttl_hours: int | None = None) -> tuple[ApiToken, str]:
    """
    Create a token for a user.

    Returns (token_record, plaintext_token). Only the hash is persisted.

    Raises ValueError if the user does not exist or is inactive.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is not active")

    if ttl_hours is None:
        ttl_hours = current_app.config["API_TOKEN_TTL_HOURS"]

    plaintext = generate_token()
    record = ApiToken(
        user_id=user_id,
        token_hash=hash_token(plaintext),
        label=label,
        expires_at=utcnow() + timedelta(hours=ttl_hours),
    )
    db.session.add(record)
    db.session.commit()
    return record, plaintext


def validate_token(token: str) -> User | None:
    """
    Resolve a plaintext token to its active user.

    Returns None for unknown, revoked or expired tokens and for inactive users.
    """
    record = db.session.query(ApiToken).filter_by(token_hash=hash_token(token)).first()
    if record is None or record.is_revoked:
        return None

    now = utcnow()
    if record.expires_at <= now:
        return None

    user = record.user
    if user is None or not user.is_active:
        return None

    record.last_used_at = now
    db.session.commit()
    return user


def revoke_token(token_id: int) -> bool:
    record = db.session.get(ApiToken, token_id)
    if record is None or record.is_revoked:
        return False
    record.is_revoked = True
    record.revoked_at = utcnow()
    db.session.commit()
    return True
