# Overview: Service-layer operations for session; signed bearer tokens.

"""
Session Token Service

WHY: Stateless, short-lived credentials. A token is an HS256-signed JWT
carrying the user id (sub) and role, issued at login and verified on every
request. Nothing is stored server-side.

SECURITY FEATURES:
- Signed with JWT_SECRET; any tampering fails verification
- Absolute expiry (JWT_EXPIRES_MINUTES)
- The user is re-loaded on every request: deleted or deactivated users are
  rejected even while their token is still unexpired
- The stored role wins over the role claim, so role changes apply immediately
"""

from dataclasses import dataclass
from datetime import timedelta

import jwt
from flask import current_app

from ..extensions import db
from ..models import User
from matmx.time_utils import utcnow


TOKEN_ALGORITHM = "HS256"


@dataclass
class SessionContext:
    """
    Session context returned by validate_session.
    """
    user: User
    role: str
    claims: dict


def create_token(user: User) -> str:
    """Issue a signed token for an authenticated user."""
    now = utcnow()
    ttl = timedelta(minutes=current_app.config["JWT_EXPIRES_MINUTES"])
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=TOKEN_ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Verify signature and expiry. Raises jwt.InvalidTokenError on any failure.
    """
    return jwt.decode(
        token,
        current_app.config["JWT_SECRET"],
        algorithms=[TOKEN_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )


def validate_session(token: str) -> SessionContext | None:
    """
    Validate token and return session context.

    Returns SessionContext if valid, None if invalid/expired or if the user is
    gone or deactivated.
    """
    if not token:
        return None

    try:
        claims = decode_token(token)
        user_id = int(claims["sub"])
    except (jwt.InvalidTokenError, ValueError, KeyError):
        return None

    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return None

    return SessionContext(user=user, role=user.role, claims=claims)
