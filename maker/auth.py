"""Human authentication (passwords + JWT) and role-area guards."""

import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from fastapi import Depends, Request
from passlib.hash import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from maker.database import get_db
from maker.errors import Forbidden, Unauthenticated
from maker.logging_config import bind_user_context, get_logger
from maker.models import User, WorkshopRole
from maker.redis import is_token_revoked
from maker.services.role_service import (
    can_access,
    landing_route,
    resolve_effective_role,
)

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# JWT Configuration
# ---------------------------------------------------------------------------

JWT_SECRET = os.getenv("JWT_SECRET_KEY", "")
if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET_KEY environment variable is required")
JWT_ALGORITHM = "HS256"
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.verify(password, password_hash)


def create_access_token(user_id: str) -> str:
    """Create a JWT access token. Each token carries a jti so logout can revoke it."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": user_id,
        "exp": expire,
        "type": "access",
        "jti": secrets.token_urlsafe(16),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_jwt(token: str) -> dict:
    """Decode and validate a JWT token. Raises Unauthenticated on failure."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid token")


def token_ttl_seconds(payload: dict) -> int:
    """Seconds until the token in ``payload`` expires (0 if already expired)."""
    remaining = payload["exp"] - datetime.now(timezone.utc).timestamp()
    return max(0, int(remaining))


def bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise Unauthenticated("Missing or invalid Authorization header")
    token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        raise Unauthenticated("Empty token")
    return token


# ---------------------------------------------------------------------------
# FastAPI Auth Dependencies
# ---------------------------------------------------------------------------


async def get_token_payload(request: Request) -> dict:
    """FastAPI dependency: the validated, unrevoked access-token payload."""
    payload = decode_jwt(bearer_token(request))
    if payload.get("type") != "access" or not payload.get("sub"):
        raise Unauthenticated("Invalid token payload")
    jti = payload.get("jti")
    if jti and await is_token_revoked(jti):
        raise Unauthenticated("Token revoked")
    return payload


async def get_current_user(
    payload: dict = Depends(get_token_payload),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    FastAPI dependency: the authenticated user.

    A token whose user no longer exists or is suspended counts as an invalid
    session, not as an authorization failure.
    """
    try:
        user_id = UUID(payload["sub"])
    except ValueError:
        raise Unauthenticated("Invalid token subject")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or user.status != "active":
        raise Unauthenticated("User not found or suspended")

    bind_user_context(str(user.id))
    return user


# ---------------------------------------------------------------------------
# Role Area Guards
# ---------------------------------------------------------------------------


@dataclass
class Actor:
    """The authenticated user together with their effective workshop role."""

    user: User
    role: WorkshopRole | None


async def get_current_actor(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    role = await resolve_effective_role(db, user.id)
    return Actor(user=user, role=role)


def require_area(area: str):
    """Dependency factory admitting only roles allowed into ``area``.

    Anyone else is sent to their own landing route: their dashboard, or the
    waiting room when they hold no workshop assignment.
    """

    async def _guard(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not can_access(actor.role, area):
            destination = landing_route(actor.role)
            logger.info(
                "area_access_denied",
                area=area,
                user_id=str(actor.user.id),
                role=actor.role.value if actor.role else None,
            )
            raise Forbidden(destination.value, f"'{area}' area is not available to this user")
        return actor

    return _guard


require_admin = require_area("admin")
require_facilitator = require_area("facilitator")
require_participant = require_area("participant")
