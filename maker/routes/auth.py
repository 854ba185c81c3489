"""Authentication endpoints — signup, login, logout, me."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from maker.auth import (
    create_access_token,
    get_current_user,
    get_token_payload,
    hash_password,
    token_ttl_seconds,
    verify_password,
)
from maker.database import get_db
from maker.logging_config import get_logger
from maker.models import User
from maker.redis import revoke_token
from maker.schemas import (
    LandingResponse,
    MessageResponse,
    UserLoginRequest,
    UserLoginResponse,
    UserResponse,
    UserSignupRequest,
)
from maker.services.role_service import landing_route, resolve_effective_role

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


async def _login_response(db: AsyncSession, user: User) -> UserLoginResponse:
    role = await resolve_effective_role(db, user.id)
    return UserLoginResponse(
        access_token=create_access_token(str(user.id)),
        user=UserResponse.model_validate(user),
        landing=LandingResponse(route=landing_route(role).value, role=role),
    )


@router.post("/signup", response_model=UserLoginResponse, status_code=201)
async def signup(
    body: UserSignupRequest,
    db: AsyncSession = Depends(get_db),
):
    """Register a new user. Without workshop assignments they land in the waiting room."""
    email = body.email.lower()
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        email=email,
        display_name=body.display_name,
        password_hash=hash_password(body.password),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Email already registered")
    await db.refresh(user)

    logger.info("user_signed_up", user_id=str(user.id))
    return await _login_response(db, user)


@router.post("/login", response_model=UserLoginResponse)
async def login(
    body: UserLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """Login with email and password; the response names the landing route."""
    result = await db.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if user.status != "active":
        raise HTTPException(status_code=403, detail="Account suspended")

    response = await _login_response(db, user)
    logger.info("user_login", user_id=str(user.id), landing=response.landing.route)
    return response


@router.post("/logout", response_model=MessageResponse)
async def logout(
    payload: dict = Depends(get_token_payload),
):
    """Revoke the presented access token for the rest of its lifetime."""
    jti = payload.get("jti")
    if jti:
        await revoke_token(jti, token_ttl_seconds(payload))
    logger.info("user_logout", user_id=payload["sub"])
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=UserResponse)
async def get_me(
    user: User = Depends(get_current_user),
):
    """Current authenticated user profile."""
    return UserResponse.model_validate(user)
