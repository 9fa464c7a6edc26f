"""Authentication router.

Endpoints for password login, kid PIN login, one-time token redemption,
token refresh, logout and the profile of the signed-in user.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from familypanel.config import settings
from familypanel.core.dependencies import (
    get_current_user,
    get_identity_service,
    get_pin_exchange_handler,
)
from familypanel.core.errors import AppError, Internal, InvalidRequest
from familypanel.core.rate_limit import limiter
from familypanel.database import get_db
from familypanel.models.token import PURPOSE_MAGICLINK
from familypanel.models.user import User
from familypanel.schemas.auth import (
    LoginRequest,
    PinLoginRequest,
    PinLoginResponse,
    RefreshRequest,
    SessionResponse,
    UserPayload,
    VerifyOtpRequest,
)
from familypanel.services.identity_service import IdentityService
from familypanel.services.pin_exchange import PinExchangeHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

# Credential-issuing routes commit before the response is sent.
DbSession = Annotated[AsyncSession, Depends(get_db)]


@router.get("/me", response_model=UserPayload)
async def get_me(current_user: Annotated[User, Depends(get_current_user)]):
    """Return the profile (id, email, name, role) of the signed-in user."""
    return {
        "id": str(current_user.id),
        "email": current_user.email,
        "name": current_user.name,
        "role": current_user.role,
    }


@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    identity: Annotated[IdentityService, Depends(get_identity_service)],
    db: DbSession,
):
    """Authenticate a parent with email + password and open a session."""
    session = await identity.sign_in_with_password(body.email, body.password)
    await db.commit()
    return session.as_response()


@router.post("/pin-login", response_model=PinLoginResponse)
@limiter.limit(settings.PIN_LOGIN_RATE_LIMIT)
async def pin_login(
    request: Request,
    body: PinLoginRequest,
    handler: Annotated[PinExchangeHandler, Depends(get_pin_exchange_handler)],
    db: DbSession,
):
    """Validate a kid's PIN and hand back a single-use magic-link token.

    The client redeems the token at ``/auth/verify-otp`` to obtain a session.
    """
    try:
        result = await handler.exchange_pin(body.user_id, body.pin)
        await db.commit()
    except AppError:
        raise
    except Exception:
        logger.exception("PIN login error")
        raise Internal("Internal server error")
    return result.as_response()


@router.post("/verify-otp", response_model=SessionResponse)
async def verify_otp(
    body: VerifyOtpRequest,
    identity: Annotated[IdentityService, Depends(get_identity_service)],
    db: DbSession,
):
    """Redeem a one-time token and open a session."""
    if body.type != PURPOSE_MAGICLINK:
        raise InvalidRequest(f"Unsupported token type: {body.type}")
    session = await identity.redeem_one_time_token(body.token_hash, body.type)
    await db.commit()
    return session.as_response()


@router.post("/refresh", response_model=SessionResponse)
async def refresh(
    body: RefreshRequest,
    identity: Annotated[IdentityService, Depends(get_identity_service)],
    db: DbSession,
):
    """Exchange a valid refresh token for a new token pair (rotation)."""
    session = await identity.refresh_session(body.refresh_token)
    await db.commit()
    return session.as_response()


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    body: RefreshRequest,
    identity: Annotated[IdentityService, Depends(get_identity_service)],
    db: DbSession,
):
    """Revoke the provided refresh token."""
    await identity.sign_out(body.refresh_token)
    await db.commit()
    # Always 204 regardless of whether the token was found
    return None
