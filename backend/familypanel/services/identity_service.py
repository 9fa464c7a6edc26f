"""Identity Provider.

Issues and redeems single-use magic-link tokens and manages the session
lifecycle (password sign-in, refresh with rotation, sign-out).
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from jose import JWTError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from familypanel.config import settings
from familypanel.core.errors import NotFound, Unauthorized
from familypanel.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_one_time_token,
    hash_token,
    verify_password,
)
from familypanel.models.token import PURPOSE_MAGICLINK, OneTimeToken
from familypanel.models.user import RefreshToken, User

logger = logging.getLogger(__name__)

INVALID_LINK = "Email link is invalid or has expired"
INVALID_CREDENTIALS = "Invalid login credentials"
INVALID_REFRESH = "Invalid refresh token"


@dataclass(frozen=True)
class IssuedToken:
    token_hash: str
    expires_at: datetime


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: str
    expires_in: int
    expires_at: datetime
    user: User

    def as_response(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "bearer",
            "expires_in": self.expires_in,
            "expires_at": self.expires_at,
            "user": {
                "id": str(self.user.id),
                "email": self.user.email,
                "user_metadata": {"name": self.user.name},
            },
        }


class IdentityProvider(Protocol):
    async def issue_one_time_token(self, email: str) -> IssuedToken: ...


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class IdentityService:
    """Token and session issuer backed by the database."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # -- one-time tokens -----------------------------------------------------

    async def issue_one_time_token(
        self, email: str, purpose: str = PURPOSE_MAGICLINK
    ) -> IssuedToken:
        """Mint a single-use token addressed to *email*."""
        result = await self._db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFound("User not found")

        raw = generate_one_time_token()
        expires_at = datetime.now(timezone.utc) + timedelta(
            minutes=settings.MAGIC_LINK_EXPIRE_MINUTES
        )
        self._db.add(OneTimeToken(
            user_id=user.id,
            email=user.email,
            token_digest=hash_token(raw),
            purpose=purpose,
            expires_at=expires_at,
        ))
        await self._db.flush()
        logger.info("Issued %s token for user %s", purpose, user.id)
        return IssuedToken(token_hash=raw, expires_at=expires_at)

    async def redeem_one_time_token(
        self, token_hash: str, purpose: str = PURPOSE_MAGICLINK
    ) -> SessionTokens:
        """Consume a one-time token and open a session for its user.

        The token is marked used with a conditional update, so of two
        concurrent redemptions only one can succeed.
        """
        result = await self._db.execute(
            select(OneTimeToken).where(
                OneTimeToken.token_digest == hash_token(token_hash),
                OneTimeToken.purpose == purpose,
            )
        )
        record = result.scalar_one_or_none()
        now = datetime.now(timezone.utc)
        if record is None or record.used_at is not None:
            raise Unauthorized(INVALID_LINK)
        if _as_utc(record.expires_at) <= now:
            raise Unauthorized(INVALID_LINK)

        consumed = await self._db.execute(
            update(OneTimeToken)
            .where(OneTimeToken.id == record.id, OneTimeToken.used_at.is_(None))
            .values(used_at=now)
        )
        if consumed.rowcount != 1:
            raise Unauthorized(INVALID_LINK)

        user = await self._db.get(User, record.user_id)
        if user is None:
            raise Unauthorized(INVALID_LINK)
        return await self._create_session(user)

    # -- sessions ------------------------------------------------------------

    async def sign_in_with_password(self, email: str, password: str) -> SessionTokens:
        result = await self._db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None or user.password_hash is None:
            raise Unauthorized(INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            raise Unauthorized(INVALID_CREDENTIALS)

        return await self._create_session(user)

    async def refresh_session(self, refresh_token: str) -> SessionTokens:
        """Exchange a valid refresh token for a new pair (rotation)."""
        try:
            payload = decode_token(refresh_token)
        except JWTError:
            raise Unauthorized(INVALID_REFRESH)
        user_id = payload.get("sub")
        if user_id is None or payload.get("type") != "refresh":
            raise Unauthorized(INVALID_REFRESH)

        result = await self._db.execute(
            select(RefreshToken).where(
                RefreshToken.token_hash == hash_token(refresh_token),
                RefreshToken.revoked == False,  # noqa: E712
            )
        )
        stored = result.scalar_one_or_none()
        if stored is None:
            raise Unauthorized("Refresh token not found or already revoked")
        if _as_utc(stored.expires_at) < datetime.now(timezone.utc):
            raise Unauthorized("Refresh token expired")

        stored.revoked = True
        await self._db.flush()

        user = await self._db.get(User, uuid.UUID(user_id))
        if user is None:
            raise Unauthorized("User not found")
        return await self._create_session(user)

    async def sign_out(self, refresh_token: str) -> None:
        """Revoke *refresh_token*. Unknown tokens are ignored."""
        result = await self._db.execute(
            select(RefreshToken).where(
                RefreshToken.token_hash == hash_token(refresh_token),
                RefreshToken.revoked == False,  # noqa: E712
            )
        )
        stored = result.scalar_one_or_none()
        if stored is not None:
            stored.revoked = True
            await self._db.flush()

    async def _create_session(self, user: User) -> SessionTokens:
        """Create an access + refresh token pair and persist the refresh token."""
        expires_in = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        access_token = create_access_token(data={"sub": str(user.id)})
        raw_refresh = create_refresh_token(data={"sub": str(user.id)})

        self._db.add(RefreshToken(
            user_id=user.id,
            token_hash=hash_token(raw_refresh),
            expires_at=datetime.now(timezone.utc)
            + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        ))
        await self._db.flush()

        return SessionTokens(
            access_token=access_token,
            refresh_token=raw_refresh,
            expires_in=expires_in,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            user=user,
        )
