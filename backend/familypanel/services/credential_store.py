"""Credential Store.

Holds the user records and verifies kid PINs against the stored bcrypt hash.
The hash itself never leaves this module: callers only ever see a boolean.
"""

import logging
import re
import uuid
from dataclasses import asdict, dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from familypanel.core.errors import InvalidRequest, NotFound
from familypanel.core.security import get_password_hash, verify_password
from familypanel.models.user import ROLE_KID, User

logger = logging.getLogger(__name__)

PIN_RE = re.compile(r"[0-9]{4}")


def is_valid_pin(pin: str) -> bool:
    """Return True if *pin* is exactly four ASCII digits."""
    return PIN_RE.fullmatch(pin) is not None


@dataclass(frozen=True)
class UserProfile:
    """Read-only projection of a user record."""

    id: str
    email: str
    name: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(id=str(user.id), email=user.email, name=user.name, role=user.role)

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


class CredentialStore(Protocol):
    async def verify_pin(self, user_id: str, pin: str) -> bool: ...

    async def lookup_user_by_id(self, user_id: str) -> UserProfile | None: ...


class SqlCredentialStore:
    """Credential Store backed by the ``users`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _get_user(self, user_id: str) -> User | None:
        try:
            key = uuid.UUID(str(user_id))
        except ValueError:
            return None
        result = await self._db.execute(select(User).where(User.id == key))
        return result.scalar_one_or_none()

    async def verify_pin(self, user_id: str, pin: str) -> bool:
        """Return True only if the user exists, has a PIN and it matches.

        Unknown users, malformed ids and users without a PIN all yield
        False so that callers cannot tell them apart.
        """
        user = await self._get_user(user_id)
        if user is None or user.pin_hash is None:
            return False
        return verify_password(pin, user.pin_hash)

    async def lookup_user_by_id(self, user_id: str) -> UserProfile | None:
        user = await self._get_user(user_id)
        if user is None:
            return None
        return UserProfile.from_user(user)

    async def set_pin(self, user_id: str, pin: str) -> None:
        """Hash and store a new PIN for a kid."""
        user = await self._get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        if user.role != ROLE_KID:
            raise InvalidRequest("User must be a kid to set PIN")
        if not is_valid_pin(pin):
            raise InvalidRequest("PIN must be 4 digits")

        user.pin_hash = get_password_hash(pin)
        await self._db.flush()
        logger.info("PIN updated for user %s", user.id)
