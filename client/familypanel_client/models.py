"""Value types shared by the identity client and the session controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

ROLE_PARENT = "parent"
ROLE_KID = "kid"


class AuthEvent(str, Enum):
    """Auth-state notifications emitted by the identity client."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass(frozen=True)
class SessionUser:
    """Identity attached to a session (before the profile lookup)."""

    id: str
    email: str = ""
    user_metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> SessionUser:
        return cls(
            id=str(data["id"]),
            email=data.get("email") or "",
            user_metadata=dict(data.get("user_metadata") or {}),
        )

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "user_metadata": dict(self.user_metadata)}


@dataclass(frozen=True)
class Session:
    access_token: str
    refresh_token: str
    user: SessionUser
    expires_at: datetime | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Session:
        """Build a session from the server's session JSON.

        ``expires_at`` is epoch seconds; when only ``expires_in`` is present
        it is counted from now.
        """
        expires_at: datetime | None = None
        if data.get("expires_at") is not None:
            expires_at = datetime.fromtimestamp(int(data["expires_at"]), tz=timezone.utc)
        elif data.get("expires_in") is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(data["expires_in"]))
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            user=SessionUser.from_payload(data["user"]),
            expires_at=expires_at,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": int(self.expires_at.timestamp()) if self.expires_at else None,
            "user": self.user.to_payload(),
        }

    def is_expired(self, margin: float = 0.0) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= datetime.now(timezone.utc) + timedelta(seconds=margin)


@dataclass(frozen=True)
class AuthUser:
    """The published current user: session identity plus profile fields.

    ``role`` is None when the profile could not be loaded.
    """

    id: str
    email: str
    role: str | None
    name: str
    user_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_parent(self) -> bool:
        return self.role == ROLE_PARENT

    @property
    def is_kid(self) -> bool:
        return self.role == ROLE_KID

    @classmethod
    def from_profile(cls, user: SessionUser, profile: dict[str, Any]) -> AuthUser:
        return cls(
            id=user.id,
            email=user.email,
            role=profile.get("role"),
            name=profile.get("name") or fallback_name(user),
            user_metadata=dict(user.user_metadata),
        )

    @classmethod
    def fallback(cls, user: SessionUser) -> AuthUser:
        """Degraded user for when every profile lookup attempt failed."""
        return cls(
            id=user.id,
            email=user.email,
            role=None,
            name=fallback_name(user),
            user_metadata=dict(user.user_metadata),
        )


def fallback_name(user: SessionUser) -> str:
    """Metadata name, else the email's local part, else ``"User"``."""
    local_part = user.email.split("@", 1)[0] if user.email else ""
    return user.user_metadata.get("name") or local_part or "User"
