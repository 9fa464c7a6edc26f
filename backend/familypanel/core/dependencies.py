import uuid
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from familypanel.core.errors import Forbidden, Unauthorized
from familypanel.core.security import decode_token
from familypanel.database import get_db
from familypanel.models.user import ROLE_PARENT, User
from familypanel.services.credential_store import SqlCredentialStore
from familypanel.services.identity_service import IdentityService
from familypanel.services.pin_exchange import PinExchangeHandler

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Extract and validate the access JWT from the Authorization header.

    Returns the User ORM instance for the authenticated user.

    Raises:
        Unauthorized: If the token is missing, invalid, not an access token,
            or the user no longer exists.
    """
    if credentials is None:
        raise Unauthorized("Authentication required")

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise Unauthorized("Authentication required")

    user_id: str | None = payload.get("sub")
    if user_id is None or payload.get("type") != "access":
        raise Unauthorized("Authentication required")

    try:
        key = uuid.UUID(user_id)
    except ValueError:
        raise Unauthorized("Authentication required")

    result = await db.execute(select(User).where(User.id == key))
    user = result.scalar_one_or_none()

    if user is None:
        raise Unauthorized("User profile not found")

    return user


def is_parent(user: User | None) -> bool:
    """True only for an authenticated user whose role is exactly 'parent'."""
    return user is not None and user.role == ROLE_PARENT


async def require_parent(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Dependency that ensures the current user has the 'parent' role.

    Raises:
        Forbidden: If the user is not a parent.
    """
    if not is_parent(current_user):
        raise Forbidden("Parent role required")
    return current_user


# ---------------------------------------------------------------------------
# Service providers (overridable in tests via app.dependency_overrides)
# ---------------------------------------------------------------------------

def get_credential_store(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SqlCredentialStore:
    return SqlCredentialStore(db)


def get_identity_service(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> IdentityService:
    return IdentityService(db)


def get_pin_exchange_handler(
    credentials: Annotated[SqlCredentialStore, Depends(get_credential_store)],
    identity: Annotated[IdentityService, Depends(get_identity_service)],
) -> PinExchangeHandler:
    return PinExchangeHandler(credentials, identity)
