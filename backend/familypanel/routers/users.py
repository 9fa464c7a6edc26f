"""User router: parent-only views of the kids in the household."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from familypanel.core.dependencies import get_credential_store, require_parent
from familypanel.database import get_db
from familypanel.models.user import ROLE_KID, User
from familypanel.schemas.user import KidListResponse, KidResponse, SetPinRequest
from familypanel.services.credential_store import SqlCredentialStore

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/kids", response_model=KidListResponse)
async def list_kids(
    db: Annotated[AsyncSession, Depends(get_db)],
    _parent: Annotated[User, Depends(require_parent)],
):
    """List every user with the 'kid' role, ordered by name."""
    result = await db.execute(
        select(User).where(User.role == ROLE_KID).order_by(User.name)
    )
    kids = result.scalars().all()
    return {"kids": [KidResponse.model_validate(kid) for kid in kids]}


@router.put("/{user_id}/pin", status_code=status.HTTP_204_NO_CONTENT)
async def set_kid_pin(
    user_id: UUID,
    body: SetPinRequest,
    credentials: Annotated[SqlCredentialStore, Depends(get_credential_store)],
    _parent: Annotated[User, Depends(require_parent)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Set or replace a kid's 4-digit login PIN."""
    await credentials.set_pin(str(user_id), body.pin)
    await db.commit()
    return None
