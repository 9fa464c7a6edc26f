import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from familypanel.database import Base

PURPOSE_MAGICLINK = "magiclink"


class OneTimeToken(Base):
    """Single-use sign-in token bound to one email address and one purpose.

    Only the SHA-256 digest of the value handed to the client is stored.
    A token is redeemable while ``used_at`` is NULL and ``expires_at`` lies
    in the future.
    """

    __tablename__ = "one_time_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    token_digest: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    purpose: Mapped[str] = mapped_column(String(20), nullable=False, default=PURPOSE_MAGICLINK)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="one_time_tokens")  # noqa: F821

    def __repr__(self) -> str:
        return f"<OneTimeToken(id={self.id}, purpose={self.purpose!r}, used={self.used_at is not None})>"
