"""SQLAlchemy ORM models.

All models are imported here so that ``Base.metadata`` knows every table
before ``create_all`` runs.
"""

from familypanel.models.token import OneTimeToken  # noqa: F401
from familypanel.models.user import RefreshToken, User  # noqa: F401

__all__ = [
    "OneTimeToken",
    "RefreshToken",
    "User",
]
