"""PIN Exchange Handler.

Turns a kid's ``(user_id, pin)`` pair into a single-use magic-link token:

1. reject missing input and anything but four digits before any I/O,
2. ask the Credential Store to verify the PIN,
3. refuse non-kid accounts,
4. have the Identity Provider mint a token addressed to the kid's email.

"Unknown user" and "wrong PIN" produce the same error so the endpoint
cannot be used to enumerate accounts. Verification is never retried.
"""

import logging
from dataclasses import dataclass

from familypanel.core.errors import Forbidden, InvalidRequest, Unauthorized, Upstream
from familypanel.models.user import ROLE_KID
from familypanel.services.credential_store import CredentialStore, UserProfile, is_valid_pin
from familypanel.services.identity_service import IdentityProvider

logger = logging.getLogger(__name__)

MISSING_INPUT = "User ID and PIN are required"
BAD_PIN_FORMAT = "PIN must be 4 digits"
INVALID_PIN = "Invalid PIN or user ID"
KIDS_ONLY = "PIN login is only for kids"


@dataclass(frozen=True)
class PinExchangeResult:
    token: str
    user: UserProfile

    def as_response(self) -> dict:
        return {"success": True, "token": self.token, "user": self.user.as_dict()}


class PinExchangeHandler:
    def __init__(self, credentials: CredentialStore, identity: IdentityProvider) -> None:
        self._credentials = credentials
        self._identity = identity

    async def exchange_pin(self, user_id: str | None, pin: str | None) -> PinExchangeResult:
        if not user_id or not pin:
            raise InvalidRequest(MISSING_INPUT)
        if not is_valid_pin(pin):
            raise InvalidRequest(BAD_PIN_FORMAT)

        try:
            verified = await self._credentials.verify_pin(user_id, pin)
        except Exception:
            logger.exception("PIN verification failed for user %s", user_id)
            verified = False
        if not verified:
            raise Unauthorized(INVALID_PIN)

        profile = await self._credentials.lookup_user_by_id(user_id)
        if profile is None:
            raise Unauthorized(INVALID_PIN)
        if profile.role != ROLE_KID:
            logger.warning("PIN login refused for non-kid user %s", profile.id)
            raise Forbidden(KIDS_ONLY)

        try:
            issued = await self._identity.issue_one_time_token(profile.email)
        except Exception as exc:
            logger.exception("Could not mint login token for user %s", profile.id)
            raise Upstream("Could not create login token") from exc

        logger.info("PIN login token issued for kid %s", profile.id)
        return PinExchangeResult(token=issued.token_hash, user=profile)
