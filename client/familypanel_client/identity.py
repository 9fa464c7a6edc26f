"""Client side of the identity provider.

Holds the current session, keeps it fresh and tells subscribers about every
change through auth-state notifications (:class:`~.models.AuthEvent`).

Each new subscriber receives ``INITIAL_SESSION`` once the stored session has
been recovered. Sign-in, OTP verification, refresh and sign-out then notify
every subscriber synchronously, in subscription order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import httpx

from .api import RestClient
from .errors import AuthApiError
from .models import AuthEvent, Session
from .session_store import SessionStore

log = logging.getLogger(__name__)

AuthListener = Callable[[AuthEvent, "Session | None"], None]

# Refresh access tokens this many seconds before they expire.
REFRESH_MARGIN = 60.0


class Subscription:
    """Handle returned by :meth:`IdentityClient.on_auth_state_change`."""

    def __init__(self, owner: IdentityClient, callback: AuthListener) -> None:
        self._owner = owner
        self._callback = callback

    def unsubscribe(self) -> None:
        self._owner._remove_listener(self._callback)


class IdentityClient:
    def __init__(self, rest: RestClient, store: SessionStore | None = None) -> None:
        self._rest = rest
        self._store = store
        self._session: Session | None = None
        self._listeners: list[AuthListener] = []
        self._recovery: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()

    @property
    def session(self) -> Session | None:
        return self._session

    # -- subscriptions -------------------------------------------------------

    def on_auth_state_change(self, callback: AuthListener) -> Subscription:
        """Register *callback*; it receives ``INITIAL_SESSION`` first."""
        self._listeners.append(callback)
        task = asyncio.get_running_loop().create_task(self._emit_initial(callback))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return Subscription(self, callback)

    def _remove_listener(self, callback: AuthListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def _emit_initial(self, callback: AuthListener) -> None:
        await self._ensure_recovered()
        if callback in self._listeners:
            self._call(callback, AuthEvent.INITIAL_SESSION, self._session)

    def _notify(self, event: AuthEvent, session: Session | None) -> None:
        log.debug("Auth event %s (session=%s)", event.value, session is not None)
        for callback in list(self._listeners):
            self._call(callback, event, session)

    @staticmethod
    def _call(callback: AuthListener, event: AuthEvent, session: Session | None) -> None:
        try:
            callback(event, session)
        except Exception:
            log.exception("Auth listener failed on %s", event.value)

    # -- session recovery ----------------------------------------------------

    async def _ensure_recovered(self) -> None:
        if self._recovery is None:
            self._recovery = asyncio.ensure_future(self._recover_session())
        await asyncio.shield(self._recovery)

    async def _recover_session(self) -> None:
        if self._store is None:
            return
        session = self._store.load()
        if session is None:
            return
        stale = session.is_expired(REFRESH_MARGIN)
        if stale:
            try:
                data = await self._rest.refresh(session.refresh_token)
            except AuthApiError as exc:
                log.info("Stored session is no longer valid: %s", exc.message)
                if self._session is None:
                    self._store.clear()
                return
            except httpx.HTTPError as exc:
                log.warning("Could not refresh stored session: %s", exc)
                return
            session = Session.from_payload(data)
        # A sign-in that finished meanwhile wins over the stored session.
        if self._session is not None:
            log.debug("Discarding recovered session, signed in meanwhile")
            return
        self._session = session
        if stale:
            self._store.save(session)
        log.info("Recovered session for %s", session.user.email or session.user.id)

    # -- operations ----------------------------------------------------------

    def _set_session(self, session: Session, event: AuthEvent) -> Session:
        self._session = session
        if self._store is not None:
            self._store.save(session)
        self._notify(event, session)
        return session

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        data = await self._rest.login(email, password)
        return self._set_session(Session.from_payload(data), AuthEvent.SIGNED_IN)

    async def verify_otp(self, token_hash: str, type: str = "magiclink") -> Session:
        """Redeem a single-use login token for a session."""
        data = await self._rest.verify_otp(token_hash, type)
        return self._set_session(Session.from_payload(data), AuthEvent.SIGNED_IN)

    async def refresh_session(self) -> Session:
        if self._session is None:
            raise AuthApiError(401, "Auth session missing")
        data = await self._rest.refresh(self._session.refresh_token)
        return self._set_session(Session.from_payload(data), AuthEvent.TOKEN_REFRESHED)

    async def get_session(self) -> Session | None:
        """Current session, refreshed first when it is about to expire.

        A refresh the server rejects ends the session.
        """
        await self._ensure_recovered()
        if self._session is not None and self._session.is_expired(REFRESH_MARGIN):
            try:
                return await self.refresh_session()
            except AuthApiError as exc:
                log.info("Session refresh rejected: %s", exc.message)
                self._clear()
                return None
        return self._session

    async def sign_out(self) -> None:
        """Revoke the refresh token. Local state is cleared even on failure."""
        session = self._session
        try:
            if session is not None:
                await self._rest.logout(session.refresh_token)
        finally:
            self._clear()

    def _clear(self) -> None:
        self._session = None
        if self._store is not None:
            self._store.clear()
        self._notify(AuthEvent.SIGNED_OUT, None)

    async def close(self) -> None:
        for task in list(self._pending):
            task.cancel()
        if self._recovery is not None and not self._recovery.done():
            self._recovery.cancel()
        await self._rest.close()
