"""Auth Session Controller.

Turns identity-provider notifications and explicit sign-in/out requests into
the published current user (:class:`~.state.CurrentUserSlot`).

Lifecycle::

    UNINITIALIZED --start()--> INITIALIZING --INITIAL_SESSION--> AUTHENTICATED
                                     |                        \\-> UNAUTHENTICATED
                                     \\--watchdog-------------> UNAUTHENTICATED

Notifications that arrive before ``INITIAL_SESSION`` are ignored. Every
resolution takes a generation number and only the newest one may publish,
so a slow profile lookup cannot overwrite a later sign-in or sign-out.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Protocol

from .config import ClientConfig
from .identity import Subscription
from .models import AuthEvent, AuthUser, Session
from .policy import resolve_with_policy
from .state import AuthState, CurrentUserSlot

log = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    def on_auth_state_change(self, callback: Any) -> Subscription: ...

    async def sign_in_with_password(self, email: str, password: str) -> Session: ...

    async def verify_otp(self, token_hash: str, type: str = "magiclink") -> Session: ...

    async def get_session(self) -> Session | None: ...

    async def sign_out(self) -> None: ...


class ProfileLookup(Protocol):
    async def fetch_profile(self, access_token: str) -> dict[str, Any]: ...


class PinExchange(Protocol):
    async def exchange_pin(self, user_id: str, pin: str) -> dict[str, Any]: ...


class AuthSessionController:
    def __init__(
        self,
        identity: IdentityProvider,
        profiles: ProfileLookup,
        pin_exchange: PinExchange,
        *,
        config: ClientConfig | None = None,
        slot: CurrentUserSlot | None = None,
    ) -> None:
        self._identity = identity
        self._profiles = profiles
        self._pin_exchange = pin_exchange
        self._config = config or ClientConfig()
        self.slot = slot or CurrentUserSlot()

        self._subscription: Subscription | None = None
        self._watchdog: asyncio.TimerHandle | None = None
        self._initialized = False
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()
        self._ready: asyncio.Event | None = None

    # -- read side -----------------------------------------------------------

    @property
    def user(self) -> AuthUser | None:
        return self.slot.user

    @property
    def loading(self) -> bool:
        return self.slot.loading

    @property
    def state(self) -> AuthState:
        return self.slot.state

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to the identity provider and arm the startup watchdog."""
        if self._subscription is not None:
            return
        self._ready = asyncio.Event()
        self.slot.set_state(AuthState.INITIALIZING, loading=True)
        loop = asyncio.get_running_loop()
        self._watchdog = loop.call_later(self._config.init_timeout, self._on_init_timeout)
        self._subscription = self._identity.on_auth_state_change(self._on_auth_state_change)
        log.debug("Auth session controller started")

    async def wait_ready(self) -> None:
        """Block until the first user (or no user) has been published."""
        if self._ready is None:
            raise RuntimeError("Controller not started")
        await self._ready.wait()

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._cancel_watchdog()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _on_init_timeout(self) -> None:
        self._watchdog = None
        if not self.slot.loading:
            return
        log.warning(
            "No initial session after %.1fs, continuing signed out",
            self._config.init_timeout,
        )
        self.slot.set_state(AuthState.UNAUTHENTICATED, loading=False)
        self._mark_ready()

    def _mark_ready(self) -> None:
        if self._ready is not None:
            self._ready.set()

    # -- notifications -------------------------------------------------------

    def _on_auth_state_change(self, event: AuthEvent, session: Session | None) -> None:
        if not self._initialized:
            if event is not AuthEvent.INITIAL_SESSION:
                log.debug("Ignoring %s before initial session", event.value)
                return
            self._initialized = True
            self._cancel_watchdog()

        generation = self._next_generation()
        if session is None:
            self._publish(None, generation)
        else:
            self._spawn(self._resolve_and_publish(session, generation))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("Profile resolution crashed", exc_info=task.exception())

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    async def _resolve_and_publish(self, session: Session, generation: int) -> AuthUser:
        user = await self.resolve_profile(session)
        self._publish(user, generation)
        return user

    def _publish(self, user: AuthUser | None, generation: int) -> None:
        if generation != self._generation:
            log.debug("Discarding stale resolution %d (current %d)", generation, self._generation)
            return
        self.slot.publish(user)
        self._mark_ready()

    # -- operations ----------------------------------------------------------

    async def resolve_profile(self, session: Session) -> AuthUser:
        """Session identity merged with the stored profile.

        Never raises for lookup failures: after the retries are spent the
        user comes back with no role and a name derived from the session.
        """
        identity = session.user

        async def attempt() -> AuthUser:
            profile = await self._profiles.fetch_profile(session.access_token)
            return AuthUser.from_profile(identity, profile)

        return await resolve_with_policy(
            attempt,
            max_retries=self._config.profile_retries,
            timeout=self._config.profile_timeout,
            delay=self._config.profile_retry_delay,
            fallback=lambda: AuthUser.fallback(identity),
        )

    async def sign_in(self, email: str, password: str) -> AuthUser:
        """Password sign-in. Publishes the resolved user before returning."""
        session = await self._identity.sign_in_with_password(email, password)
        user = await self._resolve_and_publish(session, self._next_generation())
        log.info("Signed in as %s", user.email)
        return user

    async def sign_in_with_pin(self, user_id: str, pin: str) -> None:
        """Kid sign-in with a 4-digit PIN.

        The server's error message is surfaced unchanged through
        :class:`~.errors.ApiError`. On success the user is published by the
        resulting ``SIGNED_IN`` notification.
        """
        data = await self._pin_exchange.exchange_pin(user_id, pin)
        session = await self._identity.verify_otp(token_hash=data["token"], type="magiclink")
        if not self._initialized:
            # SIGNED_IN was dropped before the initial session arrived.
            await self._resolve_and_publish(session, self._next_generation())

    async def sign_out(self) -> None:
        """Sign out; the local user is cleared even if the provider call fails."""
        try:
            await self._identity.sign_out()
        except Exception:
            log.warning("Provider sign-out failed, clearing local session anyway", exc_info=True)
        self._publish(None, self._next_generation())

    async def refresh_user(self) -> None:
        """Re-resolve the profile of the current session, if any."""
        session = await self._identity.get_session()
        if session is None:
            return
        await self._resolve_and_publish(session, self._next_generation())
