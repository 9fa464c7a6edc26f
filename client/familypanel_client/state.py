"""Observable holder of the current user."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .models import AuthUser

log = logging.getLogger(__name__)


class AuthState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class Snapshot:
    user: AuthUser | None
    loading: bool
    state: AuthState


SlotListener = Callable[[Snapshot], None]


class CurrentUserSlot:
    """Single-writer slot read by the rest of the client.

    Only the session controller writes; everyone else reads the properties
    or subscribes for snapshots after each write.
    """

    def __init__(self) -> None:
        self._user: AuthUser | None = None
        self._loading = True
        self._state = AuthState.UNINITIALIZED
        self._listeners: list[SlotListener] = []

    @property
    def user(self) -> AuthUser | None:
        return self._user

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def state(self) -> AuthState:
        return self._state

    def snapshot(self) -> Snapshot:
        return Snapshot(user=self._user, loading=self._loading, state=self._state)

    def publish(self, user: AuthUser | None) -> None:
        """Replace the user and leave the loading state."""
        self._user = user
        self._loading = False
        self._state = AuthState.AUTHENTICATED if user is not None else AuthState.UNAUTHENTICATED
        self._notify()

    def set_state(self, state: AuthState, *, loading: bool) -> None:
        self._state = state
        self._loading = loading
        self._notify()

    def subscribe(self, callback: SlotListener) -> Callable[[], None]:
        """Call *callback* after every write. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        snap = self.snapshot()
        for callback in list(self._listeners):
            try:
                callback(snap)
            except Exception:
                log.exception("Current-user listener failed")
