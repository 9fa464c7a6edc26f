"""Shared fixtures for the Family Panel client test suite."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from familypanel_client.config import ClientConfig
from familypanel_client.models import AuthEvent, Session, SessionUser

# One "time unit"; the controller timings below are expressed in it so the
# suite runs fast while keeping the production ratios.
UNIT = 0.02


@pytest.fixture()
def tmp_config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Override the config directory so tests never touch the real filesystem."""
    monkeypatch.setattr("familypanel_client.config._config_dir", lambda: tmp_path)
    monkeypatch.delenv("FAMILYPANEL_SERVER_URL", raising=False)
    return tmp_path


@pytest.fixture()
def config(tmp_config_dir: Path) -> ClientConfig:
    return ClientConfig()


@pytest.fixture()
def fast_config() -> ClientConfig:
    """Production timings scaled down to UNIT."""
    return ClientConfig(
        server_url="http://testserver",
        init_timeout=10 * UNIT,
        profile_timeout=5 * UNIT,
        profile_retries=2,
        profile_retry_delay=0.2 * UNIT,
    )


@pytest.fixture()
def make_session() -> Callable[..., Session]:
    def _make(
        user_id: str = "u1",
        email: str = "parent@example.com",
        metadata: dict[str, Any] | None = None,
        expires_in: int = 3600,
    ) -> Session:
        return Session(
            access_token=f"access-{user_id}",
            refresh_token=f"refresh-{user_id}",
            user=SessionUser(id=user_id, email=email, user_metadata=metadata or {}),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        )

    return _make


class FakeSubscription:
    def __init__(self, owner: FakeIdentity, callback) -> None:
        self._owner = owner
        self._callback = callback

    def unsubscribe(self) -> None:
        if self._callback in self._owner.listeners:
            self._owner.listeners.remove(self._callback)


class FakeIdentity:
    """In-memory identity provider; tests drive notifications via :meth:`emit`."""

    def __init__(self, make_session: Callable[..., Session]) -> None:
        self._make_session = make_session
        self.listeners: list = []
        self.session: Session | None = None
        self.sign_in_error: Exception | None = None
        self.verify_error: Exception | None = None
        self.sign_out_error: Exception | None = None
        self.verify_calls: list[tuple[str, str]] = []
        self.sign_out_calls = 0

    def on_auth_state_change(self, callback) -> FakeSubscription:
        self.listeners.append(callback)
        return FakeSubscription(self, callback)

    def emit(self, event: AuthEvent, session: Session | None) -> None:
        for callback in list(self.listeners):
            callback(event, session)

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        if self.sign_in_error is not None:
            raise self.sign_in_error
        self.session = self._make_session("u1", email)
        self.emit(AuthEvent.SIGNED_IN, self.session)
        return self.session

    async def verify_otp(self, token_hash: str, type: str = "magiclink") -> Session:
        self.verify_calls.append((token_hash, type))
        if self.verify_error is not None:
            raise self.verify_error
        self.session = self._make_session("u2", "kid1@example.com")
        self.emit(AuthEvent.SIGNED_IN, self.session)
        return self.session

    async def get_session(self) -> Session | None:
        return self.session

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.session = None
        self.emit(AuthEvent.SIGNED_OUT, None)


class FakeApi:
    """Profile lookup + PIN exchange.

    ``script`` holds per-call behaviours for :meth:`fetch_profile`:
    ``None`` answers at once, a float sleeps that long first, an exception
    is raised.
    """

    def __init__(self) -> None:
        self.profiles: dict[str, dict[str, Any]] = {
            "u1": {"id": "u1", "email": "parent@example.com", "name": "Pat Parent", "role": "parent"},
            "u2": {"id": "u2", "email": "kid1@example.com", "name": "Alice Kid", "role": "kid"},
        }
        self.script: list[Any] = []
        self.fetch_calls = 0
        self.fetch_started: list[float] = []
        self.pin_calls: list[tuple[str, str]] = []
        self.pin_error: Exception | None = None

    async def fetch_profile(self, access_token: str) -> dict[str, Any]:
        self.fetch_calls += 1
        self.fetch_started.append(asyncio.get_running_loop().time())
        behaviour = self.script.pop(0) if self.script else None
        if isinstance(behaviour, Exception):
            raise behaviour
        if isinstance(behaviour, (int, float)):
            await asyncio.sleep(behaviour)
        return dict(self.profiles[access_token.removeprefix("access-")])

    async def exchange_pin(self, user_id: str, pin: str) -> dict[str, Any]:
        self.pin_calls.append((user_id, pin))
        if self.pin_error is not None:
            raise self.pin_error
        return {"success": True, "token": "mock-token-hash", "user": self.profiles["u2"]}


@pytest.fixture()
def identity(make_session) -> FakeIdentity:
    return FakeIdentity(make_session)


@pytest.fixture()
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture()
def wait_until() -> Callable[..., Any]:
    """Poll *predicate* until it holds or *timeout* seconds pass."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not reached in time")
            await asyncio.sleep(UNIT / 4)

    return _wait
