"""Unit tests for PinExchangeHandler with in-memory collaborators."""

import pytest

from familypanel.core.errors import Forbidden, InvalidRequest, Unauthorized, Upstream
from familypanel.services.credential_store import UserProfile
from familypanel.services.identity_service import IssuedToken
from familypanel.services.pin_exchange import PinExchangeHandler

KID = UserProfile(id="u2", email="kid1@example.com", name="Alice Kid", role="kid")
PARENT = UserProfile(id="u1", email="parent@example.com", name="John Parent", role="parent")


class FakeCredentialStore:
    """Knows a fixed set of users; every user's PIN is ``pin``."""

    def __init__(self, users=(), pin="1234", error=None):
        self.users = {u.id: u for u in users}
        self.pin = pin
        self.error = error
        self.verify_calls = []
        self.lookup_calls = []

    async def verify_pin(self, user_id, pin):
        self.verify_calls.append((user_id, pin))
        if self.error is not None:
            raise self.error
        return user_id in self.users and pin == self.pin

    async def lookup_user_by_id(self, user_id):
        self.lookup_calls.append(user_id)
        return self.users.get(user_id)


class FakeIdentityProvider:
    def __init__(self, token_hash="mock-token-hash", error=None):
        self.token_hash = token_hash
        self.error = error
        self.calls = []

    async def issue_one_time_token(self, email):
        self.calls.append(email)
        if self.error is not None:
            raise self.error
        return IssuedToken(token_hash=self.token_hash, expires_at=None)


def _handler(store=None, identity=None):
    store = store or FakeCredentialStore(users=[KID, PARENT])
    identity = identity or FakeIdentityProvider()
    return PinExchangeHandler(store, identity), store, identity


class TestInputValidation:
    @pytest.mark.parametrize("user_id, pin", [
        (None, "1234"),
        ("u2", None),
        (None, None),
        ("", "1234"),
        ("u2", ""),
    ])
    async def test_missing_input(self, user_id, pin):
        handler, store, _ = _handler()
        with pytest.raises(InvalidRequest) as exc_info:
            await handler.exchange_pin(user_id, pin)
        assert exc_info.value.message == "User ID and PIN are required"
        assert exc_info.value.status_code == 400
        assert store.verify_calls == []

    @pytest.mark.parametrize("pin", [
        "123", "12345", "abcd", "12a4", " 1234", "1234 ", "1234\n", "12.4",
        "١٢٣٤",  # Arabic-Indic digits
    ])
    async def test_bad_pin_format_never_reaches_store(self, pin):
        handler, store, identity = _handler()
        with pytest.raises(InvalidRequest) as exc_info:
            await handler.exchange_pin("u2", pin)
        assert exc_info.value.message == "PIN must be 4 digits"
        assert store.verify_calls == []
        assert store.lookup_calls == []
        assert identity.calls == []


class TestVerification:
    async def test_wrong_pin(self):
        handler, _, identity = _handler()
        with pytest.raises(Unauthorized) as exc_info:
            await handler.exchange_pin("u2", "9999")
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Invalid PIN or user ID"
        assert identity.calls == []

    async def test_unknown_user_is_indistinguishable_from_wrong_pin(self):
        handler, _, _ = _handler()
        with pytest.raises(Unauthorized) as wrong_pin:
            await handler.exchange_pin("u2", "9999")
        with pytest.raises(Unauthorized) as unknown_user:
            await handler.exchange_pin("nobody", "1234")
        assert wrong_pin.value.status_code == unknown_user.value.status_code
        assert wrong_pin.value.message == unknown_user.value.message

    async def test_store_error_is_unauthorized_and_not_retried(self):
        store = FakeCredentialStore(users=[KID], error=RuntimeError("rpc down"))
        handler, _, identity = _handler(store=store)
        with pytest.raises(Unauthorized) as exc_info:
            await handler.exchange_pin("u2", "1234")
        assert exc_info.value.message == "Invalid PIN or user ID"
        assert len(store.verify_calls) == 1
        assert identity.calls == []

    async def test_profile_vanished_after_verification(self):
        store = FakeCredentialStore(users=[KID])
        handler, _, identity = _handler(store=store)
        store.users = {}

        async def always_valid(user_id, pin):
            return True

        store.verify_pin = always_valid
        with pytest.raises(Unauthorized):
            await handler.exchange_pin("u2", "1234")
        assert identity.calls == []


class TestRoleGate:
    async def test_parent_with_valid_pin_is_forbidden(self):
        handler, _, identity = _handler()
        with pytest.raises(Forbidden) as exc_info:
            await handler.exchange_pin("u1", "1234")
        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "PIN login is only for kids"
        assert identity.calls == []


class TestTokenIssue:
    async def test_kid_login_returns_minted_token(self):
        handler, store, identity = _handler()
        result = await handler.exchange_pin("u2", "1234")

        assert result.token == "mock-token-hash"
        assert result.user.as_dict() == {
            "id": "u2",
            "email": "kid1@example.com",
            "name": "Alice Kid",
            "role": "kid",
        }
        assert identity.calls == ["kid1@example.com"]
        assert store.verify_calls == [("u2", "1234")]

    async def test_response_payload(self):
        handler, _, _ = _handler()
        result = await handler.exchange_pin("u2", "1234")
        assert result.as_response() == {
            "success": True,
            "token": "mock-token-hash",
            "user": {
                "id": "u2",
                "email": "kid1@example.com",
                "name": "Alice Kid",
                "role": "kid",
            },
        }

    async def test_mint_failure_is_upstream(self):
        identity = FakeIdentityProvider(error=RuntimeError("provider down"))
        handler, _, _ = _handler(identity=identity)
        with pytest.raises(Upstream):
            await handler.exchange_pin("u2", "1234")
