"""REST communication with the Family Panel backend.

Uses httpx for async calls. Non-2xx responses are turned into
:class:`~familypanel_client.errors.ApiError` carrying the server's
``{"error": ...}`` message; identity calls raise :class:`AuthApiError`.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import ClientConfig
from .errors import ApiError, AuthApiError

log = logging.getLogger(__name__)


def _error_message(resp: httpx.Response) -> str:
    """Pull the ``error`` text out of a failed response."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict):
        if body.get("error"):
            return str(body["error"])
        if body.get("detail"):
            return str(body["detail"])
    return resp.reason_phrase


class RestClient:
    """Async HTTP client for the Family Panel auth endpoints.

    Anonymous except for :meth:`fetch_profile`, which sends the caller's
    access token as a bearer token.
    """

    def __init__(self, config: ClientConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None

    # -- lifecycle -----------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._config.api_base,
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        return self._client

    async def close(self) -> None:
        """Shut down the underlying HTTP client gracefully."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error_cls: type[ApiError] = ApiError,
        access_token: str | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        client = await self._ensure_client()
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        try:
            resp = await client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as exc:
            log.error("%s %s request error: %s", method, path, exc)
            raise
        if resp.is_error:
            message = _error_message(resp)
            log.warning("%s %s failed with HTTP %s: %s", method, path, resp.status_code, message)
            raise error_cls(resp.status_code, message)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # -- endpoints -----------------------------------------------------------

    async def exchange_pin(self, user_id: str, pin: str) -> dict[str, Any]:
        """POST /auth/pin-login

        Returns
        -------
        dict
            ``{"success": true, "token": ..., "user": {...}}`` where
            ``token`` is the single-use value for :meth:`verify_otp`.
        """
        data = await self._request(
            "POST", "/auth/pin-login", json={"userId": user_id, "pin": pin}
        )
        log.info("PIN exchanged for a login token (user %s)", user_id)
        return data or {}

    async def fetch_profile(self, access_token: str) -> dict[str, Any]:
        """GET /auth/me -> ``{"id", "email", "name", "role"}``"""
        return await self._request("GET", "/auth/me", access_token=access_token) or {}

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """POST /auth/login -> session JSON."""
        return await self._request(
            "POST",
            "/auth/login",
            error_cls=AuthApiError,
            json={"email": email, "password": password},
        ) or {}

    async def verify_otp(self, token_hash: str, type: str = "magiclink") -> dict[str, Any]:
        """POST /auth/verify-otp -> session JSON."""
        return await self._request(
            "POST",
            "/auth/verify-otp",
            error_cls=AuthApiError,
            json={"token_hash": token_hash, "type": type},
        ) or {}

    async def refresh(self, refresh_token: str) -> dict[str, Any]:
        """POST /auth/refresh -> rotated session JSON."""
        return await self._request(
            "POST",
            "/auth/refresh",
            error_cls=AuthApiError,
            json={"refresh_token": refresh_token},
        ) or {}

    async def logout(self, refresh_token: str) -> None:
        """POST /auth/logout (revokes the refresh token)."""
        await self._request(
            "POST",
            "/auth/logout",
            error_cls=AuthApiError,
            json={"refresh_token": refresh_token},
        )
