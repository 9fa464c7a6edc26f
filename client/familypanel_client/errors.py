"""Errors raised by the client when the backend rejects a request."""

from __future__ import annotations


class ApiError(Exception):
    """Non-2xx response from the Family Panel API.

    ``message`` carries the server's ``error`` text verbatim so it can be
    shown to the user as-is.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code}, message={self.message!r})"


class AuthApiError(ApiError):
    """Identity-provider call rejected (bad credentials, expired link, ...)."""
