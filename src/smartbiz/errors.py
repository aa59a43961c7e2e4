from __future__ import annotations

from typing import Any, Optional


# PostgREST / Postgres codes meaning "the table is not there".
MISSING_TABLE_CODES = {"42P01", "PGRST205"}


class StoreError(Exception):
    """A call to the hosted database failed.

    ``code`` is the provider error code when one was returned (e.g. a
    Postgres SQLSTATE), ``status`` the HTTP status, if any.
    """

    def __init__(self, message: str, *, code: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status

    @classmethod
    def from_body(cls, status: int, body: Any) -> "StoreError":
        """Build the right error type from a PostgREST error body."""
        code: Optional[str] = None
        message = f"HTTP {status}"
        if isinstance(body, dict):
            raw_code = body.get("code")
            code = str(raw_code) if raw_code is not None else None
            message = str(body.get("message") or body.get("hint") or message)
        if is_missing_schema(code, message):
            return MissingSchemaError(message, code=code, status=status)
        if status == 401:
            return SessionExpiredError(message, code=code, status=status)
        return cls(message, code=code, status=status)


class MissingSchemaError(StoreError):
    """The products/transactions tables do not exist yet."""


class SessionExpiredError(StoreError):
    """The database rejected the access token (expired or revoked JWT)."""


class AuthError(Exception):
    """Invalid credentials, failed sign-up, or no session."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    @classmethod
    def from_body(cls, status: int, body: Any) -> "AuthError":
        message = "An error occurred during authentication."
        if isinstance(body, dict):
            for key in ("error_description", "msg", "message", "error"):
                value = body.get(key)
                if isinstance(value, str) and value.strip():
                    message = value.strip()
                    break
        return cls(message, status=status)


class ValidationError(Exception):
    pass


def is_missing_schema(code: Optional[str], message: Optional[str]) -> bool:
    if code in MISSING_TABLE_CODES:
        return True
    text = (message or "").lower()
    return "does not exist" in text and "relation" in text

