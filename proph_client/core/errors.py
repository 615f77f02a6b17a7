from __future__ import annotations

from typing import Any


class ProphClientError(Exception):
    """Base client error carrying a human-readable message."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthorizationError(ProphClientError):
    """Raised when the action is forbidden for the current role or identity."""


class IneligibleError(AuthorizationError):
    """Raised when the eligibility gate refuses an application."""

    def __init__(self, message: str, *, reasons: list[str] | None = None) -> None:
        super().__init__(message, status_code=None)
        self.reasons = list(reasons or [])


class StateError(ProphClientError):
    """Raised when the action is invalid given the current entity state."""


class NotFoundError(ProphClientError):
    """Raised when the referenced entity does not exist."""


class ValidationError(ProphClientError):
    """Raised when request-side input or a response payload is malformed."""


class MissingIdentifierError(ValidationError):
    """Raised when a mutation is attempted on a row without its true identifier."""


class NetworkError(ProphClientError):
    """Raised on transport failure with no structured server response."""


def extract_error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("error", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return fallback
