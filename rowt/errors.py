from __future__ import annotations

from typing import Any


class RowtError(RuntimeError):
    """Base class for every error raised by the console."""


class UnauthenticatedError(RowtError):
    def __init__(self, message: str = "Unauthenticated request.") -> None:
        super().__init__(message)
        self.status_code = 401


class RefreshFailedError(UnauthenticatedError):
    """The refresh token was missing, rejected, or the exchange never settled.

    The session is cleared before this is raised, and every caller waiting
    on the same refresh receives it.
    """

    def __init__(self, message: str = "Token refresh failed.") -> None:
        super().__init__(message)


class APIError(RowtError):
    def __init__(self, status_code: int, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class ValidationError(RowtError, ValueError):
    """Raised for missing or invalid arguments before any request is sent."""
