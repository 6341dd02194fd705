"""
Exceptions raised by the Koi gateway and its collaborators.

Resolution outcomes (ambiguous/unknown/invalid input) are returned as values by
the asset resolver, never raised; only gateway-tier failures end up here.
"""

from typing import Optional


# Status 0 stands for "no HTTP response": connection failure or timeout.
TRANSPORT_FAILURE_STATUS = 0

TRANSIENT_STATUSES = frozenset({TRANSPORT_FAILURE_STATUS, 401, 429, 500, 502, 503, 504})


class KoiError(Exception):
    """Base error for this package."""
    pass


class ConfigError(KoiError):
    """Required configuration is missing or malformed."""
    pass


class BackendError(KoiError):
    """A backend call failed at the transport, HTTP or logical level."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        path: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.path = path

    def __str__(self) -> str:
        if self.status:
            return f"{self.message} (HTTP {self.status})"
        return self.message


class AuthError(BackendError):
    """The backend refused to issue a user token."""
    pass


def is_transient(error: BaseException) -> bool:
    """True for failures worth exactly one retry: no response, 401, 429 or 5xx."""
    if not isinstance(error, BackendError) or isinstance(error, AuthError):
        return False
    return error.status in TRANSIENT_STATUSES


__all__ = [
    "AuthError",
    "BackendError",
    "ConfigError",
    "KoiError",
    "TRANSIENT_STATUSES",
    "TRANSPORT_FAILURE_STATUS",
    "is_transient",
]
