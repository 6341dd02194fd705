"""Per-user credentials for calls to the Koi backend."""

from .token_cache import CachedToken, MIN_TTL_SECONDS, UserTokenCache

__all__ = [
    "CachedToken",
    "MIN_TTL_SECONDS",
    "UserTokenCache",
]
