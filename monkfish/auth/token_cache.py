import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from ..config import MIN_TOKEN_TTL_SECONDS, settings

# Floor on token lifetime, applied to every TTL
MIN_TTL_SECONDS = MIN_TOKEN_TTL_SECONDS

UserId = Union[str, int]


@dataclass
class CachedToken:
    token: str
    expires_at: float


class UserTokenCache:
    """Per-user bearer token cache with lazy TTL expiry"""

    def __init__(
        self,
        default_ttl: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if default_ttl is None:
            default_ttl = settings.koi_user_token_ttl_sec
        self.default_ttl = max(MIN_TTL_SECONDS, default_ttl)
        self._clock = clock
        self._tokens: Dict[str, CachedToken] = {}
        self._lock = asyncio.Lock()

    async def get(self, user_id: UserId) -> Optional[str]:
        key = str(user_id)
        async with self._lock:
            entry = self._tokens.get(key)
            if entry is None:
                return None

            if self._clock() >= entry.expires_at:
                del self._tokens[key]
                return None

            return entry.token

    async def set(self, user_id: UserId, token: str, ttl: Optional[int] = None) -> None:
        ttl = max(MIN_TTL_SECONDS, self.default_ttl if ttl is None else ttl)
        async with self._lock:
            self._tokens[str(user_id)] = CachedToken(token=token, expires_at=self._clock() + ttl)

    async def invalidate(self, user_id: Optional[UserId] = None) -> None:
        """Drop one user's token, or every token when no user is given."""
        async with self._lock:
            if user_id is None:
                self._tokens.clear()
            else:
                self._tokens.pop(str(user_id), None)