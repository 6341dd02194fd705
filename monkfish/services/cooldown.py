"""Advisory per-key cooldown used to drop rapid repeat commands."""

import time
from typing import Callable, Dict, Optional

from ..config import settings

MAX_TRACKED_KEYS = 10_000


class CooldownGate:
    """
    Reject a key seen again within ``cooldown_ms``.

    Keys are free-form; command handlers use ``f"{user_id}:{action}"``. Only
    accepted hits restart the window. Once ``max_keys`` keys are tracked, keys
    whose window has passed are dropped.
    """

    def __init__(
        self,
        cooldown_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = MAX_TRACKED_KEYS,
    ) -> None:
        self.cooldown_s = (settings.command_cooldown_ms if cooldown_ms is None else cooldown_ms) / 1000
        self.max_keys = max_keys
        self._clock = clock
        self._last: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._last)

    def hit(self, key: str) -> bool:
        """True if ``key`` is still cooling down; otherwise records the call."""
        now = self._clock()
        last = self._last.get(key)
        if last is not None and now - last < self.cooldown_s:
            return True

        if last is None and len(self._last) >= self.max_keys:
            self._prune(now)
        self._last[key] = now
        return False

    def _prune(self, now: float) -> None:
        self._last = {k: t for k, t in self._last.items() if now - t < self.cooldown_s}

    @staticmethod
    def key_for(user_id: object, action: str) -> str:
        return f"{user_id}:{action}"
