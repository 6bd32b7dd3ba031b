"""
Per-provider call quotas.

Each provider gets an optional per-minute and per-day limit. Calls are
tracked in sliding windows; a call that would exceed either limit is
refused and not recorded.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


MINUTE = 60.0
DAY = 24 * 60 * 60.0


class RateLimitTracker:
    """
    Sliding-window call counter per provider.

    Example:
        tracker = RateLimitTracker()
        tracker.configure("twelvedata", per_minute=8, per_day=800)
        if tracker.try_acquire("twelvedata"):
            ...
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._limits: Dict[str, Tuple[Optional[int], Optional[int]]] = {}
        self._calls: Dict[str, Deque[float]] = {}
        self._refused: Dict[str, int] = {}
        self._lock = threading.Lock()

    def configure(self, provider: str, per_minute: Optional[int] = None, per_day: Optional[int] = None) -> None:
        with self._lock:
            self._limits[provider] = (per_minute, per_day)
            self._calls.setdefault(provider, deque())
            self._refused.setdefault(provider, 0)

    def _prune(self, provider: str, now: float) -> Deque[float]:
        calls = self._calls[provider]
        while calls and now - calls[0] >= DAY:
            calls.popleft()
        return calls

    @staticmethod
    def _in_last_minute(calls: Deque[float], now: float) -> int:
        count = 0
        for ts in reversed(calls):
            if now - ts >= MINUTE:
                break
            count += 1
        return count

    def try_acquire(self, provider: str) -> bool:
        """Record one call for ``provider`` if both windows have room."""
        with self._lock:
            limits = self._limits.get(provider)
            if limits is None:
                return True

            per_minute, per_day = limits
            now = self._clock()
            calls = self._prune(provider, now)

            if per_day is not None and len(calls) >= per_day:
                self._refused[provider] += 1
                logger.warning(f"Daily quota exhausted for {provider}: {len(calls)}/{per_day}")
                return False
            if per_minute is not None and self._in_last_minute(calls, now) >= per_minute:
                self._refused[provider] += 1
                logger.warning(f"Per-minute quota exhausted for {provider}: {per_minute}/min")
                return False

            calls.append(now)
            return True

    def remaining(self, provider: str) -> Optional[Dict[str, Optional[int]]]:
        """Calls left in each window, or None for an untracked provider."""
        with self._lock:
            limits = self._limits.get(provider)
            if limits is None:
                return None
            per_minute, per_day = limits
            now = self._clock()
            calls = self._prune(provider, now)
            return {
                "minute": None if per_minute is None else max(0, per_minute - self._in_last_minute(calls, now)),
                "day": None if per_day is None else max(0, per_day - len(calls)),
            }

    def stats(self) -> Dict[str, Dict[str, Optional[int]]]:
        result = {}
        for provider in list(self._limits):
            remaining = self.remaining(provider)
            result[provider] = {**remaining, "refused": self._refused.get(provider, 0)}
        return result
