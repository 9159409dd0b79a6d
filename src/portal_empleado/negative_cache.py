"""
portal_empleado.negative_cache
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
In-process memory of periods the remote source confirmed as missing.

Receipt listings walk up to a year of periods on every page load; without
this memory each empty month would hit the object store every time. An
entry expires ``ttl_seconds`` after it was recorded and the next lookup goes
remote again.

The memory lives in one process only and is lost on restart. Separate
instances do not share it.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict

from .utils import period_key

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

DEFAULT_TTL_SECONDS = 12 * 3600.0
DEFAULT_MAX_ENTRIES = 10_000


class NotFoundCache:
    """TTL map from period key to the monotonic time it expires."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._expires: Dict[str, float] = {}
        self._lock = threading.Lock()

    def contains(self, cuil: str, year: int, month: int) -> bool:
        """True while a not-found record for the period is still fresh."""
        key = period_key(cuil, year, month)
        with self._lock:
            expires = self._expires.get(key)
            if expires is None:
                return False
            if self._clock() >= expires:
                del self._expires[key]
                logger.debug("Not-found record expired for %s", key)
                return False
            return True

    def remember(self, cuil: str, year: int, month: int) -> None:
        key = period_key(cuil, year, month)
        with self._lock:
            self._expires.pop(key, None)
            self._expires[key] = self._clock() + self.ttl_seconds
            while len(self._expires) > self._max_entries:
                # dicts keep insertion order; the first key is the oldest record
                del self._expires[next(iter(self._expires))]

    def forget(self, cuil: str, year: int, month: int) -> None:
        with self._lock:
            self._expires.pop(period_key(cuil, year, month), None)

    def purge_expired(self) -> int:
        """Drop every stale record; returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, exp in self._expires.items() if now >= exp]
            for k in stale:
                del self._expires[k]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._expires.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._expires)
