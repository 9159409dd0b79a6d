"""
portal_empleado.locking
~~~~~~~~~~~~~~~~~~~~~~~
Per-period mutual exclusion for the cache-aside flow.

Only one "re-check cache -> fetch remote -> save" sequence may run at a time
for a given (cuil, year, month). Distinct periods never block each other.

Slots are reference counted: a slot exists while somebody holds or waits
on it and is removed when the last one leaves, so the table never grows
beyond the number of periods with work in flight.

Usage::

    locks = PeriodLock()

    async with locks.hold("20-12345678-9", 2026, 1):
        ...

    lease = await locks.acquire("20123456789", 2026, 1, timeout=5)
    try:
        ...
    finally:
        lease.release()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from .exceptions import LockTimeoutError
from .utils import period_key

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0  # holder + waiters


class PeriodLease:
    """
    Handle for a held period lock.

    ``release()`` frees the lock exactly once; later calls are no-ops.
    Usable as an async context manager.
    """

    def __init__(self, owner: "PeriodLock", key: str, slot: _Slot) -> None:
        self._owner = owner
        self._slot = slot
        self._released = False
        self.key = key

    @property
    def held(self) -> bool:
        return not self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._slot.lock.release()
        self._owner._checkin(self.key, self._slot)

    async def __aenter__(self) -> "PeriodLease":
        return self

    async def __aexit__(self, *_) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "held" if self.held else "released"
        return f"<PeriodLease {self.key} {state}>"


class PeriodLock:
    """Table of per-period ``asyncio.Lock`` slots."""

    def __init__(self) -> None:
        self._slots: Dict[str, _Slot] = {}
        # The table may be touched from more than one event loop thread.
        self._guard = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def acquire(
        self,
        cuil: str,
        year: int,
        month: int,
        *,
        timeout: Optional[float] = None,
    ) -> PeriodLease:
        """
        Wait until this task is the sole holder of the period's lock.

        Cancellation while waiting propagates ``CancelledError`` and leaves
        nothing held. When ``timeout`` elapses ``LockTimeoutError`` is raised.
        """
        key = period_key(cuil, year, month)
        slot = self._checkout(key)
        try:
            if timeout is None:
                await slot.lock.acquire()
            else:
                await asyncio.wait_for(slot.lock.acquire(), timeout)
        except asyncio.TimeoutError:
            self._checkin(key, slot)
            raise LockTimeoutError(key, timeout) from None
        except BaseException:
            self._checkin(key, slot)
            raise
        logger.debug("Period lock %s acquired", key)
        return PeriodLease(self, key, slot)

    @asynccontextmanager
    async def hold(
        self,
        cuil: str,
        year: int,
        month: int,
        *,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[PeriodLease]:
        lease = await self.acquire(cuil, year, month, timeout=timeout)
        try:
            yield lease
        finally:
            lease.release()

    def pending(self, cuil: str, year: int, month: int) -> int:
        """Holder plus waiters currently registered for the period."""
        with self._guard:
            slot = self._slots.get(period_key(cuil, year, month))
            return slot.users if slot else 0

    def locked(self, cuil: str, year: int, month: int) -> bool:
        with self._guard:
            slot = self._slots.get(period_key(cuil, year, month))
            return bool(slot and slot.lock.locked())

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)

    # ------------------------------------------------------------------
    # Slot bookkeeping
    # ------------------------------------------------------------------

    def _checkout(self, key: str) -> _Slot:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _Slot()
            slot.users += 1
            return slot

    def _checkin(self, key: str, slot: _Slot) -> None:
        with self._guard:
            slot.users -= 1
            if slot.users <= 0 and self._slots.get(key) is slot:
                del self._slots[key]
