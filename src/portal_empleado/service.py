"""
portal_empleado.service
~~~~~~~~~~~~~~~~~~~~~~~
Cache-aside orchestration in front of the remote receipt source.

Flow for one period
-------------------
1. Read the latest snapshot from the catalog. A hit returns at once and
   never touches the period lock.
2. On a miss take the period lock, read again (another request may have
   filled the slot while this one waited) and only then ask the source.
3. A download is stored as a new version; every other fetch result is
   reported through ``ReceiptStatus`` without touching the catalog.

``refresh_period`` always runs step 2 and hands the current snapshot's
ETag / VersionId to the source so an unchanged object is not downloaded.

``list_receipts`` applies the flow to every period in the allowed window
and remembers periods the source confirmed as missing (``NotFoundCache``)
so paging through a receipt list does not query empty months again.

Blocking work (SQLite, object store) runs in worker threads. Work started
under a period lock always finishes before the lock is released, even when
the awaiting request is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from .config import Config
from .exceptions import PayrollParseError
from .locking import PeriodLock
from .models import (
    Downloaded,
    NotFound,
    NotModified,
    PeriodOutcome,
    ReceiptCacheEntry,
    ReceiptDocument,
    ReceiptStatus,
    SourceDisabled,
)
from .negative_cache import NotFoundCache
from .payroll import parse_receipts
from .source import ObjectStore, ReceiptSource
from .storage import ReceiptCatalog, SQLiteReceiptCatalog
from .utils import (
    allowed_periods,
    normalize_receipt_id,
    parse_receipt_id,
    require_cuil,
    utc_now,
    validate_period,
    validate_year,
)

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


async def _run_to_completion(coro: Awaitable[PeriodOutcome]) -> PeriodOutcome:
    """
    Await ``coro`` so that cancelling the caller does not interrupt it.

    Worker threads cannot be stopped, so a cancelled caller keeps waiting
    (still holding the period lock) until the fetch and save are done, and
    only then re-raises ``CancelledError``.
    """
    task = asyncio.ensure_future(coro)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        while not task.done():
            try:
                await asyncio.wait({task})
            except asyncio.CancelledError:
                continue
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Period work finished with an error after cancellation: %s", task.exception())
        raise


class ReceiptService:
    """
    Entry point used by the HTTP adapter and the CLI.

    Args:
        catalog:          Local versioned store.
        source:           Remote receipt source.
        period_lock:      Shared lock table (one per process).
        not_found_cache:  Memory of periods confirmed missing upstream.
        max_months_back:  Size of the allowed period window.
        lock_timeout:     Seconds to wait for a period lock, ``None`` = forever.
        now:              Clock returning an aware UTC ``datetime``.
    """

    def __init__(
        self,
        catalog: ReceiptCatalog,
        source: ReceiptSource,
        *,
        period_lock: Optional[PeriodLock] = None,
        not_found_cache: Optional[NotFoundCache] = None,
        max_months_back: int = 12,
        lock_timeout: Optional[float] = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.catalog = catalog
        self.source = source
        self.period_lock = period_lock or PeriodLock()
        self.not_found_cache = not_found_cache or NotFoundCache()
        self.max_months_back = max_months_back if max_months_back >= 1 else 12
        self.lock_timeout = lock_timeout
        self._now = now

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        store: Optional[ObjectStore] = None,
        now: Callable[[], datetime] = utc_now,
    ) -> "ReceiptService":
        """Wire every component from one ``Config``."""
        return cls(
            SQLiteReceiptCatalog(config.cache_db_path),
            ReceiptSource(config.get_source_config(), store=store),
            not_found_cache=NotFoundCache(config.not_found_ttl_seconds),
            max_months_back=config.max_months_back,
            lock_timeout=config.lock_timeout_seconds,
            now=now,
        )

    def close(self) -> None:
        self.catalog.close()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def get_available_years(self, cuil: str) -> List[int]:
        return await asyncio.to_thread(self.catalog.get_available_years, require_cuil(cuil))

    async def get_available_months(self, cuil: str, year: int) -> List[int]:
        validate_year(year)
        return await asyncio.to_thread(self.catalog.get_available_months, require_cuil(cuil), year)

    # ------------------------------------------------------------------
    # Single period
    # ------------------------------------------------------------------

    async def get_latest_or_fetch(self, cuil: str, year: int, month: int) -> PeriodOutcome:
        """Cached snapshot for the period, downloading it on a miss."""
        digits = require_cuil(cuil)
        validate_period(year, month)

        entry = await self._get_latest(digits, year, month)
        if entry is not None:
            logger.info("Receipt cache hit %04d-%02d v%d", year, month, entry.version)
            return PeriodOutcome(ReceiptStatus.CACHE_HIT, entry)
        return await self._populate_on_miss(digits, year, month)

    async def refresh_period(self, cuil: str, year: int, month: int) -> PeriodOutcome:
        """
        Re-check the remote source for the period even when it is cached.

        Outcomes: ``downloaded`` (new version stored), ``not_modified``,
        ``remote_not_found`` (cached snapshot kept), ``not_found``,
        ``source_disabled``, ``invalid_payload``.
        """
        digits = require_cuil(cuil)
        validate_period(year, month)

        async with self.period_lock.hold(digits, year, month, timeout=self.lock_timeout):
            return await _run_to_completion(self._refresh_locked(digits, year, month))

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_receipts(self, cuil: str) -> List[ReceiptDocument]:
        """
        Every receipt in the allowed window, newest first.

        Periods the source recently reported missing are skipped until their
        not-found record expires. Once the source reports itself disabled
        no further remote lookups are made; cached periods are still listed.
        """
        digits = require_cuil(cuil)
        periods = allowed_periods(self._now(), self.max_months_back)

        remote_available = True
        documents: List[ReceiptDocument] = []
        for period in periods:
            year, month = period.year, period.month
            entry = await self._get_latest(digits, year, month)

            if entry is None:
                if not remote_available or self.not_found_cache.contains(digits, year, month):
                    continue
                outcome = await self._populate_on_miss(digits, year, month)
                if outcome.status is ReceiptStatus.SOURCE_DISABLED:
                    remote_available = False
                    continue
                if outcome.status is ReceiptStatus.NOT_FOUND:
                    self.not_found_cache.remember(digits, year, month)
                    continue
                entry = outcome.entry
                if entry is None:
                    continue

            try:
                documents.extend(parse_receipts(
                    entry.payload_json, digits, period,
                    source_key=entry.source_key, version=entry.version,
                ))
            except PayrollParseError as exc:
                logger.warning("Skipping period %s: %s", period.id, exc)

        unique: dict[str, ReceiptDocument] = {}
        for doc in documents:
            unique.setdefault(doc.id.lower(), doc)
        result = sorted(
            unique.values(),
            key=lambda d: (d.issued_at or d.period.last_day, d.period, d.id),
            reverse=True,
        )
        logger.info("Listed %d receipts across %d periods", len(result), len(periods))
        return result

    async def get_receipt_by_id(self, cuil: str, receipt_id: str) -> Optional[ReceiptDocument]:
        """
        One receipt by id (``2026-01``, ``202601`` or ``2026-01-c2``).

        Returns ``None`` for malformed ids, periods outside the allowed
        window and receipts that do not exist.
        """
        digits = require_cuil(cuil)
        parsed = parse_receipt_id(receipt_id)
        if parsed is None:
            return None
        period, _ = parsed
        if period not in allowed_periods(self._now(), self.max_months_back):
            logger.info("Receipt %s is outside the allowed window", receipt_id)
            return None
        if self.not_found_cache.contains(digits, period.year, period.month):
            return None

        outcome = await self.get_latest_or_fetch(digits, period.year, period.month)
        if outcome.status is ReceiptStatus.NOT_FOUND:
            self.not_found_cache.remember(digits, period.year, period.month)
        if outcome.entry is None:
            return None

        try:
            documents = parse_receipts(
                outcome.entry.payload_json, digits, period,
                source_key=outcome.entry.source_key, version=outcome.entry.version,
            )
        except PayrollParseError as exc:
            logger.warning("Receipt %s unreadable: %s", receipt_id, exc)
            return None

        wanted = normalize_receipt_id(receipt_id)
        return next((d for d in documents if d.id == wanted), None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _get_latest(self, digits: str, year: int, month: int) -> Optional[ReceiptCacheEntry]:
        return await asyncio.to_thread(self.catalog.get_latest, digits, year, month)

    async def _populate_on_miss(self, digits: str, year: int, month: int) -> PeriodOutcome:
        async with self.period_lock.hold(digits, year, month, timeout=self.lock_timeout):
            return await _run_to_completion(self._populate_locked(digits, year, month))

    async def _populate_locked(self, digits: str, year: int, month: int) -> PeriodOutcome:
        entry = await self._get_latest(digits, year, month)
        if entry is not None:
            logger.info("Receipt cache hit after wait %04d-%02d v%d", year, month, entry.version)
            return PeriodOutcome(ReceiptStatus.CACHE_HIT_AFTER_WAIT, entry)

        result = await asyncio.to_thread(self.source.fetch_period, digits, year, month)
        if isinstance(result, SourceDisabled):
            return PeriodOutcome(ReceiptStatus.SOURCE_DISABLED)
        if isinstance(result, NotFound):
            return PeriodOutcome(ReceiptStatus.NOT_FOUND)
        if not isinstance(result, Downloaded) or not result.payload_json.strip():
            logger.warning("Receipt source gave no usable payload for %04d-%02d", year, month)
            return PeriodOutcome(ReceiptStatus.INVALID_PAYLOAD)

        saved = await self._save(digits, year, month, result)
        logger.info(
            "Receipt cache filled on miss %04d-%02d v%d from %s",
            year, month, saved.version, saved.source_key,
        )
        return PeriodOutcome(ReceiptStatus.DOWNLOADED_ON_MISS, saved)

    async def _refresh_locked(self, digits: str, year: int, month: int) -> PeriodOutcome:
        current = await self._get_latest(digits, year, month)
        result = await asyncio.to_thread(
            self.source.fetch_period,
            digits, year, month,
            current.source_etag if current else None,
            current.source_version_id if current else None,
        )

        if isinstance(result, SourceDisabled):
            return PeriodOutcome(ReceiptStatus.SOURCE_DISABLED)
        if isinstance(result, NotFound):
            if current is None:
                return PeriodOutcome(ReceiptStatus.NOT_FOUND)
            logger.info("Refresh %04d-%02d: remote missing, keeping v%d", year, month, current.version)
            return PeriodOutcome(ReceiptStatus.REMOTE_NOT_FOUND, current)
        if isinstance(result, NotModified):
            if current is None:
                return PeriodOutcome(ReceiptStatus.NOT_FOUND)
            logger.info("Refresh %04d-%02d skipped: not modified (v%d)", year, month, current.version)
            return PeriodOutcome(ReceiptStatus.NOT_MODIFIED, current)
        if not isinstance(result, Downloaded) or not result.payload_json.strip():
            return PeriodOutcome(ReceiptStatus.INVALID_PAYLOAD, current)

        saved = await self._save(digits, year, month, result)
        logger.info("Refresh %04d-%02d stored v%d from %s", year, month, saved.version, saved.source_key)
        return PeriodOutcome(ReceiptStatus.DOWNLOADED, saved, refreshed=True)

    async def _save(self, digits: str, year: int, month: int, result: Downloaded) -> ReceiptCacheEntry:
        saved = await asyncio.to_thread(
            self.catalog.save_new_version,
            digits, year, month,
            result.downloaded_at, result.source_key, result.payload_json,
            result.etag, result.version_id,
        )
        self.not_found_cache.forget(digits, year, month)
        return saved
