"""
portal_empleado.storage.sqlite
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
SQLite-backed receipt catalog: append-only snapshots plus a latest pointer.

Tables
------
receipt_snapshots  one row per downloaded payload (gzip), versioned per
                   (cuil, year, month); never updated
receipt_latest     one row per (cuil, year, month) pointing at the current
                   snapshot

Writes run inside ``BEGIN IMMEDIATE`` so the next version number is read
and used under the database write lock. Two processes sharing the file
therefore can never assign the same version.

Default path: ``~/.portal_empleado/receipt-cache.db``
"""

from __future__ import annotations

import gzip
import hashlib
import logging
import sqlite3
import threading
import zlib
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ..config import DEFAULT_DB_PATH
from ..models import ReceiptCacheEntry
from ..utils import require_cuil, validate_period, validate_year

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS receipt_snapshots (
        snapshot_id        INTEGER PRIMARY KEY AUTOINCREMENT,
        cuil               TEXT    NOT NULL,
        year               INTEGER NOT NULL CHECK (year BETWEEN 2000 AND 2100),
        month              INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
        version            INTEGER NOT NULL CHECK (version >= 1),
        downloaded_at_utc  TEXT    NOT NULL,
        source_key         TEXT    NOT NULL,
        source_etag        TEXT,
        source_version_id  TEXT,
        payload_gzip       BLOB    NOT NULL,
        payload_sha256     TEXT    NOT NULL,
        payload_size_bytes INTEGER NOT NULL CHECK (payload_size_bytes > 0),
        created_at_utc     TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
        UNIQUE (cuil, year, month, version)
    );

    CREATE TABLE IF NOT EXISTS receipt_latest (
        cuil           TEXT    NOT NULL,
        year           INTEGER NOT NULL CHECK (year BETWEEN 2000 AND 2100),
        month          INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
        snapshot_id    INTEGER NOT NULL
                       REFERENCES receipt_snapshots(snapshot_id) ON DELETE CASCADE,
        updated_at_utc TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
        PRIMARY KEY (cuil, year, month)
    );

    CREATE INDEX IF NOT EXISTS idx_receipt_snapshots_lookup
        ON receipt_snapshots (cuil, year, month, version DESC);

    CREATE INDEX IF NOT EXISTS idx_receipt_snapshots_downloaded_at
        ON receipt_snapshots (downloaded_at_utc DESC);

    CREATE INDEX IF NOT EXISTS idx_receipt_latest_snapshot_id
        ON receipt_latest (snapshot_id);
"""


def _utc(dt: datetime) -> datetime:
    # Naive values are read as local time.
    return dt.astimezone(timezone.utc)


class SQLiteReceiptCatalog:
    """Persistent SQLite catalog implementing ``ReceiptCatalog``."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_lock = threading.Lock()
        self._initialized = False
        # Autocommit mode: transactions are opened explicitly with BEGIN IMMEDIATE.
        self._conn = sqlite3.connect(
            str(self.db_path), check_same_thread=False, isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> "SQLiteReceiptCatalog":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _ensure_schema(self) -> None:
        if self._initialized:
            return
        with self._init_lock:
            if self._initialized:
                return
            with self._lock:
                self._conn.executescript(_SCHEMA)
            self._initialized = True
            logger.info("Receipt cache schema ready at %s", self.db_path)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_latest(self, cuil: str, year: int, month: int) -> Optional[ReceiptCacheEntry]:
        digits = require_cuil(cuil)
        validate_period(year, month)
        self._ensure_schema()
        with self._lock:
            row = self._conn.execute(
                """
                SELECT s.snapshot_id, s.cuil, s.year, s.month, s.version,
                       s.downloaded_at_utc, s.source_key, s.source_etag,
                       s.source_version_id, s.payload_gzip, s.payload_sha256,
                       s.payload_size_bytes
                FROM receipt_latest l
                JOIN receipt_snapshots s ON s.snapshot_id = l.snapshot_id
                WHERE l.cuil = ? AND l.year = ? AND l.month = ?
                """,
                (digits, year, month),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    def get_available_years(self, cuil: str) -> List[int]:
        digits = require_cuil(cuil)
        self._ensure_schema()
        with self._lock:
            rows = self._conn.execute(
                "SELECT DISTINCT year FROM receipt_latest WHERE cuil = ? ORDER BY year DESC",
                (digits,),
            ).fetchall()
        return [r["year"] for r in rows]

    def get_available_months(self, cuil: str, year: int) -> List[int]:
        digits = require_cuil(cuil)
        validate_year(year)
        self._ensure_schema()
        with self._lock:
            rows = self._conn.execute(
                "SELECT month FROM receipt_latest WHERE cuil = ? AND year = ? ORDER BY month DESC",
                (digits, year),
            ).fetchall()
        return [r["month"] for r in rows]

    def get_versions(self, cuil: str, year: int, month: int) -> List[int]:
        digits = require_cuil(cuil)
        validate_period(year, month)
        self._ensure_schema()
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT version FROM receipt_snapshots
                WHERE cuil = ? AND year = ? AND month = ?
                ORDER BY version
                """,
                (digits, year, month),
            ).fetchall()
        return [r["version"] for r in rows]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save_new_version(
        self,
        cuil: str,
        year: int,
        month: int,
        downloaded_at: datetime,
        source_key: str,
        payload_json: str,
        etag: Optional[str] = None,
        version_id: Optional[str] = None,
    ) -> ReceiptCacheEntry:
        digits = require_cuil(cuil)
        validate_period(year, month)
        self._ensure_schema()

        raw = payload_json.encode("utf-8")
        compressed = gzip.compress(raw, mtime=0)
        digest = hashlib.sha256(raw).hexdigest()
        downloaded_at = _utc(downloaded_at)
        now = datetime.now(timezone.utc).isoformat()

        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                version = self._conn.execute(
                    """
                    SELECT COALESCE(MAX(version), 0) + 1 FROM receipt_snapshots
                    WHERE cuil = ? AND year = ? AND month = ?
                    """,
                    (digits, year, month),
                ).fetchone()[0]
                cur = self._conn.execute(
                    """
                    INSERT INTO receipt_snapshots
                        (cuil, year, month, version, downloaded_at_utc, source_key,
                         source_etag, source_version_id, payload_gzip,
                         payload_sha256, payload_size_bytes, created_at_utc)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        digits, year, month, version, downloaded_at.isoformat(),
                        source_key, etag, version_id, sqlite3.Binary(compressed),
                        digest, len(compressed), now,
                    ),
                )
                snapshot_id = cur.lastrowid
                self._conn.execute(
                    """
                    INSERT INTO receipt_latest (cuil, year, month, snapshot_id, updated_at_utc)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT (cuil, year, month) DO UPDATE SET
                        snapshot_id    = excluded.snapshot_id,
                        updated_at_utc = excluded.updated_at_utc
                    """,
                    (digits, year, month, snapshot_id, now),
                )
                self._conn.execute("COMMIT")
            except BaseException:
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise

        logger.info(
            "Stored receipt snapshot %s v%d for %04d-%02d (%d bytes gzip)",
            snapshot_id, version, year, month, len(compressed),
        )
        # The caller's text is returned as-is; no need to decompress it again.
        return ReceiptCacheEntry(
            snapshot_id=snapshot_id,
            cuil=digits,
            year=year,
            month=month,
            version=version,
            downloaded_at=downloaded_at,
            source_key=source_key,
            source_etag=etag,
            source_version_id=version_id,
            payload_json=payload_json,
            payload_sha256=digest,
            payload_size_bytes=len(compressed),
        )

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _row_to_entry(self, row: sqlite3.Row) -> Optional[ReceiptCacheEntry]:
        """Decompress and verify a snapshot row. Corrupt rows map to ``None``."""
        try:
            raw = gzip.decompress(bytes(row["payload_gzip"]))
            payload = raw.decode("utf-8")
        except (OSError, EOFError, zlib.error, UnicodeDecodeError) as exc:
            logger.warning(
                "Corrupt cached payload in snapshot %s (%s); treating as missing",
                row["snapshot_id"], exc,
            )
            return None
        digest = hashlib.sha256(raw).hexdigest()
        if row["payload_sha256"] and digest != row["payload_sha256"].lower():
            logger.warning(
                "Checksum mismatch in snapshot %s; treating as missing", row["snapshot_id"],
            )
            return None

        return ReceiptCacheEntry(
            snapshot_id=row["snapshot_id"],
            cuil=row["cuil"],
            year=row["year"],
            month=row["month"],
            version=row["version"],
            downloaded_at=_utc(datetime.fromisoformat(row["downloaded_at_utc"])),
            source_key=row["source_key"],
            source_etag=row["source_etag"],
            source_version_id=row["source_version_id"],
            payload_json=payload,
            payload_sha256=row["payload_sha256"],
            payload_size_bytes=row["payload_size_bytes"],
        )
