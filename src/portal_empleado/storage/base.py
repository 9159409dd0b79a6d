"""
portal_empleado.storage.base
~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Catalog cache interface.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from ..models import ReceiptCacheEntry


@runtime_checkable
class ReceiptCatalog(Protocol):
    """Versioned local store of downloaded payroll payloads."""

    def get_latest(self, cuil: str, year: int, month: int) -> Optional[ReceiptCacheEntry]:
        """The snapshot the latest pointer references, or ``None``."""
        ...

    def get_available_years(self, cuil: str) -> List[int]:
        """Years with at least one cached period, newest first."""
        ...

    def get_available_months(self, cuil: str, year: int) -> List[int]:
        """Cached months of ``year``, newest first."""
        ...

    def get_versions(self, cuil: str, year: int, month: int) -> List[int]:
        """Every stored version number for the period, ascending."""
        ...

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
        """
        Append a snapshot with version ``max + 1`` and move the latest
        pointer to it, atomically.
        """
        ...

    def close(self) -> None:
        """Release connections."""
        ...
