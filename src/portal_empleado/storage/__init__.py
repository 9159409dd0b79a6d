"""
portal_empleado.storage
~~~~~~~~~~~~~~~~~~~~~~~
Local catalog cache for payroll payloads.

Default backend: SQLite at ``~/.portal_empleado/receipt-cache.db``.

Usage::

    from portal_empleado.storage import get_catalog

    catalog = get_catalog()
    entry = catalog.get_latest("20-12345678-9", 2026, 1)
    if entry:
        print(entry.version, entry.source_key)
"""

from .base import ReceiptCatalog
from .sqlite import SQLiteReceiptCatalog


def get_catalog(db_path=None) -> SQLiteReceiptCatalog:
    """Return the SQLite catalog, optionally at a custom path."""
    return SQLiteReceiptCatalog(db_path=db_path)


__all__ = ["ReceiptCatalog", "SQLiteReceiptCatalog", "get_catalog"]
