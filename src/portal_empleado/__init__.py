"""
portal_empleado
~~~~~~~~~~~~~~~
Payroll receipt catalog for the employee self-service portal: a versioned
SQLite cache in front of an S3 (or directory) source of payroll JSON files.

Typical usage::

    import asyncio
    from portal_empleado import Config, ReceiptService

    service = ReceiptService.from_config(Config())
    outcome = asyncio.run(service.get_latest_or_fetch("20-12345678-9", 2026, 1))

    if outcome.ok:
        print(outcome.status, outcome.entry.version)
"""

__version__ = "0.3.0"

from .config import Config, SourceConfig
from .exceptions import (
    ConfigurationError,
    InvalidIdentityError,
    InvalidPeriodError,
    LockTimeoutError,
    ObjectStoreError,
    PayrollParseError,
    PortalError,
)
from .locking import PeriodLease, PeriodLock
from .models import (
    Downloaded,
    NotFound,
    NotModified,
    PeriodOutcome,
    ReceiptCacheEntry,
    ReceiptDocument,
    ReceiptPeriod,
    ReceiptStatus,
    ReceiptSummary,
    SourceDisabled,
)
from .negative_cache import NotFoundCache
from .service import ReceiptService
from .source import ReceiptSource
from .storage import SQLiteReceiptCatalog

__all__ = [
    "__version__",
    # Orchestration
    "ReceiptService",
    # Configuration
    "Config",
    "SourceConfig",
    # Components
    "PeriodLock",
    "PeriodLease",
    "ReceiptSource",
    "SQLiteReceiptCatalog",
    "NotFoundCache",
    # Models
    "ReceiptPeriod",
    "ReceiptCacheEntry",
    "ReceiptDocument",
    "ReceiptSummary",
    "ReceiptStatus",
    "PeriodOutcome",
    "Downloaded",
    "NotModified",
    "NotFound",
    "SourceDisabled",
    # Exceptions
    "PortalError",
    "ConfigurationError",
    "InvalidPeriodError",
    "InvalidIdentityError",
    "ObjectStoreError",
    "PayrollParseError",
    "LockTimeoutError",
]
