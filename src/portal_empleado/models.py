"""
portal_empleado.models
~~~~~~~~~~~~~~~~~~~~~~
Data models for the receipt catalog.

Key design decisions
--------------------
* A ``ReceiptCacheEntry`` is one immutable snapshot of a downloaded payroll
  payload. Snapshots are append-only; the "latest" pointer is the only thing
  that moves.

* The result of a remote fetch is a tagged union of four small dataclasses
  (``Downloaded``, ``NotModified``, ``NotFound``, ``SourceDisabled``) so the
  orchestration layer branches on the type, never on exceptions.

* ``ReceiptStatus`` carries the tag the HTTP layer turns into a response
  code; ``PeriodOutcome`` pairs it with the snapshot (if any).

* One payroll document may describe several positions ("cargos"); each one
  becomes its own ``ReceiptDocument``.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union

MONTH_NAMES_ES = (
    "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
    "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre",
)

MIN_YEAR = 2000
MAX_YEAR = 2100


# ---------------------------------------------------------------------------
# ReceiptPeriod
# ---------------------------------------------------------------------------

@dataclass(frozen=True, order=True)
class ReceiptPeriod:
    """A calendar month a payroll receipt belongs to."""

    year:  int
    month: int

    @property
    def id(self) -> str:
        """Hyphenated form, e.g. ``2026-01``."""
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def token(self) -> str:
        """Compact storage form, e.g. ``202601``."""
        return f"{self.year:04d}{self.month:02d}"

    @property
    def display(self) -> str:
        return f"{MONTH_NAMES_ES[self.month - 1]} {self.year:04d}"

    @property
    def first_day(self) -> datetime:
        return datetime(self.year, self.month, 1, tzinfo=timezone.utc)

    @property
    def last_day(self) -> datetime:
        days = calendar.monthrange(self.year, self.month)[1]
        return datetime(self.year, self.month, days, tzinfo=timezone.utc)

    def previous(self) -> "ReceiptPeriod":
        if self.month == 1:
            return ReceiptPeriod(self.year - 1, 12)
        return ReceiptPeriod(self.year, self.month - 1)

    def __str__(self) -> str:
        return self.id


# ---------------------------------------------------------------------------
# Catalog snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReceiptCacheEntry:
    """
    One stored snapshot of a payroll payload.

    ``payload_json`` is always the decompressed text. ``payload_sha256`` and
    ``payload_size_bytes`` (compressed size) are kept for integrity checks.
    """

    snapshot_id:        int
    cuil:               str
    year:               int
    month:              int
    version:            int
    downloaded_at:      datetime
    source_key:         str
    source_etag:        Optional[str]
    source_version_id:  Optional[str]
    payload_json:       str
    payload_sha256:     Optional[str] = None
    payload_size_bytes: Optional[int] = None

    @property
    def period(self) -> ReceiptPeriod:
        return ReceiptPeriod(self.year, self.month)

    def to_dict(self, *, include_payload: bool = True) -> dict:
        d = {
            "snapshot_id":       self.snapshot_id,
            "cuil":              self.cuil,
            "year":              self.year,
            "month":             self.month,
            "version":           self.version,
            "downloaded_at":     self.downloaded_at.isoformat(),
            "source_key":        self.source_key,
            "source_etag":       self.source_etag,
            "source_version_id": self.source_version_id,
        }
        if include_payload:
            d["payload_json"] = self.payload_json
        return d


# ---------------------------------------------------------------------------
# Remote fetch results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Downloaded:
    """The object was fetched; ``payload_json`` holds its text."""

    payload_json:  str
    downloaded_at: datetime
    source_key:    str
    etag:          Optional[str] = None
    version_id:    Optional[str] = None


@dataclass(frozen=True)
class NotModified:
    """Remote validators match the caller's; nothing was downloaded."""

    source_key: str
    etag:       Optional[str] = None
    version_id: Optional[str] = None


@dataclass(frozen=True)
class NotFound:
    """No candidate key exists in the store."""


@dataclass(frozen=True)
class SourceDisabled:
    """The source is switched off or lacks its bucket/directory."""


FetchResult = Union[Downloaded, NotModified, NotFound, SourceDisabled]


# ---------------------------------------------------------------------------
# Orchestration outcome
# ---------------------------------------------------------------------------

class ReceiptStatus(str, Enum):
    """Status tag returned alongside snapshot data."""

    CACHE_HIT            = "cache_hit"
    CACHE_HIT_AFTER_WAIT = "cache_hit_after_wait"
    DOWNLOADED_ON_MISS   = "downloaded_on_miss"
    DOWNLOADED           = "downloaded"
    NOT_MODIFIED         = "not_modified"
    REMOTE_NOT_FOUND     = "remote_not_found"
    NOT_FOUND            = "not_found"
    SOURCE_DISABLED      = "source_disabled"
    INVALID_PAYLOAD      = "invalid_payload"

    def __str__(self) -> str:
        return self.value


_SUCCESS_STATUSES = frozenset({
    ReceiptStatus.CACHE_HIT,
    ReceiptStatus.CACHE_HIT_AFTER_WAIT,
    ReceiptStatus.DOWNLOADED_ON_MISS,
    ReceiptStatus.DOWNLOADED,
    ReceiptStatus.NOT_MODIFIED,
    ReceiptStatus.REMOTE_NOT_FOUND,
})


@dataclass(frozen=True)
class PeriodOutcome:
    """
    Result of ``get_latest_or_fetch`` / ``refresh_period``.

    ``entry`` is set for every successful status. ``refreshed`` is True only
    when a refresh stored a new version.
    """

    status:    ReceiptStatus
    entry:     Optional[ReceiptCacheEntry] = None
    refreshed: bool = False

    @property
    def ok(self) -> bool:
        return self.status in _SUCCESS_STATUSES and self.entry is not None


# ---------------------------------------------------------------------------
# Parsed payroll records
# ---------------------------------------------------------------------------

def _money(v: Optional[Decimal]) -> Optional[float]:
    return float(v) if v is not None else None


@dataclass
class PayrollConcept:
    """A single line (haber or descuento) on a payroll receipt."""

    code:        str = ""
    description: str = "Concepto"
    kind:        str = ""
    amount:      Decimal = Decimal(0)
    is_deduction: bool = False

    def to_dict(self) -> dict:
        return {
            "code":         self.code,
            "description":  self.description,
            "kind":         self.kind,
            "amount":       float(self.amount),
            "is_deduction": self.is_deduction,
        }


@dataclass
class ReceiptDocument:
    """
    One payroll receipt: a single position ("cargo") within one period.

    ``id`` is the period id (``2026-01``) when the document holds a single
    position, ``2026-01-c<n>`` for the n-th position otherwise.
    """

    id:               str
    period:           ReceiptPeriod
    cuil:             str
    net_amount:       Decimal
    name:             Optional[str] = None
    employee_code:    Optional[str] = None
    total_earnings:   Optional[Decimal] = None
    total_deductions: Optional[Decimal] = None
    currency:         str = "ARS"
    state:            str = "Emitido"
    issued_at:        Optional[datetime] = None
    position:         Optional[str] = None
    establishment:    Optional[str] = None
    payment_method:   Optional[str] = None
    hours:            Optional[Decimal] = None
    seniority:        Optional[str] = None
    hire_date:        Optional[str] = None
    amount_in_words:  Optional[str] = None
    concepts:         List[PayrollConcept] = field(default_factory=list)
    source_key:       str = ""
    version:          Optional[int] = None

    @property
    def display_period(self) -> str:
        return self.period.display

    def to_dict(self) -> dict:
        return {
            "id":               self.id,
            "periodo":          self.period.display,
            "period_id":        self.period.id,
            "cuil":             self.cuil,
            "nombre":           self.name,
            "legajo":           self.employee_code,
            "importe":          float(self.net_amount),
            "total_haberes":    _money(self.total_earnings),
            "total_descuentos": _money(self.total_deductions),
            "moneda":           self.currency,
            "estado":           self.state,
            "fecha_emision":    self.issued_at.isoformat() if self.issued_at else None,
            "cargo":            self.position,
            "establecimiento":  self.establishment,
            "forma_pago":       self.payment_method,
            "horas":            _money(self.hours),
            "antiguedad":       self.seniority,
            "fecha_ingreso":    self.hire_date,
            "liquido_palabras": self.amount_in_words,
            "conceptos":        [c.to_dict() for c in self.concepts],
            "source_key":       self.source_key,
            "version":          self.version,
        }


@dataclass(frozen=True)
class ReceiptSummary:
    """Compact per-snapshot summary shown next to the raw payload."""

    id:            str
    periodo:       str
    importe:       Decimal
    moneda:        str
    estado:        str
    fecha_emision: datetime
    pdf_url:       Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id":            self.id,
            "periodo":       self.periodo,
            "importe":       float(self.importe),
            "moneda":        self.moneda,
            "estado":        self.estado,
            "fecha_emision": self.fecha_emision.isoformat(),
            "pdf_url":       self.pdf_url,
        }
