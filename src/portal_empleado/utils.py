"""
portal_empleado.utils
~~~~~~~~~~~~~~~~~~~~~
Small normalisation helpers shared by the source adapter, the catalog cache
and the payroll parser.

Everything here is pure and side-effect free. Helpers that may meet
upstream data prefer returning ``None`` over raising.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple

from .exceptions import InvalidIdentityError, InvalidPeriodError
from .models import MAX_YEAR, MIN_YEAR, ReceiptPeriod

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# "182450.75", "182,450.75"
_INVARIANT_NUMBER = re.compile(r"^[+-]?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")
# "182450,75", "182.450,75"
_ES_AR_NUMBER = re.compile(r"^[+-]?(?:\d{1,3}(?:\.\d{3})+|\d+)(?:,\d+)?$")

# 2026-01 | 202601 | 2026-01-c2
_RECEIPT_ID = re.compile(r"^(\d{4})-?(\d{2})(?:-c(\d+))?$", re.IGNORECASE)

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%Y-%m-%dT%H:%M:%S")


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

def normalize_cuil(value: Optional[str]) -> str:
    """Strip everything but digits. ``None`` and blanks give ``""``."""
    if not value:
        return ""
    return "".join(ch for ch in str(value) if ch.isdigit())


def require_cuil(value: Optional[str]) -> str:
    """Like ``normalize_cuil`` but raise when no digits remain."""
    digits = normalize_cuil(value)
    if not digits:
        raise InvalidIdentityError(f"Identity {value!r} contains no digits")
    return digits


def to_dashed_cuil(value: Optional[str]) -> str:
    """
    Format an 11-digit CUIL as ``XX-XXXXXXXX-X``.

    Any other length is returned digits-only; a dashed variant only exists
    for well-formed CUILs.
    """
    digits = normalize_cuil(value)
    if len(digits) != 11:
        return digits
    return f"{digits[:2]}-{digits[2:10]}-{digits[10]}"


# ---------------------------------------------------------------------------
# Validators / small strings
# ---------------------------------------------------------------------------

def normalize_value(value: Any) -> Optional[str]:
    """Trimmed string, or ``None`` for ``None``/blank."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_etag(value: Optional[str]) -> Optional[str]:
    """Drop surrounding whitespace and quote characters from an ETag."""
    text = normalize_value(value)
    if text is None:
        return None
    return text.strip('"').strip() or None


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------

def validate_year(year: int) -> int:
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidPeriodError(year)
    return year


def validate_period(year: int, month: int) -> ReceiptPeriod:
    """Return the ``ReceiptPeriod`` or raise ``InvalidPeriodError``."""
    if not MIN_YEAR <= year <= MAX_YEAR or not 1 <= month <= 12:
        raise InvalidPeriodError(year, month)
    return ReceiptPeriod(year, month)


def period_key(cuil: str, year: int, month: int) -> str:
    """Composite key ``<digits>:<YYYY>-<MM>`` shared by the lock table and the not-found memory."""
    return f"{normalize_cuil(cuil)}:{year:04d}-{month:02d}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def allowed_periods(now: datetime, max_months_back: int) -> List[ReceiptPeriod]:
    """
    The current month plus the previous ``max_months_back - 1`` months,
    newest first. Values below 1 fall back to 12.
    """
    if max_months_back < 1:
        max_months_back = 12
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)

    periods: List[ReceiptPeriod] = []
    current = ReceiptPeriod(now.year, now.month)
    for _ in range(max_months_back):
        if current.year < MIN_YEAR:
            break
        periods.append(current)
        current = current.previous()
    return periods


def parse_receipt_id(value: Optional[str]) -> Optional[Tuple[ReceiptPeriod, Optional[int]]]:
    """
    Split a receipt id into its period and optional position index.

    Accepts ``2026-01``, ``202601`` and ``2026-01-c2``. Returns ``None`` for
    anything else, including out-of-range periods.
    """
    text = normalize_value(value)
    if text is None:
        return None
    m = _RECEIPT_ID.match(text)
    if not m:
        return None
    year, month = int(m.group(1)), int(m.group(2))
    if not MIN_YEAR <= year <= MAX_YEAR or not 1 <= month <= 12:
        return None
    cargo = int(m.group(3)) if m.group(3) else None
    if cargo is not None and cargo < 1:
        return None
    return ReceiptPeriod(year, month), cargo


def normalize_receipt_id(value: Optional[str]) -> Optional[str]:
    """``202601`` → ``2026-01``; ``2026-01-C2`` → ``2026-01-c2``."""
    parsed = parse_receipt_id(value)
    if parsed is None:
        return None
    period, cargo = parsed
    return period.id if cargo is None else f"{period.id}-c{cargo}"


# ---------------------------------------------------------------------------
# Numbers and dates found in payroll payloads
# ---------------------------------------------------------------------------

def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Coerce a payload value to ``Decimal``.

    Numbers are taken as-is. Strings are tried in invariant form first
    (``182,450.75``) and then in es-AR form (``182.450,75``). Returns
    ``None`` when nothing fits.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None

    text = str(value).strip().replace("$", "").replace(" ", "")
    if not text:
        return None
    try:
        if _INVARIANT_NUMBER.match(text):
            return Decimal(text.replace(",", ""))
        if _ES_AR_NUMBER.match(text):
            return Decimal(text.replace(".", "").replace(",", "."))
    except InvalidOperation:
        pass
    return None


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an ISO or ``dd/mm/yyyy`` date into an aware UTC datetime."""
    text = normalize_value(value)
    if text is None:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        logger.debug("Unparseable date %r", text)
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
