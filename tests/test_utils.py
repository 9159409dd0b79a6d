"""
tests/test_utils.py
~~~~~~~~~~~~~~~~~~~
Tests for portal_empleado.utils: identity, ETag, period and number helpers.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from portal_empleado.exceptions import InvalidIdentityError, InvalidPeriodError
from portal_empleado.models import ReceiptPeriod
from portal_empleado.utils import (
    allowed_periods,
    normalize_cuil,
    normalize_etag,
    normalize_receipt_id,
    normalize_value,
    parse_date,
    parse_decimal,
    parse_receipt_id,
    period_key,
    require_cuil,
    to_dashed_cuil,
    validate_period,
)


class TestIdentity:
    def test_normalize_strips_non_digits(self):
        assert normalize_cuil("20-12345678-9") == "20123456789"

    def test_normalize_none(self):
        assert normalize_cuil(None) == ""

    def test_require_rejects_no_digits(self):
        with pytest.raises(InvalidIdentityError):
            require_cuil("abc-")

    def test_dashed_format(self):
        assert to_dashed_cuil("20123456789") == "20-12345678-9"

    def test_dashed_needs_eleven_digits(self):
        assert to_dashed_cuil("1234") == "1234"


class TestSmallStrings:
    def test_normalize_value_blank(self):
        assert normalize_value("   ") is None

    def test_normalize_value_trims(self):
        assert normalize_value(" v1 ") == "v1"

    @pytest.mark.parametrize("raw", ['"abc"', ' "abc" ', "abc"])
    def test_etag_quotes_removed(self, raw):
        assert normalize_etag(raw) == "abc"

    def test_etag_empty_quotes(self):
        assert normalize_etag('""') is None


class TestPeriods:
    def test_validate_ok(self):
        assert validate_period(2026, 1) == ReceiptPeriod(2026, 1)

    @pytest.mark.parametrize("year,month", [(1999, 1), (2101, 1), (2026, 0), (2026, 13)])
    def test_validate_rejects(self, year, month):
        with pytest.raises(InvalidPeriodError):
            validate_period(year, month)

    def test_period_key(self):
        assert period_key("20-12345678-9", 2026, 1) == "20123456789:2026-01"

    def test_allowed_periods_newest_first(self):
        now = datetime(2026, 2, 10, tzinfo=timezone.utc)
        periods = allowed_periods(now, 4)
        assert [p.id for p in periods] == ["2026-02", "2026-01", "2025-12", "2025-11"]

    def test_allowed_periods_invalid_window_defaults_to_twelve(self):
        now = datetime(2026, 2, 10, tzinfo=timezone.utc)
        assert len(allowed_periods(now, 0)) == 12

    def test_allowed_periods_uses_utc_month(self):
        # 2026-03-01 01:00 at UTC+03:00 is still February in UTC
        now = datetime(2026, 3, 1, 1, 0, tzinfo=timezone(timedelta(hours=3)))
        assert allowed_periods(now, 1)[0].id == "2026-02"


class TestReceiptIds:
    @pytest.mark.parametrize("raw,expected", [
        ("202601", "2026-01"),
        ("2026-01", "2026-01"),
        (" 2026-01-C2 ", "2026-01-c2"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_receipt_id(raw) == expected

    @pytest.mark.parametrize("raw", ["", "2026-13", "26-01", "2026-01-c0", "abc", None])
    def test_invalid(self, raw):
        assert normalize_receipt_id(raw) is None

    def test_parse_returns_cargo_index(self):
        period, cargo = parse_receipt_id("2026-01-c3")
        assert period == ReceiptPeriod(2026, 1)
        assert cargo == 3


class TestParseDecimal:
    @pytest.mark.parametrize("raw,expected", [
        ("182450.75", Decimal("182450.75")),
        ("182,450.75", Decimal("182450.75")),
        ("182.450,75", Decimal("182450.75")),
        ("182450,75", Decimal("182450.75")),
        ("$ 1.000,50", Decimal("1000.50")),
        (182450.75, Decimal("182450.75")),
        (20, Decimal("20")),
    ])
    def test_accepted_forms(self, raw, expected):
        assert parse_decimal(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "n/a", True, "1,2,3.4.5"])
    def test_rejected(self, raw):
        assert parse_decimal(raw) is None

    def test_decimal_passthrough(self):
        d = Decimal("1.10")
        assert parse_decimal(d) is d


class TestParseDate:
    def test_iso_date(self):
        assert parse_date("2026-01-31") == datetime(2026, 1, 31, tzinfo=timezone.utc)

    def test_day_first(self):
        assert parse_date("05/02/2026") == datetime(2026, 2, 5, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        assert parse_date("2026-01-31T21:00:00-03:00") == datetime(2026, 2, 1, tzinfo=timezone.utc)

    def test_garbage(self):
        assert parse_date("soon") is None
