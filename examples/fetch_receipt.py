"""
examples/fetch_receipt.py
~~~~~~~~~~~~~~~~~~~~~~~~~
Fetch one payroll period from a local directory tree and print the
receipts it holds. The payload is cached in the local DB; run it twice to
see the second call served from the cache.

Usage
-----
    python -m examples.fetch_receipt --data-dir payroll/ --cuil 20-12345678-9 --period 2026-01
    python -m examples.fetch_receipt --data-dir payroll/ --cuil 20123456789 --period 2026-01 --refresh
    python -m examples.fetch_receipt --data-dir payroll/ --cuil 20123456789 --period 2026-01 --db /tmp/test.db

Expected layout (default key template)::

    payroll/202601/Personal_20123456789_202601.json
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logging.basicConfig(level=logging.WARNING, format="%(levelname)s  %(name)s: %(message)s")

from portal_empleado import Config, ReceiptService
from portal_empleado.payroll import parse_receipts


async def fetch_receipt(
    data_dir: Path,
    cuil: str,
    year: int,
    month: int,
    db_path: Path | None = None,
    refresh: bool = False,
) -> bool:
    overrides = {"cache_db_path": db_path} if db_path else {}
    config = Config(
        source_enabled=True,
        source_backend="local",
        local_data_dir=data_dir,
        **overrides,
    )
    service = ReceiptService.from_config(config)
    try:
        if refresh:
            outcome = await service.refresh_period(cuil, year, month)
        else:
            outcome = await service.get_latest_or_fetch(cuil, year, month)
    finally:
        service.close()

    if not outcome.ok:
        print(f"[error] {year:04d}-{month:02d}: {outcome.status}", file=sys.stderr)
        return False

    entry = outcome.entry
    W = 52
    print("\n" + "─" * W)
    print(f"  {entry.period.display.upper():^{W - 4}}")
    print("─" * W)
    print(f"  {'Status':<14} {outcome.status}")
    print(f"  {'Version':<14} {entry.version}")
    print(f"  {'Source key':<14} {entry.source_key}")
    print(f"  {'ETag':<14} {entry.source_etag or '-'}")
    print("  " + "·" * (W - 4))

    for doc in parse_receipts(entry.payload_json, cuil, entry.period, source_key=entry.source_key):
        print(f"  {doc.id:<12} {doc.position or '-':<24} {doc.net_amount:>12,.2f} {doc.currency}")
        for concept in doc.concepts:
            sign = "-" if concept.is_deduction else "+"
            print(f"      {sign} {concept.description[:26]:<26} {concept.amount:>12,.2f}")
    print("─" * W + "\n")
    return True


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Fetch and cache one payroll period from a local directory.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--data-dir", required=True, metavar="DIR", help="Root of the payroll files.")
    p.add_argument("--cuil",     required=True, metavar="CUIL")
    p.add_argument("--period",   required=True, metavar="YYYY-MM")
    p.add_argument("--db",       default=None,  metavar="FILE",
                   help="SQLite DB path (default: ~/.portal_empleado/receipt-cache.db).")
    p.add_argument("--refresh",  action="store_true", help="Re-check the source even when cached.")
    p.add_argument("--verbose", "-v", action="store_true")
    return p


if __name__ == "__main__":
    args = _build_parser().parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    year_text, _, month_text = args.period.partition("-")
    ok = asyncio.run(fetch_receipt(
        data_dir=Path(args.data_dir),
        cuil=args.cuil,
        year=int(year_text),
        month=int(month_text),
        db_path=Path(args.db) if args.db else None,
        refresh=args.refresh,
    ))
    sys.exit(0 if ok else 1)
