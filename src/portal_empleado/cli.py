"""
portal_empleado.cli
~~~~~~~~~~~~~~~~~~~
Operator command line for the receipt catalog.

Entry point registered in pyproject.toml::

    [project.scripts]
    portal-empleado = "portal_empleado.cli:main"

Usage examples
--------------
    portal-empleado --version

    # What is cached for an employee
    portal-empleado --cuil 20-12345678-9 --years
    portal-empleado --cuil 20-12345678-9 --months 2026

    # One period (downloaded on a miss), or force a conditional re-fetch
    portal-empleado --cuil 20-12345678-9 --period 2026-01
    portal-empleado --cuil 20-12345678-9 --period 2026-01 --refresh

    # Every receipt in the allowed window
    portal-empleado --cuil 20-12345678-9 --list --json

    # Serve the HTTP API
    portal-empleado --serve --port 8080

    # Use a custom DB path
    portal-empleado --cuil 20123456789 --years --db /tmp/receipts.db
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from portal_empleado.config import Config
from portal_empleado.exceptions import PortalError
from portal_empleado.service import ReceiptService

# ---------------------------------------------------------------------------
# CLI class
# ---------------------------------------------------------------------------


class PortalCLI:
    """Thin synchronous front over ``ReceiptService``; methods return exit codes."""

    def __init__(self, service: ReceiptService, as_json: bool = False) -> None:
        self.service = service
        self.as_json = as_json

    # ------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------

    @staticmethod
    def print_version() -> None:
        try:
            print(f"portal-empleado version: {version('portal-empleado')}")
        except PackageNotFoundError:
            print("portal-empleado version: unknown")

    def _emit(self, payload, text: str) -> None:
        if self.as_json:
            print(json.dumps(payload, indent=2, ensure_ascii=False))
        else:
            print(text)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def show_years(self, cuil: str) -> int:
        years = asyncio.run(self.service.get_available_years(cuil))
        self._emit({"years": years}, "  ".join(map(str, years)) or "(no cached receipts)")
        return 0

    def show_months(self, cuil: str, year: int) -> int:
        months = asyncio.run(self.service.get_available_months(cuil, year))
        text = "  ".join(f"{year}-{m:02d}" for m in months) or f"(nothing cached for {year})"
        self._emit({"year": year, "months": months}, text)
        return 0

    # ------------------------------------------------------------------
    # Single period
    # ------------------------------------------------------------------

    def show_period(self, cuil: str, year: int, month: int, refresh: bool = False) -> int:
        if refresh:
            outcome = asyncio.run(self.service.refresh_period(cuil, year, month))
        else:
            outcome = asyncio.run(self.service.get_latest_or_fetch(cuil, year, month))

        if not outcome.ok:
            print(f"✗  {year:04d}-{month:02d}: {outcome.status}", file=sys.stderr)
            return 1

        entry = outcome.entry
        self._emit(
            {"status": outcome.status.value, "refreshed": outcome.refreshed,
             "snapshot": entry.to_dict(include_payload=False)},
            f"✓  {entry.period.id}  v{entry.version}  [{outcome.status}]  {entry.source_key}",
        )
        return 0

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_receipts(self, cuil: str) -> int:
        documents = asyncio.run(self.service.list_receipts(cuil))
        if self.as_json:
            self._emit({"recibos": [d.to_dict() for d in documents], "total": len(documents)}, "")
            return 0
        if not documents:
            print("(no receipts in the allowed window)")
            return 0
        print(f"{'ID':<12} {'Periodo':<18} {'Importe':>14}  Cargo")
        print("─" * 60)
        for d in documents:
            print(f"{d.id:<12} {d.display_period:<18} {d.net_amount:>14,.2f}  {d.position or '-'}")
        return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _parse_period(value: str) -> tuple[int, int]:
    try:
        year_text, month_text = value.split("-", 1)
        return int(year_text), int(month_text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM, got {value!r}") from None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portal-empleado",
        description="Payroll receipt catalog: inspect, fetch and serve cached receipts.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON.")
    parser.add_argument(
        "--db", default=None, metavar="FILE",
        help="SQLite database path (default: ~/.portal_empleado/receipt-cache.db).",
    )

    # -- Catalog ----------------------------------------------------------
    catalog = parser.add_argument_group("Catalog")
    catalog.add_argument("--cuil", metavar="CUIL", help="Employee identity (dashes optional).")
    action = catalog.add_mutually_exclusive_group()
    action.add_argument("--years", action="store_true", help="List cached years.")
    action.add_argument("--months", type=int, metavar="YEAR", help="List cached months of YEAR.")
    action.add_argument(
        "--period", type=_parse_period, metavar="YYYY-MM",
        help="Show one period, downloading it on a cache miss.",
    )
    action.add_argument("--list", action="store_true", help="List every receipt in the allowed window.")
    catalog.add_argument(
        "--refresh", action="store_true",
        help="With --period: re-check the remote source even when cached.",
    )

    # -- HTTP API ---------------------------------------------------------
    api = parser.add_argument_group("HTTP API")
    api.add_argument("--serve", action="store_true", help="Start the HTTP API server.")
    api.add_argument("--host", default="127.0.0.1", metavar="HOST", help="Server bind address.")
    api.add_argument("--port", default=8000, type=int, metavar="PORT", help="Server port.")
    api.add_argument("--reload", action="store_true", help="Enable hot-reload (development mode).")
    api.add_argument(
        "--log-level",
        default="warning",
        choices=["debug", "info", "warning", "error"],
        metavar="LEVEL",
        help="Log level for the server (debug, info, warning, error).",
    )

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args   = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)-8s %(name)s: %(message)s",
        )

    if args.version:
        PortalCLI.print_version()
        return 0

    if args.serve:
        from portal_empleado.api.server import launch
        # The app is built in the server process from PORTAL_* settings.
        if args.db:
            os.environ["PORTAL_CACHE_DB_PATH"] = str(Path(args.db).expanduser())
        launch(host=args.host, port=args.port, reload=args.reload, log_level=args.log_level)
        return 0

    if not args.cuil or not (args.years or args.months is not None or args.period or args.list):
        parser.print_help()
        return 0 if not args.cuil else 2

    overrides = {"cache_db_path": Path(args.db)} if args.db else {}
    config = Config(**overrides)
    service = ReceiptService.from_config(config)
    cli = PortalCLI(service, as_json=args.json)
    try:
        if args.years:
            return cli.show_years(args.cuil)
        if args.months is not None:
            return cli.show_months(args.cuil, args.months)
        if args.period:
            year, month = args.period
            return cli.show_period(args.cuil, year, month, refresh=args.refresh)
        return cli.list_receipts(args.cuil)
    except PortalError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1
    finally:
        service.close()


if __name__ == "__main__":
    sys.exit(main())
