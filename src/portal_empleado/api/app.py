"""
portal_empleado.api.app
~~~~~~~~~~~~~~~~~~~~~~~
FastAPI adapter over ``ReceiptService``.

The caller's identity arrives in the ``X-Employee-Cuil`` header; resolving
it from a login session is the job of the gateway in front of this app.

Endpoints
---------
GET  /health                            Liveness + cache location
GET  /config                            Runtime configuration snapshot
GET  /receipts/years                    Cached years, newest first
GET  /receipts/{year}/months            Cached months of a year
GET  /receipts/{year}/{month}           Latest snapshot, fetched on a miss
POST /receipts/{year}/{month}/refresh   Conditional re-fetch from the source
GET  /recibo-sueldo                     Parsed receipts in the allowed window
GET  /recibo-sueldo/{recibo_id}         One parsed receipt

Status codes: source disabled 503, not found 404, unusable upstream
payload 502, invalid period or identity 400, missing identity 401.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Config
from ..exceptions import InvalidIdentityError, InvalidPeriodError, LockTimeoutError
from ..models import PeriodOutcome, ReceiptCacheEntry, ReceiptStatus
from ..payroll import build_summary
from ..service import ReceiptService

IDENTITY_HEADER = "X-Employee-Cuil"

_FAILURES = {
    ReceiptStatus.SOURCE_DISABLED: (
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "The remote receipt source is disabled.",
    ),
    ReceiptStatus.NOT_FOUND: (
        status.HTTP_404_NOT_FOUND,
        "No receipt found for the requested period.",
    ),
    ReceiptStatus.INVALID_PAYLOAD: (
        status.HTTP_502_BAD_GATEWAY,
        "The receipt source did not return a usable payload.",
    ),
}

# Snapshot tag shown inside a refresh response.
_REFRESH_SNAPSHOT_TAG = {
    ReceiptStatus.DOWNLOADED:       "downloaded",
    ReceiptStatus.NOT_MODIFIED:     "not_modified",
    ReceiptStatus.REMOTE_NOT_FOUND: "cache_fallback",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _snapshot_response(entry: ReceiptCacheEntry, tag: str) -> dict:
    summary = build_summary(entry.payload_json, entry.year, entry.month)
    d = entry.to_dict(include_payload=False)
    d["status"] = tag
    d["receipt"] = summary.to_dict() if summary else None
    d["payload_json"] = entry.payload_json
    return d


def _raise_for_failure(outcome: PeriodOutcome) -> None:
    failure = _FAILURES.get(outcome.status)
    if failure is not None:
        code, detail = failure
        raise HTTPException(status_code=code, detail=detail)
    if outcome.entry is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Unexpected receipt outcome: {outcome.status}",
        )


def _service(request: Request) -> ReceiptService:
    return request.app.state.service


def _identity(
    cuil: Annotated[Optional[str], Header(alias=IDENTITY_HEADER)] = None,
) -> str:
    if not cuil or not cuil.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {IDENTITY_HEADER} header.",
        )
    return cuil.strip()


Service = Annotated[ReceiptService, Depends(_service)]
Identity = Annotated[str, Depends(_identity)]


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    config: Optional[Config] = None,
    *,
    service: Optional[ReceiptService] = None,
) -> FastAPI:
    """
    Build the API around one ``ReceiptService``.

    When ``service`` is omitted one is wired from ``config`` and closed on
    shutdown.
    """
    config = config or Config()
    owns_service = service is None
    if service is None:
        service = ReceiptService.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_service:
            app.state.service.close()

    app = FastAPI(
        title="portal_empleado API",
        description="Payroll receipt catalog for the employee self-service portal.",
        version=__version__,
        license_info={"name": "MIT"},
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.service = service

    @app.exception_handler(InvalidPeriodError)
    async def _invalid_period(request: Request, exc: InvalidPeriodError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(InvalidIdentityError)
    async def _invalid_identity(request: Request, exc: InvalidIdentityError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(LockTimeoutError)
    async def _lock_timeout(request: Request, exc: LockTimeoutError):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "The period is busy, retry shortly."},
        )

    # -- meta ---------------------------------------------------------------

    @app.get("/health", tags=["meta"])
    def health():
        db_path = config.cache_db_path
        return {
            "status":         "ok",
            "version":        __version__,
            "db_path":        str(db_path),
            "db_exists":      db_path.exists(),
            "source_enabled": service.source.enabled,
        }

    @app.get("/config", tags=["meta"])
    def get_config():
        """Active configuration (no credentials are ever part of it)."""
        sc = config.get_source_config()
        return {
            "source_enabled":      sc.enabled,
            "source_backend":      sc.backend,
            "source_location":     sc.location,
            "key_prefix":          sc.prefix,
            "key_template":        sc.key_template,
            "max_months_back":     config.max_months_back,
            "not_found_ttl_hours": config.not_found_ttl_hours,
            "db_path":             str(config.cache_db_path),
        }

    # -- catalog ------------------------------------------------------------

    @app.get("/receipts/years", tags=["receipts"])
    async def get_years(svc: Service, cuil: Identity):
        return {"years": await svc.get_available_years(cuil)}

    @app.get("/receipts/{year}/months", tags=["receipts"])
    async def get_months(year: int, svc: Service, cuil: Identity):
        return {"year": year, "months": await svc.get_available_months(cuil, year)}

    @app.get("/receipts/{year}/{month}", tags=["receipts"])
    async def get_latest_by_period(year: int, month: int, svc: Service, cuil: Identity):
        """Latest snapshot; a miss downloads it from the source first."""
        outcome = await svc.get_latest_or_fetch(cuil, year, month)
        _raise_for_failure(outcome)
        return _snapshot_response(outcome.entry, outcome.status.value)

    @app.post("/receipts/{year}/{month}/refresh", tags=["receipts"])
    async def refresh_period(year: int, month: int, svc: Service, cuil: Identity):
        """
        Ask the source again. An unchanged object is not downloaded; a
        vanished one falls back to the cached snapshot.
        """
        outcome = await svc.refresh_period(cuil, year, month)
        _raise_for_failure(outcome)
        return {
            "refreshed": outcome.refreshed,
            "status":    outcome.status.value,
            "snapshot":  _snapshot_response(
                outcome.entry, _REFRESH_SNAPSHOT_TAG.get(outcome.status, outcome.status.value),
            ),
        }

    # -- parsed receipts ----------------------------------------------------

    @app.get("/recibo-sueldo", tags=["recibos"])
    async def list_recibos(svc: Service, cuil: Identity):
        documents = await svc.list_receipts(cuil)
        return {
            "recibos": [d.to_dict() for d in documents],
            "total":   len(documents),
        }

    @app.get("/recibo-sueldo/{recibo_id}", tags=["recibos"])
    async def get_recibo(recibo_id: str, svc: Service, cuil: Identity):
        document = await svc.get_receipt_by_id(cuil, recibo_id)
        if document is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt not found.")
        return document.to_dict()

    return app
