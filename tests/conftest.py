"""
tests/conftest.py
~~~~~~~~~~~~~~~~~
Shared pytest fixtures for the portal_empleado test suite.

Nothing here touches the network or ``~/.portal_empleado``: catalogs live
under ``tmp_path`` and the object store is an in-memory fake.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

import pytest

from portal_empleado.config import Config, SourceConfig
from portal_empleado.exceptions import ObjectStoreError
from portal_empleado.service import ReceiptService
from portal_empleado.source import MISSING, ObjectMetadata, ReceiptSource, StoredObject
from portal_empleado.storage import SQLiteReceiptCatalog

CUIL = "20123456789"
DASHED_CUIL = "20-12345678-9"
FIXED_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fake object store
# ---------------------------------------------------------------------------

class FakeObjectStore:
    """
    In-memory ``ObjectStore`` that counts calls.

    ``gate`` (a ``threading.Event``) makes ``get`` block until it is set;
    ``started`` is set as soon as a blocked ``get`` begins.
    """

    def __init__(self) -> None:
        self.objects: Dict[str, Tuple[bytes, Optional[str], Optional[str]]] = {}
        self.failing: set[str] = set()
        self.head_calls: list[str] = []
        self.get_calls: list[str] = []
        self.gate: Optional[threading.Event] = None
        self.started = threading.Event()
        self._lock = threading.Lock()

    def put(self, key: str, payload, etag: str = '"etag-1"', version_id: Optional[str] = None) -> None:
        if isinstance(payload, (dict, list)):
            payload = json.dumps(payload)
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        self.objects[key] = (payload, etag, version_id)

    def remove(self, key: str) -> None:
        self.objects.pop(key, None)

    def describe(self) -> str:
        return "fake://receipts"

    def head(self, key: str):
        with self._lock:
            self.head_calls.append(key)
        if key in self.failing:
            raise ObjectStoreError("access denied", key=key)
        if key not in self.objects:
            return MISSING
        _, etag, version_id = self.objects[key]
        return ObjectMetadata(etag=etag, version_id=version_id)

    def get(self, key: str):
        with self._lock:
            self.get_calls.append(key)
        if self.gate is not None:
            self.started.set()
            self.gate.wait(timeout=10)
        if key not in self.objects:
            return MISSING
        body, etag, version_id = self.objects[key]
        return StoredObject(body=body, etag=etag, version_id=version_id)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

@pytest.fixture
def default_config() -> Config:
    return Config(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def source_config() -> SourceConfig:
    return Config(  # type: ignore[call-arg]
        _env_file=None,
        source_enabled=True,
        s3_bucket="payroll-bucket",
    ).get_source_config()


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def catalog(tmp_path) -> SQLiteReceiptCatalog:
    db = SQLiteReceiptCatalog(db_path=tmp_path / "receipts.db")
    yield db
    db.close()


@pytest.fixture
def service(catalog, fake_store, source_config) -> ReceiptService:
    return ReceiptService(
        catalog,
        ReceiptSource(source_config, store=fake_store),
        now=lambda: FIXED_NOW,
    )


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

def receipt_key(year: int, month: int, cuil: str = CUIL) -> str:
    token = f"{year:04d}{month:02d}"
    return f"{token}/Personal_{cuil}_{token}.json"


@pytest.fixture
def sample_payload() -> dict:
    return {
        "Cuil": DASHED_CUIL,
        "Nombre": "PEREZ, JUAN",
        "Codigo": "4711",
        "TotalLiquido": 182450.75,
        "TotalHaberes": 250000.00,
        "TotalItemsDescuentos": 67549.25,
        "Cargos": [
            {
                "Liquido": 182450.75,
                "HorasCargo": 20,
                "LiquidoPalabras": "CIENTO OCHENTA Y DOS MIL CUATROCIENTOS CINCUENTA CON 75/100",
                "FechaIngreso": "2015-03-01",
                "Establecimiento": {"Nombre": "Escuela N° 12", "Localidad": "Salta"},
                "FormaPago": {"Descripcion": "Acreditación bancaria"},
                "Cargo": {"Descripcion": "Maestro de grado"},
                "Antiguedad": {"Tipo": "10 años"},
                "Items": [
                    {"CodigoItem": "001", "DescripcionItem": "Sueldo básico",
                     "TipoItem": "H", "TotalMontoItem": 200000.00, "EsDescuento": False},
                    {"Item": {"CodigoItem": "501", "Descripcion": "Jubilación", "Descuento": True},
                     "MontoItem": "67.549,25"},
                ],
            }
        ],
    }


@pytest.fixture
def two_cargo_payload() -> dict:
    return {
        "Cuil": CUIL,
        "Nombre": "PEREZ, JUAN",
        "TotalLiquido": 300000,
        "Cargos": [
            {"Liquido": 180000, "Cargo": {"Descripcion": "Maestro de grado"}},
            {"Liquido": "120.000,00", "Cargo": {"Descripcion": "Profesor hora cátedra"}},
        ],
    }
