"""
tests/test_api.py
~~~~~~~~~~~~~~~~~
HTTP tests for portal_empleado.api.app using FastAPI's TestClient. The
service is wired to the in-memory fake store and a tmp_path catalog.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from portal_empleado.api import create_app
from portal_empleado.config import Config
from portal_empleado.exceptions import LockTimeoutError
from portal_empleado.service import ReceiptService
from portal_empleado.source import ReceiptSource

from conftest import CUIL, DASHED_CUIL, receipt_key

HEADERS = {"X-Employee-Cuil": DASHED_CUIL}


@pytest.fixture
def api_config(tmp_path) -> Config:
    return Config(  # type: ignore[call-arg]
        _env_file=None,
        source_enabled=True,
        s3_bucket="payroll-bucket",
        cache_db_path=tmp_path / "receipts.db",
    )


@pytest.fixture
def client(api_config, service) -> TestClient:
    return TestClient(create_app(api_config, service=service))


class TestMeta:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["source_enabled"] is True
        assert body["db_path"].endswith("receipts.db")

    def test_config_has_no_credentials(self, client):
        body = client.get("/config").json()
        assert body["source_location"] == "s3://payroll-bucket"
        assert body["max_months_back"] == 12
        assert body["not_found_ttl_hours"] == 12.0
        assert not any("secret" in key or "password" in key for key in body)


class TestIdentity:
    def test_missing_header(self, client):
        assert client.get("/receipts/years").status_code == 401

    def test_blank_header(self, client):
        assert client.get("/receipts/years", headers={"X-Employee-Cuil": "  "}).status_code == 401

    def test_identity_without_digits(self, client):
        r = client.get("/receipts/years", headers={"X-Employee-Cuil": "abc"})
        assert r.status_code == 400


class TestPeriod:
    def test_download_then_cache_hit(self, client, fake_store, sample_payload):
        fake_store.put(receipt_key(2026, 1), sample_payload, etag='"e1"')

        first = client.get("/receipts/2026/1", headers=HEADERS)
        assert first.status_code == 200
        body = first.json()
        assert body["status"] == "downloaded_on_miss"
        assert body["version"] == 1
        assert body["cuil"] == CUIL
        assert body["source_etag"] == "e1"
        assert body["receipt"]["id"] == "2026-01"
        assert body["receipt"]["importe"] == 182450.75
        assert body["receipt"]["pdf_url"] == "/api/recibo-sueldo/2026-01/pdf"
        assert '"PEREZ, JUAN"' in body["payload_json"]

        second = client.get("/receipts/2026/1", headers=HEADERS).json()
        assert second["status"] == "cache_hit"
        assert len(fake_store.get_calls) == 1

    def test_not_found(self, client):
        assert client.get("/receipts/2026/1", headers=HEADERS).status_code == 404

    def test_invalid_payload(self, client, fake_store):
        fake_store.put(receipt_key(2026, 1), "")
        assert client.get("/receipts/2026/1", headers=HEADERS).status_code == 502

    @pytest.mark.parametrize("path", ["/receipts/2026/13", "/receipts/1999/1", "/receipts/2026/0"])
    def test_invalid_period(self, client, path):
        assert client.get(path, headers=HEADERS).status_code == 400

    def test_non_numeric_period(self, client):
        assert client.get("/receipts/abcd/1", headers=HEADERS).status_code == 422

    def test_source_disabled(self, catalog, fake_store, default_config):
        svc = ReceiptService(catalog, ReceiptSource(default_config.get_source_config(), store=fake_store))
        client = TestClient(create_app(default_config, service=svc))
        assert client.get("/receipts/2026/1", headers=HEADERS).status_code == 503

    def test_busy_period(self, client, service, mocker):
        mocker.patch.object(
            service, "get_latest_or_fetch", side_effect=LockTimeoutError(f"{CUIL}:2026-01", 1.0),
        )
        assert client.get("/receipts/2026/1", headers=HEADERS).status_code == 503

    def test_years_and_months(self, client, fake_store):
        fake_store.put(receipt_key(2026, 2), {"Cuil": CUIL})
        client.get("/receipts/2026/2", headers=HEADERS)
        assert client.get("/receipts/years", headers=HEADERS).json() == {"years": [2026]}
        assert client.get("/receipts/2026/months", headers=HEADERS).json() == {
            "year": 2026, "months": [2],
        }


class TestRefresh:
    def test_downloaded(self, client, fake_store):
        fake_store.put(receipt_key(2026, 1), {"Cuil": CUIL})
        body = client.post("/receipts/2026/1/refresh", headers=HEADERS).json()
        assert body["refreshed"] is True
        assert body["status"] == "downloaded"
        assert body["snapshot"]["status"] == "downloaded"

    def test_not_modified(self, client, fake_store):
        fake_store.put(receipt_key(2026, 1), {"Cuil": CUIL})
        client.get("/receipts/2026/1", headers=HEADERS)
        body = client.post("/receipts/2026/1/refresh", headers=HEADERS).json()
        assert body["refreshed"] is False
        assert body["status"] == "not_modified"
        assert body["snapshot"]["version"] == 1

    def test_cache_fallback(self, client, fake_store):
        fake_store.put(receipt_key(2026, 1), {"Cuil": CUIL})
        client.get("/receipts/2026/1", headers=HEADERS)
        fake_store.remove(receipt_key(2026, 1))
        body = client.post("/receipts/2026/1/refresh", headers=HEADERS).json()
        assert body["status"] == "remote_not_found"
        assert body["snapshot"]["status"] == "cache_fallback"

    def test_not_found(self, client):
        assert client.post("/receipts/2026/1/refresh", headers=HEADERS).status_code == 404


class TestRecibos:
    def test_list(self, client, fake_store, sample_payload, two_cargo_payload):
        fake_store.put(receipt_key(2026, 1), sample_payload)
        fake_store.put(receipt_key(2026, 2), two_cargo_payload)
        body = client.get("/recibo-sueldo", headers=HEADERS).json()
        assert body["total"] == 3
        assert [r["id"] for r in body["recibos"]] == ["2026-02-c2", "2026-02-c1", "2026-01"]
        assert body["recibos"][2]["periodo"] == "Enero 2026"

    def test_list_requires_identity(self, client):
        assert client.get("/recibo-sueldo").status_code == 401

    def test_get_one(self, client, fake_store, sample_payload):
        fake_store.put(receipt_key(2026, 1), sample_payload)
        body = client.get("/recibo-sueldo/202601", headers=HEADERS).json()
        assert body["id"] == "2026-01"
        assert body["cargo"] == "Maestro de grado"
        assert len(body["conceptos"]) == 2

    @pytest.mark.parametrize("recibo_id", ["2026-01", "bogus", "2020-01"])
    def test_get_one_missing(self, client, recibo_id):
        assert client.get(f"/recibo-sueldo/{recibo_id}", headers=HEADERS).status_code == 404


class TestServer:
    def test_launch_uses_app_factory(self, mocker, capsys):
        from portal_empleado.api import server

        run = mocker.patch("portal_empleado.api.server.uvicorn.run")
        server.launch(port=8123)
        run.assert_called_once_with(
            "portal_empleado.api.app:create_app",
            factory=True, host="127.0.0.1", port=8123, reload=False, log_level="warning",
        )
        assert "http://127.0.0.1:8123" in capsys.readouterr().out
