import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request
from starlette.responses import Response

import app.api as api_module
from app.routes import disputes, vehicles

PAID_LETTER = {
    "id": "abc123",
    "user_id": None,
    "ticket_number": "PCN12345",
    "letter_content": "Dear Sir or Madam,\nPlease cancel this notice.",
    "payment_status": "paid",
}


class FakeDVLA:
    def get_vehicle(self, registration):
        return {
            "registrationNumber": "AB12CDE",
            "make": "FORD",
            "colour": "BLUE",
            "yearOfManufacture": 2015,
            "fuelType": "PETROL",
            "engineCapacity": 998,
            "taxStatus": "Taxed",
            "taxDueDate": "2099-01-01",
            "motStatus": "Valid",
            "motExpiryDate": "2099-01-01",
        }


def _assert_hardened(resp):
    assert resp.headers.get("X-Content-Type-Options") == "nosniff"
    assert resp.headers.get("X-Frame-Options") == "SAMEORIGIN"
    assert "default-src 'self'" in (resp.headers.get("Content-Security-Policy") or "")


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(disputes, "get_dispute_letter", lambda lid: dict(PAID_LETTER))
    monkeypatch.setattr(vehicles, "DVLAClient", FakeDVLA)
    return TestClient(api_module.app)


def test_dispute_form_is_hardened(client):
    resp = client.get("/dispute-letters")
    assert resp.status_code == 200
    _assert_hardened(resp)


def test_letter_download_is_hardened(client):
    resp = client.get("/dispute-letters/abc123/download")
    assert resp.status_code == 200
    assert "attachment" in resp.headers["content-disposition"]
    _assert_hardened(resp)


def test_vehicle_report_pdf_is_hardened(client):
    resp = client.get("/vehicle-check/report.pdf?registration=AB12CDE&type=basic")
    assert resp.headers["content-type"] == "application/pdf"
    _assert_hardened(resp)


def test_json_api_errors_are_hardened(client):
    resp = client.post("/api/mot-history", content=b"")
    assert resp.status_code == 400
    _assert_hardened(resp)


def test_existing_csp_is_kept():
    async def run_test():
        async def call_next(_request: Request) -> Response:
            resp = Response(b"%PDF-1.4", media_type="application/pdf")
            resp.headers["Content-Security-Policy"] = "default-src 'none'"
            return resp

        scope = {"type": "http", "method": "GET", "path": "/vehicle-check/report.pdf", "headers": [], "query_string": b""}
        resp = await api_module.add_security_headers(Request(scope), call_next)

        assert resp.headers["Content-Security-Policy"] == "default-src 'none'"
        assert resp.headers.get("X-Content-Type-Options") == "nosniff"

    asyncio.run(run_test())
