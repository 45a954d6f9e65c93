from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import app.api as api_module
from app.routes import referrals
from core.referrals import ReferralError

USER = {"id": 5, "role": "user", "email": "u@example.com"}
ADMIN = {"id": 1, "role": "admin", "email": "admin@example.com"}


def _as(monkeypatch, user):
    monkeypatch.setattr(referrals, "get_current_user", lambda req: (user, "tok" if user else None))


def test_referral_endpoints_require_login():
    client = TestClient(api_module.app)
    assert client.post("/api/referrals/code").status_code == 401
    assert client.post("/api/referrals/track", json={"referralCode": "ABCD2345"}).status_code == 401
    resp = client.post("/api/referrals/conversion", json={"referredUserId": 5})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized", "message": "Authentication required"}


def test_generate_code(monkeypatch):
    _as(monkeypatch, USER)
    monkeypatch.setattr(referrals, "generate_referral_code", lambda uid: {"code": "ABCD2345", "created": True})

    resp = TestClient(api_module.app).post("/api/referrals/code")
    assert resp.json() == {"code": "ABCD2345", "created": True}


def test_track_normalises_code(monkeypatch):
    calls = []
    _as(monkeypatch, USER)
    monkeypatch.setattr(
        referrals, "track_referral", lambda code, uid: calls.append((code, uid)) or {"referral_id": 1}
    )

    resp = TestClient(api_module.app).post("/api/referrals/track", json={"referralCode": " abcd2345 "})

    assert resp.status_code == 200
    assert calls == [("ABCD2345", 5)]


def test_track_reports_referral_errors(monkeypatch):
    def self_referral(code, uid):
        raise ReferralError("Self-referral not allowed", "Users cannot refer themselves", 400)

    _as(monkeypatch, USER)
    monkeypatch.setattr(referrals, "track_referral", self_referral)
    client = TestClient(api_module.app)

    resp = client.post("/api/referrals/track", json={"referralCode": "ABCD2345"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Self-referral not allowed"

    assert client.post("/api/referrals/track", content=b"").json()["error"] == "Empty request body"
    assert client.post("/api/referrals/track", content=b"[1, 2]").json()["error"] == "Invalid JSON"


def test_conversion_is_admin_only(monkeypatch):
    _as(monkeypatch, USER)
    resp = TestClient(api_module.app).post("/api/referrals/conversion", json={"referredUserId": 7})
    assert resp.status_code == 403


def test_admin_records_conversion(monkeypatch):
    captured = {}

    def fake_record(uid, **kwargs):
        captured.update(kwargs, uid=uid)
        return {"referral_id": 3, "payout_id": 12, "conversion_date": "2026-10-19T10:00:00", "message": "ok"}

    _as(monkeypatch, ADMIN)
    monkeypatch.setattr(referrals, "record_conversion", fake_record)

    resp = TestClient(api_module.app).post(
        "/api/referrals/conversion",
        json={"referredUserId": "7", "conversionValue": 35.98, "payoutAmount": "12.50", "createPayout": True},
    )

    assert resp.status_code == 200
    assert resp.json()["payout_id"] == 12
    assert captured == {
        "uid": 7,
        "conversion_value": Decimal("35.98"),
        "create_payout": True,
        "payout_amount": Decimal("12.50"),
    }


def test_conversion_rejects_bad_numbers(monkeypatch):
    _as(monkeypatch, ADMIN)
    client = TestClient(api_module.app)

    resp = client.post("/api/referrals/conversion", json={"referredUserId": "seven"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid field"

    resp = client.post("/api/referrals/conversion", json={"referredUserId": 7, "conversionValue": "lots"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Amounts must be numbers"


def test_leaderboard_api_serialises_amounts(monkeypatch):
    board = {
        "leaderboard": [{"rank": 1, "alias": "Speedy", "conversions": 2, "earnings": Decimal("20")}],
        "user_stats": None,
        "payout_per_referral": Decimal("10"),
        "total_entries": 1,
    }
    monkeypatch.setattr(referrals, "get_leaderboard", lambda uid: board)

    data = TestClient(api_module.app).get("/api/leaderboard").json()
    assert data["leaderboard"][0]["earnings"] == "20"
    assert data["payout_per_referral"] == "10"


def test_leaderboard_page(monkeypatch):
    board = {"leaderboard": [], "user_stats": None, "payout_per_referral": Decimal("10"), "total_entries": 0}
    monkeypatch.setattr(referrals, "get_leaderboard", lambda uid: board)

    resp = TestClient(api_module.app).get("/leaderboard")
    assert resp.status_code == 200
    assert "No referrers on the board yet. Be the first!" in resp.text
    assert "£10.00" in resp.text


def test_conversion_rejects_non_finite_and_oversized_amounts(monkeypatch):
    _as(monkeypatch, ADMIN)
    monkeypatch.setattr(referrals, "record_conversion", lambda uid, **kwargs: pytest.fail("should not record"))
    client = TestClient(api_module.app)

    for body in (
        {"referredUserId": 7, "conversionValue": "NaN"},
        {"referredUserId": 7, "conversionValue": "Infinity"},
        {"referredUserId": 7, "conversionValue": 1e9},
        {"referredUserId": 7, "payoutAmount": "-10"},
    ):
        resp = client.post("/api/referrals/conversion", json=body)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Amounts must be numbers"


def test_track_rejects_non_string_code(monkeypatch):
    _as(monkeypatch, USER)
    monkeypatch.setattr(referrals, "track_referral", lambda code, uid: pytest.fail("should not track"))

    resp = TestClient(api_module.app).post("/api/referrals/track", json={"referralCode": 12345678})

    assert resp.status_code == 400
    assert resp.json()["message"] == "referralCode must be a string"
