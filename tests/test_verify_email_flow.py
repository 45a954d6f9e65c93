from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import app.api as api_module
from app.routes import auth, dashboard

NEW_USER = {"id": 11, "email": "new@example.com", "role": "user", "email_verified_at": None}

FRESH_STATS = {
    "code": None,
    "total_referrals": 0,
    "converted_referrals": 0,
    "conversion_rate": Decimal("0"),
    "total_earnings": Decimal("0"),
    "pending_earnings": Decimal("0"),
    "paid_earnings": Decimal("0"),
    "recent_referrals": [],
    "recent_payouts": [],
}


def _stub_verification(monkeypatch, actions):
    monkeypatch.setattr(auth, "get_email_verification_token", lambda tok: {"user_id": 11} if tok == "t" else None)
    monkeypatch.setattr(auth, "get_user_by_id", lambda uid: dict(NEW_USER))
    monkeypatch.setattr(auth, "mark_user_email_verified", lambda uid: actions.append(("verified", uid)))
    monkeypatch.setattr(auth, "mark_email_verification_token_used", lambda tok: actions.append(("used", tok)))
    monkeypatch.setattr(auth, "create_session", lambda uid: actions.append(("session", uid)) or "session-token")


def test_verified_user_lands_on_dashboard_signed_in(monkeypatch):
    actions = []
    _stub_verification(monkeypatch, actions)

    def current_user(request):
        if request.cookies.get("session_id") == "session-token":
            return dict(NEW_USER, email_verified_at="2026-10-19T09:00:00"), "session-token"
        return None, None

    monkeypatch.setattr(dashboard, "get_current_user", current_user)
    monkeypatch.setattr(dashboard, "get_user_referral_stats", lambda uid: FRESH_STATS)
    monkeypatch.setattr(dashboard, "list_dispute_letters_for_user", lambda uid: [])
    monkeypatch.setattr(dashboard, "list_vehicle_lookups_for_user", lambda uid, limit=10: [])
    client = TestClient(api_module.app)

    resp = client.get("/verify-email?token=t", follow_redirects=False)

    assert resp.status_code == 303
    assert resp.headers["location"] == "/dashboard"
    assert "httponly" in resp.headers["set-cookie"].lower()
    assert actions == [("verified", 11), ("used", "t"), ("session", 11)]

    page = client.get("/dashboard")
    assert page.status_code == 200
    assert "Get my referral link" in page.text
    assert "Unlock comprehensive reports" in page.text


def test_verify_email_invalid_token(monkeypatch):
    monkeypatch.setattr(auth, "get_email_verification_token", lambda tok: None)
    monkeypatch.setattr(auth, "create_session", lambda uid: pytest.fail("no session for a bad token"))

    resp = TestClient(api_module.app).get("/verify-email?token=bad")

    assert resp.status_code == 200
    assert "invalid or expired" in resp.text.lower()
    assert "session_id" not in resp.headers.get("set-cookie", "")


def test_verify_email_for_deleted_account(monkeypatch):
    actions = []
    _stub_verification(monkeypatch, actions)
    monkeypatch.setattr(auth, "get_user_by_id", lambda uid: None)

    resp = TestClient(api_module.app).get("/verify-email?token=t")

    assert "Unable to verify this account" in resp.text
    assert actions == []


def test_resend_only_mails_unverified_accounts(monkeypatch):
    sent = []
    accounts = {
        "new@example.com": dict(NEW_USER),
        "done@example.com": dict(NEW_USER, id=12, email="done@example.com", email_verified_at="2026-10-01T09:00:00"),
    }
    monkeypatch.setattr(auth, "get_user_by_email", lambda email: accounts.get(email))
    monkeypatch.setattr(auth, "create_email_verification_token", lambda uid: f"tok{uid}")
    monkeypatch.setattr(auth, "send_verification_email", lambda to, link: sent.append((to, link)))
    client = TestClient(api_module.app)
    client.cookies.set("csrf_token", "tok")

    texts = [
        client.post("/verify-email/resend", data={"email": email, "csrf_token": "tok"}).text
        for email in ("new@example.com", "done@example.com", "nobody@example.com")
    ]

    assert len(sent) == 1
    assert sent[0][0] == "new@example.com"
    assert sent[0][1].endswith("/verify-email?token=tok11")
    # Same answer whether or not the address has an account.
    assert all("If that email exists and is unverified" in text for text in texts)


def test_resend_survives_mail_failure(monkeypatch):
    def broken_send(to, link):
        raise OSError("smtp down")

    monkeypatch.setattr(auth, "get_user_by_email", lambda email: dict(NEW_USER))
    monkeypatch.setattr(auth, "create_email_verification_token", lambda uid: "tok11")
    monkeypatch.setattr(auth, "send_verification_email", broken_send)
    client = TestClient(api_module.app)
    client.cookies.set("csrf_token", "tok")

    resp = client.post("/verify-email/resend", data={"email": "new@example.com", "csrf_token": "tok"})

    assert resp.status_code == 200
    assert "smtp down" not in resp.text
