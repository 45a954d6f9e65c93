import types

from fastapi.responses import HTMLResponse
from fastapi.testclient import TestClient

import app.api as api_module
from app import auth_utils, security
from app.routes import auth, disputes, public


def test_login_rate_limit(monkeypatch):
    # Force rate limit to deny after 1 attempt
    calls = {"count": 0}

    def fake_allow_request_with_remaining(key, limit=5, window_seconds=60):
        calls["count"] += 1
        allowed = calls["count"] < 2
        return allowed, (1 if allowed else 0)

    monkeypatch.setattr(auth, "allow_request_with_remaining", fake_allow_request_with_remaining)
    dummy_req = types.SimpleNamespace(
        client=types.SimpleNamespace(host="127.0.0.1"),
        cookies={security.CSRF_COOKIE_NAME: "cookie-token"},
    )

    # first call passes limit check but fails CSRF -> 403
    resp1 = auth.login(dummy_req, email="user@example.com", password="bad", csrf_token="wrong")
    # second call exceeds limit -> 429
    resp2 = auth.login(dummy_req, email="user@example.com", password="bad", csrf_token="wrong")
    assert resp2.status_code == 429


def test_signup_rate_limit(monkeypatch):
    calls = {"count": 0}

    def fake_allow_request(key, limit=5, window_seconds=60):
        calls["count"] += 1
        return calls["count"] < 2

    monkeypatch.setattr(public, "allow_request", fake_allow_request)
    dummy_req = types.SimpleNamespace(
        client=types.SimpleNamespace(host="127.0.0.1"),
        cookies={security.CSRF_COOKIE_NAME: "cookie-token"},
    )

    form = {
        "email": "user@example.com",
        "password": "Passw0rd1",
        "password2": "Passw0rd1",
        "ref": "",
        "csrf_token": "wrong",  # will fail CSRF, but we just want rate-limit path exercised
    }
    resp1 = public.signup(request=dummy_req, **form)
    resp2 = public.signup(request=dummy_req, **form)
    assert resp1.status_code == 403
    assert resp2.status_code == 429


def test_dispute_form_rate_limit(monkeypatch):
    monkeypatch.setattr(disputes, "get_current_user", lambda req: (None, None))
    monkeypatch.setattr(disputes, "allow_request", lambda *a, **k: False)
    client = TestClient(api_module.app)

    resp = client.post("/dispute-letters", data={"csrf_token": "x"})
    assert resp.status_code == 429


def test_session_cleared_for_missing_user(monkeypatch):
    # Simulate get_current_user returning (None, None)
    monkeypatch.setattr(auth, "get_current_user", lambda req: (None, None))

    class DummyReq:
        cookies = {}
        client = types.SimpleNamespace(host="127.0.0.1")

    resp = auth.logout(DummyReq())
    # Should redirect to home when session is gone
    assert resp.status_code in (302, 303)


def test_cookies_are_secure_when_base_url_is_https(monkeypatch):
    # Set after the app modules were imported, as a late-loaded .env would be.
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://autoaudit.example")
    client = TestClient(api_module.app)

    resp = client.get("/driver-check")
    assert "secure" in resp.headers["set-cookie"].lower()

    page = HTMLResponse("ok")
    auth_utils.set_session_cookie(page, "sess")
    assert "secure" in page.headers["set-cookie"].lower()


def test_cookies_are_not_secure_over_http(monkeypatch):
    monkeypatch.setenv("PUBLIC_BASE_URL", "http://localhost:8000")
    monkeypatch.delenv("COOKIE_SECURE", raising=False)

    page = HTMLResponse("ok")
    auth_utils.set_session_cookie(page, "sess")
    security.attach_csrf_cookie(page, "tok")

    assert all("secure" not in value.lower() for value in page.headers.getlist("set-cookie"))
