"""
CSRF (double-submit cookie) and in-memory rate limit helpers.
"""
from __future__ import annotations

import hmac
import os
import secrets
import time
from typing import Dict, Tuple

CSRF_COOKIE_NAME = "csrf_token"


def secure_cookies() -> bool:
    """Secure flag for cookies: COOKIE_SECURE, or an https PUBLIC_BASE_URL."""
    return (
        os.getenv("COOKIE_SECURE", "").lower() in ("1", "true", "yes")
        or os.getenv("PUBLIC_BASE_URL", "").lower().startswith("https://")
    )


def issue_csrf_token(existing: str | None = None) -> str:
    """Re-use the visitor's current token when there is one."""
    return existing or secrets.token_urlsafe(16)


def attach_csrf_cookie(response, token: str) -> None:
    # Readable by the page so forms can echo it back.
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,
        samesite="lax",
        secure=secure_cookies(),
    )


def validate_csrf(request, form_token: str | None) -> bool:
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME) or ""
    form_token = form_token or ""
    if not cookie_token or not form_token:
        return False
    return hmac.compare_digest(cookie_token, form_token)


def client_ip(request) -> str:
    return request.client.host if request is not None and request.client else "unknown"


# -------- Rate limiting (in-memory, per process) --------
_rate_state: Dict[str, list[float]] = {}


def allow_request(key: str, limit: int = 5, window_seconds: int = 60) -> bool:
    allowed, _ = allow_request_with_remaining(key, limit=limit, window_seconds=window_seconds)
    return allowed


def allow_request_with_remaining(key: str, limit: int = 5, window_seconds: int = 60) -> Tuple[bool, int]:
    """
    Sliding-window limit. Returns (allowed, attempts remaining after this one).
    """
    now = time.time()
    history = [t for t in _rate_state.get(key, []) if t > now - window_seconds]
    if len(history) >= limit:
        _rate_state[key] = history
        return False, 0
    history.append(now)
    _rate_state[key] = history
    return True, max(0, limit - len(history))


def reset_rate_limits() -> None:
    _rate_state.clear()


__all__ = [
    "CSRF_COOKIE_NAME",
    "issue_csrf_token",
    "attach_csrf_cookie",
    "validate_csrf",
    "client_ip",
    "allow_request",
    "allow_request_with_remaining",
    "reset_rate_limits",
]
