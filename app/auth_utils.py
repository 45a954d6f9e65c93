"""
Session cookie handling, current-user lookup and role checks.
"""
from __future__ import annotations

import re

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from app.security import secure_cookies
from core.database import delete_session, get_session, get_user_by_id, touch_session

SESSION_COOKIE_NAME = "session_id"
SESSION_COOKIE_MAX_AGE = 1800  # 30 minutes, refreshed on activity


def get_current_user(request: Request):
    """
    Return (user, session_token) for the request's session cookie, or (None, token/None).
    A valid session has its inactivity window pushed forward.
    """
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None, None

    session = get_session(token)
    if not session:
        return None, token

    user = get_user_by_id(session["user_id"])
    if not user:
        delete_session(token)
        return None, token

    # Unverified accounts never hold a session
    if user.get("email_verified_at") in (None, ""):
        delete_session(token)
        return None, token

    touch_session(token)
    return user, token


def is_valid_password(pw: str) -> bool:
    """8-64 characters, no whitespace, at least one letter and one number."""
    pw = pw or ""
    if re.search(r"\s", pw) or not 8 <= len(pw) <= 64:
        return False
    return bool(re.search(r"[A-Za-z]", pw) and re.search(r"\d", pw))


def is_admin(user: dict | None) -> bool:
    return bool(user) and user.get("role") == "admin"


def has_report_access(user: dict | None) -> bool:
    """Comprehensive vehicle reports: bought once, or any admin."""
    return is_admin(user) or bool(user and user.get("has_comprehensive_report_access"))


def json_auth_error(user: dict | None, admin_required: bool = False) -> JSONResponse | None:
    """401/403 body for JSON endpoints, or None when the caller may proceed."""
    if not user:
        return JSONResponse({"error": "Unauthorized", "message": "Authentication required"}, status_code=401)
    if admin_required and not is_admin(user):
        return JSONResponse({"error": "Forbidden", "message": "Admin access required"}, status_code=403)
    return None


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        max_age=SESSION_COOKIE_MAX_AGE,
        samesite="lax",
        secure=secure_cookies(),
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME)
