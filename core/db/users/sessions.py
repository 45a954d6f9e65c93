"""
Login sessions: opaque tokens with a sliding inactivity window.
"""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from core.db.base import get_conn

SESSION_TIMEOUT_MINUTES = 30  # inactivity timeout


def _window() -> Tuple[str, str]:
    now = datetime.utcnow()
    expires = now + timedelta(minutes=SESSION_TIMEOUT_MINUTES)
    return now.isoformat(timespec="seconds"), expires.isoformat(timespec="seconds")


def create_session(user_id: int) -> str:
    """Create a new login session for the given user_id and return the session token."""
    token = secrets.token_urlsafe(32)
    now, expires = _window()

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO sessions (id, user_id, created_at, last_seen_at, expires_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (token, user_id, now, now, expires),
    )
    conn.commit()
    conn.close()
    return token


def delete_session(session_id: str) -> None:
    """Logout: drop one session."""
    if not session_id:
        return

    conn = get_conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
    conn.commit()
    conn.close()


def delete_user_sessions(user_id: int) -> int:
    """Sign a user out everywhere (after a password reset). Returns the number of sessions removed."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,))
    removed = cur.rowcount
    conn.commit()
    conn.close()
    return removed


def get_session(session_id: str) -> Optional[Dict]:
    """
    Return the session row while it is live. Expired or unreadable rows are deleted
    on the way out and reported as missing.
    """
    if not session_id:
        return None

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "SELECT id, user_id, created_at, last_seen_at, expires_at FROM sessions WHERE id = ?",
        (session_id,),
    )
    row = cur.fetchone()
    conn.close()
    if not row:
        return None

    try:
        expired = datetime.fromisoformat(row["expires_at"]) < datetime.utcnow()
    except (TypeError, ValueError):
        expired = True
    if expired:
        delete_session(session_id)
        return None
    return dict(row)


def touch_session(session_id: str) -> None:
    """Push the expiry forward from now."""
    if not session_id:
        return

    now, expires = _window()
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE sessions SET last_seen_at = ?, expires_at = ? WHERE id = ?",
        (now, expires, session_id),
    )
    conn.commit()
    conn.close()


__all__ = [
    "SESSION_TIMEOUT_MINUTES",
    "create_session",
    "delete_session",
    "delete_user_sessions",
    "get_session",
    "touch_session",
]
