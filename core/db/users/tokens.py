"""
Single-use tokens emailed to users: password reset links and email verification links.

Both kinds share one lifecycle (issue, look up while unexpired and unused, mark used)
and differ only by table and lifetime.
"""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional

from core.db.base import get_conn

RESET_TOKEN_MINUTES = 60
VERIFY_TOKEN_HOURS = 24

_RESET_TABLE = "password_reset_tokens"
_VERIFY_TABLE = "email_verification_tokens"


def _now() -> str:
    return datetime.utcnow().isoformat(timespec="seconds")


def _issue(table: str, user_id: int, lifetime: timedelta, replace_existing: bool) -> str:
    token = secrets.token_urlsafe(32)
    now = datetime.utcnow()

    conn = get_conn()
    cur = conn.cursor()
    if replace_existing:
        cur.execute(f"DELETE FROM {table} WHERE user_id = ?", (user_id,))
    cur.execute(
        f"""
        INSERT INTO {table} (user_id, token, created_at, expires_at)
        VALUES (?, ?, ?, ?)
        """,
        (
            user_id,
            token,
            now.isoformat(timespec="seconds"),
            (now + lifetime).isoformat(timespec="seconds"),
        ),
    )
    conn.commit()
    conn.close()
    return token


def _lookup(table: str, token: str) -> Optional[Dict]:
    """Return the token row while it is unused and unexpired; stale rows are purged."""
    if not token:
        return None

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT id, user_id, token, created_at, expires_at, used_at
        FROM {table}
        WHERE token = ?
        """,
        (token,),
    )
    row = cur.fetchone()
    if not row:
        conn.close()
        return None

    data = dict(row)
    try:
        expired = datetime.fromisoformat(data["expires_at"]) <= datetime.utcnow()
    except (TypeError, ValueError):
        expired = True

    if expired or data.get("used_at"):
        cur.execute(f"DELETE FROM {table} WHERE token = ?", (token,))
        conn.commit()
        conn.close()
        return None

    conn.close()
    return data


def create_password_reset_token(user_id: int) -> str:
    """Issue a reset token, invalidating any earlier ones for the same user."""
    return _issue(_RESET_TABLE, user_id, timedelta(minutes=RESET_TOKEN_MINUTES), replace_existing=True)


def get_password_reset_token(token: str) -> Optional[Dict]:
    return _lookup(_RESET_TABLE, token)


def mark_reset_token_used(token: str) -> None:
    if not token:
        return
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT user_id FROM {_RESET_TABLE} WHERE token = ?", (token,))
    row = cur.fetchone()
    cur.execute(f"UPDATE {_RESET_TABLE} SET used_at=? WHERE token=?", (_now(), token))
    if row:
        cur.execute(
            f"DELETE FROM {_RESET_TABLE} WHERE user_id = ? AND token != ?",
            (row["user_id"], token),
        )
    conn.commit()
    conn.close()


def create_email_verification_token(user_id: int) -> str:
    return _issue(_VERIFY_TABLE, user_id, timedelta(hours=VERIFY_TOKEN_HOURS), replace_existing=False)


def get_email_verification_token(token: str) -> Optional[Dict]:
    return _lookup(_VERIFY_TABLE, token)


def mark_email_verification_token_used(token: str) -> None:
    if not token:
        return
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"UPDATE {_VERIFY_TABLE} SET used_at = ? WHERE token = ? AND used_at IS NULL",
        (_now(), token),
    )
    conn.commit()
    conn.close()


def mark_user_email_verified(user_id: int) -> None:
    """Set email_verified_at if not already set."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE users SET email_verified_at = ? WHERE id = ? AND (email_verified_at IS NULL OR email_verified_at = '')",
        (_now(), user_id),
    )
    conn.commit()
    conn.close()


__all__ = [
    "RESET_TOKEN_MINUTES",
    "VERIFY_TOKEN_HOURS",
    "create_password_reset_token",
    "get_password_reset_token",
    "mark_reset_token_used",
    "create_email_verification_token",
    "get_email_verification_token",
    "mark_email_verification_token_used",
    "mark_user_email_verified",
]
