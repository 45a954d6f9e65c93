"""
User CRUD, profile and role helpers.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from core.db.base import get_conn
from core.db.users.auth import hash_password

_USER_COLUMNS = """
    id, email, password_hash, role, active, created_at, email_verified_at,
    full_name, phone, address, alias, opt_in_leaderboard, has_comprehensive_report_access
"""

# Admin listings may only sort on these columns.
USER_SORT_FIELDS = ("created_at", "email", "full_name", "role")


def create_user(email: str, raw_password: str, role: str = "user", verified: bool = True) -> int:
    conn = get_conn()
    cur = conn.cursor()
    now = datetime.utcnow().isoformat(timespec="seconds")

    password_hash = hash_password(raw_password)
    email_verified_at = now if verified else None

    cur.execute(
        """
        INSERT INTO users (email, password_hash, role, created_at, email_verified_at)
        VALUES (?, ?, ?, ?, ?)
        RETURNING id
        """,
        (email.strip().lower(), password_hash, role, now, email_verified_at),
    )
    row = cur.fetchone()
    user_id = int(row["id"]) if row else 0

    conn.commit()
    conn.close()
    return user_id


def get_user_by_email(email: str) -> Dict | None:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE email = ?", (email.strip().lower(),))
    row = cur.fetchone()
    conn.close()

    return dict(row) if row else None


def get_user_by_id(user_id: int) -> Optional[Dict]:
    """Look up a user by numeric id. Returns dict or None."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,))
    row = cur.fetchone()
    conn.close()

    return dict(row) if row else None


def update_user_password(user_id: int, raw_password: str) -> None:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE users SET password_hash=? WHERE id=?",
        (hash_password(raw_password), user_id),
    )
    conn.commit()
    conn.close()


def update_user_profile(
    user_id: int,
    *,
    full_name: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    alias: str | None = None,
    opt_in_leaderboard: bool = False,
) -> None:
    """Overwrite the editable profile fields. Blank strings are stored as NULL."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE users
        SET full_name = ?, phone = ?, address = ?, alias = ?, opt_in_leaderboard = ?
        WHERE id = ?
        """,
        (
            (full_name or "").strip() or None,
            (phone or "").strip() or None,
            (address or "").strip() or None,
            (alias or "").strip() or None,
            1 if opt_in_leaderboard else 0,
            user_id,
        ),
    )
    conn.commit()
    conn.close()


def set_user_role(user_id: int, role: str) -> None:
    if role not in ("user", "admin"):
        raise ValueError(f"Unknown role: {role}")
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("UPDATE users SET role=? WHERE id=?", (role, user_id))
    conn.commit()
    conn.close()


def set_comprehensive_report_access(user_id: int, granted: bool = True) -> None:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE users SET has_comprehensive_report_access=? WHERE id=?",
        (1 if granted else 0, user_id),
    )
    conn.commit()
    conn.close()


def list_users(
    search: str = "",
    sort: str = "created_at",
    direction: str = "desc",
    limit: int = 200,
) -> List[Dict]:
    """Admin listing with optional email/name search."""
    sort = sort if sort in USER_SORT_FIELDS else "created_at"
    direction = "ASC" if (direction or "").lower() == "asc" else "DESC"

    sql = f"SELECT {_USER_COLUMNS} FROM users"
    params: list = []
    if search.strip():
        sql += " WHERE email ILIKE ? OR full_name ILIKE ? OR alias ILIKE ?"
        pattern = f"%{search.strip()}%"
        params.extend([pattern, pattern, pattern])
    sql += f" ORDER BY {sort} {direction}, id DESC LIMIT ?"
    params.append(int(limit))

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(sql, params)
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def count_users() -> int:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("SELECT COUNT(*) AS c FROM users")
    row = cur.fetchone()
    conn.close()
    return int(row["c"]) if row else 0


def delete_user_data(user_id: int) -> None:
    """
    Remove a user and related data: sessions, tokens, referral code, user row.
    The user row is archived to deleted_users; dispute letters are kept with user_id cleared.
    """
    conn = get_conn()
    cur = conn.cursor()

    cur.execute("SELECT id, email, role, created_at FROM users WHERE id=?", (user_id,))
    row = cur.fetchone()
    if not row:
        conn.close()
        return

    cur.execute(
        """
        INSERT INTO deleted_users (user_id, email, role, created_at, deleted_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            row["id"],
            row["email"],
            row["role"],
            row["created_at"],
            datetime.utcnow().isoformat(timespec="seconds"),
        ),
    )
    cur.execute("DELETE FROM password_reset_tokens WHERE user_id=?", (user_id,))
    cur.execute("DELETE FROM email_verification_tokens WHERE user_id=?", (user_id,))
    cur.execute("DELETE FROM sessions WHERE user_id=?", (user_id,))
    cur.execute("DELETE FROM referral_codes WHERE user_id=?", (user_id,))
    cur.execute("UPDATE dispute_letters SET user_id=NULL WHERE user_id=?", (user_id,))
    cur.execute("DELETE FROM users WHERE id=?", (user_id,))

    conn.commit()
    conn.close()


def get_deleted_users(limit: int = 100):
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, user_id, email, role, created_at, deleted_at
        FROM deleted_users
        ORDER BY deleted_at DESC, id DESC
        LIMIT ?
        """,
        (int(limit),),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


__all__ = [
    "USER_SORT_FIELDS",
    "create_user",
    "get_user_by_email",
    "get_user_by_id",
    "update_user_password",
    "update_user_profile",
    "set_user_role",
    "set_comprehensive_report_access",
    "list_users",
    "count_users",
    "delete_user_data",
    "get_deleted_users",
]
