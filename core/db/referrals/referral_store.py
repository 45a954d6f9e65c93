"""
Referral codes and referral rows.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

import psycopg

from core.db.base import get_conn


def get_referral_code_for_user(user_id: int) -> Optional[str]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("SELECT code FROM referral_codes WHERE user_id = ?", (user_id,))
    row = cur.fetchone()
    conn.close()
    return row["code"] if row else None


def get_referral_code_owner(code: str) -> Optional[int]:
    """Return the user id owning a referral code (codes are stored upper-case)."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("SELECT user_id FROM referral_codes WHERE code = ?", ((code or "").strip().upper(),))
    row = cur.fetchone()
    conn.close()
    return int(row["user_id"]) if row else None


def insert_referral_code(user_id: int, code: str) -> bool:
    """
    Try to store a code for the user. Returns False when the code is already
    taken by someone else so the caller can retry with a fresh one.
    """
    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute(
            "INSERT INTO referral_codes (user_id, code, created_at) VALUES (?, ?, ?)",
            (user_id, code, datetime.utcnow().isoformat(timespec="seconds")),
        )
    except psycopg.errors.UniqueViolation:
        conn.rollback()
        conn.close()
        return False
    conn.commit()
    conn.close()
    return True


def get_referral_for_referred_user(referred_user_id: int) -> Optional[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, referrer_user_id, referred_user_id, created_at, converted,
               conversion_date, conversion_value
        FROM referrals
        WHERE referred_user_id = ?
        """,
        (referred_user_id,),
    )
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def create_referral(referrer_user_id: int, referred_user_id: int) -> int:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO referrals (referrer_user_id, referred_user_id, created_at)
        VALUES (?, ?, ?)
        RETURNING id
        """,
        (referrer_user_id, referred_user_id, datetime.utcnow().isoformat(timespec="seconds")),
    )
    row = cur.fetchone()
    conn.commit()
    conn.close()
    return int(row["id"]) if row else 0


def mark_referral_converted(referral_id: int, conversion_value: Decimal) -> Optional[str]:
    """
    Flag the referral as converted and return the conversion timestamp.
    Returns None when it was already converted, so concurrent callers convert it once.
    """
    now = datetime.utcnow().isoformat(timespec="seconds")
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE referrals
        SET converted = 1, conversion_date = ?, conversion_value = ?
        WHERE id = ? AND converted = 0
        """,
        (now, conversion_value, referral_id),
    )
    changed = cur.rowcount > 0
    conn.commit()
    conn.close()
    return now if changed else None


def list_referrals_for_referrer(referrer_user_id: int) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT r.id, r.referred_user_id, r.created_at, r.converted, r.conversion_date,
               r.conversion_value, u.email AS referred_email
        FROM referrals r
        LEFT JOIN users u ON u.id = r.referred_user_id
        WHERE r.referrer_user_id = ?
        ORDER BY r.created_at DESC, r.id DESC
        """,
        (referrer_user_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def list_converted_referrers() -> List[Dict]:
    """One row per converted referral, joined with the referrer's leaderboard settings."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT r.referrer_user_id, u.alias, u.opt_in_leaderboard
        FROM referrals r
        JOIN users u ON u.id = r.referrer_user_id
        WHERE r.converted = 1
        """
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def list_referrals(converted: Optional[bool] = None, limit: int = 200) -> List[Dict]:
    """Admin listing of referrals with both parties' emails."""
    sql = """
        SELECT r.id, r.referrer_user_id, r.referred_user_id, r.created_at, r.converted,
               r.conversion_date, r.conversion_value,
               referrer.email AS referrer_email, referred.email AS referred_email
        FROM referrals r
        LEFT JOIN users referrer ON referrer.id = r.referrer_user_id
        LEFT JOIN users referred ON referred.id = r.referred_user_id
    """
    params: list = []
    if converted is not None:
        sql += " WHERE r.converted = ?"
        params.append(1 if converted else 0)
    sql += " ORDER BY r.created_at DESC, r.id DESC LIMIT ?"
    params.append(int(limit))

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(sql, params)
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


__all__ = [
    "get_referral_code_for_user",
    "get_referral_code_owner",
    "insert_referral_code",
    "get_referral_for_referred_user",
    "create_referral",
    "mark_referral_converted",
    "list_referrals_for_referrer",
    "list_converted_referrers",
    "list_referrals",
]
