"""
Referral payout rows and their approval lifecycle.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from core.db.base import get_conn

PAYOUT_STATUSES = ("pending", "approved", "paid", "rejected", "cancelled")


def create_payout(
    user_id: int,
    amount: Decimal,
    referral_id: Optional[int] = None,
    notes: str = "",
    status: str = "pending",
) -> int:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO payouts (user_id, referral_id, amount, status, notes, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        RETURNING id
        """,
        (user_id, referral_id, amount, status, notes, datetime.utcnow().isoformat(timespec="seconds")),
    )
    row = cur.fetchone()
    conn.commit()
    conn.close()
    return int(row["id"]) if row else 0


def list_payouts_for_user(user_id: int) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, user_id, referral_id, amount, status, notes, created_at, approved_at, paid_at
        FROM payouts
        WHERE user_id = ?
        ORDER BY created_at DESC, id DESC
        """,
        (user_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def list_payouts(status: str = "all", limit: int = 200) -> List[Dict]:
    sql = """
        SELECT p.id, p.user_id, p.referral_id, p.amount, p.status, p.notes,
               p.created_at, p.approved_at, p.paid_at, u.email
        FROM payouts p
        LEFT JOIN users u ON u.id = p.user_id
    """
    params: list = []
    if status and status != "all":
        sql += " WHERE p.status = ?"
        params.append(status)
    sql += " ORDER BY p.created_at DESC, p.id DESC LIMIT ?"
    params.append(int(limit))

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(sql, params)
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def update_payout_status(payout_id: int, status: str) -> None:
    """Move a payout to a new status, stamping approved_at / paid_at on those transitions."""
    if status not in PAYOUT_STATUSES:
        raise ValueError(f"Unknown payout status: {status}")

    now = datetime.utcnow().isoformat(timespec="seconds")
    conn = get_conn()
    cur = conn.cursor()
    if status == "approved":
        cur.execute("UPDATE payouts SET status=?, approved_at=? WHERE id=?", (status, now, payout_id))
    elif status == "paid":
        cur.execute("UPDATE payouts SET status=?, paid_at=? WHERE id=?", (status, now, payout_id))
    else:
        cur.execute("UPDATE payouts SET status=? WHERE id=?", (status, payout_id))
    conn.commit()
    conn.close()


__all__ = [
    "PAYOUT_STATUSES",
    "create_payout",
    "list_payouts_for_user",
    "list_payouts",
    "update_payout_status",
]
