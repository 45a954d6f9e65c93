"""
Dispute letter orders: created unpaid at submission, flipped to paid by checkout fulfilment,
then worked through the admin status pipeline.
"""
from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from core.db.base import get_conn

LETTER_STATUSES = ("pending", "approved", "completed", "rejected", "cancelled")
LETTER_SORT_FIELDS = ("created_at", "updated_at", "price", "status", "ticket_number")

# TEXT columns holding JSON lists
_LIST_COLUMNS = ("offense_types", "legal_references", "recommendations")

_LETTER_COLUMNS = """
    id, user_id, product_name, ticket_number, issue_date, location, vehicle_reg, amount,
    reason, evidence, offense_types, service_level, price, letter_content, legal_references,
    recommendations, strength_score, estimated_success_rate, customer_name, customer_email,
    payment_id, payment_status, status, created_at, updated_at
"""


def _decode(row) -> Dict:
    data = dict(row)
    for col in _LIST_COLUMNS:
        raw = data.get(col)
        try:
            data[col] = json.loads(raw) if raw else []
        except (TypeError, ValueError):
            data[col] = []
    return data


def create_dispute_letter(
    *,
    user_id: Optional[int],
    product_name: str,
    ticket_number: str,
    issue_date: str,
    location: str,
    vehicle_reg: str,
    amount: str,
    reason: str,
    evidence: str,
    offense_types: List[str],
    service_level: str,
    price,
    letter_content: str,
    legal_references: List[str],
    recommendations: List[str],
    strength_score: int,
    estimated_success_rate: int,
    customer_name: str,
    customer_email: str,
) -> str:
    """Insert an unpaid letter order and return its id (uuid4 string)."""
    letter_id = str(uuid.uuid4())
    now = datetime.utcnow().isoformat(timespec="seconds")

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO dispute_letters (
            id, user_id, product_name, ticket_number, issue_date, location, vehicle_reg,
            amount, reason, evidence, offense_types, service_level, price, letter_content,
            legal_references, recommendations, strength_score, estimated_success_rate,
            customer_name, customer_email, payment_status, status, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'unpaid', 'pending', ?, ?)
        """,
        (
            letter_id,
            user_id,
            product_name,
            ticket_number,
            issue_date,
            location,
            vehicle_reg,
            amount,
            reason,
            evidence,
            json.dumps(list(offense_types)),
            service_level,
            price,
            letter_content,
            json.dumps(list(legal_references)),
            json.dumps(list(recommendations)),
            strength_score,
            estimated_success_rate,
            customer_name,
            customer_email.strip().lower(),
            now,
            now,
        ),
    )
    conn.commit()
    conn.close()
    return letter_id


def get_dispute_letter(letter_id: str) -> Optional[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {_LETTER_COLUMNS} FROM dispute_letters WHERE id = ?", (letter_id,))
    row = cur.fetchone()
    conn.close()
    return _decode(row) if row else None


def list_dispute_letters_for_user(user_id: int) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {_LETTER_COLUMNS} FROM dispute_letters
        WHERE user_id = ?
        ORDER BY created_at DESC
        """,
        (user_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return [_decode(r) for r in rows]


def list_dispute_letters(
    status: str = "all",
    search: str = "",
    sort: str = "created_at",
    direction: str = "desc",
    paid_only: bool = True,
    limit: int = 200,
) -> List[Dict]:
    """Admin listing. Unpaid (abandoned checkout) orders are hidden unless paid_only is False."""
    sort = sort if sort in LETTER_SORT_FIELDS else "created_at"
    direction = "ASC" if (direction or "").lower() == "asc" else "DESC"

    clauses: list[str] = []
    params: list = []
    if paid_only:
        clauses.append("payment_status = 'paid'")
    if status and status != "all":
        clauses.append("status = ?")
        params.append(status)
    if search.strip():
        clauses.append("(ticket_number ILIKE ? OR vehicle_reg ILIKE ? OR customer_email ILIKE ?)")
        pattern = f"%{search.strip()}%"
        params.extend([pattern, pattern, pattern])

    sql = f"SELECT {_LETTER_COLUMNS} FROM dispute_letters"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += f" ORDER BY {sort} {direction} LIMIT ?"
    params.append(int(limit))

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(sql, params)
    rows = cur.fetchall()
    conn.close()
    return [_decode(r) for r in rows]


def mark_dispute_letter_paid(letter_id: str, payment_id: str) -> bool:
    """
    Flip an unpaid order to paid. Returns True only for the call that performed
    the transition, so fulfilment side effects run once.
    """
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE dispute_letters
        SET payment_status = 'paid', payment_id = ?, updated_at = ?
        WHERE id = ? AND payment_status <> 'paid'
        """,
        (payment_id, datetime.utcnow().isoformat(timespec="seconds"), letter_id),
    )
    changed = cur.rowcount > 0
    conn.commit()
    conn.close()
    return changed


def update_dispute_letter_status(letter_id: str, status: str) -> None:
    if status not in LETTER_STATUSES:
        raise ValueError(f"Unknown dispute letter status: {status}")
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE dispute_letters SET status = ?, updated_at = ? WHERE id = ?",
        (status, datetime.utcnow().isoformat(timespec="seconds"), letter_id),
    )
    conn.commit()
    conn.close()


def count_dispute_letters(paid_only: bool = True) -> int:
    conn = get_conn()
    cur = conn.cursor()
    if paid_only:
        cur.execute("SELECT COUNT(*) AS c FROM dispute_letters WHERE payment_status = 'paid'")
    else:
        cur.execute("SELECT COUNT(*) AS c FROM dispute_letters")
    row = cur.fetchone()
    conn.close()
    return int(row["c"]) if row else 0


__all__ = [
    "LETTER_STATUSES",
    "LETTER_SORT_FIELDS",
    "create_dispute_letter",
    "get_dispute_letter",
    "list_dispute_letters_for_user",
    "list_dispute_letters",
    "mark_dispute_letter_paid",
    "update_dispute_letter_status",
    "count_dispute_letters",
]
