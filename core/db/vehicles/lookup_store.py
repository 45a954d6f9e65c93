"""
History of registration lookups, shown on the user's dashboard.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from core.db.base import get_conn


def log_vehicle_lookup(registration: str, data_type: str, user_id: Optional[int] = None) -> None:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO vehicle_lookups (user_id, registration, data_type, created_at)
        VALUES (?, ?, ?, ?)
        """,
        (user_id, registration, data_type, datetime.utcnow().isoformat(timespec="seconds")),
    )
    conn.commit()
    conn.close()


def list_vehicle_lookups_for_user(user_id: int, limit: int = 10) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, registration, data_type, created_at
        FROM vehicle_lookups
        WHERE user_id = ?
        ORDER BY created_at DESC, id DESC
        LIMIT ?
        """,
        (user_id, int(limit)),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


__all__ = ["log_vehicle_lookup", "list_vehicle_lookups_for_user"]
