import os

import pytest


if not os.getenv("DATABASE_URL"):
    pytest.skip("DATABASE_URL must be set for Postgres-only tests.", allow_module_level=True)

from core.db.base import get_conn
from core.db.schema import init_db


_TABLES = [
    "payouts",
    "referrals",
    "referral_codes",
    "dispute_letters",
    "vehicle_lookups",
    "email_verification_tokens",
    "password_reset_tokens",
    "sessions",
    "deleted_users",
    "users",
]


def _truncate_all():
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "TRUNCATE " + ", ".join(_TABLES) + " RESTART IDENTITY CASCADE"
    )
    conn.commit()
    conn.close()


@pytest.fixture(autouse=True)
def _clean_db(monkeypatch):
    monkeypatch.delenv("ADMIN_EMAIL", raising=False)
    monkeypatch.delenv("ADMIN_PASSWORD", raising=False)
    init_db()
    _truncate_all()
    yield
    _truncate_all()
