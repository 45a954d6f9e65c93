"""
Schema and migration helpers for Postgres.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime

from core.db.base import get_conn
from core.db.users import create_user, get_user_by_email, hash_password

log = logging.getLogger("db")


def init_db() -> None:
    """Create the users, session, referral, payout, dispute and lookup tables if they don't exist."""
    conn = get_conn()
    cur = conn.cursor()

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS users(
            id SERIAL PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'user',
            active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT,
            email_verified_at TEXT,
            full_name TEXT,
            phone TEXT,
            address TEXT,
            alias TEXT,
            opt_in_leaderboard INTEGER NOT NULL DEFAULT 0,
            has_comprehensive_report_access INTEGER NOT NULL DEFAULT 0
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS sessions(
            id TEXT PRIMARY KEY,
            user_id INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            last_seen_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS password_reset_tokens(
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL,
            token TEXT NOT NULL UNIQUE,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            used_at TEXT,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS email_verification_tokens(
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL,
            token TEXT NOT NULL UNIQUE,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            used_at TEXT,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS referral_codes(
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL UNIQUE,
            code TEXT NOT NULL UNIQUE,
            created_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS referrals(
            id SERIAL PRIMARY KEY,
            referrer_user_id INTEGER NOT NULL,
            referred_user_id INTEGER NOT NULL UNIQUE,
            created_at TEXT NOT NULL,
            converted INTEGER NOT NULL DEFAULT 0,
            conversion_date TEXT,
            conversion_value NUMERIC(10, 2) NOT NULL DEFAULT 0,
            FOREIGN KEY(referrer_user_id) REFERENCES users(id) ON DELETE CASCADE,
            FOREIGN KEY(referred_user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS payouts(
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL,
            referral_id INTEGER,
            amount NUMERIC(10, 2) NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            notes TEXT,
            created_at TEXT NOT NULL,
            approved_at TEXT,
            paid_at TEXT,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
            FOREIGN KEY(referral_id) REFERENCES referrals(id) ON DELETE SET NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS dispute_letters(
            id TEXT PRIMARY KEY,
            user_id INTEGER,
            product_name TEXT NOT NULL,
            ticket_number TEXT NOT NULL,
            issue_date TEXT NOT NULL,
            location TEXT NOT NULL,
            vehicle_reg TEXT NOT NULL,
            amount TEXT NOT NULL,
            reason TEXT NOT NULL,
            evidence TEXT,
            offense_types TEXT NOT NULL,
            service_level TEXT NOT NULL,
            price NUMERIC(10, 2) NOT NULL,
            letter_content TEXT NOT NULL,
            legal_references TEXT,
            recommendations TEXT,
            strength_score INTEGER,
            estimated_success_rate INTEGER,
            customer_name TEXT,
            customer_email TEXT NOT NULL,
            payment_id TEXT,
            payment_status TEXT NOT NULL DEFAULT 'unpaid',
            status TEXT NOT NULL DEFAULT 'pending',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE SET NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS vehicle_lookups(
            id SERIAL PRIMARY KEY,
            user_id INTEGER,
            registration TEXT NOT NULL,
            data_type TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE SET NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS deleted_users(
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL,
            email TEXT NOT NULL,
            role TEXT NOT NULL,
            created_at TEXT,
            deleted_at TEXT NOT NULL
        )
        """
    )

    conn.commit()
    conn.close()

    ensure_admin_from_env()


def ensure_admin_from_env() -> None:
    """
    Optionally seed/update an admin account from environment variables.
    Set ADMIN_EMAIL and ADMIN_PASSWORD before startup to use.
    """
    admin_email = os.getenv("ADMIN_EMAIL")
    admin_password = os.getenv("ADMIN_PASSWORD")

    if not admin_email or not admin_password:
        return

    email = admin_email.strip().lower()
    existing = get_user_by_email(email)
    now = datetime.utcnow().isoformat(timespec="seconds")

    if not existing:
        create_user(email, admin_password, role="admin", verified=True)
        log.info("Seeded admin account %s", email)
        return

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE users
        SET role = 'admin',
            password_hash = ?,
            email_verified_at = COALESCE(NULLIF(email_verified_at, ''), ?)
        WHERE email = ?
        """,
        (hash_password(admin_password), now, email),
    )
    conn.commit()
    conn.close()


__all__ = [
    "init_db",
    "ensure_admin_from_env",
]
