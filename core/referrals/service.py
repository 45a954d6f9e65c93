"""
Referral program: codes, tracking, conversions, payouts and the public leaderboard.
"""
from __future__ import annotations

import logging
import secrets
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, List, Optional

import psycopg

from core.db.referrals import (
    create_payout as add_payout,
    create_referral,
    get_referral_code_for_user,
    get_referral_code_owner,
    get_referral_for_referred_user,
    insert_referral_code,
    list_converted_referrers,
    list_payouts_for_user,
    list_referrals_for_referrer,
    mark_referral_converted,
)

log = logging.getLogger("referrals")

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8
CODE_ATTEMPTS = 5

PAYOUT_PER_REFERRAL = Decimal("10")
LEADERBOARD_SIZE = 10
RECENT_LIMIT = 10
# Largest value the NUMERIC(10,2) money columns hold.
MAX_AMOUNT = Decimal("99999999.99")


class ReferralError(Exception):
    def __init__(self, error: str, message: str, status_code: int = 400):
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


def parse_amount(value) -> Optional[Decimal]:
    """A finite, non-negative money amount that fits the database columns, or None."""
    if isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0 or amount > MAX_AMOUNT:
        return None
    amount = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return amount if amount <= MAX_AMOUNT else None


def _new_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def generate_referral_code(user_id: int) -> Dict:
    existing = get_referral_code_for_user(user_id)
    if existing:
        return {"code": existing, "created": False}

    for _ in range(CODE_ATTEMPTS):
        code = _new_code()
        if insert_referral_code(user_id, code):
            log.info("Referral code created for user %s", user_id)
            return {"code": code, "created": True}

    raise ReferralError(
        "Code generation failed",
        "Unable to generate a unique referral code. Please try again.",
        500,
    )


def track_referral(referral_code: str, referred_user_id: int) -> Dict:
    if not referral_code or not referred_user_id:
        raise ReferralError("Missing required fields", "referralCode and referredUserId are required", 400)

    referrer_id = get_referral_code_owner(referral_code)
    if referrer_id is None:
        raise ReferralError("Invalid referral code", "The provided referral code does not exist", 404)
    if referrer_id == int(referred_user_id):
        raise ReferralError("Self-referral not allowed", "Users cannot refer themselves", 400)
    if get_referral_for_referred_user(referred_user_id):
        raise ReferralError("User already referred", "This user has already been referred by someone else", 400)

    referral_id = create_referral(referrer_id, int(referred_user_id))
    log.info("Referral %s tracked: %s -> %s", referral_id, referrer_id, referred_user_id)
    return {"referral_id": referral_id, "referrer_user_id": referrer_id, "message": "Referral tracked successfully"}


def record_conversion(
    referred_user_id: int,
    conversion_value=0,
    create_payout: bool = True,
    payout_amount=PAYOUT_PER_REFERRAL,
) -> Dict:
    if not referred_user_id:
        raise ReferralError("Missing required field", "referredUserId is required", 400)

    referral = get_referral_for_referred_user(referred_user_id)
    if not referral:
        raise ReferralError("Referral not found", "No referral record found for this user", 404)
    if referral.get("converted"):
        raise ReferralError("Already converted", "This referral has already been marked as converted", 400)

    converted_at = mark_referral_converted(referral["id"], Decimal(str(conversion_value or 0)))
    if converted_at is None:
        # Another request converted it between the read above and the update.
        raise ReferralError("Already converted", "This referral has already been marked as converted", 400)

    payout_id = None
    amount = Decimal(str(payout_amount or 0))
    if create_payout and amount > 0:
        try:
            payout_id = add_payout(
                referral["referrer_user_id"],
                amount,
                referral_id=referral["id"],
                notes=f"Referral conversion payout for user {referred_user_id}",
            )
        except psycopg.Error as exc:
            # The conversion stands even when the payout row cannot be written.
            log.error("Payout creation failed for referral %s: %s", referral["id"], exc)

    log.info("Referral %s converted (payout %s)", referral["id"], payout_id)
    return {
        "referral_id": referral["id"],
        "payout_id": payout_id,
        "conversion_date": converted_at,
        "message": "Conversion recorded successfully",
    }


def _alias(user_id: int, alias: Optional[str]) -> str:
    return alias or f"User{str(user_id)[-4:]}"


def get_leaderboard(current_user_id: Optional[int] = None) -> Dict:
    stats: Dict[int, Dict] = {}
    for row in list_converted_referrers():
        uid = int(row["referrer_user_id"])
        entry = stats.setdefault(
            uid,
            {"user_id": uid, "alias": row.get("alias"), "opt_in": bool(row.get("opt_in_leaderboard")), "conversions": 0},
        )
        entry["conversions"] += 1

    ranked = sorted((s for s in stats.values() if s["opt_in"]), key=lambda s: s["conversions"], reverse=True)

    leaderboard: List[Dict] = []
    for index, s in enumerate(ranked[:LEADERBOARD_SIZE]):
        item = {
            "rank": index + 1,
            "alias": _alias(s["user_id"], s["alias"]),
            "conversions": s["conversions"],
            "earnings": s["conversions"] * PAYOUT_PER_REFERRAL,
        }
        if current_user_id is not None and s["user_id"] == int(current_user_id):
            item["user_id"] = s["user_id"]
        leaderboard.append(item)

    user_stats = None
    if current_user_id is not None:
        mine = stats.get(int(current_user_id))
        if mine:
            rank = next((i + 1 for i, s in enumerate(ranked) if s["user_id"] == mine["user_id"]), None)
            user_stats = {
                "rank": rank,
                "conversions": mine["conversions"],
                "earnings": mine["conversions"] * PAYOUT_PER_REFERRAL,
                "opt_in_leaderboard": mine["opt_in"],
            }
        else:
            user_stats = {"rank": None, "conversions": 0, "earnings": Decimal("0"), "opt_in_leaderboard": False}

    return {
        "leaderboard": leaderboard,
        "user_stats": user_stats,
        "payout_per_referral": PAYOUT_PER_REFERRAL,
        "total_entries": len(leaderboard),
    }


def get_user_referral_stats(user_id: int) -> Dict:
    referrals = list_referrals_for_referrer(user_id)
    payouts = list_payouts_for_user(user_id)

    total = len(referrals)
    converted = sum(1 for r in referrals if r.get("converted"))
    rate = Decimal("0")
    if total:
        rate = (Decimal(converted) * 100 / Decimal(total)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def _sum(rows) -> Decimal:
        return sum((Decimal(str(p.get("amount") or 0)) for p in rows), Decimal("0"))

    active = [p for p in payouts if p.get("status") not in ("rejected", "cancelled")]
    return {
        "code": get_referral_code_for_user(user_id),
        "total_referrals": total,
        "converted_referrals": converted,
        "conversion_rate": rate,
        "total_earnings": _sum(active),
        "pending_earnings": _sum(p for p in payouts if p.get("status") in ("pending", "approved")),
        "paid_earnings": _sum(p for p in payouts if p.get("status") == "paid"),
        "recent_referrals": referrals[:RECENT_LIMIT],
        "recent_payouts": payouts[:RECENT_LIMIT],
    }


__all__ = [
    "ReferralError",
    "CODE_ALPHABET",
    "PAYOUT_PER_REFERRAL",
    "MAX_AMOUNT",
    "parse_amount",
    "generate_referral_code",
    "track_referral",
    "record_conversion",
    "get_leaderboard",
    "get_user_referral_stats",
]
