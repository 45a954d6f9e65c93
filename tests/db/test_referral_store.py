from decimal import Decimal

import pytest

from core.db.referrals import payout_store, referral_store
from core.db.users import user_store
from core.referrals import service
from core.referrals import (
    generate_referral_code,
    get_leaderboard,
    get_user_referral_stats,
    record_conversion,
    track_referral,
)
from core.referrals.service import ReferralError


def _users():
    referrer = user_store.create_user("referrer@example.com", "Passw0rd1")
    referred = user_store.create_user("friend@example.com", "Passw0rd1")
    return referrer, referred


def test_referral_code_is_unique_per_user():
    referrer, referred = _users()

    assert referral_store.insert_referral_code(referrer, "ABCD2345") is True
    assert referral_store.insert_referral_code(referred, "ABCD2345") is False
    assert referral_store.get_referral_code_owner("ABCD2345") == referrer
    assert referral_store.get_referral_code_owner("ZZZZ9999") is None


def test_full_referral_flow():
    referrer, referred = _users()
    user_store.update_user_profile(referrer, alias="Speedy", opt_in_leaderboard=True)

    code = generate_referral_code(referrer)["code"]
    assert generate_referral_code(referrer) == {"code": code, "created": False}

    track_referral(code, referred)
    result = record_conversion(referred, conversion_value=Decimal("19.99"))

    assert result["payout_id"]
    payouts = payout_store.list_payouts_for_user(referrer)
    assert payouts[0]["amount"] == Decimal("10.00")
    assert payouts[0]["status"] == "pending"

    board = get_leaderboard(referrer)
    assert board["leaderboard"][0]["alias"] == "Speedy"
    assert board["user_stats"]["rank"] == 1

    stats = get_user_referral_stats(referrer)
    assert stats["converted_referrals"] == 1
    assert stats["pending_earnings"] == Decimal("10.00")


def test_payout_status_timestamps():
    referrer, _ = _users()
    payout_id = payout_store.create_payout(referrer, Decimal("10"))

    payout_store.update_payout_status(payout_id, "approved")
    payout_store.update_payout_status(payout_id, "paid")

    payout = payout_store.list_payouts(status="paid")[0]
    assert payout["id"] == payout_id
    assert payout["approved_at"] and payout["paid_at"]
    assert payout["email"] == "referrer@example.com"
    assert payout_store.list_payouts(status="pending") == []


def test_referral_converts_only_once():
    referrer, referred = _users()
    track_referral(generate_referral_code(referrer)["code"], referred)
    referral = referral_store.get_referral_for_referred_user(referred)

    assert referral_store.mark_referral_converted(referral["id"], Decimal("19.99"))
    assert referral_store.mark_referral_converted(referral["id"], Decimal("19.99")) is None


def test_overlapping_conversions_pay_out_once(monkeypatch):
    referrer, referred = _users()
    track_referral(generate_referral_code(referrer)["code"], referred)
    # Both requests read the referral before either one converted it.
    stale = referral_store.get_referral_for_referred_user(referred)
    monkeypatch.setattr(service, "get_referral_for_referred_user", lambda uid: dict(stale))

    record_conversion(referred, conversion_value=Decimal("19.99"))
    with pytest.raises(ReferralError) as exc:
        record_conversion(referred, conversion_value=Decimal("19.99"))

    assert exc.value.error == "Already converted"
    assert len(payout_store.list_payouts_for_user(referrer)) == 1
