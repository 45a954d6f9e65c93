from decimal import Decimal

import psycopg
import pytest

from core.referrals import service
from core.referrals.service import ReferralError


def test_existing_code_is_reused(monkeypatch):
    monkeypatch.setattr(service, "get_referral_code_for_user", lambda uid: "ABCD2345")
    assert service.generate_referral_code(7) == {"code": "ABCD2345", "created": False}


def test_new_code_retries_on_collision(monkeypatch):
    attempts = []

    def insert(uid, code):
        attempts.append(code)
        return len(attempts) == 3

    monkeypatch.setattr(service, "get_referral_code_for_user", lambda uid: None)
    monkeypatch.setattr(service, "insert_referral_code", insert)

    result = service.generate_referral_code(7)
    assert result["created"] is True
    assert result["code"] == attempts[-1]
    assert len(result["code"]) == service.CODE_LENGTH
    assert set(result["code"]) <= set(service.CODE_ALPHABET)


def test_code_generation_gives_up(monkeypatch):
    monkeypatch.setattr(service, "get_referral_code_for_user", lambda uid: None)
    monkeypatch.setattr(service, "insert_referral_code", lambda uid, code: False)
    with pytest.raises(ReferralError) as exc:
        service.generate_referral_code(7)
    assert exc.value.status_code == 500


@pytest.mark.parametrize(
    "owner,existing,error,status",
    [
        (None, None, "Invalid referral code", 404),
        (5, None, "Self-referral not allowed", 400),
        (1, {"id": 3}, "User already referred", 400),
    ],
)
def test_track_referral_rejections(monkeypatch, owner, existing, error, status):
    monkeypatch.setattr(service, "get_referral_code_owner", lambda code: owner)
    monkeypatch.setattr(service, "get_referral_for_referred_user", lambda uid: existing)
    with pytest.raises(ReferralError) as exc:
        service.track_referral("ABCD2345", 5)
    assert exc.value.error == error
    assert exc.value.status_code == status


def test_track_referral_requires_fields():
    with pytest.raises(ReferralError) as exc:
        service.track_referral("", 5)
    assert exc.value.status_code == 400


def test_track_referral_creates_row(monkeypatch):
    monkeypatch.setattr(service, "get_referral_code_owner", lambda code: 1)
    monkeypatch.setattr(service, "get_referral_for_referred_user", lambda uid: None)
    monkeypatch.setattr(service, "create_referral", lambda referrer, referred: 99)
    assert service.track_referral("ABCD2345", 5) == {
        "referral_id": 99,
        "referrer_user_id": 1,
        "message": "Referral tracked successfully",
    }


def test_conversion_creates_payout(monkeypatch):
    payouts = []
    monkeypatch.setattr(
        service, "get_referral_for_referred_user", lambda uid: {"id": 3, "referrer_user_id": 1, "converted": 0}
    )
    monkeypatch.setattr(service, "mark_referral_converted", lambda rid, value: "2026-10-19T10:00:00")
    monkeypatch.setattr(service, "add_payout", lambda uid, amount, **kw: payouts.append((uid, amount, kw)) or 12)

    result = service.record_conversion(5, conversion_value=Decimal("35.98"))

    assert result["payout_id"] == 12
    assert result["conversion_date"] == "2026-10-19T10:00:00"
    assert payouts[0][0] == 1
    assert payouts[0][1] == Decimal("10")
    assert payouts[0][2]["referral_id"] == 3


def test_conversion_without_payout(monkeypatch):
    monkeypatch.setattr(
        service, "get_referral_for_referred_user", lambda uid: {"id": 3, "referrer_user_id": 1, "converted": 0}
    )
    monkeypatch.setattr(service, "mark_referral_converted", lambda rid, value: "2026-10-19T10:00:00")
    monkeypatch.setattr(service, "add_payout", lambda *a, **k: pytest.fail("payout should not be created"))

    assert service.record_conversion(5, create_payout=False)["payout_id"] is None


def test_conversion_survives_payout_failure(monkeypatch):
    def broken_payout(*a, **k):
        raise psycopg.OperationalError("database unavailable")

    monkeypatch.setattr(
        service, "get_referral_for_referred_user", lambda uid: {"id": 3, "referrer_user_id": 1, "converted": 0}
    )
    monkeypatch.setattr(service, "mark_referral_converted", lambda rid, value: "2026-10-19T10:00:00")
    monkeypatch.setattr(service, "add_payout", broken_payout)

    result = service.record_conversion(5)
    assert result["payout_id"] is None
    assert result["message"] == "Conversion recorded successfully"


def test_conversion_rejections(monkeypatch):
    monkeypatch.setattr(service, "get_referral_for_referred_user", lambda uid: None)
    with pytest.raises(ReferralError) as exc:
        service.record_conversion(5)
    assert exc.value.status_code == 404

    monkeypatch.setattr(
        service, "get_referral_for_referred_user", lambda uid: {"id": 3, "referrer_user_id": 1, "converted": 1}
    )
    with pytest.raises(ReferralError) as exc:
        service.record_conversion(5)
    assert exc.value.error == "Already converted"


def _converted(*referrers):
    rows = {
        1: {"referrer_user_id": 1, "alias": "Speedy", "opt_in_leaderboard": 1},
        2: {"referrer_user_id": 2, "alias": None, "opt_in_leaderboard": 1},
        1234: {"referrer_user_id": 1234, "alias": "Hidden", "opt_in_leaderboard": 0},
    }
    return [rows[r] for r in referrers]


def test_leaderboard_ranks_opted_in_referrers(monkeypatch):
    monkeypatch.setattr(service, "list_converted_referrers", lambda: _converted(2, 1, 2, 1234, 1234, 1234))

    board = service.get_leaderboard(current_user_id=2)

    assert board["total_entries"] == 2
    first, second = board["leaderboard"]
    assert first == {"rank": 1, "alias": "User2", "conversions": 2, "earnings": Decimal("20"), "user_id": 2}
    assert second == {"rank": 2, "alias": "Speedy", "conversions": 1, "earnings": Decimal("10")}
    assert board["user_stats"] == {
        "rank": 1,
        "conversions": 2,
        "earnings": Decimal("20"),
        "opt_in_leaderboard": True,
    }


def test_leaderboard_stats_for_hidden_and_anonymous_users(monkeypatch):
    monkeypatch.setattr(service, "list_converted_referrers", lambda: _converted(1234))

    hidden = service.get_leaderboard(current_user_id=1234)
    assert hidden["leaderboard"] == []
    assert hidden["user_stats"]["rank"] is None
    assert hidden["user_stats"]["conversions"] == 1
    assert hidden["user_stats"]["opt_in_leaderboard"] is False

    assert service.get_leaderboard()["user_stats"] is None


def test_user_referral_stats(monkeypatch):
    monkeypatch.setattr(service, "get_referral_code_for_user", lambda uid: "ABCD2345")
    monkeypatch.setattr(
        service,
        "list_referrals_for_referrer",
        lambda uid: [{"converted": 1}, {"converted": 0}, {"converted": 0}],
    )
    monkeypatch.setattr(
        service,
        "list_payouts_for_user",
        lambda uid: [
            {"amount": Decimal("10"), "status": "paid"},
            {"amount": Decimal("10"), "status": "approved"},
            {"amount": Decimal("10"), "status": "pending"},
            {"amount": Decimal("10"), "status": "rejected"},
        ],
    )

    stats = service.get_user_referral_stats(1)
    assert stats["code"] == "ABCD2345"
    assert stats["total_referrals"] == 3
    assert stats["converted_referrals"] == 1
    assert stats["conversion_rate"] == Decimal("33.33")
    assert stats["total_earnings"] == Decimal("30")
    assert stats["pending_earnings"] == Decimal("20")
    assert stats["paid_earnings"] == Decimal("10")


def test_conversion_lost_to_concurrent_request(monkeypatch):
    monkeypatch.setattr(
        service, "get_referral_for_referred_user", lambda uid: {"id": 3, "referrer_user_id": 1, "converted": 0}
    )
    monkeypatch.setattr(service, "mark_referral_converted", lambda rid, value: None)
    monkeypatch.setattr(service, "add_payout", lambda *a, **k: pytest.fail("payout should not be created"))

    with pytest.raises(ReferralError) as exc:
        service.record_conversion(5)

    assert exc.value.error == "Already converted"
    assert exc.value.status_code == 400


def test_parse_amount():
    assert service.parse_amount("19.99") == Decimal("19.99")
    assert service.parse_amount(10) == Decimal("10.00")
    assert service.parse_amount("0.005") == Decimal("0.01")
    assert service.parse_amount("99999999.99") == Decimal("99999999.99")
    for bad in ("NaN", "Infinity", "-Infinity", "1e9", "100000000", "-1", "lots", "", True):
        assert service.parse_amount(bad) is None, bad
