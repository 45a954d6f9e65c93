from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from core.payments import stripe_checkout as sc
from core.payments.stripe_checkout import CheckoutError
from core.referrals.service import ReferralError


@pytest.fixture
def stripe_key(monkeypatch):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://autoaudit.example/")


def test_checkout_session_params(monkeypatch, stripe_key):
    captured = {}

    def fake_create(**params):
        captured.update(params)
        return SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/cs_test_1")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    result = sc.create_checkout_session(
        amount=Decimal("35.98"),
        product_name="PCN Dispute Letter (Advanced)",
        submission_id="abc123",
        customer_email="driver@example.com",
        service_level="advanced",
        payment_methods=("card", "bitcoin"),
        user_id=4,
    )

    assert result == {"session_id": "cs_test_1", "url": "https://checkout.stripe.com/c/cs_test_1"}
    assert captured["mode"] == "payment"
    assert captured["payment_method_types"] == ["card"]
    assert captured["customer_email"] == "driver@example.com"
    assert captured["cancel_url"] == "https://autoaudit.example/dispute-letters"
    assert captured["success_url"].startswith("https://autoaudit.example/success?session_id={CHECKOUT_SESSION_ID}")
    line = captured["line_items"][0]
    assert line["price_data"]["currency"] == "gbp"
    assert line["price_data"]["unit_amount"] == 3598
    assert captured["metadata"] == {
        "submission_id": "abc123",
        "service_level": "advanced",
        "product_type": "dispute_letter",
        "user_id": "4",
    }


def test_report_checkout_uses_report_product(monkeypatch, stripe_key):
    captured = {}

    def fake_create(**params):
        captured.update(params)
        return SimpleNamespace(id="cs_test_2", url="https://checkout.stripe.com/c/cs_test_2")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    sc.create_report_checkout_session({"id": 9, "email": "buyer@example.com"})

    assert captured["metadata"]["product_type"] == "comprehensive_report"
    assert captured["metadata"]["user_id"] == "9"
    assert captured["cancel_url"].endswith("/vehicle-check")


def test_checkout_requires_fields(stripe_key):
    with pytest.raises(CheckoutError) as exc:
        sc.create_checkout_session(amount=0, product_name="x", submission_id="abc")
    assert exc.value.status_code == 400

    with pytest.raises(CheckoutError) as exc:
        sc.create_checkout_session(amount=5, product_name="x", submission_id="abc", product_type="gift_card")
    assert exc.value.error == "Invalid product"


def test_checkout_requires_secret_key():
    with pytest.raises(CheckoutError) as exc:
        sc.create_checkout_session(amount=5, product_name="x", submission_id="abc")
    assert exc.value.status_code == 500
    assert exc.value.error == "Configuration error"


def test_stripe_errors_become_checkout_errors(monkeypatch, stripe_key):
    def fake_create(**params):
        raise stripe.StripeError("card declined", http_status=402)

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    with pytest.raises(CheckoutError) as exc:
        sc.create_checkout_session(amount=5, product_name="x", submission_id="abc")
    assert exc.value.status_code == 402
    assert exc.value.error == "Stripe API error"


def test_webhook_needs_secret():
    with pytest.raises(CheckoutError) as exc:
        sc.construct_webhook_event(b"{}", "t=1,v1=abc")
    assert exc.value.status_code == 500


def test_webhook_rejects_bad_signature(monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
    with pytest.raises(CheckoutError) as exc:
        sc.construct_webhook_event(b'{"type": "checkout.session.completed"}', "bogus")
    assert exc.value.error == "Invalid signature"
    assert exc.value.status_code == 400


def _paid_session(**metadata):
    return {
        "id": "cs_test_1",
        "payment_status": "paid",
        "payment_intent": "pi_123",
        "metadata": metadata,
    }


def test_unpaid_session_is_not_fulfilled():
    session = _paid_session(submission_id="abc123")
    session["payment_status"] = "unpaid"
    result = sc.fulfil_checkout(session)
    assert result.fulfilled is False
    assert result.message == "Payment not completed"


def test_fulfil_letter_marks_paid_and_converts_referral(monkeypatch):
    paid = []
    conversions = []
    monkeypatch.setattr(sc, "get_dispute_letter", lambda sid: {"id": sid, "user_id": 5, "price": Decimal("35.98")})
    monkeypatch.setattr(sc, "mark_dispute_letter_paid", lambda sid, pid: paid.append((sid, pid)) or True)
    monkeypatch.setattr(sc, "get_referral_for_referred_user", lambda uid: {"id": 1, "referrer_user_id": 2})
    monkeypatch.setattr(sc, "record_conversion", lambda uid, **kw: conversions.append((uid, kw)))

    result = sc.fulfil_checkout(_paid_session(submission_id="abc123", product_type="dispute_letter"))

    assert result.fulfilled is True
    assert result.already_fulfilled is False
    assert result.referral_converted is True
    assert paid == [("abc123", "pi_123")]
    assert conversions == [(5, {"conversion_value": Decimal("35.98")})]


def test_second_fulfilment_is_a_no_op(monkeypatch):
    monkeypatch.setattr(sc, "get_dispute_letter", lambda sid: {"id": sid, "user_id": 5, "price": Decimal("19.99")})
    monkeypatch.setattr(sc, "mark_dispute_letter_paid", lambda sid, pid: False)
    monkeypatch.setattr(sc, "record_conversion", lambda *a, **k: pytest.fail("must not convert twice"))

    result = sc.fulfil_checkout(_paid_session(submission_id="abc123"))
    assert result.fulfilled is True
    assert result.already_fulfilled is True


def test_referral_problem_does_not_block_fulfilment(monkeypatch):
    def converted_already(uid, **kw):
        raise ReferralError("Already converted", "This referral has already been marked as converted")

    monkeypatch.setattr(sc, "get_dispute_letter", lambda sid: {"id": sid, "user_id": 5, "price": Decimal("19.99")})
    monkeypatch.setattr(sc, "mark_dispute_letter_paid", lambda sid, pid: True)
    monkeypatch.setattr(sc, "get_referral_for_referred_user", lambda uid: {"id": 1, "converted": 1})
    monkeypatch.setattr(sc, "record_conversion", converted_already)

    result = sc.fulfil_checkout(_paid_session(submission_id="abc123"))
    assert result.fulfilled is True
    assert result.referral_converted is False


def test_unknown_letter_is_not_fulfilled(monkeypatch):
    monkeypatch.setattr(sc, "get_dispute_letter", lambda sid: None)
    result = sc.fulfil_checkout(_paid_session(submission_id="missing"))
    assert result.fulfilled is False
    assert result.message == "Dispute letter not found"


def test_report_purchase_grants_access(monkeypatch):
    granted = []
    monkeypatch.setattr(sc, "set_comprehensive_report_access", lambda uid, on: granted.append((uid, on)))

    result = sc.fulfil_checkout(_paid_session(submission_id="report-9", product_type="comprehensive_report", user_id="9"))

    assert result.fulfilled is True
    assert granted == [(9, True)]


def test_report_purchase_without_user_is_rejected(monkeypatch):
    monkeypatch.setattr(sc, "set_comprehensive_report_access", lambda *a: pytest.fail("no user to grant"))
    result = sc.fulfil_checkout(_paid_session(submission_id="report-x", product_type="comprehensive_report"))
    assert result.fulfilled is False
