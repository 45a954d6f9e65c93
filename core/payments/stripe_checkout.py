"""
Stripe Checkout for one-off purchases (dispute letters and the comprehensive vehicle report),
plus webhook verification and fulfilment of paid sessions.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

import stripe

from core.db.disputes import get_dispute_letter, mark_dispute_letter_paid
from core.db.referrals import get_referral_for_referred_user
from core.db.users import set_comprehensive_report_access
from core.disputes.pricing import COMPREHENSIVE_REPORT_PRICE, to_minor_units
from core.referrals.service import ReferralError, record_conversion

log = logging.getLogger("payments")

PRODUCT_DISPUTE_LETTER = "dispute_letter"
PRODUCT_COMPREHENSIVE_REPORT = "comprehensive_report"
PRODUCT_TYPES = (PRODUCT_DISPUTE_LETTER, PRODUCT_COMPREHENSIVE_REPORT)

VALID_PAYMENT_METHODS = ("card", "klarna", "ideal", "afterpay_clearpay", "bancontact", "alipay", "giropay", "p24")

CANCEL_PATHS = {
    PRODUCT_DISPUTE_LETTER: "/dispute-letters",
    PRODUCT_COMPREHENSIVE_REPORT: "/vehicle-check",
}


class CheckoutError(Exception):
    def __init__(self, error: str, message: str, status_code: int = 400):
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


@dataclass
class FulfilmentResult:
    fulfilled: bool
    product_type: Optional[str] = None
    submission_id: Optional[str] = None
    user_id: Optional[int] = None
    already_fulfilled: bool = False
    referral_converted: bool = False
    message: str = ""


def public_base_url() -> str:
    return os.getenv("PUBLIC_BASE_URL", "http://127.0.0.1:8000").rstrip("/")


def _configure() -> None:
    secret = os.getenv("STRIPE_SECRET_KEY", "")
    if not secret:
        log.error("STRIPE_SECRET_KEY not configured - cannot talk to Stripe")
        raise CheckoutError("Configuration error", "STRIPE_SECRET_KEY is not set in environment variables", 500)
    stripe.api_key = secret


def _payment_methods(requested: Iterable[str]) -> list:
    methods = [m for m in (requested or ()) if m in VALID_PAYMENT_METHODS]
    return methods or ["card"]


def create_checkout_session(
    amount,
    product_name: str,
    submission_id: str,
    customer_email: Optional[str] = None,
    quantity: int = 1,
    service_level: str = "standard",
    product_type: str = PRODUCT_DISPUTE_LETTER,
    payment_methods: Iterable[str] = ("card",),
    user_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Create a one-off GBP payment session and return {"session_id", "url"}.
    The amount is in pounds; Stripe gets it in pence.
    """
    if not amount or not product_name or not submission_id:
        raise CheckoutError("Missing required fields", "amount, productName, and submission_id are required", 400)
    if product_type not in PRODUCT_TYPES:
        raise CheckoutError("Invalid product", f"Unknown product type: {product_type}", 400)
    _configure()

    base = public_base_url()
    metadata = {
        "submission_id": str(submission_id),
        "service_level": service_level,
        "product_type": product_type,
    }
    if user_id is not None:
        metadata["user_id"] = str(user_id)

    params: Dict[str, Any] = {
        "mode": "payment",
        "payment_method_types": _payment_methods(payment_methods),
        "success_url": f"{base}/success?session_id={{CHECKOUT_SESSION_ID}}&product_type={product_type}",
        "cancel_url": base + CANCEL_PATHS[product_type],
        "line_items": [
            {
                "quantity": int(quantity),
                "price_data": {
                    "currency": "gbp",
                    "unit_amount": to_minor_units(Decimal(str(amount))),
                    "product_data": {"name": product_name},
                },
            }
        ],
        "metadata": metadata,
    }
    if customer_email:
        params["customer_email"] = customer_email

    try:
        session = stripe.checkout.Session.create(**params)
    except stripe.StripeError as exc:
        log.error("Stripe error creating checkout for %s: %s", submission_id, exc)
        raise CheckoutError(
            "Stripe API error",
            exc.user_message or "Failed to create checkout session",
            exc.http_status or 502,
        ) from exc

    log.info("Created checkout session %s for %s (%s)", session.id, submission_id, product_type)
    return {"session_id": session.id, "url": session.url}


def create_report_checkout_session(user: Dict) -> Dict[str, Any]:
    return create_checkout_session(
        amount=COMPREHENSIVE_REPORT_PRICE,
        product_name="Comprehensive Vehicle Report",
        submission_id=f"report-{user['id']}",
        customer_email=user.get("email"),
        service_level="comprehensive",
        product_type=PRODUCT_COMPREHENSIVE_REPORT,
        user_id=user["id"],
    )


def retrieve_checkout_session(session_id: str):
    _configure()
    try:
        return stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as exc:
        log.error("Stripe error retrieving session %s: %s", session_id, exc)
        raise CheckoutError("Stripe API error", "Unable to retrieve checkout session", exc.http_status or 502) from exc


def construct_webhook_event(payload: bytes, signature: str):
    secret = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    if not secret:
        raise CheckoutError("Configuration error", "STRIPE_WEBHOOK_SECRET is not set in environment variables", 500)
    try:
        return stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError as exc:
        log.warning("Invalid webhook payload: %s", exc)
        raise CheckoutError("Invalid payload", "Webhook payload could not be parsed", 400) from exc
    except stripe.SignatureVerificationError as exc:
        log.warning("Invalid webhook signature: %s", exc)
        raise CheckoutError("Invalid signature", "Webhook signature verification failed", 400) from exc


def _field(obj, name: str, default=None):
    if obj is None:
        return default
    try:
        value = obj[name]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def fulfil_checkout(session) -> FulfilmentResult:
    """
    Apply a completed checkout. Safe to call from both the success page and the webhook:
    a second fulfilment of the same dispute letter is a no-op.
    """
    metadata = _field(session, "metadata", {}) or {}
    product_type = _field(metadata, "product_type", PRODUCT_DISPUTE_LETTER)
    submission_id = _field(metadata, "submission_id")
    raw_user = _field(metadata, "user_id")
    user_id = int(raw_user) if raw_user and str(raw_user).isdigit() else None

    if _field(session, "payment_status") != "paid":
        return FulfilmentResult(False, product_type, submission_id, user_id, message="Payment not completed")

    if product_type == PRODUCT_COMPREHENSIVE_REPORT:
        if user_id is None:
            return FulfilmentResult(False, product_type, submission_id, None, message="No user on session")
        set_comprehensive_report_access(user_id, True)
        log.info("Comprehensive report access granted to user %s", user_id)
        return FulfilmentResult(True, product_type, submission_id, user_id, message="Report access granted")

    if not submission_id:
        return FulfilmentResult(False, product_type, None, user_id, message="No submission on session")

    letter = get_dispute_letter(submission_id)
    if not letter:
        log.warning("Paid session %s references unknown letter %s", _field(session, "id"), submission_id)
        return FulfilmentResult(False, product_type, submission_id, user_id, message="Dispute letter not found")

    payment_id = _field(session, "payment_intent") or _field(session, "id") or ""
    if not mark_dispute_letter_paid(submission_id, str(payment_id)):
        return FulfilmentResult(
            True, product_type, submission_id, letter.get("user_id"), already_fulfilled=True, message="Already paid"
        )

    purchaser = letter.get("user_id") or user_id
    converted = False
    if purchaser and get_referral_for_referred_user(purchaser):
        try:
            record_conversion(purchaser, conversion_value=letter.get("price") or 0)
            converted = True
        except ReferralError as exc:
            log.info("Referral conversion skipped for user %s: %s", purchaser, exc.message)

    log.info("Dispute letter %s paid", submission_id)
    return FulfilmentResult(
        True, product_type, submission_id, purchaser, referral_converted=converted, message="Dispute letter paid"
    )


__all__ = [
    "CheckoutError",
    "FulfilmentResult",
    "PRODUCT_DISPUTE_LETTER",
    "PRODUCT_COMPREHENSIVE_REPORT",
    "VALID_PAYMENT_METHODS",
    "public_base_url",
    "create_checkout_session",
    "create_report_checkout_session",
    "retrieve_checkout_session",
    "construct_webhook_event",
    "fulfil_checkout",
]
