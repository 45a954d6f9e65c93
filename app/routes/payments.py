import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse

from app.auth_utils import get_current_user
from app.email_utils import build_public_url, send_dispute_letter_email
from app.json_utils import raw_body
from app.layout import esc, message_page, render_page
from core.database import get_dispute_letter
from core.payments import (
    PRODUCT_COMPREHENSIVE_REPORT,
    CheckoutError,
    FulfilmentResult,
    construct_webhook_event,
    fulfil_checkout,
    retrieve_checkout_session,
)

log = logging.getLogger("payments.routes")

router = APIRouter()


def _email_letter(request: Request, result: FulfilmentResult) -> None:
    """Send the finished letter once, on the fulfilment that actually marked it paid."""
    if not result.fulfilled or result.already_fulfilled or result.product_type == PRODUCT_COMPREHENSIVE_REPORT:
        return
    letter = get_dispute_letter(result.submission_id)
    if not letter:
        return
    try:
        send_dispute_letter_email(letter, build_public_url(request, f"/dispute-letters/{letter['id']}"))
    except Exception as exc:
        log.error("Dispute letter email for %s failed: %s", letter["id"], exc)


@router.get("/success", response_class=HTMLResponse)
def checkout_success(request: Request, session_id: str = "", product_type: str = ""):
    user, _ = get_current_user(request)
    if not session_id:
        return message_page("Payment", "No checkout session was given.", user=user)

    try:
        session = retrieve_checkout_session(session_id)
    except CheckoutError as exc:
        return message_page("Payment", esc(exc.message), status_code=exc.status_code, user=user)

    result = fulfil_checkout(session)
    if not result.fulfilled:
        log.info("Success page for session %s not fulfilled: %s", session_id, result.message)
        return message_page(
            "Payment pending",
            "We have not received confirmation of your payment yet. "
            "If you completed checkout, refresh this page in a minute.",
            status_code=200,
            user=user,
        )
    _email_letter(request, result)

    if result.product_type == PRODUCT_COMPREHENSIVE_REPORT:
        body = """
        <div class="card form-card">
          <h2>Comprehensive reports unlocked</h2>
          <p class="muted">Thank you for your purchase. You can now open the full history report for any vehicle.</p>
          <p><a href="/vehicle-check">Run a vehicle check</a></p>
        </div>
        """
    else:
        letter_link = f"/dispute-letters/{esc(result.submission_id)}"
        body = f"""
        <div class="card form-card">
          <h2>Your dispute letter is ready</h2>
          <p class="muted">
            Thank you for your payment. We have emailed a copy of the letter to you.
            Send it to the issuing authority before the appeal deadline on your ticket.
          </p>
          <p><a href="{letter_link}">View your letter</a> &middot; <a href="{letter_link}/download">Download</a></p>
        </div>
        """
    return render_page("Payment received", body, user)


@router.post("/stripe/webhook")
def stripe_webhook(request: Request, payload: bytes = Depends(raw_body)):
    signature = request.headers.get("stripe-signature", "")
    try:
        event = construct_webhook_event(payload, signature)
    except CheckoutError as exc:
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    event_type = event["type"]
    if event_type == "checkout.session.completed":
        session = event["data"]["object"]
        result = fulfil_checkout(session)
        log.info("Webhook %s for session %s: %s", event_type, session["id"], result.message)
        _email_letter(request, result)
    else:
        log.debug("Ignoring webhook event %s", event_type)

    return {"received": True}
