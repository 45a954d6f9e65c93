import logging
from typing import List

from fastapi import APIRouter, Form, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from app.auth_utils import get_current_user, is_admin
from app.layout import esc, message_page, render_page
from app.security import allow_request, attach_csrf_cookie, client_ip, issue_csrf_token, validate_csrf
from core.database import create_dispute_letter, get_dispute_letter
from core.disputes.catalog import DISPUTE_REASONS, OFFENSE_TYPES, SERVICE_LEVELS, SERVICE_LEVELS_BY_KEY
from core.disputes.councils import format_council_address, lookup_council_address
from core.disputes.letter_generator import DisputeForm, generate_enhanced_letter
from core.disputes.postage import calculate_postage, estimate_pages
from core.disputes.pricing import calculate_price, format_gbp, price_table, product_name
from core.disputes.validation import validate_dispute_form
from core.payments import CheckoutError, create_checkout_session

log = logging.getLogger("disputes.routes")

router = APIRouter()

PREVIEW_CHARS = 600


def _can_view(letter: dict, user: dict | None) -> bool:
    # Guest letters are reachable only through the unguessable id in the emailed link.
    owner = letter.get("user_id")
    if owner is None:
        return True
    return bool(user) and (user["id"] == owner or is_admin(user))


def _field_error(errors: dict, name: str) -> str:
    message = errors.get(name)
    return f'<div class="error">{esc(message)}</div>' if message else ""


def _dispute_form(csrf_token: str, form: DisputeForm | None = None, errors: dict | None = None) -> str:
    errors = errors or {}
    if form is None:
        form = DisputeForm(
            selected_offenses=[], ticket_number="", issue_date="", location="", vehicle_reg="", amount="",
            reason="", evidence="", name="", address="", email="",
        )

    offense_boxes = "".join(
        f"""
        <label style="display:flex;gap:0.4rem;align-items:center;margin-top:0.3rem;">
          <input type="checkbox" name="selected_offenses" value="{esc(o.name)}"
                 {"checked" if o.name in form.selected_offenses else ""} />
          <span>{esc(o.name)} <span class="muted">({o.category})</span></span>
        </label>
        """
        for o in OFFENSE_TYPES
    )
    reason_options = "".join(
        f'<option value="{esc(r)}" {"selected" if r == form.reason else ""}>{esc(r)}</option>'
        for r in DISPUTE_REASONS
    )
    level_options = "".join(
        f'<option value="{lvl.key}" {"selected" if lvl.key == form.service_level else ""}>{esc(lvl.title)}</option>'
        for lvl in SERVICE_LEVELS
    )
    summary = ""
    if errors:
        summary = '<p class="error">Please fix the highlighted fields and submit again.</p>'

    return f"""
    <div class="card form-card">
      <p class="muted">
        Tell us about your penalty charge notice. We will draft an appeal citing the regulations that apply,
        show you the price, and you only pay once you are happy to proceed.
      </p>
      {summary}
      <form method="post" action="/dispute-letters">
        <h3>Offense</h3>
        {offense_boxes}
        {_field_error(errors, "selected_offenses")}

        <h3>Ticket details</h3>
        <label>PCN / ticket number
          <input name="ticket_number" maxlength="40" value="{esc(form.ticket_number)}" />
        </label>
        {_field_error(errors, "ticket_number")}
        <label>Issue date
          <input type="date" name="issue_date" value="{esc(form.issue_date)}" />
        </label>
        {_field_error(errors, "issue_date")}
        <label>Location
          <input name="location" maxlength="200" value="{esc(form.location)}" placeholder="Street and town" />
        </label>
        {_field_error(errors, "location")}
        <label>Vehicle registration
          <input name="vehicle_reg" maxlength="10" value="{esc(form.vehicle_reg)}" />
        </label>
        {_field_error(errors, "vehicle_reg")}
        <label>Penalty amount (£)
          <input name="amount" maxlength="10" value="{esc(form.amount)}" />
        </label>
        {_field_error(errors, "amount")}

        <h3>Your case</h3>
        <label>Reason for dispute
          <select name="reason">
            <option value="">Choose a reason</option>
            {reason_options}
          </select>
        </label>
        {_field_error(errors, "reason")}
        <label>Evidence and details
          <textarea name="evidence" maxlength="4000">{esc(form.evidence)}</textarea>
        </label>
        {_field_error(errors, "evidence")}

        <h3>Your details</h3>
        <label>Full name <input name="name" maxlength="100" value="{esc(form.name)}" /></label>
        {_field_error(errors, "name")}
        <label>Address <textarea name="address" maxlength="300">{esc(form.address)}</textarea></label>
        {_field_error(errors, "address")}
        <label>Email <input type="email" name="email" maxlength="100" value="{esc(form.email)}" /></label>
        {_field_error(errors, "email")}
        <label>Phone (optional) <input name="phone" maxlength="30" value="{esc(form.phone)}" /></label>

        <label>Service level
          <select name="service_level">{level_options}</select>
        </label>
        {_field_error(errors, "service_level")}
        <p class="muted">Prices for every level are listed on the <a href="/pricing">pricing page</a>.</p>

        <input type="hidden" name="csrf_token" value="{csrf_token}" />
        <button type="submit">Generate my letter</button>
      </form>
    </div>
    """


@router.get("/dispute-letters", response_class=HTMLResponse)
def dispute_form(request: Request):
    user, _ = get_current_user(request)
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    form = None
    if user:
        form = DisputeForm(
            selected_offenses=[], ticket_number="", issue_date="", location="", vehicle_reg="", amount="",
            reason="", evidence="", name=user.get("full_name") or "", address=user.get("address") or "",
            email=user.get("email") or "", phone=user.get("phone") or "",
        )
    response = render_page("Dispute a penalty charge", _dispute_form(csrf_token, form), user)
    attach_csrf_cookie(response, csrf_token)
    return response


@router.post("/dispute-letters", response_class=HTMLResponse)
def submit_dispute(
    request: Request,
    selected_offenses: List[str] = Form([]),
    ticket_number: str = Form("", max_length=40),
    issue_date: str = Form("", max_length=10),
    location: str = Form("", max_length=200),
    vehicle_reg: str = Form("", max_length=10),
    amount: str = Form("", max_length=10),
    reason: str = Form("", max_length=100),
    evidence: str = Form("", max_length=4000),
    name: str = Form("", max_length=100),
    address: str = Form("", max_length=300),
    email: str = Form("", max_length=100),
    phone: str = Form("", max_length=30),
    service_level: str = Form("standard", max_length=20),
    csrf_token: str = Form(""),
):
    if not allow_request(f"dispute:{client_ip(request)}", limit=20, window_seconds=600):
        return HTMLResponse("Too many letters requested. Please try again later.", status_code=429)
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    user, _ = get_current_user(request)
    form = DisputeForm(
        selected_offenses=[o for o in selected_offenses if o],
        ticket_number=ticket_number.strip(),
        issue_date=issue_date.strip(),
        location=location.strip(),
        vehicle_reg=vehicle_reg.strip().upper(),
        amount=amount.strip(),
        reason=reason,
        evidence=evidence.strip(),
        name=name.strip(),
        address=address.strip(),
        email=email.strip().lower(),
        phone=phone.strip(),
        service_level=service_level,
    )

    errors = validate_dispute_form(form)
    if errors:
        response = render_page("Dispute a penalty charge", _dispute_form(csrf_token, form, errors), user)
        attach_csrf_cookie(response, csrf_token)
        return response

    letter = generate_enhanced_letter(form)
    price = calculate_price(form.selected_offenses, form.service_level)
    letter_id = create_dispute_letter(
        user_id=user["id"] if user else None,
        product_name=product_name(form.service_level),
        ticket_number=form.ticket_number,
        issue_date=form.issue_date,
        location=form.location,
        vehicle_reg=form.vehicle_reg,
        amount=form.amount,
        reason=form.reason,
        evidence=form.evidence,
        offense_types=form.selected_offenses,
        service_level=form.service_level,
        price=price,
        letter_content=letter.letter_content,
        legal_references=letter.legal_references,
        recommendations=letter.recommendations,
        strength_score=letter.strength_score,
        estimated_success_rate=letter.estimated_success_rate,
        customer_name=form.name,
        customer_email=form.email,
    )
    log.info("Dispute letter %s drafted (%s, %s)", letter_id, letter.ticket_type, form.service_level)
    return RedirectResponse(url=f"/dispute-letters/{letter_id}/review", status_code=303)


@router.get("/dispute-letters/{letter_id}/review", response_class=HTMLResponse)
def review_letter(request: Request, letter_id: str):
    user, _ = get_current_user(request)
    letter = get_dispute_letter(letter_id)
    if not letter or not _can_view(letter, user):
        return message_page("Letter not found", "We could not find that dispute letter.", "/dispute-letters",
                            "Start a new letter", status_code=404, user=user)
    if letter.get("payment_status") == "paid":
        return RedirectResponse(url=f"/dispute-letters/{letter_id}", status_code=303)

    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    content = letter.get("letter_content") or ""
    preview = content[:PREVIEW_CHARS]
    if len(content) > PREVIEW_CHARS:
        preview += "\n\n[... the full letter is unlocked after payment ...]"

    level = SERVICE_LEVELS_BY_KEY.get(letter.get("service_level"))
    features = "".join(f"<li>{esc(f)}</li>" for f in (level.features if level else ()))
    recommendations = "".join(f"<li>{esc(r)}</li>" for r in letter.get("recommendations") or [])
    references = "".join(f"<li>{esc(r)}</li>" for r in letter.get("legal_references") or [])
    offenses = ", ".join(esc(o) for o in letter.get("offense_types") or [])

    body = f"""
    <div class="stats">
      <div class="stat"><div class="label">Price</div><div class="value">{format_gbp(letter.get('price') or 0)}</div></div>
      <div class="stat"><div class="label">Case strength</div><div class="value">{letter.get('strength_score') or 0}/100</div></div>
      <div class="stat"><div class="label">Estimated success</div><div class="value">{letter.get('estimated_success_rate') or 0}%</div></div>
    </div>
    <div class="grid">
      <div class="card">
        <h3>{esc(letter.get('product_name'))}</h3>
        <p class="muted">PCN {esc(letter.get('ticket_number'))} &middot; {offenses}</p>
        <ul>{features}</ul>
        <form method="post" action="/dispute-letters/{esc(letter_id)}/checkout">
          <input type="hidden" name="csrf_token" value="{csrf_token}" />
          <button type="submit">Pay {format_gbp(letter.get('price') or 0)} and get my letter</button>
        </form>
      </div>
      <div class="card">
        <h3>Recommendations</h3>
        <ul>{recommendations or "<li>No further evidence suggested.</li>"}</ul>
        <h3>Legal references</h3>
        <ul>{references}</ul>
      </div>
    </div>
    <div class="card">
      <h2>Preview</h2>
      <pre class="letter">{esc(preview)}</pre>
    </div>
    """
    response = render_page("Review your letter", body, user)
    attach_csrf_cookie(response, csrf_token)
    return response


@router.post("/dispute-letters/{letter_id}/checkout")
def checkout_letter(request: Request, letter_id: str, csrf_token: str = Form("")):
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    user, _ = get_current_user(request)
    letter = get_dispute_letter(letter_id)
    if not letter or not _can_view(letter, user):
        return message_page("Letter not found", "We could not find that dispute letter.", "/dispute-letters",
                            "Start a new letter", status_code=404, user=user)
    if letter.get("payment_status") == "paid":
        return RedirectResponse(url=f"/dispute-letters/{letter_id}", status_code=303)

    try:
        session = create_checkout_session(
            amount=letter["price"],
            product_name=letter["product_name"],
            submission_id=letter_id,
            customer_email=letter.get("customer_email"),
            service_level=letter.get("service_level") or "standard",
            user_id=letter.get("user_id"),
        )
    except CheckoutError as exc:
        log.error("Checkout for letter %s failed: %s", letter_id, exc.message)
        return message_page("Payment unavailable", esc(exc.message), f"/dispute-letters/{esc(letter_id)}/review",
                            "Back to your letter", status_code=exc.status_code, user=user)
    return RedirectResponse(url=session["url"], status_code=303)


@router.get("/dispute-letters/{letter_id}", response_class=HTMLResponse)
def view_letter(request: Request, letter_id: str):
    user, _ = get_current_user(request)
    letter = get_dispute_letter(letter_id)
    if not letter or not _can_view(letter, user):
        return message_page("Letter not found", "We could not find that dispute letter.", "/dispute-letters",
                            "Start a new letter", status_code=404, user=user)
    if letter.get("payment_status") != "paid":
        return RedirectResponse(url=f"/dispute-letters/{letter_id}/review", status_code=303)

    content = letter.get("letter_content") or ""
    council = lookup_council_address(letter.get("location") or "")
    quote = calculate_postage(
        "uk_recorded" if letter.get("service_level") == "premium" else "uk_first_class",
        pages=estimate_pages(content),
    )
    breakdown = "".join(
        f"<tr><td>{esc(part.title())}</td><td>{format_gbp(cost)}</td></tr>" for part, cost in quote["breakdown"].items()
    )

    body = f"""
    <div class="grid">
      <div class="card">
        <h3>Send to</h3>
        <pre class="letter">{esc(format_council_address(council))}</pre>
        <p class="muted">Address match confidence: {esc(council.confidence)}</p>
      </div>
      <div class="card">
        <h3>Postage quote</h3>
        <table>
          {breakdown}
          <tr><th>Total</th><th>{format_gbp(quote["total"])}</th></tr>
        </table>
      </div>
    </div>
    <div class="card">
      <p><a href="/dispute-letters/{esc(letter_id)}/download">Download as text</a></p>
      <pre class="letter">{esc(content)}</pre>
    </div>
    """
    return render_page(f"Dispute letter for PCN {letter.get('ticket_number')}", body, user)


@router.get("/dispute-letters/{letter_id}/download")
def download_letter(request: Request, letter_id: str):
    user, _ = get_current_user(request)
    letter = get_dispute_letter(letter_id)
    if not letter or not _can_view(letter, user) or letter.get("payment_status") != "paid":
        return Response("Not found", status_code=404, media_type="text/plain")

    ticket = "".join(ch for ch in (letter.get("ticket_number") or "letter") if ch.isalnum()) or "letter"
    return Response(
        content=letter.get("letter_content") or "",
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="dispute-letter-{ticket}.txt"'},
    )


@router.get("/api/dispute-letters/price")
def api_price(offenses: List[str] = Query([]), service_level: str = ""):
    if service_level:
        if service_level not in SERVICE_LEVELS_BY_KEY:
            return JSONResponse({"error": "Invalid service level", "message": f"Unknown level: {service_level}"},
                                status_code=400)
        prices = {service_level: calculate_price(offenses, service_level)}
    else:
        prices = price_table(offenses)
    return {
        "offenses": offenses,
        "currency": "GBP",
        "prices": {key: str(value) for key, value in prices.items()},
    }
