import logging

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from app.auth_utils import get_current_user, is_valid_password
from app.email_utils import build_public_url, send_verification_email
from app.layout import esc, render_page
from app.security import allow_request, attach_csrf_cookie, client_ip, issue_csrf_token, validate_csrf
from core.database import (
    count_dispute_letters,
    count_users,
    create_email_verification_token,
    create_user,
    get_user_by_email,
)
from core.disputes.catalog import OFFENSE_TYPES, SERVICE_LEVELS
from core.disputes.pricing import COMPREHENSIVE_REPORT_PRICE, calculate_price, format_gbp
from core.disputes.validation import is_valid_email
from core.referrals import ReferralError, track_referral

log = logging.getLogger("public")

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
def index(request: Request):
    user, _ = get_current_user(request)
    body = f"""
      <div class="card">
        <h2>Know the car before you buy it. Fight the ticket you don't deserve.</h2>
        <p class="muted">
          Free MOT history and DVLA tax status for any UK registration, a comprehensive history report
          (stolen, write-off, finance and mileage checks) for {format_gbp(COMPREHENSIVE_REPORT_PRICE)},
          and professionally worded appeal letters for parking and traffic penalty charge notices.
        </p>
        <form method="get" action="/vehicle-check">
          <label>Registration number
            <input type="text" name="registration" placeholder="e.g. AB12 CDE" maxlength="10" required />
          </label>
          <button type="submit">Check vehicle</button>
        </form>
      </div>
      <div class="grid">
        <div class="card">
          <h3>Vehicle check</h3>
          <p class="muted">MOT results, advisories, mileage readings and tax status straight from DVSA and DVLA.</p>
          <a href="/vehicle-check">Run a free check</a>
        </div>
        <div class="card">
          <h3>Dispute letters</h3>
          <p class="muted">Answer a few questions about your PCN and get a letter citing the regulations that apply.</p>
          <a href="/dispute-letters">Start a letter</a>
        </div>
        <div class="card">
          <h3>Driver licence check</h3>
          <p class="muted">Entitlements, endorsements and penalty points for a UK driving licence.</p>
          <a href="/driver-check">Check a licence</a>
        </div>
        <div class="card">
          <h3>Refer a friend</h3>
          <p class="muted">Earn £10 for every friend who buys a dispute letter with your referral link.</p>
          <a href="/leaderboard">See the leaderboard</a>
        </div>
      </div>
    """
    return render_page("UK vehicle checks and PCN appeals", body, user)


def _signup_form(csrf_token: str, ref: str = "", email: str = "", error: str = "") -> str:
    ref_note = ""
    if ref:
        ref_note = f'<p class="ok">Referral code <strong>{esc(ref)}</strong> will be applied to your account.</p>'
    error_html = f'<p class="error">{error}</p>' if error else ""
    return f"""
      <div class="card form-card">
        <p class="muted">Create an account to buy reports, save dispute letters and earn referral rewards.</p>
        {ref_note}
        {error_html}
        <form action="/signup" method="post">
          <label>
            Email
            <input type="email" name="email" required maxlength="100" value="{esc(email)}" />
          </label>
          <label>
            Password
            <input type="password" name="password" required maxlength="64" />
          </label>
          <label>
            Confirm password
            <input type="password" name="password2" required maxlength="64" />
          </label>
          <p class="muted">8-64 characters, with at least one letter and one number.</p>
          <input type="hidden" name="ref" value="{esc(ref)}" />
          <input type="hidden" name="csrf_token" value="{csrf_token}" />
          <button type="submit">Create account</button>
        </form>
        <p class="muted">Already registered? <a href="/login">Log in</a></p>
      </div>
    """


@router.get("/signup", response_class=HTMLResponse)
def signup_form(request: Request, ref: str = ""):
    user, _ = get_current_user(request)
    if user:
        return RedirectResponse(url="/dashboard", status_code=303)
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    response = render_page("Sign up", _signup_form(csrf_token, ref.strip().upper()), None)
    attach_csrf_cookie(response, csrf_token)
    return response


@router.post("/signup", response_class=HTMLResponse)
def signup(
    request: Request,
    email: str = Form(..., max_length=100),
    password: str = Form(..., max_length=64),
    password2: str = Form(..., max_length=64),
    ref: str = Form("", max_length=20),
    csrf_token: str = Form("", max_length=128),
):
    if not allow_request(f"signup:{client_ip(request)}", limit=10, window_seconds=300):
        return HTMLResponse("Too many attempts. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    email = (email or "").strip().lower()
    ref = (ref or "").strip().upper()
    error = ""
    if not is_valid_email(email):
        error = "Please enter a valid email address."
    elif not is_valid_password(password):
        error = "Password must be 8-64 characters and include at least one letter and one number."
    elif password != password2:
        error = "Passwords do not match."
    elif get_user_by_email(email):
        error = 'An account with that email already exists. <a href="/login">Log in</a> instead.'
    if error:
        return render_page("Sign up", _signup_form(csrf_token, ref, email, error), None, status_code=400)

    user_id = create_user(email, password, verified=False)
    log.info("User %s signed up", user_id)

    if ref:
        try:
            track_referral(ref, user_id)
        except ReferralError as exc:
            log.info("Referral code %s not applied for user %s: %s", ref, user_id, exc.message)

    try:
        token = create_email_verification_token(user_id)
        send_verification_email(email, build_public_url(request, f"/verify-email?token={token}"))
    except Exception as exc:
        log.error("Verification email for new user %s failed: %s", user_id, exc)

    body = f"""
    <div class="card form-card">
      <h2>Check your email</h2>
      <p class="muted">
        We sent a verification link to <strong>{esc(email)}</strong>.
        Click it to activate your account. The link expires in 24 hours.
      </p>
      <p class="muted">Nothing arrived? <a href="/verify-email/resend">Resend the link</a></p>
    </div>
    """
    return render_page("Verify your email", body, user=None)


@router.get("/pricing", response_class=HTMLResponse)
def pricing(request: Request):
    user, _ = get_current_user(request)

    tier_rows = []
    for offense in OFFENSE_TYPES:
        prices = "".join(f"<td>{format_gbp(calculate_price([offense.name], lvl.key))}</td>" for lvl in SERVICE_LEVELS)
        tier_rows.append(f"<tr><td>{esc(offense.name)}</td><td>{offense.category.title()}</td>{prices}</tr>")
    tier_heads = "".join(f"<th>{esc(lvl.title)}</th>" for lvl in SERVICE_LEVELS)

    level_cards = []
    for lvl in SERVICE_LEVELS:
        features = "".join(f"<li>{esc(f)}</li>" for f in lvl.features)
        level_cards.append(
            f"""
            <div class="card">
              <h3>{esc(lvl.title)}</h3>
              <p class="muted">Base price x {lvl.multiplier}</p>
              <ul>{features}</ul>
            </div>
            """
        )

    body = f"""
      <div class="grid">
        <div class="card">
          <h3>Free vehicle check</h3>
          <p class="muted">MOT history, tax status and headline DVLA details.</p>
          <p><strong>£0</strong></p>
        </div>
        <div class="card">
          <h3>Comprehensive vehicle report</h3>
          <p class="muted">Stolen, write-off, outstanding finance and mileage checks with valuation and a PDF.</p>
          <p><strong>{format_gbp(COMPREHENSIVE_REPORT_PRICE)}</strong> one-time payment</p>
        </div>
      </div>
      <h2>Dispute letters</h2>
      <p class="muted">
        The most serious offense you select sets the base price; the service level scales it.
      </p>
      <div class="grid">{''.join(level_cards)}</div>
      <div class="card">
        <table>
          <tr><th>Offense</th><th>Category</th>{tier_heads}</tr>
          {''.join(tier_rows)}
        </table>
      </div>
    """
    return render_page("Pricing", body, user)


_FAQ = (
    ("Where does the vehicle data come from?",
     "MOT history comes from the DVSA MOT History API; tax and MOT status from the DVLA Vehicle Enquiry "
     "Service. Comprehensive reports add stolen, write-off, finance and mileage records from our data partner."),
    ("How is my dispute letter priced?",
     "The most serious offense on your ticket sets the base price and the service level you choose scales it. "
     "See the pricing page for every combination."),
    ("Do you send the letter for me?",
     "You receive the finished letter by email and can download it from your dashboard. Premium letters include "
     "a postal dispatch quote so you can send it recorded delivery."),
    ("Is a successful appeal guaranteed?",
     "No. The estimated success rate is based on historical outcomes for similar grounds and is a guide only."),
    ("How do referral rewards work?",
     "Share the link on your dashboard. When someone you referred buys a dispute letter you earn £10, paid out "
     "after review. Opt in on your dashboard to appear on the public leaderboard."),
)


@router.get("/help", response_class=HTMLResponse)
def help_page(request: Request):
    user, _ = get_current_user(request)
    items = "".join(f"<h3>{esc(q)}</h3><p class='muted'>{esc(a)}</p>" for q, a in _FAQ)
    return render_page("Help", f'<div class="card">{items}</div>', user)


@router.get("/privacy", response_class=HTMLResponse)
def privacy(request: Request):
    user, _ = get_current_user(request)
    body = """
    <div class="card">
      <p class="muted">
        We store your email, the details you enter on dispute letter forms and the registrations you look up,
        so we can deliver the products you buy and show your history on the dashboard.
      </p>
      <p class="muted">
        Payments are handled by Stripe; we never see or store card numbers. Vehicle data requests are sent to
        DVLA, DVSA and our data partner only when you run a check.
      </p>
      <p class="muted">
        You can delete your account from the dashboard at any time. Paid dispute letters are kept without your
        account link for our accounting records.
      </p>
    </div>
    """
    return render_page("Privacy", body, user=user)


@router.get("/terms", response_class=HTMLResponse)
def terms(request: Request):
    user, _ = get_current_user(request)
    body = """
    <div class="card">
      <p class="muted">
        AutoAudit provides information and letter templates; it is not a law firm and does not give legal advice.
        You are responsible for checking the contents of any letter before sending it and for meeting the appeal
        deadline on your penalty charge notice.
      </p>
      <p class="muted">
        Vehicle reports reflect the data held by our sources on the day of the check.
        Referral payouts are made at our discretion and may be withheld for self-referrals or abuse.
      </p>
    </div>
    """
    return render_page("Terms", body, user=user)


@router.get("/health")
def health():
    try:
        return {"status": "ok", "stats": {"users": count_users(), "paid_letters": count_dispute_letters()}}
    except Exception as exc:
        log.error("Health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}


@router.get("/favicon.ico")
def favicon():
    return Response(status_code=204)

