import logging

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import get_current_user, has_report_access
from app.email_utils import build_public_url
from app.layout import esc, format_dt, render_page
from app.security import attach_csrf_cookie, issue_csrf_token, validate_csrf
from core.database import list_dispute_letters_for_user, list_vehicle_lookups_for_user
from core.disputes.pricing import format_gbp
from core.referrals import ReferralError, generate_referral_code, get_user_referral_stats

log = logging.getLogger("dashboard")

router = APIRouter()

_STATUS_BADGES = {
    "paid": "good",
    "completed": "good",
    "approved": "good",
    "pending": "warn",
    "unpaid": "warn",
    "rejected": "bad",
    "cancelled": "bad",
}


def badge(value: str | None) -> str:
    value = value or "unknown"
    return f'<span class="badge {_STATUS_BADGES.get(value, "")}">{esc(value)}</span>'


def _letters_table(letters: list) -> str:
    rows = ""
    for letter in letters:
        action = (
            f'<a href="/dispute-letters/{esc(letter["id"])}">View</a>'
            if letter.get("payment_status") == "paid"
            else f'<a href="/dispute-letters/{esc(letter["id"])}/review">Complete payment</a>'
        )
        rows += f"""
        <tr>
          <td>{esc(letter.get('ticket_number'))}</td>
          <td>{esc(letter.get('product_name'))}</td>
          <td>{format_gbp(letter.get('price') or 0)}</td>
          <td>{badge(letter.get('payment_status'))}</td>
          <td>{badge(letter.get('status'))}</td>
          <td>{format_dt(letter.get('created_at'))}</td>
          <td>{action}</td>
        </tr>
        """
    if not rows:
        rows = '<tr><td colspan="7">No dispute letters yet. <a href="/dispute-letters">Create one</a>.</td></tr>'
    return f"""
      <table>
        <thead>
          <tr><th>PCN</th><th>Product</th><th>Price</th><th>Payment</th><th>Status</th><th>Created</th><th></th></tr>
        </thead>
        <tbody>{rows}</tbody>
      </table>
    """


def _lookups_table(lookups: list) -> str:
    rows = "".join(
        f"""
        <tr>
          <td><a href="/vehicle-check?registration={esc(l.get('registration'))}">{esc(l.get('registration'))}</a></td>
          <td>{esc(l.get('data_type'))}</td>
          <td>{format_dt(l.get('created_at'))}</td>
        </tr>
        """
        for l in lookups
    )
    if not rows:
        rows = '<tr><td colspan="3">No vehicle checks yet.</td></tr>'
    return f"""
      <table>
        <thead><tr><th>Registration</th><th>Check</th><th>When</th></tr></thead>
        <tbody>{rows}</tbody>
      </table>
    """


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request):
    user, _ = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=303)

    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    stats = get_user_referral_stats(user["id"])
    letters = list_dispute_letters_for_user(user["id"])
    lookups = list_vehicle_lookups_for_user(user["id"], limit=10)

    if stats["code"]:
        link = build_public_url(request, f"/signup?ref={stats['code']}")
        referral_html = f"""
          <p>Your referral code: <strong>{esc(stats['code'])}</strong></p>
          <p class="muted">Share this link: <a href="{esc(link)}">{esc(link)}</a></p>
        """
    else:
        referral_html = f"""
          <form method="post" action="/dashboard/referral-code">
            <input type="hidden" name="csrf_token" value="{csrf_token}" />
            <button type="submit">Get my referral link</button>
          </form>
        """

    payouts_rows = "".join(
        f"<tr><td>{format_gbp(p.get('amount') or 0)}</td><td>{badge(p.get('status'))}</td>"
        f"<td>{format_dt(p.get('created_at'))}</td></tr>"
        for p in stats["recent_payouts"]
    ) or '<tr><td colspan="3">No payouts yet.</td></tr>'

    report_access = (
        '<span class="badge good">Comprehensive reports unlocked</span>'
        if has_report_access(user)
        else '<a href="/vehicle-check">Unlock comprehensive reports</a>'
    )
    opt_in_checked = "checked" if user.get("opt_in_leaderboard") else ""

    body = f"""
    <div class="stats">
      <div class="stat"><div class="label">Dispute letters</div><div class="value">{len(letters)}</div></div>
      <div class="stat"><div class="label">Referrals</div><div class="value">{stats['total_referrals']}</div></div>
      <div class="stat"><div class="label">Converted</div><div class="value">{stats['converted_referrals']}</div></div>
      <div class="stat"><div class="label">Conversion rate</div><div class="value">{stats['conversion_rate']}%</div></div>
      <div class="stat"><div class="label">Pending earnings</div><div class="value">{format_gbp(stats['pending_earnings'])}</div></div>
      <div class="stat"><div class="label">Paid earnings</div><div class="value">{format_gbp(stats['paid_earnings'])}</div></div>
    </div>

    <div class="card">
      <h2>Your dispute letters</h2>
      {_letters_table(letters)}
    </div>

    <div class="card">
      <h2>Recent vehicle checks</h2>
      <p>{report_access}</p>
      {_lookups_table(lookups)}
    </div>

    <div class="card">
      <h2>Refer friends, earn £10</h2>
      {referral_html}
      <table>
        <thead><tr><th>Payout</th><th>Status</th><th>Created</th></tr></thead>
        <tbody>{payouts_rows}</tbody>
      </table>
    </div>

    <div class="card">
      <h2>Profile</h2>
      <div class="muted"><strong>Account created:</strong> {format_dt(user.get("created_at")) or "n/a"}</div>
      <form method="post" action="/account/profile">
        <label>Full name <input name="full_name" maxlength="100" value="{esc(user.get('full_name'))}" /></label>
        <label>Phone <input name="phone" maxlength="30" value="{esc(user.get('phone'))}" /></label>
        <label>Address <textarea name="address" maxlength="300">{esc(user.get('address'))}</textarea></label>
        <label>Leaderboard alias <input name="alias" maxlength="30" value="{esc(user.get('alias'))}" /></label>
        <label style="display:flex;gap:0.4rem;align-items:center;">
          <input type="checkbox" name="opt_in_leaderboard" value="1" {opt_in_checked} />
          <span>Show me on the public referral leaderboard</span>
        </label>
        <input type="hidden" name="csrf_token" value="{csrf_token}" />
        <button type="submit">Save profile</button>
      </form>
    </div>
    """

    if user.get("role") != "admin":
        body += f"""
    <div class="card">
      <form method="post" action="/account/delete"
            onsubmit="return confirm('Deletion is not reversible. Your account, sessions and referral code will be removed. Continue?');">
        <input type="hidden" name="csrf_token" value="{csrf_token}" />
        <button type="submit" style="background:#dc2626;">Delete account</button>
      </form>
    </div>
        """

    response = render_page("Dashboard", body, user=user)
    attach_csrf_cookie(response, csrf_token)
    return response


@router.post("/dashboard/referral-code")
def create_referral_link(request: Request, csrf_token: str = Form("")):
    user, _ = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=303)
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    try:
        generate_referral_code(user["id"])
    except ReferralError as exc:
        log.error("Referral code for user %s failed: %s", user["id"], exc.message)
        return HTMLResponse(esc(exc.message), status_code=exc.status_code)
    return RedirectResponse(url="/dashboard", status_code=303)
