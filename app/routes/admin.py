import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import get_current_user
from app.layout import esc, format_dt, render_page
from app.routes.dashboard import badge
from app.security import attach_csrf_cookie, issue_csrf_token, validate_csrf
from core.database import (
    LETTER_SORT_FIELDS,
    LETTER_STATUSES,
    PAYOUT_STATUSES,
    USER_SORT_FIELDS,
    count_dispute_letters,
    count_users,
    get_deleted_users,
    get_user_by_id,
    list_dispute_letters,
    list_payouts,
    list_referrals,
    list_users,
    set_user_role,
    update_dispute_letter_status,
    update_payout_status,
)
from core.disputes.pricing import format_gbp
from core.referrals import ReferralError, parse_amount, record_conversion

log = logging.getLogger("admin")

router = APIRouter()

TABS = (
    ("users", "Users"),
    ("dispute-letters", "Dispute letters"),
    ("referrals", "Referrals"),
    ("payouts", "Payouts"),
    ("archive", "Deleted users"),
)


def _admin_or_response(request: Request):
    user, _ = get_current_user(request)
    if not user:
        return None, RedirectResponse(url="/login", status_code=303)
    if user.get("role") != "admin":
        return None, HTMLResponse("Forbidden", status_code=403)
    return user, None


def _back(tab: str, notice: str = "") -> RedirectResponse:
    query = {"tab": tab}
    if notice:
        query["notice"] = notice
    return RedirectResponse(url=f"/admin?{urlencode(query)}", status_code=303)


def _status_select(name: str, options, current: str) -> str:
    option_html = "".join(
        f'<option value="{o}" {"selected" if o == current else ""}>{o}</option>' for o in options
    )
    return f'<select name="{name}">{option_html}</select>'


def _filters(tab: str, status: str, search: str, sort: str, direction: str, statuses=(), sort_fields=()) -> str:
    status_html = ""
    if statuses:
        status_html = f"<label>Status {_status_select('status', ('all',) + tuple(statuses), status)}</label>"
    sort_html = ""
    if sort_fields:
        sort_html = f"""
        <label>Sort {_status_select('sort', sort_fields, sort)}</label>
        <label>Direction {_status_select('direction', ('desc', 'asc'), direction)}</label>
        """
    search_html = ""
    if tab in ("users", "dispute-letters"):
        search_html = f'<label>Search <input name="search" value="{esc(search)}" /></label>'
    return f"""
    <form method="get" action="/admin" class="grid">
      <input type="hidden" name="tab" value="{tab}" />
      {search_html}
      {status_html}
      {sort_html}
      <div><button type="submit">Filter</button></div>
    </form>
    """


def _users_tab(csrf_token: str, current: dict, search: str, sort: str, direction: str) -> str:
    rows = ""
    for u in list_users(search=search, sort=sort, direction=direction):
        action = ""
        if u["id"] != current["id"]:
            label = "Remove admin" if u.get("role") == "admin" else "Make admin"
            action = f"""
            <form method="post" action="/admin/users/{u['id']}/toggle-admin">
              <input type="hidden" name="csrf_token" value="{csrf_token}" />
              <button type="submit" class="small">{label}</button>
            </form>
            """
        rows += f"""
        <tr>
          <td>{u['id']}</td>
          <td>{esc(u.get('email'))}</td>
          <td>{esc(u.get('full_name'))}</td>
          <td>{esc(u.get('role'))}</td>
          <td>{"yes" if u.get('email_verified_at') else "no"}</td>
          <td>{"yes" if u.get('has_comprehensive_report_access') else "no"}</td>
          <td>{format_dt(u.get('created_at'))}</td>
          <td>{action}</td>
        </tr>
        """
    if not rows:
        rows = '<tr><td colspan="8">No users match.</td></tr>'
    return f"""
    <table>
      <thead>
        <tr><th>ID</th><th>Email</th><th>Name</th><th>Role</th><th>Verified</th><th>Reports</th><th>Created</th><th></th></tr>
      </thead>
      <tbody>{rows}</tbody>
    </table>
    """


def _letters_tab(csrf_token: str, status: str, search: str, sort: str, direction: str) -> str:
    rows = ""
    for letter in list_dispute_letters(status=status, search=search, sort=sort, direction=direction):
        rows += f"""
        <tr>
          <td><a href="/dispute-letters/{esc(letter['id'])}">{esc(letter.get('ticket_number'))}</a></td>
          <td>{esc(letter.get('vehicle_reg'))}</td>
          <td>{esc(letter.get('customer_email'))}</td>
          <td>{esc(letter.get('product_name'))}</td>
          <td>{format_gbp(letter.get('price') or 0)}</td>
          <td>{badge(letter.get('status'))}</td>
          <td>{format_dt(letter.get('created_at'))}</td>
          <td>
            <form method="post" action="/admin/dispute-letters/{esc(letter['id'])}/status">
              {_status_select('status', LETTER_STATUSES, letter.get('status'))}
              <input type="hidden" name="csrf_token" value="{csrf_token}" />
              <button type="submit" class="small">Update</button>
            </form>
          </td>
        </tr>
        """
    if not rows:
        rows = '<tr><td colspan="8">No paid dispute letters match.</td></tr>'
    return f"""
    <table>
      <thead>
        <tr><th>PCN</th><th>Vehicle</th><th>Customer</th><th>Product</th><th>Price</th><th>Status</th><th>Created</th><th></th></tr>
      </thead>
      <tbody>{rows}</tbody>
    </table>
    """


def _referrals_tab(csrf_token: str, status: str) -> str:
    converted = {"converted": True, "pending": False}.get(status)
    rows = ""
    for r in list_referrals(converted=converted):
        if r.get("converted"):
            state = badge("completed")
        else:
            state = f"""
            <form method="post" action="/admin/referrals/conversion">
              <input type="hidden" name="referred_user_id" value="{r['referred_user_id']}" />
              <input type="hidden" name="csrf_token" value="{csrf_token}" />
              <button type="submit" class="small">Record conversion</button>
            </form>
            """
        rows += f"""
        <tr>
          <td>{r['id']}</td>
          <td>{esc(r.get('referrer_email'))}</td>
          <td>{esc(r.get('referred_email'))}</td>
          <td>{format_dt(r.get('created_at'))}</td>
          <td>{format_dt(r.get('conversion_date'))}</td>
          <td>{state}</td>
        </tr>
        """
    if not rows:
        rows = '<tr><td colspan="6">No referrals yet.</td></tr>'
    return f"""
    <table>
      <thead><tr><th>ID</th><th>Referrer</th><th>Referred</th><th>Signed up</th><th>Converted</th><th></th></tr></thead>
      <tbody>{rows}</tbody>
    </table>
    """


def _payouts_tab(csrf_token: str, status: str) -> str:
    rows = ""
    for p in list_payouts(status=status):
        rows += f"""
        <tr>
          <td>{p['id']}</td>
          <td>{esc(p.get('email'))}</td>
          <td>{format_gbp(p.get('amount') or 0)}</td>
          <td>{badge(p.get('status'))}</td>
          <td>{esc(p.get('notes'))}</td>
          <td>{format_dt(p.get('created_at'))}</td>
          <td>
            <form method="post" action="/admin/payouts/{p['id']}/status">
              {_status_select('status', PAYOUT_STATUSES, p.get('status'))}
              <input type="hidden" name="csrf_token" value="{csrf_token}" />
              <button type="submit" class="small">Update</button>
            </form>
          </td>
        </tr>
        """
    if not rows:
        rows = '<tr><td colspan="7">No payouts.</td></tr>'
    return f"""
    <table>
      <thead><tr><th>ID</th><th>User</th><th>Amount</th><th>Status</th><th>Notes</th><th>Created</th><th></th></tr></thead>
      <tbody>{rows}</tbody>
    </table>
    """


def _archive_tab() -> str:
    rows = ""
    for u in get_deleted_users(limit=100):
        rows += f"""
        <tr>
          <td>{u.get('user_id')}</td>
          <td>{esc(u.get('email'))}</td>
          <td>{esc(u.get('role'))}</td>
          <td>{format_dt(u.get('created_at'))}</td>
          <td>{format_dt(u.get('deleted_at'))}</td>
        </tr>
        """
    if not rows:
        rows = '<tr><td colspan="5">No deleted users.</td></tr>'
    return f"""
    <table>
      <thead><tr><th>User ID</th><th>Email</th><th>Role</th><th>Created</th><th>Deleted</th></tr></thead>
      <tbody>{rows}</tbody>
    </table>
    """


@router.get("/admin", response_class=HTMLResponse)
def admin_dashboard(
    request: Request,
    tab: str = "users",
    status: str = "all",
    search: str = "",
    sort: str = "created_at",
    direction: str = "desc",
    notice: str = "",
):
    user, denied = _admin_or_response(request)
    if denied:
        return denied

    tab = tab if tab in dict(TABS) else "users"
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))

    if tab == "users":
        content = _filters(tab, status, search, sort, direction, sort_fields=USER_SORT_FIELDS)
        content += _users_tab(csrf_token, user, search, sort, direction)
    elif tab == "dispute-letters":
        content = _filters(tab, status, search, sort, direction, LETTER_STATUSES, LETTER_SORT_FIELDS)
        content += _letters_tab(csrf_token, status, search, sort, direction)
    elif tab == "referrals":
        content = _filters(tab, status, search, sort, direction, ("pending", "converted"))
        content += _referrals_tab(csrf_token, status)
    elif tab == "payouts":
        content = _filters(tab, status, search, sort, direction, PAYOUT_STATUSES)
        content += _payouts_tab(csrf_token, status)
    else:
        content = _archive_tab()

    tabs_html = "".join(
        f'<a href="/admin?tab={key}" class="{"active" if key == tab else ""}">{label}</a>' for key, label in TABS
    )
    notice_html = f'<p class="ok">{esc(notice)}</p>' if notice else ""

    body = f"""
    <div class="stats">
      <div class="stat"><div class="label">Users</div><div class="value">{count_users()}</div></div>
      <div class="stat"><div class="label">Paid letters</div><div class="value">{count_dispute_letters()}</div></div>
    </div>
    <div class="card">
      <div class="tabs">{tabs_html}</div>
      {notice_html}
      {content}
    </div>
    """
    response = render_page("Admin", body, user=user)
    attach_csrf_cookie(response, csrf_token)
    return response


@router.post("/admin/users/{user_id}/toggle-admin")
def toggle_admin(request: Request, user_id: int, csrf_token: str = Form("")):
    user, denied = _admin_or_response(request)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    if user_id == user["id"]:
        return _back("users", "You cannot change your own role.")

    target = get_user_by_id(user_id)
    if not target:
        return _back("users", "User not found.")
    new_role = "user" if target.get("role") == "admin" else "admin"
    set_user_role(user_id, new_role)
    log.info("Admin %s set role of user %s to %s", user["id"], user_id, new_role)
    return _back("users", f"{target['email']} is now {new_role}.")


@router.post("/admin/dispute-letters/{letter_id}/status")
def set_letter_status(request: Request, letter_id: str, status: str = Form(...), csrf_token: str = Form("")):
    user, denied = _admin_or_response(request)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    if status not in LETTER_STATUSES:
        return _back("dispute-letters", "Unknown status.")

    update_dispute_letter_status(letter_id, status)
    log.info("Admin %s set dispute letter %s to %s", user["id"], letter_id, status)
    return _back("dispute-letters", "Letter status updated.")


@router.post("/admin/payouts/{payout_id}/status")
def set_payout_status(request: Request, payout_id: int, status: str = Form(...), csrf_token: str = Form("")):
    user, denied = _admin_or_response(request)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    if status not in PAYOUT_STATUSES:
        return _back("payouts", "Unknown status.")

    update_payout_status(payout_id, status)
    log.info("Admin %s set payout %s to %s", user["id"], payout_id, status)
    return _back("payouts", "Payout status updated.")


@router.post("/admin/referrals/conversion")
def admin_record_conversion(
    request: Request,
    referred_user_id: int = Form(...),
    conversion_value: str = Form("0"),
    csrf_token: str = Form(""),
):
    user, denied = _admin_or_response(request)
    if denied:
        return denied
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    value = parse_amount(conversion_value or "0")
    if value is None:
        return _back("referrals", "Conversion value must be a number.")

    try:
        record_conversion(referred_user_id, conversion_value=value)
    except ReferralError as exc:
        return _back("referrals", exc.message)
    log.info("Admin %s recorded conversion for user %s", user["id"], referred_user_id)
    return _back("referrals", "Conversion recorded.")
