import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse

from app.auth_utils import get_current_user, is_admin, json_auth_error
from app.json_utils import JsonBody, invalid_field, json_object_body
from app.layout import esc, render_page
from core.disputes.pricing import format_gbp
from core.referrals import (
    ReferralError,
    generate_referral_code,
    get_leaderboard,
    parse_amount,
    record_conversion,
    track_referral,
)

log = logging.getLogger("referrals.routes")

router = APIRouter()


def _encode(payload: dict) -> dict:
    # Decimals go over the wire as strings to keep pence exact.
    return json.loads(json.dumps(payload, default=str))


@router.post("/api/referrals/code")
def api_referral_code(request: Request):
    user, _ = get_current_user(request)
    denied = json_auth_error(user)
    if denied:
        return denied
    try:
        return generate_referral_code(user["id"])
    except ReferralError as exc:
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@router.post("/api/referrals/track")
def api_track_referral(request: Request, body: JsonBody = Depends(json_object_body)):
    user, _ = get_current_user(request)
    denied = json_auth_error(user)
    if denied:
        return denied
    if body.error:
        return body.error

    code = body.data.get("referralCode") or ""
    if not isinstance(code, str):
        return invalid_field("referralCode", "a string")
    try:
        return track_referral(code.strip().upper(), user["id"])
    except ReferralError as exc:
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@router.post("/api/referrals/conversion")
def api_record_conversion(request: Request, body: JsonBody = Depends(json_object_body)):
    user, _ = get_current_user(request)
    denied = json_auth_error(user, admin_required=True)
    if denied:
        return denied
    if body.error:
        return body.error
    data = body.data

    try:
        referred = int(data.get("referredUserId") or 0)
    except (TypeError, ValueError):
        return invalid_field("referredUserId", "a number")

    kwargs = {"create_payout": bool(data.get("createPayout", True))}
    conversion_value = parse_amount(data.get("conversionValue") or 0)
    if conversion_value is None:
        return invalid_field("Amounts", "numbers")
    kwargs["conversion_value"] = conversion_value
    if data.get("payoutAmount") is not None:
        payout_amount = parse_amount(data["payoutAmount"])
        if payout_amount is None:
            return invalid_field("Amounts", "numbers")
        kwargs["payout_amount"] = payout_amount

    try:
        result = record_conversion(referred, **kwargs)
    except ReferralError as exc:
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)
    log.info("Admin %s recorded conversion for user %s", user["id"], referred)
    return _encode(result)


@router.get("/api/leaderboard")
def api_leaderboard(request: Request):
    user, _ = get_current_user(request)
    return _encode(get_leaderboard(user["id"] if user else None))


@router.get("/leaderboard", response_class=HTMLResponse)
def leaderboard_page(request: Request):
    user, _ = get_current_user(request)
    board = get_leaderboard(user["id"] if user else None)

    rows = "".join(
        f"""
        <tr{' style="font-weight:600;"' if entry.get("user_id") else ""}>
          <td>{entry['rank']}</td>
          <td>{esc(entry['alias'])}</td>
          <td>{entry['conversions']}</td>
          <td>{format_gbp(entry['earnings'])}</td>
        </tr>
        """
        for entry in board["leaderboard"]
    ) or '<tr><td colspan="4">No referrers on the board yet. Be the first!</td></tr>'

    mine = ""
    stats = board["user_stats"]
    if stats is not None:
        if stats["opt_in_leaderboard"]:
            position = f"You are ranked <strong>#{stats['rank']}</strong>." if stats["rank"] else ""
        else:
            position = 'You are hidden from the board. Opt in from your <a href="/dashboard">dashboard</a>.'
        mine = f"""
        <div class="stats">
          <div class="stat"><div class="label">Your conversions</div><div class="value">{stats['conversions']}</div></div>
          <div class="stat"><div class="label">Your earnings</div><div class="value">{format_gbp(stats['earnings'])}</div></div>
        </div>
        <p class="muted">{position}</p>
        """

    admin_note = ""
    if is_admin(user):
        admin_note = '<p class="muted">Manage conversions and payouts from the <a href="/admin?tab=referrals">admin dashboard</a>.</p>'

    body = f"""
    <div class="card">
      <p class="muted">
        Earn {format_gbp(board['payout_per_referral'])} for every friend who buys a dispute letter through your link.
      </p>
      {mine}
      {admin_note}
      <table>
        <thead><tr><th>Rank</th><th>Referrer</th><th>Conversions</th><th>Earnings</th></tr></thead>
        <tbody>{rows}</tbody>
      </table>
    </div>
    """
    return render_page("Referral leaderboard", body, user)
