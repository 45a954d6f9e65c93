import logging

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import clear_session_cookie, get_current_user
from app.security import validate_csrf
from core.database import delete_session, delete_user_data, update_user_profile

log = logging.getLogger("account")

router = APIRouter()


@router.post("/account/profile")
def update_profile(
    request: Request,
    full_name: str = Form("", max_length=100),
    phone: str = Form("", max_length=30),
    address: str = Form("", max_length=300),
    alias: str = Form("", max_length=30),
    opt_in_leaderboard: str = Form(""),
    csrf_token: str = Form(""),
):
    user, _ = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=303)
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    update_user_profile(
        user["id"],
        full_name=full_name,
        phone=phone,
        address=address,
        alias=alias,
        opt_in_leaderboard=opt_in_leaderboard in ("1", "on", "true"),
    )
    return RedirectResponse(url="/dashboard", status_code=303)


@router.post("/account/delete")
def delete_account(request: Request, csrf_token: str = Form("")):
    user, token = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=303)
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    # Admin accounts are removed out-of-band
    if user.get("role") == "admin":
        return RedirectResponse(url="/dashboard", status_code=303)

    delete_user_data(user["id"])
    log.info("User %s deleted their account", user["id"])
    if token:
        delete_session(token)
    response = RedirectResponse(url="/", status_code=303)
    clear_session_cookie(response)
    return response
