import logging

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.auth_utils import clear_session_cookie, get_current_user, is_valid_password, set_session_cookie
from app.email_utils import build_public_url, send_password_reset_email, send_verification_email
from app.layout import esc, render_page
from app.security import (
    allow_request,
    allow_request_with_remaining,
    attach_csrf_cookie,
    client_ip,
    issue_csrf_token,
    validate_csrf,
)
from core.database import (
    create_email_verification_token,
    create_password_reset_token,
    create_session,
    delete_session,
    delete_user_sessions,
    get_email_verification_token,
    get_password_reset_token,
    get_user_by_email,
    get_user_by_id,
    mark_email_verification_token_used,
    mark_reset_token_used,
    mark_user_email_verified,
    update_user_password,
    verify_password,
)

log = logging.getLogger("auth")

router = APIRouter()


def _login_form(csrf_token: str, email: str = "", notice: str = "") -> str:
    return f"""
    <div class="card form-card">
      <p class="muted">Log in to see your dispute letters, reports and referral earnings.</p>
      {notice}
      <form method="post" action="/login">
        <label>Email</label>
        <input type="email" name="email" required maxlength="100" value="{esc(email)}" />

        <label>Password</label>
        <input type="password" name="password" required maxlength="64" />

        <input type="hidden" name="csrf_token" value="{csrf_token}" />
        <button type="submit">Login</button>
      </form>
      <p style="margin-top:0.5rem;">
        <a href="/password-reset">Forgot password?</a> &middot; <a href="/signup">Create an account</a>
      </p>
    </div>
    """


def _issue_verification(request: Request, user: dict) -> None:
    """Send a fresh verification link; delivery problems are logged, never shown."""
    try:
        token = create_email_verification_token(user["id"])
        send_verification_email(user["email"], build_public_url(request, f"/verify-email?token={token}"))
    except Exception as exc:  # smtplib and config errors alike
        log.warning("Verification email to user %s failed: %s", user["id"], exc)


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request):
    user, _ = get_current_user(request)
    if user:
        return RedirectResponse(url="/dashboard", status_code=303)
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    resp = render_page("Login", _login_form(csrf_token), user=None)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/login", response_class=HTMLResponse)
def login(
    request: Request,
    email: str = Form(..., max_length=100),
    password: str = Form(..., max_length=64),
    csrf_token: str = Form(""),
):
    allowed, remaining = allow_request_with_remaining(f"login:{client_ip(request)}", limit=10, window_seconds=300)
    if not allowed:
        return HTMLResponse("Too many login attempts. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    user = get_user_by_email(email)
    csrf_cookie = request.cookies.get("csrf_token", "")
    attempts_left = f"<p class='muted'>Attempts left: {remaining}</p>"

    if not user:
        notice = f'<p class="error">Account does not exist for that email.</p>{attempts_left}'
        return render_page("Login", _login_form(csrf_cookie, email, notice), user=None)

    if not verify_password(password, user["password_hash"]):
        notice = f'<p class="error">Incorrect password. Please try again.</p>{attempts_left}'
        return render_page("Login", _login_form(csrf_cookie, email, notice), user=None)

    if user.get("email_verified_at") in (None, ""):
        _issue_verification(request, user)
        body = """
        <div class="card form-card">
          <h2>Verify your email</h2>
          <p class="muted">
            Your account is not verified yet. We have sent a new verification link to your inbox.
          </p>
          <p class="muted"><a href="/verify-email/resend">Resend the link</a></p>
        </div>
        """
        resp = render_page("Verify your email", body, user=None)
        attach_csrf_cookie(resp, issue_csrf_token(request.cookies.get("csrf_token")))
        return resp

    token = create_session(user["id"])
    log.info("User %s logged in", user["id"])
    response = RedirectResponse(url="/dashboard", status_code=303)
    set_session_cookie(response, token)
    return response


@router.get("/logout")
def logout(request: Request):
    _, token = get_current_user(request)
    if token:
        delete_session(token)
    response = RedirectResponse(url="/", status_code=303)
    clear_session_cookie(response)
    return response


@router.get("/password-reset", response_class=HTMLResponse)
def password_reset_request_form(request: Request):
    user, _ = get_current_user(request)
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    body = f"""
    <div class="card form-card">
      <p class="muted">Enter your email to get a password reset link.</p>
      <form method="post" action="/password-reset">
        <label>Email</label>
        <input type="email" name="email" required maxlength="100" />
        <input type="hidden" name="csrf_token" value="{csrf_token}" />
        <button type="submit">Send reset link</button>
      </form>
    </div>
    """
    resp = render_page("Reset password", body, user=user)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/password-reset", response_class=HTMLResponse)
def password_reset_request(request: Request, email: str = Form(..., max_length=100), csrf_token: str = Form("")):
    allowed, remaining = allow_request_with_remaining(
        f"pwdreset:{client_ip(request)}", limit=5, window_seconds=21600
    )
    if not allowed:
        body = """
        <div class="card form-card">
          <p>You have reached the password reset limit (5 per 6 hours).</p>
          <p>Please wait a few hours and try again.</p>
          <p><a href="/login">Back to login</a></p>
        </div>
        """
        return HTMLResponse(body, status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    user = get_user_by_email(email)
    message = "If that email exists, a reset link has been sent."

    # Admin passwords are managed out-of-band
    if user and user.get("role") == "admin":
        message = "Password reset is not available for this account."
        log.info("Blocked password reset for admin user %s", user["id"])
    elif user:
        token = create_password_reset_token(user["id"])
        reset_link = build_public_url(request, f"/password-reset/confirm?token={token}")
        try:
            send_password_reset_email(user["email"], reset_link)
            log.info("Sent password reset link to user %s", user["id"])
        except Exception as exc:
            log.error("Password reset email for user %s failed: %s", user["id"], exc)
            message = "Unable to send the reset email right now. Please try again later."

    body = f"""
    <div class="card form-card">
      <p>{message}</p>
      <p class="muted">You have {remaining} reset attempt(s) left in this 6-hour window.</p>
      <p><a href="/login">Back to login</a></p>
    </div>
    """
    return render_page("Reset password", body, user=None)


_INVALID_RESET = """
<div class="card form-card">
  <p>Reset link is invalid or expired.</p>
  <p><a href="/password-reset">Request a new reset link</a></p>
</div>
"""


def _new_password_form(token: str, csrf_token: str, notice: str = "") -> str:
    return f"""
    <div class="card form-card">
      {notice}
      <p class="muted">Enter a new password (8-64 characters with at least one letter and one number).</p>
      <form method="post" action="/password-reset/confirm?token={esc(token)}">
        <label>New password</label>
        <input type="password" name="password" required maxlength="64" />
        <label>Confirm password</label>
        <input type="password" name="password2" required maxlength="64" />
        <input type="hidden" name="csrf_token" value="{csrf_token}" />
        <button type="submit">Set new password</button>
      </form>
    </div>
    """


@router.get("/password-reset/confirm", response_class=HTMLResponse, name="password_reset_confirm")
def password_reset_confirm_form(request: Request, token: str = ""):
    if not get_password_reset_token(token):
        return render_page("Reset password", _INVALID_RESET, user=None)

    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    resp = render_page("Reset password", _new_password_form(token, csrf_token), user=None)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/password-reset/confirm", response_class=HTMLResponse)
def password_reset_confirm(
    request: Request,
    token: str = "",
    password: str = Form(..., max_length=64),
    password2: str = Form(..., max_length=64),
    csrf_token: str = Form(""),
):
    if not allow_request(f"pwdreset_conf:{client_ip(request)}", limit=5, window_seconds=300):
        return HTMLResponse("Too many attempts. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    token_data = get_password_reset_token(token)
    if not token_data:
        return render_page("Reset password", _INVALID_RESET, user=None)

    problem = ""
    if password != password2:
        problem = "Passwords do not match."
    elif not is_valid_password(password):
        problem = "Password must be 8-64 characters and include at least one letter and one number."
    if problem:
        fresh = issue_csrf_token(request.cookies.get("csrf_token"))
        resp = render_page(
            "Reset password", _new_password_form(token, fresh, f'<p class="error">{problem}</p>'), user=None
        )
        attach_csrf_cookie(resp, fresh)
        return resp

    target_user = get_user_by_id(token_data["user_id"])
    if not target_user:
        return render_page("Reset password", _INVALID_RESET, user=None)

    if target_user.get("role") == "admin":
        body = """
        <div class="card form-card">
          <p>Password reset is not available for this account.</p>
          <p><a href="/login">Back to login</a></p>
        </div>
        """
        return render_page("Reset password", body, user=None)

    update_user_password(target_user["id"], password)
    mark_reset_token_used(token)
    delete_user_sessions(target_user["id"])
    log.info("Password reset completed for user %s", target_user["id"])

    body = """
    <div class="card form-card">
      <p>Password updated. You can now log in.</p>
      <p><a href="/login">Back to login</a></p>
    </div>
    """
    return render_page("Reset password", body, user=None)


@router.get("/verify-email", response_class=HTMLResponse)
def verify_email(request: Request, token: str = ""):
    token_data = get_email_verification_token(token)
    if not token_data:
        body = """
        <div class="card form-card">
          <h2>Verification link invalid</h2>
          <p class="muted">This verification link is invalid or expired.</p>
          <p class="muted"><a href="/verify-email/resend">Send a new link</a></p>
        </div>
        """
        return render_page("Verify email", body, user=None)

    user = get_user_by_id(token_data["user_id"])
    if not user:
        body = """
        <div class="card form-card">
          <h2>Verification failed</h2>
          <p class="muted">Unable to verify this account.</p>
          <p class="muted"><a href="/signup">Back to signup</a></p>
        </div>
        """
        return render_page("Verify email", body, user=None)

    mark_user_email_verified(user["id"])
    mark_email_verification_token_used(token)
    log.info("Email verified for user %s", user["id"])

    session_token = create_session(user["id"])
    resp = RedirectResponse(url="/dashboard", status_code=303)
    set_session_cookie(resp, session_token)
    return resp


@router.get("/verify-email/resend", response_class=HTMLResponse)
def verify_email_resend_form(request: Request):
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    body = f"""
    <div class="card form-card">
      <form method="post" action="/verify-email/resend">
        <label>Email</label>
        <input type="email" name="email" required maxlength="100" />
        <input type="hidden" name="csrf_token" value="{csrf_token}" />
        <button type="submit">Resend</button>
      </form>
    </div>
    """
    resp = render_page("Resend verification email", body, user=None)
    attach_csrf_cookie(resp, csrf_token)
    return resp


@router.post("/verify-email/resend", response_class=HTMLResponse)
def verify_email_resend(request: Request, email: str = Form(..., max_length=100), csrf_token: str = Form("")):
    if not allow_request(f"verify_resend:{client_ip(request)}", limit=3, window_seconds=3600):
        return HTMLResponse("Too many attempts. Please try again later.", status_code=429)

    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    user = get_user_by_email(email)
    if user and user.get("email_verified_at") in (None, ""):
        _issue_verification(request, user)

    body = """
    <div class="card form-card">
      <p>If that email exists and is unverified, a verification link has been sent.</p>
      <p class="muted"><a href="/login">Back to login</a></p>
    </div>
    """
    resp = render_page("Resend verification email", body, user=None)
    attach_csrf_cookie(resp, issue_csrf_token(request.cookies.get("csrf_token")))
    return resp
