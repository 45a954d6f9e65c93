"""
Small SMTP helpers and the transactional emails built on them.
"""
from __future__ import annotations

import logging
import os
import smtplib
from email.mime.text import MIMEText

log = logging.getLogger("email")

BRAND = "AutoAudit"


def build_public_url(request, path: str) -> str:
    base = (os.getenv("PUBLIC_BASE_URL") or str(request.base_url)).rstrip("/")
    return f"{base}{path}"


def _effective_from(email_from: str | None, email_user: str | None, smtp_server: str) -> str:
    # Gmail rewrites or blocks a From that differs from the login.
    if "gmail" in (smtp_server or "").lower() and email_user:
        return email_user
    return email_from or email_user or "noreply@autoaudit.net"


def send_text_email(to_email: str, subject: str, body: str) -> None:
    email_user = os.getenv("EMAIL_USER")
    email_password = os.getenv("EMAIL_PASSWORD")
    email_from = os.getenv("EMAIL_FROM")
    smtp_server = os.getenv("SMTP_SERVER", "smtp.gmail.com")
    smtp_port = int(os.getenv("SMTP_PORT", "587"))

    if not (email_user and email_password):
        raise RuntimeError("Email credentials not configured. Set EMAIL_USER and EMAIL_PASSWORD.")

    msg = MIMEText(body)
    msg["Subject"] = subject
    msg["From"] = _effective_from(email_from, email_user, smtp_server)
    msg["To"] = to_email

    with smtplib.SMTP(smtp_server, smtp_port) as server:
        server.starttls()
        server.login(email_user, email_password)
        server.sendmail(msg["From"], [to_email], msg.as_string())
    log.info("Sent '%s' to %s", subject, to_email)


def send_verification_email(to_email: str, verify_link: str) -> None:
    send_text_email(
        to_email=to_email,
        subject=f"Verify your email - {BRAND}",
        body=f"Please verify your email by clicking this link:\n\n{verify_link}\n\nThis link expires in 24 hours.",
    )


def send_password_reset_email(to_email: str, reset_link: str) -> None:
    send_text_email(
        to_email=to_email,
        subject=f"Reset your password - {BRAND}",
        body=(
            f"Use this link to reset your password:\n\n{reset_link}\n\n"
            "The link expires in 60 minutes. If you did not request this, ignore the email."
        ),
    )


def send_dispute_letter_email(letter: dict, view_link: str) -> None:
    """Payment receipt with the finished letter inline."""
    to_email = letter.get("customer_email")
    if not to_email:
        return
    body = (
        f"Hello {letter.get('customer_name') or ''},\n\n"
        f"Thank you for your order ({letter.get('product_name')}, £{letter.get('price')}).\n"
        f"Your dispute letter for PCN {letter.get('ticket_number')} is below and can also be viewed "
        f"or downloaded here:\n\n{view_link}\n\n"
        "Send it to the issuing council before the appeal deadline shown on your ticket.\n\n"
        "----------------------------------------\n\n"
        f"{letter.get('letter_content') or ''}\n"
    )
    send_text_email(to_email, f"Your dispute letter - {BRAND}", body)
