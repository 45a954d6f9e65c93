"""
Dispute letter form validation.
"""
from __future__ import annotations

import re
from typing import Dict

from email_validator import EmailNotValidError, validate_email

from core.disputes.catalog import DISPUTE_REASONS, OFFENSES_BY_NAME, SERVICE_LEVELS_BY_KEY
from core.disputes.letter_generator import DisputeForm

_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


def is_valid_email(email: str) -> bool:
    email = (email or "").strip()
    if not email or not _EMAIL_RE.fullmatch(email):
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_dispute_form(form: DisputeForm) -> Dict[str, str]:
    """
    Return field -> message for every problem, in the order the form shows them.
    An empty dict means the form can be priced and turned into a letter.
    """
    errors: Dict[str, str] = {}

    if not form.selected_offenses:
        errors["selected_offenses"] = "Please select at least one offense type"
    elif any(name not in OFFENSES_BY_NAME for name in form.selected_offenses):
        errors["selected_offenses"] = "Please choose offense types from the list"

    if not (form.ticket_number or "").strip():
        errors["ticket_number"] = "Please enter the ticket number"
    if not (form.issue_date or "").strip():
        errors["issue_date"] = "Please select the issue date"
    if not (form.location or "").strip():
        errors["location"] = "Please enter the location"
    if not (form.vehicle_reg or "").strip():
        errors["vehicle_reg"] = "Please enter the vehicle registration"
    if not (form.amount or "").strip():
        errors["amount"] = "Please enter the penalty amount"

    if not form.reason:
        errors["reason"] = "Please select a reason for dispute"
    elif form.reason not in DISPUTE_REASONS:
        errors["reason"] = "Please select a reason from the list"

    if not (form.evidence or "").strip() and form.image_count <= 0:
        errors["evidence"] = "Please provide some evidence or details about your case"

    if not (form.name or "").strip():
        errors["name"] = "Please enter your full name"
    if not (form.address or "").strip():
        errors["address"] = "Please enter your address"
    if not (form.email or "").strip():
        errors["email"] = "Please enter your email address"
    elif not is_valid_email(form.email):
        errors["email"] = "Please enter a valid email address"

    if form.service_level not in SERVICE_LEVELS_BY_KEY:
        errors["service_level"] = "Please choose a service level"

    return errors


__all__ = ["is_valid_email", "validate_dispute_form"]
