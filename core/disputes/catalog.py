"""
Offense types, service tiers and dispute reasons offered on the dispute letter form.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class OffenseType:
    name: str
    category: str  # minor / moderate / serious
    base_price: Decimal


@dataclass(frozen=True)
class ServiceLevel:
    key: str
    title: str
    multiplier: Decimal
    features: tuple[str, ...]


OFFENSE_TYPES: tuple[OffenseType, ...] = (
    OffenseType("Parking Ticket", "minor", Decimal("19.99")),
    OffenseType("Bus Lane Violation", "minor", Decimal("19.99")),
    OffenseType("Congestion Charge", "minor", Decimal("19.99")),
    OffenseType("Speeding (Minor)", "moderate", Decimal("49.99")),
    OffenseType("Red Light Violation", "moderate", Decimal("49.99")),
    OffenseType("Moving Traffic Violation", "moderate", Decimal("0.50")),
    OffenseType("Speeding (Serious)", "serious", Decimal("99.99")),
    OffenseType("Dangerous Driving", "serious", Decimal("99.99")),
    OffenseType("Driving Without Insurance", "serious", Decimal("99.99")),
    OffenseType("Other Traffic Violation", "serious", Decimal("19.99")),
)

OFFENSES_BY_NAME = {o.name: o for o in OFFENSE_TYPES}

# Price when nothing (or nothing recognised) is selected.
DEFAULT_BASE_PRICE = Decimal("19.99")

SERVICE_LEVELS: tuple[ServiceLevel, ...] = (
    ServiceLevel(
        "standard",
        "Standard Dispute Letter",
        Decimal("1.0"),
        (
            "Professional dispute letter template",
            "Basic legal grounds",
            "Standard formatting",
            "Email delivery",
        ),
    ),
    ServiceLevel(
        "advanced",
        "Advanced Dispute Letter",
        Decimal("1.8"),
        (
            "Everything in Standard",
            "Case strength analysis",
            "Tailored legal references",
            "Evidence recommendations",
        ),
    ),
    ServiceLevel(
        "premium",
        "Premium Dispute Letter",
        Decimal("2.3"),
        (
            "Everything in Advanced",
            "Council address lookup",
            "Priority review by our team",
            "Postal dispatch quote",
        ),
    ),
)

SERVICE_LEVELS_BY_KEY = {s.key: s for s in SERVICE_LEVELS}

# Display order matters: the form lists reasons in this order.
DISPUTE_REASONS: tuple[str, ...] = (
    "Signage unclear or missing",
    "Payment made but not registered",
    "Vehicle breakdown",
    "Medical emergency",
    "Incorrect vehicle details",
    "Ticket issued incorrectly",
    "Vehicle not in violation",
    "Mitigating circumstances",
    "Let Us Decide",
    "Other",
)

# Published historical success rates (%) per reason.
SUCCESS_RATES = {
    "Signage unclear or missing": 78,
    "Payment made but not registered": 85,
    "Incorrect vehicle details": 92,
    "Medical emergency": 65,
    "Vehicle breakdown": 58,
    "Ticket issued incorrectly": 72,
    "Vehicle not in violation": 68,
    "Mitigating circumstances": 45,
    "Other": 35,
    "Let Us Decide": 75,
}


def success_rate_for(reason: str) -> int | None:
    return SUCCESS_RATES.get(reason)


__all__ = [
    "OffenseType",
    "ServiceLevel",
    "OFFENSE_TYPES",
    "OFFENSES_BY_NAME",
    "DEFAULT_BASE_PRICE",
    "SERVICE_LEVELS",
    "SERVICE_LEVELS_BY_KEY",
    "DISPUTE_REASONS",
    "SUCCESS_RATES",
    "success_rate_for",
]
