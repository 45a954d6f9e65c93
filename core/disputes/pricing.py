"""
Dispute letter pricing: the most expensive selected offense sets the base price,
the service tier scales it.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable

from core.disputes.catalog import (
    DEFAULT_BASE_PRICE,
    OFFENSES_BY_NAME,
    SERVICE_LEVELS,
    SERVICE_LEVELS_BY_KEY,
)

PENNY = Decimal("0.01")
COMPREHENSIVE_REPORT_PRICE = Decimal("24.99")


def base_price(offenses: Iterable[str]) -> Decimal:
    prices = [OFFENSES_BY_NAME[name].base_price for name in offenses if name in OFFENSES_BY_NAME]
    return max(prices) if prices else DEFAULT_BASE_PRICE


def calculate_price(offenses: Iterable[str], service_level: str = "standard") -> Decimal:
    level = SERVICE_LEVELS_BY_KEY.get(service_level)
    if level is None:
        raise ValueError(f"Unknown service level: {service_level}")
    return (base_price(offenses) * level.multiplier).quantize(PENNY, rounding=ROUND_HALF_UP)


def price_table(offenses: Iterable[str]) -> Dict[str, Decimal]:
    """Price of every tier for the same selection, in tier order."""
    selected = list(offenses)
    return {level.key: calculate_price(selected, level.key) for level in SERVICE_LEVELS}


def to_minor_units(amount: Decimal) -> int:
    """Pounds to pence, as Stripe expects."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def product_name(service_level: str) -> str:
    return f"Dispute Letter - {service_level.capitalize()}"


def format_gbp(amount: Decimal) -> str:
    return f"£{Decimal(amount).quantize(PENNY, rounding=ROUND_HALF_UP)}"


__all__ = [
    "COMPREHENSIVE_REPORT_PRICE",
    "base_price",
    "calculate_price",
    "price_table",
    "to_minor_units",
    "product_name",
    "format_gbp",
]
