"""
Print-and-post quote for sending a finished letter to the council.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Optional

CHARACTERS_PER_PAGE = 500


@dataclass(frozen=True)
class PostalOption:
    id: str
    name: str
    description: str
    price: Decimal


POSTAGE_OPTIONS: Dict[str, tuple[PostalOption, ...]] = {
    "postage": (
        PostalOption("uk_first_class", "UK First Class", "Next working day delivery", Decimal("0.75")),
        PostalOption("uk_second_class", "UK Second Class", "2-3 working days delivery", Decimal("0.65")),
        PostalOption("uk_recorded", "UK Recorded Delivery", "Tracked delivery with signature", Decimal("1.85")),
        PostalOption("uk_special", "UK Special Delivery", "Guaranteed next day by 1pm", Decimal("6.85")),
    ),
    "paper": (
        PostalOption("standard_white", "Standard White", "80gsm white paper", Decimal("0.05")),
        PostalOption("premium_white", "Premium White", "100gsm premium white paper", Decimal("0.08")),
        PostalOption("letterhead", "Letterhead Paper", "Professional letterhead design", Decimal("0.15")),
    ),
    "envelope": (
        PostalOption("standard_dl", "Standard DL", "Standard DL envelope", Decimal("0.03")),
        PostalOption("window_dl", "Window DL", "DL envelope with window", Decimal("0.04")),
        PostalOption("premium_c5", "Premium C5", "Premium C5 envelope", Decimal("0.06")),
    ),
    "extras": (
        PostalOption("none", "No Extras", "Standard service", Decimal("0")),
        PostalOption("recorded", "Recorded Delivery", "Proof of delivery", Decimal("1.10")),
        PostalOption("signed_for", "Signed For", "Signature required", Decimal("1.55")),
    ),
}


def _find(category: str, option_id: Optional[str]) -> Optional[PostalOption]:
    for option in POSTAGE_OPTIONS[category]:
        if option.id == option_id:
            return option
    return None


def estimate_pages(content: str) -> int:
    return max(1, math.ceil(len(content or "") / CHARACTERS_PER_PAGE))


def calculate_postage(
    postage: Optional[str] = "uk_first_class",
    paper: Optional[str] = "standard_white",
    envelope: Optional[str] = "standard_dl",
    extras: Iterable[str] = (),
    pages: int = 1,
) -> dict:
    """
    Total cost and per-category breakdown. Unknown option ids contribute nothing;
    paper is charged per page.
    """
    breakdown = {"postage": Decimal("0"), "paper": Decimal("0"), "envelope": Decimal("0"), "extras": Decimal("0")}

    option = _find("postage", postage)
    if option:
        breakdown["postage"] = option.price
    option = _find("paper", paper)
    if option:
        breakdown["paper"] = option.price * max(1, int(pages or 1))
    option = _find("envelope", envelope)
    if option:
        breakdown["envelope"] = option.price
    for extra_id in extras or ():
        option = _find("extras", extra_id)
        if option:
            breakdown["extras"] += option.price

    total = sum(breakdown.values(), Decimal("0")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return {"total": total, "breakdown": breakdown, "currency": "GBP"}


__all__ = ["PostalOption", "POSTAGE_OPTIONS", "estimate_pages", "calculate_postage"]
