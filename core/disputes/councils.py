"""
Best-guess enforcement authority address for a ticket location.

Known councils resolve with high confidence, broad regions with medium, and anything
else falls back to a generic "Local Council" block with the location as the town line.
"""
from __future__ import annotations

from dataclasses import dataclass

UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class CouncilAddress:
    receiver_name: str
    line1: str
    line2: str
    town: str
    county: str
    postcode: str
    confidence: str  # high / medium / low

    def lines(self) -> list[str]:
        return [self.receiver_name, self.line1, self.line2, self.town, self.county, self.postcode]


# (match, excluded-if-contains, address). Order matters: first match wins.
_KNOWN_COUNCILS = (
    ("westminster", None, ("Parking Services", "Westminster City Council", "City Hall", "London", "Greater London", "SW1E 6QP")),
    ("camden", None, ("Parking and Traffic Enforcement", "Camden Council", "Town Hall", "London", "Greater London", "NW1 2RU")),
    ("manchester", "greater manchester", ("Traffic Enforcement", "Manchester City Council", "Town Hall", "Manchester", "Greater Manchester", "M60 2LA")),
    ("birmingham", "west midlands", ("Parking Services", "Birmingham City Council", "Council House", "Birmingham", "West Midlands", "B1 1BB")),
    ("liverpool", None, ("Parking Services", "Liverpool City Council", "Cunard Building", "Liverpool", "Merseyside", "L3 1AH")),
    ("leeds", None, ("Parking Services", "Leeds City Council", "Civic Hall", "Leeds", "West Yorkshire", "LS1 1UR")),
    ("bristol", None, ("Parking Services", "Bristol City Council", "City Hall", "Bristol", "South West England", "BS1 5TR")),
    ("sheffield", None, ("Parking Services", "Sheffield City Council", "Town Hall", "Sheffield", "South Yorkshire", "S1 2HH")),
    ("newcastle", None, ("Parking Services", "Newcastle City Council", "Civic Centre", "Newcastle upon Tyne", "Tyne and Wear", "NE1 8QH")),
    ("nottingham", None, ("Parking Services", "Nottingham City Council", "Loxley House", "Nottingham", "Nottinghamshire", "NG1 5DT")),
)


def lookup_council_address(location: str) -> CouncilAddress:
    location = (location or "").strip()
    lowered = location.lower()

    for needle, excluded, parts in _KNOWN_COUNCILS:
        if needle in lowered and not (excluded and excluded in lowered):
            return CouncilAddress(*parts, confidence="high")

    if "london" in lowered:
        return CouncilAddress(
            "Parking Services", "Local Council", "Parking Department", "London", "Greater London", UNKNOWN, "medium"
        )
    if "greater manchester" in lowered:
        return CouncilAddress(
            "Parking Services", "Local Council", "Parking Department", location, "Greater Manchester", UNKNOWN, "medium"
        )
    if "west midlands" in lowered:
        return CouncilAddress(
            "Parking Services", "Local Council", "Parking Department", location, "West Midlands", UNKNOWN, "medium"
        )

    return CouncilAddress(
        "Parking Services Department", "Local Council", "Civic Centre", location, "United Kingdom", UNKNOWN, "low"
    )


def format_council_address(address: CouncilAddress) -> str:
    """Multi-line block for the letter, without blank or unknown lines."""
    return "\n".join(line for line in address.lines() if line and line.strip() and line != UNKNOWN)


__all__ = ["CouncilAddress", "lookup_council_address", "format_council_address"]
