"""
DVLA Vehicle Enquiry and Full Driver Enquiry API client, plus helpers that read its payloads.
"""
from __future__ import annotations

import logging
import os
from datetime import date
from typing import Optional

import httpx

from core.vehicles.errors import (
    CONFIGURATION_ERROR,
    INVALID_FORMAT,
    VehicleApiError,
    network_error,
    provider_json,
    raise_for_provider_status,
)
from core.vehicles.registration import (
    clean_licence_number,
    clean_registration,
    is_valid_licence_number,
    is_valid_registration,
)

log = logging.getLogger("vehicles.dvla")

_VEHICLE_MESSAGES = {
    400: "Invalid request - check registration number format",
    403: "Access forbidden - check API key",
    404: "Vehicle not found in DVLA database",
    429: "Rate limit exceeded - please try again later",
    500: "DVLA service temporarily unavailable",
    503: "DVLA service maintenance - please try again later",
}

_DRIVER_MESSAGES = {
    400: "Invalid request - check license number format",
    401: "Unauthorized - check API key",
    403: "Access forbidden - insufficient permissions",
    404: "License not found in DVLA database",
    429: "Rate limit exceeded - please try again later",
    500: "DVLA service temporarily unavailable",
    503: "DVLA service maintenance - please try again later",
}


class DVLAClient:
    """Client for the DVLA vehicle and driver enquiry services."""

    VEHICLE_URL = "https://driver-vehicle-licensing.api.gov.uk/vehicle-enquiry/v1/vehicles"
    DRIVER_URL = "https://driver-vehicle-licensing.api.gov.uk/full-driver-enquiry/v1/driving-licences/retrieve"
    TIMEOUT = 10.0

    def __init__(
        self,
        api_key: str | None = None,
        driver_api_key: str | None = None,
        client: httpx.Client | None = None,
    ):
        self.api_key = api_key or os.getenv("DVLA_VEHICLE_API_KEY", "")
        self.driver_api_key = driver_api_key or os.getenv("DVLA_DRIVER_API_KEY") or self.api_key
        self.client = client or httpx.Client(timeout=self.TIMEOUT)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def get_vehicle(self, registration: str) -> dict:
        """Tax, MOT status and headline details for a registration."""
        reg = clean_registration(registration)
        if not is_valid_registration(reg):
            raise VehicleApiError(INVALID_FORMAT, "Invalid UK registration number format", 400)
        if not self.api_key:
            raise VehicleApiError(CONFIGURATION_ERROR, "DVLA vehicle enquiry API key not configured", 500)

        try:
            response = self.client.post(
                self.VEHICLE_URL,
                json={"registrationNumber": reg},
                headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
                timeout=self.TIMEOUT,
            )
        except httpx.RequestError as exc:
            log.error("DVLA vehicle enquiry failed for %s: %s", reg, exc)
            raise network_error("DVLA service") from exc

        raise_for_provider_status(response, _VEHICLE_MESSAGES)
        return provider_json(response, "DVLA service")

    def get_driver(
        self,
        licence_number: str,
        include_cpc: bool = False,
        include_tacho: bool = False,
        accept_partial_response: bool = False,
    ) -> dict:
        number = clean_licence_number(licence_number)
        if not is_valid_licence_number(number):
            raise VehicleApiError(INVALID_FORMAT, "Invalid UK driving license number format", 400)
        if not self.driver_api_key:
            raise VehicleApiError(CONFIGURATION_ERROR, "DVLA driver enquiry API key not configured", 500)

        try:
            response = self.client.post(
                self.DRIVER_URL,
                json={
                    "drivingLicenceNumber": number,
                    "includeCPC": include_cpc,
                    "includeTacho": include_tacho,
                    "acceptPartialResponse": "true" if accept_partial_response else "false",
                },
                headers={
                    "Authorization": f"Bearer {self.driver_api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self.TIMEOUT,
            )
        except httpx.RequestError as exc:
            log.error("DVLA driver enquiry failed: %s", exc)
            raise network_error("DVLA service") from exc

        raise_for_provider_status(response, _DRIVER_MESSAGES)
        return provider_json(response, "DVLA service")


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def is_tax_valid(vehicle: dict, today: Optional[date] = None) -> bool:
    if vehicle.get("taxStatus") != "Taxed":
        return False
    due = _parse_date(vehicle.get("taxDueDate"))
    return due is None or due > (today or date.today())


def is_mot_valid(vehicle: dict, today: Optional[date] = None) -> bool:
    if vehicle.get("motStatus") != "Valid":
        return False
    expiry = _parse_date(vehicle.get("motExpiryDate"))
    return expiry is None or expiry > (today or date.today())


def vehicle_age(vehicle: dict, today: Optional[date] = None) -> Optional[int]:
    year = vehicle.get("yearOfManufacture")
    if not year:
        return None
    return (today or date.today()).year - int(year)


def is_licence_valid(driver: dict, today: Optional[date] = None) -> bool:
    if (driver.get("licence") or {}).get("status") != "Valid":
        return False
    valid_to = _parse_date((driver.get("token") or {}).get("validToDate"))
    return bool(valid_to and valid_to > (today or date.today()))


def has_valid_entitlement(driver: dict, category_code: str, today: Optional[date] = None) -> bool:
    for entitlement in driver.get("entitlement") or []:
        if entitlement.get("categoryCode") == category_code:
            expiry = _parse_date(entitlement.get("expiryDate"))
            return bool(expiry and expiry > (today or date.today()))
    return False


def total_penalty_points(driver: dict) -> int:
    return sum(int(e.get("penaltyPoints") or 0) for e in driver.get("endorsements") or [])


def driver_age(driver: dict, today: Optional[date] = None) -> Optional[int]:
    born = _parse_date((driver.get("driver") or {}).get("dateOfBirth"))
    if not born:
        return None
    today = today or date.today()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


__all__ = [
    "DVLAClient",
    "is_tax_valid",
    "is_mot_valid",
    "vehicle_age",
    "is_licence_valid",
    "has_valid_entitlement",
    "total_penalty_points",
    "driver_age",
]
