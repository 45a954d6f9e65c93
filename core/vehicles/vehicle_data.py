"""
Vehicle Data Global lookups and the flattened "full" history report.
"""
from __future__ import annotations

import logging
import os
from datetime import date
from typing import Optional

import httpx

from core.vehicles.errors import API_ERROR, CONFIGURATION_ERROR, INVALID_FORMAT, VehicleApiError, network_error
from core.vehicles.registration import clean_registration

log = logging.getLogger("vehicles.data")

ENDPOINTS = {
    "basic": "VehicleData/Basic",
    "mot": "VehicleData/MOT",
    "technical": "VehicleData/Technical",
    "valuation": "VehicleData/Valuation",
    "full": "r2/lookup",
}

FULL_REPORT_PACKAGE = "VDICheck"

# Placeholder bands until a live valuation source is wired in.
PLACEHOLDER_VALUATION = {
    "retail": {"excellent": 8500, "good": 7800, "average": 7200},
    "trade": {"clean": 6500, "average": 6000, "below": 5500},
    "private": {"excellent": 7800, "good": 7200, "average": 6800},
}

RISK_DESCRIPTIONS = {
    "low": "No major issues detected",
    "medium": "Some issues found",
    "high": "Critical issues found",
}


class VehicleDataClient:
    BASE_URL = "https://uk.api.vehicledataglobal.com/"
    TIMEOUT = 20.0

    def __init__(self, api_key: str | None = None, client: httpx.Client | None = None):
        self.api_key = api_key or os.getenv("VEHICLE_DATA_API_KEY", "")
        self.client = client or httpx.Client(timeout=self.TIMEOUT)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def lookup(self, registration: str, data_type: str = "basic") -> dict:
        """
        Fetch one data package for a registration. The "full" package is flattened
        by transform_full_report; the others are returned as the provider sends them.
        """
        endpoint = ENDPOINTS.get(data_type)
        if endpoint is None:
            raise ValueError(f"Supported values: {', '.join(ENDPOINTS)}")
        if not self.api_key:
            raise VehicleApiError(CONFIGURATION_ERROR, "VEHICLE_DATA_API_KEY not set in environment variables", 500)

        reg = clean_registration(registration)
        if not reg:
            raise VehicleApiError(INVALID_FORMAT, "Field 'registration' is required", 400)

        params = {"ApiKey": self.api_key}
        if data_type == "full":
            params.update({"PackageName": FULL_REPORT_PACKAGE, "Vrm": reg})
        else:
            params["registration"] = reg

        try:
            response = self.client.get(
                self.BASE_URL + endpoint,
                params=params,
                headers={"x-api-key": self.api_key, "Accept": "application/json"},
                timeout=self.TIMEOUT,
            )
        except httpx.RequestError as exc:
            log.error("Vehicle data request (%s) failed for %s: %s", data_type, reg, exc)
            raise network_error("vehicle data provider") from exc

        log.info("Vehicle data response (%s) for %s: HTTP %s", data_type, reg, response.status_code)
        if not response.text.strip():
            raise VehicleApiError(API_ERROR, "The external API returned no content", 502)
        try:
            payload = response.json()
        except ValueError as exc:
            raise VehicleApiError(API_ERROR, "Failed to parse vehicle data response", 502) from exc

        if not response.is_success:
            message = payload.get("message") if isinstance(payload, dict) else None
            raise VehicleApiError(API_ERROR, message or "Failed to fetch data", response.status_code)

        if data_type == "full":
            return transform_full_report(payload)
        return payload


def _due_in_future(value: Optional[str], today: date) -> bool:
    if not value:
        return False
    try:
        return date.fromisoformat(str(value)[:10]) > today
    except ValueError:
        return False


def assess_risk(
    is_stolen: bool,
    write_off_category: Optional[str],
    has_write_off: bool,
    has_outstanding_finance: bool,
    has_mileage_discrepancy: bool,
) -> dict:
    level = "low"
    alerts = []

    if is_stolen:
        level = "high"
        alerts.append("Vehicle reported as stolen")
    if has_write_off:
        if write_off_category in ("A", "B"):
            level = "high"
        elif level != "high":
            level = "medium"
        alerts.append(f"Write-off: Category {write_off_category or 'unknown'}")
    if has_outstanding_finance:
        if level != "high":
            level = "medium"
        alerts.append("Outstanding finance found")
    if has_mileage_discrepancy:
        if level != "high":
            level = "medium"
        alerts.append("Mileage discrepancy detected")

    return {"level": level, "alerts": alerts, "description": RISK_DESCRIPTIONS[level]}


def transform_full_report(data: dict, today: Optional[date] = None) -> dict:
    today = today or date.today()
    try:
        results = data.get("Results") or {}
        vehicle = results.get("VehicleDetails") or {}
        ident = vehicle.get("VehicleIdentification") or {}
        history = vehicle.get("VehicleHistory") or {}
        status = vehicle.get("VehicleStatus") or {}
        duty = status.get("VehicleExciseDutyDetails")
        technical = vehicle.get("DvlaTechnicalDetails") or {}
        mot = results.get("MotHistoryDetails") or {}
        finance = results.get("FinanceDetails") or {}
        mileage = results.get("MileageCheckDetails") or {}
        write_offs = (results.get("MiaftrDetails") or {}).get("WriteOffRecordList") or []
        pnc = results.get("PncDetails") or {}

        is_stolen = bool(pnc.get("IsStolen"))
        has_write_off = len(write_offs) > 0
        write_off_category = write_offs[0].get("Category") if has_write_off else None
        has_finance = len(finance.get("FinanceRecordList") or []) > 0
        has_mileage_discrepancy = bool(mileage.get("MileageAnomalyDetected"))

        return {
            "registration": ident.get("Vrm"),
            "make": ident.get("DvlaMake"),
            "model": ident.get("DvlaModel"),
            "color": (history.get("ColourDetails") or {}).get("CurrentColour"),
            "yearOfManufacture": ident.get("YearOfManufacture"),
            "engineSize": technical.get("EngineCapacityCc"),
            "fuelType": ident.get("DvlaFuelType"),
            "motStatus": {
                "isValid": _due_in_future(mot.get("MotDueDate"), today),
                "dueDate": mot.get("MotDueDate"),
                "lastTestDate": mot.get("LatestTestDate"),
            },
            "taxStatus": {
                "isValid": bool(duty),
                "co2Emissions": (duty or {}).get("DvlaCo2"),
            },
            "valuation": PLACEHOLDER_VALUATION,
            "history": {
                "isStolen": is_stolen,
                "isWriteOff": has_write_off,
                "writeOffCategory": write_off_category,
                "hasOutstandingFinance": has_finance,
                "hasMileageDiscrepancy": has_mileage_discrepancy,
                "mileageHistory": mileage.get("MileageResultList") or [],
                "keeperChanges": history.get("KeeperChangeList") or [],
                "plateChanges": history.get("PlateChangeList") or [],
            },
            "riskAssessment": assess_risk(
                is_stolen, write_off_category, has_write_off, has_finance, has_mileage_discrepancy
            ),
        }
    except (AttributeError, TypeError, IndexError) as exc:
        log.error("Failed to transform full vehicle report: %s", exc)
        try:
            vrm = data["Results"]["VehicleDetails"]["VehicleIdentification"]["Vrm"]
        except (KeyError, TypeError):
            vrm = None
        return {"registration": vrm or "Unknown", "error": "Failed to parse full report"}


__all__ = [
    "ENDPOINTS",
    "PLACEHOLDER_VALUATION",
    "RISK_DESCRIPTIONS",
    "VehicleDataClient",
    "assess_risk",
    "transform_full_report",
]
