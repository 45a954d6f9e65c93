"""
DVSA MOT History API client (OAuth2 client-credentials) and test-history summaries.
"""
from __future__ import annotations

import logging
import os
import time
from typing import List, Optional

import httpx

from core.vehicles.errors import (
    CONFIGURATION_ERROR,
    INVALID_FORMAT,
    OAUTH_ERROR,
    VehicleApiError,
    network_error,
    provider_json,
    raise_for_provider_status,
)
from core.vehicles.registration import clean_registration, is_valid_registration

log = logging.getLogger("vehicles.mot")

_OAUTH_MESSAGES = {
    400: "Invalid OAuth request - check client credentials",
    401: "Unauthorized - check client ID and secret",
    403: "Access forbidden - insufficient permissions",
    500: "OAuth service temporarily unavailable",
}

_HISTORY_MESSAGES = {
    400: "Invalid request - check registration number format",
    401: "Unauthorized - authentication failed",
    403: "Access forbidden - insufficient permissions",
    404: "MOT history not found for this vehicle",
    429: "Rate limit exceeded - please try again later",
    500: "MOT History service temporarily unavailable",
    503: "MOT History service maintenance - please try again later",
}

# Refresh the token this many seconds before the provider says it expires.
TOKEN_EXPIRY_MARGIN = 60


class MOTHistoryClient:
    TOKEN_TIMEOUT = 10.0
    HISTORY_TIMEOUT = 15.0

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        api_key: str | None = None,
        scope_url: str | None = None,
        token_url: str | None = None,
        base_url: str | None = None,
        client: httpx.Client | None = None,
        clock=time.monotonic,
    ):
        self.client_id = client_id or os.getenv("DVLA_MOT_CLIENT_ID", "")
        self.client_secret = client_secret or os.getenv("DVLA_MOT_CLIENT_SECRET", "")
        self.api_key = api_key or os.getenv("DVLA_MOT_API_KEY", "")
        self.scope_url = scope_url or os.getenv("DVLA_MOT_SCOPE_URL", "")
        self.token_url = token_url or os.getenv("DVLA_MOT_TOKEN_URL", "")
        self.base_url = (base_url or os.getenv("DVLA_MOT_HISTORY_API_BASE_URL", "")).rstrip("/")
        self.client = client or httpx.Client(timeout=self.HISTORY_TIMEOUT)
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def _access_token(self) -> str:
        if self._token and self._token_expires_at > self._clock():
            return self._token

        if not (self.client_id and self.client_secret and self.token_url and self.scope_url):
            raise VehicleApiError(
                CONFIGURATION_ERROR,
                "MOT History API credentials not configured. Please check your environment variables.",
                401,
            )

        try:
            response = self.client.post(
                self.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": self.scope_url,
                },
                timeout=self.TOKEN_TIMEOUT,
            )
        except httpx.RequestError as exc:
            log.error("MOT OAuth token request failed: %s", exc)
            raise network_error("OAuth service") from exc

        raise_for_provider_status(response, _OAUTH_MESSAGES, error=OAUTH_ERROR, default="Failed to obtain OAuth token")
        payload = provider_json(response, "OAuth service", error=OAUTH_ERROR)
        token = payload.get("access_token")
        if not token or not isinstance(token, str):
            raise VehicleApiError(OAUTH_ERROR, "OAuth service returned no access token", 502)
        try:
            expires_in = float(payload.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0.0
        self._token = token
        self._token_expires_at = self._clock() + expires_in - TOKEN_EXPIRY_MARGIN
        return self._token

    def get_history(self, registration: str) -> dict:
        reg = clean_registration(registration)
        if not is_valid_registration(reg):
            raise VehicleApiError(INVALID_FORMAT, "Invalid UK registration number format", 400)

        token = self._access_token()
        if not self.base_url:
            raise VehicleApiError(CONFIGURATION_ERROR, "MOT History API base URL not configured", 500)

        try:
            response = self.client.get(
                f"{self.base_url}/{reg}",
                headers={
                    "Authorization": f"Bearer {token}",
                    "x-api-key": self.api_key or self.client_id,
                    "Accept": "application/json",
                },
                timeout=self.HISTORY_TIMEOUT,
            )
        except httpx.RequestError as exc:
            log.error("MOT history request failed for %s: %s", reg, exc)
            raise network_error("MOT History service") from exc

        raise_for_provider_status(response, _HISTORY_MESSAGES)
        return provider_json(response, "MOT History service")


def _tests(history: dict) -> List[dict]:
    # Newest first; completedDate is ISO so string order is date order.
    return sorted(history.get("motTests") or [], key=lambda t: t.get("completedDate") or "", reverse=True)


def summarize_history(history: dict) -> dict:
    tests = _tests(history)
    latest = tests[0] if tests else None
    passed = [t for t in tests if (t.get("testResult") or "").upper() == "PASSED"]
    dangerous = sum(
        1 for t in tests for d in (t.get("defects") or []) if d.get("dangerous")
    )
    return {
        "test_count": len(tests),
        "pass_count": len(passed),
        "fail_count": len(tests) - len(passed),
        "latest_result": latest.get("testResult") if latest else None,
        "latest_expiry": latest.get("expiryDate") if latest else None,
        "dangerous_defects": dangerous,
        "mileage": mileage_readings(history),
    }


def mileage_readings(history: dict) -> List[dict]:
    """Odometer readings oldest first, flagging any reading lower than the previous one."""
    readings = []
    previous = None
    for test in reversed(_tests(history)):
        raw = test.get("odometerValue")
        try:
            value = int(raw)
        except (TypeError, ValueError):
            continue
        readings.append(
            {
                "date": (test.get("completedDate") or "")[:10],
                "value": value,
                "unit": test.get("odometerUnit") or "mi",
                "rollback": previous is not None and value < previous,
            }
        )
        previous = value
    return readings


__all__ = ["MOTHistoryClient", "summarize_history", "mileage_readings", "TOKEN_EXPIRY_MARGIN"]
