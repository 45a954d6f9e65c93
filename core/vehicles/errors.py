"""
Error type shared by the vehicle data provider clients.
"""
from __future__ import annotations

import logging
from typing import Mapping

import httpx

log = logging.getLogger("vehicles")

INVALID_FORMAT = "INVALID_FORMAT"
CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
OAUTH_ERROR = "OAUTH_ERROR"
API_ERROR = "API_ERROR"
NETWORK_ERROR = "NETWORK_ERROR"
UNKNOWN_ERROR = "UNKNOWN_ERROR"


class VehicleApiError(Exception):
    """A provider call failed; carries a machine code, a user-facing message and an HTTP status."""

    def __init__(self, error: str, message: str, status_code: int = 500):
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message, "statusCode": self.status_code}


def status_message(status: int, messages: Mapping[int, str], default: str = "Unknown error occurred") -> str:
    return messages.get(status, default)


def raise_for_provider_status(
    response: httpx.Response,
    messages: Mapping[int, str],
    error: str = API_ERROR,
    default: str = "Unknown error occurred",
) -> None:
    """Turn a non-2xx provider response into a VehicleApiError with the provider-specific message."""
    if response.is_success:
        return
    log.warning("Provider %s returned %s", response.request.url.host, response.status_code)
    raise VehicleApiError(error, status_message(response.status_code, messages, default), response.status_code)


def network_error(service: str) -> VehicleApiError:
    return VehicleApiError(NETWORK_ERROR, f"Unable to connect to {service}", 503)


def provider_json(response: httpx.Response, service: str, error: str = API_ERROR) -> dict:
    """JSON object from a 2xx provider reply; an empty or unparseable body is a 502."""
    if not response.text.strip():
        raise VehicleApiError(error, f"{service} returned no content", 502)
    try:
        payload = response.json()
    except ValueError as exc:
        log.warning("Unparseable reply from %s: %s", response.request.url.host, exc)
        raise VehicleApiError(error, f"Failed to parse {service} response", 502) from exc
    if not isinstance(payload, dict):
        raise VehicleApiError(error, f"Unexpected {service} response", 502)
    return payload


__all__ = [
    "INVALID_FORMAT",
    "CONFIGURATION_ERROR",
    "OAUTH_ERROR",
    "API_ERROR",
    "NETWORK_ERROR",
    "UNKNOWN_ERROR",
    "VehicleApiError",
    "status_message",
    "raise_for_provider_status",
    "network_error",
    "provider_json",
]
