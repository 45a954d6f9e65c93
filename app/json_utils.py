"""
Request-body dependencies for the JSON API routes.

The bodies are read in async dependencies so the route handlers themselves can stay
plain `def` functions and run in the threadpool alongside their blocking I/O.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field

from fastapi import Request
from fastapi.responses import JSONResponse


@dataclass
class JsonBody:
    data: dict = field(default_factory=dict)
    error: JSONResponse | None = None


def _bad(error: str, message: str) -> JSONResponse:
    return JSONResponse({"error": error, "message": message}, status_code=400)


async def json_object_body(request: Request) -> JsonBody:
    """The body parsed as a JSON object, or the 400 response to send instead."""
    raw = await request.body()
    if not raw.strip():
        return JsonBody(error=_bad("Empty request body", "Request body is required"))
    try:
        data = json.loads(raw)
    except ValueError:
        return JsonBody(error=_bad("Invalid JSON", "Request body must be valid JSON"))
    if not isinstance(data, dict):
        return JsonBody(error=_bad("Invalid JSON", "Request body must be a JSON object"))
    return JsonBody(data=data)


async def raw_body(request: Request) -> bytes:
    return await request.body()


def invalid_field(name: str, expected: str) -> JSONResponse:
    return _bad("Invalid field", f"{name} must be {expected}")


__all__ = ["JsonBody", "json_object_body", "raw_body", "invalid_field"]
