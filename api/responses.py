"""
api/responses.py -- Build JSON envelope responses.

Routes return JSONResponse objects (rather than model instances) so they can
attach or clear cookies on the same object, as the login route must. respond()
serializes the data model by alias so the wire is camelCase and drops None
fields so optional keys are absent rather than null.
"""

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    return value


def envelope(
    success: bool,
    message: str | None = None,
    data: Any = None,
    errors: list[dict] | None = None,
) -> dict:
    body: dict[str, Any] = {"success": success}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = _dump(data)
    if errors is not None:
        body["errors"] = errors
    return body


def respond(data: Any = None, message: str | None = None, status_code: int = 200) -> JSONResponse:
    """Return a success envelope."""
    return JSONResponse(status_code=status_code, content=envelope(True, message, data))


def fail(message: str, status_code: int, errors: list[dict] | None = None) -> JSONResponse:
    """Return an error envelope."""
    return JSONResponse(status_code=status_code, content=envelope(False, message, errors=errors))
