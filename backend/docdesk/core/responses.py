from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class ResponseEnvelope(BaseModel):
    data: Any | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
    error: ErrorBody | None = None


def build_meta(request: Request | None = None, pagination: dict[str, Any] | None = None) -> dict[str, Any]:
    meta: dict[str, Any] = {
        "server_time": datetime.now(timezone.utc).isoformat(),
    }
    if request is not None:
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            meta["request_id"] = request_id
    if pagination:
        meta["pagination"] = pagination
    return meta


def success_response(data: Any, request: Request | None = None, pagination: dict[str, Any] | None = None) -> dict[str, Any]:
    envelope = ResponseEnvelope(data=jsonable_encoder(data), meta=build_meta(request, pagination), error=None)
    return envelope.model_dump()


def error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    request: Request | None = None,
) -> dict[str, Any]:
    envelope = ResponseEnvelope(
        data=None,
        meta=build_meta(request),
        error=ErrorBody(code=code, message=message, details=jsonable_encoder(details) if details else None),
    )
    return envelope.model_dump()


def format_validation_errors(errors: Iterable[Mapping[str, Any]]) -> list[dict[str, str]]:
    """Reduce pydantic errors to field, message and type."""
    return [
        {
            "field": ".".join(str(part) for part in item.get("loc", ())),
            "message": str(item.get("msg", "")),
            "type": str(item.get("type", "")),
        }
        for item in errors
    ]
