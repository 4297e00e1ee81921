"""Consistent JSON error envelope for every failure the API returns.

Error responses look like::

    {
        "error": "duplicate_email",
        "message": "Email already exists",
        "fields": {"email": "value is not a valid email address"},
        "request_id": "4f1c..."
    }

``fields`` is only present for validation failures and ``request_id`` echoes
the id assigned by the request-id middleware.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any, Dict, Mapping, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("userdir.responses")


class APIError(StarletteHTTPException):
    """HTTP error carrying a stable machine-readable code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        *,
        fields: Optional[Mapping[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code = code
        self.fields = dict(fields) if fields else None


def _request_id(request: Request) -> Optional[str]:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    return request.headers.get("X-Request-ID") or request.headers.get("X-Correlation-ID")


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    *,
    fields: Optional[Mapping[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"error": code, "message": message}
    if fields:
        body["fields"] = dict(fields)
    request_id = _request_id(request)
    if request_id:
        body["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _default_code(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase.lower().replace(" ", "_")
    except ValueError:
        return "error"


def _field_name(location: tuple) -> str:
    parts = [str(part) for part in location if part not in ("body", "query", "path")]
    return ".".join(parts) or "body"


def _validation_fields(exc: RequestValidationError) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for error in exc.errors():
        fields.setdefault(_field_name(tuple(error.get("loc", ()))), error.get("msg", "invalid value"))
    return fields


def _is_malformed_body(exc: RequestValidationError) -> bool:
    return any(error.get("type") in {"json_invalid", "model_attributes_type"} for error in exc.errors())


def register_exception_handlers(app: FastAPI) -> None:
    """Render API, HTTP, and validation errors using the shared envelope."""

    @app.exception_handler(APIError)
    async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
        return error_response(
            request,
            exc.status_code,
            exc.code,
            str(exc.detail),
            fields=exc.fields,
            headers=exc.headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(
            request,
            exc.status_code,
            _default_code(exc.status_code),
            str(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        if _is_malformed_body(exc):
            return error_response(
                request,
                status.HTTP_400_BAD_REQUEST,
                "invalid_request",
                "Invalid JSON",
            )
        fields = _validation_fields(exc)
        logger.info("Request validation failed", extra={"fields": fields})
        return error_response(
            request,
            status.HTTP_400_BAD_REQUEST,
            "validation_error",
            "Validation failed",
            fields=fields,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        return error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "Internal server error",
        )


__all__ = ["APIError", "error_response", "register_exception_handlers"]
