"""HTTP middleware stack for the user directory API."""

from __future__ import annotations

import logging
import math
import re
import secrets
import time
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .config import Settings
from .log import bind_request_id, reset_request_id
from .metrics import HTTPMetrics
from .ratelimit import RateLimiter
from .responses import error_response
from .stats import StatsService

logger = logging.getLogger("userdir.http")

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"
RATE_LIMITED_PREFIX = "/api/v1"

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:-]{1,128}$")
_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}

CallNext = Callable[[Request], Awaitable[Response]]


def pick_request_id(request: Request) -> str:
    """Reuse a well-formed client supplied id, otherwise mint a new one."""

    for header in (REQUEST_ID_HEADER, CORRELATION_ID_HEADER):
        candidate = (request.headers.get(header) or "").strip()
        if candidate:
            if _REQUEST_ID_PATTERN.fullmatch(candidate):
                return candidate
            break
    return secrets.token_hex(16)


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def _client_key(request: Request) -> str:
    client = request.client
    return client.host if client and client.host else "unknown"


def build_rate_limiter(settings: Settings) -> Optional[RateLimiter]:
    """Return a limiter for ``settings`` or ``None`` when limiting is off."""

    if not settings.rate_limit_enabled:
        return None
    if (
        settings.rate_limit_requests < 1
        or not math.isfinite(settings.rate_limit_period)
        or settings.rate_limit_period <= 0
    ):
        logger.error(
            "Invalid rate limit configuration; disabling rate limiting",
            extra={
                "rate_limit_requests": settings.rate_limit_requests,
                "rate_limit_period": settings.rate_limit_period,
            },
        )
        return None
    return RateLimiter(settings.rate_limit_requests, settings.rate_limit_period)


def install_middleware(
    app: FastAPI,
    settings: Settings,
    *,
    stats: StatsService,
    http_metrics: HTTPMetrics,
    rate_limiter: Optional[RateLimiter],
) -> None:
    """Register the middleware stack; the first one registered runs innermost.

    CORS wraps the rate and body limits so preflights are never counted and
    rejections still carry the CORS headers.
    """

    if rate_limiter is not None:

        @app.middleware("http")
        async def rate_limit(request: Request, call_next: CallNext) -> Response:
            if not request.url.path.startswith(RATE_LIMITED_PREFIX):
                return await call_next(request)

            decision = rate_limiter.hit(_client_key(request))
            headers = {
                "X-RateLimit-Limit": str(decision.limit),
                "X-RateLimit-Remaining": str(decision.remaining),
            }
            if not decision.allowed:
                logger.warning("Rate limit exceeded for %s", _client_key(request))
                headers["Retry-After"] = str(decision.retry_after)
                return error_response(
                    request,
                    status.HTTP_429_TOO_MANY_REQUESTS,
                    "rate_limited",
                    "Rate limit exceeded",
                    headers=headers,
                )

            response = await call_next(request)
            response.headers.update(headers)
            return response

    body_limit = settings.body_limit_bytes

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next: CallNext) -> Response:
        if body_limit > 0:
            declared = request.headers.get("content-length")
            if declared is not None:
                try:
                    length = int(declared)
                except ValueError:
                    return error_response(
                        request,
                        status.HTTP_400_BAD_REQUEST,
                        "invalid_request",
                        "Invalid Content-Length header",
                    )
                if length > body_limit:
                    return error_response(
                        request,
                        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        "payload_too_large",
                        f"Request body exceeds {body_limit} bytes",
                    )
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allowed_origins),
        allow_methods=list(settings.cors_allowed_methods),
        allow_headers=list(settings.cors_allowed_headers),
        expose_headers=["Link", REQUEST_ID_HEADER],
        allow_credentials=False,
        max_age=300,
    )
    if settings.is_production and "*" in settings.cors_allowed_origins:
        logger.warning("CORS allows all origins in production; consider restricting allowed origins")

    app.add_middleware(
        GZipMiddleware,
        minimum_size=settings.gzip_min_size,
        compresslevel=settings.compression_level,
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        for header, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    @app.middleware("http")
    async def access_log(request: Request, call_next: CallNext) -> Response:
        start = time.perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        stats.connection_opened()
        http_metrics.requests_in_flight.inc()
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start
            http_metrics.requests_in_flight.dec()
            stats.connection_closed()
            stats.record_request(duration, status_code)
            http_metrics.observe(request.method, _route_template(request), status_code, duration)
            logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": status_code,
                    "duration_ms": round(duration * 1000, 3),
                },
            )

    @app.middleware("http")
    async def request_id(request: Request, call_next: CallNext) -> Response:
        rid = pick_request_id(request)
        request.state.request_id = rid
        token = bind_request_id(rid)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response

    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=list(settings.trusted_proxies))


__all__ = [
    "CORRELATION_ID_HEADER",
    "REQUEST_ID_HEADER",
    "build_rate_limiter",
    "install_middleware",
    "pick_request_id",
]
