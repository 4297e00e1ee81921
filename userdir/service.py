"""HTTP API exposing the in-memory user directory."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Dict, List, Optional, Union

from email_validator import EmailNotValidError, validate_email
from fastapi import FastAPI, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from prometheus_client import CollectorRegistry
from pydantic import AfterValidator, BaseModel, Field, field_validator

from .config import Settings, load_settings
from .directory import UserDirectory, demo_users
from .errors import DirectoryError
from .metrics import DirectoryMetrics, HTTPMetrics, InstrumentedDirectory, render_latest
from .middleware import build_rate_limiter, install_middleware
from .models import Role, User, UserUpdate
from .ratelimit import RateLimiter
from .responses import APIError, register_exception_handlers
from .stats import StatsService

logger = logging.getLogger("userdir.service")

API_NAME = "userdir"
API_VERSION = "1.0.0"

Directory = Union[UserDirectory, InstrumentedDirectory]


def _check_email_syntax(value: str) -> str:
    """Validate the address but keep it exactly as the client sent it."""

    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError(f"value is not a valid email address: {exc}") from exc
    return value


EmailAddress = Annotated[str, AfterValidator(_check_email_syntax)]


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    created_at: datetime


class UserListResponse(BaseModel):
    users: List[UserResponse]
    count: int


class CreateUserRequest(BaseModel):
    email: EmailAddress
    name: str = Field(..., min_length=1, max_length=100)


class UpdateUserRequest(BaseModel):
    """Partial update; omitted, null, and empty fields are left unchanged."""

    email: Optional[EmailAddress] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    role: Optional[Role] = None

    @field_validator("email", "name", "role", mode="before")
    @classmethod
    def _blank_means_unchanged(cls, value: object) -> object:
        if isinstance(value, str) and value == "":
            return None
        return value

    def to_update(self) -> UserUpdate:
        return UserUpdate(
            name=self.name,
            email=self.email,
            role=self.role.value if self.role is not None else None,
        )


class EchoRequest(BaseModel):
    message: str = Field(..., min_length=1)


class EchoResponse(BaseModel):
    message: str


class RootResponse(BaseModel):
    name: str
    version: str
    docs: str
    status: str


class SystemStatsResponse(BaseModel):
    uptime_seconds: float
    memory_usage_mb: Optional[float]
    threads: int
    cpus: int
    python_version: str
    platform: str


class APIStatsResponse(BaseModel):
    total_requests: int
    requests_per_min: float
    average_latency_ms: float
    error_rate: float
    active_connections: int


def _user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        created_at=user.created_at,
    )


def _directory_error(exc: DirectoryError) -> APIError:
    return APIError(exc.status_code, exc.code, exc.message)


def register_system_routes(
    app: FastAPI,
    directory: Directory,
    *,
    registry: CollectorRegistry,
) -> None:
    """Root, health, readiness, metrics, and documentation aliases."""

    @app.get("/", response_model=RootResponse)
    async def root() -> RootResponse:
        logger.info("Root endpoint accessed")
        return RootResponse(name=API_NAME, version=API_VERSION, docs="/docs", status="healthy")

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/readyz")
    async def readiness() -> Dict[str, object]:
        return {"status": "ready", "users": directory.count()}

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        payload, content_type = render_latest(registry)
        return Response(content=payload, media_type=content_type)

    @app.get("/api-docs", include_in_schema=False)
    async def api_docs() -> RedirectResponse:
        return RedirectResponse(url="/docs", status_code=status.HTTP_307_TEMPORARY_REDIRECT)


def register_api_routes(app: FastAPI, directory: Directory, stats: StatsService) -> None:
    """Expose the versioned JSON API on the provided FastAPI application."""

    @app.get("/api/v1/ping")
    async def ping() -> Dict[str, str]:
        return {"pong": "ok"}

    @app.post("/api/v1/echo", response_model=EchoResponse)
    async def echo(request: EchoRequest) -> EchoResponse:
        return EchoResponse(message=request.message)

    @app.get("/api/v1/users", response_model=UserListResponse)
    async def list_users() -> UserListResponse:
        users = directory.list()
        return UserListResponse(users=[_user_to_response(user) for user in users], count=len(users))

    @app.post(
        "/api/v1/users",
        status_code=status.HTTP_201_CREATED,
        response_model=UserResponse,
    )
    async def create_user(request: CreateUserRequest) -> UserResponse:
        try:
            user = directory.create(request.email, request.name)
        except DirectoryError as exc:
            raise _directory_error(exc) from exc

        logger.info("User %s created", user.id, extra={"user_id": user.id, "email": user.email})
        return _user_to_response(user)

    @app.get("/api/v1/users/{user_id}", response_model=UserResponse)
    async def get_user(user_id: str) -> UserResponse:
        try:
            user = directory.get(user_id)
        except DirectoryError as exc:
            logger.debug("Lookup of user %s failed: %s", user_id, exc.code)
            raise _directory_error(exc) from exc
        return _user_to_response(user)

    @app.api_route(
        "/api/v1/users/{user_id}",
        methods=["PUT", "PATCH"],
        response_model=UserResponse,
    )
    async def update_user(user_id: str, request: UpdateUserRequest) -> UserResponse:
        try:
            user = directory.update(user_id, request.to_update())
        except DirectoryError as exc:
            raise _directory_error(exc) from exc

        logger.info("User %s updated", user.id, extra={"user_id": user.id})
        return _user_to_response(user)

    @app.delete("/api/v1/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_user(user_id: str) -> Response:
        try:
            directory.delete(user_id)
        except DirectoryError as exc:
            raise _directory_error(exc) from exc

        logger.info("User %s deleted", user_id, extra={"user_id": user_id})
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/api/v1/stats/system", response_model=SystemStatsResponse)
    async def system_stats() -> SystemStatsResponse:
        return SystemStatsResponse(**stats.system_stats())

    @app.get("/api/v1/stats/api", response_model=APIStatsResponse)
    async def api_stats() -> APIStatsResponse:
        return APIStatsResponse(**stats.api_stats())


def register_test_routes(app: FastAPI) -> None:
    """Debug helpers that are never mounted in production."""

    test_logger = logging.getLogger("userdir.test")

    @app.get("/test/logs")
    async def test_logs(
        request: Request,
        debug: bool = True,
        info: bool = True,
        warn: bool = True,
        error: bool = True,
        count: int = Query(default=1),
    ) -> Dict[str, object]:
        if not 1 <= count <= 10:
            count = 1

        emitted = 0
        for iteration in range(1, count + 1):
            context = {"iteration": iteration, "path": request.url.path}
            if debug:
                test_logger.debug("Test debug log", extra=context)
                emitted += 1
            if info:
                test_logger.info("Test info log", extra=context)
                emitted += 1
            if warn:
                test_logger.warning("Test warning log", extra=context)
                emitted += 1
            if error:
                test_logger.error("Test error log", extra=context)
                emitted += 1

        return {
            "message": f"Emitted {emitted} test log entries",
            "parameters": {
                "debug": debug,
                "info": info,
                "warn": warn,
                "error": error,
                "count": count,
            },
            "usage": "/test/logs?debug=false&info=true&warn=true&error=false&count=3",
        }


def create_app(
    *,
    settings: Settings | None = None,
    directory: UserDirectory | None = None,
    stats: StatsService | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the user directory."""

    app_settings = settings or load_settings()

    store = directory
    if store is None:
        store = UserDirectory(demo_users() if app_settings.seed_demo_users else None)

    registry = CollectorRegistry()
    instrumented = InstrumentedDirectory(store, DirectoryMetrics(registry))
    http_metrics = HTTPMetrics(registry)
    app_stats = stats or StatsService()
    limiter = rate_limiter or build_rate_limiter(app_settings)

    app = FastAPI(
        title="User Directory API",
        version=API_VERSION,
        description="CRUD API over an in-memory, concurrency-safe user directory.",
    )

    app.state.settings = app_settings
    app.state.directory = instrumented
    app.state.stats = app_stats
    app.state.metrics_registry = registry
    app.state.rate_limiter = limiter

    register_exception_handlers(app)
    install_middleware(
        app,
        app_settings,
        stats=app_stats,
        http_metrics=http_metrics,
        rate_limiter=limiter,
    )
    register_system_routes(app, instrumented, registry=registry)
    register_api_routes(app, instrumented, app_stats)

    if app_settings.is_production:
        logger.info("Test routes disabled in production environment")
    else:
        register_test_routes(app)

    return app


__all__ = ["create_app"]
