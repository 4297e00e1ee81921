"""Prometheus instrumentation for the directory and the HTTP layer."""

from __future__ import annotations

from typing import List

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from .directory import UserDirectory
from .errors import (
    DirectoryError,
    EmailExistsError,
    InvalidEmailError,
    InvalidIDError,
    InvalidNameError,
    InvalidRoleError,
    NotFoundError,
)
from .models import User, UserUpdate

_OUTCOMES = {
    NotFoundError: "not_found",
    InvalidIDError: "invalid_id",
    InvalidEmailError: "invalid_email",
    InvalidNameError: "invalid_name",
    InvalidRoleError: "invalid_role",
    EmailExistsError: "duplicate",
}


def _outcome(exc: DirectoryError) -> str:
    return _OUTCOMES.get(type(exc), "error")


class DirectoryMetrics:
    """Collectors describing the size of and traffic to the directory."""

    def __init__(self, registry: CollectorRegistry) -> None:
        self.users_total = Gauge(
            "userdir_users_total",
            "Number of users currently stored in the directory",
            registry=registry,
        )
        self.operations = Counter(
            "userdir_user_operations_total",
            "User directory operations by outcome",
            ["operation", "outcome"],
            registry=registry,
        )


class HTTPMetrics:
    """Request latency, volume, and concurrency collectors."""

    def __init__(self, registry: CollectorRegistry) -> None:
        self.request_duration = Histogram(
            "userdir_http_request_duration_seconds",
            "Duration of HTTP requests",
            ["method", "route", "status"],
            registry=registry,
        )
        self.requests_total = Counter(
            "userdir_http_requests_total",
            "Total number of HTTP requests",
            ["method", "route", "status"],
            registry=registry,
        )
        self.requests_in_flight = Gauge(
            "userdir_http_requests_in_flight",
            "HTTP requests currently being served",
            registry=registry,
        )

    def observe(self, method: str, route: str, status: int, duration: float) -> None:
        labels = (method, route, str(status))
        self.request_duration.labels(*labels).observe(duration)
        self.requests_total.labels(*labels).inc()


class InstrumentedDirectory:
    """Wraps a :class:`UserDirectory` and counts every call by outcome."""

    def __init__(self, directory: UserDirectory, metrics: DirectoryMetrics) -> None:
        self._directory = directory
        self._metrics = metrics
        self._metrics.users_total.set(directory.count())

    def __len__(self) -> int:
        return self._directory.count()

    def count(self) -> int:
        return self._directory.count()

    def get(self, user_id: str) -> User:
        try:
            user = self._directory.get(user_id)
        except DirectoryError as exc:
            self._record("get", _outcome(exc))
            raise
        self._record("get", "success")
        return user

    def list(self) -> List[User]:
        users = self._directory.list()
        self._record("list", "success")
        return users

    def create(self, email: str, name: str) -> User:
        try:
            user = self._directory.create(email, name)
        except DirectoryError as exc:
            self._record("create", _outcome(exc))
            raise
        self._record("create", "success")
        self._metrics.users_total.set(self._directory.count())
        return user

    def update(self, user_id: str, changes: UserUpdate) -> User:
        try:
            user = self._directory.update(user_id, changes)
        except DirectoryError as exc:
            self._record("update", _outcome(exc))
            raise
        self._record("update", "success")
        return user

    def delete(self, user_id: str) -> None:
        try:
            self._directory.delete(user_id)
        except DirectoryError as exc:
            self._record("delete", _outcome(exc))
            raise
        self._record("delete", "success")
        self._metrics.users_total.set(self._directory.count())

    def _record(self, operation: str, outcome: str) -> None:
        self._metrics.operations.labels(operation, outcome).inc()


def render_latest(registry: CollectorRegistry) -> tuple[bytes, str]:
    """Serialise ``registry`` in the Prometheus text exposition format."""

    return generate_latest(registry), CONTENT_TYPE_LATEST


__all__ = [
    "DirectoryMetrics",
    "HTTPMetrics",
    "InstrumentedDirectory",
    "render_latest",
]
