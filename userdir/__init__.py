"""In-memory user directory and the HTTP API that serves it."""

from __future__ import annotations

from typing import Any

from .directory import UserDirectory, demo_users
from .errors import (
    DirectoryError,
    EmailExistsError,
    InvalidEmailError,
    InvalidIDError,
    InvalidNameError,
    InvalidRoleError,
    NotFoundError,
)
from .models import Role, User, UserUpdate


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the FastAPI application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "DirectoryError",
    "EmailExistsError",
    "InvalidEmailError",
    "InvalidIDError",
    "InvalidNameError",
    "InvalidRoleError",
    "NotFoundError",
    "Role",
    "User",
    "UserDirectory",
    "UserUpdate",
    "create_app",
    "demo_users",
]
