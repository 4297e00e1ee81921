"""Errors raised by the user directory."""

from __future__ import annotations


class DirectoryError(Exception):
    """Base class for every failure reported by the user directory."""

    code = "directory_error"
    status_code = 500
    default_message = "User directory error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self.args[0])


class InvalidIDError(DirectoryError, ValueError):
    code = "invalid_id"
    status_code = 400
    default_message = "User ID is required"


class NotFoundError(DirectoryError, LookupError):
    code = "not_found"
    status_code = 404
    default_message = "User not found"


class InvalidEmailError(DirectoryError, ValueError):
    code = "invalid_email"
    status_code = 400
    default_message = "Invalid email address"


class InvalidNameError(DirectoryError, ValueError):
    code = "invalid_name"
    status_code = 400
    default_message = "Name is required"


class InvalidRoleError(DirectoryError, ValueError):
    code = "invalid_role"
    status_code = 400
    default_message = "Role must be one of: user, admin, moderator"


class EmailExistsError(DirectoryError):
    code = "duplicate_email"
    status_code = 409
    default_message = "Email already exists"


__all__ = [
    "DirectoryError",
    "EmailExistsError",
    "InvalidEmailError",
    "InvalidIDError",
    "InvalidNameError",
    "InvalidRoleError",
    "NotFoundError",
]
