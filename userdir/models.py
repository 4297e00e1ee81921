"""Domain models for the in-memory user directory."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Roles a directory record may hold."""

    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"


DEFAULT_ROLE = Role.USER


@dataclass
class User:
    """A single user record held by the directory.

    Instances handed out by :class:`~userdir.directory.UserDirectory` are
    copies; changing one never changes the stored record.
    """

    id: str
    email: str
    name: str
    role: str
    created_at: datetime


@dataclass(frozen=True)
class UserUpdate:
    """Sparse set of changes applied by :meth:`UserDirectory.update`.

    ``None`` and the empty string both mean "leave unchanged", so a field can
    never be cleared through an update.
    """

    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.name or self.email or self.role)


__all__ = ["DEFAULT_ROLE", "Role", "User", "UserUpdate"]
