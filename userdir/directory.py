"""Thread-safe in-memory user directory."""

from __future__ import annotations

import itertools
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set

from .errors import (
    EmailExistsError,
    InvalidEmailError,
    InvalidIDError,
    InvalidNameError,
    InvalidRoleError,
    NotFoundError,
)
from .models import DEFAULT_ROLE, Role, User, UserUpdate

_ID_PREFIX = "usr_"
_VALID_ROLES = frozenset(role.value for role in Role)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalise_role(role: str | Role) -> str:
    value = role.value if isinstance(role, Role) else role
    if value not in _VALID_ROLES:
        raise InvalidRoleError()
    return value


def demo_users(now: Optional[datetime] = None) -> List[User]:
    """Return the demo accounts the service can be seeded with."""

    now = now or _utcnow()
    return [
        User(
            id="usr_001",
            email="john.doe@example.com",
            name="John Doe",
            role=Role.ADMIN.value,
            created_at=now - timedelta(hours=24),
        ),
        User(
            id="usr_002",
            email="jane.smith@example.com",
            name="Jane Smith",
            role=Role.USER.value,
            created_at=now - timedelta(hours=48),
        ),
    ]


class UserDirectory:
    """Owns every user record and enforces id and email uniqueness.

    A single lock covers both the record map and the email index, so the
    uniqueness check and the write that follows it can never interleave with
    another writer. Every record leaving the directory is a copy.
    """

    def __init__(
        self,
        users: Iterable[User] | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._lock = threading.Lock()
        self._users: Dict[str, User] = {}
        self._emails: Dict[str, str] = {}
        self._sequence = itertools.count(1)
        self._seeded_ids: Set[str] = set()
        self._clock = clock
        for user in users or ():
            self._seed(user)

    def __len__(self) -> int:
        return self.count()

    def count(self) -> int:
        with self._lock:
            return len(self._users)

    def get(self, user_id: str) -> User:
        """Return a copy of the record stored under ``user_id``."""

        if not user_id:
            raise InvalidIDError()

        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError()
            return replace(user)

    def list(self) -> List[User]:
        """Return copies of every live record, in no particular order."""

        with self._lock:
            return [replace(user) for user in self._users.values()]

    def create(self, email: str, name: str) -> User:
        """Insert a new record with a fresh id and the default role."""

        if not email:
            raise InvalidEmailError()
        if not name:
            raise InvalidNameError()

        with self._lock:
            if email in self._emails:
                raise EmailExistsError()

            user = User(
                id=self._next_id_locked(),
                email=email,
                name=name,
                role=DEFAULT_ROLE.value,
                created_at=self._clock(),
            )
            self._users[user.id] = user
            self._emails[email] = user.id
            return replace(user)

    def update(self, user_id: str, changes: UserUpdate) -> User:
        """Apply the non-empty fields of ``changes`` to an existing record."""

        if not user_id:
            raise InvalidIDError()

        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError()
            if changes.is_empty():
                return replace(user)

            role = _normalise_role(changes.role) if changes.role else None
            new_email = changes.email if changes.email and changes.email != user.email else None
            if new_email is not None and new_email in self._emails:
                raise EmailExistsError()

            if changes.name:
                user.name = changes.name
            if new_email is not None:
                del self._emails[user.email]
                user.email = new_email
                self._emails[new_email] = user.id
            if role is not None:
                user.role = role
            return replace(user)

    def delete(self, user_id: str) -> None:
        """Remove a record and release its email for reuse."""

        if not user_id:
            raise InvalidIDError()

        with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                raise NotFoundError()
            del self._emails[user.email]

    def _seed(self, user: User) -> None:
        if not user.id:
            raise InvalidIDError()
        if not user.email:
            raise InvalidEmailError()
        if not user.name:
            raise InvalidNameError()
        if user.id in self._users:
            raise ValueError(f"Duplicate user id '{user.id}' in seed data")
        if user.email in self._emails:
            raise EmailExistsError()

        record = replace(user, role=_normalise_role(user.role or DEFAULT_ROLE))
        self._users[record.id] = record
        self._emails[record.email] = record.id
        self._seeded_ids.add(record.id)

    def _next_id_locked(self) -> str:
        # The sequence only moves forward, so deleted ids are never handed out again.
        while True:
            candidate = f"{_ID_PREFIX}{next(self._sequence):03d}"
            if candidate not in self._seeded_ids:
                return candidate


__all__ = ["UserDirectory", "demo_users"]
