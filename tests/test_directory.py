from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from userdir.directory import UserDirectory, demo_users
from userdir.errors import (
    EmailExistsError,
    InvalidEmailError,
    InvalidIDError,
    InvalidNameError,
    InvalidRoleError,
    NotFoundError,
)
from userdir.models import Role, UserUpdate


@pytest.fixture()
def directory() -> UserDirectory:
    return UserDirectory()


def test_create_then_get_round_trip(directory: UserDirectory) -> None:
    before = datetime.now(timezone.utc)
    created = directory.create("alice@example.com", "Alice")

    fetched = directory.get(created.id)
    assert fetched.email == "alice@example.com"
    assert fetched.name == "Alice"
    assert fetched.role == Role.USER.value
    assert fetched.created_at >= before
    assert fetched == created


def test_create_rejects_duplicate_email_without_growing(directory: UserDirectory) -> None:
    directory.create("a@x.com", "Alice")

    with pytest.raises(EmailExistsError):
        directory.create("a@x.com", "Bob")

    assert directory.count() == 1


def test_email_uniqueness_is_case_sensitive(directory: UserDirectory) -> None:
    directory.create("a@x.com", "Alice")
    directory.create("A@x.com", "Other Alice")

    assert len(directory) == 2


@pytest.mark.parametrize(
    ("email", "name", "error"),
    [
        ("", "Alice", InvalidEmailError),
        ("alice@example.com", "", InvalidNameError),
        ("", "", InvalidEmailError),
    ],
)
def test_create_requires_email_and_name(directory: UserDirectory, email, name, error) -> None:
    with pytest.raises(error):
        directory.create(email, name)
    assert directory.count() == 0


def test_returned_records_are_copies(directory: UserDirectory) -> None:
    created = directory.create("alice@example.com", "Alice")
    created.name = "Mallory"
    created.email = "mallory@example.com"

    fetched = directory.get(created.id)
    fetched.role = Role.ADMIN.value

    listed = directory.list()
    listed[0].name = "Eve"

    updated = directory.update(created.id, UserUpdate(name="Alicia"))
    updated.name = "Changed after update"

    stored = directory.get(created.id)
    assert stored.name == "Alicia"
    assert stored.email == "alice@example.com"
    assert stored.role == Role.USER.value


def test_list_returns_snapshot(directory: UserDirectory) -> None:
    assert directory.list() == []

    first = directory.create("a@example.com", "A")
    second = directory.create("b@example.com", "B")
    snapshot = directory.list()
    directory.delete(first.id)

    assert {user.id for user in snapshot} == {first.id, second.id}
    assert [user.id for user in directory.list()] == [second.id]


def test_invalid_id_is_distinct_from_not_found(directory: UserDirectory) -> None:
    with pytest.raises(InvalidIDError):
        directory.get("")
    with pytest.raises(InvalidIDError):
        directory.update("", UserUpdate(name="x"))
    with pytest.raises(InvalidIDError):
        directory.delete("")

    with pytest.raises(NotFoundError):
        directory.get("usr_404")
    with pytest.raises(NotFoundError):
        directory.update("usr_404", UserUpdate(name="x"))
    with pytest.raises(NotFoundError):
        directory.delete("usr_404")


def test_delete_is_not_idempotent(directory: UserDirectory) -> None:
    user = directory.create("alice@example.com", "Alice")
    directory.delete(user.id)

    with pytest.raises(NotFoundError):
        directory.delete(user.id)


def test_delete_frees_email_for_reuse(directory: UserDirectory) -> None:
    first = directory.create("alice@example.com", "Alice")
    directory.delete(first.id)

    second = directory.create("alice@example.com", "Alice Again")
    assert second.id != first.id


def test_ids_are_never_reused(directory: UserDirectory) -> None:
    issued = set()
    for index in range(5):
        user = directory.create(f"user{index}@example.com", f"User {index}")
        issued.add(user.id)
        directory.delete(user.id)

    user = directory.create("last@example.com", "Last")
    assert user.id not in issued
    assert user.id.startswith("usr_")


def test_empty_update_changes_nothing(directory: UserDirectory) -> None:
    user = directory.create("alice@example.com", "Alice")

    assert directory.update(user.id, UserUpdate()) == user
    assert directory.update(user.id, UserUpdate(name="", email="", role="")) == user
    assert directory.get(user.id) == user


def test_update_applies_changes_but_keeps_created_at(directory: UserDirectory) -> None:
    user = directory.create("alice@example.com", "Alice")

    updated = directory.update(
        user.id,
        UserUpdate(name="Alicia", email="alicia@example.com", role=Role.MODERATOR.value),
    )

    assert updated.id == user.id
    assert updated.name == "Alicia"
    assert updated.email == "alicia@example.com"
    assert updated.role == "moderator"
    assert updated.created_at == user.created_at
    # The old email is released, the new one is taken.
    directory.create("alice@example.com", "New Alice")
    with pytest.raises(EmailExistsError):
        directory.create("alicia@example.com", "Duplicate")


def test_update_to_taken_email_leaves_record_untouched(directory: UserDirectory) -> None:
    directory.create("taken@x.com", "Owner")
    user = directory.create("alice@example.com", "Alice")

    with pytest.raises(EmailExistsError):
        directory.update(user.id, UserUpdate(name="Alicia", email="taken@x.com"))

    stored = directory.get(user.id)
    assert stored.email == "alice@example.com"
    assert stored.name == "Alice"


def test_update_to_own_email_is_allowed(directory: UserDirectory) -> None:
    user = directory.create("alice@example.com", "Alice")

    updated = directory.update(user.id, UserUpdate(email="alice@example.com", name="Alicia"))
    assert updated.email == "alice@example.com"
    assert updated.name == "Alicia"


def test_update_rejects_unknown_role(directory: UserDirectory) -> None:
    user = directory.create("alice@example.com", "Alice")

    with pytest.raises(InvalidRoleError):
        directory.update(user.id, UserUpdate(role="superuser"))
    assert directory.get(user.id).role == "user"


def test_update_of_unknown_user_reports_not_found_before_role(directory: UserDirectory) -> None:
    with pytest.raises(NotFoundError):
        directory.update("usr_404", UserUpdate(role="superuser"))


def test_concrete_lifecycle_scenario(directory: UserDirectory) -> None:
    alice = directory.create("a@x.com", "Alice")
    assert directory.count() == 1

    with pytest.raises(EmailExistsError):
        directory.create("a@x.com", "Bob")
    assert directory.count() == 1

    directory.update(alice.id, UserUpdate(name="Alicia"))
    assert directory.get(alice.id).name == "Alicia"

    directory.delete(alice.id)
    assert directory.count() == 0
    with pytest.raises(NotFoundError):
        directory.get(alice.id)


def test_concurrent_creates_with_same_email_yield_one_record(directory: UserDirectory) -> None:
    workers = 16
    barrier = threading.Barrier(workers)
    successes = []
    conflicts = []
    lock = threading.Lock()

    def attempt(index: int) -> None:
        barrier.wait()
        try:
            user = directory.create("race@example.com", f"Racer {index}")
        except EmailExistsError:
            with lock:
                conflicts.append(index)
        else:
            with lock:
                successes.append(user.id)

    threads = [threading.Thread(target=attempt, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(successes) == 1
    assert len(conflicts) == workers - 1
    assert directory.count() == 1


def test_concurrent_creates_assign_unique_ids(directory: UserDirectory) -> None:
    ids = []
    lock = threading.Lock()

    def create_many(worker: int) -> None:
        for index in range(25):
            user = directory.create(f"w{worker}-{index}@example.com", "Worker")
            with lock:
                ids.append(user.id)

    threads = [threading.Thread(target=create_many, args=(worker,)) for worker in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(ids) == len(set(ids)) == 200
    assert directory.count() == 200


def test_seeded_directory_skips_seeded_ids() -> None:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    directory = UserDirectory(demo_users(now))

    assert directory.count() == 2
    john = directory.get("usr_001")
    assert john.role == "admin"
    assert john.created_at == now - timedelta(hours=24)

    created = directory.create("new@example.com", "New")
    assert created.id == "usr_003"

    with pytest.raises(EmailExistsError):
        directory.create("jane.smith@example.com", "Jane Again")


def test_seed_rejects_duplicate_emails() -> None:
    users = demo_users()
    users[1].email = users[0].email

    with pytest.raises(EmailExistsError):
        UserDirectory(users)


def test_clock_is_used_for_created_at() -> None:
    fixed = datetime(2030, 5, 17, 12, 0, tzinfo=timezone.utc)
    directory = UserDirectory(clock=lambda: fixed)

    assert directory.create("a@example.com", "A").created_at == fixed
