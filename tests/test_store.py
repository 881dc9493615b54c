# tests/test_store.py

from datetime import datetime

import pytest

import store
from errors import DuplicateKey, StoreError
from models import Task, User


def make_user(name="Ann", email="ann@example.com", pending=None) -> User:
    return store.users.insert(User(name=name, email=email, pending_tasks=pending or []))


def make_task(name="t", completed=False, assigned_user="") -> Task:
    return store.tasks.insert(Task(
        name=name,
        deadline=datetime(2030, 1, 1),
        completed=completed,
        assigned_user=assigned_user,
    ))


def test_insert_assigns_object_id_and_defaults(app) -> None:
    task = make_task()
    assert len(task.id) == 24
    assert task.description == ""
    assert task.assigned_user_name == "unassigned"
    assert task.date_created is not None
    assert store.tasks.find_by_id(task.id) is task


def test_find_by_id_with_malformed_id_is_absent(app) -> None:
    assert store.tasks.find_by_id("bad-id") is None
    assert store.tasks.find_by_id("f" * 24) is None


def test_duplicate_email_raises_duplicate_key(app) -> None:
    make_user(email="same@example.com")
    with pytest.raises(DuplicateKey):
        make_user(name="Other", email="same@example.com")
    # the session is usable again after the rollback
    assert store.users.count() == 1


def test_add_to_set_and_pull_are_idempotent(app) -> None:
    user = make_user(pending=["a" * 24])
    where = {"_id": user.id}

    assert store.users.update_many(where, {"$addToSet": {"pendingTasks": "b" * 24}}) == 1
    store.users.update_many(where, {"$addToSet": {"pendingTasks": "b" * 24}})
    assert store.users.find_by_id(user.id).pending_tasks == ["a" * 24, "b" * 24]

    store.users.update_many(where, {"$pull": {"pendingTasks": "a" * 24}})
    store.users.update_many(where, {"$pull": {"pendingTasks": "a" * 24}})
    assert store.users.find_by_id(user.id).pending_tasks == ["b" * 24]


def test_pull_in_from_every_other_user(app) -> None:
    shared = "c" * 24
    keeper = make_user(email="k@example.com", pending=[shared])
    other = make_user(email="o@example.com", pending=[shared, "d" * 24])
    untouched = make_user(email="u@example.com", pending=["e" * 24])

    matched = store.users.update_many(
        {"_id": {"$ne": keeper.id}, "pendingTasks": {"$in": [shared]}},
        {"$pull": {"pendingTasks": {"$in": [shared]}}},
    )

    assert matched == 1
    assert store.users.find_by_id(keeper.id).pending_tasks == [shared]
    assert store.users.find_by_id(other.id).pending_tasks == ["d" * 24]
    assert store.users.find_by_id(untouched.id).pending_tasks == ["e" * 24]


def test_set_is_a_bulk_update(app) -> None:
    owner = "9" * 24
    first, second = make_task("a", assigned_user=owner), make_task("b", assigned_user=owner)
    make_task("c")

    matched = store.tasks.update_many(
        {"assignedUser": owner},
        {"$set": {"assignedUser": "", "assignedUserName": "unassigned"}},
    )

    assert matched == 2
    assert store.tasks.count({"assignedUser": ""}) == 3
    assert store.tasks.find_by_id(first.id).assigned_user == ""
    assert store.tasks.find_by_id(second.id).assigned_user_name == "unassigned"


def test_find_sort_skip_limit_and_count(app) -> None:
    for name in ("c", "a", "d", "b"):
        make_task(name)

    names = [t.name for t in store.tasks.find(sort={"name": 1}, skip=1, limit=2)]
    assert names == ["b", "c"]
    assert [t.name for t in store.tasks.find(sort={"name": -1}, limit=1)] == ["d"]
    assert store.tasks.count(skip=1, limit=2) == 2
    assert store.tasks.count(skip=3) == 1


def test_delete_by_id_returns_removed_document(app) -> None:
    task = make_task(assigned_user="1" * 24)
    removed = store.tasks.delete_by_id(task.id)
    assert removed["_id"] == task.id
    assert removed["assignedUser"] == "1" * 24
    assert store.tasks.delete_by_id(task.id) is None


def test_list_membership_filter(app) -> None:
    tid = "7" * 24
    owner = make_user(email="m@example.com", pending=[tid])
    make_user(email="n@example.com")
    assert [u.id for u in store.users.find({"pendingTasks": tid})] == [owner.id]
    assert store.users.count({"pendingTasks": {"$nin": [tid]}}) == 1


def test_other_constraint_failures_are_not_duplicate_keys(app) -> None:
    with pytest.raises(StoreError) as exc_info:
        store.tasks.insert(Task(name=None, deadline=datetime(2030, 1, 1)))
    assert not isinstance(exc_info.value, DuplicateKey)
    assert store.tasks.count() == 0
