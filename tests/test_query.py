# tests/test_query.py

import json

import pytest

from errors import BadRequest, NotFound
from models import Task, User
from query import apply_projection, compile_filter, compile_sort, parse_query, run_query

VALID_ID = "a" * 24


def args(**params):
    return {key: json.dumps(value) if isinstance(value, dict) else value for key, value in params.items()}


def test_defaults_use_collection_limit() -> None:
    spec = parse_query({}, default_limit=100)
    assert spec.where == {} and spec.sort == {} and spec.select == {}
    assert spec.skip == 0
    assert spec.limit == 100
    assert spec.count is False


def test_zero_limit_means_collection_default() -> None:
    assert parse_query({"limit": "0"}, default_limit=100).limit == 100
    assert parse_query({"limit": "5"}, default_limit=100).limit == 5
    assert parse_query({}, default_limit=0).limit == 0


def test_count_flag_only_for_literal_true() -> None:
    assert parse_query({"count": "true"}).count is True
    assert parse_query({"count": "1"}).count is False


@pytest.mark.parametrize("params", [
    {"where": "{not json"},
    {"sort": "[1, 2]"},
    {"select": '"name"'},
    {"skip": "abc"},
    {"skip": "-1"},
    {"limit": "ten"},
    {"sort": '{"name": 2}'},
    {"sort": '{"name": {"x": 1}}'},
    {"select": '{"name": 1, "email": 0}'},
])
def test_malformed_parameters_are_bad_requests(params) -> None:
    with pytest.raises(BadRequest) as exc_info:
        parse_query(params)
    assert exc_info.value.status_code == 400


def test_malformed_ids_are_dropped_from_in_filter() -> None:
    spec = parse_query(args(where={"_id": {"$in": ["bad-id", VALID_ID]}}))
    assert spec.where["_id"]["$in"] == [VALID_ID]
    assert spec.empty is False


def test_in_filter_with_only_malformed_ids_short_circuits() -> None:
    spec = parse_query(args(where={"_id": {"$in": ["bad-id", "also bad"]}}))
    assert spec.empty is True
    assert run_query(None, spec, "Task not found") == []

    spec = parse_query(args(where={"_id": {"$in": ["bad-id"]}}, count="true"))
    assert run_query(None, spec, "Task not found") == 0


def test_malformed_scalar_id_is_not_found() -> None:
    spec = parse_query(args(where={"_id": "bad-id"}))
    assert spec.single_id is True
    with pytest.raises(NotFound):
        run_query(None, spec, "Task not found")


def test_inclusion_projection_keeps_id_unless_excluded() -> None:
    doc = {"_id": VALID_ID, "name": "n", "email": "e"}
    assert apply_projection(doc, {"name": 1}) == {"_id": VALID_ID, "name": "n"}
    assert apply_projection(doc, {"name": 1, "_id": 0}) == {"name": "n"}


def test_exclusion_projection_drops_listed_fields() -> None:
    doc = {"_id": VALID_ID, "name": "n", "email": "e"}
    assert apply_projection(doc, {"email": 0}) == {"_id": VALID_ID, "name": "n"}
    assert apply_projection(doc, {}) is doc


def test_filter_compiles_operators() -> None:
    clauses = compile_filter(Task, {
        "completed": False,
        "assignedUser": {"$ne": ""},
        "deadline": {"$gte": "2030-01-01T00:00:00Z", "$lt": 1900000000000},
        "_id": {"$nin": [VALID_ID]},
    })
    assert len(clauses) == 5


def test_filter_on_list_field_uses_membership() -> None:
    (clause,) = compile_filter(User, {"pendingTasks": VALID_ID})
    assert "LIKE" in str(clause).upper()


@pytest.mark.parametrize("where", [
    {"owner": "x"},
    {"completed": {"$regex": "x"}},
    {"completed": "maybe"},
    {"deadline": {"$gt": "next tuesday"}},
    {"_id": {"$in": "not-a-list"}},
    {"pendingTasks": {"$gt": VALID_ID}},
])
def test_bad_filters_are_bad_requests(where) -> None:
    model = User if "pendingTasks" in where else Task
    with pytest.raises(BadRequest):
        compile_filter(model, where)


def test_sort_rejects_unknown_and_list_fields() -> None:
    assert len(compile_sort(Task, {"name": 1, "deadline": "desc"})) == 2
    with pytest.raises(BadRequest):
        compile_sort(Task, {"priority": 1})
    with pytest.raises(BadRequest):
        compile_sort(User, {"pendingTasks": 1})
