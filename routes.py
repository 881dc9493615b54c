from flask import Blueprint, current_app, request

import consistency
import store
from errors import BadRequest, NotFound
from query import apply_projection, parse_query, parse_select, run_query
from responses import envelope, no_content
from validators import is_valid_id

api = Blueprint("api", __name__, url_prefix="/api")


def _payload():
    """Request body as a dict, from JSON or from form fields."""
    if request.is_json:
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            raise BadRequest("Bad request - Body must be a JSON object")
        return body
    payload = request.form.to_dict()
    pending = request.form.getlist("pendingTasks") or request.form.getlist("pendingTasks[]")
    payload.pop("pendingTasks[]", None)
    if pending:
        payload["pendingTasks"] = pending
    return payload


def _respond(outcome, message, status):
    if outcome.error is not None:
        raise outcome.error
    return envelope(message, outcome.entity.to_dict(), status)


def _list(collection, limit_key, not_found_message):
    spec = parse_query(request.args, default_limit=current_app.config[limit_key])
    return envelope("OK", run_query(collection, spec, not_found_message))


def _get_one(collection, doc_id, not_found_message):
    select = parse_select(request.args)
    if not is_valid_id(doc_id):
        raise NotFound(not_found_message)
    doc = collection.find_by_id(doc_id)
    if doc is None:
        raise NotFound(not_found_message)
    return envelope("OK", apply_projection(doc.to_dict(), select))


# ---- /api/tasks -----------------------------------------------------------

@api.route("/tasks", methods=["GET"])
def list_tasks():
    return _list(store.tasks, "TASKS_DEFAULT_LIMIT", consistency.TASK_NOT_FOUND)


@api.route("/tasks", methods=["POST"])
def create_task():
    return _respond(consistency.create_task(_payload()), "Task created", 201)


@api.route("/tasks/<task_id>", methods=["GET"])
def get_task(task_id):
    return _get_one(store.tasks, task_id, consistency.TASK_NOT_FOUND)


@api.route("/tasks/<task_id>", methods=["PUT"])
def update_task(task_id):
    return _respond(consistency.update_task(task_id, _payload()), "Task updated", 200)


@api.route("/tasks/<task_id>", methods=["DELETE"])
def delete_task(task_id):
    outcome = consistency.delete_task(task_id)
    if outcome.error is not None:
        raise outcome.error
    return no_content()


# ---- /api/users -----------------------------------------------------------

@api.route("/users", methods=["GET"])
def list_users():
    return _list(store.users, "USERS_DEFAULT_LIMIT", consistency.USER_NOT_FOUND)


@api.route("/users", methods=["POST"])
def create_user():
    return _respond(consistency.create_user(_payload()), "User created", 201)


@api.route("/users/<user_id>", methods=["GET"])
def get_user(user_id):
    return _get_one(store.users, user_id, consistency.USER_NOT_FOUND)


@api.route("/users/<user_id>", methods=["PUT"])
def update_user(user_id):
    return _respond(consistency.update_user(user_id, _payload()), "User updated", 200)


@api.route("/users/<user_id>", methods=["DELETE"])
def delete_user(user_id):
    outcome = consistency.delete_user(user_id)
    if outcome.error is not None:
        raise outcome.error
    return no_content()
