"""Validation utilities for Task and User payloads."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List
import re

from errors import BadRequest, NotFound

OBJECT_ID_REGEX = r'^[0-9a-fA-F]{24}$'   # same shape as a document-store object id

NAME_AND_DEADLINE_REQUIRED = "Bad request - Name and deadline are required"
NAME_AND_EMAIL_REQUIRED = "Bad request - Name and email are required"
INVALID_USER_ID = "Bad request - Invalid user ID format"
EMAIL_TAKEN = "Bad request - Email already exists"
ASSIGNED_USER_NOT_FOUND = "Assigned user not found"
TASKS_NOT_FOUND = "One or more tasks not found"


def is_valid_id(value):
    return isinstance(value, str) and re.match(OBJECT_ID_REGEX, value) is not None


def parse_datetime(value):
    """Accept an ISO-8601 string or epoch milliseconds, return naive UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ValueError(f"not a date: {value!r}")
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.isdigit():
            parsed = datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
        else:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    else:
        raise ValueError(f"not a date: {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_bool(value, field_name):
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return value == 1
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return value.strip().lower() in ("true", "1")
    raise BadRequest(f"Bad request - {field_name} must be true or false")


def dedupe(ids):
    """Drop repeated ids, keeping the first occurrence of each."""
    seen = set()
    out = []
    for item in ids:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def _text(payload, key):
    value = payload.get(key)
    if value is None:
        return ""
    return str(value).strip()


@dataclass
class TaskFields:
    name: str
    description: str
    deadline: datetime
    completed: bool = False
    assigned_user: str = ""


@dataclass
class UserFields:
    name: str
    email: str
    pending_tasks: List[str] = field(default_factory=list)


def validate_task(payload):
    name = _text(payload, "name")
    raw_deadline = payload.get("deadline")
    if not name or raw_deadline in (None, ""):
        raise BadRequest(NAME_AND_DEADLINE_REQUIRED)
    try:
        deadline = parse_datetime(raw_deadline)
    except (ValueError, OverflowError, OSError) as exc:
        raise BadRequest("Bad request - Invalid deadline", str(exc)) from exc

    completed = payload.get("completed")
    completed = False if completed in (None, "") else parse_bool(completed, "completed")

    assigned_user = payload.get("assignedUser") or ""
    if assigned_user and not is_valid_id(assigned_user):
        raise BadRequest(INVALID_USER_ID)

    description = payload.get("description")
    return TaskFields(
        name=name,
        description="" if description is None else str(description),
        deadline=deadline,
        completed=completed,
        assigned_user=assigned_user,
    )


def validate_user(payload):
    name = _text(payload, "name")
    email = _text(payload, "email")
    if not name or not email:
        raise BadRequest(NAME_AND_EMAIL_REQUIRED)

    pending = payload.get("pendingTasks") or []
    if not isinstance(pending, list):
        raise BadRequest("Bad request - pendingTasks must be an array")
    if not all(isinstance(task_id, str) for task_id in pending):
        raise BadRequest("Bad request - pendingTasks must contain task ids")

    return UserFields(name=name, email=email, pending_tasks=dedupe(pending))


def resolve_assigned_user(users, user_id):
    """Return the User named by ``assignedUser``, or None when unassigned."""
    if not user_id:
        return None
    user = users.find_by_id(user_id)
    if user is None:
        raise NotFound(ASSIGNED_USER_NOT_FOUND)
    return user


def resolve_tasks(tasks, task_ids):
    """Map every id to its Task, failing if any of them does not exist."""
    valid = [task_id for task_id in task_ids if is_valid_id(task_id)]
    found = {task.id: task for task in tasks.find({"_id": {"$in": valid}})} if valid else {}
    missing = [task_id for task_id in task_ids if task_id not in found]
    if missing:
        raise NotFound(TASKS_NOT_FOUND, {"missing": missing})
    return found


def check_email_available(users, email, exclude_id=None):
    existing = users.find_one({"email": email})
    if existing is not None and existing.id != exclude_id:
        raise BadRequest(EMAIL_TAKEN)
