"""Reference consistency between ``Task.assignedUser`` and ``User.pendingTasks``.

Every mutation first validates, then performs its primary write, then runs an
ordered list of repair steps against the other collection. Each step is its
own committed write. The first failing step stops the list and is reported
to the caller; the primary write is not rolled back. ``reconcile.reconcile``
restores agreement after such a partial failure.

Invariant kept by every path here: a Task id is in ``User.pendingTasks``
exactly when the Task is assigned to that User and not completed.
"""

from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, List, Optional
import logging

import store
import validators
from errors import ApiError, BadRequest, DuplicateKey, NotFound, StoreError, reraise_as
from models import Task, User, UNASSIGNED

log = logging.getLogger(__name__)

TASK_NOT_FOUND = "Task not found"
USER_NOT_FOUND = "User not found"


@dataclass
class Step:
    name: str
    action: Callable[[], Any]
    error_message: str


@dataclass
class StepResult:
    name: str
    error: Optional[ApiError] = None

    @property
    def ok(self):
        return self.error is None


@dataclass
class Outcome:
    entity: Any
    steps: List[StepResult] = field(default_factory=list)

    @property
    def error(self):
        """The error of the step that stopped the pipeline, if any."""
        for result in self.steps:
            if not result.ok:
                return result.error
        return None


def run_steps(entity, entity_id, steps):
    outcome = Outcome(entity)
    for step in steps:
        try:
            step.action()
        except StoreError as exc:
            log.warning(
                "repair step %r failed for %s, references need reconciliation: %s",
                step.name, entity_id, exc.data,
            )
            outcome.steps.append(StepResult(step.name, StoreError(step.error_message, exc.data)))
            break
        outcome.steps.append(StepResult(step.name))
    return outcome


# ---- repair actions -------------------------------------------------------

def _list_pending(user_id, task_id):
    matched = store.users.update_many({"_id": user_id}, {"$addToSet": {"pendingTasks": task_id}})
    if not matched:
        log.warning("user %s is gone, task %s stays unlisted", user_id, task_id)


def _unlist_pending(user_id, task_id):
    store.users.update_many({"_id": user_id}, {"$pull": {"pendingTasks": task_id}})


def _pull_from_other_users(user_id, task_ids):
    store.users.update_many(
        {"_id": {"$ne": user_id}, "pendingTasks": {"$in": task_ids}},
        {"$pull": {"pendingTasks": {"$in": task_ids}}},
    )


def _assign_tasks(user_id, user_name, task_ids):
    store.tasks.update_many(
        {"_id": {"$in": task_ids}},
        {"$set": {"assignedUser": user_id, "assignedUserName": user_name}},
    )


def _unassign_tasks(where):
    store.tasks.update_many(where, {"$set": {"assignedUser": "", "assignedUserName": UNASSIGNED}})


def _rename_assignee(user_id, user_name):
    store.tasks.update_many({"assignedUser": user_id}, {"$set": {"assignedUserName": user_name}})


# ---- tasks ----------------------------------------------------------------

def create_task(payload):
    fields = validators.validate_task(payload)
    owner = validators.resolve_assigned_user(store.users, fields.assigned_user)

    task = Task(
        name=fields.name,
        description=fields.description,
        deadline=fields.deadline,
        completed=fields.completed,
        assigned_user=fields.assigned_user,
        assigned_user_name=owner.name if owner is not None else UNASSIGNED,
    )
    with reraise_as("Error creating task"):
        store.tasks.insert(task)
    task_id = task.id
    log.info("created task %s (assigned to %r)", task_id, fields.assigned_user)

    steps = []
    if owner is not None and not fields.completed:
        steps.append(Step("list-with-owner", partial(_list_pending, fields.assigned_user, task_id),
                          "Error updating user"))
    return run_steps(task, task_id, steps)


def update_task(task_id, payload):
    if not validators.is_valid_id(task_id):
        raise NotFound(TASK_NOT_FOUND)
    fields = validators.validate_task(payload)
    with reraise_as("Error finding task"):
        task = store.tasks.find_by_id(task_id)
    if task is None:
        raise NotFound(TASK_NOT_FOUND)

    old_user, old_completed = task.assigned_user, task.completed
    new_user, new_completed = fields.assigned_user, fields.completed
    owner = validators.resolve_assigned_user(store.users, new_user)

    task.name = fields.name
    task.description = fields.description
    task.deadline = fields.deadline
    task.completed = new_completed
    task.assigned_user = new_user
    task.assigned_user_name = owner.name if owner is not None else UNASSIGNED
    with reraise_as("Error updating task"):
        store.tasks.save(task)
    log.info("updated task %s: owner %r -> %r, completed %s -> %s",
             task_id, old_user, new_user, old_completed, new_completed)

    steps = []
    if old_user and (old_user != new_user or (not old_completed and new_completed)):
        steps.append(Step("unlist-from-previous-owner", partial(_unlist_pending, old_user, task_id),
                          "Error updating old user"))
    if new_user and not new_completed and new_user != old_user:
        steps.append(Step("list-with-new-owner", partial(_list_pending, new_user, task_id),
                          "Error updating new user"))
    elif new_user and new_user == old_user and old_completed and not new_completed:
        steps.append(Step("relist-reopened", partial(_list_pending, new_user, task_id),
                          "Error updating user"))
    return run_steps(task, task_id, steps)


def delete_task(task_id):
    if not validators.is_valid_id(task_id):
        raise NotFound(TASK_NOT_FOUND)
    with reraise_as("Error deleting task"):
        removed = store.tasks.delete_by_id(task_id)
    if removed is None:
        raise NotFound(TASK_NOT_FOUND)
    log.info("deleted task %s", task_id)

    steps = []
    if removed["assignedUser"]:
        steps.append(Step("unlist-from-owner", partial(_unlist_pending, removed["assignedUser"], task_id),
                          "Error updating user"))
    return run_steps(removed, task_id, steps)


# ---- users ----------------------------------------------------------------

def _write_user(write, user, message):
    try:
        with reraise_as(message):
            write(user)
    except DuplicateKey as exc:
        raise BadRequest(validators.EMAIL_TAKEN) from exc


def _open_tasks(tasks_by_id):
    return {task_id for task_id, task in tasks_by_id.items() if not task.completed}


def create_user(payload):
    fields = validators.validate_user(payload)
    pending = fields.pending_tasks
    if pending:
        with reraise_as("Error validating tasks"):
            found = validators.resolve_tasks(store.tasks, pending)
        open_ids = _open_tasks(found)
        pending = [task_id for task_id in pending if task_id in open_ids]
    with reraise_as("Error checking email"):
        validators.check_email_available(store.users, fields.email)

    user = User(name=fields.name, email=fields.email, pending_tasks=pending)
    _write_user(store.users.insert, user, "Error creating user")
    user_id = user.id
    log.info("created user %s with %d pending tasks", user_id, len(pending))

    steps = []
    if pending:
        steps.append(Step("pull-from-other-users", partial(_pull_from_other_users, user_id, pending),
                          "Error updating other users"))
        steps.append(Step("assign-tasks", partial(_assign_tasks, user_id, fields.name, pending),
                          "Error updating tasks"))
    return run_steps(user, user_id, steps)


def update_user(user_id, payload):
    if not validators.is_valid_id(user_id):
        raise NotFound(USER_NOT_FOUND)
    fields = validators.validate_user(payload)
    with reraise_as("Error finding user"):
        user = store.users.find_by_id(user_id)
    if user is None:
        raise NotFound(USER_NOT_FOUND)

    old_pending = list(user.pending_tasks or [])
    new_pending = fields.pending_tasks
    to_unassign = [task_id for task_id in old_pending if task_id not in new_pending]
    to_assign = [task_id for task_id in new_pending if task_id not in old_pending]

    if to_assign:
        with reraise_as("Error validating tasks"):
            found = validators.resolve_tasks(store.tasks, to_assign)
        closed = set(found) - _open_tasks(found)
        to_assign = [task_id for task_id in to_assign if task_id not in closed]
        new_pending = [task_id for task_id in new_pending if task_id not in closed]

    kept = [task_id for task_id in new_pending if task_id in old_pending]
    if kept:
        with reraise_as("Error validating tasks"):
            live = {task.id for task in store.tasks.find(
                {"_id": {"$in": kept}, "completed": False, "assignedUser": user_id})}
        stale = [task_id for task_id in kept if task_id not in live]
        if stale:
            log.info("dropping stale pending tasks %s from user %s", stale, user_id)
            new_pending = [task_id for task_id in new_pending if task_id not in stale]

    if fields.email != user.email:
        with reraise_as("Error checking email"):
            validators.check_email_available(store.users, fields.email, exclude_id=user_id)

    renamed = fields.name != user.name
    user.name = fields.name
    user.email = fields.email
    user.pending_tasks = new_pending
    _write_user(store.users.save, user, "Error updating user")
    log.info("updated user %s: +%d -%d pending tasks", user_id, len(to_assign), len(to_unassign))

    steps = []
    if to_unassign:
        steps.append(Step("unassign-dropped-tasks",
                          partial(_unassign_tasks, {"_id": {"$in": to_unassign}, "assignedUser": user_id}),
                          "Error updating tasks"))
    if to_assign:
        steps.append(Step("pull-from-other-users", partial(_pull_from_other_users, user_id, to_assign),
                          "Error updating other users"))
        steps.append(Step("assign-tasks", partial(_assign_tasks, user_id, fields.name, to_assign),
                          "Error updating tasks"))
    if renamed:
        steps.append(Step("refresh-assignee-name", partial(_rename_assignee, user_id, fields.name),
                          "Error updating tasks"))
    return run_steps(user, user_id, steps)


def delete_user(user_id):
    if not validators.is_valid_id(user_id):
        raise NotFound(USER_NOT_FOUND)
    with reraise_as("Error deleting user"):
        removed = store.users.delete_by_id(user_id)
    if removed is None:
        raise NotFound(USER_NOT_FOUND)
    log.info("deleted user %s", user_id)

    steps = [Step("unassign-owned-tasks", partial(_unassign_tasks, {"assignedUser": user_id}),
                  "Error updating tasks")]
    return run_steps(removed, user_id, steps)
