"""Recompute ``pendingTasks`` from ``assignedUser`` and repair any drift.

A mutation whose repair step failed leaves the two sides disagreeing; this
pass derives what every list should hold from the Tasks and rewrites the
lists that differ.
"""

from dataclasses import dataclass, field
from typing import Dict, List
import logging

import store
from models import UNASSIGNED

log = logging.getLogger(__name__)


@dataclass
class Drift:
    user_id: str
    missing: List[str]    # pending for the user but not listed
    extra: List[str]      # listed but not pending for the user (repeats included)
    repaired: List[str]   # what the list should hold


@dataclass
class Report:
    drifts: List[Drift] = field(default_factory=list)
    dangling: List[str] = field(default_factory=list)   # tasks assigned to a user that does not exist

    @property
    def clean(self):
        return not self.drifts and not self.dangling


def audit():
    assigned = store.tasks.find({"assignedUser": {"$ne": ""}})
    users = store.users.find()
    known = {user.id for user in users}

    expected: Dict[str, List[str]] = {}
    report = Report()
    for task in assigned:
        if task.assigned_user not in known:
            report.dangling.append(task.id)
        elif not task.completed:
            expected.setdefault(task.assigned_user, []).append(task.id)

    for user in users:
        want = expected.get(user.id, [])
        have = list(user.pending_tasks or [])
        seen = set()
        extra = []
        for task_id in have:
            if task_id in seen or task_id not in want:
                extra.append(task_id)
            seen.add(task_id)
        missing = [task_id for task_id in want if task_id not in seen]
        if missing or extra:
            kept = [task_id for task_id in dict.fromkeys(have) if task_id in want]
            report.drifts.append(Drift(user.id, missing, extra, kept + missing))
    return report


def reconcile(dry_run=False):
    report = audit()
    if dry_run or report.clean:
        return report

    for drift in report.drifts:
        user = store.users.find_by_id(drift.user_id)
        if user is None:
            continue
        user.pending_tasks = drift.repaired
        store.users.save(user)
        log.info("repaired pending tasks of user %s: +%s -%s", drift.user_id, drift.missing, drift.extra)

    if report.dangling:
        store.tasks.update_many(
            {"_id": {"$in": report.dangling}},
            {"$set": {"assignedUser": "", "assignedUserName": UNASSIGNED}},
        )
        log.info("unassigned %d tasks whose user no longer exists", len(report.dangling))
    return report
