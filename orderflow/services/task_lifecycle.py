"""
Direct-Task State Machine.

Manages Task status transitions with:
  - Transition validation against ``TASK_TRANSITIONS``
  - Timestamp side effects (started_at once, completed_at on completion)
  - One audit row per transition, in the same transaction

Transitions:
    assign    NOT_ASSIGNED → ASSIGNED
    reassign  ASSIGNED | IN_PROGRESS | PAUSED → ASSIGNED (new assignee)
    unassign  ASSIGNED | IN_PROGRESS | PAUSED → NOT_ASSIGNED
    start     ASSIGNED → IN_PROGRESS
    pause     IN_PROGRESS → PAUSED
    resume    PAUSED → IN_PROGRESS
    complete  IN_PROGRESS | PAUSED → COMPLETED (assignee required)

OVERDUE is never stored: ``effective_status`` derives it at read time from
the deadline, so an overdue task can still be started or completed.

Usage:
    from orderflow.services.task_lifecycle import start_task, complete_task

    task = start_task(task_id=42, acting_user_id="u-7")
    task = complete_task(task_id=42, acting_user_id="u-7", notes="Delivered")
"""

import logging

from orderflow.core.exceptions import (
    AlreadyCompletedError,
    InvalidTransitionError,
    ValidationError,
)
from orderflow.models.audit import write_audit
from orderflow.models.task import TASK_PRIORITIES, Task, validate_task_transition
from orderflow.services.helpers.lookups import get_for_update
from orderflow.services.helpers.transaction import transactional
from orderflow.utils.helpers import as_utc, parse_datetime, utcnow

logger = logging.getLogger(__name__)


# ── Read-time derivations ────────────────────────────────────────────────────


def effective_status(task: Task, now=None) -> str:
    """Stored status, or OVERDUE when the deadline passed before completion."""
    now = as_utc(now) or utcnow()
    deadline = as_utc(task.deadline)
    if task.completed_at is None and deadline is not None and deadline < now:
        return "OVERDUE"
    return task.status


def time_spent(task: Task):
    """Duration from start to completion, or None if either is missing."""
    started = as_utc(task.started_at)
    completed = as_utc(task.completed_at)
    if started is None or completed is None:
        return None
    return completed - started


def get_available_task_actions(task: Task) -> list[str]:
    """Actions allowed from the task's stored status."""
    actions = {
        "assign": "ASSIGNED" if task.status == "NOT_ASSIGNED" else None,
        "reassign": "ASSIGNED" if task.status != "NOT_ASSIGNED" else None,
        "unassign": "NOT_ASSIGNED",
        "start": "IN_PROGRESS" if task.status == "ASSIGNED" else None,
        "pause": "PAUSED" if task.status == "IN_PROGRESS" else None,
        "resume": "IN_PROGRESS" if task.status == "PAUSED" else None,
        "complete": "COMPLETED",
    }
    return [
        action for action, target in actions.items()
        if target and validate_task_transition(task.status, target)
    ]


# ── Internal helpers ─────────────────────────────────────────────────────────


def _guard(task: Task, target: str, reason: str | None = None) -> None:
    if not validate_task_transition(task.status, target):
        raise InvalidTransitionError("Task", task.id, task.status, target, reason)


def _snapshot(task: Task) -> dict:
    return {
        "status": task.status,
        "assigned_to": task.assigned_to,
        "deadline": task.deadline,
        "priority": task.priority,
    }


def _audit(task: Task, action: str, actor: str, old: dict, description: str) -> None:
    write_audit(
        entity_type="task",
        entity_id=task.id,
        action=f"task.{action}",
        actor=actor,
        old_value=old,
        new_value=_snapshot(task),
        description=description,
    )


def _apply_assignment_fields(task: Task, deadline, priority, notes) -> None:
    if priority is not None:
        if priority not in TASK_PRIORITIES:
            raise ValidationError(
                f"Invalid priority '{priority}'",
                details={"priority": f"one of {', '.join(sorted(TASK_PRIORITIES))}"},
            )
        task.priority = priority

    if deadline is not None:
        try:
            deadline = parse_datetime(deadline)
        except ValueError as exc:
            raise ValidationError(str(exc), details={"deadline": "invalid datetime"}) from None
        delivery = as_utc(task.order.delivery_date) if task.order is not None else None
        if delivery is not None and deadline >= delivery:
            raise ValidationError(
                "Deadline must be before the order delivery time",
                details={"deadline": deadline.isoformat(), "delivery_date": delivery.isoformat()},
            )
        task.deadline = deadline

    if notes is not None:
        task.notes = notes


# ── Transitions ──────────────────────────────────────────────────────────────


@transactional
def assign_task(
    task_id: int,
    assignee_id: str,
    acting_user_id: str,
    *,
    deadline=None,
    priority: str | None = None,
    notes: str | None = None,
) -> Task:
    """Manually assign an unassigned task (NOT_ASSIGNED → ASSIGNED).

    Raises:
        NotFoundError, InvalidTransitionError, ValidationError
    """
    task = get_for_update(Task, task_id)
    if not assignee_id:
        raise ValidationError("assignee is required", details={"assigned_to": "required"})
    if task.status != "NOT_ASSIGNED":
        raise InvalidTransitionError(
            "Task", task.id, task.status, "ASSIGNED", "task is already assigned; use reassign",
        )

    old = _snapshot(task)
    _apply_assignment_fields(task, deadline, priority, notes)
    task.assigned_to = assignee_id
    task.status = "ASSIGNED"

    _audit(task, "assign", acting_user_id, old, "Task assigned to team member")
    logger.info("Task %s assigned to %s by %s", task.id, assignee_id, acting_user_id)
    return task


@transactional
def reassign_task(
    task_id: int,
    assignee_id: str,
    acting_user_id: str,
    *,
    deadline=None,
    priority: str | None = None,
    notes: str | None = None,
) -> Task:
    """Hand an assigned, running or paused task to another user.

    The task returns to ASSIGNED; ``started_at`` is kept.
    """
    task = get_for_update(Task, task_id)
    if not assignee_id:
        raise ValidationError("assignee is required", details={"assigned_to": "required"})
    if task.status == "NOT_ASSIGNED":
        raise InvalidTransitionError("Task", task.id, task.status, "ASSIGNED", "use assign")
    _guard(task, "ASSIGNED", "completed tasks cannot be reassigned")

    old = _snapshot(task)
    _apply_assignment_fields(task, deadline, priority, notes)
    task.assigned_to = assignee_id
    task.status = "ASSIGNED"

    _audit(task, "reassign", acting_user_id, old, f"Task reassigned from {old['assigned_to']} to {assignee_id}")
    logger.info("Task %s reassigned %s → %s by %s", task.id, old["assigned_to"], assignee_id, acting_user_id)
    return task


@transactional
def unassign_task(task_id: int, acting_user_id: str) -> Task:
    """Discard an assignment and return the task to NOT_ASSIGNED."""
    task = get_for_update(Task, task_id)
    _guard(task, "NOT_ASSIGNED", "task is not assigned" if task.status == "NOT_ASSIGNED" else None)

    old = _snapshot(task)
    task.assigned_to = None
    task.status = "NOT_ASSIGNED"

    _audit(task, "unassign", acting_user_id, old, "Task assignment discarded")
    logger.info("Task %s unassigned by %s", task.id, acting_user_id)
    return task


@transactional
def start_task(task_id: int, acting_user_id: str) -> Task:
    """ASSIGNED → IN_PROGRESS.  ``started_at`` is only set the first time."""
    task = get_for_update(Task, task_id)
    if task.status != "ASSIGNED":
        raise InvalidTransitionError(
            "Task", task.id, task.status, "IN_PROGRESS", "only ASSIGNED tasks can be started",
        )

    old = _snapshot(task)
    task.status = "IN_PROGRESS"
    if task.started_at is None:
        task.started_at = utcnow()

    _audit(task, "start", acting_user_id, old, "Task started")
    logger.info("Task %s started by %s", task.id, acting_user_id)
    return task


@transactional
def pause_task(task_id: int, acting_user_id: str) -> Task:
    """IN_PROGRESS → PAUSED."""
    task = get_for_update(Task, task_id)
    if task.status != "IN_PROGRESS":
        raise InvalidTransitionError("Task", task.id, task.status, "PAUSED")

    old = _snapshot(task)
    task.status = "PAUSED"
    _audit(task, "pause", acting_user_id, old, "Task paused")
    return task


@transactional
def resume_task(task_id: int, acting_user_id: str) -> Task:
    """PAUSED → IN_PROGRESS."""
    task = get_for_update(Task, task_id)
    if task.status != "PAUSED":
        raise InvalidTransitionError("Task", task.id, task.status, "IN_PROGRESS")

    old = _snapshot(task)
    task.status = "IN_PROGRESS"
    _audit(task, "resume", acting_user_id, old, "Task resumed")
    return task


@transactional
def complete_task(task_id: int, acting_user_id: str, notes: str | None = None) -> Task:
    """IN_PROGRESS | PAUSED → COMPLETED.

    Raises:
        AlreadyCompletedError: Task is already COMPLETED.
        InvalidTransitionError: No assignee, or the task was never started.
    """
    task = get_for_update(Task, task_id)
    if task.status == "COMPLETED":
        raise AlreadyCompletedError("Task", task.id)
    if task.assigned_to is None:
        raise InvalidTransitionError(
            "Task", task.id, task.status, "COMPLETED", "task has no assignee",
        )
    if task.status not in ("IN_PROGRESS", "PAUSED"):
        raise InvalidTransitionError(
            "Task", task.id, task.status, "COMPLETED", "start the task before completing it",
        )

    old = _snapshot(task)
    task.status = "COMPLETED"
    task.completed_at = utcnow()
    if notes:
        task.completion_notes = notes

    _audit(task, "complete", acting_user_id, old, "Task completed")
    logger.info("Task %s completed by %s", task.id, acting_user_id)
    return task
