"""
Tests for the direct-task state machine.

Covers:
  - assign / reassign / unassign guards
  - start sets started_at once; pause / resume round trip
  - completion guards: already completed, no assignee, not started
  - OVERDUE derived at read time, never stored
  - deadline vs. order delivery date validation
  - one audit row per transition
"""

from datetime import datetime, timedelta, timezone

import pytest

from orderflow.core.exceptions import (
    AlreadyCompletedError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from orderflow.models import db
from orderflow.models.audit import AuditLog
from orderflow.models.task import TASK_TRANSITIONS, Task, validate_task_transition
from orderflow.services import task_lifecycle as lc


@pytest.fixture()
def task(make_service, make_order):
    svc = make_service("Retouch")
    order = make_order(services=[svc])
    return Task.query.filter_by(order_id=order.id).one()


@pytest.fixture()
def running_task(task):
    lc.assign_task(task.id, "u-1", "lead")
    lc.start_task(task.id, "u-1")
    return task


def _actions(task):
    return [
        row.action
        for row in AuditLog.query.filter_by(entity_type="task", entity_id=str(task.id))
        .order_by(AuditLog.id)
    ]


class TestTransitionTable:
    def test_completed_is_terminal(self):
        assert TASK_TRANSITIONS["COMPLETED"] == []

    def test_overdue_is_not_a_stored_state(self):
        assert "OVERDUE" not in TASK_TRANSITIONS
        assert not validate_task_transition("IN_PROGRESS", "OVERDUE")


class TestAssignment:
    def test_assign_moves_to_assigned(self, task):
        lc.assign_task(task.id, "u-1", "lead", priority="HIGH", notes="rush")

        assert task.status == "ASSIGNED"
        assert task.assigned_to == "u-1"
        assert task.priority == "HIGH"
        assert task.notes == "rush"

    def test_assign_twice_rejected(self, task):
        lc.assign_task(task.id, "u-1", "lead")

        with pytest.raises(InvalidTransitionError):
            lc.assign_task(task.id, "u-2", "lead")

    def test_assign_requires_assignee(self, task):
        with pytest.raises(ValidationError):
            lc.assign_task(task.id, "", "lead")

    def test_invalid_priority(self, task):
        with pytest.raises(ValidationError):
            lc.assign_task(task.id, "u-1", "lead", priority="SOMEDAY")
        assert db.session.get(Task, task.id).status == "NOT_ASSIGNED"

    def test_deadline_must_precede_delivery(self, make_service, make_order):
        svc = make_service()
        delivery = datetime(2030, 1, 10, tzinfo=timezone.utc)
        order = make_order(services=[svc], delivery_date=delivery.isoformat())
        t = Task.query.filter_by(order_id=order.id).one()

        with pytest.raises(ValidationError):
            lc.assign_task(t.id, "u-1", "lead", deadline="2030-01-11T00:00:00Z")

        lc.assign_task(t.id, "u-1", "lead", deadline="2030-01-09T12:00:00Z")
        assert t.deadline is not None

    def test_unparseable_deadline(self, task):
        with pytest.raises(ValidationError):
            lc.assign_task(task.id, "u-1", "lead", deadline="next tuesday")

    def test_reassign_running_task_returns_to_assigned(self, running_task):
        started = running_task.started_at

        lc.reassign_task(running_task.id, "u-2", "lead")

        assert running_task.status == "ASSIGNED"
        assert running_task.assigned_to == "u-2"
        assert running_task.started_at == started

    def test_reassign_unassigned_rejected(self, task):
        with pytest.raises(InvalidTransitionError):
            lc.reassign_task(task.id, "u-2", "lead")

    def test_unassign_clears_assignee(self, running_task):
        lc.unassign_task(running_task.id, "lead")

        assert running_task.status == "NOT_ASSIGNED"
        assert running_task.assigned_to is None

    def test_unassign_unassigned_rejected(self, task):
        with pytest.raises(InvalidTransitionError):
            lc.unassign_task(task.id, "lead")


class TestStartPauseResume:
    def test_start_sets_started_at(self, task):
        lc.assign_task(task.id, "u-1", "lead")

        lc.start_task(task.id, "u-1")

        assert task.status == "IN_PROGRESS"
        assert task.started_at is not None

    def test_start_requires_assigned(self, task):
        with pytest.raises(InvalidTransitionError):
            lc.start_task(task.id, "u-1")

    def test_started_at_kept_on_restart(self, running_task):
        first_start = running_task.started_at
        lc.reassign_task(running_task.id, "u-2", "lead")

        lc.start_task(running_task.id, "u-2")

        assert running_task.started_at == first_start

    def test_pause_and_resume(self, running_task):
        lc.pause_task(running_task.id, "u-1")
        assert running_task.status == "PAUSED"

        lc.resume_task(running_task.id, "u-1")
        assert running_task.status == "IN_PROGRESS"

    def test_resume_requires_paused(self, running_task):
        with pytest.raises(InvalidTransitionError):
            lc.resume_task(running_task.id, "u-1")

    def test_pause_requires_in_progress(self, task):
        with pytest.raises(InvalidTransitionError):
            lc.pause_task(task.id, "u-1")


class TestCompletion:
    def test_complete_running_task(self, running_task):
        lc.complete_task(running_task.id, "u-1", notes="delivered")

        assert running_task.status == "COMPLETED"
        assert running_task.completed_at is not None
        assert running_task.completion_notes == "delivered"
        assert lc.time_spent(running_task) >= timedelta(0)

    def test_complete_paused_task(self, running_task):
        lc.pause_task(running_task.id, "u-1")

        lc.complete_task(running_task.id, "u-1")

        assert running_task.status == "COMPLETED"

    def test_complete_twice_rejected(self, running_task):
        lc.complete_task(running_task.id, "u-1")

        with pytest.raises(AlreadyCompletedError):
            lc.complete_task(running_task.id, "u-1")

    def test_complete_without_assignee_rejected(self, task):
        with pytest.raises(InvalidTransitionError) as exc_info:
            lc.complete_task(task.id, "u-1")

        assert "no assignee" in str(exc_info.value)
        assert db.session.get(Task, task.id).status == "NOT_ASSIGNED"

    def test_complete_before_start_rejected(self, task):
        lc.assign_task(task.id, "u-1", "lead")

        with pytest.raises(InvalidTransitionError):
            lc.complete_task(task.id, "u-1")

    def test_completed_task_cannot_be_reassigned(self, running_task):
        lc.complete_task(running_task.id, "u-1")

        with pytest.raises(InvalidTransitionError):
            lc.reassign_task(running_task.id, "u-2", "lead")

    def test_unknown_task(self):
        with pytest.raises(NotFoundError):
            lc.complete_task(999, "u-1")


class TestOverdue:
    def test_overdue_derived_not_stored(self, task):
        task.deadline = datetime.now(timezone.utc) - timedelta(hours=1)
        db.session.commit()

        assert lc.effective_status(task) == "OVERDUE"
        assert task.status == "NOT_ASSIGNED"
        assert task.to_dict()["effective_status"] == "OVERDUE"

    def test_overdue_task_can_still_progress(self, task):
        lc.assign_task(task.id, "u-1", "lead")
        task.deadline = datetime.now(timezone.utc) - timedelta(hours=1)
        db.session.commit()

        lc.start_task(task.id, "u-1")
        lc.complete_task(task.id, "u-1")

        assert task.status == "COMPLETED"
        assert lc.effective_status(task) == "COMPLETED"

    def test_future_deadline_keeps_stored_status(self, task):
        task.deadline = datetime.now(timezone.utc) + timedelta(days=1)
        db.session.commit()

        assert lc.effective_status(task) == "NOT_ASSIGNED"

    def test_explicit_now(self, task):
        task.deadline = datetime(2030, 5, 1, tzinfo=timezone.utc)
        db.session.commit()

        assert lc.effective_status(task, now=datetime(2030, 5, 2, tzinfo=timezone.utc)) == "OVERDUE"
        assert lc.effective_status(task, now=datetime(2030, 4, 30, tzinfo=timezone.utc)) == "NOT_ASSIGNED"


class TestAuditTrail:
    def test_one_row_per_transition(self, running_task):
        lc.pause_task(running_task.id, "u-1")
        lc.resume_task(running_task.id, "u-1")
        lc.complete_task(running_task.id, "u-1")

        assert _actions(running_task) == [
            "task.assign", "task.start", "task.pause", "task.resume", "task.complete",
        ]

    def test_rejected_transition_writes_nothing(self, task):
        with pytest.raises(InvalidTransitionError):
            lc.start_task(task.id, "u-1")

        assert _actions(task) == []

    def test_available_actions(self, running_task):
        assert lc.get_available_task_actions(running_task) == [
            "reassign", "unassign", "pause", "complete",
        ]
