"""
Order Workflow Engine
Work-unit domain models.

Models:
    - Task:             direct, status-driven work item
    - AskingTask:       client-communication work item driven by stages
    - AskingTaskStage:  append-only stage history of an asking task

Architecture:
    ServiceInstance ──1:1──▶ Task
    ServiceInstance ──1:1──▶ AskingTask ──1:N──▶ AskingTaskStage

Lifecycle states:
    Task:        NOT_ASSIGNED → ASSIGNED → IN_PROGRESS ⇄ PAUSED → COMPLETED
                 (OVERDUE is computed at read time, never stored)
    AskingTask:  ASKED → SHARED → VERIFIED → INFORMED_TEAM
                 (stage is explicit input; completion is orthogonal to stage)
"""

import json
from datetime import datetime, timezone

from orderflow.models import db
from orderflow.utils.helpers import as_utc


# ── Constants ────────────────────────────────────────────────────────────────

TASK_STATUSES = {
    "NOT_ASSIGNED", "ASSIGNED", "IN_PROGRESS",
    "PAUSED", "COMPLETED", "OVERDUE",
}

# OVERDUE is derived from deadline at read time and must never be stored.
STORED_TASK_STATUSES = TASK_STATUSES - {"OVERDUE"}

TASK_PRIORITIES = {"LOW", "MEDIUM", "HIGH", "URGENT"}

ASKING_STAGES = ["ASKED", "SHARED", "VERIFIED", "INFORMED_TEAM"]

# Structured values an asking-stage update may carry.
STAGE_FIELDS = ("initial_confirmation", "update_request", "staff_name", "note")


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

TASK_TRANSITIONS = {
    "NOT_ASSIGNED": ["ASSIGNED"],
    "ASSIGNED":     ["IN_PROGRESS", "ASSIGNED", "NOT_ASSIGNED"],
    "IN_PROGRESS":  ["PAUSED", "COMPLETED", "ASSIGNED", "NOT_ASSIGNED"],
    "PAUSED":       ["IN_PROGRESS", "COMPLETED", "ASSIGNED", "NOT_ASSIGNED"],
    "COMPLETED":    [],
}


def validate_task_transition(old_status, new_status):
    """Return True if Task status transition is valid."""
    return new_status in TASK_TRANSITIONS.get(old_status, [])


def _iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. Task
# ═════════════════════════════════════════════════════════════════════════════


class Task(db.Model):
    """
    Direct work item spawned by a DIRECT service instance.

    Invariant: ``assigned_to`` set ⇒ ``status`` ≠ NOT_ASSIGNED.
    A task with no service instance is a freeform task created elsewhere.
    """

    __tablename__ = "tasks"
    __table_args__ = (
        db.Index("idx_task_order_assignee", "order_id", "assigned_to"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    service_instance_id = db.Column(
        db.Integer, db.ForeignKey("order_service_instances.id", ondelete="CASCADE"),
        nullable=True, unique=True,
    )
    service_id = db.Column(
        db.Integer, db.ForeignKey("services.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    team_id = db.Column(db.Integer, nullable=True, index=True)

    title = db.Column(db.String(300), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="NOT_ASSIGNED",
        comment="NOT_ASSIGNED | ASSIGNED | IN_PROGRESS | PAUSED | COMPLETED",
    )
    assigned_to = db.Column(db.String(64), nullable=True, index=True)
    priority = db.Column(db.String(10), nullable=False, default="MEDIUM")
    deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    completion_notes = db.Column(db.Text, nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    order = db.relationship("Order")
    service_instance = db.relationship("ServiceInstance", back_populates="task")
    service = db.relationship("Service", lazy="joined")

    def to_dict(self, now=None) -> dict:
        from orderflow.services.task_lifecycle import effective_status, time_spent

        spent = time_spent(self)
        return {
            "id": self.id,
            "order_id": self.order_id,
            "service_instance_id": self.service_instance_id,
            "service_id": self.service_id,
            "team_id": self.team_id,
            "title": self.title,
            "status": self.status,
            "effective_status": effective_status(self, now=now),
            "assigned_to": self.assigned_to,
            "priority": self.priority,
            "deadline": _iso(self.deadline),
            "notes": self.notes,
            "completion_notes": self.completion_notes,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "time_spent_seconds": int(spent.total_seconds()) if spent is not None else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.title} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. AskingTask + stage history
# ═════════════════════════════════════════════════════════════════════════════


class AskingTask(db.Model):
    """
    Client-communication work item.

    ``current_stage`` is a materialised projection of the latest
    AskingTaskStage row.  ``completed_by`` records who closed the workflow
    and may differ from ``assigned_to``.
    """

    __tablename__ = "asking_tasks"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    service_instance_id = db.Column(
        db.Integer, db.ForeignKey("order_service_instances.id", ondelete="CASCADE"),
        nullable=True, unique=True,
    )
    service_id = db.Column(
        db.Integer, db.ForeignKey("services.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    team_id = db.Column(db.Integer, nullable=True, index=True)

    title = db.Column(db.String(300), nullable=False)
    current_stage = db.Column(
        db.String(20), nullable=False, default="ASKED",
        comment="ASKED | SHARED | VERIFIED | INFORMED_TEAM",
    )
    assigned_to = db.Column(db.String(64), nullable=True, index=True)
    priority = db.Column(db.String(10), nullable=False, default="MEDIUM")
    deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    is_mandatory = db.Column(db.Boolean, nullable=False, default=False)
    is_flagged = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)
    notes_updated_by = db.Column(db.String(64), nullable=True)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.String(64), nullable=True)
    completion_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    order = db.relationship("Order")
    service_instance = db.relationship("ServiceInstance", back_populates="asking_task")
    service = db.relationship("Service", lazy="joined")
    stage_history = db.relationship(
        "AskingTaskStage", backref="asking_task", lazy="select",
        cascade="all, delete-orphan",
        order_by="AskingTaskStage.id",
    )

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def to_dict(self, include_history=False) -> dict:
        d = {
            "id": self.id,
            "order_id": self.order_id,
            "service_instance_id": self.service_instance_id,
            "service_id": self.service_id,
            "team_id": self.team_id,
            "title": self.title,
            "current_stage": self.current_stage,
            "assigned_to": self.assigned_to,
            "priority": self.priority,
            "deadline": _iso(self.deadline),
            "is_mandatory": self.is_mandatory,
            "is_flagged": self.is_flagged,
            "notes": self.notes,
            "notes_updated_by": self.notes_updated_by,
            "completed_at": _iso(self.completed_at),
            "completed_by": self.completed_by,
            "completion_notes": self.completion_notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_history:
            d["stage_history"] = [h.to_dict() for h in self.stage_history]
        return d

    def __repr__(self):
        return f"<AskingTask {self.id}: {self.title} [{self.current_stage}]>"


class AskingTaskStage(db.Model):
    """
    Immutable stage history entry.

    ``fields_json`` holds only the fields supplied with the update; a key
    mapped to null records an explicit clear.  Rows are never updated or
    deleted on their own; they go away only with their asking task.
    """

    __tablename__ = "asking_task_stages"
    __table_args__ = (
        db.Index("idx_asking_stage_task_stage", "asking_task_id", "stage"),
    )

    id = db.Column(db.Integer, primary_key=True)
    asking_task_id = db.Column(
        db.Integer, db.ForeignKey("asking_tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    stage = db.Column(db.String(20), nullable=False)
    fields_json = db.Column(
        db.Text, nullable=False, default="{}",
        comment="JSON: supplied structured fields only",
    )
    updated_by = db.Column(db.String(64), nullable=False, default="system")
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def fields(self) -> dict:
        """Deserialise *fields_json* to a Python dict."""
        try:
            return json.loads(self.fields_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asking_task_id": self.asking_task_id,
            "stage": self.stage,
            "fields": self.fields,
            "updated_by": self.updated_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<AskingTaskStage {self.id}: task={self.asking_task_id} {self.stage}>"
