"""
Order Workflow Engine
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for engine mutations.
"""

import json
from datetime import datetime, timezone

from orderflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"order", "task", "asking_task"}

AUDIT_ACTIONS = {
    # Order composition
    "order.create",
    "order.reconcile_services",
    "order.attach_folder_link",
    "order.auto_assign",
    "order.transition",
    # Direct task lifecycle
    "task.assign",
    "task.reassign",
    "task.unassign",
    "task.start",
    "task.pause",
    "task.resume",
    "task.complete",
    # Asking task workflow
    "asking_task.update_stage",
    "asking_task.complete",
    "asking_task.flag",
    "asking_task.notes",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every engine mutation.

    One row per action.  ``old_value_json`` / ``new_value_json`` carry the
    before/after snapshot of the fields the action touched.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="order | task | asking_task",
    )
    entity_id = db.Column(
        db.String(36), nullable=False,
        comment="PK of the referenced entity (int-as-string)",
    )

    # What happened
    action = db.Column(
        db.String(60), nullable=False,
        comment="order.reconcile_services | task.start | …",
    )
    actor = db.Column(
        db.String(150), nullable=False, default="system",
        comment="Acting user id or 'system'",
    )
    description = db.Column(db.Text, default="")

    # Change payload
    old_value_json = db.Column(db.Text, default="null")
    new_value_json = db.Column(db.Text, default="null")

    # Timestamp (immutable)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _load(raw):
        try:
            return json.loads(raw) if raw else None
        except (json.JSONDecodeError, TypeError):
            return None

    @property
    def old_value(self):
        return self._load(self.old_value_json)

    @property
    def new_value(self):
        return self._load(self.new_value_json)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "description": self.description,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor: str | None = None,
    old_value=None,
    new_value=None,
    description: str = "",
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control: a rolled-back operation leaves no audit row.

    Returns the (flushed) AuditLog instance.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        description=description,
        old_value_json=json.dumps(old_value, default=str),
        new_value_json=json.dumps(new_value, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
