"""
Asking-Task Stage Engine.

Client-communication workflow over four stages:

    ASKED → SHARED → VERIFIED → INFORMED_TEAM

Stage selection is explicit input, not auto-advanced, so a correction may
jump to any stage.  Every update appends exactly one AskingTaskStage row;
earlier rows are never modified.  ``current_stage`` on the task is a
projection of the newest row and ``stage_projection_consistent`` checks it.

Completion is orthogonal to stage: any stage may be completed, once.
``completed_by`` records who closed it and may differ from the assignee.

Usage:
    from orderflow.services.asking_task_engine import StageFields, update_asking_stage

    update_asking_stage(
        asking_task_id=9,
        stage="SHARED",
        acting_user_id="u-3",
        fields=StageFields(initial_confirmation="Yes", note=None),  # note explicitly cleared
    )
"""

import json
import logging
from dataclasses import dataclass, fields as dc_fields

from orderflow.core.exceptions import AlreadyCompletedError, ValidationError
from orderflow.models import db
from orderflow.models.audit import write_audit
from orderflow.models.task import ASKING_STAGES, STAGE_FIELDS, AskingTask, AskingTaskStage
from orderflow.services.helpers.lookups import get_for_update, get_or_raise
from orderflow.services.helpers.transaction import transactional
from orderflow.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class _Unset:
    """Marker for a stage field that was not supplied."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNSET"

    def __bool__(self):
        return False


UNSET = _Unset()


@dataclass(frozen=True)
class StageFields:
    """Structured values carried by one stage update.

    Each field is tri-state:
        UNSET  → not supplied, nothing is recorded for it
        None   → explicitly cleared
        str    → set to this value
    """

    initial_confirmation: object = UNSET
    update_request: object = UNSET
    staff_name: object = UNSET
    note: object = UNSET

    def __post_init__(self):
        for f in dc_fields(self):
            value = getattr(self, f.name)
            if value is UNSET or value is None:
                continue
            if not isinstance(value, str):
                raise ValidationError(
                    f"{f.name} must be a string or null",
                    details={f.name: "invalid type"},
                )

    @classmethod
    def from_payload(cls, payload: dict | None) -> "StageFields":
        """Build from a request body: present keys are supplied, absent keys are UNSET."""
        payload = payload or {}
        unknown = set(payload) - set(STAGE_FIELDS)
        if unknown:
            raise ValidationError(
                "Unknown stage fields",
                details={name: "unknown field" for name in sorted(unknown)},
            )
        return cls(**{name: payload[name] for name in STAGE_FIELDS if name in payload})

    def supplied(self) -> dict:
        """Only the supplied fields, in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in dc_fields(self)
            if getattr(self, f.name) is not UNSET
        }


# ── Read model ───────────────────────────────────────────────────────────────


def stage_overview(task: AskingTask) -> dict:
    """Per-stage current values without replaying the log client-side.

    For each stage, a field's current value comes from the most recent
    entry of that stage that supplied it; fields never supplied for a
    stage are absent.
    """
    overview = {
        stage: {"fields": {}, "entries": 0, "last_updated_at": None, "last_updated_by": None}
        for stage in ASKING_STAGES
    }
    for entry in sorted(task.stage_history, key=lambda h: h.id):
        slot = overview.setdefault(
            entry.stage,
            {"fields": {}, "entries": 0, "last_updated_at": None, "last_updated_by": None},
        )
        slot["fields"].update(entry.fields)
        slot["entries"] += 1
        slot["last_updated_at"] = entry.created_at.isoformat() if entry.created_at else None
        slot["last_updated_by"] = entry.updated_by
    return {
        "asking_task_id": task.id,
        "current_stage": task.current_stage,
        "is_completed": task.is_completed,
        "stages": overview,
    }


def stage_projection_consistent(task: AskingTask) -> bool:
    """True when ``current_stage`` matches the newest history entry.

    A task without history must still be at ASKED.
    """
    if not task.stage_history:
        return task.current_stage == ASKING_STAGES[0]
    latest = max(task.stage_history, key=lambda h: h.id)
    return latest.stage == task.current_stage


def get_asking_task(asking_task_id: int) -> AskingTask:
    return get_or_raise(AskingTask, asking_task_id, label="Asking task")


# ── Operations ───────────────────────────────────────────────────────────────


@transactional
def update_asking_stage(
    asking_task_id: int,
    stage: str | None,
    acting_user_id: str,
    fields: StageFields | None = None,
) -> AskingTask:
    """Move to *stage* and append one history entry.

    Args:
        asking_task_id: Target asking task.
        stage: New stage; None keeps the current one.
        acting_user_id: Recorded on the history entry and audit row.
        fields: Optional supplied structured values.

    Raises:
        NotFoundError, ValidationError
    """
    if stage is not None and stage not in ASKING_STAGES:
        raise ValidationError(
            f"Invalid stage '{stage}'",
            details={"stage": f"one of {', '.join(ASKING_STAGES)}"},
        )
    fields = fields or StageFields()

    task = get_for_update(AskingTask, asking_task_id, label="Asking task")
    previous_stage = task.current_stage
    new_stage = stage or previous_stage
    supplied = fields.supplied()

    entry = AskingTaskStage(
        asking_task_id=task.id,
        stage=new_stage,
        fields_json=json.dumps(supplied),
        updated_by=acting_user_id or "system",
        created_at=utcnow(),
    )
    db.session.add(entry)
    task.stage_history.append(entry)
    if new_stage != previous_stage:
        task.current_stage = new_stage
    db.session.flush()

    write_audit(
        entity_type="asking_task",
        entity_id=task.id,
        action="asking_task.update_stage",
        actor=acting_user_id,
        old_value={"current_stage": previous_stage},
        new_value={"current_stage": new_stage, "fields": supplied, "history_entry_id": entry.id},
        description=f"Stage {previous_stage} → {new_stage}",
    )
    logger.info(
        "Asking task %s stage %s → %s by %s (fields=%s)",
        task.id, previous_stage, new_stage, acting_user_id, sorted(supplied),
    )
    return task


@transactional
def complete_asking_task(
    asking_task_id: int,
    acting_user_id: str,
    notes: str | None = None,
) -> AskingTask:
    """Close the workflow from whatever stage it is in.

    Raises:
        NotFoundError: Unknown asking task.
        AlreadyCompletedError: The task was completed before.
    """
    task = get_for_update(AskingTask, asking_task_id, label="Asking task")
    if task.completed_at is not None:
        raise AlreadyCompletedError("Asking task", task.id)

    task.completed_at = utcnow()
    task.completed_by = acting_user_id
    if notes:
        task.completion_notes = notes

    write_audit(
        entity_type="asking_task",
        entity_id=task.id,
        action="asking_task.complete",
        actor=acting_user_id,
        old_value={"completed_at": None},
        new_value={"completed_at": task.completed_at, "completed_by": acting_user_id},
        description=f"Completed at stage {task.current_stage}",
    )
    logger.info("Asking task %s completed by %s at stage %s", task.id, acting_user_id, task.current_stage)
    return task


@transactional
def set_asking_flag(asking_task_id: int, is_flagged: bool, acting_user_id: str) -> AskingTask:
    """Raise or clear the attention flag on an asking task."""
    if not isinstance(is_flagged, bool):
        raise ValidationError("is_flagged must be a boolean", details={"is_flagged": "invalid type"})
    task = get_for_update(AskingTask, asking_task_id, label="Asking task")
    old = task.is_flagged
    task.is_flagged = is_flagged
    write_audit(
        entity_type="asking_task",
        entity_id=task.id,
        action="asking_task.flag",
        actor=acting_user_id,
        old_value={"is_flagged": old},
        new_value={"is_flagged": is_flagged},
    )
    return task


@transactional
def update_asking_notes(asking_task_id: int, notes: str | None, acting_user_id: str) -> AskingTask:
    """Replace the free-text notes of an asking task."""
    task = get_for_update(AskingTask, asking_task_id, label="Asking task")
    old = task.notes
    task.notes = notes
    task.notes_updated_by = acting_user_id
    write_audit(
        entity_type="asking_task",
        entity_id=task.id,
        action="asking_task.notes",
        actor=acting_user_id,
        old_value={"notes": old},
        new_value={"notes": notes},
    )
    return task
