"""
Tests for the asking-task stage engine.

Covers:
  - each update appends exactly one history entry (N updates → N rows)
  - supplied / cleared / omitted fields are distinguishable
  - current_stage stays consistent with the newest entry
  - stage jumps backwards and same-stage updates
  - completion from any stage, once, with completed_by
  - flag and notes updates
"""

import json

import pytest

from orderflow.core.exceptions import AlreadyCompletedError, NotFoundError, ValidationError
from orderflow.models import db
from orderflow.models.audit import AuditLog
from orderflow.models.task import AskingTask, AskingTaskStage
from orderflow.services import asking_task_engine as engine
from orderflow.services.asking_task_engine import UNSET, StageFields


@pytest.fixture()
def asking(make_service, make_order):
    svc = make_service("Client Brief", type="ASKING")
    order = make_order(services=[svc])
    return AskingTask.query.filter_by(order_id=order.id).one()


def _history(task):
    return (
        AskingTaskStage.query.filter_by(asking_task_id=task.id)
        .order_by(AskingTaskStage.id)
        .all()
    )


class TestStageFields:
    def test_defaults_are_unset(self):
        fields = StageFields()
        assert fields.note is UNSET
        assert fields.supplied() == {}

    def test_none_is_an_explicit_clear(self):
        fields = StageFields(note=None, staff_name="Ana")
        assert fields.supplied() == {"staff_name": "Ana", "note": None}

    def test_from_payload_keeps_only_present_keys(self):
        fields = StageFields.from_payload({"initial_confirmation": "Yes", "update_request": None})
        assert fields.supplied() == {"initial_confirmation": "Yes", "update_request": None}
        assert fields.staff_name is UNSET

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            StageFields.from_payload({"colour": "blue"})

    def test_non_string_value_rejected(self):
        with pytest.raises(ValidationError):
            StageFields(note=42)


class TestUpdateStage:
    def test_n_updates_give_n_entries(self, asking):
        stages = ["SHARED", "VERIFIED", "SHARED", "INFORMED_TEAM", "INFORMED_TEAM"]
        for stage in stages:
            engine.update_asking_stage(asking.id, stage, "u-1")

        history = _history(asking)
        assert [h.stage for h in history] == stages
        assert asking.current_stage == "INFORMED_TEAM"

    def test_history_entries_are_not_modified(self, asking):
        engine.update_asking_stage(asking.id, "SHARED", "u-1", StageFields(note="first"))
        first = _history(asking)[0]
        snapshot = (first.id, first.stage, first.fields_json, first.updated_by)

        engine.update_asking_stage(asking.id, "SHARED", "u-2", StageFields(note="second"))

        db.session.expire_all()
        again = db.session.get(AskingTaskStage, snapshot[0])
        assert (again.id, again.stage, again.fields_json, again.updated_by) == snapshot

    def test_only_supplied_fields_recorded(self, asking):
        engine.update_asking_stage(
            asking.id, "SHARED", "u-1",
            StageFields(initial_confirmation="Yes", note=None),
        )

        entry = _history(asking)[0]
        assert json.loads(entry.fields_json) == {"initial_confirmation": "Yes", "note": None}
        assert entry.updated_by == "u-1"

    def test_stage_none_keeps_current_stage(self, asking):
        engine.update_asking_stage(asking.id, "VERIFIED", "u-1")

        engine.update_asking_stage(asking.id, None, "u-1", StageFields(staff_name="Ana"))

        assert asking.current_stage == "VERIFIED"
        assert [h.stage for h in _history(asking)] == ["VERIFIED", "VERIFIED"]

    def test_backwards_jump_allowed(self, asking):
        engine.update_asking_stage(asking.id, "INFORMED_TEAM", "u-1")

        engine.update_asking_stage(asking.id, "ASKED", "u-1")

        assert asking.current_stage == "ASKED"

    def test_invalid_stage_rejected(self, asking):
        with pytest.raises(ValidationError):
            engine.update_asking_stage(asking.id, "ARCHIVED", "u-1")
        assert _history(asking) == []

    def test_unknown_asking_task(self):
        with pytest.raises(NotFoundError):
            engine.update_asking_stage(777, "SHARED", "u-1")

    def test_projection_consistent_after_updates(self, asking):
        assert engine.stage_projection_consistent(asking)
        for stage in ("SHARED", "ASKED", "VERIFIED"):
            engine.update_asking_stage(asking.id, stage, "u-1")
            assert engine.stage_projection_consistent(asking)

    def test_projection_inconsistency_detected(self, asking):
        engine.update_asking_stage(asking.id, "SHARED", "u-1")
        asking.current_stage = "VERIFIED"

        assert not engine.stage_projection_consistent(asking)

    def test_update_after_completion_allowed(self, asking):
        engine.complete_asking_task(asking.id, "u-1")

        engine.update_asking_stage(asking.id, "INFORMED_TEAM", "u-1")

        assert asking.current_stage == "INFORMED_TEAM"
        assert asking.is_completed


class TestStageOverview:
    def test_latest_supplying_entry_wins_per_field(self, asking):
        engine.update_asking_stage(asking.id, "SHARED", "u-1", StageFields(note="a", staff_name="Ana"))
        engine.update_asking_stage(asking.id, "SHARED", "u-2", StageFields(note="b"))
        engine.update_asking_stage(asking.id, "VERIFIED", "u-3", StageFields(note="c"))
        engine.update_asking_stage(asking.id, "SHARED", "u-4", StageFields(staff_name=None))

        overview = engine.stage_overview(asking)

        shared = overview["stages"]["SHARED"]
        assert shared["fields"] == {"note": "b", "staff_name": None}
        assert shared["entries"] == 3
        assert shared["last_updated_by"] == "u-4"
        assert overview["stages"]["VERIFIED"]["fields"] == {"note": "c"}
        assert overview["stages"]["ASKED"]["entries"] == 0
        assert overview["current_stage"] == "SHARED"


class TestCompletion:
    @pytest.mark.parametrize("stage", ["ASKED", "SHARED", "VERIFIED", "INFORMED_TEAM"])
    def test_complete_from_any_stage(self, asking, stage):
        if stage != "ASKED":
            engine.update_asking_stage(asking.id, stage, "u-1")

        engine.complete_asking_task(asking.id, "u-closer", notes="done")

        assert asking.is_completed
        assert asking.completed_by == "u-closer"
        assert asking.completion_notes == "done"
        assert asking.current_stage == stage

    def test_completed_by_may_differ_from_assignee(self, asking):
        asking.assigned_to = "u-owner"
        db.session.commit()

        engine.complete_asking_task(asking.id, "u-other")

        assert asking.assigned_to == "u-owner"
        assert asking.completed_by == "u-other"

    def test_second_completion_rejected(self, asking):
        engine.complete_asking_task(asking.id, "u-1")
        completed_at = asking.completed_at

        with pytest.raises(AlreadyCompletedError):
            engine.complete_asking_task(asking.id, "u-2")

        assert asking.completed_at == completed_at
        assert asking.completed_by == "u-1"


class TestFlagAndNotes:
    def test_flag_toggle(self, asking):
        engine.set_asking_flag(asking.id, True, "u-1")
        assert asking.is_flagged is True

        engine.set_asking_flag(asking.id, False, "u-1")
        assert asking.is_flagged is False

    def test_flag_requires_boolean(self, asking):
        with pytest.raises(ValidationError):
            engine.set_asking_flag(asking.id, "yes", "u-1")

    def test_notes_record_author(self, asking):
        engine.update_asking_notes(asking.id, "Call back Monday", "u-5")

        assert asking.notes == "Call back Monday"
        assert asking.notes_updated_by == "u-5"
        row = AuditLog.query.filter_by(action="asking_task.notes").one()
        assert row.new_value == {"notes": "Call back Monday"}
