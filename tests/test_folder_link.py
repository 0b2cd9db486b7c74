"""
Tests for the folder-link auto-assignment trigger.

Covers:
  - eligible unassigned tasks and asking tasks get the service target
  - units of services without auto-assign are left alone
  - already-assigned units are never reassigned
  - replaying the trigger is idempotent
  - attach_folder_link stores + audits the link in the same transaction
"""

import pytest
from sqlalchemy import update

from orderflow.core.exceptions import NotFoundError, ValidationError
from orderflow.models import db
from orderflow.models.audit import AuditLog
from orderflow.models.order import Order
from orderflow.models.task import AskingTask, Task
from orderflow.services import task_lifecycle
from orderflow.services.folder_link import attach_folder_link, on_folder_link_attached


@pytest.fixture()
def mixed_order(make_service, make_order):
    """Four units: three auto-assignable (two direct, one asking), one not."""
    a = make_service("Retouch", auto_assign_user_id="u-retouch")
    b = make_service("Client Brief", type="ASKING", auto_assign_user_id="u-brief")
    c = make_service("Print")
    return make_order(services=[a, a, b, c])


class TestOnFolderLinkAttached:
    def test_assigns_three_and_leaves_fourth(self, mixed_order):
        result = attach_folder_link(mixed_order.id, "https://files/ord", "lead")

        assert result["auto_assigned_count"] == 3
        tasks = Task.query.filter_by(order_id=mixed_order.id).order_by(Task.id).all()
        assert [(t.assigned_to, t.status) for t in tasks] == [
            ("u-retouch", "ASSIGNED"),
            ("u-retouch", "ASSIGNED"),
            (None, "NOT_ASSIGNED"),
        ]
        asking = AskingTask.query.filter_by(order_id=mixed_order.id).one()
        assert asking.assigned_to == "u-brief"
        assert asking.current_stage == "ASKED"

    def test_replay_is_idempotent(self, mixed_order):
        attach_folder_link(mixed_order.id, "https://files/ord", "lead")

        again = on_folder_link_attached(mixed_order.id, "lead")

        assert again == {"auto_assigned_count": 0}

    def test_never_reassigns(self, make_service, make_order):
        svc = make_service("Retouch", auto_assign_user_id="u-auto")
        order = make_order(services=[svc])
        task = Task.query.filter_by(order_id=order.id).one()
        task_lifecycle.assign_task(task.id, "u-manual", "lead")

        result = attach_folder_link(order.id, "https://files/ord", "lead")

        assert result["auto_assigned_count"] == 0
        assert db.session.get(Task, task.id).assigned_to == "u-manual"

    def test_skips_assignment_committed_elsewhere(self, make_service, make_order):
        svc = make_service("Retouch", auto_assign_user_id="u-auto")
        order = make_order(services=[svc])
        task = Task.query.filter_by(order_id=order.id).one()
        assert task.assigned_to is None
        db.session.execute(
            update(Task)
            .where(Task.id == task.id)
            .values(assigned_to="u-manual", status="ASSIGNED")
            .execution_options(synchronize_session=False)
        )

        result = attach_folder_link(order.id, "https://files/ord", "lead")

        assert result["auto_assigned_count"] == 0
        assert db.session.get(Task, task.id).assigned_to == "u-manual"

    def test_requires_folder_link(self, mixed_order):
        with pytest.raises(ValidationError):
            on_folder_link_attached(mixed_order.id, "lead")

    def test_unknown_order(self):
        with pytest.raises(NotFoundError):
            on_folder_link_attached(12345)

    def test_writes_one_auto_assign_audit(self, mixed_order):
        attach_folder_link(mixed_order.id, "https://files/ord", "lead")

        rows = AuditLog.query.filter_by(
            entity_id=str(mixed_order.id), action="order.auto_assign",
        ).all()
        assert len(rows) == 1
        assert len(rows[0].new_value["assignments"]) == 3


class TestAttachFolderLink:
    def test_stores_link_and_audits(self, mixed_order):
        result = attach_folder_link(mixed_order.id, "  https://files/ord  ", "lead")

        assert result["order"]["folder_link"] == "https://files/ord"
        assert db.session.get(Order, mixed_order.id).folder_link == "https://files/ord"
        row = AuditLog.query.filter_by(action="order.attach_folder_link").one()
        assert row.old_value == {"folder_link": None}
        assert row.actor == "lead"

    @pytest.mark.parametrize("link", ["", "   ", None])
    def test_blank_link_rejected(self, mixed_order, link):
        with pytest.raises(ValidationError):
            attach_folder_link(mixed_order.id, link, "lead")

        assert db.session.get(Order, mixed_order.id).folder_link is None
        assert Task.query.filter(Task.assigned_to.isnot(None)).count() == 0
