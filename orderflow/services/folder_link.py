"""
Folder-Link Auto-Assignment Trigger.

Attaching the shared resource folder to an order is the event that makes
auto-assignment possible.  ``on_folder_link_attached`` is that event as an
explicit, replayable call: every still-unassigned Task and AskingTask of
the order whose service has auto-assign enabled with a target user gets
that user.  Direct tasks also move NOT_ASSIGNED → ASSIGNED; asking tasks
keep their stage.

Already-assigned units are never touched, so running the trigger again is
a no-op for them.

Usage:
    from orderflow.services.folder_link import attach_folder_link, on_folder_link_attached

    attach_folder_link(order_id=5, folder_link="https://drive/…", acting_user_id="u-1")
    on_folder_link_attached(order_id=5)   # replay → {"auto_assigned_count": 0}
"""

import logging

from orderflow.core.exceptions import ValidationError
from orderflow.models import db
from orderflow.models.audit import write_audit
from orderflow.models.order import Order
from orderflow.services.helpers.lookups import get_for_update, lock_order_units
from orderflow.services.helpers.transaction import transactional

logger = logging.getLogger(__name__)


def _unassigned(units):
    return [u for u in units if u.assigned_to is None]


def _auto_assign_order_units(order: Order, actor: str | None) -> int:
    """Assign every eligible unassigned unit of *order*; return the count."""
    if not order.folder_link:
        raise ValidationError(
            f"Order {order.id} has no folder link",
            details={"folder_link": "required before auto-assignment"},
        )

    # Row locks keep a concurrent manual assignment from being overwritten.
    tasks, asking_tasks = lock_order_units(order.id)

    assigned = []
    for task in _unassigned(tasks):
        target = task.service.auto_assign_target if task.service is not None else None
        if not target or task.status != "NOT_ASSIGNED":
            continue
        task.assigned_to = target
        task.status = "ASSIGNED"
        assigned.append({"task_id": task.id, "assigned_to": target})

    for asking in _unassigned(asking_tasks):
        target = asking.service.auto_assign_target if asking.service is not None else None
        if not target:
            continue
        asking.assigned_to = target
        assigned.append({"asking_task_id": asking.id, "assigned_to": target})

    if assigned:
        db.session.flush()
        write_audit(
            entity_type="order",
            entity_id=order.id,
            action="order.auto_assign",
            actor=actor,
            new_value={"assignments": assigned},
            description=f"Auto-assigned {len(assigned)} unit(s) after folder link attachment",
        )
        logger.info("Auto-assigned %d unit(s) for order %s", len(assigned), order.id)
    return len(assigned)


@transactional
def on_folder_link_attached(order_id: int, acting_user_id: str | None = None) -> dict:
    """Run the auto-assignment pass for an order that has its folder link.

    Returns:
        ``{"auto_assigned_count": int}``

    Raises:
        NotFoundError: Unknown order.
        ValidationError: The order has no folder link.
    """
    order = get_for_update(Order, order_id)
    count = _auto_assign_order_units(order, acting_user_id)
    return {"auto_assigned_count": count}


@transactional
def attach_folder_link(order_id: int, folder_link: str, acting_user_id: str) -> dict:
    """Store the folder link and fire the auto-assignment trigger once.

    Both happen in one transaction.

    Returns:
        ``{"order": dict, "auto_assigned_count": int}``
    """
    folder_link = (folder_link or "").strip()
    if not folder_link:
        raise ValidationError("folder_link is required", details={"folder_link": "required"})
    if len(folder_link) > 1000:
        raise ValidationError("folder_link must be ≤ 1000 characters", details={"folder_link": "too long"})

    order = get_for_update(Order, order_id)
    old_link = order.folder_link
    order.folder_link = folder_link
    db.session.flush()

    write_audit(
        entity_type="order",
        entity_id=order.id,
        action="order.attach_folder_link",
        actor=acting_user_id,
        old_value={"folder_link": old_link},
        new_value={"folder_link": folder_link},
        description=f"Added folder link to order: {order.order_number}",
    )
    count = _auto_assign_order_units(order, acting_user_id)
    logger.info("Folder link attached to order %s by %s", order.id, acting_user_id)
    return {"order": order.to_dict(), "auto_assigned_count": count}
