"""
Task Factory.

Derives the single downstream unit of a freshly created ServiceInstance:

    DIRECT service  → Task        (NOT_ASSIGNED, or ASSIGNED when auto-assigned)
    ASKING service  → AskingTask  (stage ASKED; assignee only when auto-assigned)

Auto-assignment applies at creation time only when the service has
auto-assign enabled with a target user AND the order already has its
folder link.  Otherwise the unit waits for the folder-link trigger
(see ``orderflow.services.folder_link``).

The output depends only on (service definition, order folder-link state),
so identical inputs always produce the same initial status and assignee.
"""

import logging

from flask import current_app, has_app_context

from orderflow.models import db
from orderflow.models.catalog import SERVICE_TYPE_ASKING, SERVICE_TYPE_DIRECT
from orderflow.models.task import AskingTask, Task

logger = logging.getLogger(__name__)

_FALLBACK_PRIORITY = "MEDIUM"


def _default_priority() -> str:
    if has_app_context():
        return current_app.config.get("DEFAULT_TASK_PRIORITY", _FALLBACK_PRIORITY)
    return _FALLBACK_PRIORITY


def build_title(service, order) -> str:
    """Display title derived from the service name and order number."""
    if order.order_number:
        return f"{service.name} - {order.order_number}"
    return service.name


def resolve_auto_assignee(service, order) -> str | None:
    """Target user when the creation-time auto-assign condition holds."""
    if not order.folder_link:
        return None
    return service.auto_assign_target


def create_downstream_unit(instance, service, order):
    """Create and flush the Task or AskingTask owned by *instance*.

    Args:
        instance: The newly flushed ServiceInstance.
        service: Its resolved catalog Service.
        order: The owning Order (folder-link state is read from it).

    Returns:
        The created Task or AskingTask.

    Raises:
        ValueError: If the service type is unknown.
    """
    assignee = resolve_auto_assignee(service, order)
    common = {
        "order_id": order.id,
        "service_instance_id": instance.id,
        "service_id": service.id,
        "team_id": service.team_id,
        "title": build_title(service, order),
        "priority": _default_priority(),
        "assigned_to": assignee,
    }

    if service.type == SERVICE_TYPE_DIRECT:
        unit = Task(status="ASSIGNED" if assignee else "NOT_ASSIGNED", **common)
        instance.task = unit
    elif service.type == SERVICE_TYPE_ASKING:
        unit = AskingTask(
            current_stage="ASKED",
            is_mandatory=bool(service.is_mandatory),
            **common,
        )
        instance.asking_task = unit
    else:
        raise ValueError(f"Unknown service type '{service.type}' for service {service.id}")

    db.session.add(unit)
    db.session.flush()

    if assignee:
        logger.info(
            "Auto-assigned %s %s (order=%s service=%s) to %s at creation",
            type(unit).__name__, unit.id, order.id, service.id, assignee,
        )
    return unit
