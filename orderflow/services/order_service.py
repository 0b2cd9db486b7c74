"""
Order Service.

Business logic for order creation and the order status lifecycle.
All ORM operations and commits live here — blueprints call these
functions and return JSON responses.

Functions:
    - generate_order_number:  next ORD-00001 style number
    - create_order:           order + instances + downstream units from a template
                              or a custom service selection
    - get_order:              order by id (NotFoundError when missing)
    - transition_order:       PENDING → IN_PROGRESS → COMPLETED | CANCELLED
"""

import logging

from orderflow.core.exceptions import DuplicateError, InvalidTransitionError, ValidationError
from orderflow.models import db
from orderflow.models.audit import write_audit
from orderflow.models.catalog import OrderType, Service
from orderflow.models.order import Order, ServiceInstance, validate_order_transition
from orderflow.services.helpers.lookups import get_for_update, get_or_raise, get_service
from orderflow.services.helpers.transaction import transactional
from orderflow.services.service_composition import compute_customized, instance_counts
from orderflow.services.task_factory import create_downstream_unit
from orderflow.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = "ORD"


def generate_order_number() -> str:
    """Next sequential order number, e.g. ORD-00042.

    Race-safe on PostgreSQL via SELECT ... FOR UPDATE on the newest row;
    the unique constraint on order_number catches anything else.
    """
    full_prefix = ORDER_NUMBER_PREFIX + "-"
    last = (
        Order.query
        .filter(Order.order_number.like(f"{full_prefix}%"))
        .order_by(Order.id.desc())
        .with_for_update(of=Order)
        .first()
    )
    num = 1
    if last is not None:
        try:
            num = int(last.order_number.split("-")[1]) + 1
        except (IndexError, ValueError):
            num = (last.id or 0) + 1
    return f"{ORDER_NUMBER_PREFIX}-{num:05d}"


def _resolve_services(service_ids) -> list[Service]:
    resolved = []
    cache: dict[int, Service] = {}
    for raw in service_ids:
        try:
            sid = int(raw)
        except (TypeError, ValueError):
            raise ValidationError("service_ids must contain integers", details={"service_ids": raw}) from None
        if sid not in cache:
            service = get_service(sid)
            if not service.is_active:
                raise ValidationError(
                    f"Service {sid} is inactive and cannot be ordered",
                    details={"service_id": sid},
                )
            cache[sid] = service
        resolved.append(cache[sid])
    return resolved


@transactional
def create_order(data: dict, acting_user_id: str) -> Order:
    """Create an order and derive its service instances and work units.

    Args:
        data: ``order_type_id`` (required), ``customer_name``, ``order_number``,
              ``delivery_date``, ``notes``, ``folder_link`` and optional
              ``service_ids`` — a custom selection where a repeated id
              orders that service more than once.  Without ``service_ids``
              the order type's template is used.
        acting_user_id: Stored as creator and audit actor.

    Raises:
        NotFoundError: Unknown order type or service.
        ValidationError: Missing/invalid fields or inactive catalog rows.
        DuplicateError: ``order_number`` is already taken.
    """
    order_type_id = data.get("order_type_id")
    if not order_type_id:
        raise ValidationError("order_type_id is required", details={"order_type_id": "required"})
    order_type = get_or_raise(OrderType, order_type_id, label="Order type")
    if not order_type.is_active:
        raise ValidationError(f"Order type {order_type.id} is inactive")

    try:
        delivery_date = parse_datetime(data.get("delivery_date"))
    except ValueError as exc:
        raise ValidationError(str(exc), details={"delivery_date": "invalid datetime"}) from None

    service_ids = data.get("service_ids")
    if service_ids is None:
        service_ids = sorted(order_type.template_service_ids)
    elif not isinstance(service_ids, list):
        raise ValidationError("service_ids must be a list", details={"service_ids": "invalid type"})
    services = _resolve_services(service_ids)

    order_number = (data.get("order_number") or "").strip()
    if order_number and Order.query.filter_by(order_number=order_number).first() is not None:
        raise DuplicateError("Order", "order_number", order_number)

    order = Order(
        order_number=order_number or generate_order_number(),
        customer_name=(data.get("customer_name") or "").strip(),
        order_type_id=order_type.id,
        folder_link=(data.get("folder_link") or "").strip() or None,
        delivery_date=delivery_date,
        notes=data.get("notes"),
        status="PENDING",
        created_by=acting_user_id,
    )
    order.order_type = order_type
    db.session.add(order)
    db.session.flush()

    for service in services:
        inst = ServiceInstance(service_id=service.id, service=service)
        order.service_instances.append(inst)
        db.session.flush()
        create_downstream_unit(inst, service, order)

    counts = instance_counts(order.service_instances)
    order.is_customized = compute_customized(counts, order_type.template_service_ids)

    write_audit(
        entity_type="order",
        entity_id=order.id,
        action="order.create",
        actor=acting_user_id,
        new_value={
            "order_number": order.order_number,
            "order_type": order_type.name,
            "services": counts,
            "is_customized": order.is_customized,
        },
        description=f"Created order {order.order_number}",
    )
    logger.info(
        "Order %s (%s) created by %s with %d service instance(s)",
        order.id, order.order_number, acting_user_id, len(services),
    )
    return order


def get_order(order_id: int) -> Order:
    return get_or_raise(Order, order_id)


@transactional
def transition_order(order_id: int, new_status: str, acting_user_id: str) -> Order:
    """Move an order along ``ORDER_TRANSITIONS``.

    Raises:
        NotFoundError, InvalidTransitionError
    """
    order = get_for_update(Order, order_id)
    if not validate_order_transition(order.status, new_status):
        raise InvalidTransitionError("Order", order.id, order.status, new_status)

    old_status = order.status
    order.status = new_status
    write_audit(
        entity_type="order",
        entity_id=order.id,
        action="order.transition",
        actor=acting_user_id,
        old_value={"status": old_status},
        new_value={"status": new_status},
        description=f"Order status {old_status} → {new_status}",
    )
    logger.info("Order %s status %s → %s by %s", order.id, old_status, new_status, acting_user_id)
    return order
