"""
Order Service Reconciler.

Brings an order's service instances in line with a desired
``{service_id: count}`` mapping in one transaction:

  1. Lock the order row; COMPLETED / CANCELLED orders are rejected.
  2. Lock the order's tasks and asking tasks, then partition current
     instances per service into removable / locked
     (``service_composition.partition_instances``).
  3. Validate every shrinking service against its removable capacity
     BEFORE any write — one CapacityError rejects the whole request.
  4. Delete the selected instances (cascading their unassigned task or
     asking task + stage history), flush, THEN create the additions and
     run the Task Factory for each, so the eligibility check never sees
     this call's own additions.
  5. Recompute the order's customization flag.
  6. Write one audit row with before/after counts per service.

A service id omitted from ``desired`` (or mapped to 0) means "none".
Calling twice with the same mapping is a no-op the second time.

Usage:
    from orderflow.services.order_service_reconciler import reconcile_services

    result = reconcile_services(order_id=12, desired={3: 2, 5: 1}, acting_user_id="u-1")
    # {"added": 1, "removed": 0}
"""

import logging

from orderflow.core.exceptions import (
    CapacityError,
    LockedOrderStateError,
    ValidationError,
)
from orderflow.models import db
from orderflow.models.audit import write_audit
from orderflow.models.catalog import Service
from orderflow.models.order import LOCKED_ORDER_STATUSES, Order, ServiceInstance
from orderflow.services.helpers.lookups import (
    get_for_update,
    get_or_raise,
    get_service,
    lock_order_units,
)
from orderflow.services.service_composition import (
    compute_customized,
    instance_counts,
    partition_instances,
)
from orderflow.services.task_factory import create_downstream_unit

logger = logging.getLogger(__name__)


def normalize_desired(desired) -> dict[int, int]:
    """Validate a desired mapping and coerce keys to int.

    Zero counts are dropped (same meaning as omission).

    Raises:
        ValidationError: On a non-mapping, non-integer id or count, or a
            negative count.
    """
    if not isinstance(desired, dict):
        raise ValidationError("services must be an object of {service_id: count}")

    wanted: dict[int, int] = {}
    errors = {}
    for raw_id, raw_count in desired.items():
        try:
            sid = int(raw_id)
        except (TypeError, ValueError):
            errors[str(raw_id)] = "service id must be an integer"
            continue
        if isinstance(raw_count, bool) or not isinstance(raw_count, int):
            errors[str(raw_id)] = "count must be an integer"
            continue
        if raw_count < 0:
            errors[str(raw_id)] = "count must be >= 0"
            continue
        if raw_count > 0:
            wanted[sid] = wanted.get(sid, 0) + raw_count
    if errors:
        raise ValidationError("Invalid service quantities", details=errors)
    return wanted


def _resolve_additions(additions: dict[int, int]) -> dict[int, Service]:
    """Catalog lookup for every service that gains instances."""
    services = {}
    for sid in sorted(additions):
        service = get_service(sid)
        if not service.is_active:
            raise ValidationError(
                f"Service {sid} is inactive and cannot be added",
                details={"service_id": sid},
            )
        services[sid] = service
    return services


def _plan_removals(groups, wanted: dict[int, int]) -> list[ServiceInstance]:
    """Pick the instances to delete, or raise CapacityError.

    Locked instances are never selected; among removable ones the newest
    go first.
    """
    selected = []
    for sid in sorted(groups):
        group = groups[sid]
        remove_count = group.count - wanted.get(sid, 0)
        if remove_count <= 0:
            continue
        if remove_count > len(group.removable):
            raise CapacityError(
                service_id=sid,
                requested=remove_count,
                max_removable=len(group.removable),
            )
        selected.extend(group.removable[-remove_count:])
    return selected


def _reconcile(order_id: int, desired, acting_user_id: str) -> dict:
    order = get_for_update(Order, order_id)
    if order.status in LOCKED_ORDER_STATUSES:
        raise LockedOrderStateError(order_id=order.id, status=order.status)

    wanted = normalize_desired(desired)
    lock_order_units(order.id)
    current = list(order.service_instances)
    groups = partition_instances(current)
    before = instance_counts(current)
    was_customized = order.is_customized

    additions = {
        sid: n - (groups[sid].count if sid in groups else 0)
        for sid, n in wanted.items()
        if n > (groups[sid].count if sid in groups else 0)
    }

    # Validation phase: nothing is written until both checks pass.
    to_remove = _plan_removals(groups, wanted)
    services = _resolve_additions(additions)

    # Removals first, flushed, so additions never count as removable.
    for inst in to_remove:
        order.service_instances.remove(inst)
    db.session.flush()

    added = 0
    for sid in sorted(additions):
        service = services[sid]
        for _ in range(additions[sid]):
            inst = ServiceInstance(service_id=sid, service=service)
            order.service_instances.append(inst)
            db.session.flush()
            create_downstream_unit(inst, service, order)
            added += 1

    after = instance_counts(order.service_instances)
    order.is_customized = compute_customized(after, order.template_service_ids)

    removed = len(to_remove)
    write_audit(
        entity_type="order",
        entity_id=order.id,
        action="order.reconcile_services",
        actor=acting_user_id,
        old_value={"services": before, "is_customized": was_customized},
        new_value={"services": after, "is_customized": order.is_customized},
        description=f"Updated order services. Removed: {removed}, Added: {added}",
    )
    return {"added": added, "removed": removed}


def reconcile_services(order_id: int, desired, acting_user_id: str) -> dict:
    """Reconcile an order's service instances against *desired*.

    Args:
        order_id: Order to edit.
        desired: ``{service_id: count}``; omitted ids mean count 0.
        acting_user_id: Recorded in the audit trail.

    Returns:
        ``{"added": int, "removed": int}``

    Raises:
        NotFoundError: Order or an added service does not exist.
        LockedOrderStateError: Order is COMPLETED or CANCELLED.
        CapacityError: A service cannot shrink that far without touching
            assigned work.
        ValidationError: Malformed mapping or inactive added service.
    """
    try:
        result = _reconcile(order_id, desired, acting_user_id)
        db.session.commit()
    except CapacityError as exc:
        db.session.rollback()
        logger.warning("Reconcile rejected for order %s: %s", order_id, exc)
        raise
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Reconciled services for order %s by %s: added=%d removed=%d",
        order_id, acting_user_id, result["added"], result["removed"],
    )
    return result


def get_order_services(order_id: int) -> dict:
    """Read model for the edit-services screen.

    Returns per-service counts split into removable / locked plus the
    active catalog services offered by the order's type.
    """
    order = get_or_raise(Order, order_id)
    groups = partition_instances(order.service_instances)

    current = []
    for sid in sorted(groups):
        entry = groups[sid].to_dict()
        service = db.session.get(Service, sid)
        entry["service"] = service.to_dict() if service else None
        entry["can_remove"] = len(groups[sid].removable) > 0
        current.append(entry)

    available = []
    if order.order_type is not None:
        available = [
            link.service.to_dict()
            for link in order.order_type.template_links
            if link.service is not None and link.service.is_active
        ]

    return {
        "order": {
            "id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "is_customized": order.is_customized,
        },
        "current_services": current,
        "available_services": available,
    }
