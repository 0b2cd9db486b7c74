"""
Primary-key lookup helpers for the service layer.

Every get-by-id in the engine goes through these helpers so a missing row
always surfaces as ``NotFoundError`` (→ HTTP 404) instead of ``None``
leaking into business logic.

Usage:
    order = get_or_raise(Order, order_id)

    # Read-then-write paths lock the row for the rest of the transaction
    order = get_for_update(Order, order_id)
"""

import logging

from sqlalchemy import select

from orderflow.core.exceptions import NotFoundError
from orderflow.models import db
from orderflow.models.catalog import Service
from orderflow.models.task import AskingTask, Task

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label: str | None = None):
    """Fetch a single entity by PK or raise NotFoundError."""
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk)
    return obj


def get_for_update(model, pk, label: str | None = None):
    """Fetch a single entity by PK with ``SELECT ... FOR UPDATE``.

    Serialises concurrent read-then-write operations on the same row
    (PostgreSQL row lock; SQLite already serialises writers).
    """
    if pk is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk)
    stmt = select(model).where(model.id == pk).with_for_update(of=model)
    obj = db.session.execute(stmt).scalar_one_or_none()
    if obj is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk)
    return obj


def get_service(service_id):
    """Catalog lookup: the Service row or NotFoundError."""
    return get_or_raise(Service, service_id)


def lock_order_units(order_id):
    """Lock and refresh every Task and AskingTask of an order.

    Paths that decide on ``assigned_to`` (removal eligibility, the
    auto-assign pass) must hold these row locks, because the task
    assignment operations lock only the task row, not the order.
    ``populate_existing`` overwrites stale identity-map state with the
    values read under the lock.

    Returns:
        ``(tasks, asking_tasks)`` in ascending id order.
    """
    locked = []
    for model in (Task, AskingTask):
        stmt = (
            select(model)
            .where(model.order_id == order_id)
            .order_by(model.id)
            .with_for_update(of=model)
            .execution_options(populate_existing=True)
        )
        locked.append(db.session.execute(stmt).scalars().all())
    return tuple(locked)
