"""
Order Workflow Engine
Order domain models.

Models:
    - Order:            a customer order composed of service instances
    - ServiceInstance:  one purchased unit of a catalog service within an order

Architecture:
    OrderType ──1:N──▶ Order ──1:N──▶ ServiceInstance ──1:1──▶ Task | AskingTask

Quantity is the number of ServiceInstance rows per (order, service); there is
no integer quantity column.  Each instance tracks its own downstream unit so
removal eligibility is decided per instance.

Lifecycle states:
    Order:  PENDING → IN_PROGRESS → COMPLETED  |  PENDING/IN_PROGRESS → CANCELLED
"""

from datetime import datetime, timezone

from orderflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ORDER_STATUSES = {"PENDING", "IN_PROGRESS", "COMPLETED", "CANCELLED"}

# Orders in these states reject any change to their service composition.
LOCKED_ORDER_STATUSES = {"COMPLETED", "CANCELLED"}

ORDER_TRANSITIONS = {
    "PENDING":     ["IN_PROGRESS", "CANCELLED"],
    "IN_PROGRESS": ["COMPLETED", "CANCELLED"],
    "COMPLETED":   [],
    "CANCELLED":   [],
}


def validate_order_transition(old_status, new_status):
    """Return True if Order status transition is valid."""
    return new_status in ORDER_TRANSITIONS.get(old_status, [])


class Order(db.Model):
    """
    Customer order.

    ``is_customized`` is derived: True when the instance multiset deviates
    from the order type's template (different service ids, or any service
    ordered more than once).  It is recomputed by the reconciler and at
    creation time, never edited directly.
    """

    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(40), unique=True, nullable=False)
    customer_name = db.Column(db.String(200), nullable=False, default="")
    order_type_id = db.Column(
        db.Integer, db.ForeignKey("order_types.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

    folder_link = db.Column(db.String(1000), nullable=True, comment="Shared resource folder URL")
    status = db.Column(
        db.String(20), nullable=False, default="PENDING",
        comment="PENDING | IN_PROGRESS | COMPLETED | CANCELLED",
    )
    is_customized = db.Column(db.Boolean, nullable=False, default=False)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    order_type = db.relationship("OrderType", lazy="joined")
    service_instances = db.relationship(
        "ServiceInstance", back_populates="order", lazy="select",
        cascade="all, delete-orphan", order_by="ServiceInstance.id",
    )

    @property
    def template_service_ids(self) -> set[int]:
        if self.order_type is None:
            return set()
        return self.order_type.template_service_ids

    def to_dict(self, include_instances=False) -> dict:
        d = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "order_type_id": self.order_type_id,
            "folder_link": self.folder_link,
            "status": self.status,
            "is_customized": self.is_customized,
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_instances:
            d["service_instances"] = [si.to_dict() for si in self.service_instances]
        return d

    def __repr__(self):
        return f"<Order {self.id}: {self.order_number} [{self.status}]>"


class ServiceInstance(db.Model):
    """
    One ordered unit of a service.

    Owns at most one downstream unit: a Task for DIRECT services or an
    AskingTask for ASKING services.  Deleting the instance deletes that unit
    (and the asking task's stage history).
    """

    __tablename__ = "order_service_instances"
    __table_args__ = (
        db.Index("idx_instance_order_service", "order_id", "service_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    service_id = db.Column(
        db.Integer, db.ForeignKey("services.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    order = db.relationship("Order", back_populates="service_instances")
    service = db.relationship("Service", lazy="joined")
    task = db.relationship(
        "Task", back_populates="service_instance", uselist=False,
        cascade="all, delete-orphan",
    )
    asking_task = db.relationship(
        "AskingTask", back_populates="service_instance", uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def downstream(self):
        """The Task or AskingTask spawned by this instance, if any."""
        return self.task if self.task is not None else self.asking_task

    def to_dict(self) -> dict:
        unit = self.downstream
        return {
            "id": self.id,
            "order_id": self.order_id,
            "service_id": self.service_id,
            "task_id": self.task.id if self.task is not None else None,
            "asking_task_id": self.asking_task.id if self.asking_task is not None else None,
            "assigned_to": unit.assigned_to if unit is not None else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ServiceInstance {self.id}: order={self.order_id} service={self.service_id}>"
