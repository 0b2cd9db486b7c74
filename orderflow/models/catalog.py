"""
Order Workflow Engine
Service catalog models.

Models:
    - Service:           a sellable service definition (direct task or asking workflow)
    - OrderType:         a named bundle of services used as an order template
    - OrderTypeService:  template membership (OrderType ──N:M──▶ Service)

The catalog is maintained by admin screens outside the engine; the engine
only reads it.
"""

from datetime import datetime, timezone

from orderflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SERVICE_TYPE_DIRECT = "DIRECT"
SERVICE_TYPE_ASKING = "ASKING"

SERVICE_TYPES = {SERVICE_TYPE_DIRECT, SERVICE_TYPE_ASKING}


class Service(db.Model):
    """
    Catalog service definition.

    ``type`` decides which downstream unit an ordered instance spawns:
    DIRECT → Task, ASKING → AskingTask.  Auto-assignment fires only when
    ``auto_assign_enabled`` is set AND a target user is configured.
    """

    __tablename__ = "services"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(
        db.String(20), nullable=False, default=SERVICE_TYPE_DIRECT,
        comment="DIRECT | ASKING",
    )
    team_id = db.Column(db.Integer, nullable=True, index=True, comment="Owning team (external)")
    is_mandatory = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Auto-assignment
    auto_assign_enabled = db.Column(db.Boolean, nullable=False, default=False)
    auto_assign_user_id = db.Column(
        db.String(64), nullable=True,
        comment="User bound when the order's folder link is available",
    )

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    @property
    def auto_assign_target(self) -> str | None:
        """Configured auto-assignee, or None when auto-assignment is off."""
        if self.auto_assign_enabled and self.auto_assign_user_id:
            return self.auto_assign_user_id
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "team_id": self.team_id,
            "is_mandatory": self.is_mandatory,
            "is_active": self.is_active,
            "auto_assign_enabled": self.auto_assign_enabled,
            "auto_assign_user_id": self.auto_assign_user_id,
        }

    def __repr__(self):
        return f"<Service {self.id}: {self.name} ({self.type})>"


class OrderType(db.Model):
    """Order template: the default service set for new orders of this type."""

    __tablename__ = "order_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    template_links = db.relationship(
        "OrderTypeService", backref="order_type", lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def template_service_ids(self) -> set[int]:
        return {link.service_id for link in self.template_links}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "service_ids": sorted(self.template_service_ids),
        }

    def __repr__(self):
        return f"<OrderType {self.id}: {self.name}>"


class OrderTypeService(db.Model):
    """Template membership row."""

    __tablename__ = "order_type_services"
    __table_args__ = (
        db.UniqueConstraint("order_type_id", "service_id", name="uq_order_type_service"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_type_id = db.Column(
        db.Integer, db.ForeignKey("order_types.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    service_id = db.Column(
        db.Integer, db.ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    service = db.relationship("Service", lazy="joined")
