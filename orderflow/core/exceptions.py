"""
Engine-wide exception hierarchy.

Services raise these types; the application factory registers one
handler per type so every blueprint gets the same HTTP mapping.

Usage:
    from orderflow.core.exceptions import NotFoundError, CapacityError

    raise NotFoundError(resource="Order", resource_id=42)
    raise CapacityError(service_id=7, requested=3, max_removable=1)

Any of these aborts the enclosing transaction; callers must not retry
without changing the request or the underlying state.
"""

from orderflow.utils.errors import E


class NotFoundError(Exception):
    """Raised when a referenced order, service, task or instance does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Order", "Task").
        resource_id: The PK that was looked up.
    """

    code = E.NOT_FOUND

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    code = E.VALIDATION_INVALID

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class DomainError(Exception):
    """Base for state conflicts raised by the lifecycle engine (HTTP 409)."""

    code = E.CONFLICT_STATE

    @property
    def details(self) -> dict:
        return {}


class CapacityError(DomainError):
    """Removal requested exceeds the removable instances of a service."""

    code = E.CAPACITY

    def __init__(self, service_id: int, requested: int, max_removable: int) -> None:
        self.service_id = service_id
        self.requested = requested
        self.max_removable = max_removable
        super().__init__(
            f"Cannot remove {requested} instance(s) of service {service_id}: "
            f"at most {max_removable} can be removed (the rest have assigned work)"
        )

    @property
    def details(self) -> dict:
        return {
            "service_id": self.service_id,
            "requested": self.requested,
            "max_removable": self.max_removable,
        }


class InvalidTransitionError(DomainError):
    """Task or asking-task operation requested from an incompatible state."""

    code = E.INVALID_TRANSITION

    def __init__(
        self,
        entity: str,
        entity_id: int,
        current: str,
        requested: str,
        reason: str | None = None,
    ) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.current_status = current
        self.requested_status = requested
        msg = f"Cannot move {entity} {entity_id} from {current} to {requested}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    @property
    def details(self) -> dict:
        return {
            "entity": self.entity,
            "entity_id": self.entity_id,
            "current": self.current_status,
            "requested": self.requested_status,
        }


class AlreadyCompletedError(DomainError):
    """Completion requested for a unit that is already completed."""

    code = E.ALREADY_COMPLETED

    def __init__(self, entity: str, entity_id: int) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} is already completed")

    @property
    def details(self) -> dict:
        return {"entity": self.entity, "entity_id": self.entity_id}


class LockedOrderStateError(DomainError):
    """Service composition change attempted on a COMPLETED or CANCELLED order."""

    code = E.ORDER_LOCKED

    def __init__(self, order_id: int, status: str) -> None:
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} is {status}; its services cannot be modified")

    @property
    def details(self) -> dict:
        return {"order_id": self.order_id, "status": self.status}


class DuplicateError(DomainError):
    """A unique business key (e.g. an order number) is already taken."""

    code = E.DUPLICATE

    def __init__(self, resource: str, field: str, value) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")

    @property
    def details(self) -> dict:
        return {self.field: self.value}
