"""
Orders Blueprint.

Endpoints:
  Order:        GET|POST /api/v1/orders, GET /api/v1/orders/<id>
                POST /api/v1/orders/<id>/transition
  Services:     GET  /api/v1/orders/<id>/services
                PUT  /api/v1/orders/<id>/services
  Folder link:  PATCH /api/v1/orders/<id>/folder-link
                POST  /api/v1/orders/<id>/auto-assign   (replay the trigger)

The acting user is read from the X-User header.  Service functions own
validation and commits; domain exceptions are mapped to HTTP by the
handlers registered in the application factory.
"""

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import select

from orderflow.blueprints import json_body, paginate_query
from orderflow.models import db
from orderflow.models.order import Order
from orderflow.models.task import AskingTask, Task
from orderflow.services import order_service
from orderflow.services.folder_link import attach_folder_link, on_folder_link_attached
from orderflow.services.order_service_reconciler import get_order_services, reconcile_services
from orderflow.utils.errors import E, api_error
from orderflow.utils.helpers import acting_user

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/v1")


def _desired_from_body(data: dict):
    """Accept ``{"services": {id: count}}`` or ``{"service_ids": [id, id, …]}``."""
    if "services" in data:
        return data["services"]
    ids = data.get("service_ids")
    if not isinstance(ids, list):
        return None
    desired: dict = {}
    for sid in ids:
        desired[sid] = desired.get(sid, 0) + 1
    return desired


@orders_bp.route("/orders", methods=["POST"])
def create_order():
    """Create an order from its order type template or a custom selection."""
    data = json_body()
    if not data.get("order_type_id"):
        return api_error(E.VALIDATION_REQUIRED, "order_type_id is required")
    order = order_service.create_order(data, acting_user())
    return jsonify(order.to_dict(include_instances=True)), 201


@orders_bp.route("/orders", methods=["GET"])
def list_orders():
    """List orders, newest first.  Filter: ?status=PENDING"""
    query = Order.query.order_by(Order.id.desc())
    status = request.args.get("status")
    if status:
        query = query.filter(Order.status == status.upper())
    items, total = paginate_query(query)
    return jsonify({"items": [o.to_dict() for o in items], "total": total})


@orders_bp.route("/orders/<int:order_id>", methods=["GET"])
def get_order(order_id):
    """Order with its service instances, tasks and asking tasks."""
    order = order_service.get_order(order_id)
    tasks = db.session.execute(
        select(Task).where(Task.order_id == order.id).order_by(Task.id)
    ).scalars().all()
    asking = db.session.execute(
        select(AskingTask).where(AskingTask.order_id == order.id).order_by(AskingTask.id)
    ).scalars().all()
    body = order.to_dict(include_instances=True)
    body["tasks"] = [t.to_dict() for t in tasks]
    body["asking_tasks"] = [a.to_dict() for a in asking]
    return jsonify(body)


@orders_bp.route("/orders/<int:order_id>/transition", methods=["POST"])
def transition_order(order_id):
    data = json_body()
    new_status = data.get("status")
    if not new_status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    order = order_service.transition_order(order_id, new_status, acting_user())
    return jsonify(order.to_dict())


@orders_bp.route("/orders/<int:order_id>/services", methods=["GET"])
def list_order_services(order_id):
    """Current per-service counts (removable / locked) and available services."""
    return jsonify(get_order_services(order_id))


@orders_bp.route("/orders/<int:order_id>/services", methods=["PUT"])
def update_order_services(order_id):
    """Reconcile the order's services against the desired quantities."""
    data = json_body()
    desired = _desired_from_body(data)
    if desired is None:
        return api_error(E.VALIDATION_REQUIRED, "services (object) or service_ids (array) is required")
    changes = reconcile_services(order_id, desired, acting_user())
    return jsonify({"message": "Order services updated successfully", "changes": changes})


@orders_bp.route("/orders/<int:order_id>/folder-link", methods=["PATCH"])
def update_folder_link(order_id):
    """Attach the folder link and auto-assign eligible unassigned work."""
    data = json_body()
    if not data.get("folder_link"):
        return api_error(E.VALIDATION_REQUIRED, "folder_link is required")
    result = attach_folder_link(order_id, data["folder_link"], acting_user())
    return jsonify(result)


@orders_bp.route("/orders/<int:order_id>/auto-assign", methods=["POST"])
def replay_auto_assign(order_id):
    return jsonify(on_folder_link_attached(order_id, acting_user()))
