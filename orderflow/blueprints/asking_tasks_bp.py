"""
Asking Tasks Blueprint — client-communication workflow.

Endpoints:
  GET   /api/v1/asking-tasks/<id>            task + history + per-stage overview
  POST  /api/v1/asking-tasks/<id>/stage      {stage?, fields?: {initial_confirmation, update_request, staff_name, note}}
  PATCH /api/v1/asking-tasks/<id>/complete   {notes?}
  PATCH /api/v1/asking-tasks/<id>/flag       {is_flagged}
  PATCH /api/v1/asking-tasks/<id>/notes      {notes}

Inside ``fields`` a key with null clears that value; an omitted key is
simply not recorded.
"""

from flask import Blueprint, jsonify

from orderflow.blueprints import json_body
from orderflow.services import asking_task_engine as engine
from orderflow.utils.errors import E, api_error
from orderflow.utils.helpers import acting_user

asking_tasks_bp = Blueprint("asking_tasks", __name__, url_prefix="/api/v1/asking-tasks")


def _detail(task):
    body = task.to_dict(include_history=True)
    body["overview"] = engine.stage_overview(task)
    return body


@asking_tasks_bp.route("/<int:asking_task_id>", methods=["GET"])
def get_asking_task(asking_task_id):
    return jsonify(_detail(engine.get_asking_task(asking_task_id)))


@asking_tasks_bp.route("/<int:asking_task_id>/stage", methods=["POST"])
def update_stage(asking_task_id):
    data = json_body()
    raw_fields = data.get("fields")
    if raw_fields is not None and not isinstance(raw_fields, dict):
        return api_error(E.VALIDATION_INVALID, "fields must be an object")
    fields = engine.StageFields.from_payload(raw_fields)
    task = engine.update_asking_stage(asking_task_id, data.get("stage"), acting_user(), fields)
    return jsonify(_detail(task))


@asking_tasks_bp.route("/<int:asking_task_id>/complete", methods=["PATCH"])
def complete(asking_task_id):
    data = json_body()
    task = engine.complete_asking_task(asking_task_id, acting_user(), notes=data.get("notes"))
    return jsonify(task.to_dict())


@asking_tasks_bp.route("/<int:asking_task_id>/flag", methods=["PATCH"])
def flag(asking_task_id):
    data = json_body()
    if "is_flagged" not in data:
        return api_error(E.VALIDATION_REQUIRED, "is_flagged is required")
    task = engine.set_asking_flag(asking_task_id, data["is_flagged"], acting_user())
    return jsonify(task.to_dict())


@asking_tasks_bp.route("/<int:asking_task_id>/notes", methods=["PATCH"])
def notes(asking_task_id):
    data = json_body()
    if "notes" not in data:
        return api_error(E.VALIDATION_REQUIRED, "notes is required")
    task = engine.update_asking_notes(asking_task_id, data["notes"], acting_user())
    return jsonify(task.to_dict())
