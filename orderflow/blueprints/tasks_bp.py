"""
Tasks Blueprint — direct task lifecycle.

Endpoints:
  GET  /api/v1/tasks/<id>
  POST /api/v1/tasks/<id>/assign      {assigned_to, deadline?, priority?, notes?}
  POST /api/v1/tasks/<id>/reassign    {assigned_to, deadline?, priority?, notes?}
  POST /api/v1/tasks/<id>/unassign
  POST /api/v1/tasks/<id>/start
  POST /api/v1/tasks/<id>/pause
  POST /api/v1/tasks/<id>/resume
  POST /api/v1/tasks/<id>/complete    {completion_notes?}
"""

from flask import Blueprint, jsonify

from orderflow.blueprints import json_body
from orderflow.models.task import Task
from orderflow.services import task_lifecycle
from orderflow.services.helpers.lookups import get_or_raise
from orderflow.utils.errors import E, api_error
from orderflow.utils.helpers import acting_user

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/v1/tasks")


@tasks_bp.route("/<int:task_id>", methods=["GET"])
def get_task(task_id):
    task = get_or_raise(Task, task_id)
    body = task.to_dict()
    body["available_actions"] = task_lifecycle.get_available_task_actions(task)
    return jsonify(body)


def _assignment_call(fn, task_id):
    data = json_body()
    assignee = data.get("assigned_to")
    if not assignee:
        return api_error(E.VALIDATION_REQUIRED, "assigned_to is required")
    task = fn(
        task_id,
        assignee,
        acting_user(),
        deadline=data.get("deadline"),
        priority=data.get("priority"),
        notes=data.get("notes"),
    )
    return jsonify(task.to_dict())


@tasks_bp.route("/<int:task_id>/assign", methods=["POST"])
def assign_task(task_id):
    return _assignment_call(task_lifecycle.assign_task, task_id)


@tasks_bp.route("/<int:task_id>/reassign", methods=["POST"])
def reassign_task(task_id):
    return _assignment_call(task_lifecycle.reassign_task, task_id)


@tasks_bp.route("/<int:task_id>/unassign", methods=["POST"])
def unassign_task(task_id):
    return jsonify(task_lifecycle.unassign_task(task_id, acting_user()).to_dict())


@tasks_bp.route("/<int:task_id>/start", methods=["POST"])
def start_task(task_id):
    return jsonify(task_lifecycle.start_task(task_id, acting_user()).to_dict())


@tasks_bp.route("/<int:task_id>/pause", methods=["POST"])
def pause_task(task_id):
    return jsonify(task_lifecycle.pause_task(task_id, acting_user()).to_dict())


@tasks_bp.route("/<int:task_id>/resume", methods=["POST"])
def resume_task(task_id):
    return jsonify(task_lifecycle.resume_task(task_id, acting_user()).to_dict())


@tasks_bp.route("/<int:task_id>/complete", methods=["POST"])
def complete_task(task_id):
    data = json_body()
    task = task_lifecycle.complete_task(task_id, acting_user(), notes=data.get("completion_notes"))
    return jsonify(task.to_dict())
