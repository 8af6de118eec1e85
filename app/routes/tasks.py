from __future__ import annotations

from flask import Blueprint

from app.routes.common import request_data, rest_handle

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/tasks")


@tasks_bp.get("")
def list_tasks():
    return rest_handle("TASKS_LIST", request_data())


@tasks_bp.post("")
def create_task():
    return rest_handle("TASK_CREATE", request_data(), status=201, message="Task created successfully")


@tasks_bp.get("/<task_id>")
def get_task(task_id: str):
    return rest_handle("TASK_GET", request_data(id=task_id))


@tasks_bp.put("/<task_id>")
def update_task(task_id: str):
    return rest_handle("TASK_UPDATE", request_data(id=task_id), message="Task updated successfully")


@tasks_bp.delete("/<task_id>")
def delete_task(task_id: str):
    return rest_handle("TASK_DELETE", request_data(id=task_id), message="Task deleted successfully")


@tasks_bp.patch("/<task_id>/status")
def set_status(task_id: str):
    return rest_handle("TASK_STATUS_SET", request_data(id=task_id), message="Task status updated successfully")
