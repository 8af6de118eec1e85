from __future__ import annotations

from flask import Blueprint

from app.routes.common import request_data, rest_handle

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
def list_users():
    return rest_handle("USERS_LIST", request_data())


@users_bp.post("")
def create_user():
    return rest_handle("USER_CREATE", request_data(), status=201, message="User created successfully")


# Registered before /<user_id> so the literal path wins.
@users_bp.get("/role-templates")
def role_templates():
    return rest_handle("ROLE_TEMPLATES_LIST", request_data())


@users_bp.get("/<user_id>")
def get_user(user_id: str):
    return rest_handle("USER_GET", request_data(id=user_id))


@users_bp.put("/<user_id>")
def update_user(user_id: str):
    return rest_handle("USER_UPDATE", request_data(id=user_id), message="User updated successfully")


@users_bp.delete("/<user_id>")
def delete_user(user_id: str):
    return rest_handle("USER_DELETE", request_data(id=user_id), message="User deleted successfully")


@users_bp.patch("/<user_id>/status")
def set_user_status(user_id: str):
    return rest_handle("USER_STATUS_SET", request_data(id=user_id))


@users_bp.put("/<user_id>/permissions")
def set_user_permissions(user_id: str):
    return rest_handle("USER_PERMISSIONS_SET", request_data(id=user_id), message="Permissions updated successfully")
