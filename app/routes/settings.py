from __future__ import annotations

from flask import Blueprint

from app.routes.common import request_data, rest_handle

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/system")
def get_system_settings():
    return rest_handle("SETTINGS_GET", request_data())


@settings_bp.put("/system")
def update_system_settings():
    return rest_handle("SETTINGS_UPDATE", request_data(), message="Settings updated successfully")
