from __future__ import annotations

from flask import Blueprint

from app.routes.common import request_data, rest_handle

analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")

_ROUTES = {
    "/dashboard": "DASHBOARD_METRICS",
    "/funnel": "ANALYTICS_FUNNEL",
    "/time-to-hire": "ANALYTICS_TIME_TO_HIRE",
    "/sources": "ANALYTICS_SOURCES",
    "/interviewers": "ANALYTICS_INTERVIEWERS",
    "/jobs": "ANALYTICS_JOBS",
    "/monthly": "ANALYTICS_MONTHLY",
    "/quality": "ANALYTICS_QUALITY",
}


def _make_view(action: str):
    def view():
        return rest_handle(action, request_data())

    return view


for _path, _action in _ROUTES.items():
    analytics_bp.add_url_rule(_path, endpoint=_action.lower(), view_func=_make_view(_action), methods=["GET"])
