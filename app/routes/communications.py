from __future__ import annotations

from flask import Blueprint

from app.routes.common import request_data, rest_handle

communications_bp = Blueprint("communications", __name__, url_prefix="/api/communications")
templates_bp = Blueprint("email_templates", __name__, url_prefix="/api/email-templates")


@communications_bp.get("")
def list_communications():
    return rest_handle("COMMUNICATIONS_LIST", request_data())


@communications_bp.post("")
def create_communication():
    return rest_handle("COMMUNICATION_CREATE", request_data(), status=201, message="Communication logged successfully")


@communications_bp.get("/candidate/<candidate_id>")
def by_candidate(candidate_id: str):
    return rest_handle("COMMUNICATIONS_BY_CANDIDATE", request_data(candidateId=candidate_id))


@communications_bp.get("/<communication_id>")
def get_communication(communication_id: str):
    return rest_handle("COMMUNICATION_GET", request_data(id=communication_id))


@communications_bp.put("/<communication_id>")
def update_communication(communication_id: str):
    return rest_handle("COMMUNICATION_UPDATE", request_data(id=communication_id), message="Communication updated successfully")


@communications_bp.delete("/<communication_id>")
def delete_communication(communication_id: str):
    return rest_handle("COMMUNICATION_DELETE", request_data(id=communication_id), message="Communication deleted successfully")


@templates_bp.get("")
def list_templates():
    return rest_handle("TEMPLATES_LIST", request_data())


@templates_bp.post("")
def create_template():
    return rest_handle("TEMPLATE_CREATE", request_data(), status=201, message="Template created successfully")


@templates_bp.get("/categories")
def categories():
    return rest_handle("TEMPLATE_CATEGORIES", request_data())


@templates_bp.get("/variables")
def variables():
    return rest_handle("TEMPLATE_VARIABLES", request_data())


@templates_bp.get("/<template_id>")
def get_template(template_id: str):
    return rest_handle("TEMPLATE_GET", request_data(id=template_id))


@templates_bp.put("/<template_id>")
def update_template(template_id: str):
    return rest_handle("TEMPLATE_UPDATE", request_data(id=template_id), message="Template updated successfully")


@templates_bp.delete("/<template_id>")
def delete_template(template_id: str):
    return rest_handle("TEMPLATE_DELETE", request_data(id=template_id), message="Template deleted successfully")


@templates_bp.post("/<template_id>/preview")
def preview_template(template_id: str):
    return rest_handle("TEMPLATE_PREVIEW", request_data(id=template_id))


@templates_bp.post("/<template_id>/send")
def send_template(template_id: str):
    return rest_handle("TEMPLATE_SEND", request_data(id=template_id))
