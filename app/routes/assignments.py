from __future__ import annotations

from flask import Blueprint

from app.routes.common import request_data, rest_handle, upload_payload

assignments_bp = Blueprint("assignments", __name__, url_prefix="/api/assignments")


@assignments_bp.get("")
def list_assignments():
    return rest_handle("ASSIGNMENTS_LIST", request_data())


@assignments_bp.post("")
def create_assignment():
    return rest_handle("ASSIGNMENT_CREATE", request_data(), status=201, message="Assignment created successfully")


@assignments_bp.get("/candidate/<candidate_id>")
def by_candidate(candidate_id: str):
    return rest_handle("ASSIGNMENTS_BY_CANDIDATE", request_data(candidateId=candidate_id))


@assignments_bp.get("/<assignment_id>")
def get_assignment(assignment_id: str):
    return rest_handle("ASSIGNMENT_GET", request_data(id=assignment_id))


@assignments_bp.put("/<assignment_id>")
def update_assignment(assignment_id: str):
    return rest_handle("ASSIGNMENT_UPDATE", request_data(id=assignment_id), message="Assignment updated successfully")


@assignments_bp.delete("/<assignment_id>")
def delete_assignment(assignment_id: str):
    return rest_handle("ASSIGNMENT_DELETE", request_data(id=assignment_id), message="Assignment deleted successfully")


@assignments_bp.patch("/<assignment_id>/status")
def set_status(assignment_id: str):
    return rest_handle("ASSIGNMENT_STATUS_SET", request_data(id=assignment_id), message="Assignment status updated successfully")


@assignments_bp.post("/<assignment_id>/send")
def send_assignment(assignment_id: str):
    return rest_handle("ASSIGNMENT_SEND", request_data(id=assignment_id), message="Assignment sent successfully")


@assignments_bp.post("/<assignment_id>/files")
def add_files(assignment_id: str):
    data = request_data(id=assignment_id)
    data["_files"] = upload_payload("files")
    return rest_handle("ASSIGNMENT_FILES_ADD", data, status=201, message="Files uploaded successfully")


@assignments_bp.delete("/<assignment_id>/files/<file_id>")
def delete_file(assignment_id: str, file_id: str):
    return rest_handle("ASSIGNMENT_FILE_DELETE", request_data(id=assignment_id, fileId=file_id), message="File deleted successfully")
