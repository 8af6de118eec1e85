from __future__ import annotations

from flask import Blueprint

from app.routes.common import request_data, rest_handle

interviews_bp = Blueprint("interviews", __name__, url_prefix="/api/interviews")


@interviews_bp.get("")
def list_interviews():
    return rest_handle("INTERVIEWS_LIST", request_data())


@interviews_bp.post("")
def schedule_interview():
    return rest_handle("INTERVIEW_SCHEDULE", request_data(), status=201, message="Interview scheduled successfully")


@interviews_bp.get("/upcoming")
def upcoming():
    return rest_handle("INTERVIEWS_UPCOMING", request_data())


@interviews_bp.get("/interviewer/<user_id>")
def by_interviewer(user_id: str):
    return rest_handle("INTERVIEWS_BY_INTERVIEWER", request_data(interviewerId=user_id))


@interviews_bp.get("/<interview_id>")
def get_interview(interview_id: str):
    return rest_handle("INTERVIEW_GET", request_data(id=interview_id))


@interviews_bp.put("/<interview_id>")
def update_interview(interview_id: str):
    return rest_handle("INTERVIEW_UPDATE", request_data(id=interview_id), message="Interview updated successfully")


@interviews_bp.delete("/<interview_id>")
def delete_interview(interview_id: str):
    return rest_handle("INTERVIEW_DELETE", request_data(id=interview_id), message="Interview deleted successfully")


@interviews_bp.patch("/<interview_id>/status")
def set_status(interview_id: str):
    return rest_handle("INTERVIEW_STATUS_SET", request_data(id=interview_id), message="Interview status updated successfully")


@interviews_bp.post("/<interview_id>/feedback")
def submit_feedback(interview_id: str):
    return rest_handle("INTERVIEW_FEEDBACK_SUBMIT", request_data(id=interview_id), status=201, message="Feedback submitted successfully")
