from __future__ import annotations

from flask import Blueprint

from app.routes.common import request_data, rest_handle

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/jobs")


@jobs_bp.get("")
def list_jobs():
    return rest_handle("JOBS_LIST", request_data())


@jobs_bp.post("")
def create_job():
    return rest_handle("JOB_CREATE", request_data(), status=201, message="Job created successfully")


@jobs_bp.get("/<job_id>")
def get_job(job_id: str):
    return rest_handle("JOB_GET", request_data(id=job_id))


@jobs_bp.put("/<job_id>")
def update_job(job_id: str):
    return rest_handle("JOB_UPDATE", request_data(id=job_id), message="Job updated successfully")


@jobs_bp.delete("/<job_id>")
def delete_job(job_id: str):
    return rest_handle("JOB_DELETE", request_data(id=job_id), message="Job deleted successfully")


@jobs_bp.get("/<job_id>/candidates")
def job_candidates(job_id: str):
    return rest_handle("JOB_CANDIDATES", request_data(id=job_id))


@jobs_bp.get("/<job_id>/stats")
def job_stats(job_id: str):
    return rest_handle("JOB_STATS", request_data(id=job_id))
