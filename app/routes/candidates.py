from __future__ import annotations

import logging

from flask import Blueprint, current_app, g, request, send_file

from app.routes.common import error_response, request_data, rest_handle, run_action, upload_payload
from services.file_storage import file_exists, file_path
from utils import err

candidates_bp = Blueprint("candidates", __name__, url_prefix="/api/candidates")

log = logging.getLogger("api")


@candidates_bp.get("")
def list_candidates():
    return rest_handle("CANDIDATES_LIST", request_data())


@candidates_bp.post("")
def create_candidate():
    return rest_handle("CANDIDATE_CREATE", request_data(), status=201, message="Candidate created successfully")


@candidates_bp.post("/bulk-import")
def bulk_import():
    return rest_handle("CANDIDATE_BULK_IMPORT", request_data())


@candidates_bp.get("/<candidate_id>")
def get_candidate(candidate_id: str):
    return rest_handle("CANDIDATE_GET", request_data(id=candidate_id))


@candidates_bp.put("/<candidate_id>")
def update_candidate(candidate_id: str):
    return rest_handle("CANDIDATE_UPDATE", request_data(id=candidate_id), message="Candidate updated successfully")


@candidates_bp.delete("/<candidate_id>")
def delete_candidate(candidate_id: str):
    return rest_handle("CANDIDATE_DELETE", request_data(id=candidate_id), message="Candidate deleted successfully")


@candidates_bp.patch("/<candidate_id>/stage")
def set_stage(candidate_id: str):
    return rest_handle("CANDIDATE_STAGE_SET", request_data(id=candidate_id), message="Candidate stage updated successfully")


@candidates_bp.get("/<candidate_id>/analytics")
def candidate_analytics(candidate_id: str):
    return rest_handle("CANDIDATE_ANALYTICS", request_data(id=candidate_id))


@candidates_bp.post("/<candidate_id>/resume")
def upload_resume(candidate_id: str):
    data = request_data(id=candidate_id)
    files = upload_payload("resume")
    if files:
        data["_file"] = files[0]
    return rest_handle("CANDIDATE_RESUME_UPLOAD", data, message="Resume uploaded successfully")


@candidates_bp.get("/<candidate_id>/resume")
def download_resume(candidate_id: str):
    data = request_data(id=candidate_id)
    try:
        meta, _auth = run_action("CANDIDATE_RESUME_GET", data)
    except Exception as e:
        return error_response("CANDIDATE_RESUME_GET", data, e)

    cfg = current_app.config["CFG"]
    if not file_exists(cfg, meta["filename"]):
        log.warning("resume missing on disk candidate=%s file=%s request_id=%s", candidate_id, meta["filename"], getattr(g, "request_id", ""))
        return err("NOT_FOUND", "Resume file not found on server")

    as_attachment = str(request.args.get("download") or "").strip().lower() in {"1", "true", "yes"}
    resp = send_file(
        file_path(cfg, meta["filename"]),
        mimetype=meta["mimeType"] or None,
        as_attachment=as_attachment,
        download_name=meta["originalName"] or meta["filename"],
    )
    resp.headers["X-Content-Type-Options"] = "nosniff"
    return resp


@candidates_bp.get("/<candidate_id>/resume/metadata")
def resume_metadata(candidate_id: str):
    return rest_handle("CANDIDATE_RESUME_GET", request_data(id=candidate_id))


@candidates_bp.get("/<candidate_id>/notes")
def list_notes(candidate_id: str):
    return rest_handle("NOTES_LIST", request_data(id=candidate_id))


@candidates_bp.post("/<candidate_id>/notes")
def create_note(candidate_id: str):
    return rest_handle("NOTE_CREATE", request_data(id=candidate_id), status=201, message="Note created successfully")


@candidates_bp.put("/<candidate_id>/notes/<note_id>")
def update_note(candidate_id: str, note_id: str):
    return rest_handle("NOTE_UPDATE", request_data(id=candidate_id, noteId=note_id), message="Note updated successfully")


@candidates_bp.delete("/<candidate_id>/notes/<note_id>")
def delete_note(candidate_id: str, note_id: str):
    return rest_handle("NOTE_DELETE", request_data(id=candidate_id, noteId=note_id), message="Note deleted successfully")


@candidates_bp.get("/<candidate_id>/ratings")
def list_ratings(candidate_id: str):
    return rest_handle("RATINGS_LIST", request_data(id=candidate_id))


@candidates_bp.get("/<candidate_id>/ratings/summary")
def ratings_summary(candidate_id: str):
    return rest_handle("RATINGS_SUMMARY", request_data(id=candidate_id))


@candidates_bp.post("/<candidate_id>/ratings")
def create_rating(candidate_id: str):
    return rest_handle("RATING_CREATE", request_data(id=candidate_id), status=201, message="Rating created successfully")


@candidates_bp.put("/<candidate_id>/ratings/<rating_id>")
def update_rating(candidate_id: str, rating_id: str):
    return rest_handle("RATING_UPDATE", request_data(id=candidate_id, ratingId=rating_id), message="Rating updated successfully")


@candidates_bp.delete("/<candidate_id>/ratings/<rating_id>")
def delete_rating(candidate_id: str, rating_id: str):
    return rest_handle("RATING_DELETE", request_data(id=candidate_id, ratingId=rating_id), message="Rating deleted successfully")
