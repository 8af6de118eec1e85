from __future__ import annotations

import json
from functools import partial
from typing import Any

from sqlalchemy import func, or_, select

from actions.helpers import (
    append_audit,
    field_error,
    get_or_404,
    paginate,
    parse_float_field,
    parse_iso_field,
    parse_list_field,
    parse_pagination,
    require_enum,
    require_str,
    s,
    user_or_400,
)
from actions.jobs import STAGES
from actions.notes_ratings import ratings_summary_for, serialize_notes, visible_notes_query
from db import after_commit, after_rollback
from models import (
    Assignment,
    AssignmentFile,
    Candidate,
    CandidateNote,
    Communication,
    Interview,
    InterviewFeedback,
    JobPosting,
)
from services.file_storage import delete_file, save_file
from utils import ApiError, AuthContext, is_valid_email, iso_utc_now, json_dict, json_list, new_id

BULK_IMPORT_MAX = 100


def serialize_candidate(c: Candidate) -> dict[str, Any]:
    return {
        "id": str(c.candidateId),
        "name": str(c.name or ""),
        "email": str(c.email or ""),
        "phone": str(c.phone or ""),
        "jobId": c.jobId or None,
        "position": str(c.position or ""),
        "stage": str(c.stage or ""),
        "stageUpdatedAt": str(c.stageUpdatedAt or ""),
        "source": str(c.source or ""),
        "appliedDate": str(c.appliedDate or ""),
        "score": float(c.score or 0),
        "assignedTo": str(c.assignedTo or ""),
        "skills": json_list(c.skillsJson),
        "experience": str(c.experience or ""),
        "location": str(c.location or ""),
        "salary": json_dict(c.salaryJson),
        "availability": json_dict(c.availabilityJson),
        "workPreference": json_dict(c.workPreferenceJson),
        "notes": str(c.notes or ""),
        "inHouseAssignmentStatus": str(c.inHouseAssignmentStatus or ""),
        "interviewerId": str(c.interviewerId or ""),
        "interviewDate": str(c.interviewDate or ""),
        "resume": _resume_meta(c),
        "createdAt": str(c.createdAt or ""),
        "updatedAt": str(c.updatedAt or ""),
    }


def _resume_meta(c: Candidate) -> dict[str, Any] | None:
    if not c.resumeFileName:
        return None
    return {
        "filename": c.resumeFileName,
        "originalName": c.resumeOriginalName,
        "mimeType": c.resumeMimeType,
        "size": int(c.resumeSize or 0),
    }


def _dict_field(data: dict[str, Any], key: str) -> str:
    val = data.get(key)
    if val in (None, ""):
        return "{}"
    if not isinstance(val, dict):
        raise field_error(key, f"{key} must be an object")
    return json.dumps(val)


def _resolve_job(db, data: dict[str, Any]) -> JobPosting | None:
    job_id = s(data, "jobId")
    if not job_id:
        return None
    job = db.get(JobPosting, job_id)
    if job is None:
        raise field_error("jobId", "Job not found")
    return job


def _assert_not_duplicate(db, email: str, job_id: str | None, *, exclude_id: str = "") -> None:
    q = select(Candidate.candidateId).where(func.lower(Candidate.email) == email.lower())
    q = q.where(Candidate.jobId == job_id) if job_id else q.where(Candidate.jobId.is_(None))
    if exclude_id:
        q = q.where(Candidate.candidateId != exclude_id)
    if db.execute(q).first():
        raise ApiError("CONFLICT", "Candidate already exists for this position")


def _apply_profile_fields(db, c: Candidate, data: dict[str, Any], *, creating: bool) -> None:
    if "phone" in data or creating:
        c.phone = s(data, "phone")
    if "source" in data or creating:
        c.source = s(data, "source") or ("Manual" if creating else c.source)
    if "score" in data and data.get("score") not in (None, ""):
        c.score = parse_float_field(data.get("score"), "score", min_v=0, max_v=5)
    if "assignedTo" in data:
        assigned = s(data, "assignedTo")
        if assigned:
            user_or_400(db, assigned, "assignedTo")
        c.assignedTo = assigned
    if "skills" in data:
        skills = [str(x).strip() for x in parse_list_field(data.get("skills"), "skills")]
        c.skillsJson = json.dumps([x for x in skills if x])
    for key in ("experience", "location", "notes"):
        if key in data:
            setattr(c, key, s(data, key))
    if "salary" in data:
        c.salaryJson = _dict_field(data, "salary")
    if "availability" in data:
        c.availabilityJson = _dict_field(data, "availability")
    if "workPreference" in data:
        c.workPreferenceJson = _dict_field(data, "workPreference")


def build_candidate(db, data: dict[str, Any], auth: AuthContext, *, now: str) -> Candidate:
    """Validates one candidate payload and returns an unsaved row."""
    name = require_str(data, "name", "Name")
    email = require_str(data, "email", "Email").lower()
    if not is_valid_email(email):
        raise field_error("email", "Please provide a valid email address")
    job = _resolve_job(db, data)
    stage = require_enum(s(data, "stage") or "Applied", STAGES, "stage")
    applied = parse_iso_field(data.get("appliedDate"), "appliedDate") or now

    c = Candidate(
        candidateId=new_id("CAN"),
        name=name,
        email=email,
        jobId=job.jobId if job else None,
        position=s(data, "position") or (job.title if job else ""),
        stage=stage,
        stageUpdatedAt=now,
        appliedDate=applied,
        score=0.0,
        assignedTo="",
        createdAt=now,
        createdBy=auth.userId,
        updatedAt=now,
        updatedBy=auth.userId,
    )
    _apply_profile_fields(db, c, data, creating=True)
    return c


def candidates_list(data, auth: AuthContext | None, db, cfg):
    page, limit = parse_pagination(data)
    q = select(Candidate)
    for key, col in (
        ("stage", Candidate.stage),
        ("jobId", Candidate.jobId),
        ("source", Candidate.source),
        ("assignedTo", Candidate.assignedTo),
    ):
        val = s(data, key)
        if val:
            q = q.where(col == val)
    search = s(data, "search")
    if search:
        like = f"%{search}%"
        q = q.where(or_(Candidate.name.ilike(like), Candidate.email.ilike(like), Candidate.position.ilike(like)))
    q = q.order_by(Candidate.appliedDate.desc(), Candidate.createdAt.desc())
    return paginate(db, q, page=page, limit=limit, mapper=serialize_candidate)


def candidate_get(data, auth: AuthContext | None, db, cfg):
    from actions.interviews import serialize_interview
    from actions.pipeline import serialize_assignment

    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")
    out = serialize_candidate(c)

    notes = db.execute(visible_notes_query(c.candidateId, auth).order_by(CandidateNote.createdAt.desc())).scalars().all()
    out["candidateNotes"] = serialize_notes(db, notes)
    out["ratingsSummary"] = ratings_summary_for(db, c.candidateId)

    interviews = (
        db.execute(select(Interview).where(Interview.candidateId == c.candidateId).order_by(Interview.scheduledDate.desc()))
        .scalars()
        .all()
    )
    out["interviews"] = [serialize_interview(i) for i in interviews]

    assignments = (
        db.execute(select(Assignment).where(Assignment.candidateId == c.candidateId).order_by(Assignment.createdAt.desc()))
        .scalars()
        .all()
    )
    out["assignments"] = [serialize_assignment(a) for a in assignments]
    return out


def candidate_create(data, auth: AuthContext | None, db, cfg):
    now = iso_utc_now()
    c = build_candidate(db, data or {}, auth, now=now)
    _assert_not_duplicate(db, c.email, c.jobId)
    db.add(c)
    append_audit(db, entityType="CANDIDATE", entityId=c.candidateId, action="CANDIDATE_CREATE", toState=c.stage, actor=auth, at=now)
    return serialize_candidate(c)


def candidate_update(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")
    data = data or {}
    before_stage = str(c.stage or "")

    if "name" in data:
        c.name = require_str(data, "name", "Name")
    if "email" in data:
        email = require_str(data, "email", "Email").lower()
        if not is_valid_email(email):
            raise field_error("email", "Please provide a valid email address")
        c.email = email
    if "jobId" in data:
        job = _resolve_job(db, data)
        c.jobId = job.jobId if job else None
        if job and "position" not in data:
            c.position = job.title
    if "position" in data:
        c.position = s(data, "position")
    if "appliedDate" in data:
        c.appliedDate = parse_iso_field(data.get("appliedDate"), "appliedDate", required=True)
    if "stage" in data:
        stage = require_enum(s(data, "stage"), STAGES, "stage")
        if stage != c.stage:
            c.stage = stage
            c.stageUpdatedAt = iso_utc_now()
    _apply_profile_fields(db, c, data, creating=False)

    if "email" in data or "jobId" in data:
        _assert_not_duplicate(db, c.email, c.jobId, exclude_id=c.candidateId)

    c.updatedAt = iso_utc_now()
    c.updatedBy = auth.userId
    append_audit(db, entityType="CANDIDATE", entityId=c.candidateId, action="CANDIDATE_UPDATE", fromState=before_stage, toState=c.stage, actor=auth)
    return serialize_candidate(c)


def candidate_delete(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")
    stored = [
        str(f)
        for f in db.execute(
            select(AssignmentFile.filename)
            .join(Assignment, Assignment.assignmentId == AssignmentFile.assignmentId)
            .where(Assignment.candidateId == c.candidateId)
        ).scalars()
    ]
    if c.resumeFileName:
        stored.append(c.resumeFileName)

    db.delete(c)
    for name in stored:
        after_commit(db, partial(delete_file, cfg, name))
    append_audit(db, entityType="CANDIDATE", entityId=c.candidateId, action="CANDIDATE_DELETE", fromState=str(c.stage or ""), actor=auth)
    return {"id": c.candidateId, "deleted": True}


def candidate_stage_set(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")
    stage = require_enum(require_str(data, "stage", "Stage"), STAGES, "stage")
    before = str(c.stage or "")
    now = iso_utc_now()
    c.stage = stage
    c.stageUpdatedAt = now
    c.updatedAt = now
    c.updatedBy = auth.userId
    append_audit(db, entityType="CANDIDATE", entityId=c.candidateId, action="CANDIDATE_STAGE_SET", fromState=before, toState=stage, remark=s(data, "remark"), actor=auth, at=now)
    return serialize_candidate(c)


def candidate_bulk_import(data, auth: AuthContext | None, db, cfg):
    rows = (data or {}).get("candidates")
    if not isinstance(rows, list) or not rows:
        raise field_error("candidates", "candidates must be a non-empty list")
    if len(rows) > BULK_IMPORT_MAX:
        raise field_error("candidates", f"At most {BULK_IMPORT_MAX} candidates can be imported at once")

    now = iso_utc_now()
    results: list[dict[str, Any]] = []
    seen: set[tuple[str, str]] = set()
    # Every check runs before db.add, so a failed row leaves nothing behind.
    for idx, row in enumerate(rows):
        try:
            if not isinstance(row, dict):
                raise ApiError("VALIDATION_ERROR", "Row must be an object")
            c = build_candidate(db, row, auth, now=now)
            key = (c.email, c.jobId or "")
            if key in seen:
                raise ApiError("CONFLICT", "Candidate already exists for this position")
            _assert_not_duplicate(db, c.email, c.jobId)
            seen.add(key)
            db.add(c)
            results.append({"index": idx, "success": True, "id": c.candidateId, "email": c.email})
        except ApiError as e:
            results.append({"index": idx, "success": False, "error": e.message, "email": str((row or {}).get("email") or "") if isinstance(row, dict) else ""})

    created = sum(1 for r in results if r["success"])
    append_audit(
        db,
        entityType="CANDIDATE",
        entityId="BULK",
        action="CANDIDATE_BULK_IMPORT",
        actor=auth,
        at=now,
        meta={"total": len(rows), "created": created},
    )
    return {"total": len(rows), "created": created, "failed": len(rows) - created, "results": results}


def candidate_analytics(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")

    by_status = {
        str(st): int(n)
        for st, n in db.execute(
            select(Interview.status, func.count()).where(Interview.candidateId == c.candidateId).group_by(Interview.status)
        ).all()
    }
    fb = db.execute(
        select(func.avg(InterviewFeedback.overallRating), func.count())
        .join(Interview, Interview.interviewId == InterviewFeedback.interviewId)
        .where(Interview.candidateId == c.candidateId)
    ).one()
    recs = {
        str(r): int(n)
        for r, n in db.execute(
            select(InterviewFeedback.recommendation, func.count())
            .join(Interview, Interview.interviewId == InterviewFeedback.interviewId)
            .where(Interview.candidateId == c.candidateId)
            .group_by(InterviewFeedback.recommendation)
        ).all()
    }
    comms = int(
        db.execute(select(func.count()).select_from(Communication).where(Communication.candidateId == c.candidateId)).scalar_one()
        or 0
    )
    assignments = int(
        db.execute(select(func.count()).select_from(Assignment).where(Assignment.candidateId == c.candidateId)).scalar_one()
        or 0
    )

    return {
        "candidateId": c.candidateId,
        "stage": c.stage,
        "interviews": {"total": sum(by_status.values()), "byStatus": by_status},
        "feedback": {
            "count": int(fb[1] or 0),
            "averageRating": round(float(fb[0]), 2) if fb[0] is not None else 0.0,
            "recommendations": recs,
        },
        "communicationsCount": comms,
        "assignmentsCount": assignments,
        "ratings": ratings_summary_for(db, c.candidateId),
    }


def candidate_resume_upload(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")
    upload = (data or {}).get("_file")
    if not isinstance(upload, dict):
        raise ApiError("BAD_REQUEST", "No file uploaded")

    saved = save_file(cfg, upload.get("blob") or b"", str(upload.get("filename") or ""), str(upload.get("mimetype") or ""))
    after_rollback(db, partial(delete_file, cfg, saved["filename"]))
    previous = str(c.resumeFileName or "")
    c.resumeFileName = saved["filename"]
    c.resumeOriginalName = saved["originalName"]
    c.resumeMimeType = saved["mimeType"]
    c.resumeSize = int(saved["size"])
    c.updatedAt = iso_utc_now()
    c.updatedBy = auth.userId
    if previous:
        after_commit(db, partial(delete_file, cfg, previous))

    append_audit(db, entityType="CANDIDATE", entityId=c.candidateId, action="CANDIDATE_RESUME_UPLOAD", actor=auth, meta={"filename": saved["filename"], "size": saved["size"]})
    return {"candidateId": c.candidateId, "resume": _resume_meta(c)}


def candidate_resume_get(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")
    meta = _resume_meta(c)
    if meta is None:
        raise ApiError("NOT_FOUND", "No resume found for this candidate")
    return {"candidateId": c.candidateId, **meta}
