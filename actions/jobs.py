from __future__ import annotations

import json
from typing import Any

from sqlalchemy import func, or_, select, update

from actions.helpers import (
    append_audit,
    field_error,
    get_or_404,
    paginate,
    parse_iso_field,
    parse_list_field,
    parse_pagination,
    require_enum,
    require_str,
    s,
    user_or_400,
)
from models import Candidate, JobPosting
from utils import AuthContext, iso_utc_now, json_list, new_id

JOB_TYPES = ["Full-time", "Part-time", "Contract", "Internship"]
JOB_STATUSES = ["Active", "Paused", "Closed"]
STAGES = ["Applied", "Screening", "Interview", "Offer", "Hired", "Rejected"]


def _applicant_counts(db, job_ids: list[str]) -> dict[str, int]:
    if not job_ids:
        return {}
    rows = db.execute(
        select(Candidate.jobId, func.count()).where(Candidate.jobId.in_(job_ids)).group_by(Candidate.jobId)
    ).all()
    return {str(j): int(n) for j, n in rows}


def serialize_job(j: JobPosting, *, applicant_count: int | None = None) -> dict[str, Any]:
    out = {
        "id": str(j.jobId),
        "title": str(j.title or ""),
        "department": str(j.department or ""),
        "location": str(j.location or ""),
        "type": str(j.jobType or ""),
        "status": str(j.status or ""),
        "description": str(j.description or ""),
        "salaryRange": str(j.salaryRange or ""),
        "postedDate": str(j.postedDate or ""),
        "deadline": str(j.deadline or ""),
        "requirements": json_list(j.requirementsJson),
        "portals": json_list(j.portalsJson),
        "assignedUserIds": json_list(j.assignedUserIdsJson),
        "createdBy": str(j.createdBy or ""),
        "createdAt": str(j.createdAt or ""),
        "updatedAt": str(j.updatedAt or ""),
    }
    if applicant_count is not None:
        out["applicantCount"] = int(applicant_count)
    return out


def _parse_portals(value: Any) -> list[dict[str, Any]]:
    out = []
    for i, p in enumerate(parse_list_field(value, "portals")):
        if not isinstance(p, dict) or not str(p.get("name") or "").strip():
            raise field_error(f"portals[{i}]", "Each portal needs a name")
        try:
            applicants = max(0, int(p.get("applicants") or 0))
        except (TypeError, ValueError):
            raise field_error(f"portals[{i}].applicants", "applicants must be a number")
        out.append(
            {
                "name": str(p.get("name")).strip(),
                "url": str(p.get("url") or "").strip(),
                "status": str(p.get("status") or "Active").strip(),
                "applicants": applicants,
            }
        )
    return out


def _parse_assigned_users(db, value: Any) -> list[str]:
    ids: list[str] = []
    for uid in parse_list_field(value, "assignedUserIds"):
        key = str(uid or "").strip()
        user_or_400(db, key, "assignedUserIds", "Assigned user")
        if key not in ids:
            ids.append(key)
    return ids


def _apply_job_fields(db, j: JobPosting, data: dict[str, Any], *, creating: bool) -> None:
    if creating or "title" in data:
        j.title = require_str(data, "title", "Title")
    if creating or "department" in data:
        j.department = require_str(data, "department", "Department")
    if creating or "location" in data:
        j.location = require_str(data, "location", "Location")
    if "type" in data or creating:
        j.jobType = require_enum(s(data, "type") or "Full-time", JOB_TYPES, "type", "job type")
    if "status" in data or creating:
        j.status = require_enum(s(data, "status") or "Active", JOB_STATUSES, "status")
    if "description" in data or creating:
        j.description = require_str(data, "description", "Description")
    if "salaryRange" in data:
        j.salaryRange = s(data, "salaryRange")
    if "deadline" in data:
        j.deadline = parse_iso_field(data.get("deadline"), "deadline")
    if "requirements" in data:
        reqs = [str(r).strip() for r in parse_list_field(data.get("requirements"), "requirements")]
        j.requirementsJson = json.dumps([r for r in reqs if r])
    if "portals" in data:
        j.portalsJson = json.dumps(_parse_portals(data.get("portals")))
    if "assignedUserIds" in data:
        j.assignedUserIdsJson = json.dumps(_parse_assigned_users(db, data.get("assignedUserIds")))


def jobs_list(data, auth: AuthContext | None, db, cfg):
    page, limit = parse_pagination(data)
    q = select(JobPosting)
    status = s(data, "status")
    department = s(data, "department")
    search = s(data, "search")
    if status:
        q = q.where(JobPosting.status == status)
    if department:
        q = q.where(JobPosting.department == department)
    if search:
        like = f"%{search}%"
        q = q.where(or_(JobPosting.title.ilike(like), JobPosting.description.ilike(like), JobPosting.location.ilike(like)))
    q = q.order_by(JobPosting.createdAt.desc())

    out = paginate(db, q, page=page, limit=limit, mapper=serialize_job)
    counts = _applicant_counts(db, [it["id"] for it in out["items"]])
    for it in out["items"]:
        it["applicantCount"] = counts.get(it["id"], 0)
    return out


def job_get(data, auth: AuthContext | None, db, cfg):
    j = get_or_404(db, JobPosting, s(data, "id"), "Job")
    return serialize_job(j, applicant_count=_applicant_counts(db, [j.jobId]).get(j.jobId, 0))


def job_create(data, auth: AuthContext | None, db, cfg):
    now = iso_utc_now()
    j = JobPosting(jobId=new_id("JOB"), postedDate=now, createdAt=now, createdBy=auth.userId, updatedAt=now, updatedBy=auth.userId)
    _apply_job_fields(db, j, data or {}, creating=True)
    db.add(j)
    append_audit(db, entityType="JOB", entityId=j.jobId, action="JOB_CREATE", toState=j.status, actor=auth, at=now)
    return serialize_job(j, applicant_count=0)


def job_update(data, auth: AuthContext | None, db, cfg):
    j = get_or_404(db, JobPosting, s(data, "id"), "Job")
    before = str(j.status or "")
    _apply_job_fields(db, j, data or {}, creating=False)
    j.updatedAt = iso_utc_now()
    j.updatedBy = auth.userId
    append_audit(db, entityType="JOB", entityId=j.jobId, action="JOB_UPDATE", fromState=before, toState=j.status, actor=auth)
    return serialize_job(j, applicant_count=_applicant_counts(db, [j.jobId]).get(j.jobId, 0))


def job_delete(data, auth: AuthContext | None, db, cfg):
    j = get_or_404(db, JobPosting, s(data, "id"), "Job")
    # Candidates stay; only the link goes.
    db.execute(update(Candidate).where(Candidate.jobId == j.jobId).values(jobId=None))
    db.delete(j)
    append_audit(db, entityType="JOB", entityId=j.jobId, action="JOB_DELETE", fromState=str(j.status or ""), actor=auth)
    return {"id": j.jobId, "deleted": True}


def job_candidates(data, auth: AuthContext | None, db, cfg):
    from actions.candidates import serialize_candidate

    j = get_or_404(db, JobPosting, s(data, "id"), "Job")
    page, limit = parse_pagination(data)
    q = select(Candidate).where(Candidate.jobId == j.jobId)
    stage = s(data, "stage")
    if stage:
        q = q.where(Candidate.stage == stage)
    q = q.order_by(Candidate.appliedDate.desc())
    return paginate(db, q, page=page, limit=limit, mapper=serialize_candidate)


def job_stats(data, auth: AuthContext | None, db, cfg):
    j = get_or_404(db, JobPosting, s(data, "id"), "Job")
    rows = db.execute(
        select(Candidate.stage, func.count()).where(Candidate.jobId == j.jobId).group_by(Candidate.stage)
    ).all()
    by_stage = {st: 0 for st in STAGES}
    for stage, n in rows:
        by_stage[str(stage)] = int(n)
    avg = db.execute(select(func.avg(Candidate.score)).where(Candidate.jobId == j.jobId)).scalar()
    return {
        "jobId": j.jobId,
        "total": sum(by_stage.values()),
        "byStage": by_stage,
        "averageScore": round(float(avg), 2) if avg is not None else 0.0,
    }
