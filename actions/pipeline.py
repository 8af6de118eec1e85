"""
Assignment lifecycle and the candidate's mirrored assignment status.

Status writes on an assignment and the matching write to
``Candidate.inHouseAssignmentStatus`` happen in the same session, so the
request transaction commits or rolls back both together. Across several
assignments of one candidate the mirror is last-write-wins.
"""
from __future__ import annotations

from functools import partial
from typing import Any

from sqlalchemy import func, select

from actions.communications import log_communication, serialize_communication
from actions.helpers import (
    append_audit,
    field_error,
    get_or_404,
    paginate,
    parse_iso_field,
    parse_pagination,
    require_enum,
    require_str,
    s,
    user_names,
)
from db import after_commit, after_rollback, unit_of_work
from models import Assignment, AssignmentFile, Candidate, Communication, JobPosting
from services.file_storage import delete_file, file_path, save_file
from services.mailer import notification_result, send_email
from utils import ApiError, AuthContext, is_valid_email, iso_utc_now, new_id

ASSIGNMENT_STATUSES = ["Draft", "Assigned", "In Progress", "Submitted", "Approved", "Rejected", "Cancelled"]

CANDIDATE_MIRROR_STATUS = {
    "Draft": "Pending",
    "Assigned": "Assigned",
    "In Progress": "In Progress",
    "Submitted": "Submitted",
    "Approved": "Approved",
    "Rejected": "Rejected",
    "Cancelled": "Cancelled",
}

MAX_FILES_PER_UPLOAD = 10


def serialize_file(f: AssignmentFile) -> dict[str, Any]:
    return {
        "id": f.fileId,
        "filename": f.filename,
        "originalName": f.originalName,
        "mimeType": f.mimeType,
        "size": int(f.size or 0),
        "uploadedBy": f.uploadedBy,
        "uploadedAt": f.uploadedAt,
    }


def serialize_assignment(a: Assignment, *, files: list[AssignmentFile] | None = None) -> dict[str, Any]:
    out = {
        "id": a.assignmentId,
        "candidateId": a.candidateId,
        "jobId": a.jobId or None,
        "assignedBy": a.assignedBy,
        "title": a.title,
        "descriptionHtml": a.descriptionHtml,
        "dueDate": a.dueDate,
        "status": a.status,
        "sentAt": a.sentAt,
        "createdAt": a.createdAt,
        "updatedAt": a.updatedAt,
    }
    if files is not None:
        out["files"] = [serialize_file(f) for f in files]
    return out


def _files_of(db, assignment_id: str) -> list[AssignmentFile]:
    return list(
        db.execute(
            select(AssignmentFile).where(AssignmentFile.assignmentId == assignment_id).order_by(AssignmentFile.uploadedAt.asc())
        )
        .scalars()
        .all()
    )


def _propagate_to_candidate(db, a: Assignment, *, now: str) -> None:
    c = db.get(Candidate, a.candidateId)
    if c is None:
        return
    c.inHouseAssignmentStatus = CANDIDATE_MIRROR_STATUS[a.status]
    c.updatedAt = now


def transition(db, a: Assignment, target: str, *, auth: AuthContext, remark: str = "") -> bool:
    """Set assignment status; returns False when it was already ``target``."""
    target = require_enum(target, ASSIGNMENT_STATUSES, "status")
    if target == "Draft" and a.status != "Draft":
        raise ApiError("CONFLICT", "Cannot revert assignment to Draft status once it has been sent")

    before = a.status
    now = iso_utc_now()
    a.status = target
    a.updatedAt = now
    a.updatedBy = auth.userId
    if target != "Draft":
        _propagate_to_candidate(db, a, now=now)
    if before == target:
        return False
    append_audit(
        db,
        entityType="ASSIGNMENT",
        entityId=a.assignmentId,
        action="ASSIGNMENT_STATUS_SET",
        fromState=before,
        toState=target,
        remark=remark,
        actor=auth,
        at=now,
    )
    return True


def _resolve_job_id(db, data: dict[str, Any]) -> str | None:
    job_id = s(data, "jobId")
    if not job_id:
        return None
    if db.get(JobPosting, job_id) is None:
        raise field_error("jobId", "Job not found")
    return job_id


def assignments_list(data, auth: AuthContext | None, db, cfg):
    page, limit = parse_pagination(data)
    q = select(Assignment)
    for key, col in (("status", Assignment.status), ("candidateId", Assignment.candidateId), ("jobId", Assignment.jobId)):
        val = s(data, key)
        if val:
            q = q.where(col == val)
    q = q.order_by(Assignment.createdAt.desc())
    out = paginate(db, q, page=page, limit=limit, mapper=lambda a: a)

    rows = out["items"]
    cand_ids = sorted({a.candidateId for a in rows})
    cand_names = (
        {cid: name for cid, name in db.execute(select(Candidate.candidateId, Candidate.name).where(Candidate.candidateId.in_(cand_ids))).all()}
        if cand_ids
        else {}
    )
    counts = (
        {
            aid: int(n)
            for aid, n in db.execute(
                select(AssignmentFile.assignmentId, func.count())
                .where(AssignmentFile.assignmentId.in_([a.assignmentId for a in rows]))
                .group_by(AssignmentFile.assignmentId)
            ).all()
        }
        if rows
        else {}
    )
    items = []
    for a in rows:
        it = serialize_assignment(a)
        it["candidateName"] = str(cand_names.get(a.candidateId) or "")
        it["fileCount"] = counts.get(a.assignmentId, 0)
        items.append(it)
    out["items"] = items
    return out


def assignment_get(data, auth: AuthContext | None, db, cfg):
    a = get_or_404(db, Assignment, s(data, "id"), "Assignment")
    out = serialize_assignment(a, files=_files_of(db, a.assignmentId))
    comms = (
        db.execute(select(Communication).where(Communication.assignmentId == a.assignmentId).order_by(Communication.date.desc()))
        .scalars()
        .all()
    )
    out["communications"] = [serialize_communication(c) for c in comms]
    out["assignedByName"] = user_names(db, [a.assignedBy]).get(a.assignedBy, "")
    return out


def assignment_create(data, auth: AuthContext | None, db, cfg):
    data = data or {}
    cid = require_str(data, "candidateId", "Candidate")
    c = db.get(Candidate, cid)
    if c is None:
        raise field_error("candidateId", "Candidate not found")
    title = require_str(data, "title", "Title")
    job_id = _resolve_job_id(db, data)
    if job_id is None and c.jobId:
        job_id = c.jobId

    now = iso_utc_now()
    a = Assignment(
        assignmentId=new_id("ASG"),
        candidateId=c.candidateId,
        jobId=job_id,
        assignedBy=auth.userId,
        title=title,
        descriptionHtml=str(data.get("descriptionHtml") or ""),
        dueDate=parse_iso_field(data.get("dueDate"), "dueDate"),
        status="Draft",
        sentAt="",
        createdAt=now,
        updatedAt=now,
        updatedBy=auth.userId,
    )
    db.add(a)
    c.inHouseAssignmentStatus = CANDIDATE_MIRROR_STATUS["Draft"]
    c.updatedAt = now
    append_audit(db, entityType="ASSIGNMENT", entityId=a.assignmentId, action="ASSIGNMENT_CREATE", toState="Draft", actor=auth, at=now, meta={"candidateId": c.candidateId})
    return serialize_assignment(a, files=[])


def assignment_update(data, auth: AuthContext | None, db, cfg):
    a = get_or_404(db, Assignment, s(data, "id"), "Assignment")
    data = data or {}

    if "title" in data:
        a.title = require_str(data, "title", "Title")
    if "descriptionHtml" in data:
        a.descriptionHtml = str(data.get("descriptionHtml") or "")
    if "dueDate" in data:
        a.dueDate = parse_iso_field(data.get("dueDate"), "dueDate")
    if "jobId" in data:
        a.jobId = _resolve_job_id(db, data)
    if "status" in data:
        transition(db, a, s(data, "status"), auth=auth, remark="update")

    a.updatedAt = iso_utc_now()
    a.updatedBy = auth.userId
    append_audit(db, entityType="ASSIGNMENT", entityId=a.assignmentId, action="ASSIGNMENT_UPDATE", toState=a.status, actor=auth)
    return serialize_assignment(a, files=_files_of(db, a.assignmentId))


def assignment_status_set(data, auth: AuthContext | None, db, cfg):
    a = get_or_404(db, Assignment, s(data, "id"), "Assignment")
    status = require_str(data, "status", "Status")
    transition(db, a, status, auth=auth, remark=s(data, "remark"))
    return serialize_assignment(a)


def assignment_delete(data, auth: AuthContext | None, db, cfg):
    a = get_or_404(db, Assignment, s(data, "id"), "Assignment")
    if a.status != "Draft":
        raise ApiError("CONFLICT", "Cannot delete assignment that has been sent")
    stored = [f.filename for f in _files_of(db, a.assignmentId)]
    db.delete(a)
    for name in stored:
        after_commit(db, partial(delete_file, cfg, name))
    append_audit(db, entityType="ASSIGNMENT", entityId=a.assignmentId, action="ASSIGNMENT_DELETE", fromState="Draft", actor=auth)
    return {"id": a.assignmentId, "deleted": True}


def assignment_files_add(data, auth: AuthContext | None, db, cfg):
    a = get_or_404(db, Assignment, s(data, "id"), "Assignment")
    uploads = (data or {}).get("_files") or []
    if not uploads:
        raise ApiError("BAD_REQUEST", "No files uploaded")
    if len(uploads) > MAX_FILES_PER_UPLOAD:
        raise ApiError("BAD_REQUEST", f"At most {MAX_FILES_PER_UPLOAD} files can be uploaded at once")

    rows = []
    for up in uploads:
        meta = save_file(cfg, up.get("blob") or b"", str(up.get("filename") or ""), str(up.get("mimetype") or ""))
        # All or nothing: a rejected file or a failed commit removes the whole batch.
        after_rollback(db, partial(delete_file, cfg, meta["filename"]))
        f = AssignmentFile(
            fileId=new_id("FILE"),
            assignmentId=a.assignmentId,
            filename=meta["filename"],
            originalName=meta["originalName"],
            mimeType=meta["mimeType"],
            size=int(meta["size"]),
            uploadedBy=auth.userId,
            uploadedAt=meta["uploadedAt"],
        )
        db.add(f)
        rows.append(f)
    a.updatedAt = iso_utc_now()
    a.updatedBy = auth.userId
    append_audit(db, entityType="ASSIGNMENT", entityId=a.assignmentId, action="ASSIGNMENT_FILES_ADD", actor=auth, meta={"count": len(rows)})
    return {"assignmentId": a.assignmentId, "files": [serialize_file(f) for f in rows]}


def assignment_file_delete(data, auth: AuthContext | None, db, cfg):
    a = get_or_404(db, Assignment, s(data, "id"), "Assignment")
    f = get_or_404(db, AssignmentFile, s(data, "fileId"), "File")
    if f.assignmentId != a.assignmentId:
        raise ApiError("NOT_FOUND", "File not found")
    db.delete(f)
    after_commit(db, partial(delete_file, cfg, f.filename))
    append_audit(db, entityType="ASSIGNMENT", entityId=a.assignmentId, action="ASSIGNMENT_FILE_DELETE", actor=auth, meta={"fileId": f.fileId})
    return {"id": f.fileId, "deleted": True}


def _finish_send(cfg, out: dict[str, Any], comm_id: str, message: dict[str, Any]) -> None:
    result = send_email(cfg, **message)
    out["emailNotification"] = notification_result(result, failure_warning="Assignment saved but email could not be sent")
    with unit_of_work() as db:
        comm = db.get(Communication, comm_id)
        if comm is not None:
            comm.status = "Sent" if result.get("success") else "Failed"
            comm.updatedAt = iso_utc_now()


def assignment_send(data, auth: AuthContext | None, db, cfg):
    """
    Move a Draft assignment to Assigned and email it to the candidate.

    The email leaves only after the status change has committed. Its
    Communication row is written as Pending with the transition and settled
    to Sent or Failed once the transport answers.
    """
    a = get_or_404(db, Assignment, s(data, "id"), "Assignment")
    c = db.get(Candidate, a.candidateId)
    if c is None or not is_valid_email(c.email):
        raise ApiError("VALIDATION_ERROR", "Candidate email is required to send assignment")
    files = _files_of(db, a.assignmentId)
    if not str(a.descriptionHtml or "").strip() and not files:
        raise ApiError("VALIDATION_ERROR", "Assignment must have description or attachments to send")

    subject = s(data, "subject") or f"Assignment: {a.title}"
    html = str(a.descriptionHtml or "")
    if a.dueDate:
        html += f"<p>Due date: {a.dueDate}</p>"
    message = {
        "to": c.email,
        "subject": subject,
        "text": f"{a.title}\n\nPlease see the assignment details.",
        "html": html,
        "attachments": [{"path": file_path(cfg, f.filename), "filename": f.originalName or f.filename} for f in files],
    }

    now = iso_utc_now()
    if a.status == "Draft":
        transition(db, a, "Assigned", auth=auth, remark="send")
    a.sentAt = now

    comm = log_communication(
        db,
        candidate_id=c.candidateId,
        assignment_id=a.assignmentId,
        type_="Email",
        status="Pending",
        subject=subject,
        content=f"Assignment sent: {a.title}",
        auth=auth,
    )
    append_audit(
        db,
        entityType="ASSIGNMENT",
        entityId=a.assignmentId,
        action="ASSIGNMENT_SEND",
        toState=a.status,
        actor=auth,
        at=now,
        meta={"attachments": len(files), "communicationId": comm.communicationId},
    )
    out = {
        "assignment": serialize_assignment(a, files=files),
        "communicationId": comm.communicationId,
    }
    after_commit(db, partial(_finish_send, cfg, out, comm.communicationId, message))
    return out


def assignments_by_candidate(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "candidateId"), "Candidate")
    rows = (
        db.execute(select(Assignment).where(Assignment.candidateId == c.candidateId).order_by(Assignment.createdAt.desc()))
        .scalars()
        .all()
    )
    return {
        "candidateId": c.candidateId,
        "inHouseAssignmentStatus": c.inHouseAssignmentStatus,
        "items": [serialize_assignment(a, files=_files_of(db, a.assignmentId)) for a in rows],
    }
