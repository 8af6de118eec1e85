from __future__ import annotations

from typing import Any

from sqlalchemy import select

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
from models import Candidate, Communication
from utils import ApiError, AuthContext, is_admin, is_admin_or_hr, iso_utc_now, new_id

COMMUNICATION_TYPES = ["Email", "Phone", "WhatsApp", "LinkedIn"]
COMMUNICATION_STATUSES = ["Sent", "Received", "Pending", "Delivered", "Read", "Replied", "Failed"]


def serialize_communication(c: Communication, names: dict[str, str] | None = None) -> dict[str, Any]:
    out = {
        "id": c.communicationId,
        "candidateId": c.candidateId,
        "assignmentId": c.assignmentId or None,
        "type": c.type,
        "status": c.status,
        "subject": c.subject,
        "content": c.content,
        "date": c.date,
        "createdBy": c.createdBy,
        "createdAt": c.createdAt,
        "updatedAt": c.updatedAt,
    }
    if names is not None:
        out["createdByName"] = names.get(c.createdBy, "")
    return out


def log_communication(db, *, candidate_id: str, type_: str, status: str, subject: str, content: str, auth: AuthContext, assignment_id: str = "") -> Communication:
    now = iso_utc_now()
    row = Communication(
        communicationId=new_id("COM"),
        candidateId=candidate_id,
        assignmentId=assignment_id,
        type=type_,
        status=status,
        subject=subject,
        content=content,
        date=now,
        createdBy=auth.userId,
        createdAt=now,
        updatedAt=now,
    )
    db.add(row)
    return row


def _list(db, q, data):
    page, limit = parse_pagination(data)
    q = q.order_by(Communication.date.desc())
    out = paginate(db, q, page=page, limit=limit, mapper=lambda c: c)
    names = user_names(db, [c.createdBy for c in out["items"]])
    out["items"] = [serialize_communication(c, names) for c in out["items"]]
    return out


def communications_list(data, auth: AuthContext | None, db, cfg):
    q = select(Communication)
    for key, col in (("candidateId", Communication.candidateId), ("type", Communication.type), ("status", Communication.status)):
        val = s(data, key)
        if val:
            q = q.where(col == val)
    return _list(db, q, data)


def communications_by_candidate(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "candidateId"), "Candidate")
    return _list(db, select(Communication).where(Communication.candidateId == c.candidateId), data)


def communication_get(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Communication, s(data, "id"), "Communication")
    return serialize_communication(c, user_names(db, [c.createdBy]))


def communication_create(data, auth: AuthContext | None, db, cfg):
    data = data or {}
    cand = db.get(Candidate, require_str(data, "candidateId", "Candidate"))
    if cand is None:
        raise field_error("candidateId", "Candidate not found")
    row = log_communication(
        db,
        candidate_id=cand.candidateId,
        type_=require_enum(require_str(data, "type", "Type"), COMMUNICATION_TYPES, "type"),
        status=require_enum(s(data, "status") or "Sent", COMMUNICATION_STATUSES, "status"),
        subject=s(data, "subject"),
        content=require_str(data, "content", "Content"),
        auth=auth,
    )
    if "date" in data:
        row.date = parse_iso_field(data.get("date"), "date") or row.date
    append_audit(db, entityType="COMMUNICATION", entityId=row.communicationId, action="COMMUNICATION_CREATE", toState=row.status, actor=auth, meta={"candidateId": cand.candidateId})
    return serialize_communication(row, {auth.userId: auth.name})


def communication_update(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Communication, s(data, "id"), "Communication")
    if c.createdBy != auth.userId and not is_admin_or_hr(auth):
        raise ApiError("FORBIDDEN", "You can only modify your own communications")
    data = data or {}
    before = c.status
    if "type" in data:
        c.type = require_enum(s(data, "type"), COMMUNICATION_TYPES, "type")
    if "status" in data:
        c.status = require_enum(s(data, "status"), COMMUNICATION_STATUSES, "status")
    if "subject" in data:
        c.subject = s(data, "subject")
    if "content" in data:
        c.content = require_str(data, "content", "Content")
    c.updatedAt = iso_utc_now()
    append_audit(db, entityType="COMMUNICATION", entityId=c.communicationId, action="COMMUNICATION_UPDATE", fromState=before, toState=c.status, actor=auth)
    return serialize_communication(c, user_names(db, [c.createdBy]))


def communication_delete(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Communication, s(data, "id"), "Communication")
    if c.createdBy != auth.userId and not is_admin(auth):
        raise ApiError("FORBIDDEN", "Only the author or an Admin can delete this communication")
    db.delete(c)
    append_audit(db, entityType="COMMUNICATION", entityId=c.communicationId, action="COMMUNICATION_DELETE", fromState=c.status, actor=auth)
    return {"id": c.communicationId, "deleted": True}
