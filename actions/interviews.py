from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select

from actions.helpers import (
    append_audit,
    clamp_int,
    field_error,
    get_or_404,
    paginate,
    parse_float_field,
    parse_iso_field,
    parse_pagination,
    require_enum,
    require_str,
    s,
    user_names,
)
from models import Candidate, Interview, InterviewFeedback, User
from utils import ApiError, AuthContext, is_admin, is_admin_or_hr, iso_utc_now, json_dict, new_id, parse_datetime_maybe, to_iso_utc

INTERVIEW_TYPES = ["Technical", "HR", "Managerial", "Final"]
INTERVIEW_STATUSES = ["Scheduled", "In Progress", "Completed", "Cancelled", "Rescheduled"]
RECOMMENDATIONS = ["Strong Hire", "Hire", "No Hire", "Strong No Hire"]
MIN_DURATION = 15
MAX_DURATION = 480


def serialize_interview(i: Interview, *, names: dict[str, str] | None = None) -> dict[str, Any]:
    out = {
        "id": i.interviewId,
        "candidateId": i.candidateId,
        "interviewerId": i.interviewerId,
        "scheduledDate": i.scheduledDate,
        "duration": int(i.duration or 0),
        "type": i.type,
        "status": i.status,
        "round": int(i.round or 1),
        "meetingLink": i.meetingLink,
        "location": i.location,
        "notes": i.notes,
        "createdBy": i.createdBy,
        "createdAt": i.createdAt,
        "updatedAt": i.updatedAt,
    }
    if names is not None:
        out["interviewerName"] = names.get(i.interviewerId, "")
    return out


def _serialize_feedback(f: InterviewFeedback) -> dict[str, Any]:
    return {
        "id": f.feedbackId,
        "interviewId": f.interviewId,
        "interviewerId": f.interviewerId,
        "ratings": json_dict(f.ratingsJson),
        "overallRating": float(f.overallRating or 0),
        "recommendation": f.recommendation,
        "comments": f.comments,
        "strengths": f.strengths,
        "weaknesses": f.weaknesses,
        "additionalNotes": f.additionalNotes,
        "createdAt": f.createdAt,
    }


def _parse_duration(value: Any) -> int:
    if value in (None, ""):
        return 60
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise field_error("duration", f"duration must be between {MIN_DURATION} and {MAX_DURATION} minutes")
    if n < MIN_DURATION or n > MAX_DURATION:
        raise field_error("duration", f"duration must be between {MIN_DURATION} and {MAX_DURATION} minutes")
    return n


def _interviewer_or_400(db, user_id: str) -> User:
    u = db.get(User, user_id) if user_id else None
    if u is None:
        raise field_error("interviewerId", "Interviewer not found")
    if str(u.status or "").lower() == "inactive":
        raise field_error("interviewerId", "Interviewer is not active")
    return u


def _window(start_iso: str, duration: int) -> tuple[datetime, datetime]:
    start = parse_datetime_maybe(start_iso)
    if start is None:
        raise field_error("scheduledDate", "scheduledDate must be a valid ISO-8601 date")
    return start, start + timedelta(minutes=int(duration))


def assert_no_conflict(db, *, interviewer_id: str, scheduled_date: str, duration: int, exclude_id: str = "") -> None:
    """Two Scheduled interviews of one interviewer conflict iff [start, start+duration) windows intersect."""
    start, end = _window(scheduled_date, duration)
    # Candidates for overlap start before our end and no earlier than the longest possible duration before our start.
    lower = to_iso_utc(start - timedelta(minutes=MAX_DURATION))
    q = (
        select(Interview)
        .where(Interview.interviewerId == interviewer_id)
        .where(Interview.status == "Scheduled")
        .where(Interview.scheduledDate < to_iso_utc(end))
        .where(Interview.scheduledDate > lower)
    )
    if exclude_id:
        q = q.where(Interview.interviewId != exclude_id)
    for other in db.execute(q).scalars():
        o_start, o_end = _window(other.scheduledDate, other.duration or 60)
        if o_start < end and start < o_end:
            raise ApiError("VALIDATION_ERROR", "Interviewer has a scheduling conflict")


def interviews_list(data, auth: AuthContext | None, db, cfg):
    page, limit = parse_pagination(data)
    q = select(Interview)
    for key, col in (
        ("status", Interview.status),
        ("interviewerId", Interview.interviewerId),
        ("candidateId", Interview.candidateId),
        ("type", Interview.type),
    ):
        val = s(data, key)
        if val:
            q = q.where(col == val)
    date_from = parse_iso_field((data or {}).get("from"), "from")
    date_to = parse_iso_field((data or {}).get("to"), "to")
    if date_from:
        q = q.where(Interview.scheduledDate >= date_from)
    if date_to:
        q = q.where(Interview.scheduledDate <= date_to)
    q = q.order_by(Interview.scheduledDate.asc())

    out = paginate(db, q, page=page, limit=limit, mapper=lambda i: i)
    names = user_names(db, [i.interviewerId for i in out["items"]])
    out["items"] = [serialize_interview(i, names=names) for i in out["items"]]
    return out


def interview_get(data, auth: AuthContext | None, db, cfg):
    i = get_or_404(db, Interview, s(data, "id"), "Interview")
    out = serialize_interview(i, names=user_names(db, [i.interviewerId]))
    fb = db.execute(select(InterviewFeedback).where(InterviewFeedback.interviewId == i.interviewId)).scalar_one_or_none()
    out["feedback"] = _serialize_feedback(fb) if fb else None
    return out


def _assert_can_set_status(auth: AuthContext, i: Interview) -> None:
    if i.interviewerId != auth.userId and not is_admin_or_hr(auth):
        raise ApiError("FORBIDDEN", "Only the assigned interviewer can update this interview")


def interview_schedule(data, auth: AuthContext | None, db, cfg):
    data = data or {}
    c = db.get(Candidate, require_str(data, "candidateId", "Candidate"))
    if c is None:
        raise field_error("candidateId", "Candidate not found")
    interviewer = _interviewer_or_400(db, require_str(data, "interviewerId", "Interviewer"))
    scheduled = parse_iso_field(data.get("scheduledDate"), "scheduledDate", required=True)
    duration = _parse_duration(data.get("duration"))
    itype = require_enum(s(data, "type") or "Technical", INTERVIEW_TYPES, "type", "interview type")

    assert_no_conflict(db, interviewer_id=interviewer.userId, scheduled_date=scheduled, duration=duration)

    now = iso_utc_now()
    i = Interview(
        interviewId=new_id("INT"),
        candidateId=c.candidateId,
        interviewerId=interviewer.userId,
        scheduledDate=scheduled,
        duration=duration,
        type=itype,
        status="Scheduled",
        round=clamp_int(data.get("round"), default=1, min_v=1, max_v=20),
        meetingLink=s(data, "meetingLink"),
        location=s(data, "location"),
        notes=s(data, "notes"),
        createdAt=now,
        createdBy=auth.userId,
        updatedAt=now,
        updatedBy=auth.userId,
    )
    db.add(i)
    c.interviewerId = interviewer.userId
    c.interviewDate = scheduled
    append_audit(db, entityType="INTERVIEW", entityId=i.interviewId, action="INTERVIEW_SCHEDULE", toState="Scheduled", actor=auth, at=now, meta={"candidateId": c.candidateId})
    return serialize_interview(i, names={interviewer.userId: interviewer.name})


def interview_update(data, auth: AuthContext | None, db, cfg):
    i = get_or_404(db, Interview, s(data, "id"), "Interview")
    data = data or {}
    before = i.status
    if "status" in data:
        _assert_can_set_status(auth, i)

    if "interviewerId" in data:
        i.interviewerId = _interviewer_or_400(db, s(data, "interviewerId")).userId
    if "scheduledDate" in data:
        i.scheduledDate = parse_iso_field(data.get("scheduledDate"), "scheduledDate", required=True)
    if "duration" in data:
        i.duration = _parse_duration(data.get("duration"))
    if "type" in data:
        i.type = require_enum(s(data, "type"), INTERVIEW_TYPES, "type", "interview type")
    if "status" in data:
        i.status = require_enum(s(data, "status"), INTERVIEW_STATUSES, "status")
    if "round" in data:
        i.round = clamp_int(data.get("round"), default=i.round or 1, min_v=1, max_v=20)
    for key in ("meetingLink", "location", "notes"):
        if key in data:
            setattr(i, key, s(data, key))

    if i.status == "Scheduled" and ({"interviewerId", "scheduledDate", "duration", "status"} & set(data)):
        assert_no_conflict(
            db,
            interviewer_id=i.interviewerId,
            scheduled_date=i.scheduledDate,
            duration=i.duration,
            exclude_id=i.interviewId,
        )

    i.updatedAt = iso_utc_now()
    i.updatedBy = auth.userId
    append_audit(db, entityType="INTERVIEW", entityId=i.interviewId, action="INTERVIEW_UPDATE", fromState=before, toState=i.status, actor=auth)
    return serialize_interview(i, names=user_names(db, [i.interviewerId]))


def interview_delete(data, auth: AuthContext | None, db, cfg):
    i = get_or_404(db, Interview, s(data, "id"), "Interview")
    db.delete(i)
    append_audit(db, entityType="INTERVIEW", entityId=i.interviewId, action="INTERVIEW_DELETE", fromState=i.status, actor=auth)
    return {"id": i.interviewId, "deleted": True}


def interview_status_set(data, auth: AuthContext | None, db, cfg):
    i = get_or_404(db, Interview, s(data, "id"), "Interview")
    _assert_can_set_status(auth, i)
    status = require_enum(require_str(data, "status", "Status"), INTERVIEW_STATUSES, "status")
    before = i.status
    if status == "Scheduled" and before != "Scheduled":
        assert_no_conflict(
            db,
            interviewer_id=i.interviewerId,
            scheduled_date=i.scheduledDate,
            duration=i.duration,
            exclude_id=i.interviewId,
        )
    i.status = status
    i.updatedAt = iso_utc_now()
    i.updatedBy = auth.userId
    append_audit(db, entityType="INTERVIEW", entityId=i.interviewId, action="INTERVIEW_STATUS_SET", fromState=before, toState=status, actor=auth)
    return serialize_interview(i)


def interview_feedback_submit(data, auth: AuthContext | None, db, cfg):
    i = get_or_404(db, Interview, s(data, "id"), "Interview")
    if i.interviewerId != auth.userId and not is_admin(auth):
        raise ApiError("FORBIDDEN", "Only the assigned interviewer can submit feedback")
    if i.status != "Completed":
        raise ApiError("BAD_REQUEST", "Interview must be completed before submitting feedback")
    exists = db.execute(select(InterviewFeedback.feedbackId).where(InterviewFeedback.interviewId == i.interviewId)).first()
    if exists:
        raise ApiError("VALIDATION_ERROR", "Feedback already submitted for this interview")

    data = data or {}
    if data.get("overallRating") in (None, ""):
        raise field_error("overallRating", "overallRating is required")
    overall = parse_float_field(data.get("overallRating"), "overallRating", min_v=1, max_v=5)
    recommendation = require_enum(require_str(data, "recommendation", "Recommendation"), RECOMMENDATIONS, "recommendation")
    ratings = data.get("ratings") or {}
    if not isinstance(ratings, dict):
        raise field_error("ratings", "ratings must be an object")
    clean_ratings = {str(k): parse_float_field(v, f"ratings.{k}", min_v=1, max_v=5) for k, v in ratings.items()}

    now = iso_utc_now()
    f = InterviewFeedback(
        feedbackId=new_id("FB"),
        interviewId=i.interviewId,
        interviewerId=auth.userId,
        ratingsJson=json.dumps(clean_ratings),
        overallRating=overall,
        recommendation=recommendation,
        comments=s(data, "comments"),
        strengths=s(data, "strengths"),
        weaknesses=s(data, "weaknesses"),
        additionalNotes=s(data, "additionalNotes"),
        createdAt=now,
    )
    db.add(f)
    append_audit(db, entityType="INTERVIEW", entityId=i.interviewId, action="INTERVIEW_FEEDBACK_SUBMIT", toState=recommendation, actor=auth, at=now, meta={"overallRating": overall})
    return _serialize_feedback(f)


def interviews_by_interviewer(data, auth: AuthContext | None, db, cfg):
    interviewer_id = s(data, "interviewerId")
    if interviewer_id != auth.userId and not is_admin_or_hr(auth):
        raise ApiError("FORBIDDEN", "You can only view your own interviews")
    page, limit = parse_pagination(data)
    q = select(Interview).where(Interview.interviewerId == interviewer_id)
    status = s(data, "status")
    if status:
        q = q.where(Interview.status == status)
    q = q.order_by(Interview.scheduledDate.asc())
    return paginate(db, q, page=page, limit=limit, mapper=serialize_interview)


def interviews_upcoming(data, auth: AuthContext | None, db, cfg):
    days = clamp_int((data or {}).get("days"), default=7, min_v=1, max_v=90)
    now = datetime.now(timezone.utc)
    q = (
        select(Interview)
        .where(Interview.status == "Scheduled")
        .where(Interview.scheduledDate >= to_iso_utc(now))
        .where(Interview.scheduledDate <= to_iso_utc(now + timedelta(days=days)))
        .order_by(Interview.scheduledDate.asc())
    )
    if s(data, "mine") in {"1", "true"}:
        q = q.where(Interview.interviewerId == auth.userId)
    rows = db.execute(q.limit(clamp_int((data or {}).get("limit"), default=10, min_v=1, max_v=100))).scalars().all()
    names = user_names(db, [i.interviewerId for i in rows])
    return {"items": [serialize_interview(i, names=names) for i in rows], "days": days}
