from __future__ import annotations

from typing import Any

from sqlalchemy import func, or_, select

from actions.helpers import (
    append_audit,
    field_error,
    get_or_404,
    paginate,
    parse_bool,
    parse_float_field,
    parse_pagination,
    require_enum,
    require_str,
    s,
    user_names,
)
from models import Candidate, CandidateNote, CandidateRating
from utils import ApiError, AuthContext, is_admin_or_hr, iso_utc_now, new_id

NOTE_TYPES = ["Pre-Interview", "Interview", "Post-Interview", "General"]
RATING_TYPES = ["Technical", "Communication", "Cultural Fit", "Overall"]


def _assert_owner(auth: AuthContext, author_id: str, what: str) -> None:
    if author_id != auth.userId and not is_admin_or_hr(auth):
        raise ApiError("FORBIDDEN", f"You can only modify your own {what}")


def _serialize_note(n: CandidateNote, names: dict[str, str]) -> dict[str, Any]:
    return {
        "id": n.noteId,
        "candidateId": n.candidateId,
        "authorId": n.authorId,
        "authorName": names.get(n.authorId, ""),
        "type": n.noteType,
        "content": n.content,
        "isPrivate": bool(n.isPrivate),
        "createdAt": n.createdAt,
        "updatedAt": n.updatedAt,
    }


def _serialize_rating(r: CandidateRating, names: dict[str, str]) -> dict[str, Any]:
    return {
        "id": r.ratingId,
        "candidateId": r.candidateId,
        "authorId": r.authorId,
        "authorName": names.get(r.authorId, ""),
        "type": r.ratingType,
        "score": float(r.score or 0),
        "comments": r.comments,
        "createdAt": r.createdAt,
        "updatedAt": r.updatedAt,
    }


def visible_notes_query(candidate_id: str, auth: AuthContext):
    q = select(CandidateNote).where(CandidateNote.candidateId == candidate_id)
    if not is_admin_or_hr(auth):
        q = q.where(or_(CandidateNote.isPrivate.is_(False), CandidateNote.authorId == auth.userId))
    return q


def serialize_notes(db, notes: list[CandidateNote]) -> list[dict[str, Any]]:
    names = user_names(db, [n.authorId for n in notes])
    return [_serialize_note(n, names) for n in notes]


def ratings_summary_for(db, candidate_id: str) -> dict[str, Any]:
    rows = db.execute(
        select(CandidateRating.ratingType, func.avg(CandidateRating.score), func.count())
        .where(CandidateRating.candidateId == candidate_id)
        .group_by(CandidateRating.ratingType)
    ).all()
    by_type = {t: {"average": 0.0, "count": 0} for t in RATING_TYPES}
    total = 0
    weighted = 0.0
    for rtype, avg, n in rows:
        by_type[str(rtype)] = {"average": round(float(avg or 0), 2), "count": int(n)}
        total += int(n)
        weighted += float(avg or 0) * int(n)
    return {
        "candidateId": candidate_id,
        "byType": by_type,
        "totalRatings": total,
        "overallAverage": round(weighted / total, 2) if total else 0.0,
    }


def notes_list(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")
    page, limit = parse_pagination(data)
    q = visible_notes_query(c.candidateId, auth)
    note_type = s(data, "type")
    if note_type:
        q = q.where(CandidateNote.noteType == note_type)
    q = q.order_by(CandidateNote.createdAt.desc())
    out = paginate(db, q, page=page, limit=limit, mapper=lambda n: n)
    out["items"] = serialize_notes(db, out["items"])
    return out


def note_create(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")
    content = require_str(data, "content", "Content")
    note_type = require_enum(s(data, "type") or "General", NOTE_TYPES, "type", "note type")
    now = iso_utc_now()
    n = CandidateNote(
        noteId=new_id("NOTE"),
        candidateId=c.candidateId,
        authorId=auth.userId,
        noteType=note_type,
        content=content,
        isPrivate=parse_bool((data or {}).get("isPrivate")),
        createdAt=now,
        updatedAt=now,
    )
    db.add(n)
    append_audit(db, entityType="CANDIDATE_NOTE", entityId=n.noteId, action="NOTE_CREATE", actor=auth, at=now, meta={"candidateId": c.candidateId})
    return _serialize_note(n, {auth.userId: auth.name})


def _note_of(db, data) -> CandidateNote:
    n = get_or_404(db, CandidateNote, s(data, "noteId"), "Note")
    if n.candidateId != s(data, "id"):
        raise ApiError("NOT_FOUND", "Note not found")
    return n


def note_update(data, auth: AuthContext | None, db, cfg):
    n = _note_of(db, data)
    _assert_owner(auth, n.authorId, "notes")
    if "content" in data:
        n.content = require_str(data, "content", "Content")
    if "type" in data:
        n.noteType = require_enum(s(data, "type"), NOTE_TYPES, "type", "note type")
    if "isPrivate" in data:
        n.isPrivate = parse_bool(data.get("isPrivate"))
    n.updatedAt = iso_utc_now()
    append_audit(db, entityType="CANDIDATE_NOTE", entityId=n.noteId, action="NOTE_UPDATE", actor=auth)
    return _serialize_note(n, user_names(db, [n.authorId]))


def note_delete(data, auth: AuthContext | None, db, cfg):
    n = _note_of(db, data)
    _assert_owner(auth, n.authorId, "notes")
    db.delete(n)
    append_audit(db, entityType="CANDIDATE_NOTE", entityId=n.noteId, action="NOTE_DELETE", actor=auth)
    return {"id": n.noteId, "deleted": True}


def ratings_list(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")
    rows = (
        db.execute(
            select(CandidateRating)
            .where(CandidateRating.candidateId == c.candidateId)
            .order_by(CandidateRating.createdAt.desc())
        )
        .scalars()
        .all()
    )
    names = user_names(db, [r.authorId for r in rows])
    return {"items": [_serialize_rating(r, names) for r in rows]}


def ratings_summary(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")
    return ratings_summary_for(db, c.candidateId)


def rating_create(data, auth: AuthContext | None, db, cfg):
    c = get_or_404(db, Candidate, s(data, "id"), "Candidate")
    rating_type = require_enum(s(data, "type") or "Overall", RATING_TYPES, "type", "rating type")
    if (data or {}).get("score") in (None, ""):
        raise field_error("score", "score is required")
    score = parse_float_field(data.get("score"), "score", min_v=1, max_v=5)

    dup = db.execute(
        select(CandidateRating.ratingId)
        .where(CandidateRating.candidateId == c.candidateId)
        .where(CandidateRating.authorId == auth.userId)
        .where(CandidateRating.ratingType == rating_type)
    ).first()
    if dup:
        raise ApiError("BAD_REQUEST", f"You have already rated this candidate for {rating_type}")

    now = iso_utc_now()
    r = CandidateRating(
        ratingId=new_id("RAT"),
        candidateId=c.candidateId,
        authorId=auth.userId,
        ratingType=rating_type,
        score=score,
        comments=s(data, "comments"),
        createdAt=now,
        updatedAt=now,
    )
    db.add(r)
    append_audit(db, entityType="CANDIDATE_RATING", entityId=r.ratingId, action="RATING_CREATE", actor=auth, at=now, meta={"candidateId": c.candidateId, "score": score})
    return _serialize_rating(r, {auth.userId: auth.name})


def _rating_of(db, data) -> CandidateRating:
    r = get_or_404(db, CandidateRating, s(data, "ratingId"), "Rating")
    if r.candidateId != s(data, "id"):
        raise ApiError("NOT_FOUND", "Rating not found")
    return r


def rating_update(data, auth: AuthContext | None, db, cfg):
    r = _rating_of(db, data)
    _assert_owner(auth, r.authorId, "ratings")
    if "score" in data:
        r.score = parse_float_field(data.get("score"), "score", min_v=1, max_v=5)
    if "comments" in data:
        r.comments = s(data, "comments")
    r.updatedAt = iso_utc_now()
    append_audit(db, entityType="CANDIDATE_RATING", entityId=r.ratingId, action="RATING_UPDATE", actor=auth)
    return _serialize_rating(r, user_names(db, [r.authorId]))


def rating_delete(data, auth: AuthContext | None, db, cfg):
    r = _rating_of(db, data)
    _assert_owner(auth, r.authorId, "ratings")
    db.delete(r)
    append_audit(db, entityType="CANDIDATE_RATING", entityId=r.ratingId, action="RATING_DELETE", actor=auth)
    return {"id": r.ratingId, "deleted": True}
