from __future__ import annotations

import json
from typing import Any

from sqlalchemy import func, or_, select

from actions.communications import log_communication
from actions.helpers import (
    append_audit,
    field_error,
    get_or_404,
    paginate,
    parse_bool,
    parse_list_field,
    parse_pagination,
    require_enum,
    require_str,
    s,
)
from models import Candidate, EmailTemplate, JobPosting
from services.mailer import render_template, send_template_email
from utils import ApiError, AuthContext, iso_utc_now, json_list, new_id, parse_datetime_maybe

TEMPLATE_CATEGORIES = ["Interview Invite", "Rejection", "Offer", "Follow-up", "Custom"]
SEND_MAX_RECIPIENTS = 100

TEMPLATE_VARIABLES = [
    {"name": "candidate_name", "description": "Candidate's full name", "example": "Jane Doe"},
    {"name": "company_name", "description": "Company name", "example": "Acme Corp"},
    {"name": "job_title", "description": "Position the candidate applied for", "example": "Backend Engineer"},
    {"name": "interview_date", "description": "Scheduled interview date", "example": "2024-01-25"},
    {"name": "interview_time", "description": "Scheduled interview time (UTC)", "example": "10:00"},
    {"name": "hr_name", "description": "Name of the sender", "example": "Alex Smith"},
]

DEFAULT_TEMPLATES = [
    {
        "name": "Interview Invitation",
        "category": "Interview Invite",
        "subject": "Interview invitation for {{job_title}} at {{company_name}}",
        "content": (
            "Dear {{candidate_name}},\n\n"
            "We would like to invite you to an interview for the {{job_title}} position "
            "on {{interview_date}} at {{interview_time}}.\n\n"
            "Best regards,\n{{hr_name}}\n{{company_name}}"
        ),
    },
    {
        "name": "Application Update",
        "category": "Rejection",
        "subject": "Your application for {{job_title}}",
        "content": (
            "Dear {{candidate_name}},\n\n"
            "Thank you for your interest in the {{job_title}} position. After careful review we have "
            "decided to move forward with other candidates.\n\n"
            "Best regards,\n{{hr_name}}\n{{company_name}}"
        ),
    },
    {
        "name": "Job Offer",
        "category": "Offer",
        "subject": "Offer for {{job_title}} at {{company_name}}",
        "content": (
            "Dear {{candidate_name}},\n\n"
            "We are pleased to offer you the {{job_title}} position at {{company_name}}. "
            "Details will follow in a separate letter.\n\n"
            "Best regards,\n{{hr_name}}"
        ),
    },
    {
        "name": "Follow-up",
        "category": "Follow-up",
        "subject": "Following up on your application",
        "content": (
            "Hi {{candidate_name}},\n\n"
            "We wanted to follow up on your application for {{job_title}}. We will be in touch soon.\n\n"
            "Best regards,\n{{hr_name}}"
        ),
    },
    {
        "name": "General Message",
        "category": "Custom",
        "subject": "Message from {{company_name}}",
        "content": "Hi {{candidate_name}},\n\n\n\nBest regards,\n{{hr_name}}",
    },
]


def serialize_template(t: EmailTemplate) -> dict[str, Any]:
    return {
        "id": t.templateId,
        "name": t.name,
        "subject": t.subject,
        "content": t.content,
        "category": t.category,
        "variables": json_list(t.variablesJson),
        "isActive": bool(t.isActive),
        "createdBy": t.createdBy,
        "createdAt": t.createdAt,
        "updatedAt": t.updatedAt,
    }


def _parse_variables(value: Any) -> list[str]:
    out: list[str] = []
    for v in parse_list_field(value, "variables"):
        name = str(v or "").strip()
        if name and name not in out:
            out.append(name)
    return out


def candidate_variables(db, cfg, c: Candidate, auth: AuthContext) -> dict[str, str]:
    job_title = c.position or ""
    if c.jobId:
        job = db.get(JobPosting, c.jobId)
        if job is not None:
            job_title = job.title
    interview_dt = parse_datetime_maybe(c.interviewDate)
    return {
        "candidate_name": c.name,
        "company_name": cfg.COMPANY_NAME,
        "job_title": job_title,
        "interview_date": interview_dt.strftime("%Y-%m-%d") if interview_dt else "",
        "interview_time": interview_dt.strftime("%H:%M") if interview_dt else "",
        "hr_name": auth.name,
    }


def seed_default_templates(db) -> int:
    """Insert one default template per missing category."""
    have = {str(c) for c in db.execute(select(EmailTemplate.category).distinct()).scalars()}
    now = iso_utc_now()
    added = 0
    for tpl in DEFAULT_TEMPLATES:
        if tpl["category"] in have:
            continue
        db.add(
            EmailTemplate(
                templateId=new_id("TPL"),
                name=tpl["name"],
                subject=tpl["subject"],
                content=tpl["content"],
                category=tpl["category"],
                variablesJson=json.dumps([v["name"] for v in TEMPLATE_VARIABLES]),
                isActive=True,
                createdBy="SYSTEM",
                createdAt=now,
                updatedAt=now,
                updatedBy="SYSTEM",
            )
        )
        added += 1
    return added


def templates_list(data, auth: AuthContext | None, db, cfg):
    page, limit = parse_pagination(data)
    q = select(EmailTemplate)
    category = s(data, "category")
    if category:
        q = q.where(EmailTemplate.category == category)
    if "isActive" in (data or {}) and s(data, "isActive"):
        q = q.where(EmailTemplate.isActive.is_(parse_bool(data.get("isActive"))))
    search = s(data, "search")
    if search:
        like = f"%{search}%"
        q = q.where(or_(EmailTemplate.name.ilike(like), EmailTemplate.subject.ilike(like)))
    q = q.order_by(EmailTemplate.category.asc(), EmailTemplate.name.asc())
    return paginate(db, q, page=page, limit=limit, mapper=serialize_template)


def template_get(data, auth: AuthContext | None, db, cfg):
    return serialize_template(get_or_404(db, EmailTemplate, s(data, "id"), "Template"))


def template_create(data, auth: AuthContext | None, db, cfg):
    data = data or {}
    now = iso_utc_now()
    t = EmailTemplate(
        templateId=new_id("TPL"),
        name=require_str(data, "name", "Name"),
        subject=require_str(data, "subject", "Subject"),
        content=require_str(data, "content", "Content"),
        category=require_enum(s(data, "category") or "Custom", TEMPLATE_CATEGORIES, "category"),
        variablesJson=json.dumps(_parse_variables(data.get("variables"))),
        isActive=parse_bool(data.get("isActive"), default=True),
        createdBy=auth.userId,
        createdAt=now,
        updatedAt=now,
        updatedBy=auth.userId,
    )
    db.add(t)
    append_audit(db, entityType="EMAIL_TEMPLATE", entityId=t.templateId, action="TEMPLATE_CREATE", actor=auth, at=now)
    return serialize_template(t)


def template_update(data, auth: AuthContext | None, db, cfg):
    t = get_or_404(db, EmailTemplate, s(data, "id"), "Template")
    data = data or {}
    for key, label in (("name", "Name"), ("subject", "Subject"), ("content", "Content")):
        if key in data:
            setattr(t, key, require_str(data, key, label))
    if "category" in data:
        t.category = require_enum(s(data, "category"), TEMPLATE_CATEGORIES, "category")
    if "variables" in data:
        t.variablesJson = json.dumps(_parse_variables(data.get("variables")))
    if "isActive" in data:
        t.isActive = parse_bool(data.get("isActive"))
    t.updatedAt = iso_utc_now()
    t.updatedBy = auth.userId
    append_audit(db, entityType="EMAIL_TEMPLATE", entityId=t.templateId, action="TEMPLATE_UPDATE", actor=auth)
    return serialize_template(t)


def template_delete(data, auth: AuthContext | None, db, cfg):
    t = get_or_404(db, EmailTemplate, s(data, "id"), "Template")
    db.delete(t)
    append_audit(db, entityType="EMAIL_TEMPLATE", entityId=t.templateId, action="TEMPLATE_DELETE", actor=auth)
    return {"id": t.templateId, "deleted": True}


def template_categories(data, auth: AuthContext | None, db, cfg):
    counts = {
        str(cat): int(n)
        for cat, n in db.execute(select(EmailTemplate.category, func.count()).group_by(EmailTemplate.category)).all()
    }
    return {"items": [{"category": c, "count": counts.get(c, 0)} for c in TEMPLATE_CATEGORIES]}


def template_variables(data, auth: AuthContext | None, db, cfg):
    return {"items": list(TEMPLATE_VARIABLES)}


def template_preview(data, auth: AuthContext | None, db, cfg):
    t = get_or_404(db, EmailTemplate, s(data, "id"), "Template")
    variables: dict[str, Any] = {}
    cid = s(data, "candidateId")
    if cid:
        c = db.get(Candidate, cid)
        if c is None:
            raise field_error("candidateId", "Candidate not found")
        variables.update(candidate_variables(db, cfg, c, auth))
    supplied = (data or {}).get("variables") or {}
    if not isinstance(supplied, dict):
        raise field_error("variables", "variables must be an object")
    variables.update(supplied)
    return {
        "subject": render_template(t.subject, variables),
        "content": render_template(t.content, variables),
        "variables": variables,
    }


def template_send(data, auth: AuthContext | None, db, cfg):
    t = get_or_404(db, EmailTemplate, s(data, "id"), "Template")
    if not t.isActive:
        raise ApiError("BAD_REQUEST", "Template is not active")
    ids = parse_list_field((data or {}).get("candidateIds"), "candidateIds")
    if not ids:
        raise field_error("candidateIds", "candidateIds must be a non-empty list")
    if len(ids) > SEND_MAX_RECIPIENTS:
        raise field_error("candidateIds", f"At most {SEND_MAX_RECIPIENTS} candidates per send")
    overrides = (data or {}).get("variables") or {}
    if not isinstance(overrides, dict):
        raise field_error("variables", "variables must be an object")

    results: list[dict[str, Any]] = []
    for raw_id in ids:
        cid = str(raw_id or "").strip()
        c = db.get(Candidate, cid) if cid else None
        if c is None:
            results.append({"candidateId": cid, "success": False, "error": "Candidate not found"})
            continue
        variables = {**candidate_variables(db, cfg, c, auth), **overrides}
        result = send_template_email(cfg, c.email, t.subject, t.content, variables)
        if result.get("success"):
            row = log_communication(
                db,
                candidate_id=c.candidateId,
                type_="Email",
                status="Sent",
                subject=render_template(t.subject, variables),
                content=render_template(t.content, variables),
                auth=auth,
            )
            results.append({"candidateId": cid, "success": True, "communicationId": row.communicationId})
        else:
            results.append({"candidateId": cid, "success": False, "error": str(result.get("error") or "Send failed")})

    sent = sum(1 for r in results if r["success"])
    append_audit(db, entityType="EMAIL_TEMPLATE", entityId=t.templateId, action="TEMPLATE_SEND", actor=auth, meta={"sent": sent, "failed": len(results) - sent})
    return {"sent": sent, "failed": len(results) - sent, "results": results}
