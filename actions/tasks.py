from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select

from actions.helpers import (
    append_audit,
    get_or_404,
    paginate,
    parse_iso_field,
    parse_pagination,
    require_enum,
    require_str,
    s,
    user_names,
    user_or_400,
)
from db import after_commit
from models import Task, User
from services.mailer import notification_result, send_email
from utils import ApiError, AuthContext, is_admin_or_hr, iso_utc_now, new_id

TASK_PRIORITIES = ["High", "Medium", "Low"]
TASK_STATUSES = ["Pending", "In Progress", "Completed"]


def serialize_task(t: Task, names: dict[str, str] | None = None) -> dict[str, Any]:
    names = names or {}
    return {
        "id": t.taskId,
        "title": t.title,
        "description": t.description,
        "assignedTo": t.assignedTo,
        "assignedToName": names.get(t.assignedTo, ""),
        "createdBy": t.createdBy,
        "createdByName": names.get(t.createdBy, ""),
        "priority": t.priority,
        "status": t.status,
        "dueDate": t.dueDate,
        "candidateId": t.candidateId,
        "jobId": t.jobId,
        "completedAt": t.completedAt,
        "createdAt": t.createdAt,
        "updatedAt": t.updatedAt,
    }


def _assert_can_modify(auth: AuthContext, t: Task) -> None:
    if (t.assignedTo and auth.userId == t.assignedTo) or is_admin_or_hr(auth):
        return
    raise ApiError("FORBIDDEN", "You can only modify tasks assigned to you")


def _set_status(t: Task, status: str, now: str) -> None:
    t.status = require_enum(status, TASK_STATUSES, "status")
    t.completedAt = now if t.status == "Completed" else ""


def _notify_assignee(cfg, assignee: User, t: Task, auth: AuthContext) -> dict[str, Any]:
    text = "\n".join(
        [
            f"Hi {assignee.name},",
            "",
            f"{auth.name or 'A team member'} assigned you a new task: {t.title}",
            f"Priority: {t.priority}",
            f"Due: {t.dueDate or 'not set'}",
            "",
            t.description or "",
        ]
    )
    result = send_email(cfg, assignee.email, f"New task assigned: {t.title}", text)
    return notification_result(result, failure_warning="Task created but notification email could not be sent")


def tasks_list(data, auth: AuthContext | None, db, cfg):
    page, limit = parse_pagination(data)
    q = select(Task)
    for key, col in (("status", Task.status), ("priority", Task.priority), ("assignedTo", Task.assignedTo)):
        val = s(data, key)
        if val:
            q = q.where(col == val)
    if s(data, "mine") in {"1", "true"}:
        q = q.where(or_(Task.assignedTo == auth.userId, Task.createdBy == auth.userId))
    q = q.order_by(Task.createdAt.desc())

    out = paginate(db, q, page=page, limit=limit, mapper=lambda t: t)
    names = user_names(db, [u for t in out["items"] for u in (t.assignedTo, t.createdBy)])
    out["items"] = [serialize_task(t, names) for t in out["items"]]
    return out


def task_get(data, auth: AuthContext | None, db, cfg):
    t = get_or_404(db, Task, s(data, "id"), "Task")
    return serialize_task(t, user_names(db, [t.assignedTo, t.createdBy]))


def task_create(data, auth: AuthContext | None, db, cfg):
    data = data or {}
    title = require_str(data, "title", "Title")
    assigned_to = s(data, "assignedTo")
    if assigned_to:
        user_or_400(db, assigned_to, "assignedTo")

    now = iso_utc_now()
    t = Task(
        taskId=new_id("TSK"),
        title=title,
        description=s(data, "description"),
        assignedTo=assigned_to,
        createdBy=auth.userId,
        priority=require_enum(s(data, "priority") or "Medium", TASK_PRIORITIES, "priority"),
        dueDate=parse_iso_field(data.get("dueDate"), "dueDate"),
        candidateId=s(data, "candidateId"),
        jobId=s(data, "jobId"),
        createdAt=now,
        updatedAt=now,
        updatedBy=auth.userId,
    )
    _set_status(t, s(data, "status") or "Pending", now)
    db.add(t)
    append_audit(db, entityType="TASK", entityId=t.taskId, action="TASK_CREATE", toState=t.status, actor=auth, at=now)

    out = serialize_task(t, user_names(db, [t.assignedTo, t.createdBy]))
    if assigned_to and is_admin_or_hr(auth):
        assignee = user_or_400(db, assigned_to, "assignedTo")
        after_commit(db, lambda: out.update(emailNotification=_notify_assignee(cfg, assignee, t, auth)))
    return out


def task_update(data, auth: AuthContext | None, db, cfg):
    t = get_or_404(db, Task, s(data, "id"), "Task")
    _assert_can_modify(auth, t)
    data = data or {}
    before = t.status
    now = iso_utc_now()

    if "title" in data:
        t.title = require_str(data, "title", "Title")
    if "description" in data:
        t.description = s(data, "description")
    if "priority" in data:
        t.priority = require_enum(s(data, "priority"), TASK_PRIORITIES, "priority")
    if "dueDate" in data:
        t.dueDate = parse_iso_field(data.get("dueDate"), "dueDate")
    if "assignedTo" in data:
        assigned_to = s(data, "assignedTo")
        if assigned_to:
            user_or_400(db, assigned_to, "assignedTo")
        t.assignedTo = assigned_to
    if "status" in data:
        _set_status(t, s(data, "status"), now)

    t.updatedAt = now
    t.updatedBy = auth.userId
    append_audit(db, entityType="TASK", entityId=t.taskId, action="TASK_UPDATE", fromState=before, toState=t.status, actor=auth, at=now)
    return serialize_task(t, user_names(db, [t.assignedTo, t.createdBy]))


def task_status_set(data, auth: AuthContext | None, db, cfg):
    t = get_or_404(db, Task, s(data, "id"), "Task")
    _assert_can_modify(auth, t)
    before = t.status
    now = iso_utc_now()
    _set_status(t, require_str(data, "status", "Status"), now)
    t.updatedAt = now
    t.updatedBy = auth.userId
    append_audit(db, entityType="TASK", entityId=t.taskId, action="TASK_STATUS_SET", fromState=before, toState=t.status, actor=auth, at=now)
    return serialize_task(t)


def task_delete(data, auth: AuthContext | None, db, cfg):
    t = get_or_404(db, Task, s(data, "id"), "Task")
    _assert_can_modify(auth, t)
    db.delete(t)
    append_audit(db, entityType="TASK", entityId=t.taskId, action="TASK_DELETE", fromState=t.status, actor=auth)
    return {"id": t.taskId, "deleted": True}
