from __future__ import annotations

from typing import Any

from sqlalchemy import func, or_, select

from actions.helpers import append_audit, field_error, get_or_404, paginate, parse_pagination, require_enum, require_str, s
from auth import (
    DEFAULT_ROLE_PERMISSIONS,
    grant_default_permissions,
    invalidate_user_permissions,
    load_user_permissions,
    normalize_permissions,
    replace_user_permissions,
    revoke_user_sessions,
)
from db import after_commit
from models import User
from passwords import hash_password
from utils import ROLES, ApiError, AuthContext, is_valid_email, iso_utc_now, new_id, normalize_role

USER_STATUSES = ["Active", "Away", "Busy", "inactive"]


def serialize_user(db, u: User, *, with_permissions: bool = True) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": str(u.userId),
        "username": str(u.username or ""),
        "email": str(u.email or ""),
        "name": str(u.name or ""),
        "role": str(u.role or ""),
        "status": str(u.status or ""),
        "department": str(u.department or ""),
        "phone": str(u.phone or ""),
        "avatar": str(u.avatar or ""),
        "lastLogin": str(u.lastLoginAt or ""),
        "createdAt": str(u.createdAt or ""),
        "updatedAt": str(u.updatedAt or ""),
    }
    if with_permissions:
        perms = load_user_permissions(db, u.userId)
        out["permissions"] = [{"module": m, "actions": a} for m, a in sorted(perms.items())]
    return out


def _parse_role(value: Any, *, default: str = "") -> str:
    raw = str(value or "").strip() or default
    role = normalize_role(raw)
    if not role:
        raise field_error("role", f"Invalid role. Allowed: {', '.join(ROLES)}")
    return role


def _assert_unique(db, *, username: str = "", email: str = "", exclude_user_id: str = "") -> None:
    conds = []
    if username:
        conds.append(func.lower(User.username) == username.lower())
    if email:
        conds.append(func.lower(User.email) == email.lower())
    if not conds:
        return
    q = select(User.userId).where(or_(*conds))
    if exclude_user_id:
        q = q.where(User.userId != exclude_user_id)
    if db.execute(q).first():
        if username and email:
            raise ApiError("CONFLICT", "Username or email already exists")
        raise ApiError("CONFLICT", "Email already exists" if email else "Username already exists")


def create_user_record(db, cfg, data: dict[str, Any], actor: AuthContext | None) -> User:
    username = require_str(data, "username", "Username")
    email = require_str(data, "email", "Email").lower()
    name = require_str(data, "name", "Name")
    if not is_valid_email(email):
        raise field_error("email", "Please provide a valid email address")
    role = _parse_role(data.get("role"), default="Recruiter")
    password_hash = hash_password(str(data.get("password") or ""), min_length=cfg.PASSWORD_MIN_LENGTH)

    _assert_unique(db, username=username, email=email)

    now = iso_utc_now()
    actor_id = actor.userId if actor else "SYSTEM"
    user = User(
        userId=new_id("USR"),
        username=username,
        email=email,
        name=name,
        passwordHash=password_hash,
        role=role,
        status="Active",
        department=s(data, "department"),
        phone=s(data, "phone"),
        avatar=s(data, "avatar"),
        lastLoginAt="",
        createdAt=now,
        createdBy=actor_id,
        updatedAt=now,
        updatedBy=actor_id,
    )
    db.add(user)
    db.flush()

    if data.get("permissions") is not None:
        replace_user_permissions(db, user.userId, normalize_permissions(data.get("permissions")), actor=actor_id)
    else:
        grant_default_permissions(db, user.userId, role, actor=actor_id)

    append_audit(db, entityType="USER", entityId=user.userId, action="USER_CREATE", toState=role, actor=actor, at=now)
    return user


def users_list(data, auth: AuthContext | None, db, cfg):
    page, limit = parse_pagination(data)
    q = select(User)
    role = s(data, "role")
    status = s(data, "status")
    search = s(data, "search")
    if role:
        q = q.where(User.role == (normalize_role(role) or role))
    if status:
        q = q.where(User.status == status)
    if search:
        like = f"%{search}%"
        q = q.where(or_(User.name.ilike(like), User.email.ilike(like), User.username.ilike(like)))
    q = q.order_by(User.createdAt.desc())
    return paginate(db, q, page=page, limit=limit, mapper=lambda u: serialize_user(db, u, with_permissions=False))


def user_get(data, auth: AuthContext | None, db, cfg):
    u = get_or_404(db, User, s(data, "id"), "User")
    return serialize_user(db, u)


def user_create(data, auth: AuthContext | None, db, cfg):
    u = create_user_record(db, cfg, data or {}, auth)
    return serialize_user(db, u)


def user_update(data, auth: AuthContext | None, db, cfg):
    u = get_or_404(db, User, s(data, "id"), "User")
    before_role = str(u.role or "")

    if "email" in data:
        email = require_str(data, "email", "Email").lower()
        if not is_valid_email(email):
            raise field_error("email", "Please provide a valid email address")
        _assert_unique(db, email=email, exclude_user_id=u.userId)
        u.email = email
    if "username" in data:
        username = require_str(data, "username", "Username")
        _assert_unique(db, username=username, exclude_user_id=u.userId)
        u.username = username
    if "name" in data:
        u.name = require_str(data, "name", "Name")
    if "role" in data:
        # Permission rows are a copy made at creation time; a role change leaves them as they are.
        u.role = _parse_role(data.get("role"))
    if "status" in data:
        u.status = require_enum(s(data, "status"), USER_STATUSES, "status")
        if u.status == "inactive":
            revoke_user_sessions(db, user_id=u.userId, revoked_by=auth.userId if auth else "SYSTEM")
    for key in ("department", "phone", "avatar"):
        if key in data:
            setattr(u, key, s(data, key))

    u.updatedAt = iso_utc_now()
    u.updatedBy = auth.userId if auth else ""
    append_audit(db, entityType="USER", entityId=u.userId, action="USER_UPDATE", fromState=before_role, toState=str(u.role), actor=auth)
    return serialize_user(db, u)


def user_status_set(data, auth: AuthContext | None, db, cfg):
    u = get_or_404(db, User, s(data, "id"), "User")
    status = require_enum(require_str(data, "status", "Status"), USER_STATUSES, "status")
    before = str(u.status or "")
    u.status = status
    u.updatedAt = iso_utc_now()
    u.updatedBy = auth.userId if auth else ""
    if status == "inactive":
        revoke_user_sessions(db, user_id=u.userId, revoked_by=auth.userId if auth else "SYSTEM")
    append_audit(db, entityType="USER", entityId=u.userId, action="USER_STATUS_SET", fromState=before, toState=status, actor=auth)
    return {"id": u.userId, "status": status}


def user_permissions_set(data, auth: AuthContext | None, db, cfg):
    u = get_or_404(db, User, s(data, "id"), "User")
    if "permissions" not in (data or {}):
        raise field_error("permissions", "permissions is required")
    perms = normalize_permissions(data.get("permissions"))
    replace_user_permissions(db, u.userId, perms, actor=auth.userId if auth else "")
    append_audit(db, entityType="USER", entityId=u.userId, action="USER_PERMISSIONS_SET", actor=auth, meta={"permissions": perms})
    return {"id": u.userId, "permissions": [{"module": m, "actions": a} for m, a in sorted(perms.items())]}


def user_delete(data, auth: AuthContext | None, db, cfg):
    u = get_or_404(db, User, s(data, "id"), "User")
    if normalize_role(u.role) == "Admin":
        raise ApiError("CONFLICT", "Cannot delete admin users")
    if auth and u.userId == auth.userId:
        raise ApiError("BAD_REQUEST", "You cannot delete your own account")
    db.delete(u)
    after_commit(db, lambda: invalidate_user_permissions(u.userId))
    append_audit(db, entityType="USER", entityId=u.userId, action="USER_DELETE", fromState=str(u.role or ""), actor=auth)
    return {"id": u.userId, "deleted": True}


def role_templates_list(data, auth: AuthContext | None, db, cfg):
    return {
        "roles": [
            {"role": role, "permissions": [{"module": m, "actions": a} for m, a in tpl.items()]}
            for role, tpl in DEFAULT_ROLE_PERMISSIONS.items()
        ]
    }
