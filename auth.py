from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import delete, select

from cache_layer import cache_get, cache_invalidate, cache_key, cache_set
from db import after_commit, after_rollback
from models import Session as DbSession, User, UserPermission
from utils import ApiError, AuthContext, iso_utc_now, new_uuid, normalize_role, parse_datetime_maybe, sha256_hex, to_iso_utc


MODULES = [
    "dashboard",
    "jobs",
    "candidates",
    "interviews",
    "assignments",
    "tasks",
    "communications",
    "team",
    "analytics",
    "settings",
]
PERMISSION_ACTIONS = ["view", "create", "edit", "delete"]

_ALL = list(PERMISSION_ACTIONS)
_VCE = ["view", "create", "edit"]

# Copied into user_permissions rows when a user is created; never re-derived from role afterwards.
DEFAULT_ROLE_PERMISSIONS: dict[str, dict[str, list[str]]] = {
    "Admin": {m: list(_ALL) for m in MODULES},
    "HR Manager": {
        "dashboard": ["view"],
        "jobs": list(_VCE),
        "candidates": list(_VCE),
        "interviews": list(_VCE),
        "assignments": list(_VCE),
        "communications": list(_VCE),
        "tasks": list(_VCE),
        "team": ["view"],
        "analytics": ["view"],
        "settings": ["view"],
    },
    "Team Lead": {
        "dashboard": ["view"],
        "jobs": ["view", "edit"],
        "candidates": ["view", "edit"],
        "interviews": ["view", "edit"],
        "assignments": ["view", "edit"],
        "communications": list(_VCE),
        "tasks": list(_VCE),
        "team": ["view"],
        "analytics": ["view"],
    },
    "Recruiter": {
        "dashboard": ["view"],
        "jobs": ["view"],
        "candidates": ["view", "edit"],
        "interviews": ["view"],
        "assignments": list(_VCE),
        "communications": ["view", "create"],
        "tasks": ["view", "edit"],
        "analytics": ["view"],
    },
    "Interviewer": {
        "dashboard": ["view"],
        "jobs": ["view"],
        "candidates": ["view"],
        "interviews": ["view", "edit"],
        "tasks": ["view"],
        "team": ["view"],
    },
}

PUBLIC_ACTIONS = {"AUTH_LOGIN"}

# Session-only actions: any authenticated user.
SELF_ACTIONS = {"AUTH_ME", "AUTH_PROFILE_UPDATE", "AUTH_CHANGE_PASSWORD", "AUTH_LOGOUT", "AUTH_VERIFY"}

ADMIN_ONLY_ACTIONS = {"AUTH_REGISTER", "USER_DELETE", "USER_PERMISSIONS_SET", "ROLE_TEMPLATES_LIST", "SETTINGS_UPDATE"}

ACTION_PERMISSIONS: dict[str, tuple[str, str]] = {
    "USERS_LIST": ("team", "view"),
    "USER_GET": ("team", "view"),
    "USER_CREATE": ("team", "create"),
    "USER_UPDATE": ("team", "edit"),
    "USER_STATUS_SET": ("team", "edit"),
    "USER_DELETE": ("team", "delete"),
    "USER_PERMISSIONS_SET": ("team", "edit"),
    "ROLE_TEMPLATES_LIST": ("settings", "view"),
    "SETTINGS_GET": ("settings", "view"),
    "SETTINGS_UPDATE": ("settings", "edit"),
    "AUTH_REGISTER": ("team", "create"),
    "JOBS_LIST": ("jobs", "view"),
    "JOB_GET": ("jobs", "view"),
    "JOB_CREATE": ("jobs", "create"),
    "JOB_UPDATE": ("jobs", "edit"),
    "JOB_DELETE": ("jobs", "delete"),
    "JOB_CANDIDATES": ("candidates", "view"),
    "JOB_STATS": ("jobs", "view"),
    "CANDIDATES_LIST": ("candidates", "view"),
    "CANDIDATE_GET": ("candidates", "view"),
    "CANDIDATE_CREATE": ("candidates", "create"),
    "CANDIDATE_UPDATE": ("candidates", "edit"),
    "CANDIDATE_DELETE": ("candidates", "delete"),
    "CANDIDATE_STAGE_SET": ("candidates", "edit"),
    "CANDIDATE_BULK_IMPORT": ("candidates", "create"),
    "CANDIDATE_ANALYTICS": ("candidates", "view"),
    "CANDIDATE_RESUME_UPLOAD": ("candidates", "edit"),
    "CANDIDATE_RESUME_GET": ("candidates", "view"),
    "NOTES_LIST": ("candidates", "view"),
    "NOTE_CREATE": ("candidates", "edit"),
    "NOTE_UPDATE": ("candidates", "edit"),
    "NOTE_DELETE": ("candidates", "edit"),
    "RATINGS_LIST": ("candidates", "view"),
    "RATINGS_SUMMARY": ("candidates", "view"),
    "RATING_CREATE": ("candidates", "edit"),
    "RATING_UPDATE": ("candidates", "edit"),
    "RATING_DELETE": ("candidates", "edit"),
    "INTERVIEWS_LIST": ("interviews", "view"),
    "INTERVIEW_GET": ("interviews", "view"),
    "INTERVIEW_SCHEDULE": ("interviews", "create"),
    "INTERVIEW_UPDATE": ("interviews", "edit"),
    "INTERVIEW_DELETE": ("interviews", "delete"),
    "INTERVIEW_STATUS_SET": ("interviews", "edit"),
    "INTERVIEW_FEEDBACK_SUBMIT": ("interviews", "edit"),
    "INTERVIEWS_BY_INTERVIEWER": ("interviews", "view"),
    "INTERVIEWS_UPCOMING": ("interviews", "view"),
    "ASSIGNMENTS_LIST": ("assignments", "view"),
    "ASSIGNMENT_GET": ("assignments", "view"),
    "ASSIGNMENT_CREATE": ("assignments", "create"),
    "ASSIGNMENT_UPDATE": ("assignments", "edit"),
    "ASSIGNMENT_STATUS_SET": ("assignments", "edit"),
    "ASSIGNMENT_DELETE": ("assignments", "delete"),
    "ASSIGNMENT_SEND": ("assignments", "edit"),
    "ASSIGNMENT_FILES_ADD": ("assignments", "edit"),
    "ASSIGNMENT_FILE_DELETE": ("assignments", "edit"),
    "ASSIGNMENTS_BY_CANDIDATE": ("assignments", "view"),
    "TASKS_LIST": ("tasks", "view"),
    "TASK_GET": ("tasks", "view"),
    "TASK_CREATE": ("tasks", "create"),
    "TASK_UPDATE": ("tasks", "edit"),
    "TASK_STATUS_SET": ("tasks", "edit"),
    "TASK_DELETE": ("tasks", "delete"),
    "COMMUNICATIONS_LIST": ("communications", "view"),
    "COMMUNICATION_GET": ("communications", "view"),
    "COMMUNICATION_CREATE": ("communications", "create"),
    "COMMUNICATION_UPDATE": ("communications", "edit"),
    "COMMUNICATION_DELETE": ("communications", "delete"),
    "COMMUNICATIONS_BY_CANDIDATE": ("communications", "view"),
    "TEMPLATES_LIST": ("communications", "view"),
    "TEMPLATE_GET": ("communications", "view"),
    "TEMPLATE_CREATE": ("communications", "create"),
    "TEMPLATE_UPDATE": ("communications", "edit"),
    "TEMPLATE_DELETE": ("communications", "delete"),
    "TEMPLATE_CATEGORIES": ("communications", "view"),
    "TEMPLATE_VARIABLES": ("communications", "view"),
    "TEMPLATE_PREVIEW": ("communications", "view"),
    "TEMPLATE_SEND": ("communications", "create"),
    "DASHBOARD_METRICS": ("dashboard", "view"),
    "ANALYTICS_FUNNEL": ("analytics", "view"),
    "ANALYTICS_TIME_TO_HIRE": ("analytics", "view"),
    "ANALYTICS_SOURCES": ("analytics", "view"),
    "ANALYTICS_INTERVIEWERS": ("analytics", "view"),
    "ANALYTICS_JOBS": ("analytics", "view"),
    "ANALYTICS_MONTHLY": ("analytics", "view"),
    "ANALYTICS_QUALITY": ("analytics", "view"),
}

_PERMS_CACHE_NS = "PERMS"


def is_public_action(action: str) -> bool:
    return str(action or "").upper().strip() in PUBLIC_ACTIONS


def _actions_from_csv(raw: str) -> list[str]:
    out: list[str] = []
    for p in str(raw or "").split(","):
        a = p.strip().lower()
        if a in PERMISSION_ACTIONS and a not in out:
            out.append(a)
    return out


def normalize_permissions(raw: Any) -> dict[str, list[str]]:
    """
    Accepts either {module: [actions]} or [{module, actions}]. Unknown modules
    raise; unknown action names are dropped.
    """
    items: list[tuple[Any, Any]] = []
    if isinstance(raw, dict):
        items = list(raw.items())
    elif isinstance(raw, list):
        for it in raw:
            if not isinstance(it, dict):
                raise ApiError("VALIDATION_ERROR", "Each permission must be an object with module and actions")
            items.append((it.get("module"), it.get("actions")))
    else:
        raise ApiError("VALIDATION_ERROR", "permissions must be an object or a list")

    out: dict[str, list[str]] = {}
    for module, actions in items:
        m = str(module or "").strip().lower()
        if m not in MODULES:
            raise ApiError("VALIDATION_ERROR", f"Unknown module: {module}")
        if not isinstance(actions, list):
            raise ApiError("VALIDATION_ERROR", f"Actions for {m} must be a list")
        acts = _actions_from_csv(",".join(str(a) for a in actions))
        if acts:
            out[m] = acts
    return out


def check_permission(role: str, permissions: dict[str, list[str]] | None, module: str, action: str) -> bool:
    if normalize_role(role) == "Admin":
        return True
    m = str(module or "").strip().lower()
    a = str(action or "").strip().lower()
    return a in ((permissions or {}).get(m) or [])


def load_user_permissions(db, user_id: str) -> dict[str, list[str]]:
    uid = str(user_id or "").strip()
    if not uid:
        return {}
    key = cache_key(_PERMS_CACHE_NS, uid)
    cached = cache_get(key)
    if isinstance(cached, dict):
        return cached

    rows = db.execute(select(UserPermission).where(UserPermission.userId == uid)).scalars().all()
    out: dict[str, list[str]] = {}
    for r in rows:
        acts = _actions_from_csv(r.actionsCsv or "")
        if acts:
            out[str(r.module)] = acts
    cache_set(key, out)
    return out


def invalidate_user_permissions(user_id: str) -> None:
    cache_invalidate(cache_key(_PERMS_CACHE_NS, user_id))


def replace_user_permissions(db, user_id: str, permissions: dict[str, list[str]], *, actor: str) -> None:
    now = iso_utc_now()
    db.execute(delete(UserPermission).where(UserPermission.userId == user_id))
    for module, actions in permissions.items():
        db.add(
            UserPermission(
                userId=user_id,
                module=module,
                actionsCsv=",".join(actions),
                updatedAt=now,
                updatedBy=str(actor or ""),
            )
        )
    # Entries cached while this transaction is open are stale however it ends.
    after_commit(db, lambda: invalidate_user_permissions(user_id))
    after_rollback(db, lambda: invalidate_user_permissions(user_id))


def grant_default_permissions(db, user_id: str, role: str, *, actor: str) -> dict[str, list[str]]:
    role_n = normalize_role(role) or ""
    template = DEFAULT_ROLE_PERMISSIONS.get(role_n) or {}
    perms = {m: list(a) for m, a in template.items()}
    replace_user_permissions(db, user_id, perms, actor=actor)
    return perms


def issue_session_token(db, *, user_id: str, role: str, session_ttl_minutes: int) -> dict[str, str]:
    token = "ST-" + new_uuid().replace("-", "") + new_uuid().replace("-", "")
    now = datetime.now(timezone.utc)
    issued_at = to_iso_utc(now)
    expires_at = to_iso_utc(now + timedelta(minutes=int(session_ttl_minutes)))

    db.add(
        DbSession(
            sessionId="SES-" + new_uuid(),
            tokenHash=sha256_hex(token),
            tokenPrefix=token[:12],
            userId=str(user_id or ""),
            role=str(normalize_role(role) or ""),
            issuedAt=issued_at,
            expiresAt=expires_at,
            lastSeenAt=issued_at,
            revokedAt="",
            revokedBy="",
        )
    )
    return {"token": token, "expiresAt": expires_at}


def revoke_session_token(db, token: str, *, revoked_by: str) -> bool:
    ses = db.execute(select(DbSession).where(DbSession.tokenHash == sha256_hex(token))).scalar_one_or_none()
    if not ses or ses.revokedAt:
        return False
    ses.revokedAt = iso_utc_now()
    ses.revokedBy = str(revoked_by or "")
    return True


def revoke_user_sessions(db, *, user_id: str, revoked_by: str) -> int:
    """Revoke all active sessions for a user (deactivation, password change)."""

    uid = str(user_id or "").strip()
    if not uid:
        return 0
    now = iso_utc_now()
    rows = db.execute(select(DbSession).where(DbSession.userId == uid).where(DbSession.revokedAt == "")).scalars().all()
    for s in rows:
        s.revokedAt = now
        s.revokedBy = str(revoked_by or "")
    return len(rows)


def validate_session_token(db, token: Any) -> AuthContext:
    if not token or not isinstance(token, str):
        raise ApiError("AUTH_INVALID", "Access token required")

    ses = db.execute(select(DbSession).where(DbSession.tokenHash == sha256_hex(token))).scalar_one_or_none()
    if not ses or getattr(ses, "revokedAt", ""):
        raise ApiError("AUTH_INVALID", "Invalid token")

    exp_dt = parse_datetime_maybe(ses.expiresAt)
    if exp_dt is None or exp_dt < datetime.now(timezone.utc):
        raise ApiError("AUTH_INVALID", "Token expired")

    usr = db.execute(select(User).where(User.userId == ses.userId)).scalar_one_or_none()
    if not usr:
        raise ApiError("AUTH_INVALID", "User not found")
    if str(usr.status or "").strip().lower() == "inactive":
        raise ApiError("AUTH_INVALID", "Account is not active")

    # Avoid writing on every request: update lastSeenAt at most once per interval.
    try:
        interval_s = int(str(os.getenv("SESSION_LAST_SEEN_UPDATE_SECONDS", "300") or "300"))
    except Exception:
        interval_s = 300
    last_dt = parse_datetime_maybe(ses.lastSeenAt)
    if interval_s <= 0 or not last_dt or (datetime.now(timezone.utc) - last_dt).total_seconds() >= interval_s:
        ses.lastSeenAt = iso_utc_now()

    role = normalize_role(usr.role) or ""
    return AuthContext(
        valid=True,
        userId=str(usr.userId),
        email=str(usr.email or ""),
        role=role,
        expiresAt=str(ses.expiresAt or ""),
        name=str(usr.name or ""),
        username=str(usr.username or ""),
        permissions=load_user_permissions(db, usr.userId),
    )


def require_admin(auth: Optional[AuthContext]) -> None:
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Authentication required")
    if normalize_role(auth.role) != "Admin":
        raise ApiError("FORBIDDEN", "Admin access required")


def assert_module_permission(auth: Optional[AuthContext], module: str, action: str) -> None:
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Authentication required")
    if not check_permission(auth.role, auth.permissions, module, action):
        raise ApiError("FORBIDDEN", f"Insufficient permissions. Required: {module}:{action}")


def assert_permission(auth: Optional[AuthContext], action: str) -> None:
    action_u = str(action or "").upper().strip()
    if is_public_action(action_u):
        return
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Authentication required")
    if action_u in SELF_ACTIONS:
        return

    rule = ACTION_PERMISSIONS.get(action_u)
    if not rule:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action_u}")
    if action_u in ADMIN_ONLY_ACTIONS:
        require_admin(auth)
    assert_module_permission(auth, rule[0], rule[1])


def serialize_auth(auth: AuthContext) -> dict[str, Any]:
    return {
        "valid": bool(auth.valid),
        "expiresAt": auth.expiresAt,
        "user": {
            "id": auth.userId,
            "username": auth.username,
            "email": auth.email,
            "name": auth.name,
            "role": auth.role,
            "permissions": [{"module": m, "actions": a} for m, a in sorted((auth.permissions or {}).items())],
        },
    }
