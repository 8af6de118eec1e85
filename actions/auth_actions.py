from __future__ import annotations

from sqlalchemy import func, or_, select

from actions.helpers import append_audit, field_error, require_str, s
from actions.users import USER_STATUSES, create_user_record, serialize_user
from auth import issue_session_token, revoke_session_token, revoke_user_sessions, serialize_auth
from models import User
from passwords import hash_password, verify_password
from utils import ApiError, AuthContext, is_valid_email, iso_utc_now


def _find_user_by_login(db, login: str):
    key = str(login or "").strip().lower()
    if not key:
        return None
    return (
        db.execute(select(User).where(or_(func.lower(User.username) == key, func.lower(User.email) == key)))
        .scalars()
        .first()
    )


def _session_out(db, user: User, session: dict[str, str]) -> dict:
    return {"token": session["token"], "expiresAt": session["expiresAt"], "user": serialize_user(db, user)}


def login(data, auth: AuthContext | None, db, cfg):
    login_id = s(data, "username") or s(data, "email")
    password = str((data or {}).get("password") or "")
    if not login_id or not password:
        raise ApiError("VALIDATION_ERROR", "Username and password are required")

    user = _find_user_by_login(db, login_id)
    # Same message for unknown user and bad password.
    if not user or not verify_password(password, user.passwordHash or ""):
        raise ApiError("AUTH_INVALID", "Invalid credentials")
    if str(user.status or "").strip().lower() == "inactive":
        raise ApiError("AUTH_INVALID", "Account is not active")

    user.lastLoginAt = iso_utc_now()
    session = issue_session_token(db, user_id=user.userId, role=user.role, session_ttl_minutes=cfg.SESSION_TTL_MINUTES)

    actor = AuthContext(valid=True, userId=user.userId, email=user.email, role=user.role, expiresAt=session["expiresAt"])
    append_audit(db, entityType="AUTH", entityId=user.userId, action="LOGIN", actor=actor)
    return _session_out(db, user, session)


def register(data, auth: AuthContext | None, db, cfg):
    user = create_user_record(db, cfg, data or {}, auth)
    session = issue_session_token(db, user_id=user.userId, role=user.role, session_ttl_minutes=cfg.SESSION_TTL_MINUTES)
    return _session_out(db, user, session)


def me(data, auth: AuthContext | None, db, cfg):
    user = db.get(User, auth.userId)
    if not user:
        raise ApiError("NOT_FOUND", "User not found")
    return serialize_user(db, user)


def profile_update(data, auth: AuthContext | None, db, cfg):
    user = db.get(User, auth.userId)
    if not user:
        raise ApiError("NOT_FOUND", "User not found")

    data = data or {}
    if "name" in data:
        user.name = require_str(data, "name", "Name")
    if "email" in data:
        email = require_str(data, "email", "Email").lower()
        if not is_valid_email(email):
            raise field_error("email", "Please provide a valid email address")
        taken = db.execute(
            select(User.userId).where(func.lower(User.email) == email).where(User.userId != user.userId)
        ).first()
        if taken:
            raise ApiError("CONFLICT", "Email already exists")
        user.email = email
    if "status" in data:
        status = s(data, "status")
        # Users may set availability but not deactivate themselves.
        if status not in USER_STATUSES or status == "inactive":
            raise field_error("status", "Invalid status. Allowed: Active, Away, Busy")
        user.status = status
    for key in ("department", "phone", "avatar"):
        if key in data:
            setattr(user, key, s(data, key))

    user.updatedAt = iso_utc_now()
    user.updatedBy = auth.userId
    append_audit(db, entityType="USER", entityId=user.userId, action="PROFILE_UPDATE", actor=auth)
    return serialize_user(db, user)


def change_password(data, auth: AuthContext | None, db, cfg):
    user = db.get(User, auth.userId)
    if not user:
        raise ApiError("NOT_FOUND", "User not found")

    current = str((data or {}).get("currentPassword") or "")
    new = str((data or {}).get("newPassword") or "")
    if not current or not new:
        raise ApiError("VALIDATION_ERROR", "Current password and new password are required")
    if not verify_password(current, user.passwordHash or ""):
        raise ApiError("AUTH_INVALID", "Current password is incorrect")

    user.passwordHash = hash_password(new, min_length=cfg.PASSWORD_MIN_LENGTH)
    user.updatedAt = iso_utc_now()
    user.updatedBy = auth.userId
    revoked = revoke_user_sessions(db, user_id=user.userId, revoked_by=auth.userId)
    append_audit(db, entityType="USER", entityId=user.userId, action="PASSWORD_CHANGE", actor=auth, meta={"revokedSessions": revoked})
    return {"changed": True}


def logout(data, auth: AuthContext | None, db, cfg):
    token = str((data or {}).get("_token") or "")
    revoked = revoke_session_token(db, token, revoked_by=auth.userId) if token else False
    append_audit(db, entityType="AUTH", entityId=auth.userId, action="LOGOUT", actor=auth)
    return {"loggedOut": bool(revoked)}


def verify(data, auth: AuthContext | None, db, cfg):
    return serialize_auth(auth)
