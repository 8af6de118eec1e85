from __future__ import annotations

import json
import math
from typing import Any, Callable, Iterable, Optional

from flask import g, has_request_context
from sqlalchemy import func, select

from models import AuditLog, User
from utils import ApiError, AuthContext, iso_utc_now, new_uuid, parse_datetime_maybe, to_iso_utc


def field_error(field: str, message: str) -> ApiError:
    return ApiError("VALIDATION_ERROR", message, errors=[{"field": field, "message": message}])


def s(data: dict[str, Any] | None, key: str) -> str:
    return str((data or {}).get(key) or "").strip()


def require_str(data: dict[str, Any] | None, key: str, label: str | None = None) -> str:
    val = s(data, key)
    if not val:
        raise field_error(key, f"{label or key} is required")
    return val


def require_enum(value: str, allowed: Iterable[str], field: str, label: str | None = None) -> str:
    allowed_l = list(allowed)
    if value not in allowed_l:
        raise field_error(field, f"Invalid {label or field}. Allowed: {', '.join(allowed_l)}")
    return value


def clamp_int(value: Any, *, default: int, min_v: int, max_v: int) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        n = int(default)
    return max(int(min_v), min(int(max_v), n))


def parse_float_field(value: Any, field: str, *, min_v: float, max_v: float) -> float:
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise field_error(field, f"{field} must be a number between {min_v:g} and {max_v:g}")
    if math.isnan(n) or n < min_v or n > max_v:
        raise field_error(field, f"{field} must be a number between {min_v:g} and {max_v:g}")
    return n


def parse_iso_field(value: Any, field: str, *, required: bool = False) -> str:
    raw = str(value or "").strip()
    if not raw:
        if required:
            raise field_error(field, f"{field} is required")
        return ""
    dt = parse_datetime_maybe(raw)
    if dt is None:
        raise field_error(field, f"{field} must be a valid ISO-8601 date")
    return to_iso_utc(dt)


def parse_list_field(value: Any, field: str) -> list[Any]:
    if value is None or value == "":
        return []
    if not isinstance(value, list):
        raise field_error(field, f"{field} must be a list")
    return value


def get_or_404(db, model, pk: str, label: str):
    key = str(pk or "").strip()
    row = db.get(model, key) if key else None
    if row is None:
        raise ApiError("NOT_FOUND", f"{label} not found")
    return row


def user_or_400(db, user_id: str, field: str, label: str = "Assigned user") -> User:
    uid = str(user_id or "").strip()
    row = db.get(User, uid) if uid else None
    if row is None:
        raise field_error(field, f"{label} not found")
    return row


def user_names(db, user_ids: Iterable[str]) -> dict[str, str]:
    ids = sorted({str(u or "").strip() for u in user_ids if str(u or "").strip()})
    if not ids:
        return {}
    rows = db.execute(select(User.userId, User.name).where(User.userId.in_(ids))).all()
    return {str(uid): str(name or "") for uid, name in rows}


def parse_pagination(data: dict[str, Any] | None) -> tuple[int, int]:
    page = clamp_int((data or {}).get("page"), default=1, min_v=1, max_v=1_000_000)
    limit = clamp_int((data or {}).get("limit"), default=10, min_v=1, max_v=100)
    return page, limit


def paginate(db, stmt, *, page: int, limit: int, mapper: Callable[[Any], dict[str, Any]]) -> dict[str, Any]:
    """Runs a select with count + offset/limit and returns the standard list envelope."""
    total = int(db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one() or 0)
    rows = db.execute(stmt.offset((page - 1) * limit).limit(limit)).scalars().all()
    return {
        "items": [mapper(r) for r in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": int(math.ceil(total / limit)) if limit else 0,
        },
    }


def append_audit(
    db,
    *,
    entityType: str,
    entityId: str,
    action: str,
    fromState: str = "",
    toState: str = "",
    remark: str = "",
    actor: Optional[AuthContext] = None,
    at: str | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    correlation_id = str(getattr(g, "request_id", "") or "") if has_request_context() else ""
    db.add(
        AuditLog(
            logId=f"LOG-{new_uuid()}",
            entityType=str(entityType or ""),
            entityId=str(entityId or ""),
            action=str(action or ""),
            fromState=str(fromState or ""),
            toState=str(toState or ""),
            remark=str(remark or ""),
            actorUserId=str(actor.userId) if actor else "SYSTEM",
            actorRole=str(actor.role) if actor else "SYSTEM",
            at=at or iso_utc_now(),
            correlationId=correlation_id,
            metaJson=json.dumps(meta or {}, default=str),
        )
    )


def parse_bool(value: Any, *, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}
