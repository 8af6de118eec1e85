from __future__ import annotations

import json
import logging
import os
from typing import Any

from flask import current_app, g, request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from actions import dispatch
from auth import assert_permission, is_public_action, validate_session_token
from db import SessionLocal, unit_of_work
from models import AuditLog
from utils import ApiError, AuthContext, err, iso_utc_now, now_monotonic, ok, redact_for_audit

log = logging.getLogger("api")

LOGIN_ACTIONS = {"AUTH_LOGIN"}


def rest_token() -> str:
    authz = str(request.headers.get("Authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz.split(" ", 1)[1].strip()
    return str(request.headers.get("X-Session-Token") or "").strip()


def request_data(**path_params: Any) -> dict[str, Any]:
    """Query string, then JSON body, then path parameters (later wins)."""
    data: dict[str, Any] = dict(request.args.to_dict())
    if request.method != "GET":
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            data.update(body)
    data.update({k: v for k, v in path_params.items() if v is not None})
    return data


def _client_ip() -> str:
    fwd = str(request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return fwd or str(request.remote_addr or "")


def _rate_limit(cfg, action_u: str) -> None:
    limiter = current_app.extensions["rate_limiter"]
    ip = _client_ip()
    if action_u in LOGIN_ACTIONS:
        limiter.check(f"{ip}:LOGIN", cfg.RATE_LIMIT_LOGIN)
    else:
        limiter.check(f"{ip}:GLOBAL", cfg.RATE_LIMIT_GLOBAL)


def _api_audit(db, action_u: str, auth_ctx: AuthContext | None, data: dict[str, Any]) -> None:
    db.add(
        AuditLog(
            logId=f"LOG-{os.urandom(16).hex()}",
            entityType="API",
            entityId=str(auth_ctx.userId) if auth_ctx else "PUBLIC",
            action=action_u,
            fromState="",
            toState="",
            remark=request.method,
            actorUserId=str(auth_ctx.userId) if auth_ctx else "PUBLIC",
            actorRole=str(auth_ctx.role) if auth_ctx else "PUBLIC",
            at=iso_utc_now(),
            correlationId=str(getattr(g, "request_id", "") or ""),
            metaJson=json.dumps({"data": redact_for_audit({k: v for k, v in data.items() if not k.startswith("_")})}, default=str),
        )
    )


def _write_error_audit(action_u: str, auth_ctx: AuthContext | None, data: dict[str, Any], e: ApiError) -> None:
    db2 = SessionLocal()
    try:
        db2.add(
            AuditLog(
                logId=f"LOG-{os.urandom(16).hex()}",
                entityType="API",
                entityId=str(auth_ctx.userId) if auth_ctx else "PUBLIC",
                action=action_u or "UNKNOWN",
                fromState="",
                toState="",
                remark=f"{e.code}: {e.message}",
                actorUserId=str(auth_ctx.userId) if auth_ctx else "PUBLIC",
                actorRole=str(auth_ctx.role) if auth_ctx else "PUBLIC",
                at=iso_utc_now(),
                correlationId=str(getattr(g, "request_id", "") or ""),
                metaJson=json.dumps(
                    {
                        "data": redact_for_audit({k: v for k, v in (data or {}).items() if not k.startswith("_")}),
                        "error": {"code": e.code, "message": e.message},
                    },
                    default=str,
                ),
            )
        )
        db2.commit()
    except SQLAlchemyError:
        db2.rollback()
        log.warning("error audit write failed action=%s", action_u, exc_info=True)
    finally:
        db2.close()


def run_action(action: str, data: dict[str, Any]) -> tuple[Any, AuthContext | None]:
    """
    Authenticate, authorize, dispatch and commit one action.

    The whole handler runs in one session; any exception rolls back every
    write it made. Raises ApiError for expected failures.
    """
    cfg = current_app.config["CFG"]
    action_u = str(action or "").upper().strip()
    _rate_limit(cfg, action_u)

    auth_ctx: AuthContext | None = None
    with unit_of_work() as db:
        if not is_public_action(action_u):
            auth_ctx = validate_session_token(db, rest_token())
            g.auth_ctx = auth_ctx
        assert_permission(auth_ctx, action_u)

        out = dispatch(action_u, data, auth_ctx, db, cfg)
        if request.method != "GET":
            _api_audit(db, action_u, auth_ctx, data)
    return out, auth_ctx


def error_response(action_u: str, data: dict[str, Any], e: Exception):
    cfg = current_app.config["CFG"]
    auth_ctx = getattr(g, "auth_ctx", None)
    if isinstance(e, ApiError):
        if e.http_status >= 500 or e.code in {"FORBIDDEN", "CONFLICT", "RATE_LIMITED"}:
            _write_error_audit(action_u, auth_ctx, data, e)
        return err(e.code, e.message, http_status=e.http_status, errors=e.errors)
    if isinstance(e, IntegrityError):
        log.warning("integrity error action=%s request_id=%s: %s", action_u, getattr(g, "request_id", ""), e.orig)
        return err("CONFLICT", "Resource conflict: a record with these values already exists", http_status=409)

    log.exception("rest action=%s request_id=%s", action_u, getattr(g, "request_id", ""))
    message = f"Unexpected error (requestId: {getattr(g, 'request_id', '')})"
    if not cfg.IS_PRODUCTION:
        message += f": {type(e).__name__}: {str(e)[:300]}"
    api_err = ApiError("INTERNAL", message)
    _write_error_audit(action_u, auth_ctx, data, api_err)
    return err(api_err.code, api_err.message, http_status=500)


def rest_handle(action: str, data: dict[str, Any], *, status: int = 200, message: str = ""):
    action_u = str(action or "").upper().strip()
    started = now_monotonic()
    try:
        out, auth_ctx = run_action(action_u, data)
    except Exception as e:
        body, code = error_response(action_u, data, e)
        log.info(
            "request_id=%s action=%s status=%s ms=%d",
            getattr(g, "request_id", ""),
            action_u,
            code,
            int((now_monotonic() - started) * 1000),
        )
        return body, code

    log.info(
        "request_id=%s action=%s user=%s role=%s status=%s ms=%d",
        getattr(g, "request_id", ""),
        action_u,
        auth_ctx.userId if auth_ctx else "PUBLIC",
        auth_ctx.role if auth_ctx else "PUBLIC",
        status,
        int((now_monotonic() - started) * 1000),
    )
    return ok(out, message=message, http_status=status)


def upload_payload(field: str) -> list[dict[str, Any]]:
    """Read multipart files into plain dicts for the action handlers."""
    out = []
    for up in request.files.getlist(field):
        out.append(
            {
                "blob": up.read(),
                "filename": str(getattr(up, "filename", "") or ""),
                "mimetype": str(getattr(up, "mimetype", "") or ""),
            }
        )
    return out
