from __future__ import annotations

import hashlib
import json
import os
import re
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


_DEFAULT_HTTP_STATUS = {
    "BAD_REQUEST": 400,
    "VALIDATION_ERROR": 400,
    "AUTH_INVALID": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "PAYLOAD_TOO_LARGE": 413,
    "RATE_LIMITED": 429,
    "INTERNAL": 500,
}


class ApiError(Exception):
    def __init__(self, code: str, message: str, http_status: int | None = None, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.code = str(code or "INTERNAL").upper()
        self.message = str(message or "")
        self.http_status = int(http_status or _DEFAULT_HTTP_STATUS.get(self.code, 400))
        self.errors = errors or []


@dataclass
class AuthContext:
    valid: bool
    userId: str
    email: str
    role: str
    expiresAt: str
    name: str = ""
    username: str = ""
    permissions: dict[str, list[str]] = field(default_factory=dict)


ROLES = ["Admin", "HR Manager", "Team Lead", "Recruiter", "Interviewer"]
_ROLE_LOOKUP = {re.sub(r"[\s_-]+", "", r.lower()): r for r in ROLES}


def normalize_role(role: Any) -> Optional[str]:
    key = re.sub(r"[\s_-]+", "", str(role or "").strip().lower())
    if not key:
        return None
    return _ROLE_LOOKUP.get(key)


def is_admin(auth: Optional[AuthContext]) -> bool:
    return bool(auth and auth.valid and normalize_role(auth.role) == "Admin")


def is_admin_or_hr(auth: Optional[AuthContext]) -> bool:
    return bool(auth and auth.valid and normalize_role(auth.role) in {"Admin", "HR Manager"})


def ok(data: Any = None, *, message: str = "", http_status: int = 200) -> tuple[dict[str, Any], int]:
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body, http_status


def err(
    code: str,
    message: str,
    *,
    http_status: int | None = None,
    errors: list[dict[str, Any]] | None = None,
) -> tuple[dict[str, Any], int]:
    status = int(http_status or _DEFAULT_HTTP_STATUS.get(str(code or "").upper(), 400))
    body: dict[str, Any] = {"success": False, "message": str(message or ""), "code": str(code or "").upper()}
    if errors:
        body["errors"] = errors
    return body, status


def iso_utc_now() -> str:
    return to_iso_utc(datetime.now(timezone.utc))


def to_iso_utc(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_datetime_maybe(value: Any) -> Optional[datetime]:
    """Accepts ISO-8601 datetimes or dates; naive values are treated as UTC."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    s = str(value or "").strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def new_uuid() -> str:
    return str(uuid.uuid4())


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


def sha256_hex(value: str) -> str:
    return hashlib.sha256(str(value or "").encode("utf-8")).hexdigest()


def now_monotonic() -> float:
    return time.monotonic()


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_valid_email(value: Any) -> bool:
    return bool(_EMAIL_RE.match(str(value or "").strip()))


def sanitize_filename(name: str) -> str:
    base = os.path.basename(str(name or "").replace("\\", "/")).strip()
    base = re.sub(r"[^A-Za-z0-9._ -]+", "_", base)
    base = base.strip(" .")
    return base[:150] or "file"


def json_list(raw: Any) -> list[Any]:
    try:
        val = json.loads(str(raw or "[]") or "[]")
    except Exception:
        return []
    return val if isinstance(val, list) else []


def json_dict(raw: Any) -> dict[str, Any]:
    try:
        val = json.loads(str(raw or "{}") or "{}")
    except Exception:
        return {}
    return val if isinstance(val, dict) else {}


_REDACT_KEYS = {"password", "currentpassword", "newpassword", "token", "authorization"}


def redact_for_audit(data: Any) -> Any:
    if isinstance(data, dict):
        out = {}
        for k, v in data.items():
            if str(k).lower() in _REDACT_KEYS:
                out[k] = "***"
            else:
                out[k] = redact_for_audit(v)
        return out
    if isinstance(data, list):
        return [redact_for_audit(x) for x in data[:50]]
    if isinstance(data, str) and len(data) > 500:
        return data[:500] + "..."
    return data


class SimpleRateLimiter:
    """Fixed one-minute window counter per key (per process)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._buckets: dict[str, tuple[int, int]] = {}

    def check(self, key: str, limit_per_minute: int) -> None:
        window = int(time.time() // 60)
        with self._lock:
            win, count = self._buckets.get(key, (window, 0))
            if win != window:
                win, count = window, 0
            count += 1
            self._buckets[key] = (win, count)
            if len(self._buckets) > 10_000:
                self._buckets = {k: v for k, v in self._buckets.items() if v[0] == window}
        if count > int(limit_per_minute):
            raise ApiError("RATE_LIMITED", "Too many requests, please try again later", http_status=429)
