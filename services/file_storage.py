from __future__ import annotations

import logging
import os
import re
from typing import Any

from utils import ApiError, iso_utc_now, new_uuid, sanitize_filename

log = logging.getLogger("storage")

ALLOWED_EXTENSIONS = {
    ".pdf": {"application/pdf"},
    ".doc": {"application/msword"},
    ".docx": {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"},
    ".txt": {"text/plain"},
}

_STORED_NAME = re.compile(r"^[0-9a-f]{32}\.(pdf|doc|docx|txt)$")


def _upload_dir(cfg) -> str:
    return str(getattr(cfg, "UPLOAD_DIR", "./uploads") or "./uploads")


def validate_upload(cfg, *, size: int, original_name: str, mime_type: str) -> str:
    """Returns the lower-case extension or raises before anything touches disk."""
    max_bytes = int(getattr(cfg, "MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
    if size <= 0:
        raise ApiError("VALIDATION_ERROR", "Empty file")
    if size > max_bytes:
        limit = f"{max_bytes // (1024 * 1024)}MB" if max_bytes >= 1024 * 1024 else f"{max_bytes // 1024}KB"
        raise ApiError("PAYLOAD_TOO_LARGE", f"File size exceeds {limit} limit")

    ext = os.path.splitext(str(original_name or ""))[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ApiError("VALIDATION_ERROR", f"File extension {ext or '(none)'} is not allowed")

    mime = str(mime_type or "").split(";", 1)[0].strip().lower()
    # Browsers sometimes send octet-stream for .doc/.docx; the extension check still applies.
    if mime and mime != "application/octet-stream" and mime not in ALLOWED_EXTENSIONS[ext]:
        raise ApiError("VALIDATION_ERROR", f"File type {mime} is not allowed")
    return ext


def file_path(cfg, filename: str) -> str:
    name = str(filename or "").strip()
    if not _STORED_NAME.match(name):
        raise ApiError("BAD_REQUEST", "Invalid file name")
    return os.path.join(_upload_dir(cfg), name)


def save_file(cfg, blob: bytes, original_name: str, mime_type: str = "") -> dict[str, Any]:
    data = blob or b""
    ext = validate_upload(cfg, size=len(data), original_name=original_name, mime_type=mime_type)

    os.makedirs(_upload_dir(cfg), exist_ok=True)
    filename = f"{new_uuid().replace('-', '')}{ext}"
    path = file_path(cfg, filename)
    with open(path, "wb") as f:
        f.write(data)

    mime = str(mime_type or "").split(";", 1)[0].strip().lower()
    if not mime or mime == "application/octet-stream":
        mime = sorted(ALLOWED_EXTENSIONS[ext])[0]

    log.info("stored file=%s size=%d original=%r", filename, len(data), original_name)
    return {
        "filename": filename,
        "originalName": sanitize_filename(original_name),
        "path": path,
        "size": len(data),
        "mimeType": mime,
        "uploadedAt": iso_utc_now(),
    }


def file_exists(cfg, filename: str) -> bool:
    try:
        return os.path.isfile(file_path(cfg, filename))
    except ApiError:
        return False


def delete_file(cfg, filename: str) -> bool:
    try:
        path = file_path(cfg, filename)
    except ApiError:
        return False
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    log.info("deleted file=%s", filename)
    return True
