"""
Outbound email.

Every entry point returns a result dict and never raises, so callers can
attach the outcome to a response without affecting the primary mutation:

    {"success": True, "messageId": "..."}
    {"success": False, "error": "..."}

Transport is selected by ``cfg.MAIL_MODE``:
- ``http``: POST JSON to ``cfg.MAIL_API_URL`` (bearer ``cfg.MAIL_API_KEY``).
- ``log``: write the message to the ``mailer`` logger (development/test).
- ``disabled``: always report failure.
"""
from __future__ import annotations

import base64
import logging
import os
import re
from typing import Any

import requests

from utils import is_valid_email, new_uuid

log = logging.getLogger("mailer")

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")


def render_template(text: str, variables: dict[str, Any] | None) -> str:
    """Replace {{name}} placeholders; unknown or empty values become ""."""
    values = variables or {}

    def _sub(m: re.Match) -> str:
        val = values.get(m.group(1))
        return "" if val is None else str(val)

    return _PLACEHOLDER.sub(_sub, str(text or ""))


def _encode_attachments(attachments: list[dict[str, Any]] | None) -> list[dict[str, str]]:
    out: list[dict[str, str]] = []
    for att in attachments or []:
        path = str(att.get("path") or "")
        with open(path, "rb") as f:
            blob = f.read()
        out.append(
            {
                "filename": str(att.get("filename") or os.path.basename(path)),
                "contentBase64": base64.b64encode(blob).decode("ascii"),
            }
        )
    return out


def _post_mail(cfg, payload: dict[str, Any]) -> str:
    if not cfg.MAIL_API_URL:
        raise RuntimeError("Email transport not configured (MAIL_API_URL)")
    headers = {"Content-Type": "application/json"}
    if cfg.MAIL_API_KEY:
        headers["Authorization"] = f"Bearer {cfg.MAIL_API_KEY}"
    resp = requests.post(cfg.MAIL_API_URL, json=payload, headers=headers, timeout=cfg.MAIL_TIMEOUT_SECONDS)
    resp.raise_for_status()
    try:
        body = resp.json() or {}
    except ValueError:
        body = {}
    return str(body.get("messageId") or body.get("id") or new_uuid())


def send_email(
    cfg,
    to: str,
    subject: str,
    text: str,
    html: str | None = None,
    attachments: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    recipient = str(to or "").strip()
    if not is_valid_email(recipient):
        log.warning("mail skipped: invalid recipient %r subject=%r", recipient, subject)
        return {"success": False, "error": "Recipient email address is missing or invalid"}

    mode = str(getattr(cfg, "MAIL_MODE", "log") or "log").lower()
    try:
        if mode == "disabled":
            raise RuntimeError("Email sending is disabled")
        if mode == "log":
            message_id = f"log-{new_uuid()}"
            log.info(
                "mail(log) to=%s subject=%r attachments=%d messageId=%s",
                recipient,
                subject,
                len(attachments or []),
                message_id,
            )
            return {"success": True, "messageId": message_id}

        payload = {
            "from": cfg.MAIL_FROM,
            "to": recipient,
            "subject": str(subject or ""),
            "text": str(text or ""),
            "html": html or str(text or ""),
            "attachments": _encode_attachments(attachments),
        }
        message_id = _post_mail(cfg, payload)
        log.info("mail sent to=%s subject=%r messageId=%s", recipient, subject, message_id)
        return {"success": True, "messageId": message_id}
    except (requests.RequestException, RuntimeError, OSError) as e:
        log.warning("mail failed to=%s subject=%r error=%s", recipient, subject, e)
        return {"success": False, "error": str(e)}


def send_template_email(cfg, to: str, subject: str, body_template: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
    rendered_subject = render_template(subject, variables)
    rendered_body = render_template(body_template, variables)
    html = rendered_body.replace("\n", "<br>")
    return send_email(cfg, to, rendered_subject, rendered_body, html)


def notification_result(result: dict[str, Any], *, failure_warning: str) -> dict[str, Any]:
    """Shape a send result for an API response's ``emailNotification`` field."""
    if result.get("success"):
        return {"success": True, "messageId": str(result.get("messageId") or "")}
    reason = str(result.get("error") or "").strip()
    warning = f"{failure_warning}: {reason}" if reason else failure_warning
    return {"success": False, "warning": warning}
