from __future__ import annotations

import os
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import requests

from db import after_commit, after_rollback, init_engine, unit_of_work
from passwords import hash_password, verify_password
from services.file_storage import delete_file, file_exists, file_path, save_file, validate_upload
from services.mailer import notification_result, render_template, send_email
from utils import ApiError, SimpleRateLimiter, redact_for_audit, sanitize_filename


def _cfg(tmp_path, **overrides):
    base = {
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "MAX_UPLOAD_BYTES": 1024,
        "MAIL_MODE": "log",
        "MAIL_API_URL": "",
        "MAIL_API_KEY": "",
        "MAIL_FROM": "noreply@example.com",
        "MAIL_TIMEOUT_SECONDS": 5,
    }
    base.update(overrides)
    return SimpleNamespace(**base)


def test_render_template_replaces_known_and_blanks_unknown():
    text = "Dear {{candidate_name}}, see you on {{ interview_date }}{{missing}}."
    assert render_template(text, {"candidate_name": "Ann", "interview_date": "2024-01-25"}) == "Dear Ann, see you on 2024-01-25."
    assert render_template("{{a}}-{{b}}", {"a": 0, "b": None}) == "0-"
    assert render_template("", {}) == ""


def test_send_email_log_mode_and_invalid_recipient(tmp_path):
    cfg = _cfg(tmp_path)
    res = send_email(cfg, "ann@example.com", "Hi", "body")
    assert res["success"] is True
    assert res["messageId"].startswith("log-")

    res = send_email(cfg, "not-an-address", "Hi", "body")
    assert res["success"] is False


def test_send_email_http_failure_is_reported_not_raised(tmp_path):
    cfg = _cfg(tmp_path, MAIL_MODE="http", MAIL_API_URL="https://mail.invalid/send")
    with patch("services.mailer.requests.post", side_effect=requests.ConnectionError("refused")):
        res = send_email(cfg, "ann@example.com", "Hi", "body")
    assert res == {"success": False, "error": "refused"}

    res = send_email(_cfg(tmp_path, MAIL_MODE="disabled"), "ann@example.com", "Hi", "body")
    assert res["success"] is False


def test_notification_result_shapes():
    assert notification_result({"success": True, "messageId": "m1"}, failure_warning="x") == {"success": True, "messageId": "m1"}
    out = notification_result({"success": False, "error": "boom"}, failure_warning="Saved but not sent")
    assert out == {"success": False, "warning": "Saved but not sent: boom"}


def test_validate_upload_rules(tmp_path):
    cfg = _cfg(tmp_path)
    assert validate_upload(cfg, size=10, original_name="CV.PDF", mime_type="application/pdf") == ".pdf"
    assert validate_upload(cfg, size=10, original_name="cv.docx", mime_type="application/octet-stream") == ".docx"

    with pytest.raises(ApiError) as e:
        validate_upload(cfg, size=2048, original_name="cv.pdf", mime_type="application/pdf")
    assert e.value.code == "PAYLOAD_TOO_LARGE"
    assert e.value.message == "File size exceeds 1KB limit"

    for name, mime in (("cv.exe", ""), ("cv.pdf", "image/png"), ("noext", "")):
        with pytest.raises(ApiError) as e:
            validate_upload(cfg, size=10, original_name=name, mime_type=mime)
        assert e.value.code == "VALIDATION_ERROR"

    with pytest.raises(ApiError):
        validate_upload(cfg, size=0, original_name="cv.pdf", mime_type="application/pdf")


def test_save_and_delete_file(tmp_path):
    cfg = _cfg(tmp_path)
    meta = save_file(cfg, b"hello", "../../etc/my cv.txt", "text/plain; charset=utf-8")
    assert meta["originalName"] == "my cv.txt"
    assert meta["mimeType"] == "text/plain"
    assert os.path.dirname(meta["path"]) == cfg.UPLOAD_DIR
    assert file_exists(cfg, meta["filename"])

    assert delete_file(cfg, meta["filename"]) is True
    assert delete_file(cfg, meta["filename"]) is False
    assert not file_exists(cfg, meta["filename"])


def test_file_path_rejects_traversal(tmp_path):
    cfg = _cfg(tmp_path)
    with pytest.raises(ApiError):
        file_path(cfg, "../secrets.txt")
    assert delete_file(cfg, "../secrets.txt") is False


def test_rate_limiter_window():
    limiter = SimpleRateLimiter()
    with patch("utils.time.time", return_value=120.0):
        limiter.check("ip:LOGIN", 2)
        limiter.check("ip:LOGIN", 2)
        with pytest.raises(ApiError) as e:
            limiter.check("ip:LOGIN", 2)
        assert e.value.http_status == 429
        limiter.check("other:LOGIN", 2)
    with patch("utils.time.time", return_value=180.0):
        limiter.check("ip:LOGIN", 2)


def test_password_hashing_and_policy():
    h = hash_password("secret1")
    assert verify_password("secret1", h)
    assert not verify_password("secret2", h)
    assert not verify_password("secret1", "")
    assert not verify_password("secret1", "not-a-hash")
    with pytest.raises(ApiError):
        hash_password("123")


def test_helpers():
    assert sanitize_filename("C:\\docs\\résumé?.pdf") == "r_sum_.pdf"
    assert redact_for_audit({"password": "x", "nested": {"token": "t", "name": "n"}}) == {
        "password": "***",
        "nested": {"token": "***", "name": "n"},
    }


def test_unit_of_work_runs_hooks_for_the_outcome_only(tmp_path):
    init_engine(f"sqlite:///{tmp_path / 'hooks.db'}")
    seen = []

    with unit_of_work() as db:
        after_commit(db, lambda: seen.append("committed"))
        after_rollback(db, lambda: seen.append("rolled back"))
    assert seen == ["committed"]

    seen.clear()
    with pytest.raises(ValueError):
        with unit_of_work() as db:
            after_commit(db, lambda: seen.append("committed"))
            after_rollback(db, lambda: seen.append("rolled back"))
            raise ValueError("boom")
    assert seen == ["rolled back"]

    # A broken hook is logged; later hooks still run and the caller sees success.
    seen.clear()
    with unit_of_work() as db:
        after_commit(db, lambda: 1 / 0)
        after_commit(db, lambda: seen.append("next"))
    assert seen == ["next"]
