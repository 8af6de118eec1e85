"""
Tests for /health, /ready, /version and app-level error handling.
"""
from __future__ import annotations

import gzip
import json
import os
from types import SimpleNamespace
from unittest.mock import patch

from flask import Flask, jsonify

from app.middlewares.compression import init_compression


def test_health_and_version(app_client):
    _app, client = app_client

    res = client.get("/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"
    assert res.headers["X-Request-ID"]
    assert res.headers["X-Content-Type-Options"] == "nosniff"

    res = client.get("/version")
    assert res.get_json()["env"] == "test"


def test_ready_ok(app_client):
    _app, client = app_client

    res = client.get("/ready")
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "ok"
    assert body["checks"] == {"db": "ok", "uploads": "ok"}
    assert "cache" in body


def test_ready_reports_missing_upload_dir(app_client):
    app, client = app_client
    os.rmdir(app.config["CFG"].UPLOAD_DIR)

    res = client.get("/ready")
    assert res.status_code == 503
    assert res.get_json()["checks"]["uploads"] == "error"


def test_ready_db_down(app_client):
    _app, client = app_client

    with patch("app.routes.core.ping_db", return_value=False):
        res = client.get("/ready")
    assert res.status_code == 503
    assert res.get_json()["checks"]["db"] == "error"


def test_unknown_route_and_method(app_client):
    _app, client = app_client

    res = client.get("/api/nope")
    assert res.status_code == 404
    assert res.get_json()["message"] == "Route /api/nope not found"

    res = client.delete("/health")
    assert res.status_code == 405
    assert res.get_json()["success"] is False


def test_request_id_is_echoed(app_client):
    _app, client = app_client

    res = client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert res.headers["X-Request-ID"] == "trace-123"


def test_default_templates_are_seeded(app_client, login_as):
    _app, client = app_client
    _uid, headers = login_as("HR Manager")

    res = client.get("/api/email-templates/categories", headers=headers)
    assert res.status_code == 200
    counts = {it["category"]: it["count"] for it in res.get_json()["data"]["items"]}
    assert all(counts[c] >= 1 for c in ("Interview Invite", "Rejection", "Offer", "Follow-up", "Custom"))


def test_large_json_responses_are_gzipped():
    app = Flask(__name__)
    init_compression(app, SimpleNamespace(ENABLE_COMPRESSION=True, COMPRESSION_MIN_SIZE=100, COMPRESSION_LEVEL=6))

    @app.get("/big")
    def big():
        return jsonify({"items": ["candidate"] * 200})

    @app.get("/small")
    def small():
        return jsonify({"ok": True})

    client = app.test_client()
    res = client.get("/big", headers={"Accept-Encoding": "gzip"})
    assert res.headers["Content-Encoding"] == "gzip"
    assert json.loads(gzip.decompress(res.data)) == {"items": ["candidate"] * 200}

    assert "Content-Encoding" not in client.get("/big").headers
    assert "Content-Encoding" not in client.get("/small", headers={"Accept-Encoding": "gzip"}).headers
