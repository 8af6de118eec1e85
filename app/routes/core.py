from __future__ import annotations

import os

from flask import Blueprint, current_app, jsonify

from cache_layer import cache_stats
from db import get_pool_stats, ping_db
from utils import iso_utc_now

core_bp = Blueprint("core", __name__)


def _uploads_writable(upload_dir: str) -> bool:
    return os.path.isdir(upload_dir) and os.access(upload_dir, os.W_OK)


@core_bp.get("/health")
def health():
    """Process liveness only; no dependencies are touched."""
    cfg = current_app.config["CFG"]
    return jsonify({"status": "ok", "time": iso_utc_now(), "version": cfg.APP_VERSION})


@core_bp.get("/ready")
def ready():
    """
    Readiness for load balancers: the database answers and resumes can be stored.
    Pool and cache figures are informational.
    """
    cfg = current_app.config["CFG"]
    checks = {
        "db": "ok" if ping_db() else "error",
        "uploads": "ok" if _uploads_writable(cfg.UPLOAD_DIR) else "error",
    }
    healthy = all(v == "ok" for v in checks.values())

    body = {
        "status": "ok" if healthy else "degraded",
        "time": iso_utc_now(),
        "version": cfg.APP_VERSION,
        "checks": checks,
        "pool": get_pool_stats(),
        "cache": cache_stats(),
    }
    return jsonify(body), 200 if healthy else 503


@core_bp.get("/version")
def version():
    cfg = current_app.config["CFG"]
    return jsonify({"version": cfg.APP_VERSION, "env": cfg.APP_ENV, "time": iso_utc_now()})
