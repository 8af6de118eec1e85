from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, request
from flask_cors import CORS
from sqlalchemy import func, or_, select

from app.middlewares.compression import init_compression
from app.routes.analytics import analytics_bp
from app.routes.assignments import assignments_bp
from app.routes.auth import auth_bp
from app.routes.candidates import candidates_bp
from app.routes.communications import communications_bp, templates_bp
from app.routes.core import core_bp
from app.routes.interviews import interviews_bp
from app.routes.jobs import jobs_bp
from app.routes.settings import settings_bp
from app.routes.tasks import tasks_bp
from app.routes.users import users_bp
from config import Config
from db import init_engine, unit_of_work
from utils import SimpleRateLimiter, err, now_monotonic

log = logging.getLogger(__name__)

# Per-request upload cap: a full assignment batch plus form overhead.
_MAX_FILES_PER_REQUEST = 10
_FORM_OVERHEAD_BYTES = 1024 * 1024


def _configure_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _seed_admin(db, cfg: Config) -> None:
    from actions.users import create_user_record
    from models import User

    if not (cfg.SEED_ADMIN_USERNAME and cfg.SEED_ADMIN_EMAIL and cfg.SEED_ADMIN_PASSWORD):
        return
    exists = db.execute(
        select(User.userId).where(
            or_(
                func.lower(User.username) == cfg.SEED_ADMIN_USERNAME.lower(),
                func.lower(User.email) == cfg.SEED_ADMIN_EMAIL.lower(),
            )
        )
    ).first()
    if exists:
        return
    user = create_user_record(
        db,
        cfg,
        {
            "username": cfg.SEED_ADMIN_USERNAME,
            "email": cfg.SEED_ADMIN_EMAIL,
            "name": "Administrator",
            "password": cfg.SEED_ADMIN_PASSWORD,
            "role": "Admin",
        },
        None,
    )
    log.info("seeded admin user %s", user.userId)


def _seed(cfg: Config) -> None:
    from actions.email_templates import seed_default_templates

    with unit_of_work() as db:
        added = seed_default_templates(db)
        if added:
            log.info("seeded %d default email templates", added)
        _seed_admin(db, cfg)


def create_app() -> Flask:
    load_dotenv()
    cfg = Config()
    cfg.validate()
    _configure_logging(cfg.LOG_LEVEL)

    engine = init_engine(cfg.DATABASE_URL)

    from models import Base  # imported after engine init

    Base.metadata.create_all(bind=engine)
    os.makedirs(cfg.UPLOAD_DIR, exist_ok=True)

    app = Flask(__name__)
    app.config["CFG"] = cfg
    app.config["JSON_SORT_KEYS"] = False
    app.config["MAX_CONTENT_LENGTH"] = cfg.MAX_UPLOAD_BYTES * _MAX_FILES_PER_REQUEST + _FORM_OVERHEAD_BYTES

    CORS(
        app,
        origins=cfg.ALLOWED_ORIGINS,
        supports_credentials=False,
        allow_headers=["Content-Type", "Authorization", "X-Session-Token", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Content-Disposition"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        max_age=3600,
    )
    app.extensions["rate_limiter"] = SimpleRateLimiter()

    for bp in (
        core_bp,
        auth_bp,
        users_bp,
        settings_bp,
        jobs_bp,
        candidates_bp,
        interviews_bp,
        assignments_bp,
        tasks_bp,
        communications_bp,
        templates_bp,
        analytics_bp,
    ):
        app.register_blueprint(bp)

    # Seed at startup (idempotent).
    _seed(cfg)

    @app.before_request
    def _before():
        g.request_id = str(request.headers.get("X-Request-ID") or "").strip()[:64] or os.urandom(8).hex()
        g.start_ts = now_monotonic()

    @app.after_request
    def _after(resp):
        resp.headers["X-Request-ID"] = str(getattr(g, "request_id", "") or "")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        resp.headers.setdefault("Cache-Control", "no-store")
        return resp

    init_compression(app, cfg)

    @app.errorhandler(404)
    def not_found(_e):
        return err("NOT_FOUND", f"Route {request.path} not found", http_status=404)

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return err("BAD_REQUEST", f"Method {request.method} not allowed for {request.path}", http_status=405)

    @app.errorhandler(413)
    def payload_too_large(_e):
        return err("PAYLOAD_TOO_LARGE", "Request payload is too large", http_status=413)

    log.info("hireflow started env=%s version=%s", cfg.APP_ENV, cfg.APP_VERSION)
    return app
