from __future__ import annotations

import pytest

from auth import grant_default_permissions
from cache_layer import cache_clear
from db import SessionLocal
from models import User
from passwords import hash_password
from utils import iso_utc_now

DEFAULT_PASSWORD = "Passw0rd!"


@pytest.fixture()
def app_client(tmp_path, monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'hireflow-test.db'}")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("MAIL_MODE", "log")
    monkeypatch.setenv("ENABLE_COMPRESSION", "0")
    monkeypatch.setenv("RATE_LIMIT_LOGIN", "1000")
    monkeypatch.setenv("RATE_LIMIT_GLOBAL", "100000")
    monkeypatch.setenv("MAX_FILE_SIZE", str(64 * 1024))
    for name in ("SEED_ADMIN_USERNAME", "SEED_ADMIN_EMAIL", "SEED_ADMIN_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    cache_clear()

    from app import create_app

    app = create_app()
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield app, client
    cache_clear()


def _create_user(*, username: str, role: str, name: str = "", email: str = "", password: str = DEFAULT_PASSWORD, status: str = "Active") -> str:
    now = iso_utc_now()
    user_id = f"USR-{username}"
    with SessionLocal() as db:
        db.add(
            User(
                userId=user_id,
                username=username,
                email=email or f"{username}@example.com",
                name=name or username.title(),
                passwordHash=hash_password(password),
                role=role,
                status=status,
                createdAt=now,
                createdBy="TEST",
                updatedAt=now,
                updatedBy="TEST",
            )
        )
        db.flush()
        grant_default_permissions(db, user_id, role, actor="TEST")
        db.commit()
    return user_id


@pytest.fixture()
def make_user(app_client):
    """Insert a user with the role's default permissions; returns the userId."""
    return _create_user


@pytest.fixture()
def login_as(app_client):
    """Create a user, log in over HTTP and return (userId, headers)."""
    _app, client = app_client

    def _login(role: str, username: str | None = None, **kwargs) -> tuple[str, dict[str, str]]:
        uname = username or role.lower().replace(" ", "")
        user_id = _create_user(username=uname, role=role, **kwargs)
        res = client.post("/api/auth/login", json={"username": uname, "password": kwargs.get("password", DEFAULT_PASSWORD)})
        assert res.status_code == 200, res.get_json()
        token = res.get_json()["data"]["token"]
        return user_id, {"Authorization": f"Bearer {token}"}

    return _login
