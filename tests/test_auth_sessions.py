from __future__ import annotations

from sqlalchemy import select

from db import SessionLocal
from models import AuditLog, Session as DbSession, User
from utils import sha256_hex


def test_login_returns_token_and_user(app_client, make_user):
    _app, client = app_client
    make_user(username="alice", role="Recruiter", name="Alice")

    res = client.post("/api/auth/login", json={"username": "alice", "password": "Passw0rd!"})
    assert res.status_code == 200
    body = res.get_json()
    assert body["success"] is True
    assert body["data"]["token"].startswith("ST-")
    assert body["data"]["user"]["role"] == "Recruiter"
    modules = {p["module"] for p in body["data"]["user"]["permissions"]}
    assert "candidates" in modules

    # Login by email works too.
    res = client.post("/api/auth/login", json={"email": "ALICE@example.com", "password": "Passw0rd!"})
    assert res.status_code == 200

    with SessionLocal() as db:
        user = db.get(User, "USR-alice")
        assert user.lastLoginAt


def test_login_failure_does_not_reveal_which_part_was_wrong(app_client, make_user):
    _app, client = app_client
    make_user(username="bob", role="Recruiter")

    wrong_pw = client.post("/api/auth/login", json={"username": "bob", "password": "nope"})
    unknown = client.post("/api/auth/login", json={"username": "nobody", "password": "nope"})
    assert wrong_pw.status_code == unknown.status_code == 401
    assert wrong_pw.get_json()["message"] == unknown.get_json()["message"] == "Invalid credentials"

    missing = client.post("/api/auth/login", json={"username": "bob"})
    assert missing.status_code == 400
    assert missing.get_json()["code"] == "VALIDATION_ERROR"


def test_inactive_user_cannot_login(app_client, make_user):
    _app, client = app_client
    make_user(username="gone", role="Recruiter", status="inactive")

    res = client.post("/api/auth/login", json={"username": "gone", "password": "Passw0rd!"})
    assert res.status_code == 401
    assert res.get_json()["message"] == "Account is not active"


def test_missing_unknown_and_expired_tokens_are_distinct(app_client, login_as):
    _app, client = app_client

    res = client.get("/api/auth/me")
    assert res.status_code == 401
    assert res.get_json()["message"] == "Access token required"

    res = client.get("/api/auth/me", headers={"Authorization": "Bearer ST-does-not-exist"})
    assert res.status_code == 401
    assert res.get_json()["message"] == "Invalid token"

    _uid, headers = login_as("Recruiter")
    token = headers["Authorization"].split(" ", 1)[1]
    with SessionLocal() as db:
        ses = db.execute(select(DbSession).where(DbSession.tokenHash == sha256_hex(token))).scalar_one()
        ses.expiresAt = "2000-01-01T00:00:00.000Z"
        db.commit()

    res = client.get("/api/auth/me", headers=headers)
    assert res.status_code == 401
    assert res.get_json()["message"] == "Token expired"


def test_session_token_header_is_accepted(app_client, login_as):
    _app, client = app_client
    _uid, headers = login_as("Interviewer")
    token = headers["Authorization"].split(" ", 1)[1]

    res = client.get("/api/auth/verify", headers={"X-Session-Token": token})
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["valid"] is True
    assert data["user"]["role"] == "Interviewer"


def test_logout_revokes_the_session(app_client, login_as):
    _app, client = app_client
    _uid, headers = login_as("Recruiter")

    res = client.post("/api/auth/logout", headers=headers)
    assert res.status_code == 200
    assert res.get_json()["data"]["loggedOut"] is True

    res = client.get("/api/auth/me", headers=headers)
    assert res.status_code == 401
    assert res.get_json()["message"] == "Invalid token"


def test_change_password_checks_current_and_revokes_sessions(app_client, login_as):
    _app, client = app_client
    _uid, headers = login_as("Recruiter", username="carol")

    res = client.post(
        "/api/auth/change-password",
        headers=headers,
        json={"currentPassword": "wrong", "newPassword": "N3wPassword!"},
    )
    assert res.status_code == 401
    assert res.get_json()["message"] == "Current password is incorrect"

    res = client.post(
        "/api/auth/change-password",
        headers=headers,
        json={"currentPassword": "Passw0rd!", "newPassword": "N3wPassword!"},
    )
    assert res.status_code == 200

    assert client.get("/api/auth/me", headers=headers).status_code == 401
    res = client.post("/api/auth/login", json={"username": "carol", "password": "N3wPassword!"})
    assert res.status_code == 200


def test_profile_update_rejects_self_deactivation(app_client, login_as):
    _app, client = app_client
    _uid, headers = login_as("Recruiter")

    res = client.put("/api/auth/profile", headers=headers, json={"status": "inactive"})
    assert res.status_code == 400

    res = client.put("/api/auth/profile", headers=headers, json={"status": "Busy", "phone": "555-0100"})
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "Busy"
    assert res.get_json()["data"]["phone"] == "555-0100"


def test_register_is_admin_only(app_client, login_as):
    _app, client = app_client
    _hr, hr_headers = login_as("HR Manager")
    payload = {"username": "newbie", "email": "newbie@example.com", "name": "New Bie", "password": "Passw0rd!", "role": "Recruiter"}

    res = client.post("/api/auth/register", headers=hr_headers, json=payload)
    assert res.status_code == 403

    _admin, admin_headers = login_as("Admin")
    res = client.post("/api/auth/register", headers=admin_headers, json=payload)
    assert res.status_code == 201
    assert res.get_json()["data"]["user"]["username"] == "newbie"


def test_failed_request_writes_error_audit(app_client, login_as):
    _app, client = app_client
    _uid, headers = login_as("Interviewer")

    res = client.post("/api/jobs", headers=headers, json={"title": "X"})
    assert res.status_code == 403

    with SessionLocal() as db:
        rows = db.execute(select(AuditLog).where(AuditLog.action == "JOB_CREATE").where(AuditLog.entityType == "API")).scalars().all()
        assert len(rows) == 1
        assert rows[0].remark.startswith("FORBIDDEN")
