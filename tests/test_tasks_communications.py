from __future__ import annotations

from unittest.mock import patch

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as OrmSession

from db import SessionLocal
from models import Communication, Task


def _candidate(client, headers, email="cand@example.com", name="Jane Doe") -> str:
    res = client.post("/api/candidates", headers=headers, json={"name": name, "email": email})
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]["id"]


def test_hr_task_assignment_sends_notification(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    rid, recruiter = login_as("Recruiter")

    res = client.post("/api/tasks", headers=hr, json={"title": "Screen CVs", "assignedTo": rid, "priority": "High"})
    assert res.status_code == 201
    data = res.get_json()["data"]
    assert data["status"] == "Pending"
    assert data["emailNotification"]["success"] is True

    _tid, lead = login_as("Team Lead")
    res = client.post("/api/tasks", headers=lead, json={"title": "Prep panel", "assignedTo": rid})
    assert res.status_code == 201
    assert "emailNotification" not in res.get_json()["data"]


def test_task_survives_notification_failure(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    rid, _recruiter = login_as("Recruiter")

    with patch("actions.tasks.send_email", return_value={"success": False, "error": "mailbox full"}):
        res = client.post("/api/tasks", headers=hr, json={"title": "Screen CVs", "assignedTo": rid})

    assert res.status_code == 201
    note = res.get_json()["data"]["emailNotification"]
    assert note["success"] is False
    assert note["warning"].startswith("Task created but notification email could not be sent")
    with SessionLocal() as db:
        assert db.get(Task, res.get_json()["data"]["id"]) is not None


def test_task_create_validates_assignee_and_priority(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")

    assert client.post("/api/tasks", headers=hr, json={"title": "x", "assignedTo": "USR-ghost"}).status_code == 400
    assert client.post("/api/tasks", headers=hr, json={"title": "x", "priority": "Urgent"}).status_code == 400
    assert client.post("/api/tasks", headers=hr, json={"priority": "Low"}).status_code == 400


def test_task_status_and_ownership(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    rid, recruiter = login_as("Recruiter")
    _tid, lead = login_as("Team Lead")
    task_id = client.post("/api/tasks", headers=hr, json={"title": "Screen CVs", "assignedTo": rid}).get_json()["data"]["id"]

    res = client.patch(f"/api/tasks/{task_id}/status", headers=lead, json={"status": "Completed"})
    assert res.status_code == 403

    res = client.patch(f"/api/tasks/{task_id}/status", headers=recruiter, json={"status": "Completed"})
    assert res.status_code == 200
    assert res.get_json()["data"]["completedAt"]

    res = client.put(f"/api/tasks/{task_id}", headers=recruiter, json={"status": "In Progress", "description": "halfway"})
    assert res.status_code == 200
    assert res.get_json()["data"]["completedAt"] == ""

    res = client.get("/api/tasks?mine=1", headers=recruiter)
    assert [t["id"] for t in res.get_json()["data"]["items"]] == [task_id]

    res = client.delete(f"/api/tasks/{task_id}", headers=recruiter)
    assert res.status_code == 403
    _aid, admin = login_as("Admin")
    assert client.delete(f"/api/tasks/{task_id}", headers=admin).status_code == 200


def test_task_creator_who_is_not_the_assignee_cannot_modify(app_client, login_as):
    _app, client = app_client
    rid, recruiter = login_as("Recruiter")
    _tid, lead = login_as("Team Lead")

    res = client.post("/api/tasks", headers=lead, json={"title": "Prep panel", "assignedTo": rid})
    assert res.status_code == 201
    task_id = res.get_json()["data"]["id"]

    res = client.patch(f"/api/tasks/{task_id}/status", headers=lead, json={"status": "Completed"})
    assert res.status_code == 403
    assert res.get_json()["message"] == "You can only modify tasks assigned to you"
    assert client.put(f"/api/tasks/{task_id}", headers=lead, json={"title": "Renamed"}).status_code == 403

    assert client.patch(f"/api/tasks/{task_id}/status", headers=recruiter, json={"status": "In Progress"}).status_code == 200

    # Created-by still counts for the "mine" view.
    res = client.get("/api/tasks?mine=1", headers=lead)
    assert [t["id"] for t in res.get_json()["data"]["items"]] == [task_id]


def test_task_notification_waits_for_commit(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    rid, _recruiter = login_as("Recruiter")

    with patch("actions.tasks.send_email") as send, patch.object(OrmSession, "commit", side_effect=SQLAlchemyError("disk I/O error")):
        res = client.post("/api/tasks", headers=hr, json={"title": "Screen CVs", "assignedTo": rid})

    assert res.status_code == 500
    send.assert_not_called()
    with SessionLocal() as db:
        assert db.execute(select(Task).where(Task.title == "Screen CVs")).first() is None


def test_communication_log_and_author_rules(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    _rid, recruiter = login_as("Recruiter")
    _tid, lead = login_as("Team Lead")
    cid = _candidate(client, hr)

    res = client.post(
        "/api/communications",
        headers=recruiter,
        json={"candidateId": cid, "type": "Phone", "subject": "Intro call", "content": "Talked about the role"},
    )
    assert res.status_code == 201
    comm_id = res.get_json()["data"]["id"]

    assert client.post("/api/communications", headers=recruiter, json={"candidateId": cid, "type": "Pigeon", "content": "x"}).status_code == 400
    assert client.post("/api/communications", headers=recruiter, json={"candidateId": "CAN-x", "type": "Email", "content": "x"}).status_code == 400

    assert client.put(f"/api/communications/{comm_id}", headers=lead, json={"content": "edited"}).status_code == 403
    assert client.put(f"/api/communications/{comm_id}", headers=hr, json={"status": "Delivered"}).status_code == 200

    res = client.get(f"/api/communications/candidate/{cid}", headers=lead)
    items = res.get_json()["data"]["items"]
    assert [(c["type"], c["status"]) for c in items] == [("Phone", "Delivered")]

    _aid, admin = login_as("Admin")
    assert client.delete(f"/api/communications/{comm_id}", headers=admin).status_code == 200


def test_template_preview_blanks_unknown_placeholders(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)

    res = client.post(
        "/api/email-templates",
        headers=hr,
        json={
            "name": "Nudge",
            "category": "Follow-up",
            "subject": "Hi {{candidate_name}}",
            "content": "Hello {{ candidate_name }}, {{unknown}}!",
            "variables": ["candidate_name", "candidate_name", "unknown"],
        },
    )
    assert res.status_code == 201
    tpl = res.get_json()["data"]
    assert tpl["variables"] == ["candidate_name", "unknown"]

    res = client.post(f"/api/email-templates/{tpl['id']}/preview", headers=hr, json={"variables": {"candidate_name": "Sam"}})
    assert res.status_code == 200
    assert res.get_json()["data"]["content"] == "Hello Sam, !"

    res = client.post(f"/api/email-templates/{tpl['id']}/preview", headers=hr, json={"candidateId": cid})
    assert res.get_json()["data"]["subject"] == "Hi Jane Doe"

    res = client.post("/api/email-templates", headers=hr, json={"name": "x", "subject": "y", "content": "z", "category": "Spam"})
    assert res.status_code == 400


def test_template_send_reports_per_candidate(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)
    res = client.get("/api/email-templates?category=Follow-up", headers=hr)
    tpl_id = res.get_json()["data"]["items"][0]["id"]

    res = client.post(f"/api/email-templates/{tpl_id}/send", headers=hr, json={"candidateIds": [cid, "CAN-missing"]})
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert (data["sent"], data["failed"]) == (1, 1)
    assert data["results"][1] == {"candidateId": "CAN-missing", "success": False, "error": "Candidate not found"}

    with SessionLocal() as db:
        rows = db.execute(select(Communication).where(Communication.candidateId == cid)).scalars().all()
        assert len(rows) == 1
        assert "Jane Doe" in rows[0].content

    assert client.post(f"/api/email-templates/{tpl_id}/send", headers=hr, json={"candidateIds": []}).status_code == 400

    client.put(f"/api/email-templates/{tpl_id}", headers=hr, json={"isActive": False})
    res = client.post(f"/api/email-templates/{tpl_id}/send", headers=hr, json={"candidateIds": [cid]})
    assert res.status_code == 400
    assert res.get_json()["message"] == "Template is not active"
