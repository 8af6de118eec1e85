from __future__ import annotations

import io
import os
from unittest.mock import patch

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as OrmSession

from db import SessionLocal
from models import Candidate, Communication


def _candidate(client, headers, email="cand@example.com") -> str:
    res = client.post("/api/candidates", headers=headers, json={"name": "Cand", "email": email})
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]["id"]


def _assignment(client, headers, candidate_id, **extra) -> str:
    res = client.post("/api/assignments", headers=headers, json={"candidateId": candidate_id, "title": "Take-home", **extra})
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]["id"]


def _mirror(candidate_id: str) -> str:
    with SessionLocal() as db:
        return db.get(Candidate, candidate_id).inHouseAssignmentStatus


def _communications(assignment_id: str) -> list[Communication]:
    with SessionLocal() as db:
        return list(db.execute(select(Communication).where(Communication.assignmentId == assignment_id)).scalars().all())


def test_send_requires_content_then_marks_assigned(app_client, login_as):
    _app, client = app_client
    _rid, recruiter = login_as("Recruiter")
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)
    aid = _assignment(client, recruiter, cid)
    assert _mirror(cid) == "Pending"

    res = client.post(f"/api/assignments/{aid}/send", headers=recruiter)
    assert res.status_code == 400
    assert res.get_json()["message"] == "Assignment must have description or attachments to send"

    res = client.put(f"/api/assignments/{aid}", headers=recruiter, json={"descriptionHtml": "<p>Build a CLI</p>"})
    assert res.status_code == 200

    res = client.post(f"/api/assignments/{aid}/send", headers=recruiter)
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["assignment"]["status"] == "Assigned"
    assert data["assignment"]["sentAt"]
    assert data["emailNotification"]["success"] is True

    assert _mirror(cid) == "Assigned"
    comms = _communications(aid)
    assert [(c.type, c.status) for c in comms] == [("Email", "Sent")]


def test_send_survives_mail_failure(app_client, login_as):
    _app, client = app_client
    _rid, recruiter = login_as("Recruiter")
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)
    aid = _assignment(client, recruiter, cid, descriptionHtml="<p>Task</p>")

    with patch("actions.pipeline.send_email", return_value={"success": False, "error": "smtp down"}):
        res = client.post(f"/api/assignments/{aid}/send", headers=recruiter)

    assert res.status_code == 200
    note = res.get_json()["data"]["emailNotification"]
    assert note["success"] is False
    assert "smtp down" in note["warning"]
    assert res.get_json()["data"]["assignment"]["status"] == "Assigned"
    assert [c.status for c in _communications(aid)] == ["Failed"]


def test_send_requires_candidate_email(app_client, login_as):
    _app, client = app_client
    _rid, recruiter = login_as("Recruiter")
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)
    aid = _assignment(client, recruiter, cid, descriptionHtml="<p>Task</p>")
    with SessionLocal() as db:
        db.get(Candidate, cid).email = ""
        db.commit()

    res = client.post(f"/api/assignments/{aid}/send", headers=recruiter)
    assert res.status_code == 400
    assert res.get_json()["message"] == "Candidate email is required to send assignment"


def test_status_changes_mirror_onto_candidate(app_client, login_as):
    _app, client = app_client
    _rid, recruiter = login_as("Recruiter")
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)
    aid = _assignment(client, recruiter, cid)

    for status in ("Assigned", "In Progress", "Submitted", "Approved", "Rejected", "Cancelled"):
        res = client.patch(f"/api/assignments/{aid}/status", headers=recruiter, json={"status": status})
        assert res.status_code == 200
        assert _mirror(cid) == status

    res = client.patch(f"/api/assignments/{aid}/status", headers=recruiter, json={"status": "Draft"})
    assert res.status_code == 409
    assert res.get_json()["message"] == "Cannot revert assignment to Draft status once it has been sent"
    assert _mirror(cid) == "Cancelled"

    res = client.patch(f"/api/assignments/{aid}/status", headers=recruiter, json={"status": "Lost"})
    assert res.status_code == 400


def test_only_draft_assignments_can_be_deleted(app_client, login_as):
    _app, client = app_client
    _aid, admin = login_as("Admin")
    _rid, recruiter = login_as("Recruiter")
    cid = _candidate(client, admin)
    draft = _assignment(client, admin, cid)
    sent = _assignment(client, admin, cid, descriptionHtml="<p>x</p>")
    client.post(f"/api/assignments/{sent}/send", headers=admin)

    assert client.delete(f"/api/assignments/{draft}", headers=recruiter).status_code == 403

    res = client.delete(f"/api/assignments/{sent}", headers=admin)
    assert res.status_code == 409
    assert res.get_json()["message"] == "Cannot delete assignment that has been sent"

    assert client.delete(f"/api/assignments/{draft}", headers=admin).status_code == 200
    assert client.get(f"/api/assignments/{draft}", headers=admin).status_code == 404


def test_attachment_upload_send_and_delete(app_client, login_as):
    app, client = app_client
    _rid, recruiter = login_as("Recruiter")
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)
    aid = _assignment(client, recruiter, cid)

    res = client.post(
        f"/api/assignments/{aid}/files",
        headers=recruiter,
        data={
            "files": [
                (io.BytesIO(b"brief"), "brief.txt", "text/plain"),
                (io.BytesIO(b"%PDF-1.4 rubric"), "rubric.pdf", "application/pdf"),
            ]
        },
        content_type="multipart/form-data",
    )
    assert res.status_code == 201, res.get_json()
    files = res.get_json()["data"]["files"]
    assert sorted(f["originalName"] for f in files) == ["brief.txt", "rubric.pdf"]

    upload_dir = app.config["CFG"].UPLOAD_DIR
    stored = {f["id"]: os.path.join(upload_dir, f["filename"]) for f in files}
    assert all(os.path.isfile(p) for p in stored.values())

    # Attachments alone are enough to send.
    res = client.post(f"/api/assignments/{aid}/send", headers=recruiter)
    assert res.status_code == 200

    file_id, path = next(iter(stored.items()))
    res = client.delete(f"/api/assignments/{aid}/files/{file_id}", headers=recruiter)
    assert res.status_code == 200
    assert not os.path.exists(path)

    res = client.get(f"/api/assignments/{aid}", headers=recruiter)
    body = res.get_json()["data"]
    assert len(body["files"]) == 1
    assert len(body["communications"]) == 1


def test_rejected_attachment_leaves_nothing_behind(app_client, login_as):
    app, client = app_client
    _rid, recruiter = login_as("Recruiter")
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)
    aid = _assignment(client, recruiter, cid)

    res = client.post(
        f"/api/assignments/{aid}/files",
        headers=recruiter,
        data={"files": [(io.BytesIO(b"ok"), "ok.txt", "text/plain"), (io.BytesIO(b"MZ"), "bad.exe", "application/octet-stream")]},
        content_type="multipart/form-data",
    )
    assert res.status_code == 400
    assert os.listdir(app.config["CFG"].UPLOAD_DIR) == []

    res = client.post(f"/api/assignments/{aid}/files", headers=recruiter, data={}, content_type="multipart/form-data")
    assert res.status_code == 400
    assert res.get_json()["message"] == "No files uploaded"


def test_failed_commit_leaves_attachments_and_mail_untouched(app_client, login_as):
    app, client = app_client
    _rid, recruiter = login_as("Recruiter")
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)
    aid = _assignment(client, recruiter, cid)
    upload_dir = app.config["CFG"].UPLOAD_DIR

    res = client.post(
        f"/api/assignments/{aid}/files",
        headers=recruiter,
        data={"files": [(io.BytesIO(b"brief"), "brief.txt", "text/plain")]},
        content_type="multipart/form-data",
    )
    kept = res.get_json()["data"]["files"][0]

    with patch("actions.pipeline.send_email") as send, patch.object(OrmSession, "commit", side_effect=SQLAlchemyError("database is locked")):
        res = client.post(
            f"/api/assignments/{aid}/files",
            headers=recruiter,
            data={"files": [(io.BytesIO(b"notes"), "notes.txt", "text/plain")]},
            content_type="multipart/form-data",
        )
        assert res.status_code == 500
        assert client.delete(f"/api/assignments/{aid}/files/{kept['id']}", headers=recruiter).status_code == 500
        assert client.post(f"/api/assignments/{aid}/send", headers=recruiter).status_code == 500

    send.assert_not_called()
    assert os.listdir(upload_dir) == [kept["filename"]]
    assert _communications(aid) == []
    assert _mirror(cid) == "Pending"

    res = client.post(f"/api/assignments/{aid}/send", headers=recruiter)
    assert res.status_code == 200
    assert res.get_json()["data"]["emailNotification"]["success"] is True
    assert [c.status for c in _communications(aid)] == ["Sent"]


def test_assignments_by_candidate(app_client, login_as):
    _app, client = app_client
    _rid, recruiter = login_as("Recruiter")
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)
    _assignment(client, recruiter, cid)
    _assignment(client, recruiter, cid, title="Second round")

    res = client.get(f"/api/assignments/candidate/{cid}", headers=recruiter)
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["inHouseAssignmentStatus"] == "Pending"
    assert len(data["items"]) == 2

    res = client.get("/api/assignments?status=Draft", headers=recruiter)
    assert res.get_json()["data"]["pagination"]["total"] == 2
    assert {it["candidateName"] for it in res.get_json()["data"]["items"]} == {"Cand"}
