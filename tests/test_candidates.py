from __future__ import annotations

import io
import os
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as OrmSession

from db import SessionLocal
from models import Candidate


def _job(client, headers, title="Backend Engineer") -> str:
    res = client.post(
        "/api/jobs",
        headers=headers,
        json={"title": title, "department": "Engineering", "location": "Remote", "description": "Python services"},
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]["id"]


def _candidate(client, headers, **overrides) -> str:
    payload = {"name": "Jane Doe", "email": "jane@example.com", "source": "LinkedIn", **overrides}
    res = client.post("/api/candidates", headers=headers, json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]["id"]


def test_create_candidate_defaults_and_job_link(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    job_id = _job(client, hr)

    res = client.post("/api/candidates", headers=hr, json={"name": "Jane", "email": "Jane@Example.com", "jobId": job_id})
    assert res.status_code == 201
    data = res.get_json()["data"]
    assert data["stage"] == "Applied"
    assert data["email"] == "jane@example.com"
    assert data["jobId"] == job_id
    assert data["position"] == "Backend Engineer"
    assert data["resume"] is None

    res = client.post("/api/candidates", headers=hr, json={"name": "Jane", "email": "jane@example.com", "jobId": "JOB-missing"})
    assert res.status_code == 400


def test_duplicate_candidate_per_position_conflicts(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    job_a = _job(client, hr, "Backend Engineer")
    job_b = _job(client, hr, "Data Engineer")

    _candidate(client, hr, jobId=job_a)
    res = client.post("/api/candidates", headers=hr, json={"name": "Jane", "email": "JANE@example.com", "jobId": job_a})
    assert res.status_code == 409
    assert res.get_json()["message"] == "Candidate already exists for this position"

    _candidate(client, hr, jobId=job_b)


def test_stage_changes_are_free_form_and_stamped(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)

    res = client.patch(f"/api/candidates/{cid}/stage", headers=hr, json={"stage": "Hired"})
    assert res.status_code == 200
    hired_at = res.get_json()["data"]["stageUpdatedAt"]

    res = client.patch(f"/api/candidates/{cid}/stage", headers=hr, json={"stage": "Applied"})
    assert res.status_code == 200
    assert res.get_json()["data"]["stage"] == "Applied"
    assert res.get_json()["data"]["stageUpdatedAt"] >= hired_at

    res = client.patch(f"/api/candidates/{cid}/stage", headers=hr, json={"stage": "Ghosted"})
    assert res.status_code == 400


def test_list_filters_and_search(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    _candidate(client, hr, name="Ann Lee", email="ann@example.com", stage="Screening")
    _candidate(client, hr, name="Ben Ode", email="ben@example.com")

    res = client.get("/api/candidates?stage=Screening", headers=hr)
    items = res.get_json()["data"]["items"]
    assert [c["name"] for c in items] == ["Ann Lee"]

    res = client.get("/api/candidates?search=ode&limit=5", headers=hr)
    body = res.get_json()["data"]
    assert [c["name"] for c in body["items"]] == ["Ben Ode"]
    assert body["pagination"] == {"page": 1, "limit": 5, "total": 1, "pages": 1}


def test_bulk_import_reports_each_row(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    _candidate(client, hr, name="Existing", email="e@example.com")

    rows = [
        {"name": "A", "email": "a@example.com"},
        {"name": "B", "email": "not-an-email"},
        {"name": "A again", "email": "a@example.com"},
        {"name": "E", "email": "e@example.com"},
        {"email": "noname@example.com"},
    ]
    res = client.post("/api/candidates/bulk-import", headers=hr, json={"candidates": rows})
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert (data["total"], data["created"], data["failed"]) == (5, 1, 4)
    assert [r["success"] for r in data["results"]] == [True, False, False, False, False]

    with SessionLocal() as db:
        assert db.query(Candidate).count() == 2

    res = client.post("/api/candidates/bulk-import", headers=hr, json={"candidates": [{"name": "x", "email": "x@example.com"}] * 101})
    assert res.status_code == 400


def test_private_notes_visible_to_author_admin_and_hr_only(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    _rid, recruiter = login_as("Recruiter")
    _tid, lead = login_as("Team Lead")
    cid = _candidate(client, hr)

    res = client.post(f"/api/candidates/{cid}/notes", headers=recruiter, json={"content": "Salary hint", "isPrivate": True})
    assert res.status_code == 201
    client.post(f"/api/candidates/{cid}/notes", headers=recruiter, json={"content": "Strong CV", "type": "Pre-Interview"})

    seen_by = {}
    for who, headers in (("recruiter", recruiter), ("lead", lead), ("hr", hr)):
        res = client.get(f"/api/candidates/{cid}/notes", headers=headers)
        seen_by[who] = sorted(n["content"] for n in res.get_json()["data"]["items"])

    assert seen_by["recruiter"] == ["Salary hint", "Strong CV"]
    assert seen_by["lead"] == ["Strong CV"]
    assert seen_by["hr"] == ["Salary hint", "Strong CV"]


def test_note_and_rating_ownership(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    _rid, author = login_as("Recruiter")
    _tid, other = login_as("Team Lead")
    _aid, admin = login_as("Admin")
    cid = _candidate(client, hr)

    note_id = client.post(f"/api/candidates/{cid}/notes", headers=author, json={"content": "v1"}).get_json()["data"]["id"]
    res = client.put(f"/api/candidates/{cid}/notes/{note_id}", headers=other, json={"content": "hijack"})
    assert res.status_code == 403
    assert res.get_json()["message"] == "You can only modify your own notes"
    assert client.put(f"/api/candidates/{cid}/notes/{note_id}", headers=author, json={"content": "v2"}).status_code == 200
    assert client.put(f"/api/candidates/{cid}/notes/{note_id}", headers=hr, json={"content": "v3"}).status_code == 200
    assert client.delete(f"/api/candidates/{cid}/notes/{note_id}", headers=other).status_code == 403
    assert client.delete(f"/api/candidates/{cid}/notes/{note_id}", headers=admin).status_code == 200

    res = client.post(f"/api/candidates/{cid}/ratings", headers=author, json={"type": "Technical", "score": 4})
    assert res.status_code == 201
    rating_id = res.get_json()["data"]["id"]
    res = client.post(f"/api/candidates/{cid}/ratings", headers=author, json={"type": "Technical", "score": 5})
    assert res.status_code == 400
    assert res.get_json()["message"] == "You have already rated this candidate for Technical"

    assert client.put(f"/api/candidates/{cid}/ratings/{rating_id}", headers=other, json={"score": 1}).status_code == 403
    assert client.put(f"/api/candidates/{cid}/ratings/{rating_id}", headers=author, json={"score": 3}).status_code == 200
    assert client.delete(f"/api/candidates/{cid}/ratings/{rating_id}", headers=hr).status_code == 200


def test_ratings_summary(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    _rid, recruiter = login_as("Recruiter")
    cid = _candidate(client, hr)

    client.post(f"/api/candidates/{cid}/ratings", headers=hr, json={"type": "Technical", "score": 4})
    client.post(f"/api/candidates/{cid}/ratings", headers=recruiter, json={"type": "Technical", "score": 2})
    client.post(f"/api/candidates/{cid}/ratings", headers=recruiter, json={"type": "Overall", "score": 3})

    res = client.get(f"/api/candidates/{cid}/ratings/summary", headers=hr)
    data = res.get_json()["data"]
    assert data["byType"]["Technical"] == {"average": 3.0, "count": 2}
    assert data["byType"]["Communication"] == {"average": 0.0, "count": 0}
    assert data["totalRatings"] == 3
    assert data["overallAverage"] == 3.0


def test_resume_upload_download_and_cleanup(app_client, login_as):
    app, client = app_client
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)
    content = b"%PDF-1.4 resume body"

    res = client.get(f"/api/candidates/{cid}/resume/metadata", headers=hr)
    assert res.status_code == 404
    assert res.get_json()["message"] == "No resume found for this candidate"

    res = client.post(
        f"/api/candidates/{cid}/resume",
        headers=hr,
        data={"resume": (io.BytesIO(content), "jane cv.pdf", "application/pdf")},
        content_type="multipart/form-data",
    )
    assert res.status_code == 200, res.get_json()
    resume = res.get_json()["data"]["resume"]
    assert resume["originalName"] == "jane cv.pdf"
    assert resume["size"] == len(content)

    res = client.get(f"/api/candidates/{cid}/resume", headers=hr)
    assert res.status_code == 200
    assert res.data == content
    assert res.mimetype == "application/pdf"

    stored = os.path.join(app.config["CFG"].UPLOAD_DIR, resume["filename"])
    assert os.path.isfile(stored)

    _aid, admin = login_as("Admin")
    assert client.delete(f"/api/candidates/{cid}", headers=admin).status_code == 200
    assert not os.path.exists(stored)


def test_failed_commit_keeps_stored_resumes_consistent(app_client, login_as):
    app, client = app_client
    _hid, hr = login_as("HR Manager")
    _aid, admin = login_as("Admin")
    cid = _candidate(client, hr)
    upload_dir = app.config["CFG"].UPLOAD_DIR

    def _upload(body: bytes):
        return client.post(
            f"/api/candidates/{cid}/resume",
            headers=hr,
            data={"resume": (io.BytesIO(body), "cv.pdf", "application/pdf")},
            content_type="multipart/form-data",
        )

    first = _upload(b"%PDF-1.4 first").get_json()["data"]["resume"]["filename"]

    with patch.object(OrmSession, "commit", side_effect=SQLAlchemyError("database is locked")):
        assert _upload(b"%PDF-1.4 second").status_code == 500
        assert client.delete(f"/api/candidates/{cid}", headers=admin).status_code == 500

    # The row still points at the first upload, which is still on disk; the rejected one is gone.
    assert os.listdir(upload_dir) == [first]
    res = client.get(f"/api/candidates/{cid}/resume", headers=hr)
    assert res.status_code == 200
    assert res.data == b"%PDF-1.4 first"

    second = _upload(b"%PDF-1.4 second").get_json()["data"]["resume"]["filename"]
    assert os.listdir(upload_dir) == [second]


def test_resume_upload_rejects_bad_files(app_client, login_as):
    app, client = app_client
    _hid, hr = login_as("HR Manager")
    cid = _candidate(client, hr)

    res = client.post(
        f"/api/candidates/{cid}/resume",
        headers=hr,
        data={"resume": (io.BytesIO(b"MZ..."), "setup.exe", "application/octet-stream")},
        content_type="multipart/form-data",
    )
    assert res.status_code == 400
    assert res.get_json()["code"] == "VALIDATION_ERROR"

    too_big = b"x" * (app.config["CFG"].MAX_UPLOAD_BYTES + 1)
    res = client.post(
        f"/api/candidates/{cid}/resume",
        headers=hr,
        data={"resume": (io.BytesIO(too_big), "cv.txt", "text/plain")},
        content_type="multipart/form-data",
    )
    assert res.status_code == 413

    res = client.post(f"/api/candidates/{cid}/resume", headers=hr, data={}, content_type="multipart/form-data")
    assert res.status_code == 400
    assert res.get_json()["message"] == "No file uploaded"


def test_deleting_a_job_unlinks_candidates(app_client, login_as):
    _app, client = app_client
    _aid, admin = login_as("Admin")
    job_id = _job(client, admin)
    cid = _candidate(client, admin, jobId=job_id)

    res = client.get(f"/api/jobs/{job_id}/candidates", headers=admin)
    assert [c["id"] for c in res.get_json()["data"]["items"]] == [cid]

    assert client.delete(f"/api/jobs/{job_id}", headers=admin).status_code == 200
    res = client.get(f"/api/candidates/{cid}", headers=admin)
    assert res.status_code == 200
    assert res.get_json()["data"]["jobId"] is None
