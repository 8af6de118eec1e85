from __future__ import annotations

from datetime import datetime, timedelta, timezone

from actions.analytics import conversion_rates


def _import(client, headers, rows):
    res = client.post("/api/candidates/bulk-import", headers=headers, json={"candidates": rows})
    assert res.status_code == 200
    assert res.get_json()["data"]["failed"] == 0, res.get_json()
    return [r["id"] for r in res.get_json()["data"]["results"]]


def _rows(stage_counts: dict[str, int]) -> list[dict]:
    rows = []
    for stage, n in stage_counts.items():
        for i in range(n):
            rows.append({"name": f"{stage} {i}", "email": f"{stage.lower()}{i}@example.com", "stage": stage})
    return rows


def test_conversion_rates_use_cumulative_reach():
    rates = conversion_rates({"Applied": 4, "Screening": 3, "Interview": 2, "Offer": 1, "Hired": 0, "Rejected": 7})
    assert [(r["from"], r["to"], r["rate"]) for r in rates] == [
        ("Applied", "Screening", 60.0),
        ("Screening", "Interview", 50.0),
        ("Interview", "Offer", 33.33),
        ("Offer", "Hired", 0.0),
    ]
    assert all(r["rate"] == 0.0 for r in conversion_rates({}))


def test_funnel_endpoint(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    _import(client, hr, _rows({"Applied": 4, "Screening": 3, "Interview": 2, "Offer": 1, "Rejected": 2}))

    res = client.get("/api/analytics/funnel", headers=hr)
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["total"] == 12
    by_stage = {f["stage"]: f for f in data["funnel"]}
    assert by_stage["Applied"] == {"stage": "Applied", "count": 4, "percentage": 33.33}
    assert by_stage["Hired"]["count"] == 0
    assert [r["rate"] for r in data["conversionRates"]] == [60.0, 50.0, 33.33, 0.0]


def test_quality_bands_ignore_unscored_candidates(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    scores = [4.8, 4.5, 4.2, 3.7, 3.1, 2.0]
    rows = [{"name": f"C{i}", "email": f"c{i}@example.com", "score": sc} for i, sc in enumerate(scores)]
    rows.append({"name": "Unscored", "email": "u@example.com"})
    _import(client, hr, rows)

    res = client.get("/api/analytics/quality", headers=hr)
    data = res.get_json()["data"]
    assert data["scoredCandidates"] == 6
    assert [b["count"] for b in data["bands"]] == [2, 1, 1, 1, 1]
    assert data["averageScore"] == round(sum(scores) / 6, 2)


def test_time_to_hire_and_monthly(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    applied = (datetime.now(timezone.utc) - timedelta(days=10)).isoformat()
    _import(
        client,
        hr,
        [
            {"name": "Hired One", "email": "h1@example.com", "stage": "Hired", "source": "Referral", "appliedDate": applied},
            {"name": "Old", "email": "old@example.com", "appliedDate": "2001-05-01T00:00:00Z"},
        ],
    )

    res = client.get("/api/analytics/time-to-hire", headers=hr)
    data = res.get_json()["data"]
    assert data["overall"]["count"] == 1
    assert data["overall"]["averageDays"] == 10.0
    assert data["bySource"][0]["source"] == "Referral"

    res = client.get("/api/analytics/monthly?months=2", headers=hr)
    items = res.get_json()["data"]["items"]
    assert len(items) == 2
    this_month = datetime.now(timezone.utc).strftime("%Y-%m")
    assert items[-1]["month"] == this_month
    assert items[-1]["hires"] == 1
    assert sum(it["applications"] for it in items) == 1


def test_dashboard_hides_request_and_login_noise(app_client, login_as):
    _app, client = app_client
    _hid, hr = login_as("HR Manager")
    _import(client, hr, _rows({"Applied": 2, "Hired": 1}))
    client.post("/api/jobs", headers=hr, json={"title": "SRE", "department": "Ops", "location": "Remote", "description": "On call"})

    res = client.get("/api/analytics/dashboard", headers=hr)
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["totals"]["totalCandidates"] == 3
    assert data["totals"]["hired"] == 1
    assert data["totals"]["totalJobs"] == 1
    activity = data["recentActivity"]
    assert activity
    assert not {a["entityType"] for a in activity} & {"API", "AUTH"}
    assert "CANDIDATE" in {a["entityType"] for a in activity}


def test_analytics_require_view_permission(app_client, login_as):
    _app, client = app_client
    _iid, interviewer = login_as("Interviewer")

    assert client.get("/api/analytics/funnel", headers=interviewer).status_code == 403
