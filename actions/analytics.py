from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, func, select

from actions.helpers import clamp_int, user_names
from actions.interviews import serialize_interview
from actions.jobs import STAGES
from models import AuditLog, Candidate, Interview, InterviewFeedback, JobPosting, Task
from utils import AuthContext, iso_utc_now, parse_datetime_maybe

FUNNEL_STAGES = ["Applied", "Screening", "Interview", "Offer", "Hired"]
HIRE_RECOMMENDATIONS = ("Strong Hire", "Hire")

QUALITY_BANDS = [
    (4.5, "Excellent (4.5-5.0)"),
    (4.0, "Good (4.0-4.4)"),
    (3.5, "Average (3.5-3.9)"),
    (3.0, "Below Average (3.0-3.4)"),
    (0.0, "Poor (0-2.9)"),
]


def _pct(num: int | float, den: int | float) -> float:
    return round(float(num) * 100.0 / float(den), 2) if den else 0.0


def _count(db, stmt) -> int:
    return int(db.execute(stmt).scalar_one() or 0)


def _stage_counts(db) -> dict[str, int]:
    out = {st: 0 for st in STAGES}
    for stage, n in db.execute(select(Candidate.stage, func.count()).group_by(Candidate.stage)).all():
        out[str(stage)] = int(n)
    return out


def _days_between(start_iso: str, end_iso: str) -> float | None:
    start = parse_datetime_maybe(start_iso)
    end = parse_datetime_maybe(end_iso)
    if start is None or end is None:
        return None
    return max(0.0, (end - start).total_seconds() / 86400.0)


def _summary(values: list[float]) -> dict[str, Any]:
    if not values:
        return {"count": 0, "averageDays": 0.0, "minDays": 0.0, "maxDays": 0.0}
    return {
        "count": len(values),
        "averageDays": round(sum(values) / len(values), 1),
        "minDays": round(min(values), 1),
        "maxDays": round(max(values), 1),
    }


def conversion_rates(stage_counts: dict[str, int]) -> list[dict[str, Any]]:
    """Rates use cumulative reach: a candidate at Offer has also reached Screening and Interview."""
    reached = {}
    for i, st in enumerate(FUNNEL_STAGES):
        reached[st] = sum(stage_counts.get(x, 0) for x in FUNNEL_STAGES[i:])
    out = []
    for prev, nxt in zip(FUNNEL_STAGES, FUNNEL_STAGES[1:]):
        out.append({"from": prev, "to": nxt, "rate": _pct(reached[nxt], reached[prev])})
    return out


def dashboard_metrics(data, auth: AuthContext | None, db, cfg):
    stages = _stage_counts(db)
    totals = {
        "totalJobs": _count(db, select(func.count()).select_from(JobPosting)),
        "activeJobs": _count(db, select(func.count()).select_from(JobPosting).where(JobPosting.status == "Active")),
        "totalCandidates": sum(stages.values()),
        "hired": stages.get("Hired", 0),
        "interviewsCompleted": _count(db, select(func.count()).select_from(Interview).where(Interview.status == "Completed")),
        "pendingTasks": _count(db, select(func.count()).select_from(Task).where(Task.status != "Completed")),
    }

    sources = db.execute(
        select(Candidate.source, func.count().label("n")).group_by(Candidate.source).order_by(func.count().desc()).limit(10)
    ).all()

    upcoming = (
        db.execute(
            select(Interview)
            .where(Interview.status == "Scheduled")
            .where(Interview.scheduledDate >= iso_utc_now())
            .order_by(Interview.scheduledDate.asc())
            .limit(5)
        )
        .scalars()
        .all()
    )
    names = user_names(db, [i.interviewerId for i in upcoming])

    recent = (
        db.execute(select(AuditLog).where(AuditLog.entityType.notin_(("API", "AUTH"))).order_by(AuditLog.at.desc()).limit(10))
        .scalars()
        .all()
    )
    actor_names = user_names(db, [r.actorUserId for r in recent])

    return {
        "totals": totals,
        "stageDistribution": [{"stage": st, "count": n} for st, n in stages.items()],
        "sourceEffectiveness": [{"source": str(src or "Unknown"), "count": int(n)} for src, n in sources],
        "upcomingInterviews": [serialize_interview(i, names=names) for i in upcoming],
        "recentActivity": [
            {
                "entityType": r.entityType,
                "entityId": r.entityId,
                "action": r.action,
                "fromState": r.fromState,
                "toState": r.toState,
                "actorId": r.actorUserId,
                "actorName": actor_names.get(r.actorUserId, ""),
                "at": r.at,
            }
            for r in recent
        ],
    }


def analytics_funnel(data, auth: AuthContext | None, db, cfg):
    stages = _stage_counts(db)
    total = sum(stages.values())
    return {
        "total": total,
        "funnel": [{"stage": st, "count": stages.get(st, 0), "percentage": _pct(stages.get(st, 0), total)} for st in STAGES],
        "conversionRates": conversion_rates(stages),
    }


def analytics_time_to_hire(data, auth: AuthContext | None, db, cfg):
    rows = db.execute(
        select(Candidate.appliedDate, Candidate.stageUpdatedAt, Candidate.source, JobPosting.department)
        .outerjoin(JobPosting, JobPosting.jobId == Candidate.jobId)
        .where(Candidate.stage == "Hired")
    ).all()

    overall: list[float] = []
    by_dept: dict[str, list[float]] = {}
    by_source: dict[str, list[float]] = {}
    for applied, hired_at, source, dept in rows:
        days = _days_between(applied, hired_at)
        if days is None:
            continue
        overall.append(days)
        by_dept.setdefault(str(dept or "Unassigned"), []).append(days)
        by_source.setdefault(str(source or "Unknown"), []).append(days)

    return {
        "overall": _summary(overall),
        "byDepartment": [{"department": k, **_summary(v)} for k, v in sorted(by_dept.items())],
        "bySource": [{"source": k, **_summary(v)} for k, v in sorted(by_source.items())],
    }


def analytics_sources(data, auth: AuthContext | None, db, cfg):
    hired = func.sum(case((Candidate.stage == "Hired", 1), else_=0))
    rows = db.execute(
        select(Candidate.source, func.count(), hired, func.avg(Candidate.score))
        .group_by(Candidate.source)
        .order_by(func.count().desc())
    ).all()
    return {
        "items": [
            {
                "source": str(src or "Unknown"),
                "candidates": int(n),
                "hires": int(h or 0),
                "hireRate": _pct(int(h or 0), int(n)),
                "averageScore": round(float(avg or 0), 2),
            }
            for src, n, h, avg in rows
        ]
    }


def analytics_interviewers(data, auth: AuthContext | None, db, cfg):
    completed = func.sum(case((Interview.status == "Completed", 1), else_=0))
    base = db.execute(
        select(Interview.interviewerId, func.count(), completed).group_by(Interview.interviewerId)
    ).all()
    hire_recs = func.sum(case((InterviewFeedback.recommendation.in_(HIRE_RECOMMENDATIONS), 1), else_=0))
    fb = {
        str(uid): (int(n), float(avg or 0), int(h or 0))
        for uid, n, avg, h in db.execute(
            select(Interview.interviewerId, func.count(InterviewFeedback.feedbackId), func.avg(InterviewFeedback.overallRating), hire_recs)
            .join(InterviewFeedback, InterviewFeedback.interviewId == Interview.interviewId)
            .group_by(Interview.interviewerId)
        ).all()
    }
    names = user_names(db, [uid for uid, _, _ in base])

    items = []
    for uid, total, done in base:
        n_fb, avg, hires = fb.get(str(uid), (0, 0.0, 0))
        items.append(
            {
                "interviewerId": str(uid),
                "name": names.get(str(uid), ""),
                "totalInterviews": int(total),
                "completedInterviews": int(done or 0),
                "feedbackCount": n_fb,
                "averageRating": round(avg, 2),
                "hireRecommendations": hires,
                "selectionRate": _pct(hires, n_fb),
            }
        )
    items.sort(key=lambda it: (-it["totalInterviews"], it["name"]))
    return {"items": items}


def analytics_jobs(data, auth: AuthContext | None, db, cfg):
    hired = func.sum(case((Candidate.stage == "Hired", 1), else_=0))
    rows = db.execute(
        select(JobPosting.jobId, JobPosting.title, JobPosting.department, JobPosting.status, func.count(Candidate.candidateId), hired, func.avg(Candidate.score))
        .outerjoin(Candidate, Candidate.jobId == JobPosting.jobId)
        .group_by(JobPosting.jobId, JobPosting.title, JobPosting.department, JobPosting.status)
        .order_by(func.count(Candidate.candidateId).desc())
    ).all()
    return {
        "items": [
            {
                "jobId": jid,
                "title": title,
                "department": dept,
                "status": status,
                "applications": int(n),
                "hires": int(h or 0),
                "averageScore": round(float(avg or 0), 2),
                "hireRate": _pct(int(h or 0), int(n)),
            }
            for jid, title, dept, status, n, h, avg in rows
        ]
    }


def _month_keys(months: int) -> list[str]:
    now = datetime.now(timezone.utc)
    y, m = now.year, now.month
    keys = []
    for _ in range(months):
        keys.append(f"{y:04d}-{m:02d}")
        m -= 1
        if m == 0:
            y, m = y - 1, 12
    return list(reversed(keys))


def analytics_monthly(data, auth: AuthContext | None, db, cfg):
    months = clamp_int((data or {}).get("months"), default=12, min_v=1, max_v=36)
    keys = _month_keys(months)
    first = f"{keys[0]}-01"

    def _by_month(col, *conds) -> dict[str, int]:
        month = func.substr(col, 1, 7)
        q = select(month, func.count()).where(col >= first)
        for c in conds:
            q = q.where(c)
        return {str(k): int(n) for k, n in db.execute(q.group_by(month)).all()}

    apps = _by_month(Candidate.appliedDate)
    hires = _by_month(Candidate.stageUpdatedAt, Candidate.stage == "Hired")
    rejections = _by_month(Candidate.stageUpdatedAt, Candidate.stage == "Rejected")
    return {
        "months": months,
        "items": [
            {"month": k, "applications": apps.get(k, 0), "hires": hires.get(k, 0), "rejections": rejections.get(k, 0)}
            for k in keys
        ],
    }


def analytics_quality(data, auth: AuthContext | None, db, cfg):
    scores = [float(x) for x in db.execute(select(Candidate.score).where(Candidate.score > 0)).scalars()]
    counts = {label: 0 for _, label in QUALITY_BANDS}
    for sc in scores:
        for floor, label in QUALITY_BANDS:
            if sc >= floor:
                counts[label] += 1
                break
    total = len(scores)
    return {
        "scoredCandidates": total,
        "averageScore": round(sum(scores) / total, 2) if total else 0.0,
        "bands": [{"range": label, "count": counts[label], "percentage": _pct(counts[label], total)} for _, label in QUALITY_BANDS],
    }
