from __future__ import annotations

from typing import Any, Callable

from actions import (
    analytics,
    auth_actions,
    candidates,
    communications,
    email_templates,
    interviews,
    jobs,
    notes_ratings,
    pipeline,
    settings,
    tasks,
    users,
)
from utils import ApiError, AuthContext

Handler = Callable[..., Any]

ACTIONS: dict[str, Handler] = {
    "AUTH_LOGIN": auth_actions.login,
    "AUTH_REGISTER": auth_actions.register,
    "AUTH_ME": auth_actions.me,
    "AUTH_PROFILE_UPDATE": auth_actions.profile_update,
    "AUTH_CHANGE_PASSWORD": auth_actions.change_password,
    "AUTH_LOGOUT": auth_actions.logout,
    "AUTH_VERIFY": auth_actions.verify,
    "USERS_LIST": users.users_list,
    "USER_GET": users.user_get,
    "USER_CREATE": users.user_create,
    "USER_UPDATE": users.user_update,
    "USER_STATUS_SET": users.user_status_set,
    "USER_DELETE": users.user_delete,
    "USER_PERMISSIONS_SET": users.user_permissions_set,
    "ROLE_TEMPLATES_LIST": users.role_templates_list,
    "SETTINGS_GET": settings.settings_get,
    "SETTINGS_UPDATE": settings.settings_update,
    "JOBS_LIST": jobs.jobs_list,
    "JOB_GET": jobs.job_get,
    "JOB_CREATE": jobs.job_create,
    "JOB_UPDATE": jobs.job_update,
    "JOB_DELETE": jobs.job_delete,
    "JOB_CANDIDATES": jobs.job_candidates,
    "JOB_STATS": jobs.job_stats,
    "CANDIDATES_LIST": candidates.candidates_list,
    "CANDIDATE_GET": candidates.candidate_get,
    "CANDIDATE_CREATE": candidates.candidate_create,
    "CANDIDATE_UPDATE": candidates.candidate_update,
    "CANDIDATE_DELETE": candidates.candidate_delete,
    "CANDIDATE_STAGE_SET": candidates.candidate_stage_set,
    "CANDIDATE_BULK_IMPORT": candidates.candidate_bulk_import,
    "CANDIDATE_ANALYTICS": candidates.candidate_analytics,
    "CANDIDATE_RESUME_UPLOAD": candidates.candidate_resume_upload,
    "CANDIDATE_RESUME_GET": candidates.candidate_resume_get,
    "NOTES_LIST": notes_ratings.notes_list,
    "NOTE_CREATE": notes_ratings.note_create,
    "NOTE_UPDATE": notes_ratings.note_update,
    "NOTE_DELETE": notes_ratings.note_delete,
    "RATINGS_LIST": notes_ratings.ratings_list,
    "RATINGS_SUMMARY": notes_ratings.ratings_summary,
    "RATING_CREATE": notes_ratings.rating_create,
    "RATING_UPDATE": notes_ratings.rating_update,
    "RATING_DELETE": notes_ratings.rating_delete,
    "INTERVIEWS_LIST": interviews.interviews_list,
    "INTERVIEW_GET": interviews.interview_get,
    "INTERVIEW_SCHEDULE": interviews.interview_schedule,
    "INTERVIEW_UPDATE": interviews.interview_update,
    "INTERVIEW_DELETE": interviews.interview_delete,
    "INTERVIEW_STATUS_SET": interviews.interview_status_set,
    "INTERVIEW_FEEDBACK_SUBMIT": interviews.interview_feedback_submit,
    "INTERVIEWS_BY_INTERVIEWER": interviews.interviews_by_interviewer,
    "INTERVIEWS_UPCOMING": interviews.interviews_upcoming,
    "ASSIGNMENTS_LIST": pipeline.assignments_list,
    "ASSIGNMENT_GET": pipeline.assignment_get,
    "ASSIGNMENT_CREATE": pipeline.assignment_create,
    "ASSIGNMENT_UPDATE": pipeline.assignment_update,
    "ASSIGNMENT_STATUS_SET": pipeline.assignment_status_set,
    "ASSIGNMENT_DELETE": pipeline.assignment_delete,
    "ASSIGNMENT_SEND": pipeline.assignment_send,
    "ASSIGNMENT_FILES_ADD": pipeline.assignment_files_add,
    "ASSIGNMENT_FILE_DELETE": pipeline.assignment_file_delete,
    "ASSIGNMENTS_BY_CANDIDATE": pipeline.assignments_by_candidate,
    "TASKS_LIST": tasks.tasks_list,
    "TASK_GET": tasks.task_get,
    "TASK_CREATE": tasks.task_create,
    "TASK_UPDATE": tasks.task_update,
    "TASK_STATUS_SET": tasks.task_status_set,
    "TASK_DELETE": tasks.task_delete,
    "COMMUNICATIONS_LIST": communications.communications_list,
    "COMMUNICATION_GET": communications.communication_get,
    "COMMUNICATION_CREATE": communications.communication_create,
    "COMMUNICATION_UPDATE": communications.communication_update,
    "COMMUNICATION_DELETE": communications.communication_delete,
    "COMMUNICATIONS_BY_CANDIDATE": communications.communications_by_candidate,
    "TEMPLATES_LIST": email_templates.templates_list,
    "TEMPLATE_GET": email_templates.template_get,
    "TEMPLATE_CREATE": email_templates.template_create,
    "TEMPLATE_UPDATE": email_templates.template_update,
    "TEMPLATE_DELETE": email_templates.template_delete,
    "TEMPLATE_CATEGORIES": email_templates.template_categories,
    "TEMPLATE_VARIABLES": email_templates.template_variables,
    "TEMPLATE_PREVIEW": email_templates.template_preview,
    "TEMPLATE_SEND": email_templates.template_send,
    "DASHBOARD_METRICS": analytics.dashboard_metrics,
    "ANALYTICS_FUNNEL": analytics.analytics_funnel,
    "ANALYTICS_TIME_TO_HIRE": analytics.analytics_time_to_hire,
    "ANALYTICS_SOURCES": analytics.analytics_sources,
    "ANALYTICS_INTERVIEWERS": analytics.analytics_interviewers,
    "ANALYTICS_JOBS": analytics.analytics_jobs,
    "ANALYTICS_MONTHLY": analytics.analytics_monthly,
    "ANALYTICS_QUALITY": analytics.analytics_quality,
}


def dispatch(action: str, data: dict, auth: AuthContext | None, db, cfg):
    handler = ACTIONS.get(str(action or "").upper().strip())
    if handler is None:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action}")
    return handler(data or {}, auth, db, cfg)
