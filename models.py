from __future__ import annotations

from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String, Text, UniqueConstraint

from db import Base


class User(Base):
    __tablename__ = "users"

    userId = Column(String, primary_key=True)
    username = Column(String, nullable=False, unique=True, index=True)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(Text, nullable=False, default="")
    passwordHash = Column(Text, nullable=False, default="")
    role = Column(String, nullable=False, index=True)  # Admin|HR Manager|Team Lead|Recruiter|Interviewer
    status = Column(String, nullable=False, default="Active", index=True)  # Active|Away|Busy|inactive
    department = Column(Text, nullable=False, default="")
    phone = Column(String, nullable=False, default="")
    avatar = Column(Text, nullable=False, default="")
    lastLoginAt = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class UserPermission(Base):
    __tablename__ = "user_permissions"
    __table_args__ = (UniqueConstraint("userId", "module", name="uq_user_permissions_user_module"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    userId = Column(String, ForeignKey("users.userId", ondelete="CASCADE"), nullable=False, index=True)
    module = Column(String, nullable=False)
    actionsCsv = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class Session(Base):
    __tablename__ = "sessions"

    sessionId = Column(String, primary_key=True)
    tokenHash = Column(String, nullable=False, unique=True, index=True)
    tokenPrefix = Column(String, nullable=False, default="", index=True)
    userId = Column(String, ForeignKey("users.userId", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False, default="")
    issuedAt = Column(Text, nullable=False, default="")
    expiresAt = Column(Text, nullable=False, default="")
    lastSeenAt = Column(Text, nullable=False, default="")
    revokedAt = Column(Text, nullable=False, default="")
    revokedBy = Column(String, nullable=False, default="")


class JobPosting(Base):
    __tablename__ = "job_postings"

    jobId = Column(String, primary_key=True)
    title = Column(Text, nullable=False, default="")
    department = Column(Text, nullable=False, default="", index=True)
    location = Column(Text, nullable=False, default="")
    jobType = Column(String, nullable=False, default="Full-time")
    status = Column(String, nullable=False, default="Active", index=True)  # Active|Paused|Closed
    description = Column(Text, nullable=False, default="")
    salaryRange = Column(Text, nullable=False, default="")
    postedDate = Column(Text, nullable=False, default="")
    deadline = Column(Text, nullable=False, default="")
    requirementsJson = Column(Text, nullable=False, default="[]")
    portalsJson = Column(Text, nullable=False, default="[]")
    assignedUserIdsJson = Column(Text, nullable=False, default="[]")
    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class Candidate(Base):
    __tablename__ = "candidates"

    candidateId = Column(String, primary_key=True)
    name = Column(Text, nullable=False, default="")
    email = Column(String, nullable=False, default="", index=True)
    phone = Column(String, nullable=False, default="")
    jobId = Column(String, ForeignKey("job_postings.jobId", ondelete="SET NULL"), nullable=True, index=True)
    position = Column(Text, nullable=False, default="")
    stage = Column(String, nullable=False, default="Applied", index=True)
    stageUpdatedAt = Column(Text, nullable=False, default="")
    source = Column(Text, nullable=False, default="", index=True)
    appliedDate = Column(Text, nullable=False, default="", index=True)
    score = Column(Float, nullable=False, default=0.0)
    assignedTo = Column(String, nullable=False, default="", index=True)
    skillsJson = Column(Text, nullable=False, default="[]")
    experience = Column(Text, nullable=False, default="")
    location = Column(Text, nullable=False, default="")
    salaryJson = Column(Text, nullable=False, default="{}")
    availabilityJson = Column(Text, nullable=False, default="{}")
    workPreferenceJson = Column(Text, nullable=False, default="{}")
    notes = Column(Text, nullable=False, default="")
    # Mirror of the most recently mutated assignment's status.
    inHouseAssignmentStatus = Column(String, nullable=False, default="", index=True)
    interviewerId = Column(String, nullable=False, default="")
    interviewDate = Column(Text, nullable=False, default="")
    resumeFileName = Column(String, nullable=False, default="")
    resumeOriginalName = Column(Text, nullable=False, default="")
    resumeMimeType = Column(String, nullable=False, default="")
    resumeSize = Column(Integer, nullable=False, default=0)
    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class CandidateNote(Base):
    __tablename__ = "candidate_notes"

    noteId = Column(String, primary_key=True)
    candidateId = Column(String, ForeignKey("candidates.candidateId", ondelete="CASCADE"), nullable=False, index=True)
    authorId = Column(String, nullable=False, default="", index=True)
    noteType = Column(String, nullable=False, default="General")
    content = Column(Text, nullable=False, default="")
    isPrivate = Column(Boolean, nullable=False, default=False)
    createdAt = Column(Text, nullable=False, default="", index=True)
    updatedAt = Column(Text, nullable=False, default="")


class CandidateRating(Base):
    __tablename__ = "candidate_ratings"
    __table_args__ = (
        UniqueConstraint("candidateId", "authorId", "ratingType", name="uq_candidate_ratings_candidate_author_type"),
    )

    ratingId = Column(String, primary_key=True)
    candidateId = Column(String, ForeignKey("candidates.candidateId", ondelete="CASCADE"), nullable=False, index=True)
    authorId = Column(String, nullable=False, default="", index=True)
    ratingType = Column(String, nullable=False, default="Overall")
    score = Column(Float, nullable=False, default=0.0)
    comments = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")


class Interview(Base):
    __tablename__ = "interviews"

    interviewId = Column(String, primary_key=True)
    candidateId = Column(String, ForeignKey("candidates.candidateId", ondelete="CASCADE"), nullable=False, index=True)
    interviewerId = Column(String, nullable=False, default="", index=True)
    scheduledDate = Column(Text, nullable=False, default="", index=True)
    duration = Column(Integer, nullable=False, default=60)  # minutes
    type = Column(String, nullable=False, default="Technical")
    status = Column(String, nullable=False, default="Scheduled", index=True)
    round = Column(Integer, nullable=False, default=1)
    meetingLink = Column(Text, nullable=False, default="")
    location = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class InterviewFeedback(Base):
    __tablename__ = "interview_feedback"
    __table_args__ = (UniqueConstraint("interviewId", name="uq_interview_feedback_interview"),)

    feedbackId = Column(String, primary_key=True)
    interviewId = Column(String, ForeignKey("interviews.interviewId", ondelete="CASCADE"), nullable=False, index=True)
    interviewerId = Column(String, nullable=False, default="")
    ratingsJson = Column(Text, nullable=False, default="{}")
    overallRating = Column(Float, nullable=False, default=0.0)
    recommendation = Column(String, nullable=False, default="")
    comments = Column(Text, nullable=False, default="")
    strengths = Column(Text, nullable=False, default="")
    weaknesses = Column(Text, nullable=False, default="")
    additionalNotes = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")


class Assignment(Base):
    __tablename__ = "assignments"

    assignmentId = Column(String, primary_key=True)
    candidateId = Column(String, ForeignKey("candidates.candidateId", ondelete="CASCADE"), nullable=False, index=True)
    jobId = Column(String, ForeignKey("job_postings.jobId", ondelete="SET NULL"), nullable=True, index=True)
    assignedBy = Column(String, nullable=False, default="")
    title = Column(Text, nullable=False, default="")
    descriptionHtml = Column(Text, nullable=False, default="")
    dueDate = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, default="Draft", index=True)
    sentAt = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class AssignmentFile(Base):
    __tablename__ = "assignment_files"

    fileId = Column(String, primary_key=True)
    assignmentId = Column(String, ForeignKey("assignments.assignmentId", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String, nullable=False, default="")
    originalName = Column(Text, nullable=False, default="")
    mimeType = Column(String, nullable=False, default="")
    size = Column(Integer, nullable=False, default=0)
    uploadedBy = Column(String, nullable=False, default="")
    uploadedAt = Column(Text, nullable=False, default="")


class Task(Base):
    __tablename__ = "tasks"

    taskId = Column(String, primary_key=True)
    title = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    assignedTo = Column(String, nullable=False, default="", index=True)
    createdBy = Column(String, nullable=False, default="", index=True)
    priority = Column(String, nullable=False, default="Medium")
    status = Column(String, nullable=False, default="Pending", index=True)
    dueDate = Column(Text, nullable=False, default="")
    candidateId = Column(String, nullable=False, default="")
    jobId = Column(String, nullable=False, default="")
    completedAt = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class Communication(Base):
    __tablename__ = "communications"

    communicationId = Column(String, primary_key=True)
    candidateId = Column(String, ForeignKey("candidates.candidateId", ondelete="CASCADE"), nullable=False, index=True)
    assignmentId = Column(String, nullable=False, default="", index=True)
    type = Column(String, nullable=False, default="Email")  # Email|Phone|WhatsApp|LinkedIn
    status = Column(String, nullable=False, default="Sent")
    subject = Column(Text, nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    date = Column(Text, nullable=False, default="", index=True)
    createdBy = Column(String, nullable=False, default="", index=True)
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")


class EmailTemplate(Base):
    __tablename__ = "email_templates"

    templateId = Column(String, primary_key=True)
    name = Column(Text, nullable=False, default="")
    subject = Column(Text, nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    category = Column(String, nullable=False, default="Custom", index=True)
    variablesJson = Column(Text, nullable=False, default="[]")
    isActive = Column(Boolean, nullable=False, default=True)
    createdBy = Column(String, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class AuditLog(Base):
    __tablename__ = "audit_log"

    logId = Column(String, primary_key=True)
    entityType = Column(String, nullable=False, default="", index=True)
    entityId = Column(String, nullable=False, default="", index=True)
    action = Column(String, nullable=False, default="", index=True)
    fromState = Column(String, nullable=False, default="")
    toState = Column(String, nullable=False, default="")
    remark = Column(Text, nullable=False, default="")
    actorUserId = Column(String, nullable=False, default="", index=True)
    actorRole = Column(String, nullable=False, default="")
    at = Column(Text, nullable=False, default="", index=True)
    correlationId = Column(String, nullable=False, default="")
    metaJson = Column(Text, nullable=False, default="")


class SystemSetting(Base):
    __tablename__ = "system_settings"

    settingKey = Column(String, primary_key=True)
    valueJson = Column(Text, nullable=False, default="null")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")
