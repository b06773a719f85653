"""
Pydantic schemas — candidates, screening results, notifications, mailbox config.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CandidateStatus(str, Enum):
    APPLIED = "applied"
    SCREENING = "screening"
    INTERVIEW = "interview"
    OFFERED = "offered"
    HIRED = "hired"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class UserRole(str, Enum):
    ADMIN = "admin"
    HR = "hr"
    EMPLOYEE = "employee"
    CANDIDATE = "candidate"


class ProcessingOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


# ── Domain models ─────────────────────────────────────────────────────────────

class ResumeAnalysis(BaseModel):
    skills: list[str] = Field(default_factory=list)
    experience: str = ""
    education: str = ""
    ai_score: int = Field(default=0, ge=0, le=100)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendation: str = ""
    summary: str = ""


class CandidateInfo(BaseModel):
    """Best-effort identity guessed from an application email and resume."""
    first_name: str = "Unknown"
    last_name: str = "Unknown"
    email: str = ""
    phone: str = ""
    position: str = "Unknown Position"


class CandidatePayload(BaseModel):
    """One item of the candidate upsert batch."""
    first_name: str
    last_name: str
    email: str
    phone: str = ""
    position: str
    resume_url: str = ""
    ai_score: Optional[int] = Field(default=None, ge=0, le=100)
    skills: Optional[list[str]] = None
    experience: Optional[str] = None
    education: Optional[str] = None
    strengths: Optional[list[str]] = None
    weaknesses: Optional[list[str]] = None
    recommendation: Optional[str] = None
    summary: Optional[str] = None


class CandidateCreate(BaseModel):
    """Manual application submitted through the application form."""
    first_name: str
    last_name: str
    email: str
    phone: str = ""
    position: str
    resume_url: Optional[str] = None
    cover_letter: Optional[str] = None
    experience: Optional[str] = None
    education: Optional[str] = None
    skills: Optional[list[str]] = None


class Candidate(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str
    phone: str = ""
    position: str
    resume_url: Optional[str] = None
    cover_letter: Optional[str] = None
    status: CandidateStatus = CandidateStatus.APPLIED
    applied_at: datetime = Field(default_factory=utcnow)
    ai_score: Optional[int] = Field(default=None, ge=0, le=100)
    skills: list[str] = Field(default_factory=list)
    experience: Optional[str] = None
    education: Optional[str] = None
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendation: Optional[str] = None
    summary: Optional[str] = None


class User(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool = True


class Notification(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class NotificationCreate(BaseModel):
    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.INFO


class ProcessedEmail(BaseModel):
    message_id: str
    subject: str = ""
    sender: str = ""
    processed_at: datetime = Field(default_factory=utcnow)
    attachments_processed: int = 0
    candidates_created: int = 0
    status: ProcessingOutcome
    error: Optional[str] = None


class EmailConfig(BaseModel):
    user: str = ""
    password: str = ""
    host: str = ""
    port: int = 993
    tls: bool = True
    enabled: bool = False
    monitoring_interval: int = Field(default=5, ge=1, description="Minutes between polls")
    last_checked: Optional[datetime] = None


# ── Result models ─────────────────────────────────────────────────────────────

class UpsertResult(BaseModel):
    id: str
    action: str                                  # "created" | "updated"


class BatchItemError(BaseModel):
    email: str
    error: str


class CandidateBatchRequest(BaseModel):
    candidates: list[CandidatePayload]


class CandidateBatchResult(BaseModel):
    success: bool = True
    processed: int = 0
    failed: int = 0
    results: list[UpsertResult] = Field(default_factory=list)
    errors: list[BatchItemError] = Field(default_factory=list)


class UploadResult(BaseModel):
    success: bool
    url: Optional[str] = None
    public_id: Optional[str] = None
    error: Optional[str] = None


class AttachmentFailure(BaseModel):
    message_id: str
    subject: str = ""
    filename: str
    error: str


class CycleReport(BaseModel):
    """Outcome of one monitoring cycle."""
    status: str = "ok"                           # ok | skipped | disabled | error
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    fetched_messages: int = 0
    skipped_messages: int = 0
    attachments_total: int = 0
    succeeded: int = 0
    failed: int = 0
    candidates_created: int = 0
    candidates_updated: int = 0
    failures: list[AttachmentFailure] = Field(default_factory=list)
    error: Optional[str] = None


class MonitorStatus(BaseModel):
    state: str
    running: bool = False
    cycles_run: int = 0
    last_report: Optional[CycleReport] = None


# ── Request / response models ─────────────────────────────────────────────────

class StatusUpdateRequest(BaseModel):
    status: CandidateStatus


class ReanalysisRequest(BaseModel):
    resume_text: str = Field(min_length=1)
    job_description: Optional[str] = None


class ResumeAnalysisResponse(BaseModel):
    filename: str
    content_type: str
    text_length: int
    candidate_info: CandidateInfo
    analysis: ResumeAnalysis


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    role: Optional[UserRole] = None
    context: Optional[str] = None


class ChatResponse(BaseModel):
    role: UserRole
    reply: str


class ProcessingStats(BaseModel):
    total_candidates: int
    screening_candidates: int
    applied_candidates: int
    recent_processing: int
    last_processing_time: Optional[datetime] = None
