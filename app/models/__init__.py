from .schemas import (
    Candidate, CandidatePayload, CandidateStatus, CandidateInfo,
    ResumeAnalysis, Notification, NotificationType, User, UserRole,
    EmailConfig, ProcessedEmail, ProcessingOutcome, CycleReport, MonitorStatus,
)

__all__ = [
    "Candidate", "CandidatePayload", "CandidateStatus", "CandidateInfo",
    "ResumeAnalysis", "Notification", "NotificationType", "User", "UserRole",
    "EmailConfig", "ProcessedEmail", "ProcessingOutcome", "CycleReport", "MonitorStatus",
]
