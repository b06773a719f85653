"""
Storage layer — all persistence goes through Elasticsearch.

Stores:
  - Candidates, upserted by email from the resume pipeline
  - Notifications for HR staff
  - ProcessedEmail audit records (one per inbound message)
  - The active mailbox configuration
Reads:
  - Users, to find HR recipients for notifications
"""
import logging
import uuid
from datetime import datetime
from typing import Iterable, Optional

from elasticsearch import AsyncElasticsearch, NotFoundError

from app.core.config import get_settings
from app.models.schemas import (
    BatchItemError, Candidate, CandidateBatchResult, CandidateCreate,
    CandidatePayload, CandidateStatus, EmailConfig, Notification,
    NotificationCreate, NotificationType, ProcessedEmail, ProcessingStats,
    ResumeAnalysis, UpsertResult, User, UserRole, utcnow,
)

logger = logging.getLogger(__name__)
settings = get_settings()

BATCH_NOTIFICATION_TITLE = "Automatic CV Processing Complete"
CYCLE_NOTIFICATION_TITLE = "Automatic CV Processing Report"
TRIGGER_NOTIFICATION_TITLE = "Email Processing Triggered"

ACTIVE_EMAIL_CONFIG_ID = "active"


class DuplicateCandidateError(RuntimeError):
    """Raised when a manual application reuses an existing candidate email."""


class CandidateNotFoundError(LookupError):
    pass


class NotificationNotFoundError(LookupError):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


def _sources(r: dict) -> list[dict]:
    return [h["_source"] for h in r["hits"]["hits"]]


# ── Candidate storage ─────────────────────────────────────────────────────────

async def save_candidate(es: AsyncElasticsearch, candidate: Candidate) -> None:
    # wait_for so the next email lookup sees this write
    await es.index(
        index=settings.ES_INDEX_CANDIDATES,
        id=candidate.id,
        document=candidate.model_dump(mode="json"),
        refresh="wait_for",
    )


async def find_candidate_by_email(es: AsyncElasticsearch, email: str) -> Optional[Candidate]:
    r = await es.search(
        index=settings.ES_INDEX_CANDIDATES,
        body={"query": {"term": {"email": email}}, "size": 1},
    )
    hits = _sources(r)
    return Candidate(**hits[0]) if hits else None


async def get_candidate(es: AsyncElasticsearch, candidate_id: str) -> Optional[Candidate]:
    try:
        r = await es.get(index=settings.ES_INDEX_CANDIDATES, id=candidate_id)
        return Candidate(**r["_source"])
    except NotFoundError:
        return None


async def list_candidates(
    es: AsyncElasticsearch,
    status: Optional[CandidateStatus] = None,
    position: Optional[str] = None,
    size: int = 1000,
) -> list[Candidate]:
    filters = []
    if status:
        filters.append({"term": {"status": CandidateStatus(status).value}})
    if position:
        filters.append({"term": {"position": position}})
    query = {"bool": {"filter": filters}} if filters else {"match_all": {}}

    r = await es.search(
        index=settings.ES_INDEX_CANDIDATES,
        body={"query": query, "size": size, "sort": [{"applied_at": {"order": "desc"}}]},
    )
    return [Candidate(**src) for src in _sources(r)]


async def search_candidates(
    es: AsyncElasticsearch,
    term: str = "",
    position: Optional[str] = None,
    status: Optional[CandidateStatus] = None,
) -> list[Candidate]:
    """Case-insensitive substring search over name, email and position."""
    candidates = await list_candidates(es, status=status, position=position)
    needle = (term or "").strip().lower()
    if not needle:
        return candidates
    return [
        c for c in candidates
        if any(needle in (value or "").lower() for value in (c.first_name, c.last_name, c.email, c.position))
    ]


async def create_candidate(es: AsyncElasticsearch, data: CandidateCreate) -> Candidate:
    """Manual application: new candidate in status 'applied'."""
    if await find_candidate_by_email(es, data.email):
        raise DuplicateCandidateError(f"A candidate with email {data.email} already exists")

    candidate = Candidate(
        id=_new_id(),
        status=CandidateStatus.APPLIED,
        applied_at=utcnow(),
        **data.model_dump(exclude_none=True),
    )
    await save_candidate(es, candidate)
    logger.info("Created candidate %s <%s>", candidate.id, candidate.email)
    return candidate


async def upsert_candidate_by_email(es: AsyncElasticsearch, payload: CandidatePayload) -> UpsertResult:
    """
    Pipeline upsert keyed on email.

    An existing record (including a manual application) gets every provided
    field overwritten; status is forced back to 'screening' and applied_at
    is reset in both branches.
    """
    fields = payload.model_dump(exclude_none=True)
    now = utcnow()
    existing = await find_candidate_by_email(es, payload.email)

    if existing:
        doc = existing.model_dump()
        doc.update(fields)
        doc.update(status=CandidateStatus.SCREENING, applied_at=now)
        candidate = Candidate(**doc)
        await save_candidate(es, candidate)
        return UpsertResult(id=candidate.id, action="updated")

    candidate = Candidate(
        id=_new_id(),
        status=CandidateStatus.SCREENING,
        applied_at=now,
        **fields,
    )
    await save_candidate(es, candidate)
    return UpsertResult(id=candidate.id, action="created")


async def process_candidate_batch(
    es: AsyncElasticsearch,
    payloads: Iterable[CandidatePayload],
) -> CandidateBatchResult:
    """
    Upsert every payload independently.

    A failing item is recorded under its email and never aborts its siblings.
    Afterwards one summary notification goes to the first HR user, if any.
    """
    result = CandidateBatchResult()

    for payload in payloads:
        try:
            result.results.append(await upsert_candidate_by_email(es, payload))
        except Exception as exc:
            logger.warning("Candidate upsert failed for %s: %s", payload.email, exc)
            result.errors.append(BatchItemError(email=payload.email, error=str(exc)))

    result.processed = len(result.results)
    result.failed = len(result.errors)

    if result.failed and not result.processed:
        kind = NotificationType.ERROR
    elif result.failed:
        kind = NotificationType.WARNING
    else:
        kind = NotificationType.SUCCESS

    message = f"Successfully processed {result.processed} CVs."
    if result.failed:
        message += f" {result.failed} failed."
    await notify_hr(es, BATCH_NOTIFICATION_TITLE, message, kind)

    logger.info("Candidate batch done: %d processed, %d failed", result.processed, result.failed)
    return result


async def update_candidate_status(
    es: AsyncElasticsearch,
    candidate_id: str,
    status: CandidateStatus,
) -> Candidate:
    candidate = await get_candidate(es, candidate_id)
    if candidate is None:
        raise CandidateNotFoundError(candidate_id)
    candidate.status = CandidateStatus(status)
    await save_candidate(es, candidate)
    return candidate


async def update_candidate_analysis(
    es: AsyncElasticsearch,
    candidate_id: str,
    analysis: ResumeAnalysis,
) -> Candidate:
    """Store a fresh AI analysis; the candidate goes back to screening."""
    candidate = await get_candidate(es, candidate_id)
    if candidate is None:
        raise CandidateNotFoundError(candidate_id)
    doc = candidate.model_dump()
    doc.update(analysis.model_dump())
    doc["status"] = CandidateStatus.SCREENING
    updated = Candidate(**doc)
    await save_candidate(es, updated)
    return updated


# ── Users ─────────────────────────────────────────────────────────────────────

async def get_hr_users(es: AsyncElasticsearch) -> list[User]:
    try:
        r = await es.search(
            index=settings.ES_INDEX_USERS,
            body={
                "query": {"term": {"role": UserRole.HR.value}},
                "size": 100,
                "sort": [{"id": {"order": "asc"}}],
            },
        )
    except NotFoundError:
        return []
    return [User(**src) for src in _sources(r)]


async def save_user(es: AsyncElasticsearch, user: User) -> None:
    await es.index(
        index=settings.ES_INDEX_USERS,
        id=user.id,
        document=user.model_dump(mode="json"),
        refresh="wait_for",
    )


# ── Notifications ─────────────────────────────────────────────────────────────

async def create_notification(es: AsyncElasticsearch, data: NotificationCreate) -> Notification:
    notification = Notification(id=_new_id(), **data.model_dump())
    await es.index(
        index=settings.ES_INDEX_NOTIFICATIONS,
        id=notification.id,
        document=notification.model_dump(mode="json"),
        refresh="wait_for",
    )
    return notification


async def notify_hr(
    es: AsyncElasticsearch,
    title: str,
    message: str,
    kind: NotificationType = NotificationType.INFO,
) -> Optional[Notification]:
    """Best effort: notify the first HR user. Failures are logged, not raised."""
    try:
        hr_users = await get_hr_users(es)
        if not hr_users:
            logger.info("No HR user to notify about '%s'", title)
            return None
        return await create_notification(
            es,
            NotificationCreate(user_id=hr_users[0].id, title=title, message=message, type=kind),
        )
    except Exception:
        logger.exception("Failed to create HR notification '%s'", title)
        return None


async def list_notifications(
    es: AsyncElasticsearch,
    user_id: str,
    unread_only: bool = False,
    size: int = 100,
) -> list[Notification]:
    filters = [{"term": {"user_id": user_id}}]
    if unread_only:
        filters.append({"term": {"is_read": False}})
    r = await es.search(
        index=settings.ES_INDEX_NOTIFICATIONS,
        body={
            "query": {"bool": {"filter": filters}},
            "size": size,
            "sort": [{"created_at": {"order": "desc"}}],
        },
    )
    return [Notification(**src) for src in _sources(r)]


async def mark_notification_read(es: AsyncElasticsearch, notification_id: str) -> Notification:
    try:
        r = await es.get(index=settings.ES_INDEX_NOTIFICATIONS, id=notification_id)
    except NotFoundError:
        raise NotificationNotFoundError(notification_id)
    await es.update(
        index=settings.ES_INDEX_NOTIFICATIONS,
        id=notification_id,
        doc={"is_read": True},
        refresh="wait_for",
    )
    return Notification(**{**r["_source"], "is_read": True})


# ── Processed email audit ─────────────────────────────────────────────────────

async def record_processed_email(es: AsyncElasticsearch, record: ProcessedEmail) -> None:
    await es.index(
        index=settings.ES_INDEX_PROCESSED_EMAILS,
        id=record.message_id,
        document=record.model_dump(mode="json"),
    )


async def get_processed_email(es: AsyncElasticsearch, message_id: str) -> Optional[ProcessedEmail]:
    try:
        r = await es.get(index=settings.ES_INDEX_PROCESSED_EMAILS, id=message_id)
        return ProcessedEmail(**r["_source"])
    except NotFoundError:
        return None


async def list_processed_emails(es: AsyncElasticsearch, size: int = 50) -> list[ProcessedEmail]:
    r = await es.search(
        index=settings.ES_INDEX_PROCESSED_EMAILS,
        body={
            "query": {"match_all": {}},
            "size": size,
            "sort": [{"processed_at": {"order": "desc"}}],
        },
    )
    return [ProcessedEmail(**src) for src in _sources(r)]


# ── Mailbox configuration ─────────────────────────────────────────────────────

def default_email_config() -> EmailConfig:
    return EmailConfig(
        user=settings.IMAP_USER,
        password=settings.IMAP_PASSWORD,
        host=settings.IMAP_HOST,
        port=settings.IMAP_PORT,
        tls=settings.IMAP_USE_SSL,
        enabled=settings.EMAIL_MONITOR_ENABLED,
        monitoring_interval=settings.EMAIL_MONITOR_INTERVAL_MINUTES,
    )


async def load_email_config(es: AsyncElasticsearch) -> EmailConfig:
    """Stored config if one was saved, otherwise the environment settings."""
    try:
        r = await es.get(index=settings.ES_INDEX_EMAIL_CONFIG, id=ACTIVE_EMAIL_CONFIG_ID)
        return EmailConfig(**r["_source"])
    except NotFoundError:
        return default_email_config()


async def save_email_config(es: AsyncElasticsearch, config: EmailConfig) -> EmailConfig:
    await es.index(
        index=settings.ES_INDEX_EMAIL_CONFIG,
        id=ACTIVE_EMAIL_CONFIG_ID,
        document=config.model_dump(mode="json"),
        refresh="wait_for",
    )
    logger.info("Email config updated: %s@%s:%d", config.user, config.host, config.port)
    return config


async def mark_email_config_checked(es: AsyncElasticsearch, when: datetime) -> None:
    """Stamp last_checked on the stored config; env-only configs are left alone."""
    try:
        await es.update(
            index=settings.ES_INDEX_EMAIL_CONFIG,
            id=ACTIVE_EMAIL_CONFIG_ID,
            doc={"last_checked": when.isoformat()},
        )
    except NotFoundError:
        pass


# ── Statistics ────────────────────────────────────────────────────────────────

async def _count_candidates(es: AsyncElasticsearch, status: Optional[CandidateStatus] = None) -> int:
    query = {"term": {"status": status.value}} if status else {"match_all": {}}
    r = await es.count(index=settings.ES_INDEX_CANDIDATES, body={"query": query})
    return r["count"]


async def get_processing_stats(es: AsyncElasticsearch) -> ProcessingStats:
    r = await es.search(
        index=settings.ES_INDEX_NOTIFICATIONS,
        body={
            "query": {"terms": {"title": [
                BATCH_NOTIFICATION_TITLE,
                CYCLE_NOTIFICATION_TITLE,
                TRIGGER_NOTIFICATION_TITLE,
            ]}},
            "size": 5,
            "sort": [{"created_at": {"order": "desc"}}],
        },
    )
    recent = [Notification(**src) for src in _sources(r)]
    return ProcessingStats(
        total_candidates=await _count_candidates(es),
        screening_candidates=await _count_candidates(es, CandidateStatus.SCREENING),
        applied_candidates=await _count_candidates(es, CandidateStatus.APPLIED),
        recent_processing=len(recent),
        last_processing_time=recent[0].created_at if recent else None,
    )
