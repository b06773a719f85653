"""
FastAPI routes for HR360 resume screening.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from elasticsearch import AsyncElasticsearch

from app.core.ai_analyzer import ResumeAnalyzer
from app.core.assistant import HRAssistant
from app.core.config import get_settings
from app.core.email_monitor import EmailMonitor
from app.core import storage
from app.core.storage import (
    CandidateNotFoundError, DuplicateCandidateError, NotificationNotFoundError,
    TRIGGER_NOTIFICATION_TITLE,
)
from app.models.schemas import (
    Candidate, CandidateBatchRequest, CandidateBatchResult, CandidateCreate,
    CandidateStatus, ChatRequest, ChatResponse, CycleReport, EmailConfig,
    MonitorStatus, Notification, NotificationCreate, ProcessedEmail,
    ProcessingStats, ReanalysisRequest, ResumeAnalysisResponse, StatusUpdateRequest,
)
from app.utils.candidate_extractor import extract_candidate_info
from app.utils.resume_parser import (
    TextExtractionError, UnsupportedFileTypeError, extract_text, resolve_content_type,
)

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter()

PASSWORD_MASK = "********"


def get_es(request: Request) -> AsyncElasticsearch:
    return request.app.state.es


def get_monitor(request: Request) -> EmailMonitor:
    return request.app.state.monitor


def get_analyzer() -> ResumeAnalyzer:
    return ResumeAnalyzer()


def get_assistant() -> HRAssistant:
    return HRAssistant()


# ── Candidates ────────────────────────────────────────────────────────────────

@router.post("/candidates/batch", response_model=CandidateBatchResult, tags=["Candidates"])
async def upsert_candidates(body: CandidateBatchRequest, es: AsyncElasticsearch = Depends(get_es)):
    """
    Upsert candidates by email. Each item succeeds or fails on its own;
    HR gets one summary notification for the whole batch.
    """
    return await storage.process_candidate_batch(es, body.candidates)


@router.post("/candidates", response_model=Candidate, status_code=201, tags=["Candidates"])
async def create_candidate(data: CandidateCreate, es: AsyncElasticsearch = Depends(get_es)):
    """Manual application. A second application with the same email is rejected."""
    try:
        return await storage.create_candidate(es, data)
    except DuplicateCandidateError as e:
        raise HTTPException(409, str(e))


@router.get("/candidates", response_model=list[Candidate], tags=["Candidates"])
async def get_candidates(
    search: str = Query("", description="Matches name, email or position"),
    position: Optional[str] = Query(None),
    status: Optional[CandidateStatus] = Query(None),
    es: AsyncElasticsearch = Depends(get_es),
):
    return await storage.search_candidates(es, search, position=position, status=status)


@router.get("/candidates/{candidate_id}", response_model=Candidate, tags=["Candidates"])
async def get_candidate(candidate_id: str, es: AsyncElasticsearch = Depends(get_es)):
    candidate = await storage.get_candidate(es, candidate_id)
    if candidate is None:
        raise HTTPException(404, "Candidate not found")
    return candidate


@router.patch("/candidates/{candidate_id}/status", response_model=Candidate, tags=["Candidates"])
async def update_status(
    candidate_id: str,
    body: StatusUpdateRequest,
    es: AsyncElasticsearch = Depends(get_es),
):
    try:
        return await storage.update_candidate_status(es, candidate_id, body.status)
    except CandidateNotFoundError:
        raise HTTPException(404, "Candidate not found")


@router.post("/candidates/{candidate_id}/analysis", response_model=Candidate, tags=["Candidates"])
async def reanalyze_candidate(
    candidate_id: str,
    body: ReanalysisRequest,
    es: AsyncElasticsearch = Depends(get_es),
    analyzer: ResumeAnalyzer = Depends(get_analyzer),
):
    """Re-run the resume analysis for a candidate, optionally against a job description."""
    if await storage.get_candidate(es, candidate_id) is None:
        raise HTTPException(404, "Candidate not found")
    analysis = await analyzer.analyze(body.resume_text, body.job_description)
    try:
        return await storage.update_candidate_analysis(es, candidate_id, analysis)
    except CandidateNotFoundError:
        raise HTTPException(404, "Candidate not found")


# ── Resume screening ──────────────────────────────────────────────────────────

@router.post("/resumes/analyze", response_model=ResumeAnalysisResponse, tags=["Screening"])
async def analyze_resume(
    file: UploadFile = File(...),
    job_description: Optional[str] = Form(None),
    analyzer: ResumeAnalyzer = Depends(get_analyzer),
):
    """
    Screen a single resume (PDF / DOC / DOCX) without storing anything.
    """
    content = await file.read()
    content_type = resolve_content_type(file.filename or "", file.content_type)
    try:
        text = await run_in_threadpool(extract_text, content, content_type, file.filename or "")
    except UnsupportedFileTypeError as e:
        raise HTTPException(415, str(e))
    except TextExtractionError as e:
        raise HTTPException(422, str(e))

    return ResumeAnalysisResponse(
        filename=file.filename or "",
        content_type=content_type,
        text_length=len(text),
        candidate_info=extract_candidate_info("", "", "", text),
        analysis=await analyzer.analyze(text, job_description or None),
    )


# ── Email processing ──────────────────────────────────────────────────────────

@router.post("/emails/trigger", response_model=CycleReport, tags=["Email"])
async def trigger_email_processing(
    es: AsyncElasticsearch = Depends(get_es),
    monitor: EmailMonitor = Depends(get_monitor),
):
    """
    Run one mailbox cycle now. Returns status "skipped" when a cycle is
    already in progress.
    """
    report = await monitor.run_cycle()
    if report.status != "skipped":
        await storage.notify_hr(
            es,
            TRIGGER_NOTIFICATION_TITLE,
            f"Manual email check finished with status '{report.status}': "
            f"{report.succeeded} CV(s) processed, {report.failed} failed.",
        )
    return report


@router.get("/emails/monitor/status", response_model=MonitorStatus, tags=["Email"])
async def monitor_status(monitor: EmailMonitor = Depends(get_monitor)):
    return monitor.status()


@router.get("/emails/config", response_model=EmailConfig, tags=["Email"])
async def get_email_config(es: AsyncElasticsearch = Depends(get_es)):
    config = await storage.load_email_config(es)
    if config.password:
        config.password = PASSWORD_MASK
    return config


@router.put("/emails/config", response_model=EmailConfig, tags=["Email"])
async def put_email_config(
    config: EmailConfig,
    es: AsyncElasticsearch = Depends(get_es),
    monitor: EmailMonitor = Depends(get_monitor),
):
    """Store the mailbox configuration. Sending back the masked password keeps the stored one."""
    if config.password == PASSWORD_MASK:
        config.password = (await storage.load_email_config(es)).password
    saved = await storage.save_email_config(es, config)
    monitor.wake()
    return saved.model_copy(update={"password": PASSWORD_MASK if saved.password else ""})


@router.get("/emails/processed", response_model=list[ProcessedEmail], tags=["Email"])
async def processed_emails(
    limit: int = Query(50, ge=1, le=500),
    es: AsyncElasticsearch = Depends(get_es),
):
    return await storage.list_processed_emails(es, size=limit)


@router.get("/emails/processing/stats", response_model=ProcessingStats, tags=["Email"])
async def processing_stats(es: AsyncElasticsearch = Depends(get_es)):
    return await storage.get_processing_stats(es)


# ── Notifications ─────────────────────────────────────────────────────────────

@router.get("/notifications/{user_id}", response_model=list[Notification], tags=["Notifications"])
async def get_notifications(
    user_id: str,
    unread_only: bool = Query(False),
    es: AsyncElasticsearch = Depends(get_es),
):
    return await storage.list_notifications(es, user_id, unread_only=unread_only)


@router.post("/notifications", response_model=Notification, status_code=201, tags=["Notifications"])
async def create_notification(data: NotificationCreate, es: AsyncElasticsearch = Depends(get_es)):
    return await storage.create_notification(es, data)


@router.patch("/notifications/{notification_id}/read", response_model=Notification, tags=["Notifications"])
async def mark_read(notification_id: str, es: AsyncElasticsearch = Depends(get_es)):
    try:
        return await storage.mark_notification_read(es, notification_id)
    except NotificationNotFoundError:
        raise HTTPException(404, "Notification not found")


# ── Assistant ─────────────────────────────────────────────────────────────────

@router.post("/assistant/chat", response_model=ChatResponse, tags=["Assistant"])
async def chat(body: ChatRequest, assistant: HRAssistant = Depends(get_assistant)):
    role, reply = await assistant.reply(body.message, role=body.role, context=body.context)
    return ChatResponse(role=role, reply=reply)


# ── Health ────────────────────────────────────────────────────────────────────

@router.get("/health", tags=["System"])
async def health(
    es: AsyncElasticsearch = Depends(get_es),
    monitor: EmailMonitor = Depends(get_monitor),
):
    try:
        info = await es.info()
        es_ok = True
        es_version = info["version"]["number"]
    except Exception as e:
        es_ok = False
        es_version = str(e)

    return {
        "status": "ok" if es_ok else "degraded",
        "elasticsearch": es_ok,
        "es_version": es_version,
        "version": "1.0.0",
        "ai_mode": "openai" if settings.OPENAI_API_KEY else "keyword-fallback",
        "email_monitor": monitor.status().model_dump(mode="json"),
    }
