"""
Background email monitor: polls the HR mailbox and turns CV attachments into
screened candidates.

Architecture:
  • Runs as a single asyncio.Task started from the FastAPI lifespan; manual
    triggers call run_cycle() on the same instance.
  • An explicit MonitorState token guards the cycle. The check-and-set has no
    await in between, so on one event loop two cycles can never overlap; a
    trigger that arrives mid-cycle gets a "skipped" report and does nothing.
  • Blocking work (IMAP, document parsing) goes through run_in_threadpool.
  • Messages and attachments are handled strictly one after another.

Per attachment:  parse → extract identity → analyze → upload → upsert.
Any attachment failure is recorded and the loop moves on. Each message gets
one ProcessedEmail record; messages already recorded as "success" are skipped
on later cycles (IMAP_SKIP_PROCESSED), so leaving them unseen is harmless.
"""
import asyncio
import html
import logging
from enum import Enum
from typing import Callable, Optional

from elasticsearch import AsyncElasticsearch
from fastapi.concurrency import run_in_threadpool

from app.core.ai_analyzer import ResumeAnalyzer
from app.core.cloud_storage import CloudStorageUploader
from app.core.config import get_settings
from app.core.email_inbox import (
    EmailAttachment, EmailInboxError, ImapInbox, InboundEmail, sender_address,
)
from app.core.mailer import SendGridMailer
from app.core.storage import (
    CYCLE_NOTIFICATION_TITLE, get_processed_email, load_email_config,
    mark_email_config_checked, notify_hr, record_processed_email,
    upsert_candidate_by_email,
)
from app.models.schemas import (
    AttachmentFailure, CandidatePayload, CycleReport, EmailConfig, MonitorStatus,
    NotificationType, ProcessedEmail, ProcessingOutcome, UpsertResult, utcnow,
)
from app.utils.candidate_extractor import UNKNOWN_POSITION, extract_candidate_info
from app.utils.resume_parser import TextExtractionError, extract_text, resolve_content_type

logger = logging.getLogger(__name__)
settings = get_settings()


class MonitorState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    FETCHING = "fetching"
    PROCESSING = "processing"


class UploadError(RuntimeError):
    """Raised when a resume file could not be stored."""


class MissingEmailError(ValueError):
    """Raised when no address can be found to key the candidate on."""


class EmailMonitor:

    def __init__(
        self,
        es: AsyncElasticsearch,
        inbox_factory: Optional[Callable[[EmailConfig], ImapInbox]] = None,
        analyzer: Optional[ResumeAnalyzer] = None,
        uploader: Optional[CloudStorageUploader] = None,
        mailer: Optional[SendGridMailer] = None,
    ) -> None:
        self.es = es
        self.inbox_factory = inbox_factory or ImapInbox
        self.analyzer = analyzer or ResumeAnalyzer()
        self.uploader = uploader or CloudStorageUploader()
        self.mailer = mailer or SendGridMailer()

        self.state = MonitorState.IDLE
        self.cycles_run = 0
        self.last_report: Optional[CycleReport] = None
        self._task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever(), name="email-monitor")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def wake(self) -> None:
        """End the current wait so a changed config is picked up now."""
        self._wake.set()

    def status(self) -> MonitorStatus:
        return MonitorStatus(
            state=self.state.value,
            running=self._task is not None and not self._task.done(),
            cycles_run=self.cycles_run,
            last_report=self.last_report,
        )

    async def run_forever(self, startup_delay: Optional[float] = None) -> None:
        """Initial cycle, then one tick per configured interval until cancelled."""
        delay = settings.EMAIL_MONITOR_STARTUP_DELAY_SECONDS if startup_delay is None else startup_delay
        logger.info("Email monitor started (first cycle in %ss)", delay)

        try:
            await asyncio.sleep(delay)
            interval = await self._tick()
            while True:
                await self._wait(interval * 60)
                interval = await self._tick()
        except asyncio.CancelledError:
            logger.info("Email monitor: cancelled, shutting down.")

    async def _wait(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()

    async def _tick(self) -> int:
        """Run one scheduled cycle if enabled; returns the interval in minutes."""
        try:
            config = await load_email_config(self.es)
        except Exception:
            logger.exception("Email monitor: could not load mailbox config")
            return settings.EMAIL_MONITOR_INTERVAL_MINUTES

        if not config.enabled:
            logger.debug("Email monitor: disabled in config, tick skipped")
            return config.monitoring_interval

        try:
            await self.run_cycle(config)
        except Exception:
            logger.exception("Email monitor: unhandled error in cycle")
        return config.monitoring_interval

    # ── Cycle ─────────────────────────────────────────────────────────────────

    async def run_cycle(self, config: Optional[EmailConfig] = None) -> CycleReport:
        if self.state != MonitorState.IDLE:
            logger.info("Email monitor: cycle already %s, trigger skipped", self.state.value)
            return CycleReport(status="skipped", finished_at=utcnow())

        self.state = MonitorState.CONNECTING
        report = CycleReport()
        try:
            await self._run(report, config)
        except EmailInboxError as exc:
            logger.error("Email monitor: mailbox unavailable: %s", exc)
            report.status = "error"
            report.error = str(exc)
        except Exception as exc:
            logger.exception("Email monitor: cycle failed")
            report.status = "error"
            report.error = str(exc) or type(exc).__name__
        finally:
            self.state = MonitorState.IDLE
            report.finished_at = utcnow()
            self.cycles_run += 1
            self.last_report = report

        logger.info(
            "Email monitor cycle %s: %d message(s), %d skipped, %d attachment(s), %d ok, %d failed",
            report.status, report.fetched_messages, report.skipped_messages,
            report.attachments_total, report.succeeded, report.failed,
        )
        return report

    async def _run(self, report: CycleReport, config: Optional[EmailConfig]) -> None:
        if config is None:
            config = await load_email_config(self.es)

        inbox = self.inbox_factory(config)
        await run_in_threadpool(inbox.connect)
        try:
            self.state = MonitorState.FETCHING
            messages = await run_in_threadpool(inbox.fetch_unseen)
        finally:
            await run_in_threadpool(inbox.disconnect)

        self.state = MonitorState.PROCESSING
        report.fetched_messages = len(messages)

        for message in messages:
            if settings.IMAP_SKIP_PROCESSED and await self._already_processed(message):
                report.skipped_messages += 1
                continue
            await self._process_message(message, report)

        try:
            await mark_email_config_checked(self.es, report.started_at)
        except Exception:
            logger.exception("Email monitor: could not stamp last_checked")

        if report.fetched_messages > report.skipped_messages:
            await self._send_summary(report)

    async def _already_processed(self, message: InboundEmail) -> bool:
        record = await get_processed_email(self.es, message.message_id)
        if record is not None and record.status == ProcessingOutcome.SUCCESS:
            logger.debug("Email monitor: %s already processed, skipped", message.message_id)
            return True
        return False

    async def _process_message(self, message: InboundEmail, report: CycleReport) -> None:
        succeeded = 0
        created = 0
        errors: list[str] = []

        for attachment in message.attachments:
            report.attachments_total += 1
            try:
                result = await self._process_attachment(message, attachment)
            except (TextExtractionError, UploadError, MissingEmailError) as exc:
                logger.warning("Email monitor: %s from %s failed: %s", attachment.filename, message.sender, exc)
                self._record_failure(report, message, attachment, exc)
                errors.append(f"{attachment.filename}: {exc}")
                continue
            except Exception as exc:
                logger.exception("Email monitor: unexpected error for %s", attachment.filename)
                self._record_failure(report, message, attachment, exc)
                errors.append(f"{attachment.filename}: {exc}")
                continue

            succeeded += 1
            report.succeeded += 1
            if result.action == "created":
                created += 1
                report.candidates_created += 1
            else:
                report.candidates_updated += 1

        if succeeded == len(message.attachments):
            outcome = ProcessingOutcome.SUCCESS
        elif succeeded:
            outcome = ProcessingOutcome.PARTIAL
        else:
            outcome = ProcessingOutcome.FAILED

        record = ProcessedEmail(
            message_id=message.message_id,
            subject=message.subject,
            sender=sender_address(message.sender) or message.sender,
            attachments_processed=len(message.attachments),
            candidates_created=created,
            status=outcome,
            error="; ".join(errors) or None,
        )
        try:
            await record_processed_email(self.es, record)
        except Exception:
            logger.exception("Email monitor: could not record %s", message.message_id)

    async def _process_attachment(self, message: InboundEmail, attachment: EmailAttachment) -> UpsertResult:
        content_type = resolve_content_type(attachment.filename, attachment.content_type)
        text = await run_in_threadpool(extract_text, attachment.content, content_type, attachment.filename)

        info = extract_candidate_info(
            sender_address(message.sender), message.subject, message.body, text,
        )
        if not info.email:
            raise MissingEmailError("No email address found in message or resume")

        job_description = info.position if info.position != UNKNOWN_POSITION else None
        analysis = await self.analyzer.analyze(text, job_description)

        upload = await self.uploader.upload(
            attachment.filename, attachment.content, content_type, folder=settings.CLOUDINARY_FOLDER,
        )
        if not upload.success:
            raise UploadError(upload.error or "Upload failed")

        payload = CandidatePayload(
            first_name=info.first_name,
            last_name=info.last_name,
            email=info.email,
            phone=info.phone,
            position=info.position,
            resume_url=upload.url or "",
            **analysis.model_dump(),
        )
        result = await upsert_candidate_by_email(self.es, payload)
        logger.info(
            "Email monitor: %s candidate %s <%s> (score %d) from '%s'",
            result.action, result.id, info.email, analysis.ai_score, attachment.filename,
        )
        return result

    @staticmethod
    def _record_failure(report: CycleReport, message: InboundEmail, attachment: EmailAttachment, exc: Exception) -> None:
        report.failed += 1
        report.failures.append(AttachmentFailure(
            message_id=message.message_id,
            subject=message.subject,
            filename=attachment.filename,
            error=str(exc) or type(exc).__name__,
        ))

    # ── Summary ───────────────────────────────────────────────────────────────

    async def _send_summary(self, report: CycleReport) -> None:
        if report.failed and not report.succeeded:
            kind = NotificationType.ERROR
        elif report.failed:
            kind = NotificationType.WARNING
        else:
            kind = NotificationType.SUCCESS

        message = (
            f"Processed {report.attachments_total} CV attachment(s) from "
            f"{report.fetched_messages - report.skipped_messages} email(s): "
            f"{report.succeeded} succeeded, {report.failed} failed."
        )
        await notify_hr(self.es, CYCLE_NOTIFICATION_TITLE, message, kind)

        sent = await self.mailer.send(
            settings.HR_NOTIFICATION_EMAIL,
            f"HR360 CV processing report: {report.succeeded}/{report.attachments_total} processed",
            render_summary_html(report),
        )
        if not sent:
            logger.info("Email monitor: summary email not sent")


def render_summary_html(report: CycleReport) -> str:
    rows = "".join(
        f"<li><b>{html.escape(f.filename)}</b> ({html.escape(f.subject or 'no subject')}): "
        f"{html.escape(f.error)}</li>"
        for f in report.failures
    )
    failures = f"<h3>Failures</h3><ul>{rows}</ul>" if rows else ""
    return (
        "<h2>CV processing report</h2>"
        f"<p>Total attachments: {report.attachments_total}<br>"
        f"Succeeded: {report.succeeded}<br>"
        f"Failed: {report.failed}<br>"
        f"New candidates: {report.candidates_created}<br>"
        f"Updated candidates: {report.candidates_updated}</p>"
        f"{failures}"
    )
