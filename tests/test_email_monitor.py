"""Tests for the email monitor cycle."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

from app.core import email_monitor
from app.core.ai_analyzer import ResumeAnalyzer, fallback_analysis
from app.core.cloud_storage import CloudStorageUploader
from app.core.config import get_settings
from app.core.email_inbox import MailboxConnectionError
from app.core.email_monitor import EmailMonitor, MonitorState, render_summary_html
from app.core.storage import (
    CYCLE_NOTIFICATION_TITLE, load_email_config, record_processed_email, save_email_config,
)
from app.models.schemas import (
    AttachmentFailure, CycleReport, EmailConfig, ProcessedEmail, ProcessingOutcome, UploadResult,
)
from conftest import broken_pdf_attachment, docx_attachment, make_email

settings = get_settings()

CONFIG = EmailConfig(host="imap.test", user="hr@company.com", password="secret", enabled=True)


class FakeInbox:
    """Synchronous inbox double with the ImapInbox session interface."""

    def __init__(self, messages=None, connect_error=None):
        self.messages = messages or []
        self.connect_error = connect_error
        self.connected = False
        self.disconnected = False

    def connect(self):
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    def fetch_unseen(self):
        return list(self.messages)

    def disconnect(self):
        self.disconnected = True


def make_mailer():
    mailer = MagicMock()
    mailer.send = AsyncMock(return_value=True)
    return mailer


def make_monitor(es, inbox, analyzer=None, uploader=None, mailer=None) -> EmailMonitor:
    return EmailMonitor(
        es,
        inbox_factory=lambda config: inbox,
        analyzer=analyzer or ResumeAnalyzer(api_key=""),
        uploader=uploader or CloudStorageUploader(cloud_name="demo-cloud"),
        mailer=mailer or make_mailer(),
    )


def candidates(es) -> list[dict]:
    return es.docs(settings.ES_INDEX_CANDIDATES)


def processed(es) -> dict[str, dict]:
    return {d["message_id"]: d for d in es.docs(settings.ES_INDEX_PROCESSED_EMAILS)}


class TestRunCycle:
    """Tests for EmailMonitor.run_cycle."""

    def test_successful_message(self, es, hr_user):
        inbox = FakeInbox([make_email(attachments=[docx_attachment()])])
        mailer = make_mailer()
        monitor = make_monitor(es, inbox, mailer=mailer)

        report = asyncio.run(monitor.run_cycle(CONFIG))

        assert report.status == "ok"
        assert report.fetched_messages == 1
        assert report.succeeded == 1
        assert report.candidates_created == 1
        assert inbox.connected and inbox.disconnected
        assert monitor.state == MonitorState.IDLE

        (candidate,) = candidates(es)
        assert candidate["email"] == "jane.doe@example.com"
        assert candidate["first_name"] == "Jane"
        assert candidate["position"] == "React Developer"
        assert candidate["status"] == "screening"
        assert candidate["resume_url"] == f"https://demo-storage.com/{settings.CLOUDINARY_FOLDER}/jane_doe.docx"
        assert 0 <= candidate["ai_score"] <= 100

        assert processed(es)["<msg-1@example.com>"]["status"] == "success"

        (note,) = es.docs(settings.ES_INDEX_NOTIFICATIONS)
        assert note["title"] == CYCLE_NOTIFICATION_TITLE
        assert note["type"] == "success"
        mailer.send.assert_awaited_once()
        assert mailer.send.await_args.args[0] == settings.HR_NOTIFICATION_EMAIL

    def test_job_description_only_for_known_position(self, es):
        analyzer = MagicMock()
        analyzer.analyze = AsyncMock(return_value=fallback_analysis(""))
        inbox = FakeInbox([
            make_email("<a>", attachments=[docx_attachment()]),
            make_email("<b>", subject="My CV", attachments=[docx_attachment()]),
        ])

        asyncio.run(make_monitor(es, inbox, analyzer=analyzer).run_cycle(CONFIG))

        job_descriptions = [call.args[1] for call in analyzer.analyze.await_args_list]
        assert job_descriptions == ["React Developer", None]

    def test_attachment_failures_are_isolated(self, es, hr_user):
        inbox = FakeInbox([make_email(attachments=[broken_pdf_attachment(), docx_attachment()])])
        mailer = make_mailer()

        report = asyncio.run(make_monitor(es, inbox, mailer=mailer).run_cycle(CONFIG))

        assert report.attachments_total == 2
        assert report.succeeded == 1
        assert report.failed == 1
        failure = report.failures[0]
        assert failure.filename == "broken.pdf"
        assert failure.message_id == "<msg-1@example.com>"
        assert failure.subject == "Application for React Developer"

        record = processed(es)["<msg-1@example.com>"]
        assert record["status"] == "partial"
        assert "broken.pdf" in record["error"]
        assert len(candidates(es)) == 1
        assert es.docs(settings.ES_INDEX_NOTIFICATIONS)[0]["type"] == "warning"
        assert "broken.pdf" in mailer.send.await_args.args[2]

    def test_upload_failure_fails_attachment(self, es):
        uploader = MagicMock()
        uploader.upload = AsyncMock(return_value=UploadResult(success=False, error="Upload failed: 500"))
        inbox = FakeInbox([make_email(attachments=[docx_attachment()])])

        report = asyncio.run(make_monitor(es, inbox, uploader=uploader).run_cycle(CONFIG))

        assert report.failed == 1
        assert report.failures[0].error == "Upload failed: 500"
        assert candidates(es) == []
        assert processed(es)["<msg-1@example.com>"]["status"] == "failed"

    def test_missing_address_fails_attachment(self, es):
        attachment = docx_attachment("cv.docx", "Jane Doe", "Python developer")
        inbox = FakeInbox([make_email(sender="", attachments=[attachment])])

        report = asyncio.run(make_monitor(es, inbox).run_cycle(CONFIG))

        assert report.failed == 1
        assert candidates(es) == []

    def test_connection_error_aborts_cycle(self, es, hr_user):
        inbox = FakeInbox(connect_error=MailboxConnectionError("login refused"))
        mailer = make_mailer()
        monitor = make_monitor(es, inbox, mailer=mailer)

        report = asyncio.run(monitor.run_cycle(CONFIG))

        assert report.status == "error"
        assert "login refused" in report.error
        assert monitor.state == MonitorState.IDLE
        assert es.docs(settings.ES_INDEX_NOTIFICATIONS) == []
        mailer.send.assert_not_awaited()

        # the next cycle starts from scratch
        inbox.connect_error = None
        assert asyncio.run(monitor.run_cycle(CONFIG)).status == "ok"

    def test_empty_inbox_sends_nothing(self, es, hr_user):
        mailer = make_mailer()

        report = asyncio.run(make_monitor(es, FakeInbox(), mailer=mailer).run_cycle(CONFIG))

        assert report.status == "ok"
        assert es.docs(settings.ES_INDEX_NOTIFICATIONS) == []
        mailer.send.assert_not_awaited()

    def test_last_checked_failure_still_sends_summary(self, es, hr_user, monkeypatch):
        monkeypatch.setattr(email_monitor, "mark_email_config_checked", AsyncMock(side_effect=RuntimeError("es down")))
        mailer = make_mailer()
        inbox = FakeInbox([make_email(attachments=[docx_attachment()])])

        report = asyncio.run(make_monitor(es, inbox, mailer=mailer).run_cycle(CONFIG))

        assert report.status == "ok"
        assert report.succeeded == 1
        mailer.send.assert_awaited_once()

    def test_unexpected_fetch_error_ends_cycle_with_error(self, es):
        inbox = FakeInbox()
        inbox.fetch_unseen = MagicMock(side_effect=LookupError("unknown encoding: x-bogus"))
        monitor = make_monitor(es, inbox)

        report = asyncio.run(monitor.run_cycle(CONFIG))

        assert report.status == "error"
        assert "x-bogus" in report.error
        assert inbox.disconnected
        assert monitor.state == MonitorState.IDLE

    def test_loads_config_when_not_given(self, es):
        asyncio.run(save_email_config(es, CONFIG))
        seen = []
        monitor = make_monitor(es, FakeInbox())
        monitor.inbox_factory = lambda config: seen.append(config) or FakeInbox()

        asyncio.run(monitor.run_cycle())

        assert seen[0].host == "imap.test"
        assert asyncio.run(load_email_config(es)).last_checked is not None


class TestReentrancy:

    def test_second_trigger_is_skipped(self, es):
        class BlockingAnalyzer:
            def __init__(self):
                self.started = asyncio.Event()
                self.release = asyncio.Event()
                self.calls = 0

            async def analyze(self, text, job_description=None):
                self.calls += 1
                self.started.set()
                await self.release.wait()
                return fallback_analysis(text, job_description)

        mailer = make_mailer()

        async def scenario():
            analyzer = BlockingAnalyzer()
            inbox = FakeInbox([make_email(attachments=[docx_attachment()])])
            monitor = make_monitor(es, inbox, analyzer=analyzer, mailer=mailer)

            first = asyncio.create_task(monitor.run_cycle(CONFIG))
            await analyzer.started.wait()
            state_during = monitor.state
            second = await monitor.run_cycle(CONFIG)
            analyzer.release.set()
            return await first, second, state_during, analyzer.calls

        first, second, state_during, calls = asyncio.run(scenario())

        assert state_during == MonitorState.PROCESSING
        assert second.status == "skipped"
        assert second.fetched_messages == 0
        assert first.status == "ok"
        assert calls == 1
        assert len(candidates(es)) == 1
        mailer.send.assert_awaited_once()


class TestProcessedEmailDedup:

    def test_successful_message_is_skipped(self, es):
        asyncio.run(record_processed_email(
            es, ProcessedEmail(message_id="<msg-1@example.com>", status=ProcessingOutcome.SUCCESS),
        ))
        mailer = make_mailer()
        inbox = FakeInbox([make_email(attachments=[docx_attachment()])])

        report = asyncio.run(make_monitor(es, inbox, mailer=mailer).run_cycle(CONFIG))

        assert report.skipped_messages == 1
        assert report.attachments_total == 0
        assert candidates(es) == []
        mailer.send.assert_not_awaited()

    def test_partial_message_is_retried(self, es):
        asyncio.run(record_processed_email(
            es, ProcessedEmail(message_id="<msg-1@example.com>", status=ProcessingOutcome.PARTIAL),
        ))
        inbox = FakeInbox([make_email(attachments=[docx_attachment()])])

        report = asyncio.run(make_monitor(es, inbox).run_cycle(CONFIG))

        assert report.skipped_messages == 0
        assert report.succeeded == 1
        assert processed(es)["<msg-1@example.com>"]["status"] == "success"

    def test_reprocessing_updates_same_candidate(self, es, monkeypatch):
        monkeypatch.setattr(email_monitor.settings, "IMAP_SKIP_PROCESSED", False)
        inbox = FakeInbox([make_email(attachments=[docx_attachment()])])
        monitor = make_monitor(es, inbox)

        first = asyncio.run(monitor.run_cycle(CONFIG))
        second = asyncio.run(monitor.run_cycle(CONFIG))

        assert first.candidates_created == 1
        assert second.candidates_updated == 1
        assert len(candidates(es)) == 1
        record = processed(es)["<msg-1@example.com>"]
        assert record["candidates_created"] == 0
        assert record["status"] == "success"


class TestRunForever:

    def test_disabled_config_skips_ticks(self, es):
        monitor = make_monitor(es, FakeInbox())
        asyncio.run(save_email_config(es, CONFIG.model_copy(update={"enabled": False})))

        async def scenario():
            task = asyncio.create_task(monitor.run_forever(startup_delay=0))
            await asyncio.sleep(0.05)
            task.cancel()
            await task

        asyncio.run(scenario())

        assert monitor.cycles_run == 0

    def test_initial_cycle_then_cancel(self, es):
        asyncio.run(save_email_config(es, CONFIG))
        monitor = make_monitor(es, FakeInbox())

        async def scenario():
            task = asyncio.create_task(monitor.run_forever(startup_delay=0))
            for _ in range(200):
                if monitor.cycles_run:
                    break
                await asyncio.sleep(0.01)
            task.cancel()
            await task
            return task

        task = asyncio.run(scenario())

        assert monitor.cycles_run == 1
        assert task.done() and not task.cancelled()
        assert monitor.last_report.status == "ok"

    def test_enabling_config_wakes_the_loop(self, es):
        asyncio.run(save_email_config(es, CONFIG.model_copy(update={"enabled": False, "monitoring_interval": 60})))
        monitor = make_monitor(es, FakeInbox())

        async def scenario():
            task = asyncio.create_task(monitor.run_forever(startup_delay=0))
            await asyncio.sleep(0.05)
            assert monitor.cycles_run == 0

            await save_email_config(es, CONFIG.model_copy(update={"monitoring_interval": 60}))
            monitor.wake()
            for _ in range(200):
                if monitor.cycles_run:
                    break
                await asyncio.sleep(0.01)
            task.cancel()
            await task

        asyncio.run(scenario())

        assert monitor.cycles_run == 1

    def test_start_and_stop(self, es):
        monitor = make_monitor(es, FakeInbox())

        async def scenario():
            monitor.start()
            running = monitor.status().running
            await monitor.stop()
            return running

        assert asyncio.run(scenario()) is True
        assert monitor.status().running is False


def test_summary_html_escapes_failures():
    report = CycleReport(attachments_total=1, failed=1)
    report.failures.append(AttachmentFailure(
        message_id="<m>", subject="<b>hi</b>", filename="cv.pdf", error="bad & broken",
    ))

    html = render_summary_html(report)

    assert "&lt;b&gt;hi&lt;/b&gt;" in html
    assert "bad &amp; broken" in html
    assert "Failed: 1" in html

