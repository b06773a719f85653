"""Tests for the HTTP API."""
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.routes import PASSWORD_MASK, get_analyzer, get_assistant, router
from app.core.ai_analyzer import ResumeAnalyzer
from app.core.assistant import HRAssistant
from app.core.cloud_storage import CloudStorageUploader
from app.core.config import get_settings
from app.core.email_monitor import EmailMonitor
from app.core.storage import TRIGGER_NOTIFICATION_TITLE
from app.utils.resume_parser import DOCX
from conftest import make_docx

settings = get_settings()


class EmptyInbox:
    def connect(self):
        pass

    def fetch_unseen(self):
        return []

    def disconnect(self):
        pass


class SilentMailer:
    async def send(self, to, subject, html):
        return False


@pytest.fixture
def client(es):
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    app.state.es = es
    app.state.monitor = EmailMonitor(
        es,
        inbox_factory=lambda config: EmptyInbox(),
        analyzer=ResumeAnalyzer(api_key=""),
        uploader=CloudStorageUploader(cloud_name="demo-cloud"),
        mailer=SilentMailer(),
    )
    app.dependency_overrides[get_analyzer] = lambda: ResumeAnalyzer(api_key="")
    app.dependency_overrides[get_assistant] = lambda: HRAssistant(api_key="")
    with TestClient(app) as c:
        yield c


def candidate_body(email="jane@example.com", **kwargs):
    body = {"first_name": "Jane", "last_name": "Doe", "email": email, "position": "React Developer"}
    body.update(kwargs)
    return body


class TestCandidateRoutes:

    def test_batch_upsert(self, client, hr_user):
        client.post("/api/v1/candidates/batch", json={"candidates": [candidate_body("b@x.com")]})

        resp = client.post("/api/v1/candidates/batch", json={"candidates": [
            candidate_body("a@x.com", ai_score=70, skills=["React"]),
            candidate_body("b@x.com"),
            candidate_body("c@x.com"),
        ]})

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["processed"] == 3
        assert data["failed"] == 0
        assert sorted(r["action"] for r in data["results"]) == ["created", "created", "updated"]

    def test_batch_validation(self, client):
        resp = client.post("/api/v1/candidates/batch", json={"candidates": [{"email": "x@y.com"}]})

        assert resp.status_code == 422

    def test_create_and_duplicate(self, client):
        resp = client.post("/api/v1/candidates", json=candidate_body(cover_letter="Hello"))
        assert resp.status_code == 201
        assert resp.json()["status"] == "applied"

        dup = client.post("/api/v1/candidates", json=candidate_body())
        assert dup.status_code == 409

    def test_get_search_and_update(self, client):
        created = client.post("/api/v1/candidates", json=candidate_body()).json()
        client.post("/api/v1/candidates", json=candidate_body("omar@x.com", first_name="Omar", position="QA"))

        assert client.get(f"/api/v1/candidates/{created['id']}").json()["email"] == "jane@example.com"
        assert client.get("/api/v1/candidates/missing").status_code == 404

        found = client.get("/api/v1/candidates", params={"search": "omar"}).json()
        assert [c["first_name"] for c in found] == ["Omar"]
        by_position = client.get("/api/v1/candidates", params={"position": "React Developer"}).json()
        assert [c["id"] for c in by_position] == [created["id"]]

        resp = client.patch(f"/api/v1/candidates/{created['id']}/status", json={"status": "interview"})
        assert resp.json()["status"] == "interview"
        assert client.get("/api/v1/candidates", params={"status": "interview"}).json()[0]["id"] == created["id"]

        assert client.patch("/api/v1/candidates/missing/status", json={"status": "hired"}).status_code == 404
        assert client.patch(f"/api/v1/candidates/{created['id']}/status", json={"status": "vanished"}).status_code == 422

    def test_reanalysis(self, client):
        created = client.post("/api/v1/candidates", json=candidate_body()).json()

        resp = client.post(f"/api/v1/candidates/{created['id']}/analysis", json={
            "resume_text": "5 years experience. Skills: JavaScript, React. Led a project team.",
            "job_description": "React developer with leadership",
        })

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "screening"
        assert data["ai_score"] == 83
        assert "Project leadership experience" in data["strengths"]
        assert client.post("/api/v1/candidates/nope/analysis", json={"resume_text": "x"}).status_code == 404


class TestResumeRoute:

    def test_analyze_docx(self, client):
        content = make_docx("Jane Doe", "jane@example.com", "3 years experience with Python and SQL")

        resp = client.post(
            "/api/v1/resumes/analyze",
            files={"file": ("cv.docx", content, DOCX)},
            data={"job_description": "Python engineer"},
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["content_type"] == DOCX
        assert data["candidate_info"]["first_name"] == "Jane"
        assert data["candidate_info"]["email"] == "jane@example.com"
        assert data["analysis"]["skills"] == ["Python", "SQL"]

    def test_unsupported_type(self, client):
        resp = client.post("/api/v1/resumes/analyze", files={"file": ("notes.txt", b"hello", "text/plain")})

        assert resp.status_code == 415

    def test_unreadable_file(self, client):
        resp = client.post("/api/v1/resumes/analyze", files={"file": ("cv.docx", b"garbage", DOCX)})

        assert resp.status_code == 422


class TestEmailRoutes:

    def test_trigger_and_status(self, client, es, hr_user):
        resp = client.post("/api/v1/emails/trigger")

        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        titles = [n["title"] for n in es.docs(settings.ES_INDEX_NOTIFICATIONS)]
        assert titles == [TRIGGER_NOTIFICATION_TITLE]

        status = client.get("/api/v1/emails/monitor/status").json()
        assert status["state"] == "idle"
        assert status["cycles_run"] == 1
        assert status["last_report"]["status"] == "ok"

    def test_config_password_is_masked(self, client):
        body = {"host": "imap.x.com", "port": 993, "user": "hr", "password": "s3cret",
                "tls": True, "enabled": True, "monitoring_interval": 10}

        put = client.put("/api/v1/emails/config", json=body)
        assert put.status_code == 200
        assert put.json()["password"] == PASSWORD_MASK

        got = client.get("/api/v1/emails/config").json()
        assert got["password"] == PASSWORD_MASK
        assert got["monitoring_interval"] == 10

        # sending the mask back keeps the stored password
        client.put("/api/v1/emails/config", json={**body, "password": PASSWORD_MASK, "enabled": False})
        stored = client.app.state.es.store[settings.ES_INDEX_EMAIL_CONFIG]["active"]
        assert stored["password"] == "s3cret"
        assert stored["enabled"] is False

    def test_saving_config_wakes_monitor(self, client):
        monitor = client.app.state.monitor
        monitor.wake = MagicMock()

        client.put("/api/v1/emails/config", json={"host": "imap.x.com", "enabled": True})

        monitor.wake.assert_called_once()

    def test_config_interval_validation(self, client):
        resp = client.put("/api/v1/emails/config", json={"monitoring_interval": 0})

        assert resp.status_code == 422

    def test_processed_and_stats(self, client, hr_user):
        client.post("/api/v1/candidates/batch", json={"candidates": [candidate_body()]})

        assert client.get("/api/v1/emails/processed").json() == []
        stats = client.get("/api/v1/emails/processing/stats").json()
        assert stats["total_candidates"] == 1
        assert stats["screening_candidates"] == 1
        assert stats["recent_processing"] == 1


class TestNotificationRoutes:

    def test_create_list_read(self, client):
        created = client.post("/api/v1/notifications", json={
            "user_id": "u1", "title": "Welcome", "message": "Hi", "type": "info",
        })
        assert created.status_code == 201
        nid = created.json()["id"]

        assert [n["id"] for n in client.get("/api/v1/notifications/u1").json()] == [nid]
        assert client.patch(f"/api/v1/notifications/{nid}/read").json()["is_read"] is True
        assert client.get("/api/v1/notifications/u1", params={"unread_only": True}).json() == []
        assert client.patch("/api/v1/notifications/nope/read").status_code == 404


class TestMiscRoutes:

    def test_chat(self, client):
        resp = client.post("/api/v1/assistant/chat", json={"message": "How do I request leave?", "context": "Role: hr"})

        assert resp.status_code == 200
        assert resp.json()["role"] == "hr"
        assert "Leave Management" in resp.json()["reply"]

    def test_chat_requires_message(self, client):
        assert client.post("/api/v1/assistant/chat", json={"message": ""}).status_code == 422

    def test_health(self, client):
        data = client.get("/api/v1/health").json()

        assert data["status"] == "ok"
        assert data["es_version"] == "8.13.0"
        assert data["email_monitor"]["state"] == "idle"
