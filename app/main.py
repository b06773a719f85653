"""
HR360 resume screening service — FastAPI application.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.elasticsearch import get_es_client, init_indices
from app.core.email_monitor import EmailMonitor
from app.api.routes import router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ───────────────────────────────────────────────────────────────
    es = get_es_client()
    app.state.es = es
    await init_indices(es)

    monitor = EmailMonitor(es)
    app.state.monitor = monitor
    logger.info("HR360 screening service started ✓")

    # Always running; each tick checks the stored config's enabled flag.
    monitor.start()
    logger.info("Email monitor task started (default enabled=%s).", settings.EMAIL_MONITOR_ENABLED)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────────
    await monitor.stop()
    await es.close()
    logger.info("Elasticsearch connection closed.")


app = FastAPI(
    title="HR360 Resume Screening",
    description="""
## HR360 — automatic CV intake and screening

CVs arriving in the HR mailbox are parsed, scored and stored as candidates.

| Stage | Implementation |
|-------|----------------|
| **Inbox** | IMAP polling, UNSEEN messages with PDF / Word attachments |
| **Parsing** | pdfminer.six → PyPDF2, python-docx |
| **Screening** | LangChain + OpenAI, keyword scoring fallback |
| **Storage** | Cloudinary for files, Elasticsearch for candidates |
| **Reporting** | HR notifications + SendGrid summary email |
    """,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api/v1")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host=settings.APP_HOST, port=settings.APP_PORT, reload=True)
