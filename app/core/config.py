"""
Application configuration — loaded from environment variables / .env file.
"""
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # OpenAI / LLM (Groq / Ollama compatible)
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_CHAT_MODEL: str = "gpt-4o-mini"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_TIMEOUT_SECONDS: float = 60.0

    # Inbound email (IMAP)
    IMAP_HOST: str = ""
    IMAP_PORT: int = 993
    IMAP_USER: str = ""
    IMAP_PASSWORD: str = ""
    IMAP_FOLDER: str = "INBOX"
    IMAP_USE_SSL: bool = True
    IMAP_TIMEOUT_SECONDS: float = 30.0
    IMAP_ALLOWED_EXTENSIONS: str = ".pdf,.doc,.docx"
    # Max size of a single email attachment (bytes). Default: 10 MB.
    IMAP_MAX_ATTACHMENT_BYTES: int = 10 * 1024 * 1024
    IMAP_MAX_MESSAGES: int = 50
    # Unseen messages stay unseen unless this is switched on.
    IMAP_MARK_SEEN: bool = False
    IMAP_SKIP_PROCESSED: bool = True

    # Email monitor
    EMAIL_MONITOR_ENABLED: bool = False             # default until a config is stored
    EMAIL_MONITOR_INTERVAL_MINUTES: int = 5
    EMAIL_MONITOR_STARTUP_DELAY_SECONDS: int = 15   # wait for ES on cold start

    # Cloud storage (Cloudinary unsigned upload)
    CLOUDINARY_CLOUD_NAME: str = "demo-cloud"
    CLOUDINARY_UPLOAD_PRESET: str = "hr360_preset"
    CLOUDINARY_FOLDER: str = "resumes"
    UPLOAD_TIMEOUT_SECONDS: float = 60.0

    # Outbound email (SendGrid)
    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = "noreply@hr360.com"
    HR_NOTIFICATION_EMAIL: str = "hr@company.com"
    MAIL_TIMEOUT_SECONDS: float = 15.0

    # Elasticsearch
    ES_HOST: str = "http://elasticsearch:9200"
    ES_INDEX_CANDIDATES: str = "candidates"
    ES_INDEX_NOTIFICATIONS: str = "notifications"
    ES_INDEX_USERS: str = "users"
    ES_INDEX_PROCESSED_EMAILS: str = "processed_emails"
    ES_INDEX_EMAIL_CONFIG: str = "email_config"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
