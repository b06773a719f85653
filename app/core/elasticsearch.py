"""
Elasticsearch client layer.

Indexes:
  candidates        — Candidate docs, email is the upsert key
  notifications     — per-user in-app notifications
  users             — HR360 users (read here to find HR recipients)
  processed_emails  — one audit record per processed inbound message
  email_config      — single "active" mailbox configuration document
"""
import logging

from elasticsearch import AsyncElasticsearch

from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def get_es_client() -> AsyncElasticsearch:
    return AsyncElasticsearch(
        settings.ES_HOST,
        retry_on_timeout=True,
        max_retries=3,
    )


_INDEX_SETTINGS = {
    "number_of_shards": 1,
    "number_of_replicas": 0,
}

# ── Index mappings ────────────────────────────────────────────────────────────

CANDIDATE_MAPPING = {
    "mappings": {
        "properties": {
            "id":             {"type": "keyword"},
            "first_name":     {"type": "text", "analyzer": "standard"},
            "last_name":      {"type": "text", "analyzer": "standard"},
            "email":          {"type": "keyword"},
            "phone":          {"type": "keyword"},
            "position":       {"type": "keyword"},
            "resume_url":     {"type": "keyword", "index": False},
            "cover_letter":   {"type": "text"},
            "status":         {"type": "keyword"},
            "applied_at":     {"type": "date"},
            "ai_score":       {"type": "integer"},
            "skills":         {"type": "keyword"},
            "experience":     {"type": "text"},
            "education":      {"type": "text"},
            "strengths":      {"type": "text"},
            "weaknesses":     {"type": "text"},
            "recommendation": {"type": "text"},
            "summary":        {"type": "text"},
        }
    },
    "settings": _INDEX_SETTINGS,
}

NOTIFICATION_MAPPING = {
    "mappings": {
        "properties": {
            "id":         {"type": "keyword"},
            "user_id":    {"type": "keyword"},
            "title":      {"type": "keyword"},
            "message":    {"type": "text"},
            "type":       {"type": "keyword"},
            "is_read":    {"type": "boolean"},
            "created_at": {"type": "date"},
        }
    },
    "settings": _INDEX_SETTINGS,
}

USER_MAPPING = {
    "mappings": {
        "properties": {
            "id":         {"type": "keyword"},
            "email":      {"type": "keyword"},
            "first_name": {"type": "text"},
            "last_name":  {"type": "text"},
            "role":       {"type": "keyword"},
            "is_active":  {"type": "boolean"},
        }
    },
    "settings": _INDEX_SETTINGS,
}

PROCESSED_EMAIL_MAPPING = {
    "mappings": {
        "properties": {
            "message_id":            {"type": "keyword"},
            "subject":               {"type": "text"},
            "sender":                {"type": "keyword"},
            "processed_at":          {"type": "date"},
            "attachments_processed": {"type": "integer"},
            "candidates_created":    {"type": "integer"},
            "status":                {"type": "keyword"},
            "error":                 {"type": "text"},
        }
    },
    "settings": _INDEX_SETTINGS,
}

EMAIL_CONFIG_MAPPING = {
    "mappings": {
        "properties": {
            "user":                {"type": "keyword"},
            "password":            {"type": "keyword", "index": False},
            "host":                {"type": "keyword"},
            "port":                {"type": "integer"},
            "tls":                 {"type": "boolean"},
            "enabled":             {"type": "boolean"},
            "monitoring_interval": {"type": "integer"},
            "last_checked":        {"type": "date"},
        }
    },
    "settings": _INDEX_SETTINGS,
}


async def init_indices(es: AsyncElasticsearch) -> None:
    """Create ES indices if they don't exist."""
    pairs = [
        (settings.ES_INDEX_CANDIDATES,       CANDIDATE_MAPPING),
        (settings.ES_INDEX_NOTIFICATIONS,    NOTIFICATION_MAPPING),
        (settings.ES_INDEX_USERS,            USER_MAPPING),
        (settings.ES_INDEX_PROCESSED_EMAILS, PROCESSED_EMAIL_MAPPING),
        (settings.ES_INDEX_EMAIL_CONFIG,     EMAIL_CONFIG_MAPPING),
    ]
    for index_name, mapping in pairs:
        exists = await es.indices.exists(index=index_name)
        if not exists:
            await es.indices.create(index=index_name, body=mapping)
            logger.info(f"Created ES index: {index_name}")
        else:
            logger.debug(f"ES index already exists: {index_name}")
