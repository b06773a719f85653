"""
Clean script: deletes all HR360 indices from Elasticsearch.
"""
import asyncio
import os
import sys
import logging

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.core.config import get_settings
from app.core.elasticsearch import get_es_client

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


async def main():
    logger.info("Connecting to Elasticsearch...")
    es = get_es_client()

    indices = [
        settings.ES_INDEX_CANDIDATES,
        settings.ES_INDEX_NOTIFICATIONS,
        settings.ES_INDEX_USERS,
        settings.ES_INDEX_PROCESSED_EMAILS,
        settings.ES_INDEX_EMAIL_CONFIG,
    ]
    logger.info("Indices to delete: %s", indices)

    try:
        for index in indices:
            if await es.indices.exists(index=index):
                await es.indices.delete(index=index)
                logger.info("  ✓ Deleted index: %s", index)
            else:
                logger.info("  ⚠ Index does not exist: %s", index)
    finally:
        await es.close()
    logger.info("✅ Database clean complete!")


if __name__ == "__main__":
    asyncio.run(main())
