"""
MongoDB connection management using Motor (async driver).

A single DatabaseClient instance is shared across all requests via a
module-level singleton. FastAPI's dependency injection (get_db) gives
routes access to the database without importing the singleton directly.

The analytics service only ever reads: `reports` is the system of record
owned by the submission workflow, `detected_patterns` is written by the
offline pattern-detection job.

The connection is opened in FastAPI's lifespan (startup) and closed
on shutdown.
"""

import logging
import re

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from report_analytics.core.config import settings

logger = logging.getLogger(__name__)

REPORTS_COLLECTION = "reports"
PATTERNS_COLLECTION = "detected_patterns"


class DatabaseClient:
    """
    Holds the Motor client and selected database.

    Tests replace .client and .db directly (monkeypatching a class
    attribute is cleaner than replacing module-level vars).
    """

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None


db_client = DatabaseClient()


async def connect_to_mongo() -> None:
    """
    Create the MongoDB connection and validate it with a ping.

    Called once at app startup (via lifespan). If MongoDB is unavailable
    the API still starts; analytics endpoints answer 503 until it is back
    and the health check reports the real status.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        # certifi's CA bundle so Atlas TLS works without system cert setup.
        db_client.client = AsyncIOMotorClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            tlsCAFile=certifi.where(),
            tz_aware=True,
        )
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        logger.info("MongoDB connection established (db: %s)", settings.mongo_db_name)
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "API running in degraded mode — analytics endpoints will return 503.",
            exc,
        )
        db_client.client = None
        db_client.db = None


async def close_mongo_connection() -> None:
    """Close the MongoDB connection gracefully on app shutdown."""
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


def get_db() -> AsyncIOMotorDatabase | None:
    """
    FastAPI dependency — inject the database into route handlers.

    Returns None when MongoDB is unavailable so routes can answer with
    a retryable 503 instead of crashing.
    """
    return db_client.db


def _redact_uri(uri: str) -> str:
    """Strip credentials from URI before logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
