"""
pattern_registry.py — Read adapter over the `detected_patterns` collection.

The offline pattern-detection job clusters reports (geographic hotspots,
activity spikes, seasonal trends, …) and writes one document per cluster.
This module only reads: active or emerging patterns, most significant
first.

The collection may not exist yet on a fresh deployment. That is not an
error: the reader returns an empty list and the rest of the analytics
envelope is unaffected.
"""

import logging
from typing import Optional

from pymongo.errors import PyMongoError

from report_analytics.core.database import PATTERNS_COLLECTION
from report_analytics.models.analytics import DetectedPattern
from report_analytics.services.context import ProcedureUnavailable, ResolverContext
from report_analytics.services.resolver_base import MetricResolver

logger = logging.getLogger(__name__)

LIVE_STATUSES = ["active", "emerging"]

PATTERN_TYPE_LABELS = {
    "geographic_cluster": "Hotspot",
    "temporal_anomaly": "Activity Spike",
    "flap_wave": "Wave Event",
    "characteristic_correlation": "Correlation",
    "regional_concentration": "Regional Focus",
    "seasonal_pattern": "Seasonal Trend",
    "time_of_day_pattern": "Time Pattern",
    "date_correlation": "Date Correlation",
}

_PROJECTION = {
    "pattern_type": 1, "ai_title": 1, "ai_summary": 1, "report_count": 1,
    "confidence_score": 1, "significance_score": 1, "categories": 1,
    "status": 1, "first_detected_at": 1, "last_updated_at": 1,
}


class RegistryNotProvisioned(ProcedureUnavailable):
    """The detected_patterns collection has not been created yet."""

    def __init__(self):
        super().__init__(PATTERNS_COLLECTION, "collection does not exist")


def pattern_type_label(pattern_type: Optional[str]) -> str:
    return PATTERN_TYPE_LABELS.get(pattern_type or "", "Pattern")


def _doc_to_pattern(doc: dict) -> DetectedPattern:
    return DetectedPattern(
        id=str(doc["_id"]),
        pattern_type=doc.get("pattern_type") or "unknown",
        type_label=pattern_type_label(doc.get("pattern_type")),
        ai_title=doc.get("ai_title"),
        ai_summary=doc.get("ai_summary"),
        report_count=doc.get("report_count") or 0,
        confidence_score=doc.get("confidence_score") or 0.0,
        significance_score=doc.get("significance_score") or 0.0,
        categories=doc.get("categories") or [],
        status=doc["status"],
        first_detected_at=doc.get("first_detected_at"),
        last_updated_at=doc.get("last_updated_at"),
    )


class PatternRegistryReader:
    def __init__(self, limit: int = 5):
        self.limit = limit

    async def fetch(self, db) -> list[DetectedPattern]:
        """
        Read live patterns. Raises RegistryNotProvisioned when the collection
        is missing; server errors propagate as PyMongoError.
        """
        existing = await db.list_collection_names(filter={"name": PATTERNS_COLLECTION})
        if PATTERNS_COLLECTION not in existing:
            raise RegistryNotProvisioned()

        cursor = (
            db[PATTERNS_COLLECTION]
            .find({"status": {"$in": LIVE_STATUSES}}, _PROJECTION)
            .sort([("significance_score", -1), ("last_updated_at", -1)])
            .limit(self.limit)
        )
        patterns = []
        for doc in await cursor.to_list(length=self.limit):
            try:
                patterns.append(_doc_to_pattern(doc))
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping malformed pattern doc %s: %s", doc.get("_id"), exc)
        return patterns

    async def read(self, db) -> list[DetectedPattern]:
        """Like fetch(), but an absent or failing registry reads as empty."""
        try:
            return await self.fetch(db)
        except RegistryNotProvisioned:
            logger.info("Pattern registry not provisioned yet — no emerging patterns")
        except PyMongoError as exc:
            logger.warning("Pattern registry read failed: %s", exc)
        return []


class EmergingPatternsResolver(MetricResolver[list[DetectedPattern]]):
    """Envelope adapter: an absent registry resolves as UNAVAILABLE with []."""

    name = "emergingPatterns"
    has_fallback = False

    def __init__(self, limit: int = 5):
        self.reader = PatternRegistryReader(limit=limit)

    def default(self, ctx):
        return []

    async def primary(self, ctx: ResolverContext) -> list[DetectedPattern]:
        return await self.reader.fetch(ctx.db)
