"""
test_pattern_registry.py — Reading detected patterns.

The registry is written by the offline detection job; a fresh
deployment has no `detected_patterns` collection at all.
"""

from datetime import datetime, timezone

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from report_analytics.models.analytics import ResolutionPath
from report_analytics.services.pattern_registry import (
    EmergingPatternsResolver,
    PatternRegistryReader,
    RegistryNotProvisioned,
    pattern_type_label,
)
from fakes import FakeCollection, FakeDB, reports_db

UTC = timezone.utc


def pattern(_id, significance, status="active", updated_day=1, **extra):
    doc = {
        "_id": _id,
        "pattern_type": "geographic_cluster",
        "ai_title": f"Cluster {_id}",
        "ai_summary": "Several reports within a small radius.",
        "report_count": 12,
        "confidence_score": 0.8,
        "significance_score": significance,
        "categories": ["ufos_aliens"],
        "status": status,
        "first_detected_at": datetime(2026, 9, 1, tzinfo=UTC),
        "last_updated_at": datetime(2026, 10, updated_day, tzinfo=UTC),
    }
    doc.update(extra)
    return doc


class BrokenPatterns(FakeCollection):
    def find(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("no servers available")


class TestRegistryReader:
    async def test_absent_registry_reads_empty(self):
        db = reports_db([])  # no detected_patterns collection
        assert await PatternRegistryReader().read(db) == []

    async def test_absent_registry_raises_on_fetch(self):
        with pytest.raises(RegistryNotProvisioned):
            await PatternRegistryReader().fetch(reports_db([]))

    async def test_only_live_patterns_most_significant_first(self):
        db = reports_db([], patterns=[
            pattern("a", 0.4),
            pattern("b", 0.9, status="emerging"),
            pattern("c", 0.95, status="archived"),
            pattern("d", 0.7),
        ])
        patterns = await PatternRegistryReader().read(db)
        assert [p.id for p in patterns] == ["b", "d", "a"]
        assert patterns[0].status == "emerging"

    async def test_ties_broken_by_most_recent_update(self):
        db = reports_db([], patterns=[
            pattern("old", 0.5, updated_day=2),
            pattern("new", 0.5, updated_day=15),
        ])
        assert [p.id for p in await PatternRegistryReader().read(db)] == ["new", "old"]

    async def test_limit(self):
        db = reports_db([], patterns=[pattern(str(i), i / 10) for i in range(8)])
        patterns = await PatternRegistryReader(limit=5).read(db)
        assert len(patterns) == 5
        assert patterns[0].id == "7"

    async def test_malformed_doc_skipped(self):
        db = reports_db([], patterns=[pattern("ok", 0.5), pattern("bad", 0.6, confidence_score=7.5)])
        assert [p.id for p in await PatternRegistryReader().read(db)] == ["ok"]

    async def test_read_failure_reads_empty(self):
        db = FakeDB({"detected_patterns": BrokenPatterns()})
        assert await PatternRegistryReader().read(db) == []

    async def test_serialised_with_type_label(self):
        db = reports_db([], patterns=[pattern("a", 0.5, pattern_type="temporal_anomaly")])
        dumped = (await PatternRegistryReader().read(db))[0].model_dump(by_alias=True)
        assert dumped["typeLabel"] == "Activity Spike"
        assert dumped["significanceScore"] == 0.5
        assert dumped["aiTitle"] == "Cluster a"


class TestPatternLabels:
    @pytest.mark.parametrize("pattern_type,label", [
        ("geographic_cluster", "Hotspot"),
        ("flap_wave", "Wave Event"),
        ("seasonal_pattern", "Seasonal Trend"),
        ("brand_new_detector", "Pattern"),
        (None, "Pattern"),
    ])
    def test_type_labels(self, pattern_type, label):
        assert pattern_type_label(pattern_type) == label


class TestEmergingPatternsResolver:
    async def test_absent_registry_is_unavailable_and_empty(self, make_ctx):
        outcome = await EmergingPatternsResolver().resolve(make_ctx(reports_db([])))
        assert outcome.path is ResolutionPath.UNAVAILABLE
        assert outcome.value == []

    async def test_present_registry_is_optimized(self, make_ctx):
        db = reports_db([], patterns=[pattern("a", 0.5)])
        outcome = await EmergingPatternsResolver(limit=3).resolve(make_ctx(db))
        assert outcome.path is ResolutionPath.OPTIMIZED
        assert [p.id for p in outcome.value] == ["a"]
