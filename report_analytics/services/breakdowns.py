"""
breakdowns.py — Count-style metric resolvers.

  basicStats            totals, month-over-month, 24 h / 7 d activity
  categoryBreakdown     count per category, descending
  countryBreakdown      count per country, null excluded, top 15
  credibilityBreakdown  fixed severity ladder, zero levels omitted
  sourceAnalysis        count per source type (missing → user_submission)
  evidenceAnalysis      photo/video, physical, official, any (logical OR)
  witnessStats          witness totals, average, anonymity share
  recentActivity        newest 10 approved reports

See resolver_base.py for the optimized / degraded / unavailable contract.
"""

import asyncio
import logging

from report_analytics.models.analytics import (
    AggregateBucket,
    BasicStats,
    EvidenceShare,
    EvidenceSummary,
    RecentReport,
    WitnessStats,
)
from report_analytics.models.report import CREDIBILITY_LADDER
from report_analytics.services.context import ResolverContext
from report_analytics.services.resolver_base import (
    MetricResolver,
    count_into,
    percentage,
    round_half_up,
    scan_reports,
)

logger = logging.getLogger(__name__)

COUNTRY_LIMIT = 15
RECENT_ACTIVITY_LIMIT = 10
DEFAULT_SOURCE = "user_submission"


def _sorted_buckets(counts: dict[str, int]) -> list[AggregateBucket]:
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], str(kv[0])))
    return [AggregateBucket(key=str(k), count=v) for k, v in ordered]


def _buckets_from_group(docs: list[dict]) -> dict[str, int]:
    return {str(d["_id"]): int(d.get("count", 0)) for d in docs if d.get("_id") is not None}


def _month_change(this_month: int, last_month: int) -> int:
    if last_month <= 0:
        return 0
    return int(round_half_up((this_month - last_month) / last_month * 100))


# ── Basic stats ───────────────────────────────────────────────────────────────

class BasicStatsResolver(MetricResolver[BasicStats]):
    name = "basicStats"
    procedure = "get_basic_stats"
    projection = {"country": 1}

    def default(self, ctx):
        return BasicStats()

    def from_procedure(self, docs, ctx):
        facets = docs[0] if docs else {}

        def n(key: str) -> int:
            values = facets.get(key) or []
            return int(values[0].get("n", 0)) if values else 0

        this_month, last_month = n("thisMonth"), n("lastMonth")
        return BasicStats(
            total_reports=n("total"),
            total_views=n("views"),
            countries_count=n("countries"),
            this_month_reports=this_month,
            last_month_reports=last_month,
            month_over_month_change=_month_change(this_month, last_month),
            last24h_reports=n("last24h"),
            last7d_reports=n("last7d"),
        )

    def scan_query(self, ctx):
        return {"status": "approved", "country": {"$nin": [None, ""]}}

    async def fallback(self, ctx: ResolverContext) -> BasicStats:
        # Counts stay exact (index-backed count_documents); the distinct
        # country count is taken from a capped sample and total views are
        # skipped, since summing view_count needs a full scan.
        approved = {"status": "approved"}
        this_month = ctx.month_start(0)
        last_month = ctx.month_start(1)
        reports = ctx.reports
        results = await asyncio.gather(
            reports.count_documents(approved),
            reports.count_documents({**approved, "created_at": {"$gte": this_month}}),
            reports.count_documents({**approved, "created_at": {"$gte": last_month, "$lt": this_month}}),
            reports.count_documents({**approved, "created_at": {"$gte": ctx.since(hours=24)}}),
            reports.count_documents({**approved, "created_at": {"$gte": ctx.since(days=7)}}),
            scan_reports(ctx, self.scan_query(ctx), self.projection, self.row_cap(ctx)),
            return_exceptions=True,
        )
        # Every count has settled by now; surface the first failure.
        for result in results:
            if isinstance(result, BaseException):
                raise result
        total, this_count, last_count, day_count, week_count, rows = results
        return BasicStats(
            total_reports=total,
            total_views=0,
            countries_count=len({r["country"] for r in rows if r.get("country")}),
            this_month_reports=this_count,
            last_month_reports=last_count,
            month_over_month_change=_month_change(this_count, last_count),
            last24h_reports=day_count,
            last7d_reports=week_count,
        )


# ── Simple grouped breakdowns ─────────────────────────────────────────────────

class CategoryBreakdownResolver(MetricResolver[list[AggregateBucket]]):
    name = "categoryBreakdown"
    procedure = "get_category_breakdown"
    projection = {"category": 1}

    def default(self, ctx):
        return []

    def from_procedure(self, docs, ctx):
        return _sorted_buckets(_buckets_from_group(docs))

    def from_rows(self, rows, ctx):
        counts: dict[str, int] = {}
        for r in rows:
            if r.get("category"):
                count_into(counts, r["category"])
        return _sorted_buckets(counts)


class CountryBreakdownResolver(MetricResolver[list[AggregateBucket]]):
    name = "countryBreakdown"
    procedure = "get_country_breakdown"
    projection = {"country": 1}

    def default(self, ctx):
        return []

    def scan_query(self, ctx):
        return {"status": "approved", "country": {"$nin": [None, ""]}}

    def from_procedure(self, docs, ctx):
        return _sorted_buckets(_buckets_from_group(docs))[:COUNTRY_LIMIT]

    def from_rows(self, rows, ctx):
        counts: dict[str, int] = {}
        for r in rows:
            if r.get("country"):
                count_into(counts, r["country"])
        return _sorted_buckets(counts)[:COUNTRY_LIMIT]


class CredibilityBreakdownResolver(MetricResolver[list[AggregateBucket]]):
    name = "credibilityBreakdown"
    procedure = "get_credibility_breakdown"
    projection = {"credibility": 1}

    def default(self, ctx):
        return []

    @staticmethod
    def _ladder(counts: dict[str, int]) -> list[AggregateBucket]:
        return [
            AggregateBucket(key=level, count=counts[level])
            for level in CREDIBILITY_LADDER
            if counts.get(level, 0) > 0
        ]

    def from_procedure(self, docs, ctx):
        return self._ladder(_buckets_from_group(docs))

    def from_rows(self, rows, ctx):
        counts: dict[str, int] = {}
        for r in rows:
            count_into(counts, r.get("credibility") or "unverified")
        return self._ladder(counts)


class SourceAnalysisResolver(MetricResolver[list[AggregateBucket]]):
    name = "sourceAnalysis"
    procedure = "get_source_analysis"
    projection = {"source_type": 1}

    def default(self, ctx):
        return []

    def from_procedure(self, docs, ctx):
        return _sorted_buckets(_buckets_from_group(docs))

    def from_rows(self, rows, ctx):
        counts: dict[str, int] = {}
        for r in rows:
            count_into(counts, r.get("source_type") or DEFAULT_SOURCE)
        return _sorted_buckets(counts)


# ── Evidence & witnesses ──────────────────────────────────────────────────────

def _evidence_summary(total: int, photo: int, physical: int, official: int, any_: int) -> EvidenceSummary:
    def share(count: int) -> EvidenceShare:
        return EvidenceShare(count=count, percentage=percentage(count, total))

    return EvidenceSummary(
        total=total,
        with_photo_video=share(photo),
        with_physical_evidence=share(physical),
        with_official_report=share(official),
        with_any_evidence=share(any_),
    )


class EvidenceAnalysisResolver(MetricResolver[EvidenceSummary]):
    name = "evidenceAnalysis"
    procedure = "get_evidence_analysis"
    projection = {"has_photo_video": 1, "has_physical_evidence": 1, "has_official_report": 1}

    def default(self, ctx):
        return EvidenceSummary()

    def from_procedure(self, docs, ctx):
        if not docs:
            return EvidenceSummary()
        d = docs[0]
        return _evidence_summary(
            int(d.get("total", 0)), int(d.get("photo", 0)), int(d.get("physical", 0)),
            int(d.get("official", 0)), int(d.get("any", 0)),
        )

    def from_rows(self, rows, ctx):
        photo = physical = official = any_ = 0
        for r in rows:
            p = r.get("has_photo_video") is True
            ph = r.get("has_physical_evidence") is True
            o = r.get("has_official_report") is True
            photo += p
            physical += ph
            official += o
            # union, not the sum of the three flags
            any_ += p or ph or o
        return _evidence_summary(len(rows), photo, physical, official, any_)


def _witness_stats(total: int, witnesses: int, multiple: int, submitter: int, anonymous: int) -> WitnessStats:
    return WitnessStats(
        total_reports=total,
        total_witnesses=witnesses,
        average_witness_count=round_half_up(witnesses / total, 1) if total else 0.0,
        reports_with_multiple_witnesses=multiple,
        submitter_was_witness=submitter,
        anonymous_submissions=anonymous,
        anonymous_percentage=percentage(anonymous, total),
    )


class WitnessStatsResolver(MetricResolver[WitnessStats]):
    name = "witnessStats"
    procedure = "get_witness_stats"
    projection = {"witness_count": 1, "submitter_was_witness": 1, "anonymous_submission": 1}

    def default(self, ctx):
        return WitnessStats()

    def from_procedure(self, docs, ctx):
        if not docs:
            return WitnessStats()
        d = docs[0]
        return _witness_stats(
            int(d.get("total", 0)), int(d.get("witnesses", 0)), int(d.get("multiple", 0)),
            int(d.get("submitter", 0)), int(d.get("anonymous", 0)),
        )

    def from_rows(self, rows, ctx):
        witnesses = multiple = submitter = anonymous = 0
        for r in rows:
            count = r.get("witness_count") or 0
            witnesses += count
            if count > 1:
                multiple += 1
            submitter += r.get("submitter_was_witness") is True
            anonymous += r.get("anonymous_submission") is True
        return _witness_stats(len(rows), witnesses, multiple, submitter, anonymous)


# ── Recent activity ───────────────────────────────────────────────────────────

class RecentActivityResolver(MetricResolver[list[RecentReport]]):
    """Newest approved reports. Already a bounded indexed query, so no procedure."""

    name = "recentActivity"
    has_fallback = False
    projection = {
        "title": 1, "slug": 1, "category": 1, "location_name": 1,
        "country": 1, "created_at": 1, "view_count": 1,
    }

    def default(self, ctx):
        return []

    async def primary(self, ctx: ResolverContext) -> list[RecentReport]:
        rows = await scan_reports(
            ctx, {"status": "approved"}, self.projection, RECENT_ACTIVITY_LIMIT, sort=("created_at", -1),
        )
        items = []
        for doc in rows:
            items.append(RecentReport(
                id=str(doc["_id"]),
                title=doc.get("title") or "",
                slug=doc.get("slug"),
                category=doc.get("category") or "",
                location_name=doc.get("location_name"),
                country=doc.get("country"),
                created_at=doc.get("created_at"),
                view_count=doc.get("view_count") or 0,
            ))
        return items
