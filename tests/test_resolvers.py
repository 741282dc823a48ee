"""
test_resolvers.py — Metric resolvers against an in-memory FakeDB.

Covers both resolution paths for each metric family:
  - optimized: canned aggregation output keyed by procedure name
  - degraded:  procedure missing / disabled / failing → capped find() scan
  - unavailable: every path failed → documented default

Reference clock (see conftest.now): Monday 19 Oct 2026, 12:00 UTC.
"""

import asyncio
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from report_analytics.models.analytics import ResolutionPath
from report_analytics.models.report import ReportRecord
from report_analytics.services.breakdowns import (
    BasicStatsResolver,
    CategoryBreakdownResolver,
    CountryBreakdownResolver,
    CredibilityBreakdownResolver,
    EvidenceAnalysisResolver,
    RecentActivityResolver,
    SourceAnalysisResolver,
    WitnessStatsResolver,
)
from report_analytics.services.context import ResolverContext
from report_analytics.services.resolver_base import percentage, round_half_up
from report_analytics.services.temporal import (
    DayOfWeekResolver,
    MonthlyTrendResolver,
    TimeOfDayResolver,
    parse_hour,
)
from fakes import FakeCollection, FakeDB, reports_db

UTC = timezone.utc


def report(**overrides) -> dict:
    fields = {"category": "ufos_aliens", "created_at": datetime(2026, 10, 1, 9, 0, tzinfo=UTC)}
    fields.update(overrides)
    return ReportRecord(**fields).to_document()


class BrokenCollection(FakeCollection):
    """Every read fails as if the cluster were unreachable."""

    def find(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("no servers available")

    async def count_documents(self, query):
        raise ServerSelectionTimeoutError("no servers available")


# ── Numeric helpers ───────────────────────────────────────────────────────────

class TestRounding:
    @pytest.mark.parametrize("value,expected", [(2.5, 3), (3.5, 4), (-2.5, -2), (2.4, 2)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_round_half_up_one_decimal(self):
        assert round_half_up(4 / 3, 1) == 1.3

    @pytest.mark.parametrize("part,whole,expected", [(1, 0, 0), (0, 0, 0), (1, 3, 33), (2, 3, 67), (5, 5, 100)])
    def test_percentage(self, part, whole, expected):
        assert percentage(part, whole) == expected


# ── Path selection ────────────────────────────────────────────────────────────

class TestResolutionPaths:
    async def test_canned_procedure_output_is_optimized(self, make_ctx):
        db = reports_db([], procedures={
            "get_category_breakdown": [{"_id": "cryptids", "count": 5}, {"_id": "ufos_aliens", "count": 9}],
        })
        ctx = make_ctx(db)
        outcome = await CategoryBreakdownResolver().resolve(ctx)

        assert outcome.path is ResolutionPath.OPTIMIZED
        assert not outcome.is_estimate
        assert [(b.key, b.count) for b in outcome.value] == [("ufos_aliens", 9), ("cryptids", 5)]

        call = db["reports"].aggregate_calls[0]
        assert call["comment"] == "get_category_breakdown"
        assert call["maxTimeMS"] == ctx.procedure_max_time_ms

    async def test_procedure_failure_falls_back_to_scan(self, make_ctx):
        db = reports_db([report(category="cryptids"), report(), report()])
        outcome = await CategoryBreakdownResolver().resolve(make_ctx(db))

        assert outcome.path is ResolutionPath.DEGRADED
        assert outcome.is_estimate
        assert [(b.key, b.count) for b in outcome.value] == [("ufos_aliens", 2), ("cryptids", 1)]

    async def test_canned_exception_falls_back(self, make_ctx):
        db = reports_db([report()], procedures={
            "get_category_breakdown": OperationFailure("operation exceeded time limit", code=50),
        })
        outcome = await CategoryBreakdownResolver().resolve(make_ctx(db))
        assert outcome.path is ResolutionPath.DEGRADED

    async def test_disabled_procedure_is_never_called(self, make_ctx):
        db = reports_db([report()], procedures={"get_category_breakdown": [{"_id": "x", "count": 1}]})
        ctx = make_ctx(db, disabled_procedures=frozenset({"get_category_breakdown"}))
        outcome = await CategoryBreakdownResolver().resolve(ctx)

        assert outcome.path is ResolutionPath.DEGRADED
        assert db["reports"].aggregate_calls == []

    async def test_both_paths_failing_returns_default(self, make_ctx):
        ctx = make_ctx(FakeDB({"reports": BrokenCollection()}))
        outcome = await CategoryBreakdownResolver().resolve(ctx)

        assert outcome.path is ResolutionPath.UNAVAILABLE
        assert outcome.value == []
        assert "no servers" in outcome.error

    async def test_unavailable_time_of_day_is_still_24_buckets(self, make_ctx):
        ctx = make_ctx(FakeDB({"reports": BrokenCollection()}))
        outcome = await TimeOfDayResolver().resolve(ctx)

        assert outcome.path is ResolutionPath.UNAVAILABLE
        assert [b.hour for b in outcome.value] == list(range(24))
        assert all(b.count == 0 for b in outcome.value)

    async def test_pending_reports_are_not_counted(self, make_ctx):
        db = reports_db([report(), report(status="pending"), report(status="rejected")])
        outcome = await CategoryBreakdownResolver().resolve(make_ctx(db))
        assert sum(b.count for b in outcome.value) == 1


class TestFallbackCap:
    async def test_fallback_reads_at_most_row_cap_rows(self, make_ctx):
        """50,000 approved rows, no procedure: the answer is over 10,000 of them."""
        docs = [{"status": "approved", "category": "ufos_aliens"} for _ in range(50_000)]
        db = reports_db(docs)
        ctx = make_ctx(db, disabled_procedures=frozenset({"get_category_breakdown"}))

        outcome = await CategoryBreakdownResolver().resolve(ctx)

        assert outcome.path is ResolutionPath.DEGRADED
        assert sum(b.count for b in outcome.value) == 10_000
        assert sum(b.count for b in outcome.value) < len(docs)

    async def test_time_of_day_uses_its_own_cap(self, make_ctx):
        docs = [{"status": "approved", "category": "cryptids", "event_time": "03:00"} for _ in range(20)]
        ctx = make_ctx(reports_db(docs), time_of_day_row_cap=7)
        outcome = await TimeOfDayResolver().resolve(ctx)
        assert sum(b.count for b in outcome.value) == 7


# ── Basic stats ───────────────────────────────────────────────────────────────

class TestBasicStats:
    async def test_fallback_counts_are_exact(self, make_ctx):
        docs = [
            report(created_at=datetime(2026, 10, 19, 8, 0, tzinfo=UTC), country="US"),   # 24h, 7d, this month
            report(created_at=datetime(2026, 10, 14, 8, 0, tzinfo=UTC), country="US"),   # 7d, this month
            report(created_at=datetime(2026, 10, 2, 8, 0, tzinfo=UTC), country="CA"),    # this month
            report(created_at=datetime(2026, 9, 20, 8, 0, tzinfo=UTC), country=None),    # last month
            report(created_at=datetime(2026, 9, 1, 0, 0, tzinfo=UTC), country="GB"),     # last month
            report(created_at=datetime(2026, 7, 1, tzinfo=UTC), country="GB", view_count=50),
            report(created_at=datetime(2026, 10, 19, 9, 0, tzinfo=UTC), status="pending"),
        ]
        outcome = await BasicStatsResolver().resolve(make_ctx(reports_db(docs)))
        stats = outcome.value

        assert outcome.path is ResolutionPath.DEGRADED
        assert stats.total_reports == 6
        assert stats.this_month_reports == 3
        assert stats.last_month_reports == 2
        assert stats.month_over_month_change == 50
        assert stats.last24h_reports == 1
        assert stats.last7d_reports == 2
        assert stats.countries_count == 3
        # Summing views needs a full scan; skipped on the fallback path.
        assert stats.total_views == 0

    async def test_procedure_facets(self, make_ctx):
        db = reports_db([], procedures={"get_basic_stats": [{
            "total": [{"n": 10}], "views": [{"n": 99}], "countries": [{"n": 3}],
            "thisMonth": [{"n": 4}], "lastMonth": [], "last24h": [], "last7d": [{"n": 2}],
        }]})
        outcome = await BasicStatsResolver().resolve(make_ctx(db))
        stats = outcome.value

        assert outcome.path is ResolutionPath.OPTIMIZED
        assert (stats.total_reports, stats.total_views, stats.countries_count) == (10, 99, 3)
        assert stats.last_month_reports == 0
        assert stats.month_over_month_change == 0
        assert stats.last24h_reports == 0

    async def test_month_boundary_follows_configured_zone(self, make_ctx):
        # 23:30 UTC on 30 Sep is already 1 Oct in Tokyo.
        docs = [report(created_at=datetime(2026, 9, 30, 23, 30, tzinfo=UTC))]

        utc = (await BasicStatsResolver().resolve(make_ctx(reports_db(docs)))).value
        tokyo = (await BasicStatsResolver().resolve(make_ctx(reports_db(docs), tz="Asia/Tokyo"))).value

        assert (utc.this_month_reports, utc.last_month_reports) == (0, 1)
        assert (tokyo.this_month_reports, tokyo.last_month_reports) == (1, 0)

    async def test_rolling_windows_are_elapsed_time_across_dst_end(self):
        # New York leaves DST at 02:00 on 1 Nov 2026; noon EST that day is 17:00 UTC.
        zone = ZoneInfo("America/New_York")
        now = datetime(2026, 11, 1, 17, 0, tzinfo=UTC).astimezone(zone)
        docs = [
            report(created_at=datetime(2026, 10, 31, 17, 30, tzinfo=UTC)),  # 23.5h ago
            report(created_at=datetime(2026, 10, 31, 16, 30, tzinfo=UTC)),  # 24.5h ago
            report(created_at=datetime(2026, 10, 25, 16, 30, tzinfo=UTC)),  # 7 days + 30m ago
        ]
        ctx = ResolverContext(db=reports_db(docs), tz=zone, now=now)

        assert ctx.since(hours=24) == datetime(2026, 10, 31, 17, 0, tzinfo=UTC)
        stats = (await BasicStatsResolver().resolve(ctx)).value
        assert stats.last24h_reports == 1
        assert stats.last7d_reports == 2

    async def test_failed_count_waits_for_sibling_counts(self, make_ctx):
        class LastMonthFails(FakeCollection):
            def __init__(self):
                super().__init__([report()])
                self.finished = 0

            async def count_documents(self, query):
                if "$lt" in query.get("created_at", {}):
                    raise OperationFailure("count exceeded time limit", code=50)
                await asyncio.sleep(0.01)
                self.finished += 1
                return await super().count_documents(query)

        reports = LastMonthFails()
        outcome = await BasicStatsResolver().resolve(make_ctx(FakeDB({"reports": reports})))

        assert outcome.path is ResolutionPath.UNAVAILABLE
        assert "time limit" in outcome.error
        assert reports.finished == 4

    async def test_serialises_camel_case(self, make_ctx):
        stats = (await BasicStatsResolver().resolve(make_ctx(reports_db([report()])))).value
        dumped = stats.model_dump(by_alias=True)
        for key in ("totalReports", "thisMonthReports", "monthOverMonthChange", "last24hReports", "last7dReports"):
            assert key in dumped


# ── Grouped breakdowns ────────────────────────────────────────────────────────

class TestBreakdowns:
    async def test_country_top_15_excludes_missing(self, make_ctx):
        docs = []
        for i in range(20):
            docs += [report(country=f"C{i:02d}")] * (i + 1)
        docs += [report(country=None), report(country="")]
        outcome = await CountryBreakdownResolver().resolve(make_ctx(reports_db(docs)))

        assert len(outcome.value) == 15
        assert outcome.value[0].key == "C19"
        assert outcome.value[0].count == 20
        assert all(b.key for b in outcome.value)

    async def test_country_procedure_output_truncated(self, make_ctx):
        docs = [{"_id": f"C{i}", "count": 100 - i} for i in range(30)]
        outcome = await CountryBreakdownResolver().resolve(
            make_ctx(reports_db([], procedures={"get_country_breakdown": docs})),
        )
        assert len(outcome.value) == 15

    async def test_credibility_follows_ladder_and_counts_missing_as_unverified(self, make_ctx):
        docs = [
            report(credibility="low"), report(credibility=None), report(credibility="confirmed"),
            report(credibility="high"), report(credibility="high"),
        ]
        outcome = await CredibilityBreakdownResolver().resolve(make_ctx(reports_db(docs)))
        assert [(b.key, b.count) for b in outcome.value] == [
            ("confirmed", 1), ("high", 2), ("low", 1), ("unverified", 1),
        ]

    async def test_source_defaults_to_user_submission(self, make_ctx):
        docs = [report(source_type=None), report(source_type="nuforc"), report(source_type=None)]
        outcome = await SourceAnalysisResolver().resolve(make_ctx(reports_db(docs)))
        assert [(b.key, b.count) for b in outcome.value] == [("user_submission", 2), ("nuforc", 1)]


# ── Evidence & witnesses ──────────────────────────────────────────────────────

class TestEvidenceAndWitnesses:
    async def test_any_evidence_is_a_union(self, make_ctx):
        docs = [
            report(has_photo_video=True),
            report(has_photo_video=True, has_physical_evidence=True),
            report(has_official_report=True),
            report(),
        ]
        summary = (await EvidenceAnalysisResolver().resolve(make_ctx(reports_db(docs)))).value

        assert summary.total == 4
        assert (summary.with_photo_video.count, summary.with_photo_video.percentage) == (2, 50)
        assert summary.with_physical_evidence.percentage == 25
        assert summary.with_official_report.percentage == 25
        # 3 reports carry evidence, although the flags sum to 4
        assert (summary.with_any_evidence.count, summary.with_any_evidence.percentage) == (3, 75)

    async def test_empty_store_gives_zero_percentages(self, make_ctx):
        summary = (await EvidenceAnalysisResolver().resolve(make_ctx(reports_db([])))).value
        assert summary.total == 0
        assert summary.with_any_evidence.percentage == 0

    async def test_witness_stats_treat_null_as_zero(self, make_ctx):
        docs = [
            report(witness_count=None, anonymous_submission=True),
            report(witness_count=3, submitter_was_witness=True),
            report(witness_count=1),
        ]
        stats = (await WitnessStatsResolver().resolve(make_ctx(reports_db(docs)))).value

        assert stats.total_reports == 3
        assert stats.total_witnesses == 4
        assert stats.average_witness_count == 1.3
        assert stats.reports_with_multiple_witnesses == 1
        assert stats.submitter_was_witness == 1
        assert stats.anonymous_submissions == 1
        assert stats.anonymous_percentage == 33


# ── Temporal ──────────────────────────────────────────────────────────────────

class TestTimeOfDay:
    @pytest.mark.parametrize("raw,hour", [("22:15", 22), ("7:05", 7), ("00:00", 0), ("24:00", None), ("bad", None), ("", None), (None, None)])
    def test_parse_hour(self, raw, hour):
        assert parse_hour(raw) == hour

    async def test_buckets_always_enumerated(self, make_ctx):
        docs = [
            {"status": "approved", "category": "ufos_aliens", "event_time": "22:15"},
            {"status": "approved", "category": "cryptids", "event_time": "22:40"},
            {"status": "approved", "category": "cryptids", "event_time": "bad"},
            {"status": "approved", "category": "cryptids"},
        ]
        buckets = (await TimeOfDayResolver().resolve(make_ctx(reports_db(docs)))).value

        assert len(buckets) == 24
        assert buckets[5].label == "05:00"
        assert buckets[22].count == 2
        assert buckets[22].by_category == {"ufos_aliens": 1, "cryptids": 1}
        assert sum(b.count for b in buckets) == 2

    async def test_procedure_output_zero_filled(self, make_ctx):
        db = reports_db([], procedures={"get_time_of_day": [
            {"_id": {"hour": 3, "category": "ghosts_hauntings"}, "count": 4},
            {"_id": {"hour": 3, "category": "cryptids"}, "count": 1},
        ]})
        buckets = (await TimeOfDayResolver().resolve(make_ctx(db))).value
        assert len(buckets) == 24
        assert buckets[3].count == 5
        assert buckets[4].count == 0


class TestDayOfWeek:
    async def test_date_strings_and_datetimes(self, make_ctx):
        docs = [
            report(event_date=date(2026, 10, 17)),       # Saturday
            report(event_date=date(2026, 10, 18)),       # Sunday
            report(event_date=None),
        ]
        buckets = (await DayOfWeekResolver().resolve(make_ctx(reports_db(docs)))).value

        assert [b.short_name for b in buckets] == ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
        assert buckets[6].count == 1
        assert buckets[0].count == 1
        assert sum(b.count for b in buckets) == 2

    async def test_datetime_event_shifted_to_zone(self, make_ctx):
        # Sunday 23:30 UTC is Sunday in New York and Monday in Tokyo.
        docs = [report(event_date=datetime(2026, 10, 18, 23, 30, tzinfo=UTC))]

        ny = (await DayOfWeekResolver().resolve(make_ctx(reports_db(docs), tz="America/New_York"))).value
        tokyo = (await DayOfWeekResolver().resolve(make_ctx(reports_db(docs), tz="Asia/Tokyo"))).value

        assert ny[0].count == 1
        assert tokyo[1].count == 1


class TestMonthlyTrend:
    async def test_twelve_months_oldest_first(self, make_ctx):
        points = (await MonthlyTrendResolver().resolve(make_ctx(reports_db([])))).value

        assert len(points) == 12
        assert points[0].month_key == "2025-11"
        assert points[-1].month_key == "2026-10"
        assert points[-1].label == "Oct 26"
        assert all(p.count == 0 for p in points)

    async def test_month_key_uses_configured_zone(self, make_ctx):
        docs = [report(created_at=datetime(2026, 9, 30, 23, 30, tzinfo=UTC), category="cryptids")]

        utc = (await MonthlyTrendResolver().resolve(make_ctx(reports_db(docs)))).value
        tokyo = (await MonthlyTrendResolver().resolve(make_ctx(reports_db(docs), tz="Asia/Tokyo"))).value

        assert {p.month_key: p.count for p in utc}["2026-09"] == 1
        assert {p.month_key: p.count for p in tokyo}["2026-10"] == 1
        assert {p.month_key: p.by_category for p in tokyo}["2026-10"] == {"cryptids": 1}

    async def test_older_reports_fall_outside_window(self, make_ctx):
        docs = [report(created_at=datetime(2025, 10, 31, tzinfo=UTC))]
        points = (await MonthlyTrendResolver().resolve(make_ctx(reports_db(docs)))).value
        assert sum(p.count for p in points) == 0

    async def test_procedure_ignores_out_of_window_keys(self, make_ctx):
        db = reports_db([], procedures={"get_monthly_trend": [
            {"_id": {"month": "2026-10", "category": "cryptids"}, "count": 3},
            {"_id": {"month": "2020-01", "category": "cryptids"}, "count": 9},
        ]})
        points = (await MonthlyTrendResolver().resolve(make_ctx(db))).value
        assert sum(p.count for p in points) == 3


# ── Recent activity ───────────────────────────────────────────────────────────

class TestRecentActivity:
    async def test_newest_ten_approved(self, make_ctx):
        docs = [
            report(title=f"Report {d}", created_at=datetime(2026, 10, d, tzinfo=UTC))
            for d in range(1, 13)
        ]
        docs.append(report(title="Pending", status="pending", created_at=datetime(2026, 10, 19, tzinfo=UTC)))
        outcome = await RecentActivityResolver().resolve(make_ctx(reports_db(docs)))

        assert outcome.path is ResolutionPath.OPTIMIZED
        assert len(outcome.value) == 10
        assert outcome.value[0].title == "Report 12"
        assert "Pending" not in [r.title for r in outcome.value]

    async def test_read_failure_is_unavailable(self, make_ctx):
        outcome = await RecentActivityResolver().resolve(make_ctx(FakeDB({"reports": BrokenCollection()})))
        assert outcome.path is ResolutionPath.UNAVAILABLE
        assert outcome.value == []
