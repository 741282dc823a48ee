"""
analytics.py — Pydantic models for the analytics envelope and insights.

All models serialise with camelCase keys (the dashboard is a JS client)
while Python code keeps snake_case attributes. FastAPI's response_model
serialises by alias, so routes can return these objects directly.

Envelope shape (GET /api/v1/analytics):
  basicStats, categoryBreakdown[], countryBreakdown[], monthlyTrend[12],
  credibilityBreakdown[], timeOfDayData[24], dayOfWeekData[7],
  evidenceAnalysis, sourceAnalysis[], recentActivity[<=10],
  emergingPatterns[<=5], witnessStats, insights[], resolverStatus{},
  generatedAt
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

StrengthType = Literal["strong", "moderate", "weak"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResolutionPath(str, Enum):
    """Which path produced a metric value."""

    OPTIMIZED = "optimized"      # server-side aggregation procedure, exact
    DEGRADED = "degraded"        # capped in-memory scan, an estimate at scale
    UNAVAILABLE = "unavailable"  # both paths failed, documented default


# ── Breakdown buckets ─────────────────────────────────────────────────────────

class AggregateBucket(CamelModel):
    """A (key, count) pair for category / country / credibility / source."""

    key: str
    count: int = Field(ge=0)


class HourBucket(CamelModel):
    hour: int = Field(ge=0, le=23)
    label: str                                   # "HH:00"
    count: int = Field(default=0, ge=0)
    by_category: dict[str, int] = Field(default_factory=dict)


class DayBucket(CamelModel):
    day: int = Field(ge=0, le=6)                 # 0 = Sunday
    name: str
    short_name: str
    count: int = Field(default=0, ge=0)
    by_category: dict[str, int] = Field(default_factory=dict)


class MonthlyTrendPoint(CamelModel):
    month_key: str                               # "YYYY-MM"
    label: str                                   # "Oct 26"
    count: int = Field(default=0, ge=0)
    by_category: dict[str, int] = Field(default_factory=dict)


def empty_hour_buckets() -> list[HourBucket]:
    return [HourBucket(hour=h, label=f"{h:02d}:00") for h in range(24)]


def empty_day_buckets() -> list[DayBucket]:
    return [DayBucket(day=d, name=DAY_NAMES[d], short_name=DAY_NAMES[d][:3]) for d in range(7)]


# ── Summaries ─────────────────────────────────────────────────────────────────

class BasicStats(CamelModel):
    total_reports: int = 0
    total_views: int = 0            # always 0 on the fallback path
    countries_count: int = 0
    this_month_reports: int = 0
    last_month_reports: int = 0
    month_over_month_change: int = 0
    last24h_reports: int = Field(default=0, alias="last24hReports")
    last7d_reports: int = Field(default=0, alias="last7dReports")


class EvidenceShare(CamelModel):
    count: int = 0
    percentage: int = Field(default=0, ge=0, le=100)


class EvidenceSummary(CamelModel):
    total: int = 0
    with_photo_video: EvidenceShare = Field(default_factory=EvidenceShare)
    with_physical_evidence: EvidenceShare = Field(default_factory=EvidenceShare)
    with_official_report: EvidenceShare = Field(default_factory=EvidenceShare)
    with_any_evidence: EvidenceShare = Field(default_factory=EvidenceShare)


class WitnessStats(CamelModel):
    total_reports: int = 0
    total_witnesses: int = 0
    average_witness_count: float = 0.0
    reports_with_multiple_witnesses: int = 0
    submitter_was_witness: int = 0
    anonymous_submissions: int = 0
    anonymous_percentage: int = Field(default=0, ge=0, le=100)


class RecentReport(CamelModel):
    id: str
    title: str = ""
    slug: Optional[str] = None
    category: str = ""
    location_name: Optional[str] = None
    country: Optional[str] = None
    created_at: Optional[datetime] = None
    view_count: int = 0


class DetectedPattern(CamelModel):
    """A machine-detected cluster, written by the offline detection job."""

    id: str
    pattern_type: str
    type_label: str
    ai_title: Optional[str] = None
    ai_summary: Optional[str] = None
    report_count: int = 0
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    significance_score: float = Field(default=0.0, ge=0.0, le=1.0)
    categories: list[str] = Field(default_factory=list)
    status: Literal["active", "emerging"]
    first_detected_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None


# ── Insights ──────────────────────────────────────────────────────────────────

class Insight(CamelModel):
    """A human-readable statement derived from the breakdowns. Never persisted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    title: str
    description: str
    strength: StrengthType
    category: Optional[str] = None


class CategoryTimeProfile(CamelModel):
    category: str
    label: str
    night_percent: int
    peak_hour: str
    peak_count: int
    total: int


# ── Responses ─────────────────────────────────────────────────────────────────

class AnalyticsEnvelope(CamelModel):
    """Response body for GET /api/v1/analytics."""

    basic_stats: BasicStats = Field(default_factory=BasicStats)
    category_breakdown: list[AggregateBucket] = Field(default_factory=list)
    country_breakdown: list[AggregateBucket] = Field(default_factory=list)
    monthly_trend: list[MonthlyTrendPoint] = Field(default_factory=list)
    credibility_breakdown: list[AggregateBucket] = Field(default_factory=list)
    time_of_day_data: list[HourBucket] = Field(default_factory=empty_hour_buckets)
    day_of_week_data: list[DayBucket] = Field(default_factory=empty_day_buckets)
    evidence_analysis: EvidenceSummary = Field(default_factory=EvidenceSummary)
    source_analysis: list[AggregateBucket] = Field(default_factory=list)
    recent_activity: list[RecentReport] = Field(default_factory=list)
    emerging_patterns: list[DetectedPattern] = Field(default_factory=list)
    witness_stats: WitnessStats = Field(default_factory=WitnessStats)
    insights: list[Insight] = Field(default_factory=list)
    resolver_status: dict[str, ResolutionPath] = Field(default_factory=dict)
    generated_at: datetime


class InsightsResponse(CamelModel):
    """Response body for GET /api/v1/analytics/insights."""

    category: Optional[str] = None
    insights: list[Insight]
    category_profile: Optional[CategoryTimeProfile] = None
    message: Optional[str] = None
    resolver_status: dict[str, ResolutionPath] = Field(default_factory=dict)
    generated_at: datetime


class PublicStats(CamelModel):
    """Response body for GET /api/v1/analytics/stats (landing-page counters)."""

    total: int
    this_month: int
    countries: int
    is_estimate: bool = False


class TrendingPatternsResponse(CamelModel):
    patterns: list[DetectedPattern]
