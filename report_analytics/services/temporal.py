"""
temporal.py — Time-shaped metric resolvers.

  timeOfDayData   24 hourly buckets (0–23) from `event_time` ("HH:MM")
  dayOfWeekData   7 day buckets (0 = Sunday) from `event_date`
  monthlyTrend    trailing 12 calendar months from `created_at`, oldest first

Every bucket set is fully enumerated, zero-filled, whatever the data
(and whichever path produced it). Each bucket carries a byCategory
sub-count so the insight engine can re-derive figures for one category.

Records lacking event_time / event_date are excluded from that breakdown
only; they still count everywhere else.
"""

import logging
from datetime import date, datetime
from typing import Any, Optional

from report_analytics.models.analytics import (
    DayBucket,
    HourBucket,
    MonthlyTrendPoint,
    empty_day_buckets,
    empty_hour_buckets,
)
from report_analytics.services.context import ResolverContext, as_aware
from report_analytics.services.resolver_base import MetricResolver

logger = logging.getLogger(__name__)

_MONTH_ABBR = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
TREND_MONTHS = 12


def parse_hour(value: Any) -> Optional[int]:
    """Hour from an "HH:MM[:SS]" string; None when missing or out of range."""
    if not isinstance(value, str) or not value:
        return None
    try:
        hour = int(value.split(":", 1)[0])
    except ValueError:
        return None
    return hour if 0 <= hour < 24 else None


def parse_weekday(value: Any, ctx: ResolverContext) -> Optional[int]:
    """0 = Sunday … 6 = Saturday. Datetimes are shifted to ctx.tz first."""
    if isinstance(value, datetime):
        day = as_aware(value).astimezone(ctx.tz).date()
    elif isinstance(value, date):
        day = value
    elif isinstance(value, str) and value:
        try:
            day = date.fromisoformat(value[:10])
        except ValueError:
            return None
    else:
        return None
    return (day.weekday() + 1) % 7


def _add(bucket, category: Optional[str], count: int = 1) -> None:
    bucket.count += count
    if category:
        bucket.by_category[category] = bucket.by_category.get(category, 0) + count


def _grouped(docs: list[dict], key: str):
    """Yield (key value, category, count) from {_id: {key, category}, count} docs."""
    for d in docs:
        ident = d.get("_id") or {}
        yield ident.get(key), ident.get("category"), int(d.get("count", 0))


# ── Time of day ───────────────────────────────────────────────────────────────

class TimeOfDayResolver(MetricResolver[list[HourBucket]]):
    name = "timeOfDayData"
    procedure = "get_time_of_day"
    projection = {"event_time": 1, "category": 1}

    def default(self, ctx):
        return empty_hour_buckets()

    def row_cap(self, ctx):
        return ctx.time_of_day_row_cap

    def scan_query(self, ctx):
        return {"status": "approved", "event_time": {"$nin": [None, ""]}}

    def from_procedure(self, docs, ctx):
        buckets = empty_hour_buckets()
        for hour, category, count in _grouped(docs, "hour"):
            if isinstance(hour, int) and 0 <= hour < 24:
                _add(buckets[hour], category, count)
        return buckets

    def from_rows(self, rows, ctx):
        buckets = empty_hour_buckets()
        for r in rows:
            hour = parse_hour(r.get("event_time"))
            if hour is not None:
                _add(buckets[hour], r.get("category"))
        return buckets


# ── Day of week ───────────────────────────────────────────────────────────────

class DayOfWeekResolver(MetricResolver[list[DayBucket]]):
    name = "dayOfWeekData"
    procedure = "get_day_of_week"
    projection = {"event_date": 1, "category": 1}

    def default(self, ctx):
        return empty_day_buckets()

    def scan_query(self, ctx):
        return {"status": "approved", "event_date": {"$ne": None}}

    def from_procedure(self, docs, ctx):
        buckets = empty_day_buckets()
        for day, category, count in _grouped(docs, "day"):
            if isinstance(day, int) and 0 <= day < 7:
                _add(buckets[day], category, count)
        return buckets

    def from_rows(self, rows, ctx):
        buckets = empty_day_buckets()
        for r in rows:
            day = parse_weekday(r.get("event_date"), ctx)
            if day is not None:
                _add(buckets[day], r.get("category"))
        return buckets


# ── Monthly trend ─────────────────────────────────────────────────────────────

def empty_trend(ctx: ResolverContext) -> list[MonthlyTrendPoint]:
    points = []
    for back in range(TREND_MONTHS - 1, -1, -1):
        start = ctx.month_start(back)
        points.append(MonthlyTrendPoint(
            month_key=f"{start.year:04d}-{start.month:02d}",
            label=f"{_MONTH_ABBR[start.month - 1]} {start.year % 100:02d}",
        ))
    return points


class MonthlyTrendResolver(MetricResolver[list[MonthlyTrendPoint]]):
    name = "monthlyTrend"
    procedure = "get_monthly_trend"
    projection = {"created_at": 1, "category": 1}
    # Newest rows first so a capped scan covers the most recent months.
    scan_sort = ("created_at", -1)

    def default(self, ctx):
        return empty_trend(ctx)

    def scan_query(self, ctx):
        return {"status": "approved", "created_at": {"$gte": ctx.month_start(TREND_MONTHS - 1)}}

    def from_procedure(self, docs, ctx):
        points = empty_trend(ctx)
        by_key = {p.month_key: p for p in points}
        for month, category, count in _grouped(docs, "month"):
            if month in by_key:
                _add(by_key[month], category, count)
        return points

    def from_rows(self, rows, ctx):
        points = empty_trend(ctx)
        by_key = {p.month_key: p for p in points}
        for r in rows:
            created = r.get("created_at")
            if not isinstance(created, datetime):
                continue
            local = as_aware(created).astimezone(ctx.tz)
            point = by_key.get(f"{local.year:04d}-{local.month:02d}")
            if point is not None:
                _add(point, r.get("category"))
        return points
