"""
procedures.py — Named server-side aggregation pipelines ("procedures").

Each metric resolver first asks MongoDB to compute its breakdown in one
bounded aggregate() call. A procedure is looked up by name in
PROCEDURES and runs against the `reports` collection with:

  • comment=<procedure name>   — visible in the profiler / currentOp
  • maxTimeMS                  — the server aborts runaway pipelines

A procedure is unavailable when it is not registered or when an
operator lists it in DISABLED_PROCEDURES (e.g. an Atlas tier that lacks
$facet, or a pipeline temporarily pulled after a slow-query incident).
Both cases raise ProcedureUnavailable; server-side failures surface as
pymongo.errors.PyMongoError. Resolvers treat either as a signal to use
the capped in-memory scan instead.

Adding a procedure
──────────────────
  1. Write a builder `def _my_metric(ctx) -> list[dict]` below.
  2. Register it in PROCEDURES under the name the resolver declares.
  3. Give the resolver a from_procedure() that shapes the output docs.
"""

import logging
from typing import Callable

from report_analytics.services.context import ProcedureUnavailable, ResolverContext

logger = logging.getLogger(__name__)

APPROVED = {"$match": {"status": "approved"}}
_HAS_COUNTRY = {"country": {"$nin": [None, ""]}}


def _count_facet(match: dict) -> list[dict]:
    return [{"$match": match}, {"$count": "n"}]


def _flag(field: str) -> dict:
    return {"$cond": [{"$eq": [f"${field}", True]}, 1, 0]}


def _group_by(key_expr, extra_match: dict | None = None, limit: int | None = None) -> list[dict]:
    stages = [APPROVED]
    if extra_match:
        stages.append({"$match": extra_match})
    stages += [
        {"$group": {"_id": key_expr, "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
    ]
    if limit:
        stages.append({"$limit": limit})
    return stages


# ── Builders ──────────────────────────────────────────────────────────────────

def _basic_stats(ctx: ResolverContext) -> list[dict]:
    this_month = ctx.month_start(0)
    last_month = ctx.month_start(1)
    return [
        APPROVED,
        {"$facet": {
            "total":     [{"$count": "n"}],
            "views":     [{"$group": {"_id": None, "n": {"$sum": {"$ifNull": ["$view_count", 0]}}}}],
            "countries": [{"$match": _HAS_COUNTRY}, {"$group": {"_id": "$country"}}, {"$count": "n"}],
            "thisMonth": _count_facet({"created_at": {"$gte": this_month}}),
            "lastMonth": _count_facet({"created_at": {"$gte": last_month, "$lt": this_month}}),
            "last24h":   _count_facet({"created_at": {"$gte": ctx.since(hours=24)}}),
            "last7d":    _count_facet({"created_at": {"$gte": ctx.since(days=7)}}),
        }},
    ]


def _category_breakdown(ctx: ResolverContext) -> list[dict]:
    return _group_by("$category")


def _country_breakdown(ctx: ResolverContext) -> list[dict]:
    return _group_by("$country", extra_match=_HAS_COUNTRY, limit=15)


def _credibility_breakdown(ctx: ResolverContext) -> list[dict]:
    return _group_by({"$ifNull": ["$credibility", "unverified"]})


def _source_analysis(ctx: ResolverContext) -> list[dict]:
    return _group_by({"$ifNull": ["$source_type", "user_submission"]})


def _monthly_trend(ctx: ResolverContext) -> list[dict]:
    return [
        APPROVED,
        {"$match": {"created_at": {"$gte": ctx.month_start(11)}}},
        {"$group": {
            "_id": {
                "month": {"$dateToString": {
                    "format": "%Y-%m", "date": "$created_at", "timezone": ctx.tz_name,
                }},
                "category": "$category",
            },
            "count": {"$sum": 1},
        }},
    ]


def _time_of_day(ctx: ResolverContext) -> list[dict]:
    hour_expr = {"$convert": {
        "input": {"$arrayElemAt": [{"$split": ["$event_time", ":"]}, 0]},
        "to": "int",
        "onError": -1,
        "onNull": -1,
    }}
    return [
        APPROVED,
        {"$match": {"event_time": {"$nin": [None, ""]}}},
        {"$project": {"category": 1, "hour": hour_expr}},
        {"$match": {"hour": {"$gte": 0, "$lt": 24}}},
        {"$group": {"_id": {"hour": "$hour", "category": "$category"}, "count": {"$sum": 1}}},
    ]


def _day_of_week(ctx: ResolverContext) -> list[dict]:
    # Date strings carry a calendar date; full datetimes are shifted to ctx.tz.
    day_expr = {"$cond": [
        {"$eq": [{"$type": "$event_date"}, "string"]},
        {"$dayOfWeek": {"date": {"$dateFromString": {
            "dateString": {"$substrCP": ["$event_date", 0, 10]},
            "format": "%Y-%m-%d",
            "onError": None,
        }}}},
        {"$dayOfWeek": {"date": "$event_date", "timezone": ctx.tz_name}},
    ]}
    return [
        APPROVED,
        {"$match": {"event_date": {"$ne": None}}},
        {"$project": {"category": 1, "day": day_expr}},
        {"$match": {"day": {"$ne": None}}},
        # $dayOfWeek is 1 = Sunday … 7 = Saturday
        {"$group": {
            "_id": {"day": {"$subtract": ["$day", 1]}, "category": "$category"},
            "count": {"$sum": 1},
        }},
    ]


def _evidence_analysis(ctx: ResolverContext) -> list[dict]:
    any_evidence = {"$cond": [{"$or": [
        {"$eq": ["$has_photo_video", True]},
        {"$eq": ["$has_physical_evidence", True]},
        {"$eq": ["$has_official_report", True]},
    ]}, 1, 0]}
    return [
        APPROVED,
        {"$group": {
            "_id": None,
            "total": {"$sum": 1},
            "photo": {"$sum": _flag("has_photo_video")},
            "physical": {"$sum": _flag("has_physical_evidence")},
            "official": {"$sum": _flag("has_official_report")},
            "any": {"$sum": any_evidence},
        }},
    ]


def _witness_stats(ctx: ResolverContext) -> list[dict]:
    witnesses = {"$ifNull": ["$witness_count", 0]}
    return [
        APPROVED,
        {"$group": {
            "_id": None,
            "total": {"$sum": 1},
            "witnesses": {"$sum": witnesses},
            "multiple": {"$sum": {"$cond": [{"$gt": [witnesses, 1]}, 1, 0]}},
            "submitter": {"$sum": _flag("submitter_was_witness")},
            "anonymous": {"$sum": _flag("anonymous_submission")},
        }},
    ]


PROCEDURES: dict[str, Callable[[ResolverContext], list[dict]]] = {
    "get_basic_stats": _basic_stats,
    "get_category_breakdown": _category_breakdown,
    "get_country_breakdown": _country_breakdown,
    "get_monthly_trend": _monthly_trend,
    "get_credibility_breakdown": _credibility_breakdown,
    "get_time_of_day": _time_of_day,
    "get_day_of_week": _day_of_week,
    "get_evidence_analysis": _evidence_analysis,
    "get_source_analysis": _source_analysis,
    "get_witness_stats": _witness_stats,
}


async def run_procedure(ctx: ResolverContext, name: str) -> list[dict]:
    """
    Execute a named procedure and return its output documents.

    Raises ProcedureUnavailable when the procedure is disabled or unknown.
    Server errors propagate as PyMongoError.
    """
    if name in ctx.disabled_procedures:
        raise ProcedureUnavailable(name, "disabled by configuration")
    builder = PROCEDURES.get(name)
    if builder is None:
        raise ProcedureUnavailable(name, "not registered")

    cursor = ctx.reports.aggregate(
        builder(ctx),
        comment=name,
        maxTimeMS=ctx.procedure_max_time_ms,
    )
    return await cursor.to_list(length=None)
