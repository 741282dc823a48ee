"""
analytics.py — Dashboard analytics routes.

Routes:
  GET  /api/v1/analytics           — full envelope: every breakdown + insights
  GET  /api/v1/analytics/insights  — insight cards, optionally for one category
  GET  /api/v1/analytics/stats     — landing-page counters (total, month, countries)

All three are read-only and recompute from MongoDB on every call. A short
shared-cache lifetime is advertised (Cache-Control s-maxage) so a CDN can
absorb dashboard polling.

Status codes:
  200 — always when the database is reachable; individual metrics that
        could not be computed fall back to their defaults and are flagged
        in resolverStatus
  503 — MongoDB is not connected (retryable)
  500 — unexpected failure outside any single resolver
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from report_analytics.core.config import settings
from report_analytics.core.database import get_db
from report_analytics.core.rate_limit import limiter
from report_analytics.models.analytics import (
    AnalyticsEnvelope,
    InsightsResponse,
    PublicStats,
    ResolutionPath,
)
from report_analytics.services.breakdowns import BasicStatsResolver
from report_analytics.services.context import ResolverContext
from report_analytics.services.gateway import AggregationGateway
from report_analytics.services.insight_engine import (
    InsightInputs,
    category_time_profile,
    derive_insights,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])

NOT_ENOUGH_DATA = "Not enough data to surface insights yet."


def get_gateway() -> AggregationGateway:
    """FastAPI dependency — tests override this to inject custom resolvers."""
    return AggregationGateway()


def _context(db) -> ResolverContext:
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return ResolverContext.from_settings(db, settings)


def _set_cache_headers(response: Response) -> None:
    response.headers["Cache-Control"] = (
        f"public, s-maxage={settings.analytics_cache_seconds}, stale-while-revalidate"
    )


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("", response_model=AnalyticsEnvelope)
@limiter.limit(settings.analytics_rate_limit)
async def get_analytics(
    request: Request,
    response: Response,
    db=Depends(get_db),
    gateway: AggregationGateway = Depends(get_gateway),
):
    """
    Return every breakdown plus the unfiltered insight cards.

    Metrics computed on the fallback path are estimates over a capped
    sample; see resolverStatus ("optimized" | "degraded" | "unavailable").
    """
    ctx = _context(db)
    try:
        envelope = await gateway.collect(ctx)
    except Exception:
        logger.exception("Analytics aggregation failed")
        raise HTTPException(status_code=500, detail="Failed to fetch analytics")

    _set_cache_headers(response)
    return envelope


@router.get("/insights", response_model=InsightsResponse)
@limiter.limit(settings.analytics_rate_limit)
async def get_insights(
    request: Request,
    response: Response,
    # Category key such as "ufos_aliens"; omit or "all" for every category.
    category: Optional[str] = Query(default=None, max_length=64),
    db=Depends(get_db),
    gateway: AggregationGateway = Depends(get_gateway),
):
    """Insight cards, re-derived for one category when `category` is given."""
    ctx = _context(db)
    selected = None if not category or category.lower() == "all" else category
    try:
        envelope = await gateway.collect_for_insights(ctx)
    except Exception:
        logger.exception("Insight aggregation failed")
        raise HTTPException(status_code=500, detail="Failed to fetch insights")

    insights = derive_insights(InsightInputs.from_envelope(envelope), category=selected)
    profile = category_time_profile(envelope.time_of_day_data, selected) if selected else None

    _set_cache_headers(response)
    return InsightsResponse(
        category=selected,
        insights=insights,
        category_profile=profile,
        message=None if insights else NOT_ENOUGH_DATA,
        resolver_status=envelope.resolver_status,
        generated_at=envelope.generated_at,
    )


@router.get("/stats", response_model=PublicStats)
@limiter.limit(settings.analytics_rate_limit)
async def get_public_stats(
    request: Request,
    response: Response,
    db=Depends(get_db),
    gateway: AggregationGateway = Depends(get_gateway),
):
    """Headline counters for the landing page; isEstimate is set off the exact path."""
    ctx = _context(db)
    try:
        envelope = await gateway.collect_subset(ctx, [BasicStatsResolver.name])
    except Exception:
        logger.exception("Stats aggregation failed")
        raise HTTPException(status_code=500, detail="Failed to fetch stats")
    stats = envelope.basic_stats

    _set_cache_headers(response)
    return PublicStats(
        total=stats.total_reports,
        this_month=stats.this_month_reports,
        countries=stats.countries_count,
        is_estimate=envelope.resolver_status[BasicStatsResolver.name] is not ResolutionPath.OPTIMIZED,
    )
