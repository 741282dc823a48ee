"""
patterns.py — Trending pattern routes.

Routes:
  GET  /api/v1/patterns/trending?limit=5  — active / emerging patterns, most significant first

Patterns are written by the offline detection job. Until that job has run
the collection does not exist and this route returns an empty list.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, Response

from report_analytics.core.config import settings
from report_analytics.core.database import get_db
from report_analytics.core.rate_limit import limiter
from report_analytics.models.analytics import TrendingPatternsResponse
from report_analytics.services.pattern_registry import PatternRegistryReader

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/patterns", tags=["patterns"])


@router.get("/trending", response_model=TrendingPatternsResponse)
@limiter.limit(settings.analytics_rate_limit)
async def trending_patterns(
    request: Request,
    response: Response,
    limit: int = Query(default=5, ge=1, le=20),
    db=Depends(get_db),
):
    """Return up to `limit` live patterns; empty when the registry is absent or the DB is down."""
    if db is None:
        return TrendingPatternsResponse(patterns=[])

    patterns = await PatternRegistryReader(limit=limit).read(db)
    response.headers["Cache-Control"] = (
        f"public, s-maxage={settings.analytics_cache_seconds}, stale-while-revalidate"
    )
    return TrendingPatternsResponse(patterns=patterns)
