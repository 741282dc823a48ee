"""
gateway.py — Fans out every metric resolver and assembles the envelope.

Each resolver runs as its own asyncio task, bounded by
RESOLVER_TIMEOUT_SECONDS, and the join is "settle all, then inspect":

    results = await asyncio.gather(*units, return_exceptions=True)

A resolver that times out or raises something unexpected is logged and
replaced by its documented default (an UNAVAILABLE outcome). The other
resolvers' answers are kept and the request still gets a full envelope.
resolverStatus tells the caller which metrics are exact, estimated or
missing.

USAGE
─────
    ctx = ResolverContext.from_settings(db, settings)
    envelope = await AggregationGateway().collect(ctx)
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from report_analytics.core.config import settings
from report_analytics.models.analytics import AnalyticsEnvelope
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
from report_analytics.services.insight_engine import InsightInputs, derive_insights
from report_analytics.services.pattern_registry import EmergingPatternsResolver
from report_analytics.services.resolver_base import MetricOutcome, MetricResolver
from report_analytics.services.temporal import DayOfWeekResolver, MonthlyTrendResolver, TimeOfDayResolver

logger = logging.getLogger(__name__)

# The breakdowns the insight engine reads.
INSIGHT_METRICS = frozenset({"timeOfDayData", "dayOfWeekData", "categoryBreakdown", "credibilityBreakdown"})


def default_resolvers() -> list[MetricResolver]:
    return [
        BasicStatsResolver(),
        CategoryBreakdownResolver(),
        CountryBreakdownResolver(),
        MonthlyTrendResolver(),
        CredibilityBreakdownResolver(),
        TimeOfDayResolver(),
        DayOfWeekResolver(),
        EvidenceAnalysisResolver(),
        SourceAnalysisResolver(),
        RecentActivityResolver(),
        EmergingPatternsResolver(limit=settings.emerging_pattern_limit),
        WitnessStatsResolver(),
    ]


class AggregationGateway:
    def __init__(self, resolvers: Optional[list[MetricResolver]] = None, timeout: Optional[float] = None):
        self.resolvers = resolvers if resolvers is not None else default_resolvers()
        self.timeout = timeout if timeout is not None else settings.resolver_timeout_seconds

    async def _run(self, resolver: MetricResolver, ctx: ResolverContext) -> MetricOutcome:
        return await asyncio.wait_for(resolver.resolve(ctx), timeout=self.timeout)

    async def settle(self, ctx: ResolverContext, names: Optional[Iterable[str]] = None) -> dict[str, MetricOutcome]:
        """Run the selected resolvers concurrently; one outcome per resolver, never raises for a single failure."""
        wanted = set(names) if names is not None else None
        selected = [r for r in self.resolvers if wanted is None or r.name in wanted]

        results = await asyncio.gather(*(self._run(r, ctx) for r in selected), return_exceptions=True)

        outcomes: dict[str, MetricOutcome] = {}
        for resolver, result in zip(selected, results):
            if isinstance(result, MetricOutcome):
                outcomes[resolver.name] = result
                continue
            if isinstance(result, asyncio.TimeoutError):
                logger.warning("%s: resolver timed out after %.1fs", resolver.name, self.timeout)
                error = f"timed out after {self.timeout}s"
            elif isinstance(result, Exception):
                logger.error("%s: resolver failed", resolver.name, exc_info=result)
                error = f"{type(result).__name__}: {result}"
            else:
                # CancelledError and friends are not ours to swallow.
                raise result
            outcomes[resolver.name] = MetricOutcome.unavailable(resolver.name, resolver.default(ctx), error)
        return outcomes

    @staticmethod
    def assemble(outcomes: dict[str, MetricOutcome]) -> AnalyticsEnvelope:
        envelope = AnalyticsEnvelope.model_validate({
            **{name: outcome.value for name, outcome in outcomes.items()},
            "resolverStatus": {name: outcome.path for name, outcome in outcomes.items()},
            "generatedAt": datetime.now(tz=timezone.utc),
        })
        envelope.insights = derive_insights(InsightInputs.from_envelope(envelope))
        return envelope

    async def collect(self, ctx: ResolverContext) -> AnalyticsEnvelope:
        """Full analytics envelope, including the unfiltered insights."""
        outcomes = await self.settle(ctx)
        degraded = [name for name, o in outcomes.items() if o.is_estimate]
        if degraded:
            logger.info("Analytics served with fallback estimates for: %s", ", ".join(sorted(degraded)))
        return self.assemble(outcomes)

    async def collect_subset(self, ctx: ResolverContext, names: Iterable[str]) -> AnalyticsEnvelope:
        """Envelope with only the named metrics resolved; the rest keep their empty defaults."""
        return self.assemble(await self.settle(ctx, names))

    async def collect_for_insights(self, ctx: ResolverContext) -> AnalyticsEnvelope:
        return await self.collect_subset(ctx, INSIGHT_METRICS)
