"""
resolver_base.py — Dual-path metric resolution with a tagged outcome.

Every metric family (category breakdown, time of day, witness stats, …)
is a MetricResolver subclass. resolve() never raises for store errors:

  1. primary  — run the named aggregation procedure (exact answer)
                → MetricOutcome(path=OPTIMIZED)
  2. fallback — capped find() scan computed in memory
                → MetricOutcome(path=DEGRADED)
                The value is a statistic over at most `row_cap` rows, NOT
                the population statistic. Callers must treat it as an
                estimate once the collection outgrows the cap.
  3. both failed → MetricOutcome(path=UNAVAILABLE) with the resolver's
                   documented default (zero counts, fully enumerated
                   hour/day buckets, empty lists).

Subclasses declare `name` (the envelope key), `procedure`, and implement
default(), from_procedure() and from_rows(). Override scan_query(),
projection or row_cap() to shape the fallback scan.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from pymongo.errors import PyMongoError

from report_analytics.models.analytics import ResolutionPath
from report_analytics.services.context import ProcedureUnavailable, ResolverContext
from report_analytics.services.procedures import run_procedure

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Numeric helpers ───────────────────────────────────────────────────────────

def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves toward +infinity, the same way JavaScript's Math.round does."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def percentage(part: int | float, whole: int | float) -> int:
    """round(part / whole * 100); 0 when whole is 0."""
    if not whole:
        return 0
    return int(round_half_up(part / whole * 100))


# ── Outcome ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MetricOutcome(Generic[T]):
    metric: str
    path: ResolutionPath
    value: T
    error: Optional[str] = None

    @property
    def is_estimate(self) -> bool:
        return self.path is ResolutionPath.DEGRADED

    @classmethod
    def optimized(cls, metric: str, value: T) -> "MetricOutcome[T]":
        return cls(metric, ResolutionPath.OPTIMIZED, value)

    @classmethod
    def degraded(cls, metric: str, value: T) -> "MetricOutcome[T]":
        return cls(metric, ResolutionPath.DEGRADED, value)

    @classmethod
    def unavailable(cls, metric: str, value: T, error: str) -> "MetricOutcome[T]":
        return cls(metric, ResolutionPath.UNAVAILABLE, value, error)


# ── Resolver ──────────────────────────────────────────────────────────────────

async def scan_reports(ctx: ResolverContext, query: dict, projection: Optional[dict], cap: int,
                       sort: Optional[tuple[str, int]] = None) -> list[dict]:
    """Bounded read of raw report rows. Never returns more than `cap` documents."""
    cursor = ctx.reports.find(query, projection)
    if sort is not None:
        cursor = cursor.sort(*sort)
    cursor = cursor.limit(cap)
    return await cursor.to_list(length=cap)


class MetricResolver(Generic[T]):
    name: str = ""
    procedure: Optional[str] = None
    projection: Optional[dict] = None
    scan_sort: Optional[tuple[str, int]] = None
    has_fallback: bool = True

    def default(self, ctx: ResolverContext) -> T:
        raise NotImplementedError

    def from_procedure(self, docs: list[dict], ctx: ResolverContext) -> T:
        raise NotImplementedError

    def from_rows(self, rows: list[dict], ctx: ResolverContext) -> T:
        raise NotImplementedError

    def scan_query(self, ctx: ResolverContext) -> dict:
        return {"status": "approved"}

    def row_cap(self, ctx: ResolverContext) -> int:
        return ctx.row_cap

    async def primary(self, ctx: ResolverContext) -> T:
        if self.procedure is None:
            raise ProcedureUnavailable(self.name, "no procedure declared")
        docs = await run_procedure(ctx, self.procedure)
        return self.from_procedure(docs, ctx)

    async def fallback(self, ctx: ResolverContext) -> T:
        rows = await scan_reports(ctx, self.scan_query(ctx), self.projection, self.row_cap(ctx), self.scan_sort)
        return self.from_rows(rows, ctx)

    async def resolve(self, ctx: ResolverContext) -> MetricOutcome[T]:
        try:
            value = await self.primary(ctx)
        except ProcedureUnavailable as exc:
            logger.debug("%s: procedure unavailable (%s), using fallback scan", self.name, exc.reason)
            reason = str(exc)
        except PyMongoError as exc:
            logger.warning("%s: procedure %s failed: %s — using fallback scan", self.name, self.procedure, exc)
            reason = str(exc)
        else:
            return MetricOutcome.optimized(self.name, value)

        if not self.has_fallback:
            return MetricOutcome.unavailable(self.name, self.default(ctx), reason)

        try:
            value = await self.fallback(ctx)
        except PyMongoError as exc:
            logger.warning("%s: fallback scan failed: %s", self.name, exc)
            return MetricOutcome.unavailable(self.name, self.default(ctx), str(exc))
        return MetricOutcome.degraded(self.name, value)


def count_into(target: dict[str, int], key: Any) -> None:
    target[key] = target.get(key, 0) + 1
