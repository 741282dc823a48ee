"""
context.py — Per-request inputs shared by every metric resolver.

The time zone and the reference instant are explicit so month
boundaries, monthly trend keys and weekday derivation never depend on
the host clock's zone. Tests build a ResolverContext directly with a
fixed `now`.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Optional

from report_analytics.core.config import Settings
from report_analytics.core.database import PATTERNS_COLLECTION, REPORTS_COLLECTION


class ProcedureUnavailable(Exception):
    """A precomputed aggregation procedure is not provisioned for this metric."""

    def __init__(self, name: str, reason: str = "not provisioned"):
        super().__init__(f"{name}: {reason}")
        self.name = name
        self.reason = reason


@dataclass(frozen=True)
class ResolverContext:
    db: Any
    tz: tzinfo
    now: datetime
    row_cap: int = 10_000
    time_of_day_row_cap: int = 5_000
    disabled_procedures: frozenset[str] = field(default_factory=frozenset)
    procedure_max_time_ms: int = 5_000

    @classmethod
    def from_settings(cls, db, settings: Settings, now: Optional[datetime] = None) -> "ResolverContext":
        tz = settings.tz
        now = now or datetime.now(tz=timezone.utc)
        return cls(
            db=db,
            tz=tz,
            now=now.astimezone(tz),
            row_cap=settings.fallback_row_cap,
            time_of_day_row_cap=settings.time_of_day_row_cap,
            disabled_procedures=settings.disabled_procedures,
            procedure_max_time_ms=settings.procedure_max_time_ms,
        )

    @property
    def reports(self):
        return self.db[REPORTS_COLLECTION]

    @property
    def patterns(self):
        return self.db[PATTERNS_COLLECTION]

    @property
    def tz_name(self) -> str:
        # ZoneInfo exposes .key; datetime.timezone.utc does not.
        return getattr(self.tz, "key", None) or "UTC"

    def month_start(self, months_back: int = 0) -> datetime:
        """Midnight on day 1 of the calendar month `months_back` before now, in ctx.tz."""
        year, month = self.now.year, self.now.month - months_back
        while month <= 0:
            month += 12
            year -= 1
        return datetime(year, month, 1, tzinfo=self.tz)

    def since(self, **delta) -> datetime:
        """Instant `delta` ago in elapsed time; UTC so DST changes never stretch the window."""
        return self.now.astimezone(timezone.utc) - timedelta(**delta)


def as_aware(value: datetime) -> datetime:
    """PyMongo hands back naive UTC datetimes unless tz_aware is set."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
