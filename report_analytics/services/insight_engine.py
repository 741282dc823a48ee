"""
insight_engine.py — Turns aggregate breakdowns into ranked insight cards.

Pure, synchronous, deterministic: no I/O, no clock. Given the same
breakdowns and category it always returns the same list.

USAGE
─────
    from report_analytics.services.insight_engine import InsightInputs, derive_insights

    inputs = InsightInputs.from_envelope(envelope)
    insights = derive_insights(inputs)                       # all categories
    insights = derive_insights(inputs, category="cryptids")  # one category

RULES (appended in this order, never re-sorted by strength)
───────────────────────────────────────────────────────────
  1. Nighttime Dominance / Evening Peak — share of reports 9pm–5am
  2. Weekend Spike                      — Sat+Sun vs a uniform 2/7 share
  3. Category Dominance                 — top category share (unfiltered only)
  4. High Credibility Rate              — high + confirmed share
  5. Peak Hour                          — busiest hour vs the hourly mean

Denominator: the sum of the category breakdown, or the selected
category's count when filtering. Hour/day counts come from each bucket's
byCategory map when filtering. An empty list means "not enough data".

All numeric cut-offs live in InsightThresholds.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from report_analytics.models.analytics import (
    AggregateBucket,
    CategoryTimeProfile,
    DayBucket,
    HourBucket,
    Insight,
)
from report_analytics.services.resolver_base import percentage, round_half_up

CATEGORY_LABELS = {
    "ufos_aliens": "UFOs & Aliens",
    "cryptids": "Cryptids",
    "ghosts_hauntings": "Ghosts & Hauntings",
    "psychic_phenomena": "Psychic Phenomena",
    "consciousness_practices": "Consciousness Practices",
    "psychological_experiences": "Psychological Experiences",
    "biological_factors": "Biological Factors",
    "perception_sensory": "Perception & Sensory",
    "religion_mythology": "Religion & Mythology",
    "esoteric_practices": "Esoteric Practices",
    "combination": "Multi-Disciplinary",
}

# Night is 21:00–04:59.
NIGHT_START_HOUR = 21
NIGHT_END_HOUR = 5
WEEKEND_DAYS = (0, 6)


@dataclass(frozen=True)
class InsightThresholds:
    night_strong_pct: int = 60
    night_moderate_pct: int = 40
    weekend_ratio: float = 1.2
    weekend_strong_ratio: float = 1.4
    category_dominance_pct: int = 50
    credibility_pct: int = 20
    credibility_strong_pct: int = 30
    peak_ratio: float = 2.0
    peak_strong_ratio: float = 3.0


DEFAULT_THRESHOLDS = InsightThresholds()


@dataclass(frozen=True)
class InsightInputs:
    time_of_day: Sequence[HourBucket]
    day_of_week: Sequence[DayBucket]
    categories: Sequence[AggregateBucket]
    credibility: Sequence[AggregateBucket]

    @classmethod
    def from_envelope(cls, envelope) -> InsightInputs:
        return cls(
            time_of_day=envelope.time_of_day_data,
            day_of_week=envelope.day_of_week_data,
            categories=envelope.category_breakdown,
            credibility=envelope.credibility_breakdown,
        )


# ── Helpers ───────────────────────────────────────────────────────────────────

def category_label(category: str) -> str:
    return CATEGORY_LABELS.get(category, category)


def hour_label(hour: int) -> str:
    """12-hour clock label: 0 → '12 AM', 13 → '1 PM'."""
    if hour == 0:
        return "12 AM"
    if hour < 12:
        return f"{hour} AM"
    if hour == 12:
        return "12 PM"
    return f"{hour - 12} PM"


def is_night(hour: int) -> bool:
    return hour >= NIGHT_START_HOUR or hour < NIGHT_END_HOUR


def _bucket_count(bucket, category: Optional[str]) -> int:
    if category is None:
        return bucket.count
    return bucket.by_category.get(category, 0)


def _total(categories: Sequence[AggregateBucket], category: Optional[str]) -> int:
    if category is None:
        return sum(c.count for c in categories)
    return next((c.count for c in categories if c.key == category), 0)


def _suffix(label: str) -> str:
    return f" ({label})" if label else ""


# ── Rules ─────────────────────────────────────────────────────────────────────

def _night_rule(inputs, category, label, total, t) -> Optional[Insight]:
    night = sum(_bucket_count(b, category) for b in inputs.time_of_day if is_night(b.hour))
    night_pct = percentage(night, total)
    if night_pct > t.night_strong_pct:
        return Insight(
            title=f"Nighttime Dominance{_suffix(label)}",
            description=(
                f"{night_pct}% of {label or 'all'} sightings occur at night (9pm-5am), "
                "when darker skies make aerial phenomena easier to spot."
            ),
            strength="strong",
            category=category,
        )
    if night_pct > t.night_moderate_pct:
        return Insight(
            title=f"Evening Peak Activity{_suffix(label)}",
            description=(
                f"{label or 'All'} sightings are fairly spread out, with {night_pct}% at night. "
                "Activity tends to cluster around twilight."
            ),
            strength="moderate",
            category=category,
        )
    return None


def _weekend_rule(inputs, category, label, total, t) -> Optional[Insight]:
    weekend = sum(_bucket_count(b, category) for b in inputs.day_of_week if b.day in WEEKEND_DAYS)
    expected = total * (2 / 7)
    ratio = weekend / expected if expected > 0 else 1
    if ratio <= t.weekend_ratio:
        return None
    above = int(round_half_up((ratio - 1) * 100))
    return Insight(
        title=f"Weekend Spike{_suffix(label)}",
        description=(
            f"{label or 'All'} reports are {above}% higher on weekends, "
            "when more people are outdoors with time to observe and report."
        ),
        strength="strong" if ratio > t.weekend_strong_ratio else "moderate",
        category=category,
    )


def _category_rule(inputs, category, label, total, t) -> Optional[Insight]:
    if category is not None or not inputs.categories:
        return None
    all_total = sum(c.count for c in inputs.categories)
    top = max(inputs.categories, key=lambda c: c.count)
    top_pct = percentage(top.count, all_total)
    if top_pct <= t.category_dominance_pct:
        return None
    top_label = category_label(top.key)
    return Insight(
        title=f"{top_label} Dominance",
        description=(
            f"{top_pct}% of all reports are {top_label} sightings, "
            "far outweighing every other category."
        ),
        strength="strong",
        category=top.key,
    )


def _credibility_rule(inputs, category, label, total, t) -> Optional[Insight]:
    cred_total = sum(c.count for c in inputs.credibility)
    high = sum(c.count for c in inputs.credibility if c.key in ("high", "confirmed"))
    if high == 0 or cred_total == 0:
        return None
    high_pct = percentage(high, cred_total)
    if high_pct <= t.credibility_pct:
        return None
    return Insight(
        title="High Credibility Rate",
        description=(
            f"{high_pct}% of reports have high or confirmed credibility, "
            "pointing to well-supported submissions."
        ),
        strength="strong" if high_pct > t.credibility_strong_pct else "moderate",
    )


def _peak_hour_rule(inputs, category, label, total, t) -> Optional[Insight]:
    if not inputs.time_of_day:
        return None
    # First hour with the maximal count wins ties.
    peak = inputs.time_of_day[0]
    for bucket in inputs.time_of_day[1:]:
        if _bucket_count(bucket, category) > _bucket_count(peak, category):
            peak = bucket
    peak_count = _bucket_count(peak, category)
    mean = total / 24
    ratio = peak_count / mean if mean > 0 else 1
    if ratio <= t.peak_ratio or peak_count <= 0:
        return None
    when = hour_label(peak.hour)
    return Insight(
        title=f"{when} Peak Hour{_suffix(label)}",
        description=(
            f"{label or 'All'} activity runs {int(round_half_up(ratio))}x above the hourly average at {when}, "
            f"the busiest hour for {label or 'reported'} sightings."
        ),
        strength="strong" if ratio > t.peak_strong_ratio else "moderate",
        category=category,
    )


_RULES = (_night_rule, _weekend_rule, _category_rule, _credibility_rule, _peak_hour_rule)


def derive_insights(
    inputs: InsightInputs,
    category: Optional[str] = None,
    thresholds: InsightThresholds = DEFAULT_THRESHOLDS,
) -> list[Insight]:
    """Apply every rule in order; return the insights whose condition held."""
    if category in ("", "all"):
        category = None
    total = _total(inputs.categories, category)
    if total == 0:
        return []
    label = category_label(category) if category else ""

    insights = []
    for rule in _RULES:
        insight = rule(inputs, category, label, total, thresholds)
        if insight is not None:
            insights.append(insight)
    return insights


def category_time_profile(time_of_day: Sequence[HourBucket], category: str) -> Optional[CategoryTimeProfile]:
    """Night share and busiest hour for one category; None without timed reports."""
    counts = [(b.hour, b.by_category.get(category, 0)) for b in time_of_day]
    total = sum(c for _, c in counts)
    if total == 0:
        return None
    night = sum(c for h, c in counts if is_night(h))
    peak_hour, peak_count = counts[0]
    for hour, count in counts[1:]:
        if count > peak_count:
            peak_hour, peak_count = hour, count
    return CategoryTimeProfile(
        category=category,
        label=category_label(category),
        night_percent=percentage(night, total),
        peak_hour=hour_label(peak_hour),
        peak_count=peak_count,
        total=total,
    )
