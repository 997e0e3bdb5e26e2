from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence

from funnel_analytics.models_funnel_events import (
    FunnelEvent,
    FunnelEventType,
    FunnelMetrics,
    FunnelStep,
    MicroInsight,
)
from funnel_analytics.utils.analytics_config import MIN_QUOTES_FOR_INSIGHTS, SMALL_LAWN_SQFT

MAX_INSIGHTS = 2
CONVERSION_DROP_THRESHOLD_PTS = -1.0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _small_lawn_insight(
    events: Iterable[FunnelEvent],
    *,
    min_quotes: int,
    small_lawn_sqft: float,
) -> Optional[MicroInsight]:
    completed = [e for e in events if e.event_type == FunnelEventType.QUOTE_COMPLETED]
    if len(completed) < min_quotes:
        return None
    small = sum(1 for e in completed if e.lawn_size is not None and e.lawn_size < small_lawn_sqft)
    pct = _round_half_up(small / len(completed) * 100.0)
    return MicroInsight(text=f"{pct}% of quotes are under {small_lawn_sqft:,.0f} sq ft.")


def _conversion_drop_insight(
    metrics: FunnelMetrics,
    baseline_deposit_conversion: Optional[float],
) -> Optional[MicroInsight]:
    if baseline_deposit_conversion is None:
        return None
    diff = metrics.deposit_conversion_rate - baseline_deposit_conversion
    if diff >= CONVERSION_DROP_THRESHOLD_PTS:
        return None
    return MicroInsight(
        text=f"Deposit conversion is {abs(diff):.1f} percentage points below your rolling average."
    )


def _largest_drop_step(steps: Sequence[FunnelStep]) -> Optional[FunnelStep]:
    worst: Optional[FunnelStep] = None
    worst_value = 0.0
    for step in steps:
        value = step.conversion_from_previous
        if value is None or value >= 100:
            continue
        if worst is None or value < worst_value:
            worst, worst_value = step, value
    return worst


def generate_micro_insights(
    events: Iterable[FunnelEvent],
    metrics: FunnelMetrics,
    steps: Sequence[FunnelStep],
    baseline_deposit_conversion: Optional[float],
    *,
    min_quotes: int = MIN_QUOTES_FOR_INSIGHTS,
    small_lawn_sqft: float = SMALL_LAWN_SQFT,
) -> List[MicroInsight]:
    """
    Up to two short observations, in candidate order:
    small-lawn share, deposit conversion below baseline, largest funnel drop-off.
    """
    if metrics.quotes_completed < min_quotes:
        return []

    candidates = [
        _small_lawn_insight(events, min_quotes=min_quotes, small_lawn_sqft=small_lawn_sqft),
        _conversion_drop_insight(metrics, baseline_deposit_conversion),
    ]
    drop_step = _largest_drop_step(steps)
    if drop_step is not None:
        candidates.append(MicroInsight(text=f'Most drop-off occurs at the "{drop_step.label}" step.'))
    return [c for c in candidates if c is not None][:MAX_INSIGHTS]
