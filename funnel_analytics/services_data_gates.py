"""Minimum-data gates deciding whether a dashboard visualization is shown."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from funnel_analytics.models_funnel_events import DataGateResult, FunnelEvent
from funnel_analytics.utils.analytics_config import (
    BASELINE_MIN_SPAN_DAYS,
    FUNNEL_MIN_COMPLETED_QUOTES,
    TREND_CHART_MIN_SPAN_DAYS,
)

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA_MESSAGE = "Insufficient data"
BASELINE_FORMING_MESSAGE = "Baseline forming"

_SECONDS_PER_DAY = 86400.0


def event_span_days(events: Iterable[FunnelEvent]) -> Optional[float]:
    """Days between the oldest and newest event; None for no events."""
    oldest = newest = None
    for event in events:
        ts = event.timestamp
        if oldest is None or ts < oldest:
            oldest = ts
        if newest is None or ts > newest:
            newest = ts
    if oldest is None or newest is None:
        return None
    return (newest - oldest).total_seconds() / _SECONDS_PER_DAY


def has_minimum_span(events: Iterable[FunnelEvent], min_days: float) -> bool:
    span = event_span_days(events)
    return span is not None and span >= min_days


def _gate(passed: bool, failure_message: str) -> DataGateResult:
    return DataGateResult(has_minimum_data=passed, message="" if passed else failure_message)


def check_trend_chart_data_gate(
    events: Iterable[FunnelEvent],
    min_span_days: int = TREND_CHART_MIN_SPAN_DAYS,
) -> DataGateResult:
    passed = has_minimum_span(events, min_span_days)
    logger.debug("Trend chart gate (min span %s days): %s", min_span_days, passed)
    return _gate(passed, INSUFFICIENT_DATA_MESSAGE)


def check_baseline_data_gate(
    events: Iterable[FunnelEvent],
    min_span_days: int = BASELINE_MIN_SPAN_DAYS,
) -> DataGateResult:
    passed = has_minimum_span(events, min_span_days)
    logger.debug("Baseline gate (min span %s days): %s", min_span_days, passed)
    return _gate(passed, BASELINE_FORMING_MESSAGE)


def check_funnel_visualization_gate(
    completed_quotes_count: int,
    min_completed: int = FUNNEL_MIN_COMPLETED_QUOTES,
) -> DataGateResult:
    return _gate(completed_quotes_count >= min_completed, INSUFFICIENT_DATA_MESSAGE)
