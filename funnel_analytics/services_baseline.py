"""
Rolling 90-day baseline for the dashboard metric cards.

- should_enable_baseline: the snapshot must span at least 60 days.
- calculate_rolling_90_day_average: recompute full funnel metrics over
  [period_end - 90d, period_end] and extract one value.
- compare_to_baseline: difference, percentage difference and card microcopy.

Rate and average metrics (deposit conversion, avg quote value) are compared
as-is. Volume metrics (quotes completed, total deposits) can be
scaled to the current period length (90-day total / 90 * period days) so a
30-day card is not compared against a 90-day sum.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, List, Optional

from funnel_analytics.models_funnel_events import BaselineComparison, FunnelEvent, FunnelMetrics, as_utc
from funnel_analytics.services_data_gates import BASELINE_FORMING_MESSAGE, has_minimum_span
from funnel_analytics.services_metrics import calculate_funnel_metrics, safe_ratio
from funnel_analytics.utils.analytics_config import BASELINE_MIN_SPAN_DAYS, BASELINE_WINDOW_DAYS

logger = logging.getLogger(__name__)

IN_LINE_THRESHOLD_PCT = 5.0


class BaselineMetric(str, Enum):
    DEPOSIT_CONVERSION = "deposit_conversion"
    AVG_QUOTE_VALUE = "avg_quote_value"
    TOTAL_DEPOSITS = "total_deposits"
    QUOTES_COMPLETED = "quotes_completed"


MetricExtractor = Callable[[FunnelMetrics], float]


def should_enable_baseline(
    events: Iterable[FunnelEvent],
    min_span_days: int = BASELINE_MIN_SPAN_DAYS,
) -> bool:
    return has_minimum_span(events, min_span_days)


def calculate_rolling_90_day_average(
    all_events: Iterable[FunnelEvent],
    period_end: datetime,
    metric_extractor: MetricExtractor,
    *,
    current_period_days: Optional[int] = None,
    is_rate_metric: bool = True,
    window_days: int = BASELINE_WINDOW_DAYS,
) -> Optional[float]:
    end = as_utc(period_end)
    start = end - timedelta(days=window_days)
    window: List[FunnelEvent] = [e for e in all_events if start <= e.timestamp <= end]
    if not window:
        return None

    raw_value = float(metric_extractor(calculate_funnel_metrics(window)))
    if is_rate_metric or current_period_days is None:
        return raw_value
    return raw_value / window_days * current_period_days


def metric_extractor_for(metric: BaselineMetric) -> MetricExtractor:
    if metric == BaselineMetric.DEPOSIT_CONVERSION:
        return lambda m: m.deposit_conversion_rate
    if metric == BaselineMetric.AVG_QUOTE_VALUE:
        return lambda m: m.avg_quote_value
    if metric == BaselineMetric.TOTAL_DEPOSITS:
        return lambda m: m.total_deposits_collected
    if metric == BaselineMetric.QUOTES_COMPLETED:
        return lambda m: float(m.quotes_completed)
    raise ValueError(f"Unsupported baseline metric '{metric}'")


# Per-quote rates and averages; never scaled to the period length.
_UNSCALED_METRICS = {BaselineMetric.DEPOSIT_CONVERSION, BaselineMetric.AVG_QUOTE_VALUE}


def is_unscaled_metric(metric: BaselineMetric) -> bool:
    return metric in _UNSCALED_METRICS


def get_baseline_for_metric(
    all_events: Iterable[FunnelEvent],
    period_end: datetime,
    metric: BaselineMetric | str,
    current_period_days: Optional[int] = None,
    *,
    window_days: int = BASELINE_WINDOW_DAYS,
) -> Optional[float]:
    metric = BaselineMetric(metric)
    value = calculate_rolling_90_day_average(
        all_events,
        period_end,
        metric_extractor_for(metric),
        current_period_days=current_period_days,
        is_rate_metric=is_unscaled_metric(metric),
        window_days=window_days,
    )
    logger.debug("Baseline for %s ending %s: %s", metric.value, period_end.isoformat(), value)
    return value


def delta_label(percentage_difference: Optional[float]) -> Optional[str]:
    if percentage_difference is None:
        return None
    if abs(percentage_difference) < IN_LINE_THRESHOLD_PCT:
        return "In line with rolling average"
    return "Above rolling average" if percentage_difference > 0 else "Below rolling average"


def compare_to_baseline(
    current_value: float,
    baseline_value: Optional[float],
    enabled: bool,
) -> BaselineComparison:
    if not enabled or baseline_value is None:
        return BaselineComparison(
            enabled=False,
            baseline_value=None,
            current_value=current_value,
            difference=None,
            percentage_difference=None,
            message=BASELINE_FORMING_MESSAGE,
        )

    difference = current_value - baseline_value
    ratio = safe_ratio(difference, baseline_value)
    percentage_difference = ratio * 100.0 if ratio is not None else None
    message = f"{current_value:.1f} vs 90-day average {baseline_value:.1f}"
    if percentage_difference is not None:
        message += f" ({percentage_difference:+.1f}%)"
    return BaselineComparison(
        enabled=True,
        baseline_value=baseline_value,
        current_value=current_value,
        difference=difference,
        percentage_difference=percentage_difference,
        message=message,
        delta_label=delta_label(percentage_difference),
    )
