"""Assemble the funnel analytics dashboard payload from an event snapshot."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from funnel_analytics.models_funnel_events import BaselineComparison, FunnelEvent, as_utc
from funnel_analytics.services_baseline import (
    BaselineMetric,
    compare_to_baseline,
    get_baseline_for_metric,
    should_enable_baseline,
)
from funnel_analytics.services_daily_rollup import build_trend_series, calculate_daily_metrics
from funnel_analytics.services_data_gates import (
    check_baseline_data_gate,
    check_funnel_visualization_gate,
    check_trend_chart_data_gate,
)
from funnel_analytics.services_insights import generate_micro_insights
from funnel_analytics.services_metrics import calculate_funnel_metrics, calculate_funnel_steps
from funnel_analytics.utils.analytics_config import AnalyticsSettings, default_analytics_settings

logger = logging.getLogger(__name__)


class TimeRange(str, Enum):
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"
    ALL = "all"


class CompareMode(str, Enum):
    OFF = "off"
    ROLLING_AVG = "rolling_avg"


_FILTER_DAYS = {
    TimeRange.LAST_7_DAYS: 7,
    TimeRange.LAST_30_DAYS: 30,
    TimeRange.LAST_90_DAYS: 90,
}
# "all" is scaled as a one-year period when normalizing volume baselines.
_ALL_TIME_PERIOD_DAYS = 365


def resolve_time_range(value: Any) -> TimeRange:
    if isinstance(value, TimeRange):
        return value
    try:
        return TimeRange(str(value or "").strip().lower())
    except ValueError:
        raise ValueError(f"time_range must be one of: {', '.join(t.value for t in TimeRange)}")


def resolve_compare_mode(value: Any) -> CompareMode:
    if isinstance(value, CompareMode):
        return value
    try:
        return CompareMode(str(value or "").strip().lower())
    except ValueError:
        raise ValueError(f"compare must be one of: {', '.join(c.value for c in CompareMode)}")


def baseline_period_days(time_range: TimeRange) -> int:
    return _FILTER_DAYS.get(time_range, _ALL_TIME_PERIOD_DAYS)


def filter_events_by_time_range(
    events: Sequence[FunnelEvent],
    time_range: TimeRange,
    now: datetime,
) -> List[FunnelEvent]:
    if time_range == TimeRange.ALL:
        return list(events)
    cutoff = as_utc(now) - timedelta(days=_FILTER_DAYS[time_range])
    return [e for e in events if e.timestamp >= cutoff]


def _serialize_comparison(comparison: BaselineComparison) -> Dict[str, Any]:
    return asdict(comparison)


def _metric_card(
    *,
    key: str,
    title: str,
    value: float,
    display_value: str,
    comparison: BaselineComparison,
) -> Dict[str, Any]:
    return {
        "key": key,
        "title": title,
        "value": value,
        "display_value": display_value,
        "baseline": _serialize_comparison(comparison),
    }


def build_funnel_dashboard(
    all_events: Sequence[FunnelEvent],
    *,
    time_range: Any = TimeRange.LAST_30_DAYS,
    compare_mode: Any = CompareMode.ROLLING_AVG,
    now: Optional[datetime] = None,
    settings: Optional[AnalyticsSettings] = None,
) -> Dict[str, Any]:
    """
    Full analytics payload for one account.

    Current-period figures use the events inside ``time_range``; baselines and
    the baseline gate always look at the unfiltered snapshot.
    """
    cfg = settings or default_analytics_settings()
    time_range = resolve_time_range(time_range)
    compare_mode = resolve_compare_mode(compare_mode)
    period_end = as_utc(now) if now is not None else datetime.now(timezone.utc)

    events = filter_events_by_time_range(all_events, time_range, period_end)
    metrics = calculate_funnel_metrics(events)
    steps = calculate_funnel_steps(metrics)
    daily = calculate_daily_metrics(events, cfg.timezone)

    baseline_enabled = compare_mode == CompareMode.ROLLING_AVG and should_enable_baseline(
        all_events, cfg.baseline_min_span_days
    )
    period_days = baseline_period_days(time_range)

    def _baseline(metric: BaselineMetric) -> Optional[float]:
        if not baseline_enabled:
            return None
        return get_baseline_for_metric(
            all_events,
            period_end,
            metric,
            period_days,
            window_days=cfg.baseline_window_days,
        )

    quotes_baseline = _baseline(BaselineMetric.QUOTES_COMPLETED)
    conversion_baseline = _baseline(BaselineMetric.DEPOSIT_CONVERSION)
    avg_value_baseline = _baseline(BaselineMetric.AVG_QUOTE_VALUE)
    deposits_baseline = _baseline(BaselineMetric.TOTAL_DEPOSITS)

    cards = [
        _metric_card(
            key="quotes_completed",
            title="Quotes Completed",
            value=metrics.quotes_completed,
            display_value=str(metrics.quotes_completed),
            comparison=compare_to_baseline(metrics.quotes_completed, quotes_baseline, baseline_enabled),
        ),
        _metric_card(
            key="deposit_conversion",
            title="Deposit Conversion",
            value=metrics.deposit_conversion_rate,
            display_value=f"{metrics.deposit_conversion_rate:.1f}%",
            comparison=compare_to_baseline(metrics.deposit_conversion_rate, conversion_baseline, baseline_enabled),
        ),
        _metric_card(
            key="avg_quote_value",
            title="Avg Quote Value",
            value=metrics.avg_quote_value,
            display_value=f"${metrics.avg_quote_value:,.2f}",
            comparison=compare_to_baseline(metrics.avg_quote_value, avg_value_baseline, baseline_enabled),
        ),
        _metric_card(
            key="total_deposits",
            title="Total Deposits Collected",
            value=metrics.total_deposits_collected,
            display_value=f"${metrics.total_deposits_collected:,.2f}",
            comparison=compare_to_baseline(metrics.total_deposits_collected, deposits_baseline, baseline_enabled),
        ),
    ]

    gates = {
        "trend_chart": asdict(check_trend_chart_data_gate(events, cfg.trend_chart_min_span_days)),
        "baseline": asdict(check_baseline_data_gate(all_events, cfg.baseline_min_span_days)),
        "funnel": asdict(check_funnel_visualization_gate(metrics.quotes_completed, cfg.funnel_min_completed_quotes)),
    }
    insights = generate_micro_insights(
        events,
        metrics,
        steps,
        conversion_baseline,
        min_quotes=cfg.min_quotes_for_insights,
        small_lawn_sqft=cfg.small_lawn_sqft,
    )
    logger.debug(
        "Funnel dashboard: range=%s compare=%s events=%d/%d baseline_enabled=%s",
        time_range.value,
        compare_mode.value,
        len(events),
        len(all_events),
        baseline_enabled,
    )

    return {
        "time_range": time_range.value,
        "compare_mode": compare_mode.value,
        "period_end": period_end.isoformat(),
        "event_count": len(events),
        "baseline_enabled": baseline_enabled,
        "metrics": asdict(metrics),
        "funnel_steps": [asdict(s) for s in steps],
        "daily_metrics": [
            {"date": d.date.isoformat(), "quotes_completed": d.quotes_completed, "deposits_collected": d.deposits_collected}
            for d in daily
        ],
        "trends": {
            "quote_completions": [asdict(p) for p in build_trend_series(daily, "quotes_completed")],
            "deposit_revenue": [asdict(p) for p in build_trend_series(daily, "deposits_collected")],
        },
        "metric_cards": cards,
        "pending_revenue": {
            "pending_quotes_count": metrics.pending_quotes_count,
            "pending_quote_value": metrics.pending_quote_value,
        },
        "gates": gates,
        "insights": [asdict(i) for i in insights],
    }
