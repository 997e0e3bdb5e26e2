from datetime import datetime, timedelta, timezone

import pytest

from funnel_analytics.models_funnel_events import FunnelEvent, FunnelEventType
from funnel_analytics.services_dashboard import (
    CompareMode,
    TimeRange,
    baseline_period_days,
    build_funnel_dashboard,
    filter_events_by_time_range,
)
from funnel_analytics.utils.analytics_config import AnalyticsSettings

NOW = datetime(2026, 6, 30, 12, 0, tzinfo=timezone.utc)


def _ev(idx: int, event_type: FunnelEventType, days_ago: float, quote_id: str, **fields) -> FunnelEvent:
    return FunnelEvent(
        id=f"ev-{idx}",
        account_id="acct-1",
        quote_id=quote_id,
        event_type=event_type,
        timestamp=NOW - timedelta(days=days_ago),
        **fields,
    )


def _reference_funnel(span_days: int = 20) -> list:
    events = []
    n = 0
    for i in range(40):
        days_ago = i % (span_days + 1)
        qid = f"q-{i}"
        stages = [FunnelEventType.QUOTE_COMPLETED]
        if i < 35:
            stages.append(FunnelEventType.PRICE_REVEALED)
        if i < 32:
            stages.append(FunnelEventType.DEPOSIT_PAGE_VIEWED)
        if i < 30:
            stages.append(FunnelEventType.DEPOSIT_PAID)
        for stage in stages:
            n += 1
            fields = {}
            if stage == FunnelEventType.QUOTE_COMPLETED:
                fields = {"calculated_price": 100.0, "lawn_size": 4000.0}
            elif stage == FunnelEventType.DEPOSIT_PAID:
                fields = {"deposit_amount": 25.0}
            events.append(_ev(n, stage, days_ago, qid, **fields))
    return events


def test_baseline_period_days_maps_all_to_a_year():
    assert baseline_period_days(TimeRange.LAST_7_DAYS) == 7
    assert baseline_period_days(TimeRange.LAST_30_DAYS) == 30
    assert baseline_period_days(TimeRange.LAST_90_DAYS) == 90
    assert baseline_period_days(TimeRange.ALL) == 365


def test_filter_events_by_time_range():
    events = [
        _ev(1, FunnelEventType.QUOTE_STARTED, 3, "a"),
        _ev(2, FunnelEventType.QUOTE_STARTED, 10, "b"),
        _ev(3, FunnelEventType.QUOTE_STARTED, 45, "c"),
        _ev(4, FunnelEventType.QUOTE_STARTED, 400, "d"),
    ]
    assert [e.id for e in filter_events_by_time_range(events, TimeRange.LAST_7_DAYS, NOW)] == ["ev-1"]
    assert len(filter_events_by_time_range(events, TimeRange.LAST_30_DAYS, NOW)) == 2
    assert len(filter_events_by_time_range(events, TimeRange.LAST_90_DAYS, NOW)) == 3
    assert len(filter_events_by_time_range(events, TimeRange.ALL, NOW)) == 4


def test_empty_snapshot_dashboard():
    out = build_funnel_dashboard([], time_range="30d", compare_mode="rolling_avg", now=NOW)
    assert out["event_count"] == 0
    assert all(v == 0 for v in out["metrics"].values())
    assert out["insights"] == []
    assert out["daily_metrics"] == []
    assert out["baseline_enabled"] is False
    assert all(g["has_minimum_data"] is False for g in out["gates"].values())
    assert all(card["baseline"]["message"] == "Baseline forming" for card in out["metric_cards"])


def test_reference_funnel_dashboard():
    out = build_funnel_dashboard(_reference_funnel(), time_range=TimeRange.ALL, now=NOW)
    assert out["metrics"]["deposit_conversion_rate"] == 75.0
    cards = {c["key"]: c for c in out["metric_cards"]}
    assert cards["deposit_conversion"]["display_value"] == "75.0%"
    assert cards["avg_quote_value"]["display_value"] == "$100.00"
    assert cards["total_deposits"]["display_value"] == "$750.00"
    assert out["gates"]["funnel"]["has_minimum_data"] is True
    assert out["gates"]["trend_chart"]["has_minimum_data"] is True
    assert out["gates"]["baseline"] == {"has_minimum_data": False, "message": "Baseline forming"}
    assert out["baseline_enabled"] is False
    assert out["pending_revenue"] == {"pending_quotes_count": 10, "pending_quote_value": 1000.0}
    assert [s["label"] for s in out["funnel_steps"]][0] == "Quotes Completed"
    assert len(out["trends"]["quote_completions"]) == 21
    assert sum(p["value"] for p in out["trends"]["deposit_revenue"]) == 750.0
    assert out["insights"] == []


def test_rolling_average_compare_uses_full_history():
    history = [
        _ev(i, FunnelEventType.QUOTE_COMPLETED, float(i), f"h-{i}", calculated_price=100.0, lawn_size=2000.0)
        for i in range(0, 80)
    ]
    out = build_funnel_dashboard(history, time_range="30d", compare_mode="rolling_avg", now=NOW)
    assert out["baseline_enabled"] is True
    assert out["gates"]["baseline"]["has_minimum_data"] is True
    cards = {c["key"]: c for c in out["metric_cards"]}
    quotes = cards["quotes_completed"]["baseline"]
    assert quotes["enabled"] is True
    # 80 completions over the 90-day window, scaled to a 30-day period
    assert quotes["baseline_value"] == pytest.approx(80 / 90 * 30)
    assert cards["quotes_completed"]["value"] == 31
    assert cards["avg_quote_value"]["baseline"]["baseline_value"] == 100.0

    off = build_funnel_dashboard(history, time_range="30d", compare_mode=CompareMode.OFF, now=NOW)
    assert off["baseline_enabled"] is False
    assert all(c["baseline"]["enabled"] is False for c in off["metric_cards"])


def test_settings_change_thresholds_and_timezone():
    events = _reference_funnel(span_days=5)
    settings = AnalyticsSettings(trend_chart_min_span_days=5, funnel_min_completed_quotes=50, timezone="Asia/Tokyo")
    out = build_funnel_dashboard(events, time_range="all", now=NOW, settings=settings)
    assert out["gates"]["trend_chart"]["has_minimum_data"] is True
    assert out["gates"]["funnel"]["has_minimum_data"] is False
    # 12:00 UTC is 21:00 in Tokyo, same calendar day
    assert out["daily_metrics"][-1]["date"] == "2026-06-30"


def test_invalid_time_range_and_compare_mode():
    with pytest.raises(ValueError):
        build_funnel_dashboard([], time_range="14d", now=NOW)
    with pytest.raises(ValueError):
        build_funnel_dashboard([], compare_mode="previous_period", now=NOW)


def test_dashboard_reads_naive_timestamps_as_utc():
    naive_now = NOW.replace(tzinfo=None)
    events = [
        FunnelEvent(
            id="c-1",
            account_id="acct-1",
            quote_id="q-1",
            event_type=FunnelEventType.QUOTE_COMPLETED,
            timestamp=naive_now - timedelta(days=1),
            calculated_price=80.0,
        ),
        FunnelEvent(
            id="p-1",
            account_id="acct-1",
            quote_id="q-1",
            event_type=FunnelEventType.DEPOSIT_PAID,
            timestamp=naive_now - timedelta(days=20),
            deposit_amount=20.0,
        ),
    ]
    out = build_funnel_dashboard(events, time_range="7d", compare_mode="rolling_avg", now=NOW)
    assert out["event_count"] == 1
    assert out["metrics"]["quotes_completed"] == 1
    assert out["baseline_enabled"] is False
    assert out["gates"]["trend_chart"]["has_minimum_data"] is False

    # a naive "now" is read as UTC too
    kept = filter_events_by_time_range(events, TimeRange.LAST_30_DAYS, naive_now)
    assert [e.id for e in kept] == ["c-1", "p-1"]
