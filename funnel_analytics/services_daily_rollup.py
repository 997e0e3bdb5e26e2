from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from funnel_analytics.models_funnel_events import (
    DailyMetric,
    FunnelEvent,
    FunnelEventType,
    TrendPoint,
)

TREND_FIELDS = {"quotes_completed", "deposits_collected"}


def _safe_tz(timezone_name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo((timezone_name or "UTC").strip() or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def local_date(ts: datetime, tz: ZoneInfo) -> date:
    return ts.astimezone(tz).date()


def group_events_by_day(
    events: Iterable[FunnelEvent],
    timezone_name: Optional[str] = "UTC",
) -> Dict[date, List[FunnelEvent]]:
    tz = _safe_tz(timezone_name)
    grouped: Dict[date, List[FunnelEvent]] = {}
    for event in events:
        grouped.setdefault(local_date(event.timestamp, tz), []).append(event)
    return grouped


def calculate_daily_metrics(
    events: Iterable[FunnelEvent],
    timezone_name: Optional[str] = "UTC",
) -> List[DailyMetric]:
    """
    Per-day quote completions and deposit revenue.

    Days are calendar dates in ``timezone_name`` (UTC unless configured).
    Days without events are omitted rather than zero-filled.
    """
    tz = _safe_tz(timezone_name)
    completions: Dict[date, int] = {}
    deposits: Dict[date, float] = {}
    for event in events:
        day = local_date(event.timestamp, tz)
        completions.setdefault(day, 0)
        deposits.setdefault(day, 0.0)
        if event.event_type == FunnelEventType.QUOTE_COMPLETED:
            completions[day] += 1
        elif event.event_type == FunnelEventType.DEPOSIT_PAID and event.deposit_amount is not None:
            deposits[day] += float(event.deposit_amount)
    return [
        DailyMetric(date=day, quotes_completed=completions[day], deposits_collected=deposits[day])
        for day in sorted(completions)
    ]


def build_trend_series(daily: Iterable[DailyMetric], field: str) -> List[TrendPoint]:
    if field not in TREND_FIELDS:
        raise ValueError(f"Unsupported trend field '{field}'")
    return [TrendPoint(date=row.date.isoformat(), value=getattr(row, field)) for row in daily]
