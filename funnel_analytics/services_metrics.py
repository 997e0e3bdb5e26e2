from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set

from funnel_analytics.models_funnel_events import (
    FunnelEvent,
    FunnelEventType,
    FunnelMetrics,
    FunnelStep,
)


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    if denominator and denominator > 0:
        return numerator / denominator
    return None


def rate_pct(numerator: float, denominator: float) -> float:
    """Percentage with a 0 fallback for an empty denominator."""
    ratio = safe_ratio(numerator, denominator)
    return ratio * 100.0 if ratio is not None else 0.0


def _amount(value: Optional[float]) -> float:
    return float(value) if value is not None else 0.0


def count_by_event_type(events: Iterable[FunnelEvent]) -> Dict[FunnelEventType, int]:
    counts: Dict[FunnelEventType, int] = {event_type: 0 for event_type in FunnelEventType}
    for event in events:
        counts[event.event_type] += 1
    return counts


def calculate_funnel_metrics(events: Iterable[FunnelEvent]) -> FunnelMetrics:
    """
    Reduce an event snapshot to funnel counts and derived rates.

    Pending revenue sums calculated_price per quote_completed event, so a quote
    that completed twice without a deposit contributes its price twice.
    """
    rows: List[FunnelEvent] = list(events)
    counts = count_by_event_type(rows)
    quotes_completed = counts[FunnelEventType.QUOTE_COMPLETED]
    price_reveals = counts[FunnelEventType.PRICE_REVEALED]
    deposits_paid = counts[FunnelEventType.DEPOSIT_PAID]

    completed = [e for e in rows if e.event_type == FunnelEventType.QUOTE_COMPLETED]
    total_quote_value = sum(_amount(e.calculated_price) for e in completed)
    avg_quote_value = safe_ratio(total_quote_value, len(completed)) or 0.0

    total_deposits = sum(
        _amount(e.deposit_amount) for e in rows if e.event_type == FunnelEventType.DEPOSIT_PAID
    )

    completed_ids: Set[str] = {e.quote_id for e in completed}
    paid_ids: Set[str] = {e.quote_id for e in rows if e.event_type == FunnelEventType.DEPOSIT_PAID}
    pending_ids = completed_ids - paid_ids
    pending_value = sum(_amount(e.calculated_price) for e in completed if e.quote_id in pending_ids)

    return FunnelMetrics(
        quotes_started=counts[FunnelEventType.QUOTE_STARTED],
        quotes_completed=quotes_completed,
        price_reveals=price_reveals,
        deposit_page_views=counts[FunnelEventType.DEPOSIT_PAGE_VIEWED],
        deposits_paid=deposits_paid,
        deposit_conversion_rate=rate_pct(deposits_paid, quotes_completed),
        reveal_to_deposit_conversion=rate_pct(deposits_paid, price_reveals),
        avg_quote_value=avg_quote_value,
        total_deposits_collected=total_deposits,
        pending_quotes_count=len(pending_ids),
        pending_quote_value=pending_value,
    )


def calculate_funnel_steps(metrics: FunnelMetrics) -> List[FunnelStep]:
    """Fixed four-stage visual funnel; quote_started is not part of it."""
    stages = [
        ("Quotes Completed", metrics.quotes_completed),
        ("Price Reveals", metrics.price_reveals),
        ("Deposit Page Views", metrics.deposit_page_views),
        ("Deposits Paid", metrics.deposits_paid),
    ]
    steps: List[FunnelStep] = []
    prev_count: Optional[int] = None
    for label, count in stages:
        conversion = None
        if prev_count is not None:
            ratio = safe_ratio(count, prev_count)
            conversion = ratio * 100.0 if ratio is not None else None
        steps.append(FunnelStep(label=label, count=count, conversion_from_previous=conversion))
        prev_count = count
    return steps
