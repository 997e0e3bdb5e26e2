"""
Funnel event record and the derived records computed from it.

Events are produced by the quoting widget (one per funnel stage that fires) and
are read-only here. Everything derived below is rebuilt on every request.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional


class FunnelEventType(str, Enum):
    """Closed set of funnel stages, in canonical funnel order."""

    QUOTE_STARTED = "quote_started"
    QUOTE_COMPLETED = "quote_completed"
    PRICE_REVEALED = "price_revealed"
    DEPOSIT_PAGE_VIEWED = "deposit_page_viewed"
    DEPOSIT_PAID = "deposit_paid"


DEVICE_TYPES = {"mobile", "desktop"}


def as_utc(ts: datetime) -> datetime:
    """Naive datetimes are read as UTC; aware ones are returned unchanged."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass(frozen=True)
class FunnelEvent:
    id: str
    account_id: str
    quote_id: str
    event_type: FunnelEventType
    timestamp: datetime  # always tz-aware after __post_init__
    device_type: Optional[str] = None
    lawn_size: Optional[float] = None  # quote_completed only
    calculated_price: Optional[float] = None  # quote_completed only
    deposit_percentage: Optional[float] = None  # deposit_paid only
    deposit_amount: Optional[float] = None  # deposit_paid only
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))
        if self.created_at is not None:
            object.__setattr__(self, "created_at", as_utc(self.created_at))


@dataclass(frozen=True)
class FunnelMetrics:
    quotes_started: int = 0
    quotes_completed: int = 0
    price_reveals: int = 0
    deposit_page_views: int = 0
    deposits_paid: int = 0
    deposit_conversion_rate: float = 0.0
    reveal_to_deposit_conversion: float = 0.0
    avg_quote_value: float = 0.0
    total_deposits_collected: float = 0.0
    pending_quotes_count: int = 0
    pending_quote_value: float = 0.0


@dataclass(frozen=True)
class FunnelStep:
    label: str
    count: int
    conversion_from_previous: Optional[float]


@dataclass(frozen=True)
class DailyMetric:
    date: date
    quotes_completed: int
    deposits_collected: float


@dataclass(frozen=True)
class TrendPoint:
    date: str
    value: float


@dataclass(frozen=True)
class BaselineComparison:
    enabled: bool
    baseline_value: Optional[float]
    current_value: float
    difference: Optional[float]
    percentage_difference: Optional[float]
    message: str
    delta_label: Optional[str] = None


@dataclass(frozen=True)
class DataGateResult:
    has_minimum_data: bool
    message: str


@dataclass(frozen=True)
class MicroInsight:
    text: str
