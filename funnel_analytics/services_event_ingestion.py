"""
Coerce raw event rows (JSON objects, CSV export rows) into FunnelEvent records.

Malformed rows (unknown event type, missing ids, unparseable timestamp) are
skipped and logged; the analytics services only ever receive valid events.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from funnel_analytics.models_funnel_events import DEVICE_TYPES, FunnelEvent, FunnelEventType, as_utc

logger = logging.getLogger(__name__)


class InvalidFunnelEvent(ValueError):
    pass


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def parse_timestamp(value: Any) -> Optional[datetime]:
    if _is_missing(value):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def _optional_float(row: Dict[str, Any], key: str) -> Optional[float]:
    value = row.get(key)
    if _is_missing(value):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidFunnelEvent(f"{key} must be numeric, got {value!r}")
    if not math.isfinite(number):
        raise InvalidFunnelEvent(f"{key} must be finite, got {value!r}")
    return number


def _required_str(row: Dict[str, Any], key: str) -> str:
    value = row.get(key)
    if _is_missing(value):
        raise InvalidFunnelEvent(f"missing {key}")
    return str(value).strip()


def parse_funnel_event(row: Dict[str, Any]) -> FunnelEvent:
    raw_type = str(row.get("event_type") or "").strip().lower()
    try:
        event_type = FunnelEventType(raw_type)
    except ValueError:
        raise InvalidFunnelEvent(f"unknown event_type {raw_type!r}")

    ts = parse_timestamp(row.get("timestamp"))
    if ts is None:
        raise InvalidFunnelEvent(f"unparseable timestamp {row.get('timestamp')!r}")

    device = row.get("device_type")
    device_type = str(device).strip().lower() if not _is_missing(device) else None
    if device_type is not None and device_type not in DEVICE_TYPES:
        logger.debug("Unrecognised device_type %r on event %s", device_type, row.get("id"))

    return FunnelEvent(
        id=_required_str(row, "id"),
        account_id=str(row.get("account_id") or "").strip(),
        quote_id=_required_str(row, "quote_id"),
        event_type=event_type,
        timestamp=ts,
        device_type=device_type,
        lawn_size=_optional_float(row, "lawn_size"),
        calculated_price=_optional_float(row, "calculated_price"),
        deposit_percentage=_optional_float(row, "deposit_percentage"),
        deposit_amount=_optional_float(row, "deposit_amount"),
        created_at=parse_timestamp(row.get("created_at")),
    )


def parse_funnel_events(
    rows: Iterable[Dict[str, Any]],
    *,
    account_id: Optional[str] = None,
) -> Tuple[List[FunnelEvent], int]:
    """Return (valid events, number of rejected rows)."""
    events: List[FunnelEvent] = []
    rejected = 0
    for idx, row in enumerate(rows):
        if not isinstance(row, dict):
            logger.warning("Skipping funnel event row %d: expected an object, got %s", idx, type(row).__name__)
            rejected += 1
            continue
        try:
            event = parse_funnel_event(row)
        except InvalidFunnelEvent as exc:
            logger.warning("Skipping funnel event row %d (id=%s): %s", idx, row.get("id"), exc)
            rejected += 1
            continue
        if account_id and event.account_id != account_id:
            continue
        events.append(event)
    if rejected:
        logger.info("Parsed %d funnel events, rejected %d", len(events), rejected)
    return events, rejected


def load_events_from_csv(source: Any, *, account_id: Optional[str] = None) -> Tuple[List[FunnelEvent], int]:
    """Parse a CSV export (path or file-like) of funnel events."""
    df = pd.read_csv(source, dtype=str)
    df = df.astype(object).where(pd.notna(df), None)
    return parse_funnel_events(df.to_dict(orient="records"), account_id=account_id)
