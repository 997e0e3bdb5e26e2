import io
import json
import logging
from dataclasses import asdict, replace
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from funnel_analytics.models_funnel_events import FunnelEvent, FunnelEventType
from funnel_analytics.services_dashboard import CompareMode, TimeRange, build_funnel_dashboard
from funnel_analytics.services_event_ingestion import load_events_from_csv, parse_funnel_events
from funnel_analytics.utils.analytics_config import load_analytics_settings, save_analytics_settings

logger = logging.getLogger(__name__)

app = FastAPI(title="Funnel Analytics API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== Pydantic Models ====================

class FunnelEventIn(BaseModel):
    id: str
    account_id: str = ""
    quote_id: str
    event_type: str
    timestamp: str
    device_type: Optional[str] = None
    lawn_size: Optional[float] = None
    calculated_price: Optional[float] = None
    deposit_percentage: Optional[float] = None
    deposit_amount: Optional[float] = None
    created_at: Optional[str] = None


class DashboardComputeRequest(BaseModel):
    """Compute a dashboard for a posted snapshot without replacing the loaded one."""

    events: List[Dict[str, Any]] = Field(default_factory=list)
    time_range: TimeRange = TimeRange.LAST_30_DAYS
    compare: CompareMode = CompareMode.ROLLING_AVG
    account_id: Optional[str] = None


class AnalyticsSettingsUpdate(BaseModel):
    """Partial settings update; omitted fields keep their current value."""

    trend_chart_min_span_days: Optional[int] = Field(None, ge=0)
    baseline_min_span_days: Optional[int] = Field(None, ge=0)
    funnel_min_completed_quotes: Optional[int] = Field(None, ge=0)
    min_quotes_for_insights: Optional[int] = Field(None, ge=0)
    baseline_window_days: Optional[int] = Field(None, ge=1)
    small_lawn_sqft: Optional[float] = Field(None, gt=0)
    timezone: Optional[str] = None


# ==================== State ====================

SETTINGS = load_analytics_settings()
EVENTS: List[FunnelEvent] = []


def _load_snapshot(rows: List[Any], account_id: Optional[str]) -> Dict[str, Any]:
    global EVENTS
    events, rejected = parse_funnel_events(rows, account_id=account_id)
    EVENTS = events
    return {
        "count": len(EVENTS),
        "rejected": rejected,
        "message": f"Loaded {len(EVENTS)} funnel events",
    }


def _dashboard_or_400(events: List[FunnelEvent], time_range: Any, compare: Any) -> Dict[str, Any]:
    try:
        return build_funnel_dashboard(events, time_range=time_range, compare_mode=compare, settings=SETTINGS)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ==================== Health ====================

@app.get("/api/health")
def health():
    return {
        "status": "ok",
        "events_loaded": len(EVENTS),
        "event_types": [t.value for t in FunnelEventType],
        "timezone": SETTINGS.timezone,
    }

# ==================== Settings ====================

@app.get("/api/analytics/settings")
def get_settings():
    """Return the active gate, baseline and insight thresholds."""
    return asdict(SETTINGS)


@app.post("/api/analytics/settings")
def update_settings(update: AnalyticsSettingsUpdate):
    """Merge the posted fields into the active settings and persist them."""
    global SETTINGS
    SETTINGS = replace(SETTINGS, **update.model_dump(exclude_none=True))
    save_analytics_settings(SETTINGS)
    return get_settings()

# ==================== Events ====================

@app.post("/api/analytics/events")
def load_events(payload: Any = Body(...), account_id: Optional[str] = None):
    """Replace the in-memory event snapshot with a JSON array (or {"events": [...]})."""
    if isinstance(payload, dict) and "events" in payload:
        payload = payload["events"]
    if not isinstance(payload, list):
        raise HTTPException(status_code=400, detail="Body must be a JSON array of events or { 'events': [...] }")
    return _load_snapshot(payload, account_id)


@app.post("/api/analytics/events/upload")
async def upload_events(file: UploadFile = File(...), account_id: Optional[str] = None):
    """Upload a funnel event export as CSV or JSON."""
    global EVENTS
    content = await file.read()
    filename = (file.filename or "").lower()
    if filename.endswith(".csv"):
        try:
            events, rejected = load_events_from_csv(io.BytesIO(content), account_id=account_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid CSV: {e}")
        EVENTS = events
        return {"count": len(EVENTS), "rejected": rejected, "message": f"Loaded {len(EVENTS)} funnel events"}
    try:
        data = json.loads(content)
        if isinstance(data, dict) and "events" in data:
            data = data["events"]
        if not isinstance(data, list):
            raise ValueError("Expected a JSON array of events")
    except (json.JSONDecodeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON: {e}")
    return _load_snapshot(data, account_id)


@app.get("/api/analytics/events")
def list_events(limit: int = Query(50, ge=1, le=1000)):
    rows = sorted(EVENTS, key=lambda e: e.timestamp, reverse=True)[:limit]
    return {
        "count": len(EVENTS),
        "items": [
            FunnelEventIn(
                **{
                    **e.__dict__,
                    "event_type": e.event_type.value,
                    "timestamp": e.timestamp.isoformat(),
                    "created_at": e.created_at.isoformat() if e.created_at else None,
                }
            ).model_dump()
            for e in rows
        ],
    }

# ==================== Dashboard ====================

@app.get("/api/analytics/funnel")
def get_funnel_dashboard(time_range: str = "30d", compare: str = "rolling_avg"):
    """Dashboard for the loaded snapshot."""
    return _dashboard_or_400(EVENTS, time_range, compare)


@app.post("/api/analytics/funnel/compute")
def compute_funnel_dashboard(req: DashboardComputeRequest):
    events, rejected = parse_funnel_events(req.events, account_id=req.account_id)
    out = _dashboard_or_400(events, req.time_range, req.compare)
    out["rejected_events"] = rejected
    return out
