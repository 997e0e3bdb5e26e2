from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

TREND_CHART_MIN_SPAN_DAYS = 14
BASELINE_MIN_SPAN_DAYS = 60
FUNNEL_MIN_COMPLETED_QUOTES = 30
MIN_QUOTES_FOR_INSIGHTS = 100
BASELINE_WINDOW_DAYS = 90
SMALL_LAWN_SQFT = 3000
DEFAULT_TIMEZONE = "UTC"

# Override file location, e.g.
#   FUNNEL_ANALYTICS_CONFIG=/etc/funnel-analytics/settings.json
CONFIG_PATH_ENV = "FUNNEL_ANALYTICS_CONFIG"
TIMEZONE_ENV = "FUNNEL_ANALYTICS_TIMEZONE"


@dataclass
class AnalyticsSettings:
    """Thresholds used by the gates, baselines and insights."""

    trend_chart_min_span_days: int = TREND_CHART_MIN_SPAN_DAYS
    baseline_min_span_days: int = BASELINE_MIN_SPAN_DAYS
    funnel_min_completed_quotes: int = FUNNEL_MIN_COMPLETED_QUOTES
    min_quotes_for_insights: int = MIN_QUOTES_FOR_INSIGHTS
    baseline_window_days: int = BASELINE_WINDOW_DAYS
    small_lawn_sqft: float = SMALL_LAWN_SQFT
    timezone: str = DEFAULT_TIMEZONE


def default_analytics_settings() -> AnalyticsSettings:
    return AnalyticsSettings()


_COERCERS = {"int": int, "float": float, "str": str}


def _coerce_setting(kind: str, value: Any) -> Any:
    """Convert one raw JSON value to the field type; None when it does not fit."""
    if value is None or isinstance(value, bool):
        return None
    if kind == "str":
        return value.strip() if isinstance(value, str) and value.strip() else None
    if kind == "int" and isinstance(value, float) and not value.is_integer():
        return None
    try:
        return _COERCERS[kind](value)
    except (TypeError, ValueError):
        return None


def _settings_from_dict(raw: Dict[str, Any]) -> AnalyticsSettings:
    kinds = {f.name: str(f.type) for f in fields(AnalyticsSettings)}
    unknown = sorted(set(raw) - set(kinds))
    if unknown:
        logger.warning("Ignoring unknown analytics settings: %s", ", ".join(unknown))
    values: Dict[str, Any] = {}
    for name, kind in kinds.items():
        if name not in raw:
            continue
        coerced = _coerce_setting(kind, raw[name])
        if coerced is None:
            logger.warning("Analytics setting %s=%r is not a valid %s; using default", name, raw[name], kind)
            continue
        values[name] = coerced
    return AnalyticsSettings(**values)


_BASE_DIR = Path(__file__).resolve().parent.parent


def settings_path() -> Path:
    """Settings file location: ``FUNNEL_ANALYTICS_CONFIG`` or ``data/analytics_settings.json``."""
    configured = (os.getenv(CONFIG_PATH_ENV) or "").strip()
    if configured:
        return Path(configured)
    return _BASE_DIR / "data" / "analytics_settings.json"


def load_analytics_settings(path: Optional[Path] = None) -> AnalyticsSettings:
    """Defaults, then the JSON settings file if present, then the timezone env override."""
    cfg = default_analytics_settings()
    config_path = Path(path) if path is not None else settings_path()
    try:
        raw = json.loads(config_path.read_text())
    except FileNotFoundError:
        logger.info("Analytics settings file %s not found; using defaults", config_path)
        raw = None
    except json.JSONDecodeError as exc:
        logger.warning("Analytics settings file %s is not valid JSON (%s); using defaults", config_path, exc)
        raw = None
    if isinstance(raw, dict):
        cfg = _settings_from_dict(raw)
    tz_override = (os.getenv(TIMEZONE_ENV) or "").strip()
    if tz_override:
        cfg.timezone = tz_override
    return cfg


def save_analytics_settings(cfg: AnalyticsSettings, path: Optional[Path] = None) -> Path:
    target = Path(path) if path is not None else settings_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(asdict(cfg), indent=2))
    logger.info("Saved analytics settings to %s", target)
    return target
