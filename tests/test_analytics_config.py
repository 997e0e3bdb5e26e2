import json

from funnel_analytics.utils.analytics_config import (
    CONFIG_PATH_ENV,
    TIMEZONE_ENV,
    AnalyticsSettings,
    load_analytics_settings,
    save_analytics_settings,
    settings_path,
)


def test_defaults_without_file_or_env(tmp_path, monkeypatch):
    monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "missing.json"))
    monkeypatch.delenv(TIMEZONE_ENV, raising=False)
    cfg = load_analytics_settings()
    assert cfg == AnalyticsSettings()
    assert cfg.trend_chart_min_span_days == 14
    assert cfg.baseline_min_span_days == 60
    assert cfg.funnel_min_completed_quotes == 30
    assert cfg.min_quotes_for_insights == 100
    assert cfg.baseline_window_days == 90
    assert cfg.timezone == "UTC"


def test_json_file_overrides_and_unknown_keys_are_ignored(tmp_path, monkeypatch, caplog):
    monkeypatch.delenv(TIMEZONE_ENV, raising=False)
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"funnel_min_completed_quotes": 50, "legacy_flag": True}))
    monkeypatch.setenv(CONFIG_PATH_ENV, str(path))
    cfg = load_analytics_settings()
    assert cfg.funnel_min_completed_quotes == 50
    assert cfg.trend_chart_min_span_days == 14
    assert "legacy_flag" in caplog.text


def test_timezone_env_wins_and_broken_file_falls_back(tmp_path, monkeypatch):
    path = tmp_path / "settings.json"
    path.write_text("{not json")
    monkeypatch.setenv(TIMEZONE_ENV, "America/Chicago")
    cfg = load_analytics_settings(path)
    assert cfg.timezone == "America/Chicago"
    assert cfg.baseline_window_days == 90


def test_saved_settings_load_back(tmp_path, monkeypatch):
    monkeypatch.delenv(TIMEZONE_ENV, raising=False)
    path = tmp_path / "nested" / "settings.json"
    save_analytics_settings(AnalyticsSettings(small_lawn_sqft=2500, timezone="Europe/Prague"), path)
    cfg = load_analytics_settings(path)
    assert cfg.small_lawn_sqft == 2500
    assert cfg.timezone == "Europe/Prague"


def test_wrongly_typed_values_are_coerced_or_fall_back(tmp_path, monkeypatch, caplog):
    monkeypatch.delenv(TIMEZONE_ENV, raising=False)
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "baseline_min_span_days": "45",
                "small_lawn_sqft": "2500.5",
                "trend_chart_min_span_days": "two weeks",
                "funnel_min_completed_quotes": 12.5,
                "min_quotes_for_insights": True,
                "timezone": 7,
            }
        )
    )
    cfg = load_analytics_settings(path)
    assert cfg.baseline_min_span_days == 45
    assert cfg.small_lawn_sqft == 2500.5
    assert cfg.trend_chart_min_span_days == 14
    assert cfg.funnel_min_completed_quotes == 30
    assert cfg.min_quotes_for_insights == 100
    assert cfg.timezone == "UTC"
    assert "trend_chart_min_span_days" in caplog.text


def test_save_defaults_to_configured_path(tmp_path, monkeypatch):
    target = tmp_path / "conf" / "analytics.json"
    monkeypatch.setenv(CONFIG_PATH_ENV, str(target))
    assert settings_path() == target
    assert save_analytics_settings(AnalyticsSettings(baseline_window_days=120)) == target
    assert json.loads(target.read_text())["baseline_window_days"] == 120


def test_settings_path_defaults_to_package_data_dir(monkeypatch):
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    path = settings_path()
    assert path.name == "analytics_settings.json"
    assert path.parent.name == "data"
