import pytest

from skin_biometrics.config import AnalysisSettings, get_settings, redact_secret


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SKIN_REFINEMENT_URL", "SKIN_REFINEMENT_API_KEY", "SKIN_REFINEMENT_TIMEOUT_SECONDS",
                 "SKIN_RECENCY_WINDOW_HOURS", "SKIN_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = get_settings()
    assert not settings.refinement_enabled
    assert settings.refinement_timeout_seconds == 20.0
    assert settings.recency_window_ms == 48 * 60 * 60 * 1000
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SKIN_REFINEMENT_URL", "https://refine.test/v1/analyze")
    monkeypatch.setenv("SKIN_RECENCY_WINDOW_HOURS", "12")
    monkeypatch.setenv("SKIN_LOG_LEVEL", "debug")
    settings = get_settings()
    assert settings.refinement_enabled
    assert settings.recency_window_ms == 12 * 60 * 60 * 1000
    assert settings.log_level == "DEBUG"


def test_non_numeric_timeout_rejected(monkeypatch):
    monkeypatch.setenv("SKIN_REFINEMENT_TIMEOUT_SECONDS", "soon")
    with pytest.raises(ValueError):
        get_settings()


def test_explicit_values():
    settings = AnalysisSettings(refinement_url="", recency_window_hours=1)
    assert settings.recency_window_ms == 3_600_000


def test_redact_secret():
    assert redact_secret("sk-abcdef123456") == "sk-a***56"
    assert redact_secret("short") == "***"
    assert redact_secret("") == "***"
