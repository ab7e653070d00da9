import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables
load_dotenv()


def _env_float(name, default):
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {value!r}")


class AnalysisSettings(BaseModel):
    """Runtime settings for the refinement collaborator and the command line tool."""
    refinement_url: str = Field(default_factory=lambda: os.getenv("SKIN_REFINEMENT_URL", ""))
    refinement_api_key: str = Field(default_factory=lambda: os.getenv("SKIN_REFINEMENT_API_KEY", ""))
    refinement_timeout_seconds: float = Field(
        default_factory=lambda: _env_float("SKIN_REFINEMENT_TIMEOUT_SECONDS", 20.0), gt=0
    )
    recency_window_hours: float = Field(
        default_factory=lambda: _env_float("SKIN_RECENCY_WINDOW_HOURS", 48.0), gt=0
    )
    log_level: str = Field(default_factory=lambda: os.getenv("SKIN_LOG_LEVEL", "INFO").upper())

    @property
    def refinement_enabled(self):
        return bool(self.refinement_url)

    @property
    def recency_window_ms(self):
        return int(self.recency_window_hours * 60 * 60 * 1000)


def redact_secret(value):
    """Redact API keys for logging"""
    if not value or len(value) < 8:
        return "***"
    return f"{value[:4]}***{value[-2:]}"


def get_settings():
    return AnalysisSettings()
