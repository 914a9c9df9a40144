"""
Settings Module - Centralized Configuration Management
=======================================================

ARCHITECTURAL DECISION:
- All configuration is loaded from environment variables (no hardcoded secrets)
- Settings are immutable dataclasses for safety and clarity
- Single source of truth for all configurable values

get_settings() is for entry points only (main.py, scripts, create_app).
Everything below them receives its settings as a constructor argument.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file if present (development convenience)
load_dotenv()

SCORE_SCALES = ("percent", "unit")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


@dataclass(frozen=True)
class LLMSettings:
    """OpenAI-compatible chat-completions settings for review analysis."""

    api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    api_url: str = field(
        default_factory=lambda: os.getenv(
            "LLM_API_URL", "https://api.openai.com/v1/chat/completions"
        )
    )
    model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o"))

    # Deterministic output
    temperature: float = 0.0

    # Calls past this are reported as a classifier timeout, never retried
    timeout_seconds: int = field(default_factory=lambda: _env_int("LLM_TIMEOUT_SECONDS", 30))

    # Token budget for insight prompts
    max_insight_reviews: int = 20


@dataclass(frozen=True)
class AnalyticsSettings:
    """Dashboard and insight tuning."""

    # How aspect_scores.score is stored: "percent" (0-100) or "unit" (0-1)
    aspect_score_scale: str = field(
        default_factory=lambda: os.getenv("ASPECT_SCORE_SCALE", "percent").lower()
    )
    trend_window_days: int = 30
    rating_trend_days: int = 90
    recent_review_count: int = 5

    # Aspects whose rollup score falls below this get an insight
    insight_score_threshold: int = 60
    max_insight_aspects: int = 3


@dataclass(frozen=True)
class ScraperSettings:
    """Review source listing scraper (Selenium)."""

    headless: bool = True
    page_load_timeout: int = 10
    settle_seconds: float = 3.0


@dataclass(frozen=True)
class Settings:
    """
    Root settings container - Single source of truth for all configuration.

    Usage:
        from reviewlens.infrastructure.config import get_settings
        settings = get_settings()
        print(settings.llm.model)
    """

    # Sub-settings groups
    llm: LLMSettings = field(default_factory=LLMSettings)
    analytics: AnalyticsSettings = field(default_factory=AnalyticsSettings)
    scraper: ScraperSettings = field(default_factory=ScraperSettings)

    database_file: Path = field(
        default_factory=lambda: Path(os.getenv("DATABASE_FILE", "reviewlens.db"))
    )
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    def validate(self) -> list[str]:
        """
        Validate settings and return list of warnings/errors.
        Returns empty list if all settings are valid.
        """
        issues = []

        if not self.llm.api_key:
            issues.append(
                "WARNING: OPENAI_API_KEY not set. "
                "Review classification and insights will fail until it is."
            )

        if self.analytics.aspect_score_scale not in SCORE_SCALES:
            issues.append(
                f"WARNING: ASPECT_SCORE_SCALE '{self.analytics.aspect_score_scale}' "
                f"is not one of {', '.join(SCORE_SCALES)}; using 'percent'."
            )

        if self.llm.timeout_seconds <= 0:
            issues.append("WARNING: LLM_TIMEOUT_SECONDS must be positive.")

        return issues


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get singleton Settings instance.
    Cached to ensure consistent settings throughout application lifecycle.
    """
    return Settings()
