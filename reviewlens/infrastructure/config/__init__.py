from .settings import (
    Settings, LLMSettings, AnalyticsSettings, ScraperSettings, get_settings,
)
