"""Configuration package."""

from expense_tracker.config.settings import (
    AppSettings,
    GeminiSettings,
    MongoSettings,
    OpenRouterSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "MongoSettings",
    "OpenRouterSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
