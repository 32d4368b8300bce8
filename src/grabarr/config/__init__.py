"""Configuration module for grabarr."""

from .settings import (
    DatabaseSettings,
    HealthSettings,
    ObservabilitySettings,
    SchedulerSettings,
    SearchSettings,
    Settings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "HealthSettings",
    "ObservabilitySettings",
    "SchedulerSettings",
    "SearchSettings",
    "Settings",
    "get_settings",
]
