"""Configuration module for the wizard session engine."""

from .database import DatabaseSettings, get_database_settings
from .settings import ResilienceSettings, Settings, WizardSettings, get_settings

__all__ = [
    "DatabaseSettings",
    "get_database_settings",
    "ResilienceSettings",
    "Settings",
    "WizardSettings",
    "get_settings",
]
