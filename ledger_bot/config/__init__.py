"""Configuration package."""

from ledger_bot.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    MongoSettings,
    NotionSettings,
    Settings,
    WhatsAppSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "MongoSettings",
    "NotionSettings",
    "Settings",
    "WhatsAppSettings",
    "get_settings",
    "validate_all_settings",
]
