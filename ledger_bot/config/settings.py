"""
Configuration Management for the Expense Ledger Bot

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here, but it is only read
once at bootstrap. Components receive the settings object they need through
their constructor instead of reaching for a module-wide singleton.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ledger_bot.models.transaction import Dimension, MessageSchema


class WhatsAppSettings(BaseSettings):
    """WhatsApp Cloud API configuration (inbound webhook + outbound send)."""

    model_config = SettingsConfigDict(
        env_prefix="WHATSAPP_",
        extra="ignore"
    )

    access_token: str = Field(
        ...,
        description="Bearer token for the Graph API"
    )
    phone_number_id: str = Field(
        ...,
        description="Phone number ID that sends the replies"
    )
    verify_token: str = Field(
        ...,
        description="Token echoed back during the webhook challenge handshake"
    )
    app_secret: Optional[str] = Field(
        default=None,
        description="App secret used to check X-Hub-Signature-256 (optional)"
    )
    api_version: str = Field(
        default="v18.0",
        description="Graph API version"
    )
    graph_base_url: str = Field(
        default="https://graph.facebook.com",
        description="Graph API base URL"
    )
    request_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for outbound send requests"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets ledger backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )
    ledger_sheet_name: str = Field(
        default="Gastos",
        description="Name of the worksheet holding the ledger"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class MongoSettings(BaseSettings):
    """MongoDB ledger backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONGO_",
        extra="ignore"
    )

    uri: str = Field(
        ...,
        description="MongoDB connection string"
    )
    database: str = Field(
        default="financas",
        description="Database name"
    )
    collection: str = Field(
        default="gastos",
        description="Collection holding the ledger"
    )
    server_selection_timeout_ms: int = Field(
        default=5000,
        ge=100,
        description="How long the driver waits for a server before failing"
    )
    collation_locale: str = Field(
        default="pt",
        description="Collation locale used for case-insensitive label matching"
    )


class NotionSettings(BaseSettings):
    """Notion page-database ledger backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="NOTION_",
        extra="ignore"
    )

    api_token: str = Field(
        ...,
        description="Notion integration token"
    )
    database_id: str = Field(
        ...,
        description="ID of the database holding the ledger"
    )
    api_version: str = Field(
        default="2022-06-28",
        description="Value of the Notion-Version header"
    )
    base_url: str = Field(
        default="https://api.notion.com/v1",
        description="Notion REST API base URL"
    )

    # Property names in the database schema
    title_property: str = Field(default="Descrição")
    amount_property: str = Field(default="Valor")
    category_property: str = Field(default="Categoria")
    payment_type_property: str = Field(default="Pagamento")
    timestamp_property: str = Field(default="Data")
    idempotency_property: Optional[str] = Field(
        default="ID da mensagem",
        description="Rich text property holding the message id (unset to disable)"
    )
    payment_type_encoding: Literal["select", "multi_select"] = Field(
        default="multi_select",
        description="How the payment type property is modelled in the database"
    )
    request_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Logging
    debug_mode: bool = Field(
        default=False,
        description="Log at DEBUG level with human-readable console output"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level name"
    )

    # Pipeline
    ledger_backend: Literal["memory", "google_sheets", "mongodb", "notion"] = Field(
        default="google_sheets",
        description="Which backend stores the ledger"
    )
    message_schema: MessageSchema = Field(
        default=MessageSchema.FOUR_FIELD,
        description="Field layout expected in inbound messages"
    )
    aggregate_dimension: Optional[Dimension] = Field(
        default=None,
        description="Dimension used for the running total (derived from the schema if unset)"
    )
    default_payment_type: str = Field(
        default="Outros",
        min_length=1,
        description="Payment type recorded when messages use the three-field schema"
    )
    notify_on_store_failure: bool = Field(
        default=True,
        description="Reply to the sender when the backend rejects a write"
    )

    # Currency formatting policy
    currency_symbol: str = Field(default="R$")
    thousands_separator: str = Field(default=".")
    decimal_separator: str = Field(default=",")
    currency_decimals: int = Field(default=2, ge=0, le=6)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        """Fall back to INFO on unknown level names instead of failing boot."""
        level = str(value).upper() if value else "INFO"
        allowed = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        return level if level in allowed else "INFO"

    @property
    def effective_dimension(self) -> Dimension:
        """Dimension to aggregate on, defaulting from the message schema."""
        if self.aggregate_dimension is not None:
            return self.aggregate_dimension
        if self.message_schema == MessageSchema.THREE_FIELD:
            return Dimension.CATEGORY
        return Dimension.PAYMENT_TYPE


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a deployment only has to
    # configure the backend it actually uses.

    @property
    def whatsapp(self) -> WhatsAppSettings:
        return WhatsAppSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def mongo(self) -> MongoSettings:
        return MongoSettings()

    @property
    def notion(self) -> NotionSettings:
        return NotionSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Only the bootstrap code should call this.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings groups.

    Returns a dict of {setting_name: is_valid} plus an
    "<name>_error" entry for every group that failed to load.
    """
    results = {}
    settings = get_settings()

    for name in ("app", "whatsapp", "google_sheets", "mongo", "notion"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
