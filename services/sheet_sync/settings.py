"""
Configuration settings for the Sheet Sync service.

Loads configuration from environment variables and .env files
with validation and type conversion. Missing or malformed required
settings fail before any network call is made.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SHEETS_READONLY_SCOPE = "https://www.googleapis.com/auth/spreadsheets.readonly"


class ConfigurationError(Exception):
    """Required configuration is missing or malformed."""
    pass


class SheetSyncSettings(BaseSettings):
    """Configuration for the Sheet Sync service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Source: Google Sheet
    google_sheet_id: str = Field(
        description="Spreadsheet identifier"
    )

    google_sheet_gid: str = Field(
        default="0",
        description="Tab identifier used by the CSV export"
    )

    google_sheet_range: str = Field(
        default="Sheet1!A1:Z1000",
        description="A1 range used by the Sheets values API"
    )

    google_api_key: Optional[str] = Field(
        default=None,
        description="API key for the Sheets values API"
    )

    google_service_account_json: Optional[str] = Field(
        default=None,
        description="Inline service account credentials (JSON)"
    )

    google_service_account_json_path: Optional[str] = Field(
        default=None,
        description="Path to a service account key file"
    )

    # Destination
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (PostgREST destination)"
    )

    supabase_service_role_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key (write credential)"
    )

    database_url: Optional[str] = Field(
        default=None,
        description="PostgreSQL connection string (direct destination)"
    )

    students_table: str = Field(
        default="students",
        description="Destination table name"
    )

    upsert_batch_size: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Rows per upsert request"
    )

    # HTTP Client Configuration
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="HTTP request timeout in seconds"
    )

    http_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per source request"
    )

    http_backoff_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Linear backoff base between attempts"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    log_format: str = Field(
        default="json",
        description="Log output format (json, text)"
    )

    service_name: str = Field(
        default="sheet-sync",
        description="Service name for logging"
    )

    environment: str = Field(
        default="development",
        description="Environment name (development, staging, production)"
    )

    @field_validator("google_sheet_id")
    @classmethod
    def validate_sheet_id(cls, v):
        """Sheet id cannot be blank."""
        if not v or not v.strip():
            raise ValueError("google_sheet_id cannot be empty")
        return v.strip()

    @field_validator(
        "google_api_key",
        "google_service_account_json",
        "google_service_account_json_path",
        "supabase_url",
        "supabase_service_role_key",
        "database_url",
    )
    @classmethod
    def blank_to_none(cls, v):
        """Treat blank optional values as unset."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("google_sheet_gid", "google_sheet_range")
    @classmethod
    def strip_value(cls, v):
        return v.strip()

    @field_validator("supabase_service_role_key")
    @classmethod
    def validate_service_role_key(cls, v):
        """Reject keys that were pasted truncated."""
        if v is None:
            return v
        if len(v) < 50 or "..." in v:
            raise ValueError(
                "Invalid SUPABASE_SERVICE_ROLE_KEY. Paste the full Service Role key "
                "from Supabase project settings."
            )
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Validate database DSN format if provided."""
        if v is None:
            return v
        if not v.startswith(("postgresql://", "postgres://", "postgresql+psycopg://")):
            raise ValueError("database_url must be a valid PostgreSQL connection string")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format is supported."""
        valid_formats = {"json", "text"}
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {', '.join(sorted(valid_formats))}")
        return v.lower()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment name."""
        valid_envs = {"development", "staging", "production"}
        if v.lower() not in valid_envs:
            raise ValueError(f"environment must be one of: {', '.join(sorted(valid_envs))}")
        return v.lower()

    @model_validator(mode="after")
    def validate_destination(self):
        """A run needs somewhere to write."""
        if self.database_url:
            return self
        if not self.supabase_url or not self.supabase_service_role_key:
            raise ValueError(
                "No destination configured: set DATABASE_URL, or both "
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY"
            )
        return self

    def has_service_account(self) -> bool:
        """Check if service account credentials were provided."""
        return bool(self.google_service_account_json_path or self.google_service_account_json)

    def rest_endpoint(self) -> str:
        """PostgREST URL of the students table."""
        return f"{self.supabase_url.rstrip('/')}/rest/v1/{self.students_table}"


def load_settings(**overrides) -> SheetSyncSettings:
    """
    Build settings, turning validation failures into ConfigurationError.

    Args:
        **overrides: Explicit values that take precedence over the environment

    Raises:
        ConfigurationError: If a required setting is missing or invalid
    """
    try:
        return SheetSyncSettings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e


@lru_cache()
def get_settings() -> SheetSyncSettings:
    """Get cached settings instance."""
    return load_settings()

