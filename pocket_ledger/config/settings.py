"""
Configuration Management for Pocket Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirestoreSettings(BaseSettings):
    """Google Cloud Firestore storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    project_id: str = Field(
        ...,
        description="Google Cloud project hosting the Firestore database"
    )

    # Collection names. Accounts and transactions live under
    # {users_collection}/{user_id}/...
    users_collection: str = Field(
        default="users",
        description="Top-level collection partitioning data per user"
    )
    accounts_collection: str = Field(
        default="accounts",
        description="Per-user sub-collection holding accounts"
    )
    transactions_collection: str = Field(
        default="transactions",
        description="Per-user sub-collection holding transactions"
    )
    audit_collection: str = Field(
        default="audit_log",
        description="Top-level collection for audit events"
    )

    max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="How many times Firestore re-runs a contended transaction"
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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    # Ledger defaults
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency assigned to accounts created without one"
    )
    storage_backend: Literal["memory", "firestore"] = Field(
        default="memory",
        description="Which storage backend create_app_components wires up"
    )

    # Optimistic concurrency (in-memory backend)
    conflict_max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Attempts before a conflicting atomic scope gives up"
    )
    conflict_wait_min_seconds: float = Field(
        default=0.01,
        ge=0.0,
        description="Minimum back-off between conflicting attempts"
    )
    conflict_wait_max_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Maximum back-off between conflicting attempts"
    )

    @field_validator('default_currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()


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

    # Sub-settings are loaded lazily so the in-memory backend works
    # without any Firestore configuration

    @property
    def firestore(self) -> FirestoreSettings:
        return FirestoreSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.firestore
        results["firestore"] = True
    except Exception as e:
        results["firestore"] = False
        results["firestore_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
