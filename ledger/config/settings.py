"""
Configuration Management for Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here so that every tunable of the store
is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Durable storage backend configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="LEDGER_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    backend: str = Field(
        default="sqlite",
        pattern="^(sqlite|memory)$",
        description="Storage backend to use"
    )
    database_path: str = Field(
        default="ledger.db",
        description="Path to the SQLite database file"
    )
    connect_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times to try opening the backend at startup"
    )
    busy_timeout_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="How long SQLite waits on a locked database"
    )
    
    @field_validator('database_path')
    @classmethod
    def validate_database_path(cls, v: str) -> str:
        """Reject a database path whose parent is an existing file."""
        if v != ":memory:":
            parent = Path(v).expanduser().parent
            if parent.exists() and not parent.is_dir():
                raise ValueError(f"Database directory is not a directory: {parent}")
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
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for structured logs"
    )
    
    # Values used when seeding the settings singleton
    default_currency: str = Field(
        default="₹",
        min_length=1,
        description="Currency symbol for a fresh ledger"
    )
    default_language: str = Field(
        default="en",
        min_length=2,
        description="Language code for a fresh ledger"
    )


class Config(BaseSettings):
    """
    Root configuration container.
    
    Aggregates all sub-settings for easy access.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()
    
    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_config() -> Config:
    """
    Get application configuration (cached).
    
    Call get_config.cache_clear() to reload if needed.
    """
    return Config()


def validate_config() -> dict[str, bool]:
    """
    Validate all settings are properly configured.
    
    Returns a dict of {setting_name: is_valid} plus a
    {setting_name}_error entry for each failure.
    """
    results = {}
    
    config = get_config()
    
    try:
        _ = config.storage
        results["storage"] = True
    except Exception as e:
        results["storage"] = False
        results["storage_error"] = str(e)
    
    try:
        _ = config.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)
    
    return results
