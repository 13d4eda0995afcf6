"""Configuration package."""

from ledger.config.settings import (
    AppSettings,
    Config,
    StorageSettings,
    get_config,
    validate_config,
)

__all__ = [
    "AppSettings",
    "Config",
    "StorageSettings",
    "get_config",
    "validate_config",
]
