"""Runtime configuration values that administrators change without a redeploy."""

from .store import (
    ConfigurationKey,
    ConfigurationStore,
    PostgresConfigurationStore,
    SettingsConfigurationStore,
    StaticConfigurationStore,
)

__all__ = [
    "ConfigurationKey",
    "ConfigurationStore",
    "PostgresConfigurationStore",
    "SettingsConfigurationStore",
    "StaticConfigurationStore",
]
