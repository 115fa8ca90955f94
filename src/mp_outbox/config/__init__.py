"""Configuration – settings dataclasses, loaders and validation errors."""
from mp_outbox.config.settings import (
    DotenvSettingsLoader,
    EnvSettingsLoader,
    RelaySettings,
    Settings,
    SettingsLoader,
)
from mp_outbox.config.validation import (
    ConfigError,
    InvalidSettingValueError,
    MissingRequiredSettingError,
)

__all__ = [
    "ConfigError",
    "DotenvSettingsLoader",
    "EnvSettingsLoader",
    "InvalidSettingValueError",
    "MissingRequiredSettingError",
    "RelaySettings",
    "Settings",
    "SettingsLoader",
]
