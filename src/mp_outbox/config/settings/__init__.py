"""Config settings – 12-factor env-based configuration."""
from mp_outbox.config.settings.base import Settings
from mp_outbox.config.settings.loaders import DotenvSettingsLoader, EnvSettingsLoader, SettingsLoader
from mp_outbox.config.settings.relay import RelaySettings

__all__ = ["DotenvSettingsLoader", "EnvSettingsLoader", "RelaySettings", "Settings", "SettingsLoader"]
