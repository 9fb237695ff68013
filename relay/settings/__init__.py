"""Settings and configuration for the relay dispatcher."""

from .dispatcher_config import DispatcherConfig
from .settings_manager import DEFAULT_SETTINGS, SettingsManager

__all__ = ['SettingsManager', 'DispatcherConfig', 'DEFAULT_SETTINGS']
