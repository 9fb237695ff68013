"""
Settings manager implementation for the relay dispatcher.

Uses QSettings for persistent storage, keyed by organization/application.
"""
from typing import Any, Dict
import threading
from PySide6.QtCore import QSettings, QObject, Signal
from relay.logging.logger import get_logger, is_verbose_logging

logger = get_logger('SettingsManager')


DEFAULT_SETTINGS: Dict[str, Any] = {
    # Frame boundary used by the coalescing flushes
    'dispatcher.frame_rate': 60,
    'dispatcher.scheduler': 'auto',  # 'auto' | 'qt' | 'asyncio' | 'manual'

    # Diagnostics
    'debug.events_trace': False,
}


class SettingsManager(QObject):
    """
    Centralized settings management for the dispatcher.

    Uses QSettings for persistent storage with organization/application name.
    Thread-safe; every set() emits settings_changed.
    """

    # Signal emitted when settings change
    settings_changed = Signal(str, object)  # key, new_value

    def __init__(self, organization: str = "Relay", application: str = "Dispatcher"):
        """
        Initialize the settings manager.

        Args:
            organization: Organization name for QSettings
            application: Application name for QSettings
        """
        super().__init__()
        self._settings = QSettings(organization, application)
        self._lock = threading.RLock()

        self._set_defaults()
        logger.info("SettingsManager initialized (%s/%s)", organization, application)

    def _set_defaults(self) -> None:
        """Set default values if not already present."""
        with self._lock:
            for key, value in DEFAULT_SETTINGS.items():
                if not self._settings.contains(key):
                    self._settings.setValue(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value.

        Args:
            key: Setting key in dot notation (e.g., 'dispatcher.frame_rate')
            default: Default value if key not found

        Returns:
            Setting value or default
        """
        with self._lock:
            return self._settings.value(key, default)

    @staticmethod
    def to_bool(value: Any, default: bool = False) -> bool:
        """Normalize a stored setting value to bool.

        QSettings hands back strings for values read from disk, so
        "true"/"1"/"yes"/"on" and "false"/"0"/"no"/"off" are accepted.
        """
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            v = value.strip().lower()
            if v in ("true", "1", "yes", "on"):
                return True
            if v in ("false", "0", "no", "off"):
                return False
            return default
        if value is None:
            return default
        return bool(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Convenience wrapper around get() that normalizes to bool."""
        return self.to_bool(self.get(key, default), default)

    def get_int(self, key: str, default: int = 0) -> int:
        """Convenience wrapper around get() that normalizes to int."""
        raw = self.get(key, default)
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("Setting %s=%r is not an integer; using %d", key, raw, default)
            return default

    def set(self, key: str, value: Any) -> None:
        """
        Set a setting value.

        Args:
            key: Setting key in dot notation
            value: Value to set
        """
        with self._lock:
            old_value = self._settings.value(key)
            self._settings.setValue(key, value)

        self.settings_changed.emit(key, value)

        if is_verbose_logging():
            logger.debug("Setting changed: %s: %r -> %r", key, old_value, value)
        else:
            logger.debug("Setting changed: %s", key)

    def contains(self, key: str) -> bool:
        """Check if a setting key exists."""
        with self._lock:
            return self._settings.contains(key)

    def clear(self) -> None:
        """Clear all settings (use with caution)."""
        with self._lock:
            self._settings.clear()
        logger.warning("All settings cleared")
