"""
Typed dispatcher configuration resolved from SettingsManager.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from relay.logging.logger import get_logger

if TYPE_CHECKING:
    from relay.settings.settings_manager import SettingsManager

logger = get_logger(__name__)

SCHEDULER_MODES = ("auto", "qt", "asyncio", "manual")
MIN_FRAME_RATE = 1
MAX_FRAME_RATE = 240


@dataclass
class DispatcherConfig:
    """Runtime options for a Dispatcher and its frame scheduler."""

    frame_rate: int = 60
    scheduler: str = "auto"
    trace: bool = False

    def __post_init__(self) -> None:
        clamped = max(MIN_FRAME_RATE, min(MAX_FRAME_RATE, int(self.frame_rate)))
        if clamped != self.frame_rate:
            logger.warning("frame_rate %s out of range, clamped to %d", self.frame_rate, clamped)
        self.frame_rate = clamped
        self.scheduler = str(self.scheduler).strip().lower()
        if self.scheduler not in SCHEDULER_MODES:
            raise ValueError(
                f"Unknown scheduler mode {self.scheduler!r}; expected one of {SCHEDULER_MODES}"
            )

    @property
    def frame_interval(self) -> float:
        """Length of one frame in seconds."""
        return 1.0 / self.frame_rate

    @property
    def frame_interval_ms(self) -> int:
        return max(1, int(1000 / self.frame_rate))

    @classmethod
    def from_settings(cls, settings: "SettingsManager") -> "DispatcherConfig":
        return cls(
            frame_rate=settings.get_int('dispatcher.frame_rate', 60),
            scheduler=str(settings.get('dispatcher.scheduler', 'auto')),
            trace=settings.get_bool('debug.events_trace', False),
        )
