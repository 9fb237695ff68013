"""
Qt-backed frame scheduler.

Frame callbacks are posted with QTimer.singleShot on the thread that owns
the QCoreApplication, one frame interval ahead.
"""
from PySide6.QtCore import QCoreApplication, QThread, QTimer

from relay.logging.logger import get_logger
from relay.scheduling.frame_scheduler import FrameCallback, FrameScheduler

logger = get_logger(__name__)


class QtFrameScheduler(FrameScheduler):
    """Runs frame callbacks from the Qt event loop."""

    def __init__(self, frame_rate: int = 60):
        if QCoreApplication.instance() is None:
            raise RuntimeError("QtFrameScheduler requires a QCoreApplication instance")
        self._interval_ms = max(1, int(1000 / max(1, int(frame_rate))))
        logger.debug("QtFrameScheduler initialized (interval=%dms)", self._interval_ms)

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    def set_frame_rate(self, frame_rate: int) -> None:
        self._interval_ms = max(1, int(1000 / max(1, int(frame_rate))))
        logger.debug("QtFrameScheduler interval changed to %dms", self._interval_ms)

    def call_next_frame(self, callback: FrameCallback) -> None:
        app = QCoreApplication.instance()
        if app is None:
            raise RuntimeError("call_next_frame called without QCoreApplication")
        if QThread.currentThread() is not app.thread():
            logger.warning("Frame callback %r scheduled from a non-UI thread", callback)
        QTimer.singleShot(self._interval_ms, lambda: self._invoke(callback))
