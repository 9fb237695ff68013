"""
Scheduler selection from DispatcherConfig.
"""
import asyncio
from typing import Optional

from PySide6.QtCore import QCoreApplication

from relay.logging.logger import get_logger
from relay.scheduling.frame_scheduler import AsyncioFrameScheduler, FrameScheduler, ManualFrameScheduler
from relay.scheduling.qt_scheduler import QtFrameScheduler
from relay.settings.dispatcher_config import DispatcherConfig

logger = get_logger(__name__)


def create_frame_scheduler(config: Optional[DispatcherConfig] = None) -> FrameScheduler:
    """Build the frame scheduler named by ``config.scheduler``.

    "auto" prefers a running Qt application, then a running asyncio loop,
    and falls back to a ManualFrameScheduler (logged as a warning).
    """
    config = config or DispatcherConfig()
    mode = config.scheduler

    if mode == "qt":
        return QtFrameScheduler(config.frame_rate)
    if mode == "asyncio":
        return AsyncioFrameScheduler(config.frame_rate)
    if mode == "manual":
        return ManualFrameScheduler()
    if mode != "auto":
        raise ValueError(f"Unknown scheduler mode: {mode!r}")

    if QCoreApplication.instance() is not None:
        logger.debug("Auto scheduler: using Qt event loop")
        return QtFrameScheduler(config.frame_rate)
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    if loop is not None:
        logger.debug("Auto scheduler: using running asyncio loop")
        return AsyncioFrameScheduler(config.frame_rate, loop=loop)

    logger.warning(
        "No Qt application or asyncio loop; falling back to a ManualFrameScheduler "
        "that the dispatcher drains after each trigger/unsubscribe call"
    )
    return ManualFrameScheduler()
