"""Frame schedulers used by the dispatcher's coalescing flushes."""

from .factory import create_frame_scheduler
from .frame_scheduler import AsyncioFrameScheduler, FrameScheduler, FrameTask, ManualFrameScheduler
from .qt_scheduler import QtFrameScheduler

__all__ = [
    'FrameScheduler',
    'FrameTask',
    'ManualFrameScheduler',
    'AsyncioFrameScheduler',
    'QtFrameScheduler',
    'create_frame_scheduler',
]
