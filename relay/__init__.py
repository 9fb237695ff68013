"""
relay: in-process event dispatcher with frame-coalesced delivery and a
request/provide rendezvous.
"""

from relay.events import (
    Dispatcher,
    DispatcherError,
    DuplicateProviderError,
    HandlerFault,
    UsageError,
)
from relay.scheduling import (
    AsyncioFrameScheduler,
    FrameScheduler,
    FrameTask,
    ManualFrameScheduler,
    QtFrameScheduler,
    create_frame_scheduler,
)
from relay.settings import DispatcherConfig

__version__ = "1.0.0"

__all__ = [
    'Dispatcher',
    'DispatcherConfig',
    'DispatcherError',
    'UsageError',
    'DuplicateProviderError',
    'HandlerFault',
    'FrameScheduler',
    'FrameTask',
    'ManualFrameScheduler',
    'AsyncioFrameScheduler',
    'QtFrameScheduler',
    'create_frame_scheduler',
]
