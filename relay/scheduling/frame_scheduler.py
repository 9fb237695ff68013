"""
Frame scheduling primitives.

A FrameScheduler runs callbacks at the next frame boundary of whatever host
drives the application (Qt event loop, asyncio loop or a manual pump in
tests). FrameTask layers the "at most one outstanding schedule" guard on top
so repeated requests within one frame collapse into a single callback.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from relay.logging.logger import get_logger

logger = get_logger(__name__)

FrameCallback = Callable[[], None]


class FrameScheduler(ABC):
    """Interface for frame boundary schedulers."""

    @abstractmethod
    def call_next_frame(self, callback: FrameCallback) -> None:
        """Run ``callback`` once at the next frame boundary."""

    def set_frame_rate(self, frame_rate: int) -> None:
        """Change the frame rate. Schedulers without a frame clock ignore it."""

    @staticmethod
    def _invoke(callback: FrameCallback) -> None:
        try:
            callback()
        except Exception as e:
            logger.exception("Frame callback %s raised: %s", _describe(callback), e)


class FrameTask:
    """A frame callback that can be requested many times but runs once per frame.

    The scheduled flag is cleared right before the callback runs, so work the
    callback queues for itself lands on the following frame instead of being
    dropped.
    """

    def __init__(self, scheduler: FrameScheduler, callback: FrameCallback, name: str = ""):
        self._scheduler = scheduler
        self._callback = callback
        self._name = name or _describe(callback)
        self._scheduled = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_scheduled(self) -> bool:
        return self._scheduled

    def schedule(self) -> bool:
        """Request a run at the next frame. Returns False if one is already pending."""
        if self._scheduled:
            return False
        self._scheduled = True
        self._scheduler.call_next_frame(self._run)
        return True

    def _run(self) -> None:
        self._scheduled = False
        self._callback()

    def __repr__(self) -> str:
        return f"FrameTask(name={self._name!r}, scheduled={self._scheduled})"


class ManualFrameScheduler(FrameScheduler):
    """Frames advance only when tick() is called.

    Used by tests and by hosts without an event loop that pump frames
    themselves.
    """

    def __init__(self) -> None:
        self._queue: List[FrameCallback] = []
        self._frame_count = 0

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def call_next_frame(self, callback: FrameCallback) -> None:
        self._queue.append(callback)

    def tick(self) -> int:
        """Run every callback queued before this frame. Returns how many ran."""
        batch, self._queue = self._queue, []
        self._frame_count += 1
        for callback in batch:
            self._invoke(callback)
        return len(batch)

    def run_until_idle(self, max_frames: int = 100) -> int:
        """Tick until nothing is queued. Returns the number of frames run."""
        frames = 0
        while self._queue and frames < max_frames:
            self.tick()
            frames += 1
        if self._queue:
            logger.warning(
                "ManualFrameScheduler still has %d callbacks after %d frames",
                len(self._queue), frames,
            )
        return frames


class AsyncioFrameScheduler(FrameScheduler):
    """Schedules frame callbacks one frame interval ahead on an asyncio loop."""

    def __init__(self, frame_rate: int = 60, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._frame_interval = 1.0 / max(1, int(frame_rate))
        self._loop = loop

    def set_frame_rate(self, frame_rate: int) -> None:
        self._frame_interval = 1.0 / max(1, int(frame_rate))

    @property
    def frame_interval(self) -> float:
        return self._frame_interval

    def call_next_frame(self, callback: FrameCallback) -> None:
        loop = self._loop or asyncio.get_running_loop()
        loop.call_later(self._frame_interval, self._invoke, callback)


def _describe(callback: Callable) -> str:
    return getattr(callback, "__qualname__", None) or getattr(callback, "__name__", None) or repr(callback)
