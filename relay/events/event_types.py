"""
Record types shared by the dispatcher and its registries.
"""
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

Handler = Callable[[Any], None]

_EVENT_NAME_SEPARATORS = re.compile(r"[ ,]+")


def split_event_names(event_names: str) -> List[str]:
    """Split a "a b, c" style list into individual event names."""
    if not isinstance(event_names, str):
        raise TypeError(f"event names must be a string, got {type(event_names).__name__}")
    names = [name for name in _EVENT_NAME_SEPARATORS.split(event_names) if name]
    if not names:
        raise ValueError("event_names must contain at least one event name")
    return names


@dataclass(eq=False)
class SubscriptionDescriptor:
    """One handler registration for one event name.

    With ``pass_context`` the handler is called as ``handler(payload, context)``
    where context is the subscriber, or the dispatcher when no subscriber was
    given.
    """
    handler: Handler
    subscriber: Any = None
    pass_context: bool = False
    disabled: bool = False

    def matches(self, handler: Optional[Handler] = None, subscriber: Any = None) -> bool:
        """True if this record is selected by the unsubscribe filter.

        Handlers compare by equality so bound methods of the same object match;
        subscribers compare by identity.
        """
        if handler is not None and subscriber is not None:
            return self.handler == handler and self.subscriber is subscriber
        if handler is not None:
            return self.handler == handler
        if subscriber is not None:
            return self.subscriber is subscriber
        return False


@dataclass(frozen=True)
class HandlerFault:
    """An exception raised by a handler during delivery."""
    event_name: str
    handler: Handler
    subscriber: Any
    error: BaseException

    def __str__(self) -> str:
        return f"{self.event_name}: {type(self.error).__name__}: {self.error}"
