"""
Handler registry: event name -> ordered subscription records.

Unsubscription only flips the ``disabled`` flag; records are physically
removed by compact(), which the dispatcher defers to a frame boundary so a
list is never rewritten while a delivery is iterating it.
"""
from typing import Any, Dict, Iterator, List, Optional, Tuple

from relay.events.event_types import Handler, SubscriptionDescriptor
from relay.logging.logger import get_logger

logger = get_logger(__name__)


class HandlerRegistry:
    """Ordered subscription lists keyed by event name."""

    def __init__(self, name: str = "ordinary"):
        self.name = name
        self._descriptors: Dict[str, List[SubscriptionDescriptor]] = {}

    def register(self, event_name: str, handler: Handler, subscriber: Any = None,
                 pass_context: bool = False) -> SubscriptionDescriptor:
        """Append an enabled record for ``event_name``. Duplicates are allowed."""
        if not callable(handler):
            raise ValueError("Handler must be callable")
        descriptor = SubscriptionDescriptor(handler, subscriber, pass_context)
        self._descriptors.setdefault(event_name, []).append(descriptor)
        return descriptor

    def mark_disabled(
        self,
        event_name: Optional[str] = None,
        handler: Optional[Handler] = None,
        subscriber: Any = None,
    ) -> int:
        """Disable records matching the filter. Returns how many were disabled.

        With a known ``event_name`` only that list is scanned, otherwise every
        list is.
        """
        if handler is None and subscriber is None:
            return 0

        if event_name is not None and event_name in self._descriptors:
            candidates = [self._descriptors[event_name]]
        else:
            candidates = list(self._descriptors.values())

        disabled = 0
        for descriptors in candidates:
            for descriptor in descriptors:
                if not descriptor.disabled and descriptor.matches(handler, subscriber):
                    descriptor.disabled = True
                    disabled += 1
        return disabled

    def compact(self) -> int:
        """Drop disabled records and empty lists. Returns how many records were removed."""
        removed = 0
        for event_name in list(self._descriptors):
            descriptors = self._descriptors[event_name]
            enabled = [d for d in descriptors if not d.disabled]
            removed += len(descriptors) - len(enabled)
            if enabled:
                self._descriptors[event_name] = enabled
            else:
                del self._descriptors[event_name]
        if removed:
            logger.debug("Compacted %s registry: removed %d handlers", self.name, removed)
        return removed

    def snapshot(self, event_name: str) -> Tuple[SubscriptionDescriptor, ...]:
        """Records for ``event_name`` as of now; later registrations are not included."""
        return tuple(self._descriptors.get(event_name, ()))

    def count(self, event_name: Optional[str] = None) -> int:
        """Number of enabled records, for one event or all of them."""
        if event_name is not None:
            lists = [self._descriptors.get(event_name, [])]
        else:
            lists = list(self._descriptors.values())
        return sum(1 for descriptors in lists for d in descriptors if not d.disabled)

    def event_names(self) -> List[str]:
        return list(self._descriptors)

    def clear(self) -> None:
        self._descriptors.clear()

    def __contains__(self, event_name: object) -> bool:
        return event_name in self._descriptors

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._descriptors))

    def __len__(self) -> int:
        return len(self._descriptors)
