"""Event dispatcher, registries and record types."""

from .dispatcher import Dispatcher
from .errors import DispatcherError, DuplicateProviderError, UsageError
from .event_types import HandlerFault, SubscriptionDescriptor, split_event_names
from .registry import HandlerRegistry

__all__ = [
    'Dispatcher',
    'HandlerRegistry',
    'SubscriptionDescriptor',
    'HandlerFault',
    'split_event_names',
    'DispatcherError',
    'UsageError',
    'DuplicateProviderError',
]
