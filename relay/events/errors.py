"""
Exception types raised by the relay dispatcher.
"""


class DispatcherError(Exception):
    """Base class for dispatcher errors."""


class UsageError(DispatcherError):
    """The dispatcher API was called in a way it does not support."""


class DuplicateProviderError(UsageError):
    """A namespace already has a provider."""

    def __init__(self, namespace: str):
        super().__init__(f'"{namespace}" is already provided')
        self.namespace = namespace
