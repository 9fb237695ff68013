"""Request/provide rendezvous."""

from .broker import NO_ARGUMENT, PendingRequest, ProviderBroker

__all__ = ['ProviderBroker', 'PendingRequest', 'NO_ARGUMENT']
