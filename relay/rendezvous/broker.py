"""
Request/provide rendezvous.

One provider per namespace. Requests made while a namespace has no provider
are queued and answered, in order, as soon as one is registered. Every
request returns a concurrent.futures.Future; a request that is never
provided simply stays pending.
"""
import asyncio
import inspect
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from relay.events.errors import DuplicateProviderError
from relay.logging.logger import get_logger, is_verbose_logging

logger = get_logger(__name__)

Provider = Callable[..., Any]
RequestCallback = Callable[[Any], None]


class _NoArgument:
    def __repr__(self) -> str:
        return "<no argument>"


NO_ARGUMENT = _NoArgument()


@dataclass
class PendingRequest:
    """A request waiting for its namespace to get a provider."""
    argument: Any
    future: Future
    callback: Optional[RequestCallback] = None


class ProviderBroker:
    """Pairs requesters with providers registered before or after the request."""

    def __init__(self) -> None:
        self._providers: Dict[str, Provider] = {}
        self._requested_before_provided: Dict[str, List[PendingRequest]] = {}
        # Coroutine results in flight; the loop only holds weak references
        self._tasks: Set[asyncio.Task] = set()

    def provide(self, namespace: str, provider: Provider) -> None:
        """Register ``provider`` for ``namespace`` and answer queued requests.

        Raises:
            DuplicateProviderError: If the namespace already has a provider.
        """
        if not callable(provider):
            raise ValueError("Provider must be callable")
        if namespace in self._providers:
            raise DuplicateProviderError(namespace)

        self._providers[namespace] = provider
        pending = self._requested_before_provided.pop(namespace, [])
        logger.debug("Provider registered for %s (%d queued requests)", namespace, len(pending))

        for request in pending:
            try:
                result = self._call_provider(provider, request.argument)
            except Exception as e:
                logger.warning("Provider for %s failed on queued request: %s", namespace, e, exc_info=True)
                if not request.future.done():
                    request.future.set_exception(e)
                continue
            self._resolve(namespace, result, request.future, request.callback)

    def request(
        self,
        namespace: str,
        argument: Any = NO_ARGUMENT,
        callback: Optional[RequestCallback] = None,
    ) -> Future:
        """Ask the provider of ``namespace`` for a value.

        Args:
            namespace: Provider namespace
            argument: Passed to the provider; omitted means the provider is
                called without arguments
            callback: Optional extra channel, called with the resolved value

        Returns:
            Future resolved with the provider's value. Pending until a
            provider exists.
        """
        future: Future = Future()
        provider = self._providers.get(namespace)
        if provider is None:
            self._requested_before_provided.setdefault(namespace, []).append(
                PendingRequest(argument, future, callback)
            )
            logger.debug("Request for %s queued until a provider registers", namespace)
            return future

        try:
            result = self._call_provider(provider, argument)
        except Exception as e:
            logger.warning("Provider for %s failed: %s", namespace, e, exc_info=True)
            future.set_exception(e)
            return future
        self._resolve(namespace, result, future, callback)
        return future

    def stop_providing(self, namespace: str) -> None:
        """Remove the provider of ``namespace``. Already issued futures are untouched."""
        if self._providers.pop(namespace, None) is not None:
            logger.debug("Stopped providing %s", namespace)

    def is_provided(self, namespace: str) -> bool:
        return namespace in self._providers

    @property
    def running_tasks(self) -> int:
        """Number of provider coroutines still running."""
        return len(self._tasks)

    def pending_requests(self, namespace: Optional[str] = None) -> int:
        """Number of queued requests, for one namespace or in total."""
        if namespace is not None:
            return len(self._requested_before_provided.get(namespace, []))
        return sum(len(q) for q in self._requested_before_provided.values())

    def clear(self) -> None:
        """Drop providers and queued requests. Queued futures stay pending."""
        self._providers.clear()
        self._requested_before_provided.clear()

    @staticmethod
    def _call_provider(provider: Provider, argument: Any) -> Any:
        if argument is NO_ARGUMENT:
            return provider()
        return provider(argument)

    def _resolve(self, namespace: str, result: Any, future: Future,
                 callback: Optional[RequestCallback]) -> None:
        # Deferred results are flattened exactly one level.
        if inspect.iscoroutine(result):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                result.close()
                future.set_exception(RuntimeError(
                    f"Provider for {namespace!r} returned a coroutine but no asyncio loop is running"
                ))
                return
            result = loop.create_task(result)
            self._tasks.add(result)
            result.add_done_callback(self._tasks.discard)

        if callable(getattr(result, "add_done_callback", None)):
            result.add_done_callback(
                lambda inner: self._settle_from(namespace, inner, future, callback)
            )
            return

        self._settle(namespace, result, future, callback)

    def _settle_from(self, namespace: str, inner: Any, future: Future,
                     callback: Optional[RequestCallback]) -> None:
        if future.done():
            return
        if inner.cancelled():
            future.cancel()
            return
        error = inner.exception()
        if error is not None:
            future.set_exception(error)
            return
        self._settle(namespace, inner.result(), future, callback)

    @staticmethod
    def _settle(namespace: str, value: Any, future: Future,
                callback: Optional[RequestCallback]) -> None:
        if future.done():
            # cancelled by the requester
            return
        if callback is not None:
            try:
                callback(value)
            except Exception as e:
                logger.error("Request callback for %s raised: %s", namespace, e, exc_info=True)
        if is_verbose_logging():
            logger.debug("Request for %s resolved with %r", namespace, value)
        future.set_result(value)
