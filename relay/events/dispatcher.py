"""
Event dispatcher with frame-coalesced delivery.

Ordinary subscriptions are called synchronously from trigger(). Coalesced
triggers and "latest" subscriptions are flushed at the next frame boundary
of the injected FrameScheduler, so any number of triggers within one frame
produce a single delivery carrying the most recent payload.

Unsubscribing only disables records; physical removal is deferred to a
frame flush, which keeps handlers free to unsubscribe themselves or their
siblings in the middle of a delivery.
"""
import time
from concurrent.futures import Future
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Dict, Iterator, List, Optional

from relay.events.event_types import Handler, HandlerFault, SubscriptionDescriptor, split_event_names
from relay.events.registry import HandlerRegistry
from relay.logging.logger import get_logger
from relay.rendezvous.broker import NO_ARGUMENT, Provider, ProviderBroker, RequestCallback
from relay.scheduling.factory import create_frame_scheduler
from relay.scheduling.frame_scheduler import FrameScheduler, FrameTask, ManualFrameScheduler
from relay.settings.dispatcher_config import DispatcherConfig
from relay.settings.settings_manager import SettingsManager

logger = get_logger(__name__)

FaultListener = Callable[[HandlerFault], None]


class Dispatcher:
    """
    In-process publish/subscribe hub with a request/provide rendezvous.

    Two registries are kept: the ordinary one (immediate delivery) and the
    latest one (at most one delivery per frame, always with the last value).
    Single-threaded: all calls must come from the thread that drives the
    scheduler.
    """

    def __init__(self, scheduler: Optional[FrameScheduler] = None,
                 config: Optional[DispatcherConfig] = None):
        """
        Initialize the dispatcher.

        Args:
            scheduler: Frame scheduler for deferred work. Built from
                ``config`` when omitted.
            config: Dispatcher options; defaults to DispatcherConfig().
        """
        self._config = config or DispatcherConfig()
        self._pumps_own_frames = False
        if scheduler is None:
            scheduler = create_frame_scheduler(self._config)
            # No host drives an auto-selected manual scheduler; it is drained
            # after every outermost trigger/unsubscribe call instead.
            self._pumps_own_frames = (
                self._config.scheduler == "auto" and isinstance(scheduler, ManualFrameScheduler)
            )
        self._scheduler = scheduler
        self._trace_enabled = self._config.trace
        self._call_depth = 0
        self._settings: Optional[SettingsManager] = None

        self._handlers = HandlerRegistry("ordinary")
        self._latest_handlers = HandlerRegistry("latest")

        # Last delivered payload per event; key presence means "was triggered"
        self._was_triggered_with: Dict[str, Any] = {}

        # Coalesced triggers waiting for the next frame (name -> latest payload)
        self._planned_triggers: Dict[str, Any] = {}
        self._executing_planned_triggers = False

        # Events whose latest subscribers must be notified next frame
        self._planned_subscriptions: Dict[str, None] = {}

        self._pending_faults: List[HandlerFault] = []
        self._fault_listeners: List[FaultListener] = []

        self._trigger_task = FrameTask(self._scheduler, self._execute_planned_triggers, "planned-triggers")
        self._subscriber_task = FrameTask(self._scheduler, self._execute_planned_subscribers, "latest-subscribers")
        self._cleanup_task = FrameTask(self._scheduler, self._remove_disabled_handlers, "handler-cleanup")
        self._fault_task = FrameTask(self._scheduler, self._flush_faults, "handler-faults")

        self._broker = ProviderBroker()

        logger.info("Dispatcher initialized (scheduler=%s)", type(self._scheduler).__name__)

    @property
    def scheduler(self) -> FrameScheduler:
        return self._scheduler

    @property
    def config(self) -> DispatcherConfig:
        return self._config

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, event_names: str, handler: Handler, subscriber: Any = None, *,
                  pass_context: bool = False) -> "Dispatcher":
        """Call ``handler(payload)`` every time one of ``event_names`` is triggered.

        Args:
            event_names: One or more event names separated by spaces and/or commas
            handler: Callable receiving the payload
            subscriber: Optional invocation context; also used to unsubscribe
                a group of handlers at once
            pass_context: Call ``handler(payload, context)`` where context is
                ``subscriber``, or this dispatcher when no subscriber is given

        Returns:
            The dispatcher, for chaining.
        """
        for event_name in split_event_names(event_names):
            self._handlers.register(event_name, handler, subscriber, pass_context)
            self._log_subscription("subscribe", event_name, handler)
        return self

    def subscribe_with_past(self, event_names: str, handler: Handler, subscriber: Any = None, *,
                            pass_context: bool = False) -> "Dispatcher":
        """Like subscribe(), but first replays the last payload if the event already fired."""
        for event_name in split_event_names(event_names):
            self._replay(event_name, handler, subscriber, pass_context)
            self._handlers.register(event_name, handler, subscriber, pass_context)
            self._log_subscription("subscribe_with_past", event_name, handler)
        return self

    def subscribe_throttled(self, event_names: str, handler: Handler, subscriber: Any = None, *,
                            pass_context: bool = False) -> "Dispatcher":
        """Call ``handler`` at most once per frame with the latest payload."""
        for event_name in split_event_names(event_names):
            self._latest_handlers.register(event_name, handler, subscriber, pass_context)
            self._log_subscription("subscribe_throttled", event_name, handler)
        return self

    def subscribe_debounced(self, event_names: str, handler: Handler, subscriber: Any = None, *,
                            pass_context: bool = False) -> "Dispatcher":
        """subscribe_throttled() that also replays the last payload immediately."""
        for event_name in split_event_names(event_names):
            self._replay(event_name, handler, subscriber, pass_context)
            self._latest_handlers.register(event_name, handler, subscriber, pass_context)
            self._log_subscription("subscribe_debounced", event_name, handler)
        return self

    def unsubscribe(
        self,
        event_names: Optional[str] = None,
        handler: Optional[Handler] = None,
        subscriber: Any = None,
        *,
        latest: bool = False,
    ) -> "Dispatcher":
        """Stop delivering to matching handlers.

        Matching records are disabled at once and removed at the next frame.
        When ``event_names`` is omitted (or names an event without handlers)
        every event is searched.

        Args:
            event_names: Event name(s) to search
            handler: Handler to remove
            subscriber: Subscriber to remove; combined with ``handler`` only
                records matching both are removed
            latest: Search the throttled/debounced subscriptions instead of
                the ordinary ones
        """
        if handler is None and subscriber is None:
            # Refuse the accidental "drop everything for this event" call
            logger.warning(
                "unsubscribe(%r) ignored: either handler or subscriber must be given",
                event_names,
            )
            return self

        registry = self._latest_handlers if latest else self._handlers
        names = split_event_names(event_names) if event_names is not None else [None]
        disabled = 0
        with self._outermost_call():
            for event_name in names:
                disabled += registry.mark_disabled(event_name, handler, subscriber)

            logger.debug(
                "Unsubscribed %d %s handler(s) from %s",
                disabled, registry.name, event_names if event_names is not None else "all events",
            )
            self._cleanup_task.schedule()
        return self

    # ------------------------------------------------------------------
    # Triggering
    # ------------------------------------------------------------------

    def trigger(self, event_name: str, payload: Any = None, *, coalesce: bool = False) -> None:
        """Notify subscribers of ``event_name``.

        Args:
            event_name: Event to trigger
            payload: Data passed to handlers
            coalesce: Defer to the next frame; repeated coalesced triggers of
                the same event within a frame deliver only the last payload
        """
        with self._outermost_call():
            if coalesce:
                self._planned_triggers[event_name] = payload
                self._trigger_task.schedule()
            else:
                self._trigger_now(event_name, payload)

    def trigger_latest(self, event_name: str, payload: Any = None) -> None:
        """Shorthand for trigger(event_name, payload, coalesce=True)."""
        self.trigger(event_name, payload, coalesce=True)

    def when(self, event_name: str, resolve_if_triggered: bool = False) -> Future:
        """Future resolved with the payload of the next ``event_name`` trigger.

        Args:
            event_name: Event (or space/comma separated events) to wait for
            resolve_if_triggered: Resolve at once with the cached payload if
                the event already fired
        """
        future: Future = Future()
        if resolve_if_triggered:
            for name in split_event_names(event_name):
                if name in self._was_triggered_with:
                    future.set_result(self._was_triggered_with[name])
                    return future

        def once_handler(payload: Any) -> None:
            self.unsubscribe(event_name, once_handler)
            if not future.done():
                future.set_result(payload)

        self.subscribe(event_name, once_handler)
        return future

    def was_triggered(self, event_name: str) -> bool:
        return event_name in self._was_triggered_with

    def last_value(self, event_name: str, default: Any = None) -> Any:
        """Payload of the most recent delivery of ``event_name``, or ``default``."""
        return self._was_triggered_with.get(event_name, default)

    # ------------------------------------------------------------------
    # Request / provide
    # ------------------------------------------------------------------

    def provide(self, namespace: str, provider: Provider) -> None:
        """Register the single provider for ``namespace``.

        Raises:
            DuplicateProviderError: If ``namespace`` is already provided.
        """
        self._broker.provide(namespace, provider)

    def request(self, namespace: str, argument: Any = NO_ARGUMENT,
                callback: Optional[RequestCallback] = None) -> Future:
        """Request data from the provider of ``namespace``; see ProviderBroker.request()."""
        return self._broker.request(namespace, argument, callback)

    def stop_providing(self, namespace: str) -> None:
        self._broker.stop_providing(namespace)

    @property
    def broker(self) -> ProviderBroker:
        return self._broker

    # ------------------------------------------------------------------
    # Fault channel
    # ------------------------------------------------------------------

    def add_fault_listener(self, listener: FaultListener) -> None:
        """Receive a HandlerFault, one frame later, whenever a handler raises."""
        self._fault_listeners.append(listener)

    def remove_fault_listener(self, listener: FaultListener) -> None:
        try:
            self._fault_listeners.remove(listener)
        except ValueError:
            logger.debug("remove_fault_listener: listener was not registered")

    # ------------------------------------------------------------------
    # Introspection / lifecycle
    # ------------------------------------------------------------------

    def get_subscription_count(self, event_name: Optional[str] = None, *, latest: bool = False) -> int:
        """Number of active (not unsubscribed) handlers."""
        registry = self._latest_handlers if latest else self._handlers
        return registry.count(event_name)

    def clear(self) -> None:
        """Drop all subscriptions, cached values, queued triggers and providers."""
        self._handlers.clear()
        self._latest_handlers.clear()
        self._was_triggered_with.clear()
        self._planned_triggers.clear()
        self._planned_subscriptions.clear()
        self._pending_faults.clear()
        self._broker.clear()
        logger.info("Dispatcher cleared")

    def bind_settings(self, settings: SettingsManager) -> None:
        """Follow live changes of the dispatcher keys in ``settings``.

        ``debug.events_trace`` toggles dispatch tracing and
        ``dispatcher.frame_rate`` retunes the scheduler. A changed
        ``dispatcher.scheduler`` only affects dispatchers created later.
        """
        self.unbind_settings()
        self._settings = settings
        settings.settings_changed.connect(self._on_setting_changed)
        logger.debug("Dispatcher bound to settings")

    def unbind_settings(self) -> None:
        if self._settings is None:
            return
        try:
            self._settings.settings_changed.disconnect(self._on_setting_changed)
        except (RuntimeError, TypeError) as e:
            logger.debug("Settings signal already disconnected: %s", e)
        self._settings = None

    def shutdown(self) -> None:
        """Explicit shutdown method."""
        self.unbind_settings()
        self._fault_listeners.clear()
        self.clear()
        logger.info("Dispatcher shutdown complete")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _outermost_call(self) -> Iterator[None]:
        """Track API call nesting; drain a self-owned manual scheduler when the outermost call ends."""
        self._call_depth += 1
        try:
            yield
        finally:
            self._call_depth -= 1
        if self._call_depth == 0 and self._pumps_own_frames:
            self._call_depth += 1
            try:
                self._scheduler.run_until_idle()
            finally:
                self._call_depth -= 1

    def _on_setting_changed(self, key: str, value: Any) -> None:
        if self._settings is None:
            return
        if key == 'debug.events_trace':
            self._trace_enabled = SettingsManager.to_bool(value)
            self._config = replace(self._config, trace=self._trace_enabled)
            logger.info("Dispatch tracing %s", "enabled" if self._trace_enabled else "disabled")
        elif key == 'dispatcher.frame_rate':
            try:
                frame_rate = int(value)
            except (TypeError, ValueError):
                logger.warning("Ignoring dispatcher.frame_rate=%r: not an integer", value)
                return
            self._config = replace(self._config, frame_rate=frame_rate)
            self._scheduler.set_frame_rate(self._config.frame_rate)
            logger.info("Dispatcher frame rate set to %d", self._config.frame_rate)
        elif key == 'dispatcher.scheduler':
            logger.info("dispatcher.scheduler=%r takes effect for new dispatchers", value)

    def _trigger_now(self, event_name: str, payload: Any) -> None:
        self._deliver(self._handlers, event_name, payload)
        if event_name not in self._latest_handlers:
            return
        if self._executing_planned_triggers:
            # Already at the frame boundary: deliver now instead of next frame
            self._planned_subscriptions.pop(event_name, None)
            self._deliver(self._latest_handlers, event_name, payload)
        else:
            self._planned_subscriptions[event_name] = None
            self._subscriber_task.schedule()

    def _deliver(self, registry: HandlerRegistry, event_name: str, payload: Any) -> None:
        self._was_triggered_with[event_name] = payload
        descriptors = registry.snapshot(event_name)
        if self._trace_enabled:
            logger.debug(
                "dispatch.begin type=%s registry=%s handlers=%d",
                event_name, registry.name, len(descriptors),
            )
        for descriptor in descriptors:
            # Unsubscribed by an earlier handler of this same delivery
            if descriptor.disabled:
                continue
            self._execute_handler(event_name, descriptor, payload)

    def _execute_handler(self, event_name: str, descriptor: SubscriptionDescriptor, payload: Any) -> None:
        start_ts = time.perf_counter() if self._trace_enabled else 0.0
        try:
            if descriptor.pass_context:
                context = descriptor.subscriber if descriptor.subscriber is not None else self
                descriptor.handler(payload, context)
            else:
                descriptor.handler(payload)
        except Exception as e:
            logger.error(
                "[FAULT] Error in event handler %s for %s: %s",
                self._format_callback(descriptor.handler), event_name, e,
                exc_info=True,
            )
            self._pending_faults.append(HandlerFault(event_name, descriptor.handler, descriptor.subscriber, e))
            self._fault_task.schedule()
        finally:
            if self._trace_enabled:
                logger.debug(
                    "dispatch.end type=%s sub=%s dur_ms=%.3f",
                    event_name,
                    self._format_callback(descriptor.handler),
                    (time.perf_counter() - start_ts) * 1000.0,
                )

    def _replay(self, event_name: str, handler: Handler, subscriber: Any, pass_context: bool) -> None:
        if event_name in self._was_triggered_with:
            descriptor = SubscriptionDescriptor(handler, subscriber, pass_context)
            self._execute_handler(event_name, descriptor, self._was_triggered_with[event_name])

    def _execute_planned_triggers(self) -> None:
        planned, self._planned_triggers = self._planned_triggers, {}
        self._executing_planned_triggers = True
        try:
            for event_name, payload in planned.items():
                self._trigger_now(event_name, payload)
        finally:
            self._executing_planned_triggers = False

    def _execute_planned_subscribers(self) -> None:
        planned, self._planned_subscriptions = self._planned_subscriptions, {}
        for event_name in planned:
            # The planned-trigger flush delivers these to latest subscribers itself
            if event_name in self._planned_triggers:
                continue
            self._deliver(self._latest_handlers, event_name, self._was_triggered_with.get(event_name))

    def _remove_disabled_handlers(self) -> None:
        self._latest_handlers.compact()
        self._handlers.compact()

    def _flush_faults(self) -> None:
        faults, self._pending_faults = self._pending_faults, []
        for fault in faults:
            for listener in list(self._fault_listeners):
                try:
                    listener(fault)
                except Exception as e:
                    logger.exception("Fault listener %s raised: %s", self._format_callback(listener), e)

    def _log_subscription(self, kind: str, event_name: str, handler: Handler) -> None:
        logger.debug("New %s: event=%s, callback=%s", kind, event_name, self._format_callback(handler))

    @staticmethod
    def _format_callback(callback: Callable) -> str:
        """Format a callback function for logging."""
        if hasattr(callback, '__qualname__'):
            return callback.__qualname__
        if hasattr(callback, '__name__'):
            return callback.__name__
        return str(callback)
