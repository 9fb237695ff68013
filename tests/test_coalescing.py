"""
Tests for frame-coalesced delivery: coalesced triggers, throttled and
debounced subscriptions, replay-on-subscribe and when().
"""
from unittest.mock import MagicMock


class TestCoalescedTriggers:
    """trigger(..., coalesce=True) delivers once per frame with the last payload."""

    def test_planned_trigger_executes_on_next_frame(self, dispatcher, frame_scheduler):
        state = {"a": 10}
        dispatcher.subscribe("event", lambda data: state.update(a=data))

        dispatcher.trigger("event", 10, coalesce=True)
        assert state["a"] == 10
        dispatcher.trigger("event", 20, coalesce=True)
        assert state["a"] == 10
        dispatcher.trigger("event", 100)
        dispatcher.trigger("event", 30, coalesce=True)
        assert state["a"] == 100

        frame_scheduler.tick()
        assert state["a"] == 30

    def test_three_coalesced_triggers_deliver_once(self, dispatcher, frame_scheduler):
        handler = MagicMock()
        dispatcher.subscribe("E", handler)

        dispatcher.trigger("E", 1, coalesce=True)
        dispatcher.trigger("E", 2, coalesce=True)
        dispatcher.trigger_latest("E", 3)

        assert frame_scheduler.pending == 1
        frame_scheduler.tick()

        handler.assert_called_once_with(3)

    def test_coalesced_and_immediate_triggers_both_fire(self, dispatcher, frame_scheduler):
        handler = MagicMock()
        dispatcher.subscribe("eventName", handler)

        dispatcher.trigger_latest("eventName")
        handler.assert_not_called()
        dispatcher.trigger("eventName")
        assert handler.call_count == 1

        frame_scheduler.tick()
        assert handler.call_count == 2

    def test_distinct_events_are_flushed_independently(self, dispatcher, frame_scheduler):
        received = []
        dispatcher.subscribe("a b", received.append)

        dispatcher.trigger_latest("a", "a1")
        dispatcher.trigger_latest("b", "b1")
        dispatcher.trigger_latest("a", "a2")
        frame_scheduler.tick()

        assert sorted(received) == ["a2", "b1"]

    def test_coalesced_trigger_from_flush_lands_on_next_frame(self, dispatcher, frame_scheduler):
        chained = MagicMock()
        dispatcher.subscribe("first", lambda p: dispatcher.trigger_latest("second", p + 1))
        dispatcher.subscribe("second", chained)

        dispatcher.trigger_latest("first", 1)
        frame_scheduler.tick()
        chained.assert_not_called()

        frame_scheduler.tick()
        chained.assert_called_once_with(2)

    def test_coalesced_trigger_updates_cache_only_on_flush(self, dispatcher, frame_scheduler):
        dispatcher.trigger_latest("evt", 7)
        assert not dispatcher.was_triggered("evt")

        frame_scheduler.tick()
        assert dispatcher.last_value("evt") == 7


class TestThrottledSubscriptions:
    """Latest-registry subscribers fire at most once per frame."""

    def test_never_called_synchronously(self, dispatcher, frame_scheduler):
        handler = MagicMock()
        dispatcher.subscribe_throttled("event", handler)

        dispatcher.trigger("event", 100500)
        handler.assert_not_called()

        frame_scheduler.tick()
        handler.assert_called_once_with(100500)

    def test_many_triggers_fan_in_to_last_value(self, dispatcher, frame_scheduler):
        handler = MagicMock()
        dispatcher.subscribe_throttled("E", handler)

        for value in (1, 2, 3):
            dispatcher.trigger("E", value)
        frame_scheduler.tick()

        handler.assert_called_once_with(3)

    def test_fires_again_on_later_frames(self, dispatcher, frame_scheduler):
        received = []
        dispatcher.subscribe_throttled("event", received.append)

        dispatcher.trigger("event", 100500)
        dispatcher.trigger("event", 123)
        frame_scheduler.tick()
        dispatcher.trigger("event", 999)
        frame_scheduler.tick()

        assert received == [123, 999]

    def test_plays_fine_with_coalesced_trigger(self, dispatcher, frame_scheduler):
        """A frame with both kinds of trigger delivers once, with the coalesced payload."""
        handler = MagicMock()
        dispatcher.subscribe_throttled("eventName", handler)

        dispatcher.trigger("eventName", 100500)
        dispatcher.trigger_latest("eventName", 100)
        dispatcher.trigger("eventName", 100500)
        handler.assert_not_called()

        frame_scheduler.tick()
        handler.assert_called_once_with(100)

        frame_scheduler.run_until_idle()
        handler.assert_called_once_with(100)

    def test_coalesced_flush_feeds_throttled_and_debounced(self, dispatcher, frame_scheduler):
        counts = {"a": 10, "b": 10}
        dispatcher.trigger_latest("eventName")
        dispatcher.subscribe_throttled("eventName", lambda _p: counts.update(a=counts["a"] + 10))
        dispatcher.subscribe_debounced("eventName", lambda _p: counts.update(b=counts["b"] + 10))
        dispatcher.trigger_latest("eventName")

        frame_scheduler.run_until_idle()

        assert counts == {"a": 20, "b": 20}

    def test_immediate_trigger_inside_flush_reaches_latest_now(self, dispatcher, frame_scheduler):
        throttled = MagicMock()
        dispatcher.subscribe_throttled("b", throttled)
        dispatcher.subscribe("a", lambda p: dispatcher.trigger("b", p))

        dispatcher.trigger_latest("a", 5)
        frame_scheduler.tick()

        throttled.assert_called_once_with(5)
        assert frame_scheduler.pending == 0

    def test_ordinary_subscribers_unaffected(self, dispatcher, frame_scheduler):
        ordinary = MagicMock()
        throttled = MagicMock()
        dispatcher.subscribe("evt", ordinary)
        dispatcher.subscribe_throttled("evt", throttled)

        dispatcher.trigger("evt", 1)
        dispatcher.trigger("evt", 2)

        assert ordinary.call_count == 2
        throttled.assert_not_called()
        frame_scheduler.tick()
        throttled.assert_called_once_with(2)


class TestLatestUnsubscribe:
    """unsubscribe(..., latest=True) targets the throttled/debounced registry."""

    def test_by_callback(self, dispatcher, frame_scheduler):
        callback = MagicMock()
        dispatcher.subscribe_throttled("eventName", callback)
        dispatcher.unsubscribe("eventName", callback, latest=True)

        dispatcher.trigger("eventName")
        frame_scheduler.run_until_idle()

        callback.assert_not_called()

    def test_by_subscriber(self, dispatcher, frame_scheduler):
        callback = MagicMock()
        context = object()
        dispatcher.subscribe_throttled("eventName", callback, context)
        dispatcher.unsubscribe("eventName", subscriber=context, latest=True)

        dispatcher.trigger("eventName")
        frame_scheduler.run_until_idle()

        callback.assert_not_called()

    def test_specific_handler_only(self, dispatcher, frame_scheduler):
        keep_first = MagicMock()
        to_remove = MagicMock()
        keep_last = MagicMock()
        dispatcher.subscribe_throttled("eventName", keep_first)
        dispatcher.subscribe_throttled("eventName", to_remove)
        dispatcher.subscribe_throttled("eventName", keep_last)

        dispatcher.unsubscribe("eventName", to_remove, latest=True)
        dispatcher.trigger("eventName")
        frame_scheduler.run_until_idle()

        keep_first.assert_called_once()
        keep_last.assert_called_once()
        to_remove.assert_not_called()

    def test_registries_are_independent(self, dispatcher, frame_scheduler):
        state = {"a": 0, "b": 10}
        context = object()
        dispatcher.subscribe_throttled("eventName", lambda _p: state.update(a=10), context)
        dispatcher.subscribe("eventName", lambda _p: state.update(a=20, b=20), context)
        dispatcher.subscribe("eventName", lambda _p: state.update(a=30))

        dispatcher.unsubscribe("eventName", subscriber=context, latest=True)
        dispatcher.trigger("eventName")
        frame_scheduler.run_until_idle()
        assert state == {"a": 30, "b": 20}

        state["b"] = 0
        dispatcher.unsubscribe("eventName", subscriber=context)
        dispatcher.trigger("eventName")
        frame_scheduler.run_until_idle()
        assert state == {"a": 30, "b": 0}


class TestReplayOnSubscribe:
    """subscribe_with_past / subscribe_debounced catch up with the cached value."""

    def test_subscribe_with_past_replays_synchronously(self, dispatcher):
        context = object()
        ordinary = MagicMock()
        replayed = MagicMock()
        dispatcher.trigger("event", 100500)
        dispatcher.subscribe("event", ordinary, context)

        dispatcher.subscribe_with_past("event", replayed, context)

        replayed.assert_called_once_with(100500)
        ordinary.assert_not_called()

    def test_subscribe_with_past_keeps_receiving(self, dispatcher):
        received = []
        dispatcher.trigger("E", 42)
        dispatcher.subscribe_with_past("E", received.append)
        dispatcher.trigger("E", 43)

        assert received == [42, 43]

    def test_subscribe_with_past_without_history(self, dispatcher):
        handler = MagicMock()
        dispatcher.subscribe_with_past("never", handler)

        handler.assert_not_called()
        assert dispatcher.get_subscription_count("never") == 1

    def test_replays_cached_none_payload(self, dispatcher):
        handler = MagicMock()
        dispatcher.trigger("evt")

        dispatcher.subscribe_with_past("evt", handler)

        handler.assert_called_once_with(None)

    def test_debounced_replays_then_throttles(self, dispatcher, frame_scheduler):
        received = []
        dispatcher.trigger("event", 100)

        dispatcher.subscribe_debounced("event", received.append)
        assert received == [100]

        dispatcher.trigger("event", 200)
        dispatcher.trigger("event", 300)
        assert received == [100]
        frame_scheduler.tick()
        assert received == [100, 300]

    def test_debounced_without_history(self, dispatcher, frame_scheduler):
        handler = MagicMock()
        dispatcher.subscribe_debounced("event", handler)
        for value in (100, 200, 300):
            dispatcher.trigger("event", value)

        frame_scheduler.tick()

        handler.assert_called_once_with(300)

    def test_failing_replay_is_isolated(self, dispatcher, frame_scheduler):
        listener = MagicMock()
        dispatcher.add_fault_listener(listener)
        dispatcher.trigger("event", 1)

        dispatcher.subscribe_with_past("event", MagicMock(side_effect=RuntimeError("replay")))
        frame_scheduler.tick()

        assert listener.call_args.args[0].event_name == "event"
        assert dispatcher.get_subscription_count("event") == 1


class TestWhen:
    """when() returns a future for the next occurrence."""

    def test_resolves_on_next_trigger(self, dispatcher):
        future = dispatcher.when("event")
        assert not future.done()

        dispatcher.trigger("event", "payload")

        assert future.result(timeout=0) == "payload"

    def test_unsubscribes_after_first_delivery(self, dispatcher, frame_scheduler):
        future = dispatcher.when("event")
        dispatcher.trigger("event", 1)
        dispatcher.trigger("event", 2)
        frame_scheduler.run_until_idle()

        assert future.result(timeout=0) == 1
        assert dispatcher.get_subscription_count("event") == 0

    def test_resolve_if_already_triggered(self, dispatcher):
        dispatcher.trigger("event", 5)

        assert dispatcher.when("event", True).result(timeout=0) == 5
        assert not dispatcher.when("event").done()

    def test_resolve_flag_waits_when_never_triggered(self, dispatcher):
        future = dispatcher.when("event", resolve_if_triggered=True)
        assert not future.done()

        dispatcher.trigger("event", None)
        assert future.done()
        assert future.result(timeout=0) is None

    def test_works_with_coalesced_triggers(self, dispatcher, frame_scheduler):
        first = dispatcher.when("eventName")
        dispatcher.trigger_latest("eventName", 10)
        dispatcher.trigger_latest("eventName", 20)
        dispatcher.trigger_latest("eventName", 30)
        second = dispatcher.when("eventName")

        frame_scheduler.tick()

        assert first.result(timeout=0) == 30
        assert second.result(timeout=0) == 30

    def test_done_callback_receives_payload(self, dispatcher):
        seen = []
        dispatcher.when("event").add_done_callback(lambda f: seen.append(f.result()))

        dispatcher.trigger("event", "x")

        assert seen == ["x"]

    def test_resolve_if_triggered_checks_every_name(self, dispatcher):
        dispatcher.trigger("b", "from b")

        future = dispatcher.when("a b", resolve_if_triggered=True)

        assert future.result(timeout=0) == "from b"

    def test_multiple_names_resolve_on_first_trigger(self, dispatcher):
        future = dispatcher.when("a, b")

        dispatcher.trigger("b", 2)
        dispatcher.trigger("a", 1)

        assert future.result(timeout=0) == 2
