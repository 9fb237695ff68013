"""
Tests for HandlerRegistry and event name splitting.
"""
import pytest

from relay.events import HandlerRegistry, split_event_names


def _noop(_payload):
    pass


def test_register_appends_in_order():
    """Records keep registration order and duplicates are allowed."""
    registry = HandlerRegistry()
    first = registry.register("evt", _noop)
    second = registry.register("evt", _noop)

    assert registry.snapshot("evt") == (first, second)
    assert registry.count("evt") == 2
    assert "evt" in registry


def test_register_rejects_non_callable():
    registry = HandlerRegistry()
    with pytest.raises(ValueError):
        registry.register("evt", "not callable")


def test_mark_disabled_by_handler():
    registry = HandlerRegistry()
    other = lambda _p: None
    target = registry.register("evt", _noop)
    kept = registry.register("evt", other)

    assert registry.mark_disabled("evt", handler=_noop) == 1
    assert target.disabled
    assert not kept.disabled
    assert registry.count("evt") == 1


def test_mark_disabled_by_subscriber_identity():
    registry = HandlerRegistry()
    owner = object()
    owned = registry.register("evt", _noop, owner)
    anonymous = registry.register("evt", _noop)

    registry.mark_disabled("evt", subscriber=owner)

    assert owned.disabled
    assert not anonymous.disabled


def test_mark_disabled_requires_both_when_both_given():
    """Handler + subscriber only matches records equal on both."""
    registry = HandlerRegistry()
    owner = object()
    handler_only = registry.register("evt", _noop)
    both = registry.register("evt", _noop, owner)

    assert registry.mark_disabled("evt", handler=_noop, subscriber=owner) == 1
    assert both.disabled
    assert not handler_only.disabled


def test_mark_disabled_matches_bound_methods():
    """Bound methods are recreated on access but still compare equal."""

    class Listener:
        def on_event(self, payload):
            pass

    listener = Listener()
    registry = HandlerRegistry()
    descriptor = registry.register("evt", listener.on_event)

    registry.mark_disabled("evt", handler=listener.on_event)
    assert descriptor.disabled


def test_mark_disabled_without_filter_is_noop():
    registry = HandlerRegistry()
    descriptor = registry.register("evt", _noop)

    assert registry.mark_disabled("evt") == 0
    assert not descriptor.disabled


def test_mark_disabled_unknown_event_scans_all():
    registry = HandlerRegistry()
    a = registry.register("a", _noop)
    b = registry.register("b", _noop)

    assert registry.mark_disabled("missing", handler=_noop) == 2
    assert a.disabled and b.disabled


def test_mark_disabled_skips_already_disabled():
    registry = HandlerRegistry()
    registry.register("evt", _noop)

    assert registry.mark_disabled("evt", handler=_noop) == 1
    assert registry.mark_disabled("evt", handler=_noop) == 0


def test_compact_removes_disabled_and_empty_lists():
    registry = HandlerRegistry()
    registry.register("gone", _noop)
    kept = registry.register("stay", _noop)
    registry.register("stay", lambda _p: None)
    registry.mark_disabled(handler=_noop)

    removed = registry.compact()

    assert removed == 2
    assert "gone" not in registry
    assert "stay" in registry
    assert kept not in registry.snapshot("stay")
    assert registry.count() == 1


def test_compact_is_idempotent_and_keeps_new_records():
    registry = HandlerRegistry()
    registry.register("evt", _noop)
    registry.mark_disabled("evt", handler=_noop)
    fresh = registry.register("evt", _noop)

    registry.compact()
    registry.compact()

    assert registry.snapshot("evt") == (fresh,)


def test_snapshot_is_detached_from_live_list():
    registry = HandlerRegistry()
    registry.register("evt", _noop)
    snapshot = registry.snapshot("evt")
    registry.register("evt", _noop)

    assert len(snapshot) == 1
    assert registry.snapshot("missing") == ()


@pytest.mark.parametrize("raw, expected", [
    ("a", ["a"]),
    ("a b", ["a", "b"]),
    ("a,b", ["a", "b"]),
    ("event1 event2  event3 , event4", ["event1", "event2", "event3", "event4"]),
    (" a, ", ["a"]),
    ("event:context1", ["event:context1"]),
])
def test_split_event_names(raw, expected):
    assert split_event_names(raw) == expected


def test_split_event_names_rejects_empty():
    with pytest.raises(ValueError):
        split_event_names(" , ")
    with pytest.raises(TypeError):
        split_event_names(None)
