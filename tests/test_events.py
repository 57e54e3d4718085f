"""Tests for the event bus."""

import pytest

from remote_reload.events import EventBus


class TestSubscribe:
    """Tests for on/once/off."""

    def test_emit_delivers_data_and_meta(self):
        bus = EventBus()
        seen = []
        bus.on("remote:loaded", lambda data, meta: seen.append((data, meta)))
        bus.emit("remote:loaded", {"pkg": "widget"}, source="host", id="evt-1")
        assert len(seen) == 1
        data, meta = seen[0]
        assert data == {"pkg": "widget"}
        assert meta.source == "host"
        assert meta.id == "evt-1"
        assert meta.timestamp > 0

    def test_unsubscribe_function(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.on("e", lambda data, meta: seen.append(data))
        unsubscribe()
        bus.emit("e", 1)
        assert seen == []
        assert bus.has_listeners("e") is False

    def test_once_fires_a_single_time(self):
        bus = EventBus()
        seen = []
        bus.once("e", lambda data, meta: seen.append(data))
        bus.emit("e", 1)
        bus.emit("e", 2)
        assert seen == [1]
        assert bus.listener_count("e") == 0

    def test_filter_skips_events(self):
        bus = EventBus()
        seen = []
        bus.on("e", lambda data, meta: seen.append(data), filter=lambda data, meta: data > 1)
        bus.emit("e", 1)
        bus.emit("e", 2)
        assert seen == [2]

    def test_off_without_callback_removes_all(self):
        bus = EventBus()
        bus.on("e", lambda d, m: None)
        bus.on("e", lambda d, m: None)
        assert bus.listener_count("e") == 2
        bus.off("e")
        assert bus.events() == []

    def test_listener_exists(self):
        bus = EventBus()

        def callback(data, meta):
            return None

        bus.on("e", callback)
        assert bus.listener_exists("e", callback)
        assert not bus.listener_exists("other", callback)


class TestEmit:
    """Tests for isolation and history."""

    def test_failing_listener_does_not_stop_others(self):
        bus = EventBus()
        seen = []

        def broken(data, meta):
            raise RuntimeError("boom")

        bus.on("e", broken)
        bus.on("e", lambda data, meta: seen.append(data))
        bus.emit("e", "payload")
        assert seen == ["payload"]

    def test_history_is_bounded(self):
        bus = EventBus(max_history=2)
        for i in range(5):
            bus.emit("e", i)
        assert [record.data for record in bus.get_history("e")] == [3, 4]

    def test_history_recorded_without_listeners(self):
        bus = EventBus()
        bus.emit("e", "x")
        assert len(bus.get_history("e")) == 1

    def test_clear_single_event(self):
        bus = EventBus()
        bus.on("a", lambda d, m: None)
        bus.on("b", lambda d, m: None)
        bus.emit("a")
        bus.clear("a")
        assert bus.get_history("a") == []
        assert bus.events() == ["b"]

    def test_clear_everything(self):
        bus = EventBus()
        bus.on("a", lambda d, m: None)
        bus.emit("a")
        bus.clear()
        assert bus.events() == []
        assert bus.get_history("a") == []


class TestConstruction:
    """Tests for EventBus construction."""

    def test_internal_state_is_not_a_constructor_argument(self):
        with pytest.raises(TypeError):
            EventBus(_listeners={})

    def test_instances_do_not_share_state(self):
        first, second = EventBus(), EventBus(max_history=5)
        first.on("e", lambda d, m: None)
        first.emit("e")
        assert second.events() == []
        assert second.get_history("e") == []
        assert second.max_history == 5
