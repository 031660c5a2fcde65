"""
Tests for the change event bus
"""

from unittest.mock import Mock

from soundtouch_cloud.events import ChangeEvent, EventBus, ZONE_UPDATED


class TestEventBus:
    """Subscribe / publish"""

    def test_publish_delivers_to_all_observers(self):
        bus = EventBus()
        first, second = Mock(), Mock()
        bus.subscribe(first)
        bus.subscribe(second)

        event = bus.publish(ZONE_UPDATED, zone={"master": "M"})

        first.assert_called_once_with(event)
        second.assert_called_once_with(event)

    def test_unsubscribe(self):
        bus = EventBus()
        observer = Mock()
        unsubscribe = bus.subscribe(observer)
        unsubscribe()
        unsubscribe()

        bus.publish(ZONE_UPDATED)
        observer.assert_not_called()

    def test_failing_observer_does_not_stop_delivery(self):
        bus = EventBus()
        broken = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        bus.subscribe(broken)
        bus.subscribe(healthy)

        bus.publish(ZONE_UPDATED)
        healthy.assert_called_once()

    def test_event_to_dict(self):
        event = ChangeEvent("presetsUpdated", {"deviceId": "dev1", "presets": []})
        assert event.to_dict() == {"type": "presetsUpdated", "deviceId": "dev1", "presets": []}
