"""
Tests for the device registry
"""

import pytest
from unittest.mock import Mock

from soundtouch_cloud.errors import DeviceNotFound, MalformedInput
from soundtouch_cloud.events import EventBus, DEVICE_REGISTERED, DEVICE_UPDATED, NOW_PLAYING_UPDATED
from soundtouch_cloud.models import (
    ContentReference, DeviceDescriptor, NowPlaying, PlaybackState, PlayStatus, MAX_RECENTS,
)
from soundtouch_cloud.registry import DeviceRegistry


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def registry(events):
    registry = DeviceRegistry(events)
    registry.register(DeviceDescriptor(id="A", name="Kitchen", host="10.0.0.1"))
    registry.register(DeviceDescriptor(id="B", name="Bedroom", host="10.0.0.2"))
    return registry


def radio(name="Jazz", location="http://jazz.example/stream"):
    return NowPlaying.from_content(ContentReference(source="INTERNET_RADIO", location=location, name=name))


class TestLookup:
    """Device lookup and fallback"""

    def test_get_exact_match(self, registry):
        assert registry.get("B").name == "Bedroom"

    def test_unknown_id_falls_back_to_first_device(self, registry):
        assert registry.get("nope").id == "A"
        assert registry.get(None).id == "A"

    def test_fallback_can_be_disabled(self, events):
        registry = DeviceRegistry(events, allow_fallback=False)
        registry.register(DeviceDescriptor(id="A"))
        with pytest.raises(DeviceNotFound):
            registry.get("nope")
        assert registry.get("nope", allow_fallback=True).id == "A"

    def test_empty_registry_raises(self, events):
        with pytest.raises(DeviceNotFound):
            DeviceRegistry(events).get("A")

    def test_find_never_falls_back(self, registry):
        assert registry.find("nope") is None

    def test_find_by_host(self, registry):
        assert registry.find_by_host("10.0.0.2").id == "B"
        assert registry.find_by_host("10.0.0.9") is None

    def test_returned_device_is_a_snapshot(self, registry):
        device = registry.get("A")
        device.volume = 99
        device.presets.append("junk")
        assert registry.get("A").volume == 30
        assert registry.get("A").presets == []


class TestRegistration:
    """Register / unregister lifecycle"""

    def test_register_publishes_event(self, events):
        observer = Mock()
        events.subscribe(observer)
        registry = DeviceRegistry(events)
        registry.register(DeviceDescriptor(id="C", name="Office"))

        event = observer.call_args[0][0]
        assert event.type == DEVICE_REGISTERED
        assert event.payload["device"] == "C"

    def test_register_without_id_raises(self, events):
        with pytest.raises(MalformedInput):
            DeviceRegistry(events).register(DeviceDescriptor(id=""))

    def test_default_name_uses_id(self, events):
        registry = DeviceRegistry(events)
        assert registry.register(DeviceDescriptor(id="X")).name == "Device X"

    def test_unregister(self, registry):
        registry.unregister("A")
        assert registry.find("A") is None
        assert len(registry) == 1

    def test_unregister_unknown_is_noop(self, registry):
        registry.unregister("nope")
        assert len(registry) == 2


class TestAudioSettings:
    """Volume, bass and balance clamping"""

    @pytest.mark.parametrize("requested,stored", [(-5, 0), (55, 55), (150, 100)])
    def test_volume_clamped(self, registry, requested, stored):
        assert registry.set_volume("A", requested).volume == stored

    @pytest.mark.parametrize("requested,stored", [(-20, -9), (-4, -4), (3, 0)])
    def test_bass_clamped(self, registry, requested, stored):
        assert registry.set_bass("A", requested).bass == stored

    @pytest.mark.parametrize("requested,stored", [(-11, -10), (7, 7), (11, 10)])
    def test_balance_clamped(self, registry, requested, stored):
        assert registry.set_balance("A", requested).balance == stored

    def test_setters_never_fall_back(self, registry):
        with pytest.raises(DeviceNotFound):
            registry.set_volume("nope", 10)

    def test_set_volume_publishes_device_updated(self, registry, events):
        observer = Mock()
        events.subscribe(observer)
        registry.set_volume("B", 42)

        event = observer.call_args[0][0]
        assert event.type == DEVICE_UPDATED
        assert event.payload["device"] == "B"
        assert event.payload["attribute"] == "volume"
        assert event.payload["value"] == 42


class TestNowPlaying:
    """Content changes and recents"""

    def test_set_now_playing_records_recent(self, registry):
        device = registry.set_now_playing("A", radio())
        assert device.playback_state == PlaybackState.PLAYING
        assert len(device.recents) == 1
        assert device.recents[0].content.location == "http://jazz.example/stream"

    def test_recents_newest_first_and_capped(self, registry):
        for index in range(MAX_RECENTS + 5):
            registry.set_now_playing("A", radio(name=f"S{index}", location=f"http://s{index}.example/"))
        recents = registry.get("A").recents
        assert len(recents) == MAX_RECENTS
        assert recents[0].content.name == f"S{MAX_RECENTS + 4}"

    def test_play_status_change_does_not_add_recent(self, registry):
        registry.set_now_playing("A", radio())
        device = registry.set_play_status("A", PlayStatus.PAUSE_STATE)
        assert device.playback_state == PlaybackState.PAUSED
        assert len(device.recents) == 1

    def test_play_status_ignored_in_standby(self, registry, events):
        observer = Mock()
        events.subscribe(observer)
        device = registry.set_play_status("A", PlayStatus.PLAY_STATE)
        assert device.playback_state == PlaybackState.STANDBY
        observer.assert_not_called()

    def test_clear_now_playing_publishes_standby(self, registry, events):
        registry.set_now_playing("A", radio())
        observer = Mock()
        events.subscribe(observer)
        device = registry.clear_now_playing("A")

        assert device.now_playing is None
        event = observer.call_args[0][0]
        assert event.type == NOW_PLAYING_UPDATED
        assert event.payload["state"] == "STANDBY"
        assert event.payload["nowPlaying"] is None

    def test_set_presets_unknown_device_is_noop(self, registry):
        assert registry.set_presets("nope", []) is None
