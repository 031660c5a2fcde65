"""
Device registry: the authoritative set of speakers and their control state
"""

import logging
import threading
from dataclasses import asdict, replace
from typing import Dict, List, Optional

from .errors import DeviceNotFound, MalformedInput
from .events import (
    EventBus, DEVICE_REGISTERED, DEVICE_UNREGISTERED, DEVICE_UPDATED,
    PRESETS_UPDATED, NOW_PLAYING_UPDATED,
)
from .logging_utils import log_device_event
from .models import (
    Device, DeviceDescriptor, NowPlaying, PlayStatus, Preset, Recent,
    MAX_RECENTS, now_ms,
)

logger = logging.getLogger(__name__)

VOLUME_RANGE = (0, 100)
BASS_RANGE = (-9, 0)
BALANCE_RANGE = (-10, 10)


def _clamp(value: int, bounds: tuple) -> int:
    low, high = bounds
    return max(low, min(high, int(value)))


class DeviceRegistry:
    """Owns every Device; all attribute mutation goes through these methods"""

    def __init__(self, events: EventBus, allow_fallback: bool = True):
        """
        Initialize the registry.

        Args:
            events: Bus that receives change notifications
            allow_fallback: Default for get(): unknown ids resolve to the first device
        """
        self.events = events
        self.allow_fallback = allow_fallback
        self._devices: Dict[str, Device] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: str) -> bool:
        return device_id in self._devices

    def register(self, descriptor: DeviceDescriptor) -> Device:
        """Create or replace the device with this id"""
        if not descriptor.id:
            raise MalformedInput("Device id required for registration")
        device = Device.from_descriptor(descriptor)
        with self._lock:
            self._devices[device.id] = device
            snapshot = device.snapshot()
        log_device_event(logger, device.id, "registered", device_name=device.name, host=device.host)
        self.events.publish(DEVICE_REGISTERED, device=device.id)
        return snapshot

    def unregister(self, device_id: str) -> None:
        with self._lock:
            device = self._devices.pop(device_id, None)
        if device is None:
            return
        log_device_event(logger, device_id, "unregistered", device_name=device.name)
        self.events.publish(DEVICE_UNREGISTERED, device=device_id)

    def find(self, device_id: Optional[str]) -> Optional[Device]:
        """Exact lookup; never falls back"""
        with self._lock:
            device = self._devices.get(device_id) if device_id else None
            return device.snapshot() if device else None

    def get(self, device_id: Optional[str], allow_fallback: Optional[bool] = None) -> Device:
        """
        Look a device up by id.

        When the id is unknown and fallback is enabled, the first registered
        device is returned so single-speaker setups work with any id.

        Raises:
            DeviceNotFound: Nothing matched and no fallback device exists
        """
        if allow_fallback is None:
            allow_fallback = self.allow_fallback
        with self._lock:
            return self._require(device_id, allow_fallback).snapshot()

    def list(self) -> List[Device]:
        with self._lock:
            return [device.snapshot() for device in self._devices.values()]

    def find_by_host(self, host: str) -> Optional[Device]:
        with self._lock:
            for device in self._devices.values():
                if host and device.host == host:
                    return device.snapshot()
        return None

    def _require(self, device_id: Optional[str], allow_fallback: bool = False) -> Device:
        device = self._devices.get(device_id) if device_id else None
        if device is None and allow_fallback and self._devices:
            device = next(iter(self._devices.values()))
            logger.debug(f"Unknown device {device_id!r}, falling back to {device.id}")
        if device is None:
            raise DeviceNotFound(f"Device not found: {device_id}")
        return device

    def _changed(self, snapshot: Device, attribute: str, value) -> Device:
        log_device_event(logger, snapshot.id, attribute, value=value)
        self.events.publish(DEVICE_UPDATED, device=snapshot.id, attribute=attribute, value=value)
        return snapshot

    def set_volume(self, device_id: str, volume: int) -> Device:
        with self._lock:
            device = self._require(device_id)
            device.volume = _clamp(volume, VOLUME_RANGE)
            snapshot = device.snapshot()
        return self._changed(snapshot, "volume", snapshot.volume)

    def set_bass(self, device_id: str, bass: int) -> Device:
        with self._lock:
            device = self._require(device_id)
            device.bass = _clamp(bass, BASS_RANGE)
            snapshot = device.snapshot()
        return self._changed(snapshot, "bass", snapshot.bass)

    def set_balance(self, device_id: str, balance: int) -> Device:
        with self._lock:
            device = self._require(device_id)
            device.balance = _clamp(balance, BALANCE_RANGE)
            snapshot = device.snapshot()
        return self._changed(snapshot, "balance", snapshot.balance)

    def set_name(self, device_id: str, name: str) -> Device:
        with self._lock:
            device = self._require(device_id)
            device.name = name
            snapshot = device.snapshot()
        return self._changed(snapshot, "name", name)

    def set_host(self, device_id: str, host: str) -> Device:
        with self._lock:
            device = self._require(device_id)
            device.host = host
            snapshot = device.snapshot()
        return self._changed(snapshot, "host", host)

    def set_presets(self, device_id: str, presets: List[Preset]) -> Optional[Device]:
        """Refresh the in-memory preset cache; no-op for unknown devices"""
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return None
            device.presets = list(presets)
            snapshot = device.snapshot()
        self.events.publish(
            PRESETS_UPDATED,
            deviceId=device_id,
            presets=[asdict(preset) for preset in presets],
        )
        return snapshot

    def set_now_playing(self, device_id: str, now_playing: NowPlaying) -> Device:
        """Load new content and capture it in the recents list"""
        with self._lock:
            device = self._require(device_id)
            device.now_playing = now_playing
            recent = Recent(content=now_playing.content(), utc_time=now_ms())
            device.recents.insert(0, recent)
            del device.recents[MAX_RECENTS:]
            snapshot = device.snapshot()
        log_device_event(logger, device_id, "now_playing", source=now_playing.source,
                         location=now_playing.location)
        self._publish_now_playing(snapshot)
        return snapshot

    def set_play_status(self, device_id: str, play_status: PlayStatus) -> Device:
        """Change play status of the loaded content; no-op in standby"""
        with self._lock:
            device = self._require(device_id)
            if device.now_playing is None or device.now_playing.play_status == play_status:
                return device.snapshot()
            device.now_playing = replace(device.now_playing, play_status=play_status)
            snapshot = device.snapshot()
        log_device_event(logger, device_id, "play_status", play_status=play_status.value)
        self._publish_now_playing(snapshot)
        return snapshot

    def clear_now_playing(self, device_id: str) -> Device:
        """Stop to standby"""
        with self._lock:
            device = self._require(device_id)
            if device.now_playing is None:
                return device.snapshot()
            device.now_playing = None
            snapshot = device.snapshot()
        log_device_event(logger, device_id, "standby")
        self._publish_now_playing(snapshot)
        return snapshot

    def _publish_now_playing(self, device: Device) -> None:
        now_playing = device.now_playing
        self.events.publish(
            NOW_PLAYING_UPDATED,
            deviceId=device.id,
            state=device.playback_state.value,
            nowPlaying=asdict(now_playing) if now_playing else None,
        )
