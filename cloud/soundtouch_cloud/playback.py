"""
Playback state machine driven by key presses and preset selection
"""

import logging
import re
from typing import Optional, Tuple

from .errors import MalformedInput
from .models import ContentReference, Device, NowPlaying, PlaybackState, PlayStatus
from .registry import DeviceRegistry
from .resolver import StreamResolver

logger = logging.getLogger(__name__)

PLAY = "PLAY"
PAUSE = "PAUSE"
PLAY_PAUSE = "PLAY_PAUSE"
STOP = "STOP"
POWER = "POWER"
PRESET_KEY = re.compile(r"^PRESET_(\d+)$")


def parse_key_event(key: Optional[str]) -> Tuple[str, Optional[str]]:
    """Split a key name into (key, preset slot or None)"""
    key = (key or "").strip().upper()
    if not key:
        raise MalformedInput("Key value required")
    match = PRESET_KEY.match(key)
    if match:
        return "PRESET", str(int(match.group(1)))
    return key, None


class PlaybackStateMachine:
    """
    Per-device transitions between STANDBY, PLAYING, PAUSED and STOPPED.

    Device state lives in the registry; this class only decides which
    registry mutation a key press or selection maps to.
    """

    def __init__(self, registry: DeviceRegistry, resolver: StreamResolver):
        self.registry = registry
        self.resolver = resolver

    def state(self, device_id: str) -> PlaybackState:
        return self.registry.get(device_id).playback_state

    def handle_key(self, device_id: str, key: str) -> Device:
        """
        Apply a key press.

        PLAY, PAUSE and STOP only change the play status of loaded content,
        so they do nothing in STANDBY. PRESET_n selects slot n.
        """
        name, slot = parse_key_event(key)
        device = self.registry.get(device_id)
        current = device.playback_state
        logger.info(f"Key {name}{'_' + slot if slot else ''} on {device.id} in {current.value}")

        if slot is not None:
            return self.select_preset(device.id, slot)
        if name == PLAY:
            return self.registry.set_play_status(device.id, PlayStatus.PLAY_STATE)
        if name == PAUSE:
            return self.registry.set_play_status(device.id, PlayStatus.PAUSE_STATE)
        if name == PLAY_PAUSE:
            status = PlayStatus.PAUSE_STATE if current == PlaybackState.PLAYING else PlayStatus.PLAY_STATE
            return self.registry.set_play_status(device.id, status)
        if name == STOP:
            return self.registry.set_play_status(device.id, PlayStatus.STOP_STATE)
        if name == POWER:
            return self.standby(device.id)

        logger.debug(f"Ignoring key {name} on {device.id}")
        return device

    def select_preset(self, device_id: str, slot_id: str) -> Device:
        """
        Play the preset in slot_id after resolving its stream.

        An empty slot is ignored. Resolution runs without any registry lock
        held; the result is applied to whatever the device state is by then.
        """
        device = self.registry.get(device_id)
        preset = device.find_preset(str(slot_id))
        if preset is None:
            logger.info(f"Preset {slot_id} not set on {device.id}, ignoring")
            return device

        resolved = self.resolver.resolve(preset.content())
        return self.registry.set_now_playing(device.id, NowPlaying.from_content(resolved))

    def play_content(self, device_id: str, content: ContentReference, resolve: bool = False) -> Device:
        """
        Load content directly, optionally through the stream resolver.

        Raises:
            MalformedInput: Content has neither source nor location
        """
        if not content.source or not (content.location or content.station_id):
            raise MalformedInput("Content selection needs a source and a location")
        device = self.registry.get(device_id)
        if resolve:
            content = self.resolver.resolve(content)
        return self.registry.set_now_playing(device.id, NowPlaying.from_content(content))

    def standby(self, device_id: str) -> Device:
        """Stop and unload content; the only way back to STANDBY"""
        device = self.registry.get(device_id)
        return self.registry.clear_now_playing(device.id)
