"""
Data models and enums for the speaker cloud
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, List, Dict, Any, Union

from .errors import InvalidSlot

MAX_PRESETS = 6
MAX_RECENTS = 20


def now_ms() -> int:
    """Current wall clock time in epoch milliseconds"""
    return int(time.time() * 1000)


def validate_slot(slot_id: Union[str, int, None]) -> str:
    """
    Normalize a preset slot id.

    Raises:
        InvalidSlot: Not an integer in [1, MAX_PRESETS]
    """
    try:
        slot = int(str(slot_id).strip())
    except (TypeError, ValueError) as e:
        raise InvalidSlot(f"Preset ID must be between 1 and {MAX_PRESETS}, got {slot_id!r}") from e
    if slot < 1 or slot > MAX_PRESETS:
        raise InvalidSlot(f"Preset ID must be between 1 and {MAX_PRESETS}, got {slot_id!r}")
    return str(slot)


class Source(str, Enum):
    """Content sources known to the speakers"""
    INTERNET_RADIO = "INTERNET_RADIO"
    TUNEIN = "TUNEIN"
    SPOTIFY = "SPOTIFY"
    STORED_MUSIC = "STORED_MUSIC"
    BLUETOOTH = "BLUETOOTH"
    AUX = "AUX"


RADIO_SOURCES = frozenset({Source.INTERNET_RADIO.value, Source.TUNEIN.value})


def is_radio_source(source: Optional[str]) -> bool:
    return bool(source) and source in RADIO_SOURCES


class PlayStatus(str, Enum):
    """Play status reported inside nowPlaying"""
    PLAY_STATE = "PLAY_STATE"
    PAUSE_STATE = "PAUSE_STATE"
    STOP_STATE = "STOP_STATE"


class PlaybackState(Enum):
    """Device playback state derived from nowPlaying"""
    STANDBY = "STANDBY"
    PLAYING = "PLAYING"
    PAUSED = "PAUSED"
    STOPPED = "STOPPED"


class RecordKind(str, Enum):
    """Durable record kinds kept per (account, device)"""
    DEVICE_INFO = "DeviceInfo"
    PRESETS = "Presets"
    RECENTS = "Recents"
    SOURCES = "Sources"


@dataclass(frozen=True)
class ContentReference:
    """Something playable: source, location and optional station id plus display fields"""
    source: str = ""
    location: str = ""
    station_id: Optional[str] = None
    name: str = ""
    type: str = "station"
    art: str = ""
    source_account: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.source or self.location or self.station_id)


@dataclass(frozen=True)
class Preset:
    """A numbered shortcut to a content reference"""
    id: str
    name: str
    source: str
    location: str
    type: str = "station"
    station_id: Optional[str] = None
    art: str = ""
    source_account: str = ""
    created_on: int = 0
    updated_on: int = 0

    @property
    def slot(self) -> int:
        return int(self.id)

    def content(self) -> ContentReference:
        return ContentReference(
            source=self.source,
            location=self.location,
            station_id=self.station_id,
            name=self.name,
            type=self.type,
            art=self.art,
            source_account=self.source_account,
        )

    @classmethod
    def from_content(cls, slot_id: str, content: ContentReference,
                     created_on: int, updated_on: int) -> "Preset":
        return cls(
            id=slot_id,
            name=content.name or "Unnamed Station",
            source=content.source or Source.INTERNET_RADIO.value,
            location=content.location,
            type=content.type or "station",
            station_id=content.station_id,
            art=content.art,
            source_account=content.source_account,
            created_on=created_on,
            updated_on=updated_on,
        )


@dataclass(frozen=True)
class NowPlaying:
    """The content currently loaded on a device"""
    source: str
    location: str = ""
    name: str = ""
    type: str = "station"
    source_account: str = ""
    station_id: Optional[str] = None
    track: str = ""
    artist: str = ""
    album: str = ""
    art: str = ""
    play_status: PlayStatus = PlayStatus.PLAY_STATE

    @classmethod
    def from_content(cls, content: ContentReference,
                     play_status: PlayStatus = PlayStatus.PLAY_STATE) -> "NowPlaying":
        return cls(
            source=content.source,
            location=content.location,
            name=content.name or "Unknown",
            type=content.type or "station",
            source_account=content.source_account,
            station_id=content.station_id,
            art=content.art,
            play_status=play_status,
        )

    def content(self) -> ContentReference:
        return ContentReference(
            source=self.source,
            location=self.location,
            station_id=self.station_id,
            name=self.name,
            type=self.type,
            art=self.art,
            source_account=self.source_account,
        )


@dataclass(frozen=True)
class Recent:
    """A now-playing snapshot captured when content changed"""
    content: ContentReference
    utc_time: int


@dataclass
class DeviceDescriptor:
    """What a caller supplies to register a device"""
    id: str
    name: str = ""
    host: str = ""
    port: int = 8090
    account_id: str = "default"


@dataclass
class Device:
    """Speaker and its control state; owned by the DeviceRegistry"""
    id: str
    name: str
    host: str = ""
    port: int = 8090
    account_id: str = "default"
    volume: int = 30
    bass: int = 0
    balance: int = 0
    presets: List[Preset] = field(default_factory=list)
    recents: List[Recent] = field(default_factory=list)
    now_playing: Optional[NowPlaying] = None

    @classmethod
    def from_descriptor(cls, descriptor: DeviceDescriptor) -> "Device":
        return cls(
            id=descriptor.id,
            name=descriptor.name or f"Device {descriptor.id}",
            host=descriptor.host or "",
            port=descriptor.port or 8090,
            account_id=descriptor.account_id or "default",
        )

    @property
    def playback_state(self) -> PlaybackState:
        if self.now_playing is None:
            return PlaybackState.STANDBY
        return {
            PlayStatus.PLAY_STATE: PlaybackState.PLAYING,
            PlayStatus.PAUSE_STATE: PlaybackState.PAUSED,
            PlayStatus.STOP_STATE: PlaybackState.STOPPED,
        }[self.now_playing.play_status]

    def find_preset(self, slot_id: str) -> Optional[Preset]:
        for preset in self.presets:
            if preset.id == slot_id:
                return preset
        return None

    def snapshot(self) -> "Device":
        """Copy that callers may read freely without touching registry state"""
        return replace(self, presets=list(self.presets), recents=list(self.recents))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "account_id": self.account_id,
            "volume": self.volume,
            "bass": self.bass,
            "balance": self.balance,
            "state": self.playback_state.value,
        }


@dataclass(frozen=True)
class Zone:
    """Multiroom group: one master and its ordered slaves"""
    master: str
    slaves: tuple = ()
    created: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {"master": self.master, "slaves": list(self.slaves), "created": self.created}


@dataclass(frozen=True)
class ZoneMember:
    """Zone member as reported to clients, host resolved at read time"""
    device_id: str
    role: str
    host: str


@dataclass
class DiscoveryResult:
    """Result from mDNS/DNS-SD discovery"""
    ip: Optional[str] = None
    port: Optional[int] = None
    instance_name: Optional[str] = None
    txt_records: Optional[Dict[str, str]] = None

    @property
    def is_complete(self) -> bool:
        """Check if discovery has all required fields"""
        return self.ip is not None and self.port is not None

    @property
    def device_id(self) -> Optional[str]:
        """Speakers advertise their MAC, which doubles as the device id"""
        if self.txt_records and self.txt_records.get("MAC"):
            return self.txt_records["MAC"]
        return self.instance_name

    def to_descriptor(self, account_id: str = "default") -> DeviceDescriptor:
        return DeviceDescriptor(
            id=self.device_id or "",
            name=self.instance_name or "",
            host=self.ip or "",
            port=self.port or 8090,
            account_id=account_id,
        )
