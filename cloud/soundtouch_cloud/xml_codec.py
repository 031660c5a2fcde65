"""
XML marshaling for the speaker wire format
"""

import logging
from typing import Iterable, List, Optional, Tuple, Union
from xml.etree import ElementTree

from .errors import InvalidSlot, MalformedInput
from .models import (
    ContentReference, Device, NowPlaying, PlayStatus, Preset, Recent,
    ZoneMember, MAX_PRESETS, validate_slot,
)

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" ?>'

DEFAULT_SOURCES = (
    # source, source account, local, multiroom
    ("INTERNET_RADIO", "", False, True),
    ("SPOTIFY", "spotify_user", False, True),
    ("STORED_MUSIC", "", True, True),
    ("BLUETOOTH", "", True, False),
    ("AUX", "", True, False),
)


def parse(document: Union[str, bytes, None], root_tag: Optional[str] = None) -> ElementTree.Element:
    """
    Parse a request body.

    Raises:
        MalformedInput: Empty body, invalid XML or unexpected root element
    """
    if document is None or not document.strip():
        raise MalformedInput("Empty XML document")
    try:
        root = ElementTree.fromstring(document)
    except ElementTree.ParseError as e:
        raise MalformedInput(f"Invalid XML: {e}") from e
    if root_tag and root.tag != root_tag:
        raise MalformedInput(f"Expected <{root_tag}>, got <{root.tag}>")
    return root


def to_string(element: ElementTree.Element, declaration: bool = False) -> str:
    body = ElementTree.tostring(element, encoding="unicode")
    return f"{XML_DECLARATION}{body}" if declaration else body


def _child_text(element: ElementTree.Element, tag: str, default: str = "") -> str:
    child = element.find(tag)
    if child is None or child.text is None:
        return default
    return child.text.strip()


def _sub(parent: ElementTree.Element, tag: str, text=None, **attrs) -> ElementTree.Element:
    child = ElementTree.SubElement(parent, tag, {k: str(v) for k, v in attrs.items()})
    if text is not None:
        child.text = str(text)
    return child


def _int(value: Optional[str], default: int = 0) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


# ContentItem

def parse_content_item(element: ElementTree.Element) -> ContentReference:
    if element.tag != "ContentItem":
        found = element.find("ContentItem")
        if found is None:
            raise MalformedInput("ContentItem element required")
        element = found
    return ContentReference(
        source=element.get("source", ""),
        location=element.get("location", ""),
        station_id=element.get("stationId") or None,
        name=_child_text(element, "itemName"),
        type=element.get("type", "station") or "station",
        art=_child_text(element, "containerArt"),
        source_account=element.get("sourceAccount", ""),
    )


def content_item_element(content: ContentReference, parent: Optional[ElementTree.Element] = None,
                         presetable: bool = False) -> ElementTree.Element:
    attrs = {
        "source": content.source,
        "type": content.type or "station",
        "location": content.location or "",
        "sourceAccount": content.source_account or "",
    }
    if content.station_id:
        attrs["stationId"] = content.station_id
    if presetable:
        attrs["isPresetable"] = "true"
    if parent is None:
        item = ElementTree.Element("ContentItem", attrs)
    else:
        item = _sub(parent, "ContentItem", **attrs)
    _sub(item, "itemName", content.name or "")
    if content.art:
        _sub(item, "containerArt", content.art)
    return item


def render_content_item(content: ContentReference) -> str:
    item = content_item_element(content)
    if content.name:
        _sub(item, "stationName", content.name)
    return to_string(item)


# Presets

def render_presets(presets: Iterable[Preset]) -> str:
    root = ElementTree.Element("presets")
    for preset in presets:
        node = _sub(root, "preset", id=preset.id, createdOn=preset.created_on, updatedOn=preset.updated_on)
        content_item_element(preset.content(), node)
    return to_string(root)


def parse_presets(document: Union[str, bytes]) -> List[Preset]:
    """
    Parse a presets document into sorted, capped Preset objects.

    Entries whose id is not a slot in [1, MAX_PRESETS] are skipped; ids are
    normalized, so "01" and "1" name the same slot and the later entry wins.
    """
    root = parse(document, "presets")
    presets = {}
    for node in root.findall("preset"):
        try:
            slot_id = validate_slot(node.get("id"))
        except InvalidSlot as e:
            logger.warning(f"Skipping preset: {e}")
            continue
        content = parse_content_item(node)
        presets[slot_id] = Preset.from_content(
            slot_id,
            content,
            created_on=_int(node.get("createdOn")),
            updated_on=_int(node.get("updatedOn")),
        )
    ordered = sorted(presets.values(), key=lambda p: int(p.id))
    return ordered[:MAX_PRESETS]


# Recents

def render_recents(recents: Iterable[Recent], device_id: str) -> str:
    root = ElementTree.Element("recents")
    for recent in recents:
        node = _sub(root, "recent", deviceID=device_id, utcTime=recent.utc_time)
        content_item_element(recent.content, node, presetable=True)
    return to_string(root)


# Now playing

def render_now_playing(now_playing: Optional[NowPlaying], device_id: str) -> str:
    if now_playing is None:
        root = ElementTree.Element("nowPlaying", {"deviceID": device_id, "source": "STANDBY"})
        _sub(root, "ContentItem", source="STANDBY", isPresetable="false")
        _sub(root, "playStatus", PlayStatus.STOP_STATE.value)
        return to_string(root)

    root = ElementTree.Element("nowPlaying", {
        "deviceID": device_id,
        "source": now_playing.source,
        "sourceAccount": now_playing.source_account or "",
    })
    content_item_element(now_playing.content(), root, presetable=True)
    _sub(root, "track", now_playing.track)
    _sub(root, "artist", now_playing.artist)
    _sub(root, "album", now_playing.album)
    _sub(root, "stationName", now_playing.name)
    _sub(root, "art", now_playing.art)
    _sub(root, "playStatus", now_playing.play_status.value)
    _sub(root, "shuffleSetting", "SHUFFLE_OFF")
    _sub(root, "repeatSetting", "REPEAT_OFF")
    return to_string(root)


def render_track_info(now_playing: Optional[NowPlaying], device_id: str) -> str:
    root = ElementTree.Element("trackInfo", {"deviceID": device_id})
    if now_playing is None:
        return to_string(root)
    _sub(root, "track", now_playing.track)
    _sub(root, "artist", now_playing.artist)
    _sub(root, "album", now_playing.album)
    _sub(root, "stationName", now_playing.name)
    _sub(root, "art", now_playing.art)
    _sub(root, "playStatus", now_playing.play_status.value)
    _sub(root, "streamType", "RADIO_STREAMING" if now_playing.type == "station" else "TRACK_ONDEMAND")
    return to_string(root)


# Keys

def parse_key(document: Union[str, bytes]) -> Tuple[str, str, str]:
    """Return (key value, state, sender) from a <key> document"""
    root = parse(document, "key")
    value = (root.text or "").strip()
    if not value:
        raise MalformedInput("Key value required")
    return value, root.get("state", "press"), root.get("sender", "Gabbo")


# Scalars

def parse_int_value(document: Union[str, bytes], tag: str) -> int:
    root = parse(document, tag)
    text = (root.text or "").strip()
    try:
        return int(text)
    except ValueError as e:
        raise MalformedInput(f"<{tag}> must contain an integer, got {text!r}") from e


def parse_text_value(document: Union[str, bytes], tag: str) -> str:
    root = parse(document, tag)
    text = (root.text or "").strip()
    if not text:
        raise MalformedInput(f"<{tag}> must not be empty")
    return text


def render_volume(device: Device) -> str:
    root = ElementTree.Element("volume", {"deviceID": device.id})
    _sub(root, "targetvolume", device.volume)
    _sub(root, "actualvolume", device.volume)
    _sub(root, "muteenabled", "false")
    return to_string(root)


def render_bass(device: Device) -> str:
    root = ElementTree.Element("bass", {"deviceID": device.id})
    _sub(root, "targetbass", device.bass)
    _sub(root, "actualbass", device.bass)
    return to_string(root)


def render_bass_capabilities(device: Device, bass_min: int, bass_max: int) -> str:
    root = ElementTree.Element("bassCapabilities", {"deviceID": device.id})
    _sub(root, "bassAvailable", "true")
    _sub(root, "bassMin", bass_min)
    _sub(root, "bassMax", bass_max)
    _sub(root, "bassDefault", 0)
    return to_string(root)


def render_balance(device: Device) -> str:
    root = ElementTree.Element("balance", {"deviceID": device.id})
    _sub(root, "targetbalance", device.balance)
    _sub(root, "actualbalance", device.balance)
    return to_string(root)


def render_name(device: Device) -> str:
    root = ElementTree.Element("name")
    root.text = device.name
    return to_string(root)


# Device descriptors

def render_info(device: Device) -> str:
    root = ElementTree.Element("info", {"deviceID": device.id})
    _sub(root, "name", device.name)
    _sub(root, "type", "SoundTouch")
    _sub(root, "margeAccountUUID", device.account_id)
    network = _sub(root, "networkInfo", type="SCM")
    _sub(network, "macAddress", device.id)
    _sub(network, "ipAddress", device.host)
    return to_string(root, declaration=True)


def parse_device_info(document: Union[str, bytes]) -> Tuple[str, str, str]:
    """Return (device id, name, ip address) from an <info> document"""
    root = parse(document, "info")
    device_id = root.get("deviceID") or _child_text(root, "deviceID")
    if not device_id:
        raise MalformedInput("Device ID required")
    name = _child_text(root, "name")
    ip_address = _child_text(root, "networkInfo/ipAddress")
    return device_id, name, ip_address


def render_network_info(device: Device) -> str:
    root = ElementTree.Element("networkInfo", {"wifiProfileCount": "1"})
    interfaces = _sub(root, "interfaces")
    _sub(interfaces, "interface", type="WIFI_INTERFACE", name="wlan0",
         macAddress=device.id, ipAddress=device.host, ssid="HomeNetwork", signal="EXCELLENT_SIGNAL")
    return to_string(root)


def render_capabilities(device: Device) -> str:
    root = ElementTree.Element("capabilities", {"deviceID": device.id})
    for network_type in ("SCM", "ETHERNET", "WIFI"):
        _sub(root, "networkConfig", type=network_type)
    for profile in ("A2DP_SINK", "A2DP_SOURCE"):
        _sub(root, "bluetoothProfile", profile)
    return to_string(root)


def render_sources(device_id: str) -> str:
    root = ElementTree.Element("sources", {"deviceID": device_id})
    for source, account, is_local, multiroom in DEFAULT_SOURCES:
        _sub(root, "sourceItem", source,
             source=source, sourceAccount=account, status="READY",
             isLocal=str(is_local).lower(), multiroomallowed=str(multiroom).lower())
    return to_string(root)


def render_group(device: Device) -> str:
    root = ElementTree.Element("group", {"id": device.id})
    _sub(root, "name", device.name)
    _sub(root, "masterDeviceId", device.id)
    roles = _sub(root, "roles")
    role = _sub(roles, "groupRole")
    _sub(role, "deviceId", device.id)
    _sub(role, "role", "NORMAL")
    _sub(role, "ipAddress", device.host)
    return to_string(root)


def render_media_servers() -> str:
    return to_string(ElementTree.Element("ListMediaServersResponse"))


# Zones

def render_zone(master_id: Optional[str], members: List[ZoneMember]) -> str:
    if not master_id:
        root = ElementTree.Element("zone")
        return to_string(root)
    root = ElementTree.Element("zone", {"master": master_id})
    for member in members:
        _sub(root, "member", member.device_id, role=member.role, ipaddress=member.host)
    return to_string(root)


def parse_zone_members(document: Union[str, bytes]) -> Tuple[Optional[str], List[Tuple[str, str, str]]]:
    """
    Return (master id, [(role, ip address, device id), ...]) from a <zone> document.

    Members without a role are treated as slaves, as the speakers send them.
    """
    root = parse(document, "zone")
    members = []
    for node in root.findall("member"):
        role = node.get("role", "SLAVE")
        members.append((role, node.get("ipaddress", ""), (node.text or "").strip()))
    return root.get("master") or None, members


# Status

def render_status(message: str = "OK") -> str:
    root = ElementTree.Element("status")
    root.text = message
    return to_string(root)


def render_error(message: str) -> str:
    root = ElementTree.Element("error")
    root.text = message
    return to_string(root)
