"""
Cloud service: wires the core components together for the transport layer
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from .config import CloudConfig
from .defaults import default_presets
from .discovery import discover_speakers
from .errors import MalformedInput, ResolutionFailed, ZoneInvalid
from .events import EventBus
from .logging_utils import log_error
from .models import (
    ContentReference, Device, DeviceDescriptor, Preset, RecordKind, Zone,
    is_radio_source,
)
from .playback import PlaybackStateMachine
from .presets import PresetStore
from .radio_directory import RadioDirectoryClient
from .registry import DeviceRegistry
from .resolver import StreamResolver
from .storage import PersistentStore
from .xml_codec import parse, parse_device_info, parse_presets, parse_zone_members
from .zones import ZoneCoordinator

logger = logging.getLogger(__name__)


class CloudService:
    """Composition root owning one instance of every core component"""

    def __init__(self, config: Optional[CloudConfig] = None, directory=None,
                 store: Optional[PersistentStore] = None):
        """
        Initialize the service.

        Args:
            config: Cloud configuration (defaults to CloudConfig())
            directory: Radio directory collaborator (defaults to RadioDirectoryClient)
            store: Durable store (defaults to a PersistentStore under config.base_dir)
        """
        self.config = config or CloudConfig()
        self.events = EventBus()
        self.registry = DeviceRegistry(self.events, allow_fallback=self.config.allow_device_fallback)
        self.store = store or PersistentStore(self.config.base_dir)
        self.presets = PresetStore(self.registry, self.store)
        self.zones = ZoneCoordinator(self.registry, self.events)
        self.directory = directory or RadioDirectoryClient(self.config.radio)
        self.resolver = StreamResolver(self.directory)
        self.playback = PlaybackStateMachine(self.registry, self.resolver)
        logger.info(f"Cloud service initialized (data dir: {self.config.base_dir})")

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.config.resolve_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type(ResolutionFailed),
            reraise=True,
        )

    # Devices

    def device(self, device_id: Optional[str]) -> Device:
        return self.registry.get(device_id)

    def register_device(self, descriptor: DeviceDescriptor, seed_presets: bool = False) -> Device:
        device = self.registry.register(descriptor)
        if seed_presets:
            self.presets.seed(device.account_id, device.id, default_presets())
        self.presets.warm(device.account_id, device.id)
        return self.registry.get(device.id, allow_fallback=False)

    def bootstrap(self, descriptors: Iterable[DeviceDescriptor]) -> List[Device]:
        """Register configured speakers and load their durable presets"""
        devices = []
        for descriptor in descriptors:
            try:
                devices.append(self.register_device(descriptor, seed_presets=self.config.seed_default_presets))
                logger.info(f"Loaded device: {descriptor.name} ({descriptor.id})")
            except MalformedInput as e:
                logger.error(f"Skipping seed device without id: {e}")
        return devices

    def unregister_device(self, device_id: str) -> None:
        self.registry.unregister(device_id)

    def register_from_device_info(self, account_id: str, document: str, client_host: str = "") -> Device:
        """
        Handle a speaker announcing itself: store its DeviceInfo and register it if unknown.

        Raises:
            MalformedInput: The document has no device id
            PersistenceFailed: DeviceInfo could not be stored
        """
        device_id, name, ip_address = parse_device_info(document)
        logger.info(f"Device registration: {device_id} (Account: {account_id})")
        self.store.save(RecordKind.DEVICE_INFO, account_id, device_id, document)

        existing = self.registry.find(device_id)
        if existing is not None:
            host = ip_address or client_host
            if host and host != existing.host:
                self.registry.set_host(device_id, host)
            return self.registry.get(device_id, allow_fallback=False)

        device = self.register_device(DeviceDescriptor(
            id=device_id,
            name=name or f"Device {device_id}",
            host=ip_address or client_host,
            port=8090,
            account_id=account_id,
        ))
        logger.info(f"Auto-registered device: {device.name} ({device.id})")
        return device

    def discover_and_register(self) -> List[Device]:
        """Register speakers found on the network that are not known yet"""
        registered = []
        for result in discover_speakers(self.config.discovery_timeout_s):
            descriptor = result.to_descriptor(self.config.default_account)
            if not descriptor.id or self.registry.find(descriptor.id) is not None:
                continue
            try:
                registered.append(self.register_device(descriptor, seed_presets=self.config.seed_default_presets))
            except Exception as e:
                log_error(logger, descriptor.id, e, {"phase": "discovery"})
        return registered

    # Durable records

    def stored_record(self, kind: RecordKind, account_id: str, device_id: str) -> Optional[str]:
        return self.store.load(kind, account_id, device_id)

    def sync_presets(self, account_id: str, device_id: str, document: str) -> List[Preset]:
        """Speaker uploaded its presets; normalize and commit them"""
        logger.info(f"Preset sync from device: {device_id}")
        return self.presets.replace_presets(account_id, device_id, parse_presets(document))

    def sync_record(self, kind: RecordKind, account_id: str, device_id: str, document: str,
                    root_tag: str) -> None:
        """Store a whole recents/sources upload after checking it is well-formed"""
        parse(document, root_tag)
        logger.info(f"{kind.value} sync from device: {device_id}")
        self.store.save(kind, account_id, device_id, document)

    def list_account_devices(self, account_id: str) -> List[Dict[str, Any]]:
        return [
            {"id": device_id, "info": self.store.load(RecordKind.DEVICE_INFO, account_id, device_id)}
            for device_id in self.store.list(account_id)
        ]

    def radio_presets(self, account_id: str, device_id: str) -> List[Preset]:
        return [p for p in self.presets.get_presets(account_id, device_id) if is_radio_source(p.source)]

    # Playback

    def resolve(self, content: ContentReference) -> ContentReference:
        """Resolve with backoff on ResolutionFailed"""
        return self._retrying()(self.resolver.resolve, content)

    def handle_key(self, device_id: str, key: str) -> Device:
        device = self.registry.get(device_id)
        return self._retrying()(self.playback.handle_key, device.id, key)

    def select(self, device_id: str, content: ContentReference, preset_id: Optional[str] = None) -> Device:
        """Select a preset slot or play content directly"""
        device = self.registry.get(device_id)
        if preset_id:
            return self._retrying()(self.playback.select_preset, device.id, preset_id)
        return self.playback.play_content(device.id, content)

    # Zones

    def set_zone(self, device_id: str, document: str) -> Zone:
        """Create a zone from a <zone> document; slaves are matched by IP address"""
        master = self.registry.get(device_id)
        _, members = parse_zone_members(document)
        slave_ids = []
        for role, ip_address, member_id in members:
            if role == "MASTER":
                continue
            slave = self.registry.find(member_id) or self.registry.find_by_host(ip_address)
            if slave is not None:
                slave_ids.append(slave.id)
        return self.zones.create_zone(master.id, slave_ids)

    def change_zone_slave(self, device_id: str, document: str, add: bool) -> Zone:
        master = self.registry.get(device_id)
        _, members = parse_zone_members(document)
        if not members:
            raise MalformedInput("Zone member required")
        zone = self.zones.get_zone(master.id)
        if zone is None:
            raise ZoneInvalid(f"No active zone for master {master.id}")
        for _, ip_address, member_id in members:
            slave = self.registry.find(member_id) or self.registry.find_by_host(ip_address)
            if slave is None:
                logger.debug(f"No device at {ip_address or member_id}, ignoring zone change")
                continue
            if add:
                zone = self.zones.add_slave(master.id, slave.id)
            else:
                zone = self.zones.remove_slave(master.id, slave.id)
        return zone
