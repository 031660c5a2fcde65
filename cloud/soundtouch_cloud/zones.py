"""
Multiroom zone coordinator
"""

import logging
import threading
import time
from typing import Dict, Iterable, List, Optional

from .errors import ZoneInvalid
from .events import ChangeEvent, EventBus, DEVICE_UNREGISTERED, ZONE_UPDATED, ZONE_REMOVED
from .logging_utils import log_zone_event
from .models import Zone, ZoneMember
from .registry import DeviceRegistry

logger = logging.getLogger(__name__)


class ZoneCoordinator:
    """
    Zone topology keyed by master device id.

    A device is in at most one zone, either as its master or as a slave.
    Unknown slave ids are dropped quietly; an unknown master is an error.
    """

    def __init__(self, registry: DeviceRegistry, events: EventBus):
        self.registry = registry
        self.events = events
        self._zones: Dict[str, Zone] = {}
        self._lock = threading.RLock()
        self._unsubscribe = events.subscribe(self._on_event)

    def close(self) -> None:
        self._unsubscribe()

    def _require_master(self, master_id: str) -> None:
        if not master_id or self.registry.find(master_id) is None:
            raise ZoneInvalid(f"Unknown zone master: {master_id}")

    def _owner_of(self, device_id: str) -> Optional[str]:
        """Master id of the zone this device belongs to, if any"""
        if device_id in self._zones:
            return device_id
        for master_id, zone in self._zones.items():
            if device_id in zone.slaves:
                return master_id
        return None

    def _check_slave(self, master_id: str, slave_id: str) -> None:
        owner = self._owner_of(slave_id)
        if owner is not None and owner != master_id:
            raise ZoneInvalid(f"Device {slave_id} already belongs to the zone of {owner}")

    def _known_slaves(self, master_id: str, slave_ids: Iterable[str]) -> List[str]:
        slaves = []
        for slave_id in slave_ids:
            if not slave_id or slave_id == master_id or slave_id in slaves:
                continue
            if self.registry.find(slave_id) is None:
                logger.debug(f"Dropping unknown slave {slave_id} from zone of {master_id}")
                continue
            slaves.append(slave_id)
        return slaves

    def create_zone(self, master_id: str, slave_ids: Iterable[str]) -> Zone:
        """
        Create or replace the zone mastered by master_id.

        Raises:
            ZoneInvalid: The master is unknown, is a slave elsewhere, or a
                slave already belongs to a different zone
        """
        self._require_master(master_id)
        with self._lock:
            owner = self._owner_of(master_id)
            if owner is not None and owner != master_id:
                raise ZoneInvalid(f"Device {master_id} is a slave in the zone of {owner}")
            slaves = self._known_slaves(master_id, slave_ids)
            for slave_id in slaves:
                self._check_slave(master_id, slave_id)
            zone = Zone(master=master_id, slaves=tuple(slaves), created=time.time())
            self._zones[master_id] = zone
        log_zone_event(logger, master_id, "created", list(zone.slaves))
        self.events.publish(ZONE_UPDATED, zone=zone.to_dict())
        return zone

    def get_zone(self, master_id: str) -> Optional[Zone]:
        with self._lock:
            return self._zones.get(master_id)

    def zone_for(self, device_id: str) -> Optional[Zone]:
        """Zone the device belongs to, as master or slave"""
        with self._lock:
            owner = self._owner_of(device_id)
            return self._zones.get(owner) if owner else None

    def zones(self) -> List[Zone]:
        with self._lock:
            return list(self._zones.values())

    def remove_zone(self, master_id: str) -> Optional[Zone]:
        with self._lock:
            zone = self._zones.pop(master_id, None)
        if zone is not None:
            log_zone_event(logger, master_id, "removed", list(zone.slaves))
            self.events.publish(ZONE_REMOVED, masterId=master_id, zone=zone.to_dict())
        return zone

    def add_slave(self, master_id: str, slave_id: str) -> Zone:
        """
        Add a slave to an active zone; adding a present slave is a no-op.

        Raises:
            ZoneInvalid: No active zone for master_id, or the slave is grouped elsewhere
        """
        with self._lock:
            zone = self._active(master_id)
            if slave_id in zone.slaves or slave_id == master_id:
                return zone
            if self.registry.find(slave_id) is None:
                logger.debug(f"Ignoring unknown slave {slave_id} for zone of {master_id}")
                return zone
            self._check_slave(master_id, slave_id)
            zone = Zone(master=master_id, slaves=zone.slaves + (slave_id,), created=zone.created)
            self._zones[master_id] = zone
        log_zone_event(logger, master_id, "slave added", list(zone.slaves))
        self.events.publish(ZONE_UPDATED, zone=zone.to_dict())
        return zone

    def remove_slave(self, master_id: str, slave_id: str) -> Zone:
        """
        Remove a slave from an active zone; removing an absent slave is a no-op.

        Raises:
            ZoneInvalid: No active zone for master_id
        """
        with self._lock:
            zone = self._active(master_id)
            if slave_id not in zone.slaves:
                return zone
            zone = Zone(master=master_id,
                        slaves=tuple(s for s in zone.slaves if s != slave_id),
                        created=zone.created)
            self._zones[master_id] = zone
        log_zone_event(logger, master_id, "slave removed", list(zone.slaves))
        self.events.publish(ZONE_UPDATED, zone=zone.to_dict())
        return zone

    def _active(self, master_id: str) -> Zone:
        zone = self._zones.get(master_id)
        if zone is None:
            raise ZoneInvalid(f"No active zone for master {master_id}")
        return zone

    def members(self, master_id: str) -> List[ZoneMember]:
        """Zone members with hosts looked up now, so address changes show up"""
        zone = self.get_zone(master_id)
        if zone is None:
            return []
        members = []
        master = self.registry.find(master_id)
        members.append(ZoneMember(master_id, "MASTER", master.host if master else ""))
        for slave_id in zone.slaves:
            slave = self.registry.find(slave_id)
            if slave is None:
                logger.warning(f"Zone of {master_id} references missing slave {slave_id}")
                continue
            members.append(ZoneMember(slave_id, "SLAVE", slave.host))
        return members

    def _on_event(self, event: ChangeEvent) -> None:
        if event.type != DEVICE_UNREGISTERED:
            return
        device_id = event.payload.get("device")
        if self.get_zone(device_id) is not None:
            self.remove_zone(device_id)
            return
        owner = self.zone_for(device_id)
        if owner is not None:
            self.remove_slave(owner.master, device_id)
