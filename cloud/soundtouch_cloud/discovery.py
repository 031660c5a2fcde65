"""
mDNS/DNS-SD discovery for SoundTouch speakers
"""

import logging
import socket
import time
from threading import Event
from typing import Dict, List, Optional

from zeroconf import ServiceBrowser, ServiceListener, Zeroconf

from .models import DiscoveryResult

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_soundtouch._tcp.local."


class SoundTouchListener(ServiceListener):
    """Service listener collecting SoundTouch speakers"""

    def __init__(self):
        self._has_new_service = Event()
        self._services_by_instance: Dict[str, DiscoveryResult] = {}

    def add_service(self, zeroconf: Zeroconf, type_: str, name: str) -> None:
        """Called when a speaker announces itself"""
        logger.debug(f"Discovered service: {name} (type: {type_})")

        info = zeroconf.get_service_info(type_, name)
        if not info:
            logger.warning(f"Could not get service info for {name}")
            return

        ip_addresses = info.parsed_addresses()
        ip = ip_addresses[0] if ip_addresses else (socket.inet_ntoa(info.addresses[0]) if info.addresses else None)
        # Service name format: <instance>._soundtouch._tcp.local.
        instance_name = name.split('.')[0]

        txt_records = {}
        if info.properties:
            for key, value in info.properties.items():
                txt_key = key.decode('utf-8', errors='ignore')
                if not txt_key:
                    continue
                txt_records[txt_key] = value.decode('utf-8', errors='ignore') if isinstance(value, bytes) else str(value or "")

        self._services_by_instance[instance_name.lower()] = DiscoveryResult(
            ip=ip,
            port=info.port,
            instance_name=instance_name,
            txt_records=txt_records
        )
        self._has_new_service.set()
        logger.debug(f"Added service: {instance_name} at {ip}:{info.port}")

    def remove_service(self, zeroconf: Zeroconf, type_: str, name: str) -> None:
        logger.debug(f"Service removed: {name}")

    def update_service(self, zeroconf: Zeroconf, type_: str, name: str) -> None:
        logger.debug(f"Service updated: {name}")

    def wait_for_accumulation(self, total_timeout_s: float, idle_grace_s: float = 0.3) -> None:
        """
        Wait for services to accumulate up to a total timeout, with an idle grace window
        to collect late-arriving responses.
        """
        deadline = time.monotonic() + max(0.0, total_timeout_s)
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            if not self._has_new_service.wait(remaining):
                break
            self._has_new_service.clear()
            if idle_grace_s > 0 and not self._has_new_service.wait(min(idle_grace_s, max(0.0, deadline - time.monotonic()))):
                break

    def snapshot(self) -> List[DiscoveryResult]:
        """Return a deduplicated snapshot of discovered services."""
        return list(self._services_by_instance.values())


def discover_speakers(timeout_s: float = 3.0) -> List[DiscoveryResult]:
    """
    Browse the network for SoundTouch speakers.

    Args:
        timeout_s: Discovery timeout in seconds

    Returns:
        Complete discovery results (address and port known)
    """
    logger.info(f"Discovering SoundTouch speakers (timeout: {timeout_s}s)")

    zeroconf: Optional[Zeroconf] = None
    browser: Optional[ServiceBrowser] = None
    try:
        zeroconf = Zeroconf()
        listener = SoundTouchListener()
        browser = ServiceBrowser(zeroconf, SERVICE_TYPE, listener)
        listener.wait_for_accumulation(timeout_s)
        services = [s for s in listener.snapshot() if s.is_complete]
        logger.info(f"Discovered {len(services)} SoundTouch speakers")
        return services
    except OSError as e:
        logger.error(f"mDNS discovery failed: {e}")
        return []
    finally:
        if browser:
            try:
                browser.cancel()
            except RuntimeError as e:
                # Known issue with zeroconf cleanup - non-fatal
                logger.debug(f"ServiceBrowser cleanup warning (non-fatal): {e}")
        if zeroconf:
            zeroconf.close()
