"""
Preset persistence: durable store first, in-memory cache second
"""

import logging
import threading
from typing import Callable, List, Optional, Union

from .errors import MalformedInput
from .models import ContentReference, Preset, RecordKind, MAX_PRESETS, now_ms, validate_slot
from .registry import DeviceRegistry
from .storage import PersistentStore
from .xml_codec import parse_presets, render_presets

logger = logging.getLogger(__name__)


def normalize(presets: List[Preset]) -> List[Preset]:
    """Sort by numeric slot and keep the first MAX_PRESETS entries"""
    ordered = sorted(presets, key=lambda p: int(p.id))
    return ordered[:MAX_PRESETS]


class PresetStore:
    """
    Keeps each device's preset cache in step with the durable Presets record.

    Every mutation loads the durable list, changes it, writes the whole list
    back and only then refreshes the cache. A failed write raises
    PersistenceFailed and leaves the cache untouched.
    """

    def __init__(self, registry: DeviceRegistry, store: PersistentStore):
        self.registry = registry
        self.store = store
        self._lock = threading.RLock()

    def _load(self, account_id: str, device_id: str) -> Optional[List[Preset]]:
        blob = self.store.load(RecordKind.PRESETS, account_id, device_id)
        if blob is None:
            return None
        try:
            return parse_presets(blob)
        except MalformedInput as e:
            logger.error(f"Stored presets for {device_id} are unreadable, treating as empty: {e}")
            return []

    def _mutate(self, account_id: str, device_id: str,
                change: Callable[[List[Preset]], List[Preset]]) -> List[Preset]:
        with self._lock:
            presets = self._load(account_id, device_id) or []
            presets = normalize(change(presets))
            self.store.save(RecordKind.PRESETS, account_id, device_id, render_presets(presets))
            self.registry.set_presets(device_id, presets)
        return presets

    def get_presets(self, account_id: str, device_id: str) -> List[Preset]:
        """Durable presets, or the live cache when nothing was persisted yet"""
        presets = self._load(account_id, device_id)
        if presets is not None:
            return presets
        device = self.registry.find(device_id)
        return list(device.presets) if device else []

    def has_durable(self, account_id: str, device_id: str) -> bool:
        return self.store.load(RecordKind.PRESETS, account_id, device_id) is not None

    def store_preset(self, account_id: str, device_id: str, slot_id: Union[str, int],
                     content: ContentReference) -> List[Preset]:
        """
        Store content in a preset slot.

        Replacing an existing slot keeps its creation time. The list is then
        sorted and capped at MAX_PRESETS, which can drop the highest slot.

        Raises:
            InvalidSlot: slot_id is not an integer in [1, 6]
            PersistenceFailed: The durable write failed
        """
        def change(presets: List[Preset]) -> List[Preset]:
            slot = validate_slot(slot_id)
            now = now_ms()
            for index, existing in enumerate(presets):
                if existing.id == slot:
                    updated_on = max(now, existing.updated_on + 1)
                    presets[index] = Preset.from_content(slot, content, existing.created_on, updated_on)
                    logger.info(f"Updated preset {slot} for {device_id}: {presets[index].name}")
                    return presets
            preset = Preset.from_content(slot, content, now, now)
            logger.info(f"Added preset {slot} for {device_id}: {preset.name}")
            return presets + [preset]

        return self._mutate(account_id, device_id, change)

    def remove_preset(self, account_id: str, device_id: str, slot_id: Union[str, int]) -> List[Preset]:
        def change(presets: List[Preset]) -> List[Preset]:
            slot = validate_slot(slot_id)
            return [p for p in presets if p.id != slot]

        presets = self._mutate(account_id, device_id, change)
        logger.info(f"Removed preset {slot_id} from {device_id}")
        return presets

    def remove_all_presets(self, account_id: str, device_id: str) -> List[Preset]:
        presets = self._mutate(account_id, device_id, lambda _: [])
        logger.info(f"Removed all presets from {device_id}")
        return presets

    def replace_presets(self, account_id: str, device_id: str, presets: List[Preset]) -> List[Preset]:
        """Overwrite the whole list, e.g. when a speaker uploads its presets"""
        return self._mutate(account_id, device_id, lambda _: list(presets))

    def seed(self, account_id: str, device_id: str, presets: List[Preset]) -> bool:
        """Persist presets only when the device has no durable record yet"""
        with self._lock:
            if self.has_durable(account_id, device_id):
                return False
            self.replace_presets(account_id, device_id, presets)
        logger.info(f"Initialized {len(presets)} presets for {device_id}")
        return True

    def warm(self, account_id: str, device_id: str) -> List[Preset]:
        """Load the durable presets into the device cache"""
        presets = self._load(account_id, device_id)
        if presets is None:
            return []
        self.registry.set_presets(device_id, presets)
        return presets
