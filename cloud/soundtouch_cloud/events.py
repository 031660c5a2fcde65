"""
Change notifications published by the core
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

DEVICE_REGISTERED = "deviceRegistered"
DEVICE_UNREGISTERED = "deviceUnregistered"
DEVICE_UPDATED = "deviceUpdated"
PRESETS_UPDATED = "presetsUpdated"
NOW_PLAYING_UPDATED = "nowPlayingUpdated"
ZONE_UPDATED = "zoneUpdated"
ZONE_REMOVED = "zoneRemoved"


@dataclass(frozen=True)
class ChangeEvent:
    """A committed change, as delivered to observers"""
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, **self.payload}


Observer = Callable[[ChangeEvent], None]


class EventBus:
    """Observer registry; delivery is synchronous and best-effort"""

    def __init__(self):
        self._observers: List[Observer] = []
        self._lock = threading.Lock()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer and return a callable that unregisters it"""
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def publish(self, event_type: str, **payload: Any) -> ChangeEvent:
        event = ChangeEvent(event_type, payload)
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception as e:
                logger.warning(f"Observer failed for {event_type}: {e}")
        return event
