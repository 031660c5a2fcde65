"""
Durable per-account, per-device storage of whole XML records
"""

import logging
import os
import re
import threading
from pathlib import Path
from typing import List, Optional

from .errors import PersistenceFailed
from .models import RecordKind

logger = logging.getLogger(__name__)

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9._@-]+$")


def _segment(value: str, what: str) -> str:
    if not value or not _SAFE_SEGMENT.match(value) or value in (".", ".."):
        raise PersistenceFailed(f"Invalid {what} for storage: {value!r}")
    return value


class PersistentStore:
    """
    File-backed store laid out as <data_dir>/accounts/<account>/devices/<device>/<Kind>.xml.

    Records are written and read whole; a write lands in a temporary file
    and is renamed over the old record so readers never see a partial blob.
    """

    def __init__(self, data_dir: str = "./data"):
        self.data_dir = Path(data_dir)
        self._lock = threading.Lock()
        try:
            (self.data_dir / "accounts").mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceFailed(f"Cannot create data directory {self.data_dir}: {e}") from e

    def device_path(self, account_id: str, device_id: str) -> Path:
        return (self.data_dir / "accounts" / _segment(account_id, "account id")
                / "devices" / _segment(device_id, "device id"))

    def _record_path(self, kind: RecordKind, account_id: str, device_id: str) -> Path:
        return self.device_path(account_id, device_id) / f"{RecordKind(kind).value}.xml"

    def save(self, kind: RecordKind, account_id: str, device_id: str, blob: str) -> None:
        """
        Write a whole record.

        Raises:
            PersistenceFailed: The record could not be written
        """
        path = self._record_path(kind, account_id, device_id)
        tmp_path = path.with_suffix(".xml.tmp")
        with self._lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(blob, encoding="utf-8")
                os.replace(tmp_path, path)
            except OSError as e:
                logger.error(f"Failed to save {RecordKind(kind).value} for {device_id}: {e}")
                raise PersistenceFailed(f"Could not save {RecordKind(kind).value} for {device_id}: {e}") from e
        logger.info(f"Saved {RecordKind(kind).value} for {device_id} (account {account_id})")

    def load(self, kind: RecordKind, account_id: str, device_id: str) -> Optional[str]:
        """Read a whole record, or None if it was never written or cannot be read"""
        try:
            path = self._record_path(kind, account_id, device_id)
        except PersistenceFailed as e:
            logger.warning(str(e))
            return None
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to load {RecordKind(kind).value} for {device_id}: {e}")
            return None

    def list(self, account_id: str) -> List[str]:
        """Device ids that have any record under this account"""
        try:
            devices_dir = self.data_dir / "accounts" / _segment(account_id, "account id") / "devices"
        except PersistenceFailed as e:
            logger.warning(str(e))
            return []
        if not devices_dir.is_dir():
            return []
        return sorted(entry.name for entry in devices_dir.iterdir() if entry.is_dir())

    def exists(self, account_id: str, device_id: str) -> bool:
        """True when a DeviceInfo record was stored for the device"""
        try:
            return self._record_path(RecordKind.DEVICE_INFO, account_id, device_id).exists()
        except PersistenceFailed:
            return False
