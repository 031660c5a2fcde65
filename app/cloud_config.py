"""
Server-side configuration for the SoundTouch cloud app
Loads the cloud configuration and the seed device list
"""

import os
import json
import time
import logging
from typing import List

from pydantic import BaseModel, Field, ValidationError
from dotenv import load_dotenv

from soundtouch_cloud.config import CloudConfig
from soundtouch_cloud.models import DeviceDescriptor

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


class DeviceSeed(BaseModel):
    """One speaker entry in devices.json"""
    id: str = Field(..., min_length=1, description="Device id (usually the MAC address)")
    name: str = Field(default="SoundTouch Speaker", description="Display name")
    host: str = Field(default="", description="Speaker IP address or hostname")
    port: int = Field(default=8090, ge=1, le=65535, description="Speaker API port")
    account_id: str = Field(default="default", alias="accountId", description="Owning account")

    model_config = {"populate_by_name": True}

    def to_descriptor(self) -> DeviceDescriptor:
        return DeviceDescriptor(
            id=self.id,
            name=self.name,
            host=self.host,
            port=self.port,
            account_id=self.account_id,
        )


DEFAULT_DEVICES = [
    DeviceSeed(id="device1", name="Living Room Speaker", host="192.168.1.100", port=8090),
]


def load_cloud_config() -> CloudConfig:
    """Load cloud configuration and make sure the data directory exists"""
    config = CloudConfig.from_env()
    os.makedirs(config.base_dir, exist_ok=True)
    return config


def write_default_device_seeds(path: str) -> None:
    """Write the default seed device list to path"""
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        device_data = {
            "devices": [device.model_dump() for device in DEFAULT_DEVICES],
            "last_updated": str(time.time())
        }
        with open(path, 'w') as f:
            json.dump(device_data, f, indent=2)
        logger.info(f"Created default device list at {path}")
    except OSError as e:
        logger.error(f"Failed to write default device list: {e}")


def load_device_seeds(path: str, default_account: str = "default") -> List[DeviceSeed]:
    """
    Load seed devices from a JSON file, creating the default list if it is missing.

    Entries that fail validation are skipped.
    """
    if not os.path.exists(path):
        logger.info(f"No device list at {path}, creating default")
        write_default_device_seeds(path)
        return [d.model_copy(update={"account_id": default_account}) for d in DEFAULT_DEVICES]

    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load device list {path}: {e}")
        return []

    if not isinstance(data, dict):
        logger.error(f"Device list {path} must be an object with a 'devices' array")
        return []

    seeds = []
    for entry in data.get("devices", []):
        entry.setdefault("account_id", entry.pop("accountId", default_account))
        try:
            seeds.append(DeviceSeed(**entry))
        except ValidationError as e:
            logger.error(f"Skipping invalid device entry {entry.get('id')!r}: {e}")
    logger.info(f"Loaded {len(seeds)} seed devices from {path}")
    return seeds
