"""
SoundTouch Cloud

Local stand-in for the retired SoundTouch cloud: device registry, presets,
multiroom zones and internet-radio stream resolution.
"""

__version__ = "1.0.0"

from .service import CloudService
from .config import CloudConfig, RadioDirectorySettings
from .errors import CloudError
from .models import ContentReference, Device, DeviceDescriptor, Preset, Zone

__all__ = [
    "CloudService",
    "CloudConfig",
    "RadioDirectorySettings",
    "CloudError",
    "ContentReference",
    "Device",
    "DeviceDescriptor",
    "Preset",
    "Zone",
]
