"""
Configuration models for the speaker cloud
"""

from pydantic import BaseModel, Field
from typing import Optional
import os
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class RadioDirectorySettings(BaseModel):
    """TuneIn-style radio directory used to resolve station ids"""
    base_url: str = Field(default="https://opml.radiotime.com", description="Directory API base URL")
    partner_id: str = Field(default="Bose", description="Partner id sent with every request")
    formats: str = Field(default="mp3,aac,ogg,hls", description="Accepted stream formats")
    username: Optional[str] = Field(default=None, description="Optional directory account")
    timeout_s: float = Field(default=5.0, ge=0.5, le=60.0, description="Per-request timeout")

    @classmethod
    def from_env(cls) -> "RadioDirectorySettings":
        """Create directory settings from environment variables"""
        return cls(
            base_url=os.getenv("RADIO_BASE_URL", "https://opml.radiotime.com"),
            partner_id=os.getenv("RADIO_PARTNER_ID", "Bose"),
            formats=os.getenv("RADIO_FORMATS", "mp3,aac,ogg,hls"),
            username=os.getenv("TUNEIN_USERNAME") or None,
            timeout_s=float(os.getenv("RADIO_TIMEOUT_S", "5.0")),
        )


class CloudConfig(BaseModel):
    """Main configuration for the cloud replacement server"""
    base_dir: str = Field(default="./data", description="Root of durable storage")
    devices_file: Optional[str] = Field(default=None, description="Seed device list (defaults to <base_dir>/devices.json)")
    default_account: str = Field(default="default", description="Account used when a request names none")
    allow_device_fallback: bool = Field(default=True, description="Unknown device ids fall back to the first registered device")
    seed_default_presets: bool = Field(default=True, description="Seed devices without durable presets get the default set")
    discovery_enabled: bool = Field(default=False, description="Periodically browse the network for speakers")
    discovery_interval_s: int = Field(default=300, ge=30, le=86400, description="Seconds between discovery runs")
    discovery_timeout_s: float = Field(default=3.0, ge=0.5, le=30.0, description="mDNS browse window")
    resolve_attempts: int = Field(default=3, ge=1, le=10, description="Caller-side attempts for failed directory lookups")
    radio: RadioDirectorySettings = Field(default_factory=RadioDirectorySettings, description="Radio directory")
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8090, ge=1, le=65535, description="Bind port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format (json|text|simple)")

    @property
    def devices_path(self) -> str:
        return self.devices_file or os.path.join(self.base_dir, "devices.json")

    @classmethod
    def from_env(cls) -> "CloudConfig":
        """Create configuration from environment variables"""
        return cls(
            base_dir=os.getenv("BASE_DIR", "./data"),
            devices_file=os.getenv("DEVICES_FILE") or None,
            default_account=os.getenv("DEFAULT_ACCOUNT", "default"),
            allow_device_fallback=_env_bool("ALLOW_DEVICE_FALLBACK", "true"),
            seed_default_presets=_env_bool("SEED_DEFAULT_PRESETS", "true"),
            discovery_enabled=_env_bool("DEVICE_AUTO_DISCOVERY", "false"),
            discovery_interval_s=int(os.getenv("DISCOVERY_INTERVAL_S", "300")),
            discovery_timeout_s=float(os.getenv("DISCOVERY_TIMEOUT_S", "3.0")),
            resolve_attempts=int(os.getenv("RESOLVE_ATTEMPTS", "3")),
            radio=RadioDirectorySettings.from_env(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8090")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )
