"""
Service Configuration — storage locations and device naming.

Reads settings from environment variables:
    HYPERTOOLS_HOME = <application directory, default ~/.hypertools>
    HYPERTOOLS_DEVICE_NAME = <human readable device name>

Security Note:
    The configuration never holds passwords or key material.
"""
import os
import socket
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("hypertools.config")

DEFAULT_APP_DIR = "~/.hypertools"
IDENTITY_FILENAME = "identity.enc"
DEVICE_ID_FILENAME = "device.id"
STORAGE_DIRNAME = "db"


def default_device_name() -> str:
    """Return the host name, used when no device name is configured."""
    return socket.gethostname() or "main-device"


class ServiceConfig(BaseModel):
    """Validated hypertools configuration."""

    app_dir: Path = Field(default_factory=lambda: Path(DEFAULT_APP_DIR).expanduser())
    device_name: str = Field(default_factory=default_device_name, min_length=1, max_length=128)

    @field_validator("app_dir")
    @classmethod
    def expand_app_dir(cls, v: Path) -> Path:
        """Expand ``~`` so every derived path is absolute."""
        return Path(v).expanduser()

    @field_validator("device_name")
    @classmethod
    def validate_device_name(cls, v: str) -> str:
        """Strip the name and reject blank values."""
        v = v.strip()
        if not v:
            raise ValueError("Device name cannot be blank")
        return v

    @property
    def identity_path(self) -> Path:
        """Encrypted recovery phrase (vault file)."""
        return self.app_dir / IDENTITY_FILENAME

    @property
    def device_id_path(self) -> Path:
        """Stable identifier of this physical device."""
        return self.app_dir / DEVICE_ID_FILENAME

    @property
    def storage_path(self) -> Path:
        """Root directory of the replicated store."""
        return self.app_dir / STORAGE_DIRNAME

    def ensure_dirs(self) -> None:
        """Create the application directory, owner-only."""
        self.app_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Create ServiceConfig by loading values from environment.

        Returns:
            Populated ServiceConfig instance.
        """
        values = {}
        app_dir = os.environ.get("HYPERTOOLS_HOME")
        if app_dir:
            values["app_dir"] = Path(app_dir)
        device_name = os.environ.get("HYPERTOOLS_DEVICE_NAME")
        if device_name:
            values["device_name"] = device_name
        config = cls(**values)
        logger.debug("Loaded config: app_dir=%s device=%s", config.app_dir, config.device_name)
        return config
