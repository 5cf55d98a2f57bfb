"""
Record schemas bootstrapped in the main database, and the device record.

Schema bodies are JSON Schema documents. A schema name maps to one body on
every device; ``Database.ensure_schema`` rejects a differing body.
"""
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

APP_METADATA_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "key": {"type": "string"},
        "value": {"type": "string"},
    },
    "required": ["key", "value"],
}

DEVICES_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "deviceId": {"type": "string"},
        "name": {"type": "string"},
        "publicKey": {"type": "string"},
        "lastSeen": {"type": "number"},
        "userIdentity": {"type": "string"},
    },
    "required": ["deviceId", "name", "userIdentity"],
}

TOOLS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "gitUrl": {"type": "string"},
        "version": {"type": "string"},
        "installedAt": {"type": "number"},
    },
    "required": ["name", "gitUrl"],
}

FILES_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "path": {"type": "string"},
        "hash": {"type": "string"},
        "size": {"type": "number"},
        "lastModified": {"type": "number"},
        "deviceId": {"type": "string"},
        "userIdentity": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["path", "deviceId", "userIdentity"],
}

SSH_CONNECTIONS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "host": {"type": "string"},
        "user": {"type": "string"},
        "port": {"type": "number", "default": 22},
        "authType": {"type": "string", "enum": ["password", "keypair", "agent"]},
        "keyPath": {"type": "string"},
        "password": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
        "userIdentity": {"type": "string"},
        "deviceId": {"type": "string"},
    },
    "required": ["name", "host", "user", "userIdentity"],
}

# Ensured whenever the main database opens.
CORE_SCHEMAS: dict[str, dict[str, Any]] = {
    "app_metadata": APP_METADATA_SCHEMA,
    "devices": DEVICES_SCHEMA,
    "tools": TOOLS_SCHEMA,
}

# Ensured by the tools that use them, inside their namespace.
TOOL_SCHEMAS: dict[str, dict[str, Any]] = {
    "files": FILES_SCHEMA,
    "ssh_connections": SSH_CONNECTIONS_SCHEMA,
}


def now_ms() -> int:
    return int(time.time() * 1000)


class DeviceRecord(BaseModel):
    """Entry of the ``devices`` registry; keys are hex strings."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(alias="deviceId")
    name: str
    public_key: str = Field(alias="publicKey")
    user_identity: str = Field(alias="userIdentity")
    last_seen: int = Field(default_factory=now_ms, alias="lastSeen")

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
