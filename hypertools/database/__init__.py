"""Namespace/Schema facade — Opens the replicated store on identity keys,
bootstraps its schemas and partitions it per tool.
"""

from .database import Database
from .roomlink import decode_room_link, encode_room_link
from .schemas import CORE_SCHEMAS, TOOL_SCHEMAS, DeviceRecord
from .store import Corestore, SchemaSheets, Transport

__all__ = [
    "Database",
    "decode_room_link",
    "encode_room_link",
    "CORE_SCHEMAS",
    "TOOL_SCHEMAS",
    "DeviceRecord",
    "Corestore",
    "SchemaSheets",
    "Transport",
]
