"""
Database — Namespace/schema facade over the replicated store.

Provides:
- ``open()`` / ``join_room()`` — open the store on a key pair and bootstrap
  the core schemas
- ``ensure_schema(name, descriptor)`` — idempotent schema registration
- ``add_row`` / ``query`` / ``update_row`` / ``delete_row`` — row access by
  schema name
- ``create_namespace(name)`` — isolated per-tool partition
- ``list_user_files`` / ``list_ssh_connections`` — tool rows of one user
- ``register_device`` / ``update_device_last_seen`` — device registry
- ``room_link`` — shareable link for the open store

The registry is the source of truth for schema ids; the per-instance cache
only saves lookups. When two devices race to register a name, every caller
adopts the first id the registry lists for it.
"""
import asyncio
import logging
from typing import Any, Optional, Union

from ..exceptions import (
    DatabaseNotReadyError,
    IdentityUninitializedError,
    RegistryConflictError,
    SchemaConflictError,
    SchemaNotRegisteredError,
)
from ..identity.keys import DerivedKeySet, derive_namespace_keys, fingerprint
from .roomlink import decode_room_link, encode_key_pair
from .schemas import CORE_SCHEMAS, DeviceRecord, now_ms
from .store import Corestore, SchemaSheets, Transport

logger = logging.getLogger("hypertools.database")


def _hex(key: Union[bytes, str, None]) -> Optional[str]:
    return key.hex() if isinstance(key, bytes) else key


class Database:
    """Facade over one schema-sheets instance.

    Use ``open``, ``join_room`` or ``create_namespace`` to get a ready
    instance.
    """

    def __init__(
        self,
        corestore: Corestore,
        sheets: SchemaSheets,
        keys: Optional[DerivedKeySet] = None,
        transport: Optional[Transport] = None,
        name: str = "main",
        owns_transport: bool = True,
    ):
        self._store = corestore
        self._sheets: Optional[SchemaSheets] = sheets
        self._keys = keys
        self._transport = transport
        self._owns_transport = owns_transport
        self._schemas: dict[str, str] = {}  # name -> schema id
        self._lock = asyncio.Lock()
        self._ready = False
        self.name = name

    def __repr__(self) -> str:
        return f"<Database {self.name} ready={self._ready} schemas={sorted(self._schemas)}>"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    async def open(
        cls,
        corestore: Corestore,
        keys: DerivedKeySet,
        device_name: str,
        transport: Optional[Transport] = None,
        schemas: Optional[dict[str, dict[str, Any]]] = None,
        owns_transport: bool = True,
    ) -> "Database":
        """Open the store keyed by ``keys`` and ensure the core schemas.

        Args:
            corestore: Storage engine.
            keys: Key set of the identity (or of a namespace).
            device_name: Name this device joins the store under.
            transport: Optional peer discovery swarm.
            schemas: Schemas to ensure; ``CORE_SCHEMAS`` by default.
            owns_transport: Destroy ``transport`` on ``close``; otherwise
                only leave this store's topic.
        """
        sheets = corestore.open_sheets(keys.discovery_public_key, keys.discovery_encryption_key)
        db = cls(
            corestore, sheets, keys=keys, transport=transport, owns_transport=owns_transport,
        )
        await db._start(device_name, CORE_SCHEMAS if schemas is None else schemas)
        logger.info("Database initialized for device: %s", device_name)
        return db

    @classmethod
    async def join_room(
        cls,
        room_link: str,
        corestore: Corestore,
        device_name: str,
        transport: Optional[Transport] = None,
        identity_public_key: Optional[bytes] = None,
    ) -> "Database":
        """Open the store a room link points to.

        Without ``identity_public_key`` the instance cannot create
        namespaces.

        Raises:
            RoomLinkError: If the link is malformed.
        """
        key, encryption_key = decode_room_link(room_link)
        keys = None
        if identity_public_key is not None:
            keys = DerivedKeySet(
                identity_public_key=identity_public_key,
                discovery_public_key=key,
                discovery_encryption_key=encryption_key,
            )
        sheets = corestore.open_sheets(key, encryption_key)
        db = cls(corestore, sheets, keys=keys, transport=transport)
        await db._start(device_name, CORE_SCHEMAS)
        logger.info("Joined room %s as %s", fingerprint(key), device_name)
        return db

    async def _start(self, join_name: str, schemas: dict[str, dict[str, Any]]) -> None:
        await self._sheets.ready()
        await self._sheets.join(join_name)
        if self._transport is not None:
            self._transport.join(self._sheets.key, self._store.replicate)
        self._ready = True
        for name, descriptor in schemas.items():
            await self.ensure_schema(name, descriptor)

    async def close(self) -> None:
        """Release the store.

        The transport is destroyed if this instance owns it; otherwise only
        this store's topic is left.
        """
        if self._transport is not None and self._sheets is not None:
            if self._owns_transport:
                await self._transport.destroy()
            else:
                await self._transport.leave(self._sheets.key)
        self._sheets = None
        self._ready = False
        logger.debug("Database %s closed", self.name)

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def keys(self) -> Optional[DerivedKeySet]:
        return self._keys

    @property
    def schemas(self) -> dict[str, str]:
        """Cached schema ids by name."""
        return dict(self._schemas)

    def _require_ready(self) -> SchemaSheets:
        if not self._ready or self._sheets is None:
            raise DatabaseNotReadyError("Database not initialized")
        return self._sheets

    @property
    def room_link(self) -> str:
        """z-base-32 link carrying this store's key pair."""
        sheets = self._require_ready()
        return encode_key_pair(sheets.key, sheets.encryption_key)

    # ------------------------------------------------------------------
    # Schemas
    # ------------------------------------------------------------------

    async def _lookup_schema(self, name: str, descriptor: dict[str, Any]) -> Optional[str]:
        """Authoritative id of ``name``, or None if unregistered.

        Raises:
            SchemaConflictError: If a registered body differs from ``descriptor``.
        """
        entries = [s for s in await self._sheets.list_schemas() if s.get("name") == name]
        if not entries:
            return None
        if any("jsonSchema" in s and s["jsonSchema"] != descriptor for s in entries):
            raise SchemaConflictError(name, [s["schemaId"] for s in entries])
        return entries[0]["schemaId"]

    async def ensure_schema(self, name: str, descriptor: dict[str, Any]) -> str:
        """Return the schema id of ``name``, registering it if absent.

        Safe to call repeatedly and concurrently, here or on other devices.

        Raises:
            SchemaConflictError: If the registry holds a different body.
            RegistryConflictError: If the registry cannot be reconciled.
        """
        self._require_ready()
        async with self._lock:
            schema_id = await self._lookup_schema(name, descriptor)
            if schema_id is not None:
                self._schemas[name] = schema_id
                return schema_id

            created: Optional[str] = None
            try:
                created = await self._sheets.add_new_schema(name, descriptor)
            except RegistryConflictError:
                logger.info("Schema %s registered concurrently, re-reading registry", name)

            schema_id = await self._lookup_schema(name, descriptor)
            if schema_id is None:
                raise RegistryConflictError(
                    f"Schema {name!r} missing from registry after registration"
                )
            if created is not None and created != schema_id:
                # the losing entry stays in the registry; lookups skip it
                logger.warning(
                    "Schema %s lost registration race, adopting %s over %s",
                    name, schema_id, created,
                )
            self._schemas[name] = schema_id
            logger.debug("Schema %s ready: %s", name, schema_id)
            return schema_id

    def _schema_id(self, name: str) -> str:
        try:
            return self._schemas[name]
        except KeyError:
            raise SchemaNotRegisteredError(name) from None

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    async def add_row(
        self, schema_name: str, data: dict[str, Any], timestamp: Optional[int] = None,
    ) -> str:
        """Add a row; returns its uuid."""
        sheets = self._require_ready()
        return await sheets.add_row(self._schema_id(schema_name), data, timestamp)

    async def query(self, schema_name: str, **options: Any) -> list[dict[str, Any]]:
        """List rows; ``options`` go to the store's query engine unchanged."""
        sheets = self._require_ready()
        return await sheets.list(self._schema_id(schema_name), **options)

    async def update_row(self, schema_name: str, uuid: str, data: dict[str, Any]) -> bool:
        sheets = self._require_ready()
        return await sheets.update_row(self._schema_id(schema_name), uuid, data)

    async def delete_row(self, schema_name: str, uuid: str) -> bool:
        sheets = self._require_ready()
        return await sheets.delete_row(self._schema_id(schema_name), uuid)

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------

    async def create_namespace(
        self, name: str, schemas: Optional[dict[str, dict[str, Any]]] = None,
    ) -> "Database":
        """Open an isolated partition for a tool.

        The partition shares this instance's storage engine and transport,
        keeps its own schema cache and uses ``derive_namespace_keys`` keys.

        Raises:
            IdentityUninitializedError: If this instance has no identity keys.
        """
        self._require_ready()
        if self._keys is None:
            raise IdentityUninitializedError("Namespaces require the identity key set")
        logger.info("Creating namespace for tool: %s", name)
        keys = derive_namespace_keys(self._keys, name)
        store = self._store.namespace(name)
        sheets = store.open_sheets(keys.discovery_public_key, keys.discovery_encryption_key)
        ns = Database(
            store, sheets, keys=keys, transport=self._transport,
            name=name, owns_transport=False,
        )
        await ns._start(f"{name}-db", schemas or {})
        return ns

    # ------------------------------------------------------------------
    # Filtered queries
    # ------------------------------------------------------------------

    async def _rows_where(self, schema_name: str, **fields: Any) -> list[dict[str, Any]]:
        """Rows of ``schema_name`` whose fields equal every non-None value given."""
        criteria = {k: v for k, v in fields.items() if v is not None}
        rows = await self.query(schema_name)
        return [
            row for row in rows
            if all(row.get(k) == v for k, v in criteria.items())
        ]

    async def list_user_files(self, user_identity: Union[bytes, str]) -> list[dict[str, Any]]:
        """Rows of the ``files`` schema owned by ``user_identity``."""
        return await self._rows_where("files", userIdentity=_hex(user_identity))

    async def list_ssh_connections(
        self, user_identity: Union[bytes, str], device_id: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Rows of the ``ssh_connections`` schema, optionally of one device."""
        return await self._rows_where(
            "ssh_connections", userIdentity=_hex(user_identity), deviceId=device_id,
        )

    # ------------------------------------------------------------------
    # Device registry
    # ------------------------------------------------------------------

    async def _device_rows(self, device_id: str) -> list[dict[str, Any]]:
        return await self._rows_where("devices", deviceId=device_id)

    async def find_device(self, device_id: str) -> Optional[DeviceRecord]:
        rows = await self._device_rows(device_id)
        return DeviceRecord.model_validate(rows[0]) if rows else None

    async def list_devices(
        self, user_identity: Union[bytes, str, None] = None,
    ) -> list[DeviceRecord]:
        """Registered devices, optionally of one identity."""
        rows = await self._rows_where("devices", userIdentity=_hex(user_identity))
        return [DeviceRecord.model_validate(row) for row in rows]

    async def register_device(self, record: DeviceRecord) -> str:
        """Insert or update the registry entry of ``record.device_id``.

        Returns:
            uuid of the device row.
        """
        rows = await self._device_rows(record.device_id)
        if rows:
            uuid = rows[0]["uuid"]
            await self.update_row("devices", uuid, {
                "name": record.name,
                "publicKey": record.public_key,
                "userIdentity": record.user_identity,
                "lastSeen": now_ms(),
            })
            logger.debug("Device %s updated", record.device_id)
            return uuid

        created = await self.add_row("devices", record.to_row())
        rows = await self._device_rows(record.device_id)
        if not rows:
            raise RegistryConflictError(
                f"Device {record.device_id} missing from registry after registration"
            )
        uuid = rows[0]["uuid"]
        if uuid != created:
            # concurrent registration of the same device; keep the first row
            await self.delete_row("devices", created)
            logger.warning("Duplicate registration of device %s removed", record.device_id)
        else:
            logger.info("Device %s registered", record.device_id)
        return uuid

    async def update_device_last_seen(self, device_id: str) -> bool:
        """Touch ``lastSeen``; False if the device is not registered."""
        rows = await self._device_rows(device_id)
        if not rows:
            return False
        return await self.update_row("devices", rows[0]["uuid"], {"lastSeen": now_ms()})
