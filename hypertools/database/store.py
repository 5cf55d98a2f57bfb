"""
Collaborator interfaces of the replicated store.

The replication transport, the log storage engine and the schema/query
engine live outside this package. ``Database`` only depends on the
protocols below.

Schema registry entries returned by ``list_schemas`` are dicts with
``name`` and ``schemaId`` keys, and ``jsonSchema`` when the store keeps
schema bodies. Entries are returned in registration order.

Rows returned by ``list`` are dicts holding the row fields plus ``uuid``.

A store may raise ``RegistryConflictError`` from ``add_new_schema`` when
it detects a concurrent registration of the same name.

The registry is append-only: when two devices register the same name
concurrently both entries remain, and every reader adopts the first one
listed for the name.
"""
from typing import Any, Callable, Optional, Protocol


class SchemaSheets(Protocol):
    """Schema-aware replicated table store opened on one key pair."""

    key: bytes
    encryption_key: bytes

    async def ready(self) -> None: ...

    async def join(self, name: str) -> None: ...

    async def list_schemas(self) -> list[dict[str, Any]]: ...

    async def add_new_schema(self, name: str, json_schema: dict[str, Any]) -> str: ...

    async def add_row(
        self, schema_id: str, data: dict[str, Any], timestamp: Optional[int] = None,
    ) -> str: ...

    async def list(self, schema_id: str, **options: Any) -> list[dict[str, Any]]: ...

    async def update_row(self, schema_id: str, uuid: str, data: dict[str, Any]) -> bool: ...

    async def delete_row(self, schema_id: str, uuid: str) -> bool: ...


class Corestore(Protocol):
    """Storage engine holding the append-only logs."""

    def namespace(self, name: str) -> "Corestore": ...

    def open_sheets(self, key: bytes, encryption_key: bytes) -> SchemaSheets: ...

    def replicate(self, connection: Any) -> None: ...


class Transport(Protocol):
    """Peer discovery swarm shared by a database and its namespaces."""

    def join(self, topic: bytes, on_connection: Callable[[Any], None]) -> None: ...

    async def leave(self, topic: bytes) -> None: ...

    async def destroy(self) -> None: ...
