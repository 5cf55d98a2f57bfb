"""
Shared fixtures: in-memory stand-ins for the replicated store collaborators.

Corestores built from the same ``registries`` dict behave like two devices
replicating the same logs. Every store call yields to the event loop so
concurrent callers interleave.
"""
import asyncio
import copy
import uuid

import pytest

from hypertools.config import ServiceConfig
from hypertools.exceptions import RegistryConflictError

PHRASE = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)


class FakeRegistry:
    """Authoritative schema registry and rows of one store key."""

    def __init__(self):
        self.schemas: list[dict] = []
        self.rows: dict[str, list[dict]] = {}


class FakeSheets:
    def __init__(self, registry: FakeRegistry, key: bytes, encryption_key: bytes):
        self.registry = registry
        self.key = key
        self.encryption_key = encryption_key
        self.is_ready = False
        self.joined: list[str] = []
        self.conflict_on_add: dict | None = None

    async def ready(self):
        await asyncio.sleep(0)
        self.is_ready = True

    async def join(self, name):
        self.joined.append(name)

    async def list_schemas(self):
        await asyncio.sleep(0)
        return [dict(s) for s in self.registry.schemas]

    async def add_new_schema(self, name, json_schema):
        await asyncio.sleep(0)
        if self.conflict_on_add is not None:
            # another device won while this call was in flight
            self.registry.schemas.append(self.conflict_on_add)
            self.conflict_on_add = None
            raise RegistryConflictError(f"{name} registered concurrently")
        schema_id = uuid.uuid4().hex
        self.registry.schemas.append({
            "name": name,
            "schemaId": schema_id,
            "jsonSchema": copy.deepcopy(json_schema),
        })
        return schema_id

    async def add_row(self, schema_id, data, timestamp=None):
        await asyncio.sleep(0)
        row_id = uuid.uuid4().hex
        self.registry.rows.setdefault(schema_id, []).append({"uuid": row_id, **data})
        return row_id

    async def list(self, schema_id, **options):
        await asyncio.sleep(0)
        return [dict(r) for r in self.registry.rows.get(schema_id, [])]

    async def update_row(self, schema_id, uuid, data):
        for row in self.registry.rows.get(schema_id, []):
            if row["uuid"] == uuid:
                row.update(data)
                return True
        return False

    async def delete_row(self, schema_id, uuid):
        rows = self.registry.rows.get(schema_id, [])
        for row in rows:
            if row["uuid"] == uuid:
                rows.remove(row)
                return True
        return False


class FakeCorestore:
    """Storage engine of one device; namespaces share its bookkeeping."""

    def __init__(self, registries: dict | None = None, prefix: tuple = (), parent=None):
        self.registries = {} if registries is None else registries
        self.prefix = prefix
        self.opened: list[FakeSheets] = parent.opened if parent else []
        self.replicated: list = parent.replicated if parent else []

    def namespace(self, name):
        return FakeCorestore(self.registries, self.prefix + (name,), parent=self)

    def open_sheets(self, key, encryption_key):
        registry = self.registries.setdefault((self.prefix, key), FakeRegistry())
        sheets = FakeSheets(registry, key, encryption_key)
        self.opened.append(sheets)
        return sheets

    def replicate(self, connection):
        self.replicated.append(connection)


class FakeTransport:
    def __init__(self):
        self.topics: list[bytes] = []
        self.handlers: list = []
        self.destroyed = False

    def join(self, topic, on_connection):
        self.topics.append(topic)
        self.handlers.append(on_connection)

    async def leave(self, topic):
        self.topics.remove(topic)

    async def destroy(self):
        self.destroyed = True


@pytest.fixture
def phrase():
    """A fixed, valid 12-word recovery phrase."""
    return PHRASE


@pytest.fixture
def registries():
    """Replicated state shared by every corestore built in a test."""
    return {}


@pytest.fixture
def corestore(registries):
    return FakeCorestore(registries)


@pytest.fixture
def make_corestore(registries):
    """Factory for further devices replicating the same state."""
    return lambda: FakeCorestore(registries)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def config(tmp_path):
    return ServiceConfig(app_dir=tmp_path / ".hypertools", device_name="laptop")
