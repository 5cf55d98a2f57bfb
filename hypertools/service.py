"""
HypertoolsService — Session bootstrap for one device.

A single routine covers both onboarding paths:

1. create a new identity (``create=True``) or unlock the vault,
2. bind this device with a fresh keypair,
3. open the main database on the identity's keys,
4. register the device, or refresh its ``lastSeen``.

Storage location and device name come from ``ServiceConfig``.
"""
import asyncio
import os
import secrets
import logging
from typing import Any, Optional

from .config import ServiceConfig
from .database import Database, DeviceRecord
from .database.store import Corestore, Transport
from .exceptions import VaultExistsError, VaultNotFoundError
from .identity import IdentityExport, IdentitySession
from .identity.keys import fingerprint
from .vault import VaultFile, VaultUnsealFailure, seal_async

logger = logging.getLogger("hypertools.service")


class HypertoolsService:
    """Identity, device binding and databases of the running process."""

    def __init__(
        self,
        config: ServiceConfig,
        corestore: Corestore,
        transport: Optional[Transport] = None,
    ):
        self.config = config
        self.identity = IdentitySession()
        self.vault = VaultFile(config.identity_path)
        self.main_db: Optional[Database] = None
        self._corestore = corestore
        self._transport = transport
        self._tool_dbs: dict[str, Database] = {}
        self.is_running = False

    @property
    def has_identity(self) -> bool:
        return self.vault.exists()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def create_identity(
        self, password: str, mnemonic: Optional[str] = None, replace: bool = False,
    ) -> str:
        """Create (or restore from ``mnemonic``) an identity and seal it.

        Args:
            password: Vault password.
            mnemonic: Phrase to restore; a new one is generated if omitted.
            replace: Overwrite an existing vault.

        Returns:
            The recovery phrase, for the user to write down.

        Raises:
            VaultExistsError: If a vault exists and ``replace`` is not set.
        """
        if self.vault.exists():
            if not replace:
                raise VaultExistsError(f"Identity vault already exists at {self.vault.path}")
            logger.warning("Replacing existing identity vault at %s", self.vault.path)
        user = self.identity.init_user(mnemonic)
        record = await seal_async(user.mnemonic.encode("utf-8"), password)
        self.config.ensure_dirs()
        self.vault.save(record)
        logger.info("Identity created and encrypted")
        return user.mnemonic

    async def unlock(self, password: str) -> bool:
        """Unseal the vault and load the identity.

        Returns:
            False on a wrong password or corrupted vault; nothing is loaded.

        Raises:
            VaultNotFoundError: If no identity has been created.
        """
        if not self.vault.exists():
            raise VaultNotFoundError("No identity found. Create one first.")
        secret = await asyncio.to_thread(self.vault.unlock, password)
        if isinstance(secret, VaultUnsealFailure):
            logger.info("Incorrect password for identity vault")
            return False
        self.identity.init_user(secret.decode("utf-8"))
        logger.info("Identity unlocked")
        return True

    def device_id(self) -> str:
        """Stable id of this physical device, created on first use."""
        path = self.config.device_id_path
        if path.exists():
            device_id = path.read_text(encoding="utf-8").strip()
            if device_id:
                return device_id
        device_id = secrets.token_hex(16)
        self.config.ensure_dirs()
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fp:
            fp.write(device_id)
        return device_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        password: str,
        create: bool = False,
        mnemonic: Optional[str] = None,
        replace: bool = False,
    ) -> bool:
        """Bring the session up.

        A running session is shut down first, keeping only the transport.

        Args:
            password: Vault password.
            create: Create a new identity instead of unlocking the vault.
            mnemonic: Phrase to restore when ``create`` is set.
            replace: Overwrite an existing vault when ``create`` is set.

        Returns:
            False if the vault rejected the password, True once running.
        """
        if self.is_running or self.main_db is not None:
            logger.info("Restarting service")
            await self._close_databases()
            self.identity.clear()
            self.is_running = False

        self.config.ensure_dirs()
        if create:
            await self.create_identity(password, mnemonic, replace=replace)
        elif not await self.unlock(password):
            return False

        device = self.identity.init_device(self.config.device_name)
        keys = self.identity.get_database_keys()
        self.main_db = await Database.open(
            self._corestore, keys, device.device_name,
            transport=self._transport, owns_transport=False,
        )
        await self.main_db.register_device(DeviceRecord(
            device_id=self.device_id(),
            name=device.device_name,
            public_key=device.device_public_key.hex(),
            user_identity=device.identity_public_key.hex(),
        ))
        self.is_running = True
        logger.info(
            "Service running: identity=%s device=%s",
            fingerprint(device.identity_public_key), device.device_name,
        )
        return True

    @property
    def room_link(self) -> str:
        if self.main_db is None:
            raise RuntimeError("Service not started")
        return self.main_db.room_link

    async def get_tool_database(
        self, tool_name: str, schemas: Optional[dict[str, dict[str, Any]]] = None,
    ) -> Database:
        """Namespace of ``tool_name``, opened once per session."""
        if tool_name in self._tool_dbs:
            return self._tool_dbs[tool_name]
        if self.main_db is None:
            raise RuntimeError("Service not started")
        tool_db = await self.main_db.create_namespace(tool_name, schemas)
        self._tool_dbs[tool_name] = tool_db
        return tool_db

    def export_identity(self) -> IdentityExport:
        return self.identity.export_identity()

    async def _close_databases(self) -> None:
        for tool_db in self._tool_dbs.values():
            await tool_db.close()
        self._tool_dbs.clear()
        if self.main_db is not None:
            await self.main_db.close()
            self.main_db = None

    async def stop(self) -> None:
        """Close all databases, destroy the transport and drop identity secrets."""
        await self._close_databases()
        if self._transport is not None:
            await self._transport.destroy()
            self._transport = None
        self.identity.clear()
        self.is_running = False
        logger.info("Service stopped")
