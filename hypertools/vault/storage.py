"""
VaultFile — Persisted vault record for one identity.

Provides the file-level API of the Credential Vault:
- ``save(record)`` — atomically write a sealed record (mode 0600)
- ``load()`` — read and parse the record
- ``create(secret, password)`` — seal and persist a new secret
- ``unlock(password)`` — load and unseal, ``UNSEAL_FAILED`` on any failure
- ``change_password(old, new)`` — re-seal the secret under a new password

Security Note:
    Only ciphertext ever reaches the disk. Plaintext returned by ``unlock``
    is the caller's to hold; this class does not cache it.
"""
import os
import logging
from pathlib import Path
from typing import Union

from ..exceptions import VaultNotFoundError
from .crypto import (
    UNSEAL_FAILED,
    VaultRecord,
    VaultUnsealFailure,
    seal,
    unseal,
)

logger = logging.getLogger("hypertools.vault")


class VaultFile:
    """Vault record stored as a JSON file at a fixed per-user path."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    # ------------------------------------------------------------------
    # Raw I/O
    # ------------------------------------------------------------------

    def load(self) -> VaultRecord:
        """Read the vault record.

        Raises:
            VaultNotFoundError: If no vault file exists.
            ValueError: If the file is not a valid vault record.
        """
        if not self._path.exists():
            raise VaultNotFoundError(f"No identity vault at {self._path}")
        return VaultRecord.from_json(self._path.read_bytes())

    def save(self, record: VaultRecord) -> None:
        """Write the record atomically with owner-only permissions."""
        self._path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        try:
            with os.fdopen(fd, "wb") as fp:
                fp.write(record.to_json())
                fp.flush()
                os.fsync(fp.fileno())
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        os.replace(tmp, self._path)
        logger.debug("Vault saved: %s", self._path)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create(self, secret: bytes, password: str) -> VaultRecord:
        """Seal a secret and persist it, replacing any existing vault."""
        record = seal(secret, password)
        self.save(record)
        logger.info("Vault created: %s", self._path)
        return record

    def unlock(self, password: str) -> Union[bytes, VaultUnsealFailure]:
        """Load and unseal the stored secret.

        A corrupted file is reported the same way as a wrong password.

        Raises:
            VaultNotFoundError: If no vault file exists.
        """
        try:
            record = self.load()
        except ValueError as err:
            logger.warning("Vault file %s is unreadable: %s", self._path, type(err).__name__)
            return UNSEAL_FAILED
        return unseal(record, password)

    def change_password(self, old_password: str, new_password: str) -> bool:
        """Re-seal the stored secret under a new password.

        Returns:
            True on success, False if ``old_password`` does not unlock the vault.
        """
        secret = self.unlock(old_password)
        if isinstance(secret, VaultUnsealFailure):
            return False
        self.save(seal(secret, new_password))
        logger.info("Vault password changed: %s", self._path)
        return True
