"""
Vault Crypto Core — Password sealing of the recovery phrase at rest.

On-disk format (fixed; changing a parameter changes the format):
- Key derivation: PBKDF2-HMAC-SHA256, 100,000 iterations, 32-byte key,
  fresh 32-byte random salt per seal.
- Cipher: AES-256-GCM with a fresh 16-byte random IV and a 16-byte
  authentication tag stored separately from the ciphertext.

Security Note:
    Never log plaintext, passwords or derived keys.
    A wrong password and a tampered record are indistinguishable: both
    yield ``UNSEAL_FAILED`` so the vault does not act as a password oracle.
"""
import os
import asyncio
import logging
from typing import Any, Union

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

logger = logging.getLogger("hypertools.vault")

KDF_ITERATIONS = 100_000
KEY_LENGTH = 32  # AES-256
SALT_SIZE = 32
IV_SIZE = 16
TAG_SIZE = 16


class VaultUnsealFailure:
    """Result returned by ``unseal`` when authentication fails.

    Falsy. An empty secret is falsy too, so test with ``isinstance``.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSEAL_FAILED"


UNSEAL_FAILED = VaultUnsealFailure()


class VaultRecord(BaseModel):
    """Sealed secret bundle, serialized as hex strings.

    ``encrypted`` holds the AES-GCM ciphertext without its tag; the tag lives
    in ``auth_tag`` (``authTag`` on disk).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    encrypted: bytes
    salt: bytes
    iv: bytes
    auth_tag: bytes = Field(alias="authTag")

    @field_validator("encrypted", "salt", "iv", "auth_tag", mode="before")
    @classmethod
    def from_hex(cls, v: Any) -> bytes:
        """Accept raw bytes or the hex strings found on disk."""
        if isinstance(v, str):
            return bytes.fromhex(v)
        return v

    @field_serializer("encrypted", "salt", "iv", "auth_tag")
    def to_hex(self, v: bytes) -> str:
        return v.hex()

    def to_json(self) -> bytes:
        """Serialize to the vault file JSON object."""
        return orjson.dumps(
            self.model_dump(by_alias=True), option=orjson.OPT_INDENT_2
        )

    @classmethod
    def from_json(cls, data: Union[bytes, str]) -> "VaultRecord":
        """Parse a vault file JSON object.

        Raises:
            ValueError: If the JSON or a hex field is malformed.
        """
        return cls.model_validate(orjson.loads(data))


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(password: str, salt: bytes) -> bytes:
    """Derive the 32-byte vault key from a password using PBKDF2-HMAC-SHA256.

    Slow (100,000 iterations); use ``seal_async``/``unseal_async`` from coroutines.

    Args:
        password: User password.
        salt: Per-record random salt.

    Returns:
        32-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


# ---------------------------------------------------------------------------
# Seal / unseal
# ---------------------------------------------------------------------------

def seal(secret: bytes, password: str) -> VaultRecord:
    """Encrypt a secret under a password.

    Args:
        secret: Plaintext to protect (the encoded recovery phrase).
        password: User password.

    Returns:
        VaultRecord with fresh salt and IV.
    """
    salt = os.urandom(SALT_SIZE)
    iv = os.urandom(IV_SIZE)
    key = derive_key(password, salt)
    ct = AESGCM(key).encrypt(iv, secret, None)
    return VaultRecord(
        encrypted=ct[:-TAG_SIZE],
        salt=salt,
        iv=iv,
        auth_tag=ct[-TAG_SIZE:],
    )


def unseal(record: VaultRecord, password: str) -> Union[bytes, VaultUnsealFailure]:
    """Decrypt a sealed record.

    Args:
        record: Bundle produced by ``seal``.
        password: Candidate password.

    Returns:
        The plaintext secret, or ``UNSEAL_FAILED`` on a wrong password,
        tampered fields or malformed lengths. Never raises for bad input.
    """
    if (
        len(record.salt) != SALT_SIZE
        or len(record.iv) != IV_SIZE
        or len(record.auth_tag) != TAG_SIZE
    ):
        logger.warning("Vault record has malformed field lengths")
        return UNSEAL_FAILED
    key = derive_key(password, record.salt)
    try:
        return AESGCM(key).decrypt(
            record.iv, record.encrypted + record.auth_tag, None
        )
    except InvalidTag:
        logger.info("Vault unseal failed: authentication tag mismatch")
        return UNSEAL_FAILED


async def seal_async(secret: bytes, password: str) -> VaultRecord:
    """``seal`` on a worker thread, keeping the event loop responsive."""
    return await asyncio.to_thread(seal, secret, password)


async def unseal_async(
    record: VaultRecord, password: str
) -> Union[bytes, VaultUnsealFailure]:
    """``unseal`` on a worker thread, keeping the event loop responsive."""
    return await asyncio.to_thread(unseal, record, password)
