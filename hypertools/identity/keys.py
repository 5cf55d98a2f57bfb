"""
Key Derivation Service — Deterministic keys for the replicated store.

- ``DerivedKeySet``: the in-memory keys a store instance is opened with.
- ``derive_key``: HKDF-SHA256 with a context string for domain separation.
- ``derive_namespace_keys``: per-tool keys scoped under a parent key set.
- ``profile_encryption_key``: encryption key for a profile core.

Security Note:
    ``discovery_encryption_key`` is secret. Never log it; log public keys
    only through ``fingerprint``.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from pydantic import BaseModel, ConfigDict, field_validator

if TYPE_CHECKING:
    from .root import RootIdentity

logger = logging.getLogger("hypertools.identity")

KEY_LENGTH = 32

CONTEXT_NAMESPACE_DISCOVERY = "hypertools-namespace-discovery"
CONTEXT_NAMESPACE_ENCRYPTION = "hypertools-namespace-encryption"
CONTEXT_PROFILE_ENCRYPTION = "hypertools-profile-encryption"


def derive_key(seed: bytes, context: str, salt: Optional[bytes] = None) -> bytes:
    """Derive a 32-byte key using HKDF-SHA256.

    Args:
        seed: Input key material.
        context: Context string for domain separation.
        salt: Optional salt; ``None`` keeps the derivation fully deterministic.

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


def fingerprint(key: bytes) -> str:
    """Short hex prefix of a public key, safe for logs."""
    return key.hex()[:16]


class DerivedKeySet(BaseModel):
    """Keys a store instance is opened with; held in memory only."""

    model_config = ConfigDict(frozen=True)

    identity_public_key: bytes
    discovery_public_key: bytes
    discovery_encryption_key: bytes

    @field_validator(
        "identity_public_key",
        "discovery_public_key",
        "discovery_encryption_key",
    )
    @classmethod
    def validate_length(cls, v: bytes) -> bytes:
        if len(v) != KEY_LENGTH:
            raise ValueError(f"Key must be {KEY_LENGTH} bytes, got {len(v)}")
        return v

    def __repr__(self) -> str:
        return (
            f"<DerivedKeySet identity={fingerprint(self.identity_public_key)} "
            f"discovery={fingerprint(self.discovery_public_key)}>"
        )

    __str__ = __repr__


def derive_namespace_keys(keys: DerivedKeySet, namespace_name: str) -> DerivedKeySet:
    """Derive the key set of a tool namespace.

    The namespace keeps the parent's identity key. Its discovery and
    encryption keys are derived from the parent's (secret) discovery
    encryption key, so only holders of the parent key set can compute them.

    Args:
        keys: Parent key set.
        namespace_name: Tool namespace name.

    Returns:
        Namespace key set.
    """
    if not namespace_name:
        raise ValueError("Namespace name cannot be empty")
    salt = keys.identity_public_key
    secret = keys.discovery_encryption_key
    return DerivedKeySet(
        identity_public_key=keys.identity_public_key,
        discovery_public_key=derive_key(
            secret, f"{CONTEXT_NAMESPACE_DISCOVERY}:{namespace_name}", salt,
        ),
        discovery_encryption_key=derive_key(
            secret, f"{CONTEXT_NAMESPACE_ENCRYPTION}:{namespace_name}", salt,
        ),
    )


def profile_encryption_key(root: RootIdentity, profile_key: bytes) -> bytes:
    """Encryption key for the profile core identified by ``profile_key``.

    Raises:
        IdentityUninitializedError: If the root identity has been cleared.
    """
    return derive_key(
        root.identity_secret(), CONTEXT_PROFILE_ENCRYPTION, salt=profile_key,
    )
