"""Hypertools.

Identity & device trust core of a peer-replicated personal data store:
a recovery-phrase identity, password-sealed at rest, devices attested to it,
and the keys and per-tool partitions of the replicated store.
"""
from .version import __version__
from .config import ServiceConfig
from .exceptions import (
    AttestationVerificationError,
    DatabaseNotReadyError,
    DeviceUninitializedError,
    HypertoolsError,
    IdentityUninitializedError,
    InvalidRecoveryPhraseError,
    RegistryConflictError,
    RoomLinkError,
    SchemaConflictError,
    SchemaNotRegisteredError,
    VaultExistsError,
    VaultNotFoundError,
)
from .service import HypertoolsService

__all__ = [
    "__version__",
    "ServiceConfig",
    "HypertoolsService",
    "AttestationVerificationError",
    "DatabaseNotReadyError",
    "DeviceUninitializedError",
    "HypertoolsError",
    "IdentityUninitializedError",
    "InvalidRecoveryPhraseError",
    "RegistryConflictError",
    "RoomLinkError",
    "SchemaConflictError",
    "SchemaNotRegisteredError",
    "VaultExistsError",
    "VaultNotFoundError",
]
