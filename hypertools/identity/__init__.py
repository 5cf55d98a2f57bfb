"""Identity & Device Trust — Recovery-phrase identity, device attestations
and the deterministic keys derived from them.

Security Note:
    Root and device secrets are held only by ``IdentitySession`` (or the
    ``RootIdentity``/``DeviceKeyPair`` objects it owns). Never log them.
"""

from .root import (
    RootIdentity,
    derive_root_identity,
    generate_recovery_phrase,
    get_database_keys,
    validate_recovery_phrase,
)
from .keys import DerivedKeySet, derive_namespace_keys, profile_encryption_key
from .attestation import (
    AttestationProof,
    DelegatedAttestation,
    DeviceKeyPair,
    RootAttestation,
    VerifiedDeviceBinding,
    attest_device,
    bootstrap,
    delegate,
    is_valid,
    proof_from_bytes,
    verify,
)
from .session import IdentityExport, IdentitySession

__all__ = [
    "RootIdentity",
    "derive_root_identity",
    "generate_recovery_phrase",
    "get_database_keys",
    "validate_recovery_phrase",
    "DerivedKeySet",
    "derive_namespace_keys",
    "profile_encryption_key",
    "AttestationProof",
    "DelegatedAttestation",
    "DeviceKeyPair",
    "RootAttestation",
    "VerifiedDeviceBinding",
    "attest_device",
    "bootstrap",
    "delegate",
    "is_valid",
    "proof_from_bytes",
    "verify",
    "IdentityExport",
    "IdentitySession",
]
