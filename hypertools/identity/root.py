"""
Root Identity — Deterministic keys derived from the recovery phrase.

The recovery phrase is a BIP39 mnemonic. Its seed is expanded with HKDF into
two Ed25519 keypairs:
- identity key: signs device attestations, names the user,
- profile discovery key: locates the user's store; its secret also yields
  the discovery encryption key.

The same phrase yields byte-identical keys on every device.
"""
import logging
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from mnemonic import Mnemonic

from ..exceptions import IdentityUninitializedError, InvalidRecoveryPhraseError
from .keys import DerivedKeySet, derive_key, fingerprint

logger = logging.getLogger("hypertools.identity")

MNEMONIC_LANGUAGE = "english"
DEFAULT_STRENGTH = 256  # 24 words
MIN_STRENGTH = 128

CONTEXT_IDENTITY = "hypertools-identity"
CONTEXT_PROFILE_DISCOVERY = "hypertools-profile-discovery"
CONTEXT_DISCOVERY_ENCRYPTION = "hypertools-discovery-encryption"

_mnemonic = Mnemonic(MNEMONIC_LANGUAGE)


def _raw_public(key: Ed25519PrivateKey) -> bytes:
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _raw_private(key: Ed25519PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


# ---------------------------------------------------------------------------
# Recovery phrase
# ---------------------------------------------------------------------------

def generate_recovery_phrase(strength: int = DEFAULT_STRENGTH) -> str:
    """Generate a new BIP39 recovery phrase.

    Args:
        strength: Entropy in bits; 128 to 256 in steps of 32.

    Returns:
        Space separated mnemonic words.
    """
    if strength < MIN_STRENGTH:
        raise ValueError(f"Recovery phrase strength must be at least {MIN_STRENGTH} bits")
    return _mnemonic.generate(strength=strength)


def validate_recovery_phrase(phrase: str) -> str:
    """Normalize a phrase and verify its words and checksum.

    Returns:
        The phrase with single spaces and lower-case words.

    Raises:
        InvalidRecoveryPhraseError: If the phrase is not a valid mnemonic.
    """
    normalized = " ".join(phrase.lower().split())
    if not normalized or not _mnemonic.check(normalized):
        raise InvalidRecoveryPhraseError("Recovery phrase is not a valid mnemonic")
    return normalized


# ---------------------------------------------------------------------------
# Root identity
# ---------------------------------------------------------------------------

class RootIdentity:
    """Identity and profile discovery keypairs of one user.

    Holds secret material; use ``clear()`` once the session ends.
    """

    def __init__(
        self,
        identity_key: Ed25519PrivateKey,
        discovery_key: Ed25519PrivateKey,
        phrase: Optional[str] = None,
    ):
        self._identity_key: Optional[Ed25519PrivateKey] = identity_key
        self._discovery_key: Optional[Ed25519PrivateKey] = discovery_key
        self._phrase = phrase
        self.identity_public_key: bytes = _raw_public(identity_key)
        self.profile_discovery_public_key: bytes = _raw_public(discovery_key)

    @classmethod
    def from_seed(cls, seed: bytes, phrase: Optional[str] = None) -> "RootIdentity":
        """Build the identity from a BIP39 seed (no phrase required)."""
        identity_key = Ed25519PrivateKey.from_private_bytes(
            derive_key(seed, CONTEXT_IDENTITY)
        )
        discovery_key = Ed25519PrivateKey.from_private_bytes(
            derive_key(seed, CONTEXT_PROFILE_DISCOVERY)
        )
        return cls(identity_key, discovery_key, phrase=phrase)

    def __repr__(self) -> str:
        return f"<RootIdentity {fingerprint(self.identity_public_key)}>"

    @property
    def is_cleared(self) -> bool:
        return self._identity_key is None

    @property
    def phrase(self) -> Optional[str]:
        """Recovery phrase, if this identity was derived from one."""
        return self._phrase

    def _require(self) -> None:
        if self._identity_key is None or self._discovery_key is None:
            raise IdentityUninitializedError("User identity not initialized")

    def sign(self, message: bytes) -> bytes:
        """Sign with the identity key."""
        self._require()
        return self._identity_key.sign(message)

    def identity_secret(self) -> bytes:
        """Raw identity private key; input to further derivations only."""
        self._require()
        return _raw_private(self._identity_key)

    def profile_discovery_encryption_key(self) -> bytes:
        """Secret key encrypting the profile discovery core."""
        self._require()
        return derive_key(_raw_private(self._discovery_key), CONTEXT_DISCOVERY_ENCRYPTION)

    def clear(self) -> None:
        """Drop secret material from this object."""
        self._identity_key = None
        self._discovery_key = None
        self._phrase = None


def derive_root_identity(phrase: str) -> RootIdentity:
    """Derive the root identity of a recovery phrase.

    Raises:
        InvalidRecoveryPhraseError: If the phrase is not a valid mnemonic.
    """
    phrase = validate_recovery_phrase(phrase)
    root = RootIdentity.from_seed(Mnemonic.to_seed(phrase), phrase=phrase)
    logger.debug("Derived root identity %s", fingerprint(root.identity_public_key))
    return root


def get_database_keys(root: RootIdentity) -> DerivedKeySet:
    """Project the root identity onto the keys the store is opened with.

    Raises:
        IdentityUninitializedError: If the root identity has been cleared.
    """
    return DerivedKeySet(
        identity_public_key=root.identity_public_key,
        discovery_public_key=root.profile_discovery_public_key,
        discovery_encryption_key=root.profile_discovery_encryption_key(),
    )
