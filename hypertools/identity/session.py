"""
IdentitySession — Per-process identity and device state.

State is one of three variants, replaced as a whole on each transition::

    Uninitialized --init_user--> Unlocked(root) --init_device--> Bound(root, device, proof)

The session is the only holder of root and device secrets; other components
receive public keys or a ``DerivedKeySet`` by value.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import DeviceUninitializedError, IdentityUninitializedError
from .attestation import (
    DelegatedAttestation,
    DeviceKeyPair,
    RootAttestation,
    bootstrap,
    delegate,
)
from .keys import DerivedKeySet, fingerprint, profile_encryption_key
from .root import (
    RootIdentity,
    derive_root_identity,
    generate_recovery_phrase,
    get_database_keys,
)

logger = logging.getLogger("hypertools.identity")


@dataclass(frozen=True)
class Uninitialized:
    pass


@dataclass(frozen=True)
class Unlocked:
    root: RootIdentity


@dataclass(frozen=True)
class Bound:
    root: RootIdentity
    device: DeviceKeyPair
    proof: Union[RootAttestation, DelegatedAttestation]
    device_name: str


IdentityState = Union[Uninitialized, Unlocked, Bound]


class UserInfo(BaseModel):
    """Result of ``init_user``."""

    model_config = ConfigDict(frozen=True)

    mnemonic: str
    identity_public_key: bytes
    profile_discovery_public_key: bytes


class DeviceInfo(BaseModel):
    """Result of ``init_device``."""

    model_config = ConfigDict(frozen=True)

    device_name: str
    device_public_key: bytes
    identity_public_key: bytes
    proof: Union[RootAttestation, DelegatedAttestation]


class IdentityExport(BaseModel):
    """Identity backup/display document."""

    model_config = ConfigDict(populate_by_name=True)

    mnemonic: Optional[str]
    device_name: Optional[str] = Field(alias="deviceName")
    identity_public_key: str = Field(alias="identityPublicKey")
    device_public_key: Optional[str] = Field(alias="devicePublicKey")


class IdentitySession:
    """Identity and device state of the running process."""

    def __init__(self):
        self._state: IdentityState = Uninitialized()

    @property
    def state(self) -> IdentityState:
        return self._state

    @property
    def is_unlocked(self) -> bool:
        return not isinstance(self._state, Uninitialized)

    @property
    def is_bound(self) -> bool:
        return isinstance(self._state, Bound)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    def _root(self) -> RootIdentity:
        if isinstance(self._state, Uninitialized):
            raise IdentityUninitializedError("User identity must be initialized first")
        return self._state.root

    def _bound(self) -> Bound:
        if not isinstance(self._state, Bound):
            raise DeviceUninitializedError("Device identity must be initialized first")
        return self._state

    @property
    def identity_public_key(self) -> bytes:
        return self._root().identity_public_key

    @property
    def device_public_key(self) -> bytes:
        return self._bound().device.public_key

    @property
    def device_name(self) -> str:
        return self._bound().device_name

    @property
    def proof(self) -> Union[RootAttestation, DelegatedAttestation]:
        return self._bound().proof

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def init_user(self, mnemonic: Optional[str] = None) -> UserInfo:
        """Load the identity of ``mnemonic``, or create a new one.

        Any previous state is cleared first.

        Raises:
            InvalidRecoveryPhraseError: If ``mnemonic`` is not a valid phrase.
        """
        phrase = mnemonic if mnemonic is not None else generate_recovery_phrase()
        root = derive_root_identity(phrase)
        self.clear()
        self._state = Unlocked(root)
        logger.info(
            "User identity %s: %s",
            "loaded" if mnemonic is not None else "created",
            fingerprint(root.identity_public_key),
        )
        return UserInfo(
            mnemonic=root.phrase,
            identity_public_key=root.identity_public_key,
            profile_discovery_public_key=root.profile_discovery_public_key,
        )

    def init_device(self, device_name: str) -> DeviceInfo:
        """Generate a fresh device keypair and bind it to the identity.

        Raises:
            IdentityUninitializedError: If ``init_user`` has not run.
        """
        root = self._root()
        if isinstance(self._state, Bound):
            self._state.device.clear()
        device, proof = bootstrap(root)
        self._state = Bound(root, device, proof, device_name)
        logger.info("Device initialized: %s", device_name)
        return DeviceInfo(
            device_name=device_name,
            device_public_key=device.public_key,
            identity_public_key=root.identity_public_key,
            proof=proof,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def attest_new_device(self, new_device_public_key: bytes) -> DelegatedAttestation:
        """Delegate trust from this device to ``new_device_public_key``.

        Raises:
            DeviceUninitializedError: If this device is not bound.
        """
        bound = self._bound()
        return delegate(bound.device, bound.proof, new_device_public_key)

    def get_database_keys(self) -> DerivedKeySet:
        return get_database_keys(self._root())

    def get_profile_encryption_key(self, profile_key: bytes) -> bytes:
        return profile_encryption_key(self._root(), profile_key)

    def export_identity(self) -> IdentityExport:
        """Identity backup document; contains the recovery phrase."""
        root = self._root()
        bound = self._state if isinstance(self._state, Bound) else None
        return IdentityExport(
            mnemonic=root.phrase,
            device_name=bound.device_name if bound else None,
            identity_public_key=root.identity_public_key.hex(),
            device_public_key=bound.device.public_key.hex() if bound else None,
        )

    def clear(self) -> None:
        """Drop all secret material and return to ``Uninitialized``."""
        state = self._state
        if isinstance(state, Bound):
            state.device.clear()
        if not isinstance(state, Uninitialized):
            state.root.clear()
        self._state = Uninitialized()
