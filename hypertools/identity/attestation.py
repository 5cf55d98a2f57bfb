"""
Device Trust Chain — Signed proofs binding device keys to a root identity.

Two kinds of attestation:
- ``RootAttestation``: signed by the identity key; needs the root secret.
- ``DelegatedAttestation``: signed by an already attested device; embeds
  its parent proof so every chain ends at a root attestation.

Signed payload (fixed size fields, no separators needed)::

    DOMAIN | kind(1) | identity_pk(32) | device_pk(32) | issued_at(8) | parent_digest(32)?

``parent_digest`` hashes the parent's payload and signature, so it covers
the whole chain above the link.
"""
import time
import hashlib
import logging
from typing import Annotated, Any, Collection, Literal, Optional, Union

import orjson
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    TypeAdapter,
    ValidationError,
)

from ..exceptions import AttestationVerificationError, DeviceUninitializedError
from .keys import fingerprint
from .root import RootIdentity

logger = logging.getLogger("hypertools.identity")

DOMAIN = b"hypertools/device-attestation/v1"
KIND_ROOT = b"\x01"
KIND_DELEGATED = b"\x02"
MAX_CHAIN_DEPTH = 16


def _from_hex(v: Any) -> Any:
    if isinstance(v, str):
        return bytes.fromhex(v)
    return v


HexBytes = Annotated[
    bytes,
    BeforeValidator(_from_hex),
    PlainSerializer(lambda v: v.hex(), return_type=str, when_used="json"),
]


def _now_ms() -> int:
    return int(time.time() * 1000)


class DeviceKeyPair:
    """Ed25519 keypair generated locally on a device.

    Never derived from the recovery phrase.
    """

    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key: Optional[Ed25519PrivateKey] = private_key
        self.public_key: bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @classmethod
    def generate(cls) -> "DeviceKeyPair":
        return cls(Ed25519PrivateKey.generate())

    def __repr__(self) -> str:
        return f"<DeviceKeyPair {fingerprint(self.public_key)}>"

    def sign(self, message: bytes) -> bytes:
        if self._private_key is None:
            raise DeviceUninitializedError("Device keypair has been cleared")
        return self._private_key.sign(message)

    def clear(self) -> None:
        self._private_key = None


# ---------------------------------------------------------------------------
# Proof structures
# ---------------------------------------------------------------------------

class RootAttestation(BaseModel):
    """Device binding issued directly by the root identity."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["root"] = "root"
    identity_public_key: HexBytes
    device_public_key: HexBytes
    issued_at: int
    signature: HexBytes

    @property
    def depth(self) -> int:
        return 0

    def payload(self) -> bytes:
        return (
            DOMAIN + KIND_ROOT + self.identity_public_key
            + self.device_public_key + self.issued_at.to_bytes(8, "big")
        )

    def digest(self) -> bytes:
        return hashlib.sha256(self.payload() + self.signature).digest()

    def chain(self) -> list["AttestationProof"]:
        """Links from the root attestation down to this one."""
        return [self]

    def to_bytes(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json"))


class DelegatedAttestation(BaseModel):
    """Device binding issued by a previously attested device."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["delegated"] = "delegated"
    parent: "AttestationProof"
    device_public_key: HexBytes
    issued_at: int
    signature: HexBytes

    @property
    def identity_public_key(self) -> bytes:
        return self.parent.identity_public_key

    @property
    def depth(self) -> int:
        return self.parent.depth + 1

    def payload(self) -> bytes:
        return (
            DOMAIN + KIND_DELEGATED + self.identity_public_key
            + self.device_public_key + self.issued_at.to_bytes(8, "big")
            + self.parent.digest()
        )

    def digest(self) -> bytes:
        return hashlib.sha256(self.payload() + self.signature).digest()

    def chain(self) -> list["AttestationProof"]:
        return self.parent.chain() + [self]

    def to_bytes(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json"))


AttestationProof = Annotated[
    Union[RootAttestation, DelegatedAttestation],
    Field(discriminator="kind"),
]

DelegatedAttestation.model_rebuild()

_proof_adapter: TypeAdapter = TypeAdapter(AttestationProof)


def proof_from_bytes(data: bytes) -> Union[RootAttestation, DelegatedAttestation]:
    """Parse a serialized proof.

    Raises:
        AttestationVerificationError: If the bytes are not a well-formed proof.
    """
    try:
        return _proof_adapter.validate_python(orjson.loads(data))
    except (orjson.JSONDecodeError, ValidationError) as err:
        raise AttestationVerificationError("Malformed attestation proof") from err


class VerifiedDeviceBinding(BaseModel):
    """Outcome of a successful ``verify``."""

    model_config = ConfigDict(frozen=True)

    identity_public_key: bytes
    device_public_key: bytes
    depth: int
    devices: tuple[bytes, ...]


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def attest_device(root: RootIdentity, device_public_key: bytes) -> RootAttestation:
    """Sign a root attestation for ``device_public_key``.

    Raises:
        IdentityUninitializedError: If the root identity has been cleared.
    """
    unsigned = RootAttestation(
        identity_public_key=root.identity_public_key,
        device_public_key=device_public_key,
        issued_at=_now_ms(),
        signature=b"",
    )
    return unsigned.model_copy(update={"signature": root.sign(unsigned.payload())})


def bootstrap(root: RootIdentity) -> tuple[DeviceKeyPair, RootAttestation]:
    """Generate a device keypair and bind it directly to the root identity."""
    device = DeviceKeyPair.generate()
    proof = attest_device(root, device.public_key)
    logger.info(
        "Device %s bound to identity %s",
        fingerprint(device.public_key), fingerprint(root.identity_public_key),
    )
    return device, proof


def delegate(
    bound_device: DeviceKeyPair,
    bound_proof: Union[RootAttestation, DelegatedAttestation],
    new_device_public_key: bytes,
) -> DelegatedAttestation:
    """Extend trust from an attested device to a new device key.

    Raises:
        AttestationVerificationError: If ``bound_proof`` does not attest
            ``bound_device`` or is itself invalid.
        DeviceUninitializedError: If ``bound_device`` has been cleared.
    """
    if bound_proof.device_public_key != bound_device.public_key:
        raise AttestationVerificationError(
            "Proof does not attest the signing device", depth=bound_proof.depth,
        )
    verify(bound_proof)
    if bound_proof.depth + 1 > MAX_CHAIN_DEPTH:
        raise AttestationVerificationError(
            f"Delegation chain limited to {MAX_CHAIN_DEPTH} links",
            depth=bound_proof.depth + 1,
        )
    unsigned = DelegatedAttestation(
        parent=bound_proof,
        device_public_key=new_device_public_key,
        issued_at=_now_ms(),
        signature=b"",
    )
    proof = unsigned.model_copy(
        update={"signature": bound_device.sign(unsigned.payload())}
    )
    logger.info(
        "Device %s delegated trust to %s",
        fingerprint(bound_device.public_key), fingerprint(new_device_public_key),
    )
    return proof


def _check_link(signer: bytes, link, depth: int) -> None:
    try:
        Ed25519PublicKey.from_public_bytes(signer).verify(link.signature, link.payload())
    except (InvalidSignature, ValueError) as err:
        raise AttestationVerificationError(
            f"Invalid signature at chain depth {depth}", depth=depth,
        ) from err


def verify(
    proof: Union[RootAttestation, DelegatedAttestation],
    identity_public_key: Optional[bytes] = None,
    revoked: Collection[bytes] = (),
) -> VerifiedDeviceBinding:
    """Walk a proof chain from its root attestation down to the device.

    Args:
        proof: Root or delegated attestation.
        identity_public_key: Expected identity; any identity if ``None``.
        revoked: Device public keys no longer trusted to appear in a chain.

    Returns:
        The verified binding.

    Raises:
        AttestationVerificationError: On any broken, foreign or revoked link.
    """
    if proof.depth > MAX_CHAIN_DEPTH:
        raise AttestationVerificationError(
            f"Delegation chain longer than {MAX_CHAIN_DEPTH} links", depth=proof.depth,
        )
    chain = proof.chain()
    anchor = chain[0]
    if not isinstance(anchor, RootAttestation):
        raise AttestationVerificationError("Chain does not start at a root attestation", depth=0)
    if identity_public_key is not None and anchor.identity_public_key != identity_public_key:
        raise AttestationVerificationError("Proof was issued by a foreign identity", depth=0)

    signer = anchor.identity_public_key
    for depth, link in enumerate(chain):
        _check_link(signer, link, depth)
        if link.device_public_key in revoked:
            raise AttestationVerificationError(
                f"Device {fingerprint(link.device_public_key)} is revoked", depth=depth,
            )
        signer = link.device_public_key

    return VerifiedDeviceBinding(
        identity_public_key=anchor.identity_public_key,
        device_public_key=proof.device_public_key,
        depth=proof.depth,
        devices=tuple(link.device_public_key for link in chain),
    )


def is_valid(
    proof: Union[RootAttestation, DelegatedAttestation],
    identity_public_key: Optional[bytes] = None,
) -> bool:
    """Boolean form of ``verify``."""
    try:
        verify(proof, identity_public_key)
    except AttestationVerificationError:
        return False
    return True
