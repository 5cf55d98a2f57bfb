"""
Tests for the device trust chain: bootstrap, delegate and verify.
"""
import pytest

from hypertools.exceptions import AttestationVerificationError, DeviceUninitializedError
from hypertools.identity import (
    DelegatedAttestation,
    DeviceKeyPair,
    RootAttestation,
    attest_device,
    bootstrap,
    delegate,
    derive_root_identity,
    generate_recovery_phrase,
    is_valid,
    proof_from_bytes,
    verify,
)


@pytest.fixture(scope="module")
def root():
    return derive_root_identity(generate_recovery_phrase())


@pytest.fixture(scope="module")
def other_root():
    return derive_root_identity(generate_recovery_phrase())


@pytest.fixture
def chain(root):
    """root -> device A -> device B -> device C."""
    a, proof_a = bootstrap(root)
    b = DeviceKeyPair.generate()
    proof_b = delegate(a, proof_a, b.public_key)
    c = DeviceKeyPair.generate()
    proof_c = delegate(b, proof_b, c.public_key)
    return {"a": (a, proof_a), "b": (b, proof_b), "c": (c, proof_c)}


class TestBootstrap:
    """Tests for root attestations."""

    def test_bootstrap_verifies(self, root):
        """Test a bootstrapped device verifies against its identity."""
        device, proof = bootstrap(root)
        assert isinstance(proof, RootAttestation)
        binding = verify(proof, root.identity_public_key)
        assert binding.identity_public_key == root.identity_public_key
        assert binding.device_public_key == device.public_key
        assert binding.depth == 0

    def test_fresh_keypair_each_time(self, root):
        """Test every bootstrap generates a new device keypair."""
        a, _ = bootstrap(root)
        b, _ = bootstrap(root)
        assert a.public_key != b.public_key

    def test_foreign_identity_rejected(self, root, other_root):
        """Test a proof from another identity fails verification."""
        _, proof = bootstrap(other_root)
        with pytest.raises(AttestationVerificationError):
            verify(proof, root.identity_public_key)
        assert not is_valid(proof, root.identity_public_key)
        assert is_valid(proof, other_root.identity_public_key)

    def test_forged_identity_field_rejected(self, root, other_root):
        """Test a proof signed by another identity but claiming ours."""
        _, proof = bootstrap(other_root)
        forged = proof.model_copy(update={"identity_public_key": root.identity_public_key})
        assert not is_valid(forged, root.identity_public_key)

    def test_tampered_device_key_rejected(self, root):
        """Test swapping the attested device key breaks the signature."""
        _, proof = bootstrap(root)
        other = DeviceKeyPair.generate()
        tampered = proof.model_copy(update={"device_public_key": other.public_key})
        assert not is_valid(tampered)

    def test_tampered_signature_rejected(self, root):
        """Test a flipped signature byte fails verification."""
        _, proof = bootstrap(root)
        sig = bytearray(proof.signature)
        sig[0] ^= 0xFF
        assert not is_valid(proof.model_copy(update={"signature": bytes(sig)}))

    def test_tampered_timestamp_rejected(self, root):
        """Test changing issued_at breaks the signature."""
        _, proof = bootstrap(root)
        assert not is_valid(proof.model_copy(update={"issued_at": proof.issued_at + 1}))


class TestDelegation:
    """Tests for delegated chains."""

    def test_chain_of_two_verifies(self, root, chain):
        """Test a delegated proof verifies with depth one."""
        b, proof_b = chain["b"]
        a, _ = chain["a"]
        binding = verify(proof_b, root.identity_public_key)
        assert isinstance(proof_b, DelegatedAttestation)
        assert binding.depth == 1
        assert binding.device_public_key == b.public_key
        assert binding.devices == (a.public_key, b.public_key)

    def test_chain_of_three_verifies(self, root, chain):
        """Test a two-hop delegation verifies back to the root."""
        _, proof_c = chain["c"]
        assert verify(proof_c, root.identity_public_key).depth == 2
        assert proof_c.identity_public_key == root.identity_public_key

    def test_delegated_chain_foreign_identity(self, other_root, chain):
        """Test a delegated chain fails against another identity."""
        _, proof_b = chain["b"]
        assert not is_valid(proof_b, other_root.identity_public_key)

    def test_substituted_parent_rejected(self, root, chain):
        """Test swapping in another valid root proof for the same device."""
        a, _ = chain["a"]
        _, proof_b = chain["b"]
        unsigned = RootAttestation(
            identity_public_key=root.identity_public_key,
            device_public_key=a.public_key,
            issued_at=proof_b.parent.issued_at + 1,
            signature=b"",
        )
        replacement = unsigned.model_copy(update={"signature": root.sign(unsigned.payload())})
        assert is_valid(replacement, root.identity_public_key)
        substituted = proof_b.model_copy(update={"parent": replacement})
        with pytest.raises(AttestationVerificationError):
            verify(substituted, root.identity_public_key)

    def test_truncated_chain_rejected(self, root, chain):
        """Test dropping the middle link of a three-link chain."""
        _, proof_a = chain["a"]
        _, proof_c = chain["c"]
        truncated = proof_c.model_copy(update={"parent": proof_a})
        with pytest.raises(AttestationVerificationError) as err:
            verify(truncated, root.identity_public_key)
        assert err.value.depth == 1

    def test_parent_from_foreign_identity_rejected(self, root, other_root, chain):
        """Test a parent re-issued by another identity breaks the chain."""
        _, proof_b = chain["b"]
        a, _ = chain["a"]
        foreign_parent = attest_device(other_root, a.public_key)
        assert not is_valid(proof_b.model_copy(update={"parent": foreign_parent}))

    def test_unattested_signer_rejected(self, root, chain):
        """Test a link signed by a device that is not the parent's device."""
        _, proof_a = chain["a"]
        rogue = DeviceKeyPair.generate()
        victim = DeviceKeyPair.generate()
        forged_parent = proof_a.model_copy(update={"device_public_key": rogue.public_key})
        with pytest.raises(AttestationVerificationError):
            delegate(rogue, proof_a, victim.public_key)
        with pytest.raises(AttestationVerificationError):
            delegate(rogue, forged_parent, victim.public_key)

    def test_delegate_with_another_devices_proof(self, chain):
        """Test delegating with a proof issued to a different device raises."""
        _, proof_a = chain["a"]
        b, _ = chain["b"]
        with pytest.raises(AttestationVerificationError) as err:
            delegate(b, proof_a, DeviceKeyPair.generate().public_key)
        assert err.value.depth == 0

    def test_revoked_device_rejected(self, root, chain):
        """Test a revoked device anywhere in the chain fails verification."""
        a, _ = chain["a"]
        _, proof_c = chain["c"]
        with pytest.raises(AttestationVerificationError):
            verify(proof_c, root.identity_public_key, revoked={a.public_key})

    def test_cleared_device_cannot_delegate(self, root):
        """Test a cleared device keypair cannot sign a delegation."""
        device, proof = bootstrap(root)
        device.clear()
        with pytest.raises(DeviceUninitializedError):
            delegate(device, proof, DeviceKeyPair.generate().public_key)


class TestSerialization:
    """Tests for proof bytes."""

    def test_root_proof_bytes(self, root):
        """Test a root proof survives serialization and still verifies."""
        _, proof = bootstrap(root)
        restored = proof_from_bytes(proof.to_bytes())
        assert restored == proof
        assert is_valid(restored, root.identity_public_key)

    def test_delegated_proof_bytes(self, root, chain):
        """Test a delegated chain survives serialization with its parents."""
        _, proof_c = chain["c"]
        restored = proof_from_bytes(proof_c.to_bytes())
        assert isinstance(restored, DelegatedAttestation)
        assert isinstance(restored.parent.parent, RootAttestation)
        assert verify(restored, root.identity_public_key).depth == 2

    def test_malformed_bytes(self):
        """Test malformed proof bytes raise a verification error."""
        with pytest.raises(AttestationVerificationError):
            proof_from_bytes(b"not json")
        with pytest.raises(AttestationVerificationError):
            proof_from_bytes(b'{"kind": "unknown"}')
