"""
Tests for the root identity, key derivation and IdentitySession.
"""
import pytest

from hypertools.exceptions import (
    DeviceUninitializedError,
    IdentityUninitializedError,
    InvalidRecoveryPhraseError,
)
from hypertools.identity import (
    DerivedKeySet,
    IdentitySession,
    derive_namespace_keys,
    derive_root_identity,
    generate_recovery_phrase,
    get_database_keys,
    is_valid,
    profile_encryption_key,
    validate_recovery_phrase,
)
from hypertools.identity.session import Bound, Uninitialized, Unlocked


class TestRecoveryPhrase:
    """Tests for phrase generation and validation."""

    def test_generate_default_is_24_words(self):
        """Test the default phrase has 24 valid words."""
        phrase = generate_recovery_phrase()
        assert len(phrase.split()) == 24
        assert validate_recovery_phrase(phrase) == phrase

    def test_generate_128_bits(self):
        """Test 128 bits of entropy yield 12 words."""
        assert len(generate_recovery_phrase(128).split()) == 12

    def test_generate_rejects_weak_strength(self):
        """Test strengths below 128 bits are refused."""
        with pytest.raises(ValueError):
            generate_recovery_phrase(96)

    def test_phrases_are_random(self):
        """Test two generated phrases differ."""
        assert generate_recovery_phrase() != generate_recovery_phrase()

    def test_normalizes_whitespace_and_case(self, phrase):
        """Test validation lowercases and collapses whitespace."""
        messy = "  " + phrase.upper().replace(" ", "   ") + "\n"
        assert validate_recovery_phrase(messy) == phrase

    def test_bad_checksum(self, phrase):
        """Test a phrase with a wrong checksum word is rejected."""
        bad = phrase.rsplit(" ", 1)[0] + " abandon"
        with pytest.raises(InvalidRecoveryPhraseError):
            validate_recovery_phrase(bad)

    def test_unknown_word(self):
        """Test a phrase of non-wordlist words is rejected."""
        with pytest.raises(InvalidRecoveryPhraseError):
            derive_root_identity("not a real recovery phrase at all")


class TestRootIdentity:
    """Tests for deterministic root identity derivation."""

    def test_same_phrase_same_keys(self, phrase):
        """Test derivation is byte-identical across calls."""
        a = derive_root_identity(phrase)
        b = derive_root_identity(phrase)
        assert a.identity_public_key == b.identity_public_key
        assert a.profile_discovery_public_key == b.profile_discovery_public_key
        assert a.identity_secret() == b.identity_secret()
        assert get_database_keys(a) == get_database_keys(b)

    def test_different_phrases_different_keys(self, phrase):
        """Test distinct phrases derive distinct identities."""
        a = derive_root_identity(phrase)
        b = derive_root_identity(generate_recovery_phrase())
        assert a.identity_public_key != b.identity_public_key

    def test_identity_and_discovery_keys_differ(self, phrase):
        """Test the identity and discovery keys are separate."""
        root = derive_root_identity(phrase)
        assert root.identity_public_key != root.profile_discovery_public_key
        assert len(root.identity_public_key) == 32

    def test_database_keys(self, phrase):
        """Test the database key set projects the root identity."""
        root = derive_root_identity(phrase)
        keys = get_database_keys(root)
        assert keys.identity_public_key == root.identity_public_key
        assert keys.discovery_public_key == root.profile_discovery_public_key
        assert len(keys.discovery_encryption_key) == 32
        assert keys.discovery_encryption_key not in (
            keys.identity_public_key, keys.discovery_public_key,
        )

    def test_repr_hides_secret(self, phrase):
        """Test the key set repr never shows the encryption key."""
        keys = get_database_keys(derive_root_identity(phrase))
        assert keys.discovery_encryption_key.hex() not in repr(keys)
        assert keys.discovery_encryption_key.hex() not in str(keys)

    def test_cleared_identity_raises(self, phrase):
        """Test a cleared identity refuses secret operations."""
        root = derive_root_identity(phrase)
        root.clear()
        assert root.is_cleared
        assert root.phrase is None
        with pytest.raises(IdentityUninitializedError):
            get_database_keys(root)
        with pytest.raises(IdentityUninitializedError):
            root.sign(b"message")


class TestKeyDerivation:
    """Tests for namespace and profile keys."""

    def test_namespace_keys_deterministic(self, phrase):
        """Test namespace keys are stable for a name."""
        keys = get_database_keys(derive_root_identity(phrase))
        assert derive_namespace_keys(keys, "ssh") == derive_namespace_keys(keys, "ssh")

    def test_namespace_keys_scoped(self, phrase):
        """Test each namespace gets its own discovery and encryption keys."""
        keys = get_database_keys(derive_root_identity(phrase))
        ssh = derive_namespace_keys(keys, "ssh")
        files = derive_namespace_keys(keys, "files")
        assert ssh.identity_public_key == keys.identity_public_key
        assert ssh.discovery_public_key != keys.discovery_public_key
        assert ssh.discovery_public_key != files.discovery_public_key
        assert ssh.discovery_encryption_key != files.discovery_encryption_key

    def test_namespace_keys_depend_on_parent_secret(self, phrase):
        """Test namespace keys change with the parent encryption key."""
        keys = get_database_keys(derive_root_identity(phrase))
        forged = DerivedKeySet(
            identity_public_key=keys.identity_public_key,
            discovery_public_key=keys.discovery_public_key,
            discovery_encryption_key=bytes(32),
        )
        assert derive_namespace_keys(forged, "ssh") != derive_namespace_keys(keys, "ssh")

    def test_namespace_name_required(self, phrase):
        """Test an empty namespace name is refused."""
        keys = get_database_keys(derive_root_identity(phrase))
        with pytest.raises(ValueError):
            derive_namespace_keys(keys, "")

    def test_key_set_rejects_wrong_length(self):
        """Test key sets require 32-byte keys."""
        with pytest.raises(ValueError):
            DerivedKeySet(
                identity_public_key=bytes(31),
                discovery_public_key=bytes(32),
                discovery_encryption_key=bytes(32),
            )

    def test_profile_encryption_key(self, phrase):
        """Test profile keys are per profile and deterministic."""
        root = derive_root_identity(phrase)
        a = profile_encryption_key(root, b"\x01" * 32)
        b = profile_encryption_key(root, b"\x02" * 32)
        assert len(a) == 32
        assert a != b
        assert a == profile_encryption_key(derive_root_identity(phrase), b"\x01" * 32)


class TestIdentitySession:
    """Tests for the session state machine."""

    def test_starts_uninitialized(self):
        """Test a new session refuses identity operations."""
        session = IdentitySession()
        assert isinstance(session.state, Uninitialized)
        assert not session.is_unlocked
        with pytest.raises(IdentityUninitializedError):
            session.get_database_keys()
        with pytest.raises(IdentityUninitializedError):
            session.export_identity()

    def test_init_device_requires_user(self):
        """Test binding a device before loading a user raises."""
        with pytest.raises(IdentityUninitializedError):
            IdentitySession().init_device("laptop")

    def test_attest_requires_device(self, phrase):
        """Test delegation requires a bound device."""
        session = IdentitySession()
        session.init_user(phrase)
        assert isinstance(session.state, Unlocked)
        with pytest.raises(DeviceUninitializedError):
            session.attest_new_device(bytes(32))

    def test_init_user_new_identity(self):
        """Test init_user without a phrase creates one."""
        session = IdentitySession()
        user = session.init_user()
        assert len(user.mnemonic.split()) == 24
        assert user.identity_public_key == session.identity_public_key

    def test_init_user_existing(self, phrase):
        """Test init_user loads the identity of a given phrase."""
        session = IdentitySession()
        user = session.init_user(phrase)
        assert user.mnemonic == phrase
        assert user.identity_public_key == derive_root_identity(phrase).identity_public_key

    def test_init_device_binds(self, phrase):
        """Test init_device binds a device with a valid proof."""
        session = IdentitySession()
        session.init_user(phrase)
        device = session.init_device("laptop")
        assert isinstance(session.state, Bound)
        assert session.is_bound
        assert device.device_name == "laptop"
        assert is_valid(device.proof, session.identity_public_key)

    def test_same_name_different_keys(self, phrase):
        """Test two init_device calls never reuse a keypair."""
        session = IdentitySession()
        session.init_user(phrase)
        first = session.init_device("laptop")
        second = session.init_device("laptop")
        assert first.device_public_key != second.device_public_key

    def test_device_key_not_derived_from_phrase(self, phrase):
        """Test two sessions on one phrase get different device keys."""
        a, b = IdentitySession(), IdentitySession()
        a.init_user(phrase)
        b.init_user(phrase)
        assert a.init_device("x").device_public_key != b.init_device("x").device_public_key

    def test_export_identity(self, phrase):
        """Test the export document before and after binding."""
        session = IdentitySession()
        session.init_user(phrase)
        unbound = session.export_identity()
        assert unbound.device_public_key is None
        session.init_device("laptop")
        exported = session.export_identity().model_dump(by_alias=True)
        assert exported == {
            "mnemonic": phrase,
            "deviceName": "laptop",
            "identityPublicKey": session.identity_public_key.hex(),
            "devicePublicKey": session.device_public_key.hex(),
        }

    def test_clear(self, phrase):
        """Test clear drops the root identity and resets the state."""
        session = IdentitySession()
        session.init_user(phrase)
        session.init_device("laptop")
        root = session.state.root
        session.clear()
        assert isinstance(session.state, Uninitialized)
        assert root.is_cleared
        with pytest.raises(IdentityUninitializedError):
            session.get_database_keys()
