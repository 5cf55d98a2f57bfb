"""
Hypertools error taxonomy.

Failures fall in three groups:
- state-ordering errors (identity or device used before it is ready),
- security failures (broken attestation chains, invalid phrases),
- registry errors raised by the schema facade.

A wrong vault password is not an exception: ``unseal`` returns the
``UNSEAL_FAILED`` sentinel instead (see ``hypertools.vault.crypto``).
"""


class HypertoolsError(Exception):
    """Base class for all hypertools errors."""


class IdentityUninitializedError(HypertoolsError, RuntimeError):
    """Root identity accessed before a recovery phrase was derived."""


class DeviceUninitializedError(HypertoolsError, RuntimeError):
    """Device keys or proof accessed before the device was bound."""


class InvalidRecoveryPhraseError(HypertoolsError, ValueError):
    """Recovery phrase has unknown words or a bad checksum."""


class AttestationVerificationError(HypertoolsError, ValueError):
    """A device attestation chain is broken, truncated or foreign."""

    def __init__(self, message: str, depth: int | None = None):
        super().__init__(message)
        self.depth = depth


class VaultNotFoundError(HypertoolsError, FileNotFoundError):
    """No vault file exists at the configured path."""


class VaultExistsError(HypertoolsError, FileExistsError):
    """An identity vault already exists and replacing it was not requested."""


class RoomLinkError(HypertoolsError, ValueError):
    """Room link is not valid z-base-32 or has the wrong length."""


class DatabaseNotReadyError(HypertoolsError, RuntimeError):
    """Database facade used before ``open`` or after ``close``."""


class SchemaNotRegisteredError(HypertoolsError, KeyError):
    """Row operation on a schema name that was never ensured."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Schema {self.name} not found. Call ensure_schema first."


class RegistryConflictError(HypertoolsError, RuntimeError):
    """Concurrent registration could not be reconciled with the registry."""


class SchemaConflictError(RegistryConflictError):
    """Two devices registered the same schema name with different bodies."""

    def __init__(self, name: str, schema_ids: list[str]):
        super().__init__(
            f"Schema {name!r} registered with conflicting definitions: "
            f"{schema_ids}"
        )
        self.name = name
        self.schema_ids = schema_ids
