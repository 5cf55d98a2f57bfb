"""Credential Vault — Password-sealed storage of the recovery phrase.

Security Note (Threat Model):
    The vault protects the recovery phrase against theft of the disk.
    Once unsealed, the phrase and the keys derived from it live in process
    memory for the session; a memory dump of the process can expose them.
    The vault imposes no retry limit or lockout on password attempts.
"""

from .crypto import (
    UNSEAL_FAILED,
    VaultRecord,
    VaultUnsealFailure,
    seal,
    seal_async,
    unseal,
    unseal_async,
)
from .storage import VaultFile

__all__ = [
    "UNSEAL_FAILED",
    "VaultRecord",
    "VaultUnsealFailure",
    "VaultFile",
    "seal",
    "seal_async",
    "unseal",
    "unseal_async",
]
