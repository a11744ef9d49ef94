"""Credential encryption utilities."""

from reviewsync.integrations.credentials.encryption import (
    CredentialEncryption,
    generate_encryption_key,
    load_encryption_key,
)

__all__ = ["CredentialEncryption", "generate_encryption_key", "load_encryption_key"]
