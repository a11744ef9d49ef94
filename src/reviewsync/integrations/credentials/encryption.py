"""Credential encryption using Fernet symmetric encryption.

A single process-wide key encrypts OAuth token material before it reaches
storage. The key is loaded once at startup; a missing or malformed key is a
startup failure, and ciphertext that does not authenticate under the key is
a hard CryptoError.
"""

import base64
import binascii
from typing import Optional, Union

from cryptography.fernet import Fernet, InvalidToken

from reviewsync.integrations.errors import ConfigurationError, CryptoError


class CredentialEncryption:
    """Fernet encryption for credentials.

    Example:
        >>> key = Fernet.generate_key()
        >>> encryptor = CredentialEncryption(key)
        >>> encrypted = encryptor.encrypt("my_secret_token")
        >>> decrypted = encryptor.decrypt(encrypted)
        >>> assert decrypted == "my_secret_token"
    """

    def __init__(self, key: Union[bytes, str]) -> None:
        """Initialize encryption with a key.

        Args:
            key: Fernet key (url-safe base64 of 32 bytes) or 64 hex characters

        Raises:
            ConfigurationError: If the key is malformed
        """
        self._fernet = Fernet(load_encryption_key(key))

    @property
    def fernet(self) -> Fernet:
        return self._fernet

    def encrypt(self, plaintext: str) -> bytes:
        """Encrypt credential string to bytes.

        Args:
            plaintext: Credential to encrypt

        Returns:
            Encrypted credential as bytes
        """
        return self._fernet.encrypt(plaintext.encode())

    def decrypt(self, ciphertext: bytes) -> str:
        """Decrypt credential bytes to string.

        Args:
            ciphertext: Encrypted credential bytes

        Returns:
            Decrypted credential string

        Raises:
            CryptoError: If the ciphertext was not produced with this key or
                has been tampered with
        """
        try:
            return self._fernet.decrypt(ciphertext).decode()
        except (InvalidToken, TypeError, UnicodeDecodeError) as e:
            raise CryptoError("Credential could not be decrypted with the configured key") from e

    def decrypt_optional(self, ciphertext: Optional[bytes]) -> Optional[str]:
        if ciphertext is None:
            return None
        return self.decrypt(ciphertext)


def load_encryption_key(raw: Union[bytes, str, None]) -> bytes:
    """Validate and normalize an encryption key.

    Accepts a Fernet key as generated by generate_encryption_key(), or 64 hex
    characters holding 32 raw key bytes. Any other value fails fast.

    Args:
        raw: Key material from configuration

    Returns:
        Fernet key bytes

    Raises:
        ConfigurationError: If the key is absent or malformed
    """
    if raw is None or (isinstance(raw, (str, bytes)) and not raw.strip()):
        raise ConfigurationError("Encryption key is not set (REVIEWSYNC_ENCRYPTION_KEY)")

    key = raw.strip().encode() if isinstance(raw, str) else raw.strip()

    if len(key) == 64:
        try:
            return base64.urlsafe_b64encode(binascii.unhexlify(key))
        except (binascii.Error, ValueError):
            pass

    try:
        decoded = base64.urlsafe_b64decode(key)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError("Encryption key is not valid url-safe base64") from e
    if len(decoded) != 32:
        raise ConfigurationError(
            "Encryption key must be a Fernet key (32 bytes, url-safe base64) or 64 hex characters"
        )
    return key


def generate_encryption_key() -> bytes:
    """Generate a new Fernet encryption key.

    Run once at deployment, store in REVIEWSYNC_ENCRYPTION_KEY.

    Returns:
        32 url-safe base64-encoded bytes suitable for Fernet encryption
    """
    return Fernet.generate_key()
