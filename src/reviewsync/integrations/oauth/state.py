"""OAuth state encoding.

The state parameter binds a callback to the account that initiated the
authorization. Unsigned mode passes the account id through verbatim. Signed
mode wraps it in a Fernet token that expires after a TTL, so a callback can
only complete a handshake that this service started recently.
"""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from reviewsync.integrations.credentials.encryption import CredentialEncryption
from reviewsync.integrations.errors import BadRequestError

_STATE_PREFIX = "oauth-state:"


class OAuthStateCodec:
    """Encode and verify OAuth state values.

    Example:
        >>> codec = OAuthStateCodec(encryptor, ttl_seconds=600)
        >>> state = codec.encode("acct-1")
        >>> codec.decode(state)
        'acct-1'
    """

    def __init__(
        self,
        encryptor: Optional[CredentialEncryption] = None,
        ttl_seconds: int = 600,
        signed: bool = True,
    ) -> None:
        if signed and encryptor is None:
            raise ValueError("Signed OAuth state requires an encryptor")
        self._fernet: Optional[Fernet] = (
            encryptor.fernet if signed and encryptor is not None else None
        )
        self._ttl_seconds = ttl_seconds

    @property
    def signed(self) -> bool:
        return self._fernet is not None

    def encode(self, account_id: str) -> str:
        """Build the state value for an authorization URL."""
        if self._fernet is None:
            return account_id
        return self._fernet.encrypt(f"{_STATE_PREFIX}{account_id}".encode()).decode()

    def decode(self, state: str) -> str:
        """Recover the account id from a callback state.

        Raises:
            BadRequestError: If the state is empty, tampered with, or expired
        """
        if not state:
            raise BadRequestError("Missing OAuth state", reason="missing_params")
        if self._fernet is None:
            return state

        try:
            payload = self._fernet.decrypt(state.encode(), ttl=self._ttl_seconds).decode()
        except (InvalidToken, UnicodeDecodeError) as e:
            raise BadRequestError("Invalid or expired OAuth state", reason="invalid_state") from e

        if not payload.startswith(_STATE_PREFIX) or len(payload) == len(_STATE_PREFIX):
            raise BadRequestError("Invalid OAuth state payload", reason="invalid_state")
        return payload[len(_STATE_PREFIX):]
