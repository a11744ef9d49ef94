"""OAuth 2.0 handshake manager for review platforms.

This module runs the authorization flow for every configured platform:
building the authorization URL, completing the callback (code exchange,
resource discovery, expiry computation, encryption and storage), and
refreshing access tokens ahead of a sync.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from reviewsync.core.timeutils import utcnow
from reviewsync.integrations.credentials.encryption import CredentialEncryption
from reviewsync.integrations.errors import (
    AuthExpiredError,
    BadRequestError,
    IntegrationError,
    NoResourceFoundError,
    ProviderAuthError,
    TokenExchangeFailedError,
    TransientError,
)
from reviewsync.integrations.http import HttpSettings, client_session
from reviewsync.integrations.models import CredentialStatus, IntegrationCredential, Platform
from reviewsync.integrations.oauth.providers.base import OAuthProvider
from reviewsync.integrations.oauth.state import OAuthStateCodec
from reviewsync.observability.logging import get_logger
from reviewsync.storage.base import CredentialStore

logger = get_logger(__name__)

DEFAULT_TOKEN_LIFETIME = timedelta(days=60)


class HandshakeResult(BaseModel):
    """Outcome of a completed handshake.

    Attributes:
        account_id: Account the credential was stored for
        platform: Connected platform
        resource_id: Connected page or location
        secondary_resource_id: Linked secondary resource, if any
        token_expiry: When the stored access token is considered stale
    """

    account_id: str
    platform: Platform
    resource_id: str
    secondary_resource_id: Optional[str] = None
    token_expiry: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "accountId": self.account_id,
            "platform": self.platform.value,
            "resourceId": self.resource_id,
            "secondaryResourceId": self.secondary_resource_id,
            "tokenExpiry": self.token_expiry.isoformat(),
        }


class OAuthManager:
    """Manages OAuth handshakes for review platforms.

    Every failure raises a distinct IntegrationError subclass so callers can
    tell "retry authorization" (TokenExchangeFailedError) from "create a page
    or location first" (NoResourceFoundError).

    Example:
        >>> manager = OAuthManager(
        ...     providers={Platform.META: MetaOAuthProvider(meta_oauth_config(...))},
        ...     encryptor=CredentialEncryption(key),
        ...     credential_store=store,
        ...     state_codec=OAuthStateCodec(encryptor),
        ... )
        >>> url = await manager.initiate_flow(Platform.META, "acct-1")
        >>> result = await manager.complete_flow(Platform.META, code=code, state=state)
    """

    def __init__(
        self,
        providers: dict[Platform, OAuthProvider],
        encryptor: CredentialEncryption,
        credential_store: CredentialStore,
        state_codec: OAuthStateCodec,
        default_token_lifetime: timedelta = DEFAULT_TOKEN_LIFETIME,
        http_client: Optional[httpx.AsyncClient] = None,
        http_settings: Optional[HttpSettings] = None,
    ) -> None:
        """Initialize OAuth manager.

        Args:
            providers: Configured providers keyed by platform
            encryptor: Credential cipher
            credential_store: Where completed credentials are written
            state_codec: Encodes and verifies the OAuth state parameter
            default_token_lifetime: Expiry used when the provider gives none
            http_client: Optional shared HTTP client
            http_settings: Timeout and retry settings for provider calls
        """
        self._providers = providers
        self._encryptor = encryptor
        self._store = credential_store
        self._state_codec = state_codec
        self._default_token_lifetime = default_token_lifetime
        self._http_client = http_client
        self._http_settings = http_settings or HttpSettings()

    @property
    def platforms(self) -> list[Platform]:
        """Platforms with a configured provider."""
        return list(self._providers)

    def get_provider(self, platform: Platform) -> OAuthProvider:
        """Return the provider for a platform.

        Raises:
            BadRequestError: If the platform is not configured
        """
        provider = self._providers.get(platform)
        if provider is None:
            raise BadRequestError(
                f"OAuth is not configured for {platform.value}", reason="not_configured"
            )
        return provider

    def supports_refresh(self, platform: Platform) -> bool:
        provider = self._providers.get(platform)
        return bool(provider and provider.supports_refresh)

    async def initiate_flow(self, platform: Platform, account_id: str) -> str:
        """Build the authorization URL for an account.

        Args:
            platform: Platform to connect
            account_id: Account the resulting credential will belong to

        Returns:
            Authorization URL to redirect the user to

        Raises:
            BadRequestError: If the account id is empty or the platform is not configured
        """
        if not account_id or not account_id.strip():
            raise BadRequestError("account_id is required", reason="missing_params")
        provider = self.get_provider(platform)
        url = provider.authorization_url(self._state_codec.encode(account_id))
        logger.info("oauth_flow_initiated", platform=platform.value, account_id=account_id)
        return url

    async def complete_flow(
        self,
        platform: Platform,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> HandshakeResult:
        """Complete a handshake from the provider's callback parameters.

        Args:
            platform: Platform the callback belongs to
            code: Authorization code
            state: State issued by initiate_flow
            error: Provider error parameter, if the user denied consent
            error_description: Provider's description of the error

        Returns:
            The stored credential's identifiers and expiry

        Raises:
            ProviderAuthError: If the provider reported an error
            BadRequestError: If code or state is missing or the state is invalid
            TokenExchangeFailedError: If the code cannot be exchanged
            NoResourceFoundError: If the user has no page or location to connect
        """
        provider = self.get_provider(platform)

        # A provider error arrives without a code, so it is reported first
        if error:
            logger.warning(
                "oauth_provider_error",
                platform=platform.value,
                error=error,
                error_description=error_description,
            )
            raise ProviderAuthError(error, error_description)

        if not code or not state:
            logger.warning(
                "oauth_callback_invalid",
                platform=platform.value,
                has_code=bool(code),
                has_state=bool(state),
            )
            raise BadRequestError("Missing code or state", reason="missing_params")

        try:
            account_id = self._state_codec.decode(state)
        except BadRequestError as e:
            logger.warning("oauth_state_rejected", platform=platform.value, reason=e.reason)
            raise

        async with client_session(self._http_client, self._http_settings) as client:
            try:
                tokens = await provider.exchange_code(client, code)
            except (TokenExchangeFailedError, TransientError) as e:
                logger.warning(
                    "oauth_token_exchange_failed",
                    platform=platform.value,
                    account_id=account_id,
                    error=e.message,
                )
                if isinstance(e, TransientError):
                    raise TokenExchangeFailedError(e.message) from e
                raise

            try:
                resources = await provider.resolve_resources(client, tokens)
            except NoResourceFoundError as e:
                logger.warning(
                    "oauth_no_resource_found",
                    platform=platform.value,
                    account_id=account_id,
                    reason=e.reason,
                )
                raise
            except (TokenExchangeFailedError, TransientError) as e:
                logger.warning(
                    "oauth_resource_resolution_failed",
                    platform=platform.value,
                    account_id=account_id,
                    error=e.message,
                )
                if isinstance(e, TransientError):
                    raise TokenExchangeFailedError(e.message) from e
                raise

        token_expiry = self._compute_expiry(tokens.expires_in)
        access_token = resources.access_token or tokens.access_token
        refresh_token = resources.refresh_token or tokens.refresh_token

        existing = await self._store.get(account_id, platform)
        last_synced_at = None
        if existing is not None and existing.resource_id == resources.resource_id:
            last_synced_at = existing.last_synced_at

        credential = IntegrationCredential(
            account_id=account_id,
            platform=platform,
            resource_id=resources.resource_id,
            secondary_resource_id=resources.secondary_resource_id,
            access_token_encrypted=self._encryptor.encrypt(access_token),
            refresh_token_encrypted=(
                self._encryptor.encrypt(refresh_token) if refresh_token else None
            ),
            token_expiry=token_expiry,
            last_synced_at=last_synced_at,
            status=CredentialStatus.ACTIVE,
        )
        await self._store.upsert(credential)

        logger.info(
            "oauth_handshake_completed",
            platform=platform.value,
            account_id=account_id,
            resource_id=resources.resource_id,
            secondary_resource_id=resources.secondary_resource_id,
            token_expiry=token_expiry.isoformat(),
        )

        return HandshakeResult(
            account_id=account_id,
            platform=platform,
            resource_id=resources.resource_id,
            secondary_resource_id=resources.secondary_resource_id,
            token_expiry=token_expiry,
        )

    async def refresh_credential(self, credential: IntegrationCredential) -> IntegrationCredential:
        """Refresh a credential's access token and store the result.

        Platforms without a refresh grant return the credential unchanged.

        Args:
            credential: Stored credential nearing expiry

        Returns:
            The credential as stored after the refresh

        Raises:
            AuthExpiredError: If there is no refresh token or the provider rejects it
            TransientError: If the provider could not be reached
            CryptoError: If the stored refresh token cannot be decrypted
        """
        provider = self._providers.get(credential.platform)
        if provider is None or not provider.supports_refresh:
            return credential
        if credential.refresh_token_encrypted is None:
            raise AuthExpiredError("Access token expired and no refresh token is stored")

        refresh_token = self._encryptor.decrypt(credential.refresh_token_encrypted)
        async with client_session(self._http_client, self._http_settings) as client:
            tokens = await provider.refresh(client, refresh_token)

        refreshed = credential.model_copy(
            update={
                "access_token_encrypted": self._encryptor.encrypt(tokens.access_token),
                "refresh_token_encrypted": (
                    self._encryptor.encrypt(tokens.refresh_token)
                    if tokens.refresh_token
                    else credential.refresh_token_encrypted
                ),
                "token_expiry": self._compute_expiry(tokens.expires_in),
                "status": CredentialStatus.ACTIVE,
            }
        )
        await self._store.upsert(refreshed)
        logger.info(
            "oauth_token_refreshed",
            platform=credential.platform.value,
            account_id=credential.account_id,
            token_expiry=refreshed.token_expiry.isoformat(),
        )
        return refreshed

    def _compute_expiry(self, expires_in: Optional[int]) -> datetime:
        if expires_in and expires_in > 0:
            return utcnow() + timedelta(seconds=expires_in)
        return utcnow() + self._default_token_lifetime


def error_reason(error: IntegrationError) -> str:
    """Map a handshake error to the short reason token used in redirects."""
    if isinstance(error, ProviderAuthError):
        return error.provider_error
    if isinstance(error, (BadRequestError, NoResourceFoundError)):
        return error.reason
    return error.code
