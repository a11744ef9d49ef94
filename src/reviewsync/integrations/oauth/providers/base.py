"""Base class and shared models for OAuth providers.

A provider knows how to build its authorization URL, exchange a code for
tokens, discover the resource (page, location) the tokens grant access to,
and optionally refresh an access token. The handshake manager owns the
control flow; providers only speak their platform's dialect.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, Field

from reviewsync.integrations.errors import TokenExchangeFailedError
from reviewsync.integrations.http import HttpSettings, parse_json
from reviewsync.integrations.models import Platform


class OAuthConfig(BaseModel):
    """OAuth configuration for a provider.

    Attributes:
        platform: Platform the configuration belongs to
        client_id: OAuth client ID from provider
        client_secret: OAuth client secret from provider
        authorize_url: Provider's authorization endpoint URL
        token_url: Provider's token exchange endpoint URL
        scopes: List of OAuth scopes to request
        redirect_uri: Callback URL for OAuth redirect
        scope_separator: Separator used to join scopes in the URL
    """

    platform: Platform
    client_id: str
    client_secret: str = Field(repr=False)
    authorize_url: str
    token_url: str
    scopes: list[str] = Field(default_factory=list)
    redirect_uri: str
    scope_separator: str = " "


class OAuthTokens(BaseModel):
    """OAuth tokens from provider.

    Attributes:
        access_token: OAuth access token
        refresh_token: Optional refresh token
        token_type: Token type (usually "Bearer")
        expires_in: Token lifetime in seconds (optional)
    """

    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    token_type: str = "Bearer"
    expires_in: Optional[int] = None


class ResolvedResources(BaseModel):
    """Provider resources discovered after a token exchange.

    Attributes:
        resource_id: Identifier of the connected page or location
        secondary_resource_id: Optional linked identifier
        access_token: Token to store instead of the exchanged one (page tokens)
        refresh_token: Token to store as the refresh/long-lived token
    """

    resource_id: str
    secondary_resource_id: Optional[str] = None
    access_token: Optional[str] = Field(default=None, repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)


class OAuthProvider(ABC):
    """Platform-specific half of the OAuth handshake."""

    platform: Platform
    supports_refresh: bool = False

    def __init__(self, config: OAuthConfig, http_settings: Optional[HttpSettings] = None) -> None:
        """Initialize provider.

        Args:
            config: OAuth configuration for this platform
            http_settings: Timeout and retry settings for provider calls
        """
        if config.platform != self.platform:
            raise ValueError(
                f"{type(self).__name__} cannot use a {config.platform.value} configuration"
            )
        self.config = config
        self.http_settings = http_settings or HttpSettings()

    def authorization_params(self) -> dict[str, str]:
        """Extra query parameters appended to the authorization URL."""
        return {}

    def authorization_url(self, state: str) -> str:
        """Build the URL the user is sent to for consent.

        Args:
            state: Opaque state echoed back on the callback

        Returns:
            Fully-qualified authorization URL
        """
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "state": state,
        }
        if self.config.scopes:
            params["scope"] = self.config.scope_separator.join(self.config.scopes)
        params.update(self.authorization_params())
        return f"{self.config.authorize_url}?{urlencode(params)}"

    @abstractmethod
    async def exchange_code(self, client: httpx.AsyncClient, code: str) -> OAuthTokens:
        """Exchange an authorization code for tokens.

        Raises:
            TokenExchangeFailedError: If the provider rejects the code
            TransientError: If the provider could not be reached
        """

    @abstractmethod
    async def resolve_resources(
        self, client: httpx.AsyncClient, tokens: OAuthTokens
    ) -> ResolvedResources:
        """Discover the resource the tokens grant access to.

        Raises:
            NoResourceFoundError: If the user owns nothing connectable
            TokenExchangeFailedError: If the provider rejects the lookup
        """

    async def refresh(self, client: httpx.AsyncClient, refresh_token: str) -> OAuthTokens:
        """Obtain a fresh access token.

        Raises:
            NotImplementedError: If the platform has no refresh grant
        """
        raise NotImplementedError(f"{self.platform.value} does not support token refresh")

    @staticmethod
    def parse_token_response(response: httpx.Response) -> OAuthTokens:
        """Validate a token endpoint response.

        Raises:
            TokenExchangeFailedError: On a non-2xx status or a missing access token
        """
        if not response.is_success:
            raise TokenExchangeFailedError(
                f"Token endpoint returned HTTP {response.status_code}: {_error_summary(response)}"
            )
        data = parse_json(response)
        if not isinstance(data, dict) or not data.get("access_token"):
            raise TokenExchangeFailedError(
                "Token endpoint response did not include an access token"
            )

        expires_in = data.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in is not None else None
        except (TypeError, ValueError):
            expires_in = None

        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or "Bearer",
            expires_in=expires_in,
        )


def _error_summary(response: httpx.Response) -> str:
    """Extract a short provider error description without echoing secrets."""
    try:
        data: Any = response.json()
    except ValueError:
        return response.reason_phrase or "unknown error"
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("type") or "unknown error")
        if error:
            return str(data.get("error_description") or error)
    return response.reason_phrase or "unknown error"
