"""Google Business Profile OAuth provider with location discovery."""

from typing import Any, Optional

import httpx

from reviewsync.integrations.errors import (
    AuthExpiredError,
    NoResourceFoundError,
    TokenExchangeFailedError,
    TransientError,
)
from reviewsync.integrations.http import parse_json, request_with_retries
from reviewsync.integrations.models import Platform
from reviewsync.integrations.oauth.providers.base import (
    OAuthConfig,
    OAuthProvider,
    OAuthTokens,
    ResolvedResources,
)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
ACCOUNTS_URL = "https://mybusinessaccountmanagement.googleapis.com/v1/accounts"
BUSINESS_INFO_BASE = "https://mybusinessbusinessinformation.googleapis.com/v1"
_MAX_LIST_PAGES = 20


def google_oauth_config(
    client_id: str, client_secret: str, redirect_uri: str, scopes: list[str]
) -> OAuthConfig:
    """Build the OAuth configuration for a Google client."""
    return OAuthConfig(
        platform=Platform.GOOGLE,
        client_id=client_id,
        client_secret=client_secret,
        authorize_url=GOOGLE_AUTHORIZE_URL,
        token_url=GOOGLE_TOKEN_URL,
        scopes=scopes,
        redirect_uri=redirect_uri,
    )


class GoogleOAuthProvider(OAuthProvider):
    """Google-specific OAuth provider.

    Requests offline access so the exchange yields a refresh token, then
    connects the first location of the first account that has one. The
    location name (``locations/{id}``) is the resource id and the owning
    account name (``accounts/{id}``) the secondary id.
    """

    platform = Platform.GOOGLE
    supports_refresh = True

    def authorization_params(self) -> dict[str, str]:
        return {"access_type": "offline", "prompt": "consent"}

    async def exchange_code(self, client: httpx.AsyncClient, code: str) -> OAuthTokens:
        response = await request_with_retries(
            client,
            "POST",
            self.config.token_url,
            self.http_settings,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            },
            headers={"Accept": "application/json"},
        )
        return self.parse_token_response(response)

    async def resolve_resources(
        self, client: httpx.AsyncClient, tokens: OAuthTokens
    ) -> ResolvedResources:
        headers = {"Authorization": f"Bearer {tokens.access_token}"}

        accounts = await self._list(client, ACCOUNTS_URL, headers, "accounts")
        if not accounts:
            raise NoResourceFoundError(
                "No Google Business Profile accounts are available", reason="no_locations"
            )

        for account in accounts:
            account_name = account.get("name")
            if not account_name:
                continue
            locations = await self._list(
                client,
                f"{BUSINESS_INFO_BASE}/{account_name}/locations",
                headers,
                "locations",
                params={"readMask": "name,title"},
            )
            for location in locations:
                if location.get("name"):
                    return ResolvedResources(
                        resource_id=location["name"],
                        secondary_resource_id=account_name,
                        refresh_token=tokens.refresh_token,
                    )

        raise NoResourceFoundError(
            "No Google Business Profile locations are available", reason="no_locations"
        )

    async def refresh(self, client: httpx.AsyncClient, refresh_token: str) -> OAuthTokens:
        """Exchange a refresh token for a new access token.

        Raises:
            AuthExpiredError: If the provider rejects the refresh token
            TransientError: On network failures or server errors
        """
        response = await request_with_retries(
            client,
            "POST",
            self.config.token_url,
            self.http_settings,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            },
            headers={"Accept": "application/json"},
        )
        if _refresh_rejected(response):
            raise AuthExpiredError(f"Token refresh rejected with HTTP {response.status_code}")
        if not response.is_success:
            raise TransientError(f"Token refresh failed with HTTP {response.status_code}")
        try:
            tokens = self.parse_token_response(response)
        except TokenExchangeFailedError as e:
            raise TransientError(e.message) from e
        if tokens.expires_in is None:
            tokens.expires_in = 3600
        return tokens

    async def _list(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: dict[str, str],
        key: str,
        params: Optional[dict[str, str]] = None,
    ) -> list[dict[str, Any]]:
        """Read every page of a Google list endpoint."""
        items: list[dict[str, Any]] = []
        page_token: Optional[str] = None
        for _ in range(_MAX_LIST_PAGES):
            query = dict(params or {})
            if page_token:
                query["pageToken"] = page_token
            response = await request_with_retries(
                client, "GET", url, self.http_settings, headers=headers, params=query
            )
            if not response.is_success:
                raise TokenExchangeFailedError(
                    f"Listing {key} failed with HTTP {response.status_code}"
                )
            data = parse_json(response)
            if not isinstance(data, dict):
                break
            items.extend(item for item in data.get(key) or [] if isinstance(item, dict))
            page_token = data.get("nextPageToken")
            if not page_token:
                break
        return items


def _refresh_rejected(response: httpx.Response) -> bool:
    """True when the token endpoint refused the refresh token itself.

    Only 401 and a 400 ``invalid_grant`` mean the grant is gone. Any other
    status, 429 and 408 included, leaves the credential usable.
    """
    if response.status_code == 401:
        return True
    if response.status_code != 400:
        return False
    try:
        data = response.json()
    except ValueError:
        return False
    return isinstance(data, dict) and data.get("error") == "invalid_grant"
