"""Meta (Facebook) OAuth provider with page discovery.

After the code exchange, the user's manageable pages are listed and the first
page is connected. The page access token, not the user token, is what the
ratings edge accepts, so it becomes the stored access token.
"""

from typing import Optional

import httpx

from reviewsync.integrations.errors import (
    IntegrationError,
    NoResourceFoundError,
    TokenExchangeFailedError,
)
from reviewsync.integrations.http import HttpSettings, parse_json, request_with_retries
from reviewsync.integrations.models import Platform
from reviewsync.integrations.oauth.providers.base import (
    OAuthConfig,
    OAuthProvider,
    OAuthTokens,
    ResolvedResources,
)
from reviewsync.observability.logging import get_logger

logger = get_logger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com"
DIALOG_BASE = "https://www.facebook.com"


def meta_oauth_config(
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    scopes: list[str],
    api_version: str = "v21.0",
) -> OAuthConfig:
    """Build the OAuth configuration for a Meta app."""
    return OAuthConfig(
        platform=Platform.META,
        client_id=client_id,
        client_secret=client_secret,
        authorize_url=f"{DIALOG_BASE}/{api_version}/dialog/oauth",
        token_url=f"{GRAPH_API_BASE}/{api_version}/oauth/access_token",
        scopes=scopes,
        redirect_uri=redirect_uri,
        scope_separator=",",
    )


class MetaOAuthProvider(OAuthProvider):
    """Meta-specific OAuth provider.

    Example:
        >>> provider = MetaOAuthProvider(meta_oauth_config(...), api_version="v21.0")
        >>> url = provider.authorization_url(state)
    """

    platform = Platform.META
    supports_refresh = False

    def __init__(
        self,
        config: OAuthConfig,
        http_settings: Optional[HttpSettings] = None,
        api_version: str = "v21.0",
    ) -> None:
        super().__init__(config, http_settings)
        self.graph_url = f"{GRAPH_API_BASE}/{api_version}"

    async def exchange_code(self, client: httpx.AsyncClient, code: str) -> OAuthTokens:
        response = await request_with_retries(
            client,
            "GET",
            self.config.token_url,
            self.http_settings,
            params={
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "redirect_uri": self.config.redirect_uri,
                "code": code,
            },
        )
        return self.parse_token_response(response)

    async def resolve_resources(
        self, client: httpx.AsyncClient, tokens: OAuthTokens
    ) -> ResolvedResources:
        """Connect the first page the user manages.

        Args:
            client: HTTP client
            tokens: User tokens from the code exchange

        Returns:
            Page id and page token, plus the linked Instagram account if any

        Raises:
            NoResourceFoundError: If the user manages no pages
            TokenExchangeFailedError: If the page list cannot be read or the
                first page lacks an id or page token
        """
        response = await request_with_retries(
            client,
            "GET",
            f"{self.graph_url}/me/accounts",
            self.http_settings,
            params={"access_token": tokens.access_token, "fields": "id,name,access_token"},
        )
        if not response.is_success:
            raise TokenExchangeFailedError(
                f"Listing pages failed with HTTP {response.status_code}"
            )

        data = parse_json(response)
        pages = data.get("data") if isinstance(data, dict) else None
        if pages is not None and not isinstance(pages, list):
            raise TokenExchangeFailedError("Page listing returned an unexpected payload")
        if not pages:
            raise NoResourceFoundError(
                "No Facebook pages are managed by this account", reason="no_pages"
            )

        page = pages[0] if isinstance(pages[0], dict) else {}
        page_id = page.get("id")
        page_token = page.get("access_token")
        if not page_id or not page_token:
            raise TokenExchangeFailedError("Page is missing an id or page access token")

        instagram_id = await self._resolve_instagram_account(client, str(page_id), page_token)

        return ResolvedResources(
            resource_id=str(page_id),
            secondary_resource_id=instagram_id,
            access_token=page_token,
            refresh_token=tokens.access_token,
        )

    async def _resolve_instagram_account(
        self, client: httpx.AsyncClient, page_id: str, page_token: str
    ) -> Optional[str]:
        """Look up the Instagram business account linked to a page.

        Failures are logged and ignored; a page without Instagram is normal.
        """
        try:
            response = await request_with_retries(
                client,
                "GET",
                f"{self.graph_url}/{page_id}",
                self.http_settings,
                params={"fields": "instagram_business_account", "access_token": page_token},
            )
            if not response.is_success:
                logger.info(
                    "instagram_lookup_failed", page_id=page_id, status_code=response.status_code
                )
                return None
            data = parse_json(response)
        except IntegrationError as e:
            logger.info("instagram_lookup_failed", page_id=page_id, error=e.message)
            return None

        linked = data.get("instagram_business_account") if isinstance(data, dict) else None
        if isinstance(linked, dict) and linked.get("id"):
            return str(linked["id"])
        return None
