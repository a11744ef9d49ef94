"""OAuth provider implementations."""

from reviewsync.integrations.oauth.providers.base import (
    OAuthConfig,
    OAuthProvider,
    OAuthTokens,
    ResolvedResources,
)
from reviewsync.integrations.oauth.providers.google import (
    GoogleOAuthProvider,
    google_oauth_config,
)
from reviewsync.integrations.oauth.providers.meta import MetaOAuthProvider, meta_oauth_config

__all__ = [
    "GoogleOAuthProvider",
    "MetaOAuthProvider",
    "OAuthConfig",
    "OAuthProvider",
    "OAuthTokens",
    "ResolvedResources",
    "google_oauth_config",
    "meta_oauth_config",
]
