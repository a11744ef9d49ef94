"""Service wiring.

Builds the database, cipher, stores, OAuth manager and orchestrator from a
SyncConfig. The API, the CLI and the scheduler all start from here.
"""

from datetime import timedelta
from typing import Optional

import httpx

from reviewsync.config import SyncConfig
from reviewsync.integrations.adapters import build_adapters
from reviewsync.integrations.credentials.encryption import CredentialEncryption
from reviewsync.integrations.http import HttpSettings
from reviewsync.integrations.models import Platform
from reviewsync.integrations.oauth.manager import OAuthManager
from reviewsync.integrations.oauth.providers import (
    GoogleOAuthProvider,
    MetaOAuthProvider,
    OAuthProvider,
    google_oauth_config,
    meta_oauth_config,
)
from reviewsync.integrations.oauth.state import OAuthStateCodec
from reviewsync.observability.logging import get_logger
from reviewsync.storage.credential_repository import SQLCredentialStore
from reviewsync.storage.database import Database, DatabaseConfig
from reviewsync.storage.review_repository import SQLReviewRepository
from reviewsync.sync.orchestrator import SyncOrchestrator

logger = get_logger(__name__)


def http_settings_from_config(config: SyncConfig) -> HttpSettings:
    return HttpSettings(
        timeout_seconds=config.http_timeout_seconds,
        max_retries=config.http_max_retries,
        backoff_ms=config.http_backoff_ms,
    )


def build_oauth_providers(
    config: SyncConfig, http_settings: Optional[HttpSettings] = None
) -> dict[Platform, OAuthProvider]:
    """Create a provider for every platform whose app credentials are configured."""
    providers: dict[Platform, OAuthProvider] = {}

    if config.meta.is_configured:
        providers[Platform.META] = MetaOAuthProvider(
            meta_oauth_config(
                client_id=config.meta.client_id or "",
                client_secret=config.meta.client_secret or "",
                redirect_uri=config.meta.redirect_uri or "",
                scopes=config.meta.scopes,
                api_version=config.graph_api_version,
            ),
            http_settings,
            api_version=config.graph_api_version,
        )

    if config.google.is_configured:
        providers[Platform.GOOGLE] = GoogleOAuthProvider(
            google_oauth_config(
                client_id=config.google.client_id or "",
                client_secret=config.google.client_secret or "",
                redirect_uri=config.google.redirect_uri or "",
                scopes=config.google.scopes,
            ),
            http_settings,
        )

    return providers


class Services:
    """Long-lived collaborators shared by one process.

    Attributes:
        config: Loaded configuration
        database: Database engine and sessions
        encryptor: Credential cipher
        credential_store: Credential persistence
        review_repository: Review persistence
        oauth_manager: OAuth handshake handler
        orchestrator: Sync orchestrator
        http_client: Shared outbound HTTP client
    """

    def __init__(self, config: SyncConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        http_settings = http_settings_from_config(config)
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=http_settings.timeout_seconds
        )

        self.database = Database(DatabaseConfig(url=config.database_url))
        self.encryptor = CredentialEncryption(config.encryption_key)
        self.credential_store = SQLCredentialStore(self.database)
        self.review_repository = SQLReviewRepository(self.database)

        self.oauth_manager = OAuthManager(
            providers=build_oauth_providers(config, http_settings),
            encryptor=self.encryptor,
            credential_store=self.credential_store,
            state_codec=OAuthStateCodec(
                self.encryptor,
                ttl_seconds=config.state_ttl_seconds,
                signed=config.sign_oauth_state,
            ),
            default_token_lifetime=timedelta(days=config.default_token_lifetime_days),
            http_client=self.http_client,
            http_settings=http_settings,
        )
        self.orchestrator = SyncOrchestrator(
            credential_store=self.credential_store,
            review_repository=self.review_repository,
            adapters=build_adapters(self.http_client, http_settings, config.graph_api_version),
            encryptor=self.encryptor,
            oauth_manager=self.oauth_manager,
            sync_timeout_seconds=config.sync_timeout_seconds,
        )

    async def startup(self) -> None:
        """Create tables if missing."""
        await self.database.create_tables()
        logger.info(
            "services_started",
            oauth_platforms=[p.value for p in self.oauth_manager.platforms],
            sync_platforms=[p.value for p in self.orchestrator.platforms],
        )

    async def close(self) -> None:
        """Release the HTTP client (when owned) and the database engine."""
        if self._owns_http_client:
            await self.http_client.aclose()
        await self.database.close()
