"""Configuration models and environment loading.

All settings are read once at startup from REVIEWSYNC_* environment
variables (a .env file is honored). The configuration is immutable after
creation; the encryption key is validated eagerly so a bad deployment fails
before serving a single request.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from reviewsync.integrations.credentials.encryption import load_encryption_key

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./reviewsync.db"
DEFAULT_META_SCOPES = "pages_show_list,pages_read_engagement,pages_read_user_content"
DEFAULT_GOOGLE_SCOPES = "https://www.googleapis.com/auth/business.manage"


class ProviderCredentials(BaseModel):
    """OAuth application credentials for one provider.

    Attributes:
        client_id: OAuth client (app) ID
        client_secret: OAuth client secret (sensitive - not logged)
        redirect_uri: Registered callback URL
        scopes: Scopes to request at authorization time
    """

    client_id: Optional[str] = None
    client_secret: Optional[str] = Field(default=None, repr=False)
    redirect_uri: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)

    class Config:
        """Pydantic config."""

        frozen = True

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


class SyncConfig(BaseModel):
    """Global configuration for the review sync service.

    Attributes:
        database_url: SQLAlchemy async database URL
        encryption_key: Credential encryption key (sensitive - not logged)
        site_url: Frontend base URL that OAuth callbacks redirect to
        meta: Meta (Facebook) app credentials
        google: Google OAuth client credentials
        graph_api_version: Meta Graph API version segment
        http_timeout_seconds: Timeout for each provider HTTP call
        http_max_retries: Retries for transient network errors
        http_backoff_ms: Initial retry backoff, doubled per attempt
        sync_timeout_seconds: Deadline for syncing one platform
        default_token_lifetime_days: Expiry applied when a provider gives none
        state_ttl_seconds: Lifetime of a signed OAuth state
        sign_oauth_state: Wrap the account id in a signed, expiring state
        sync_cron: Cron expression for the scheduled batch sync
        log_level: Logging level
        json_logs: Emit JSON logs instead of console output
    """

    database_url: str = Field(default=DEFAULT_DATABASE_URL)
    encryption_key: str = Field(..., repr=False)
    site_url: str = Field(default="http://localhost:3000")
    meta: ProviderCredentials = Field(default_factory=ProviderCredentials)
    google: ProviderCredentials = Field(default_factory=ProviderCredentials)
    graph_api_version: str = Field(default="v21.0")
    http_timeout_seconds: float = Field(default=10.0, gt=0, le=300)
    http_max_retries: int = Field(default=2, ge=0, le=10)
    http_backoff_ms: int = Field(default=500, ge=0)
    sync_timeout_seconds: float = Field(default=120.0, gt=0)
    default_token_lifetime_days: int = Field(default=60, ge=1)
    state_ttl_seconds: int = Field(default=600, ge=30)
    sign_oauth_state: bool = Field(default=True)
    sync_cron: str = Field(default="0 */6 * * *")
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=True)

    class Config:
        """Pydantic config."""

        frozen = True

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, value: str) -> str:
        """Fail fast on an absent or malformed key.

        Raises:
            ValueError: If the key cannot be used for Fernet encryption
        """
        try:
            load_encryption_key(value)
        except Exception as e:
            raise ValueError(str(e)) from e
        return value

    @field_validator("site_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.replace(" ", ",").split(",") if item.strip()]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def load_config_from_env() -> SyncConfig:
    """Load configuration from environment variables.

    Automatically loads variables from a .env file if present.

    Reads:
    - REVIEWSYNC_DATABASE_URL
    - REVIEWSYNC_ENCRYPTION_KEY (required)
    - REVIEWSYNC_SITE_URL
    - REVIEWSYNC_META_APP_ID / _META_APP_SECRET / _META_REDIRECT_URI / _META_OAUTH_SCOPES
    - REVIEWSYNC_GRAPH_API_VERSION
    - REVIEWSYNC_GOOGLE_CLIENT_ID / _GOOGLE_CLIENT_SECRET / _GOOGLE_REDIRECT_URI
      / _GOOGLE_OAUTH_SCOPES
    - REVIEWSYNC_HTTP_TIMEOUT_SECONDS, REVIEWSYNC_HTTP_MAX_RETRIES, REVIEWSYNC_HTTP_BACKOFF_MS
    - REVIEWSYNC_SYNC_TIMEOUT_SECONDS, REVIEWSYNC_DEFAULT_TOKEN_LIFETIME_DAYS
    - REVIEWSYNC_STATE_TTL_SECONDS, REVIEWSYNC_SIGN_OAUTH_STATE
    - REVIEWSYNC_SYNC_CRON, REVIEWSYNC_LOG_LEVEL, REVIEWSYNC_JSON_LOGS

    Returns:
        SyncConfig loaded from environment

    Raises:
        pydantic.ValidationError: If the encryption key is missing or malformed
    """
    load_dotenv()

    meta = ProviderCredentials(
        client_id=os.getenv("REVIEWSYNC_META_APP_ID"),
        client_secret=os.getenv("REVIEWSYNC_META_APP_SECRET"),
        redirect_uri=os.getenv("REVIEWSYNC_META_REDIRECT_URI"),
        scopes=_split_list(os.getenv("REVIEWSYNC_META_OAUTH_SCOPES", DEFAULT_META_SCOPES)),
    )
    google = ProviderCredentials(
        client_id=os.getenv("REVIEWSYNC_GOOGLE_CLIENT_ID"),
        client_secret=os.getenv("REVIEWSYNC_GOOGLE_CLIENT_SECRET"),
        redirect_uri=os.getenv("REVIEWSYNC_GOOGLE_REDIRECT_URI"),
        scopes=_split_list(os.getenv("REVIEWSYNC_GOOGLE_OAUTH_SCOPES", DEFAULT_GOOGLE_SCOPES)),
    )

    return SyncConfig(
        database_url=os.getenv("REVIEWSYNC_DATABASE_URL", DEFAULT_DATABASE_URL),
        encryption_key=os.getenv("REVIEWSYNC_ENCRYPTION_KEY", ""),
        site_url=os.getenv("REVIEWSYNC_SITE_URL", "http://localhost:3000"),
        meta=meta,
        google=google,
        graph_api_version=os.getenv("REVIEWSYNC_GRAPH_API_VERSION", "v21.0"),
        http_timeout_seconds=float(os.getenv("REVIEWSYNC_HTTP_TIMEOUT_SECONDS", "10")),
        http_max_retries=int(os.getenv("REVIEWSYNC_HTTP_MAX_RETRIES", "2")),
        http_backoff_ms=int(os.getenv("REVIEWSYNC_HTTP_BACKOFF_MS", "500")),
        sync_timeout_seconds=float(os.getenv("REVIEWSYNC_SYNC_TIMEOUT_SECONDS", "120")),
        default_token_lifetime_days=int(os.getenv("REVIEWSYNC_DEFAULT_TOKEN_LIFETIME_DAYS", "60")),
        state_ttl_seconds=int(os.getenv("REVIEWSYNC_STATE_TTL_SECONDS", "600")),
        sign_oauth_state=_env_bool("REVIEWSYNC_SIGN_OAUTH_STATE", "true"),
        sync_cron=os.getenv("REVIEWSYNC_SYNC_CRON", "0 */6 * * *"),
        log_level=os.getenv("REVIEWSYNC_LOG_LEVEL", "INFO"),
        json_logs=_env_bool("REVIEWSYNC_JSON_LOGS", "true"),
    )
