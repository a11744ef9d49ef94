"""Pytest configuration and shared fixtures for the test suite."""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Optional

import httpx
import pytest
from cryptography.fernet import Fernet

from reviewsync.integrations.credentials.encryption import CredentialEncryption
from reviewsync.integrations.http import HttpSettings
from reviewsync.integrations.models import CredentialStatus, IntegrationCredential, Platform
from reviewsync.storage.credential_repository import SQLCredentialStore
from reviewsync.storage.database import Database, DatabaseConfig
from reviewsync.storage.review_repository import SQLReviewRepository

# Configure pytest-asyncio to use auto mode
pytest_plugins = ["pytest_asyncio"]


@pytest.fixture
def encryption_key() -> bytes:
    """Generate test encryption key."""
    return Fernet.generate_key()


@pytest.fixture
def encryptor(encryption_key: bytes) -> CredentialEncryption:
    return CredentialEncryption(encryption_key)


@pytest.fixture
def fast_http() -> HttpSettings:
    """HTTP settings without retry delays."""
    return HttpSettings(timeout_seconds=5, max_retries=2, backoff_ms=0)


@pytest.fixture
async def db() -> AsyncGenerator[Database, None]:
    """Create an in-memory SQLite database for testing.

    Yields:
        Database instance with tables created
    """
    database = Database(DatabaseConfig(url="sqlite+aiosqlite:///:memory:"))
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
def sql_credential_store(db: Database) -> SQLCredentialStore:
    return SQLCredentialStore(db)


@pytest.fixture
def sql_review_repository(db: Database) -> SQLReviewRepository:
    return SQLReviewRepository(db)


@pytest.fixture
def make_credential(
    encryptor: CredentialEncryption,
) -> Callable[..., IntegrationCredential]:
    """Factory for credentials encrypted with the test key."""

    def _make(
        account_id: str = "A1",
        platform: Platform = Platform.META,
        resource_id: str = "page-1",
        access_token: str = "access-token",
        refresh_token: Optional[str] = None,
        token_expiry: Optional[datetime] = None,
        last_synced_at: Optional[datetime] = None,
        status: CredentialStatus = CredentialStatus.ACTIVE,
        secondary_resource_id: Optional[str] = None,
    ) -> IntegrationCredential:
        return IntegrationCredential(
            account_id=account_id,
            platform=platform,
            resource_id=resource_id,
            secondary_resource_id=secondary_resource_id,
            access_token_encrypted=encryptor.encrypt(access_token),
            refresh_token_encrypted=encryptor.encrypt(refresh_token) if refresh_token else None,
            token_expiry=token_expiry or datetime.now(timezone.utc) + timedelta(days=30),
            last_synced_at=last_synced_at,
            status=status,
        )

    return _make


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by a handler function."""

    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _build
