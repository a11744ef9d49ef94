"""Fixtures for API tests: a full app wired to an in-memory database and fake providers."""

from typing import Any, Callable, Iterator

import httpx
import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from reviewsync.api.app import create_app
from reviewsync.bootstrap import Services
from reviewsync.config import ProviderCredentials, SyncConfig

SITE_URL = "http://localhost:3000"


@pytest.fixture
def provider_world() -> dict[str, Any]:
    """Mutable state behind the fake Graph API."""
    return {
        "token_status": 200,
        "pages": [{"id": "page-1", "name": "Cafe", "access_token": "page-token"}],
        "ratings": [
            {
                "id": "r1",
                "reviewer": {"name": "Ann"},
                "rating": 5,
                "review_text": "Great",
                "created_time": "2024-05-01T10:00:00+0000",
            },
            {
                "id": "r2",
                "reviewer": {"name": "Bo"},
                "rating": 4,
                "created_time": "2024-05-03T10:00:00+0000",
            },
            {
                "reviewer": {"name": "Cy"},
                "rating": 3,
                "review_text": "Fine",
                "created_time": "2024-05-02T10:00:00+0000",
            },
        ],
    }


@pytest.fixture
def graph_handler(provider_world) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/oauth/access_token"):
            if provider_world["token_status"] != 200:
                return httpx.Response(
                    provider_world["token_status"], json={"error": {"message": "bad code"}}
                )
            return httpx.Response(200, json={"access_token": "user-token", "expires_in": 5184000})
        if path.endswith("/me/accounts"):
            return httpx.Response(200, json={"data": provider_world["pages"]})
        if path.endswith("/page-1/ratings"):
            return httpx.Response(200, json={"data": provider_world["ratings"]})
        if path.endswith("/page-1"):
            return httpx.Response(200, json={"id": "page-1"})
        return httpx.Response(404, json={"error": {"message": "unknown"}})

    return handler


@pytest.fixture
def api_config() -> SyncConfig:
    return SyncConfig(
        database_url="sqlite+aiosqlite:///:memory:",
        encryption_key=Fernet.generate_key().decode(),
        site_url=f"{SITE_URL}/",
        meta=ProviderCredentials(
            client_id="app-id",
            client_secret="app-secret",
            redirect_uri="https://api.example.com/oauth/callback/meta",
            scopes=["pages_show_list", "pages_read_engagement"],
        ),
        http_backoff_ms=0,
        json_logs=False,
    )


@pytest.fixture
def services(api_config, graph_handler) -> Services:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(graph_handler))
    return Services(api_config, http_client=http_client)


@pytest.fixture
def client(services) -> Iterator[TestClient]:
    """Test client with the application lifespan running."""
    app = create_app(services=services, enable_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client
        test_client.portal.call(services.close)


@pytest.fixture
def connect_meta(client) -> Callable[..., httpx.Response]:
    """Run the browser flow: authorize, then hit the callback with the issued state."""

    def _connect(account_id: str = "A1") -> httpx.Response:
        authorize = client.get(
            "/oauth/authorize/meta",
            params={"account_id": account_id, "format": "json"},
        )
        state = httpx.URL(authorize.json()["authorizationUrl"]).params["state"]
        return client.get(
            "/oauth/callback/meta",
            params={"code": "auth-code", "state": state},
            follow_redirects=False,
        )

    return _connect
