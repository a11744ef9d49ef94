"""Tests for the OAuth handshake manager."""

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from reviewsync.integrations.errors import (
    AuthExpiredError,
    BadRequestError,
    NoResourceFoundError,
    ProviderAuthError,
    TokenExchangeFailedError,
)
from reviewsync.integrations.models import CredentialStatus, Platform
from reviewsync.integrations.oauth.manager import OAuthManager, error_reason
from reviewsync.integrations.oauth.providers import (
    GoogleOAuthProvider,
    MetaOAuthProvider,
    google_oauth_config,
    meta_oauth_config,
)
from reviewsync.integrations.oauth.state import OAuthStateCodec
from reviewsync.storage.memory import InMemoryCredentialStore


def meta_handler(
    token_status: int = 200,
    token_body: dict | None = None,
    pages: list | None = None,
    instagram: dict | None = None,
    calls: list | None = None,
):
    """Fake Graph API covering token exchange, page listing and Instagram lookup."""
    if token_body is None:
        token_body = {"access_token": "user-token", "token_type": "bearer", "expires_in": 3600}
    if pages is None:
        pages = [{"id": "page-1", "name": "Cafe", "access_token": "page-token"}]

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        path = request.url.path
        if path.endswith("/oauth/access_token"):
            return httpx.Response(token_status, json=token_body)
        if path.endswith("/me/accounts"):
            return httpx.Response(200, json={"data": pages})
        if path.endswith("/page-1"):
            return httpx.Response(200, json=instagram or {"id": "page-1"})
        return httpx.Response(404, json={"error": {"message": "unknown path"}})

    return handler


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def build_manager(encryptor, store, fast_http, mock_http):
    """Factory for an OAuthManager wired to a fake provider."""

    def _build(handler, signed: bool = True, default_lifetime=timedelta(days=60)):
        return OAuthManager(
            providers={
                Platform.META: MetaOAuthProvider(
                    meta_oauth_config(
                        client_id="app-id",
                        client_secret="app-secret",
                        redirect_uri="https://api.example.com/oauth/callback/meta",
                        scopes=["pages_show_list", "pages_read_engagement"],
                    ),
                    fast_http,
                ),
                Platform.GOOGLE: GoogleOAuthProvider(
                    google_oauth_config(
                        client_id="g-client",
                        client_secret="g-secret",
                        redirect_uri="https://api.example.com/oauth/callback/google",
                        scopes=["https://www.googleapis.com/auth/business.manage"],
                    ),
                    fast_http,
                ),
            },
            encryptor=encryptor,
            credential_store=store,
            state_codec=OAuthStateCodec(encryptor, signed=signed),
            default_token_lifetime=default_lifetime,
            http_client=mock_http(handler),
            http_settings=fast_http,
        )

    return _build


class TestInitiateFlow:
    async def test_builds_authorization_url(self, build_manager) -> None:
        manager = build_manager(meta_handler())

        url = await manager.initiate_flow(Platform.META, "A1")

        parsed = urlparse(url)
        params = parse_qs(parsed.query)
        assert parsed.netloc == "www.facebook.com"
        assert parsed.path == "/v21.0/dialog/oauth"
        assert params["client_id"] == ["app-id"]
        assert params["redirect_uri"] == ["https://api.example.com/oauth/callback/meta"]
        assert params["response_type"] == ["code"]
        assert params["scope"] == ["pages_show_list,pages_read_engagement"]
        assert params["state"][0] != "A1"

    async def test_unsigned_state_is_account_id(self, build_manager) -> None:
        manager = build_manager(meta_handler(), signed=False)

        url = await manager.initiate_flow(Platform.META, "A1")

        assert parse_qs(urlparse(url).query)["state"] == ["A1"]

    async def test_google_requests_offline_access(self, build_manager) -> None:
        manager = build_manager(meta_handler())

        url = await manager.initiate_flow(Platform.GOOGLE, "A1")

        params = parse_qs(urlparse(url).query)
        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]
        assert params["scope"] == ["https://www.googleapis.com/auth/business.manage"]

    async def test_unconfigured_platform_is_bad_request(self, encryptor, store) -> None:
        manager = OAuthManager(
            providers={},
            encryptor=encryptor,
            credential_store=store,
            state_codec=OAuthStateCodec(encryptor),
        )

        with pytest.raises(BadRequestError) as exc_info:
            await manager.initiate_flow(Platform.META, "A1")
        assert exc_info.value.reason == "not_configured"

    async def test_empty_account_id_is_bad_request(self, build_manager) -> None:
        with pytest.raises(BadRequestError):
            await build_manager(meta_handler()).initiate_flow(Platform.META, " ")


class TestCompleteFlow:
    async def _state(self, manager: OAuthManager, account_id: str = "A1") -> str:
        url = await manager.initiate_flow(Platform.META, account_id)
        return parse_qs(urlparse(url).query)["state"][0]

    async def test_successful_handshake_stores_encrypted_credential(
        self, build_manager, store, encryptor
    ) -> None:
        manager = build_manager(
            meta_handler(instagram={"instagram_business_account": {"id": "ig-9"}})
        )
        state = await self._state(manager)

        result = await manager.complete_flow(Platform.META, code="auth-code", state=state)

        assert result.account_id == "A1"
        assert result.resource_id == "page-1"
        assert result.secondary_resource_id == "ig-9"

        credential = await store.get("A1", Platform.META)
        assert credential is not None
        assert credential.status == CredentialStatus.ACTIVE
        assert b"page-token" not in credential.access_token_encrypted
        assert encryptor.decrypt(credential.access_token_encrypted) == "page-token"
        assert encryptor.decrypt(credential.refresh_token_encrypted) == "user-token"
        assert credential.last_synced_at is None

    async def test_expiry_uses_provider_lifetime(self, build_manager, store) -> None:
        manager = build_manager(meta_handler())
        state = await self._state(manager)
        before = datetime.now(timezone.utc)

        result = await manager.complete_flow(Platform.META, code="c", state=state)

        assert before + timedelta(seconds=3590) < result.token_expiry
        assert result.token_expiry < before + timedelta(seconds=3700)

    async def test_expiry_defaults_when_provider_gives_none(self, build_manager) -> None:
        manager = build_manager(meta_handler(token_body={"access_token": "user-token"}))
        state = await self._state(manager)
        before = datetime.now(timezone.utc)

        result = await manager.complete_flow(Platform.META, code="c", state=state)

        assert result.token_expiry > before + timedelta(days=59)
        assert result.token_expiry < before + timedelta(days=61)

    async def test_sends_code_and_app_credentials_to_token_endpoint(self, build_manager) -> None:
        calls: list[httpx.Request] = []
        manager = build_manager(meta_handler(calls=calls))
        state = await self._state(manager)

        await manager.complete_flow(Platform.META, code="auth-code", state=state)

        token_request = calls[0]
        assert token_request.url.path == "/v21.0/oauth/access_token"
        assert token_request.url.params["code"] == "auth-code"
        assert token_request.url.params["client_id"] == "app-id"
        assert token_request.url.params["client_secret"] == "app-secret"
        assert token_request.url.params["redirect_uri"].endswith("/oauth/callback/meta")

    async def test_provider_error_short_circuits_exchange(self, build_manager) -> None:
        calls: list[httpx.Request] = []
        manager = build_manager(meta_handler(calls=calls))

        with pytest.raises(ProviderAuthError) as exc_info:
            await manager.complete_flow(
                Platform.META, code=None, state=None, error="access_denied"
            )

        assert exc_info.value.provider_error == "access_denied"
        assert error_reason(exc_info.value) == "access_denied"
        assert calls == []

    @pytest.mark.parametrize("code,state", [(None, "s"), ("c", None), ("", "")])
    async def test_missing_code_or_state_is_bad_request(self, build_manager, code, state) -> None:
        manager = build_manager(meta_handler())

        with pytest.raises(BadRequestError) as exc_info:
            await manager.complete_flow(Platform.META, code=code, state=state)
        assert exc_info.value.reason == "missing_params"

    async def test_forged_state_is_rejected_before_exchange(self, build_manager, store) -> None:
        calls: list[httpx.Request] = []
        manager = build_manager(meta_handler(calls=calls))

        with pytest.raises(BadRequestError) as exc_info:
            await manager.complete_flow(Platform.META, code="c", state="A1")

        assert exc_info.value.reason == "invalid_state"
        assert calls == []
        assert await store.get("A1", Platform.META) is None

    async def test_token_endpoint_failure_is_token_exchange_failed(
        self, build_manager, store
    ) -> None:
        manager = build_manager(
            meta_handler(token_status=400, token_body={"error": {"message": "bad code"}})
        )
        state = await self._state(manager)

        with pytest.raises(TokenExchangeFailedError) as exc_info:
            await manager.complete_flow(Platform.META, code="c", state=state)

        assert error_reason(exc_info.value) == "token_exchange_failed"
        assert await store.get("A1", Platform.META) is None

    async def test_missing_access_token_is_token_exchange_failed(self, build_manager) -> None:
        manager = build_manager(meta_handler(token_body={"token_type": "bearer"}))
        state = await self._state(manager)

        with pytest.raises(TokenExchangeFailedError):
            await manager.complete_flow(Platform.META, code="c", state=state)

    async def test_network_failure_during_exchange_is_token_exchange_failed(
        self, build_manager
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        manager = build_manager(handler)
        state = await self._state(manager)

        with pytest.raises(TokenExchangeFailedError):
            await manager.complete_flow(Platform.META, code="c", state=state)

    async def test_no_pages_is_no_resource_found(self, build_manager, store) -> None:
        manager = build_manager(meta_handler(pages=[]))
        state = await self._state(manager)

        with pytest.raises(NoResourceFoundError) as exc_info:
            await manager.complete_flow(Platform.META, code="c", state=state)

        assert error_reason(exc_info.value) == "no_pages"
        assert await store.get("A1", Platform.META) is None

    async def test_reconnect_overwrites_and_keeps_watermark_for_same_page(
        self, build_manager, store, make_credential
    ) -> None:
        watermark = datetime(2024, 5, 1, tzinfo=timezone.utc)
        await store.upsert(
            make_credential(
                access_token="old",
                resource_id="page-1",
                last_synced_at=watermark,
                status=CredentialStatus.EXPIRED,
            )
        )
        manager = build_manager(meta_handler())
        state = await self._state(manager)

        await manager.complete_flow(Platform.META, code="c", state=state)

        credential = await store.get("A1", Platform.META)
        assert credential.status == CredentialStatus.ACTIVE
        assert credential.last_synced_at == watermark

    async def test_reconnect_to_different_page_resets_watermark(
        self, build_manager, store, make_credential
    ) -> None:
        await store.upsert(
            make_credential(
                resource_id="page-old",
                last_synced_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
            )
        )
        manager = build_manager(meta_handler())
        state = await self._state(manager)

        await manager.complete_flow(Platform.META, code="c", state=state)

        credential = await store.get("A1", Platform.META)
        assert credential.resource_id == "page-1"
        assert credential.last_synced_at is None

    async def test_result_serializes_with_camel_case_keys(self, build_manager) -> None:
        manager = build_manager(meta_handler())
        state = await self._state(manager)

        data = (await manager.complete_flow(Platform.META, code="c", state=state)).to_dict()

        assert data["success"] is True
        assert data["accountId"] == "A1"
        assert data["platform"] == "meta"
        assert data["resourceId"] == "page-1"


class TestRefreshCredential:
    async def test_refreshes_google_credential(
        self, build_manager, store, encryptor, make_credential
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "oauth2.googleapis.com"
            body = parse_qs(request.content.decode())
            assert body["grant_type"] == ["refresh_token"]
            assert body["refresh_token"] == ["refresh-1"]
            return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3599})

        manager = build_manager(handler)
        watermark = datetime(2024, 1, 1, tzinfo=timezone.utc)
        credential = make_credential(
            platform=Platform.GOOGLE,
            resource_id="locations/1",
            secondary_resource_id="accounts/9",
            refresh_token="refresh-1",
            token_expiry=datetime.now(timezone.utc) - timedelta(minutes=1),
            last_synced_at=watermark,
        )
        await store.upsert(credential)

        refreshed = await manager.refresh_credential(credential)

        assert encryptor.decrypt(refreshed.access_token_encrypted) == "fresh"
        assert encryptor.decrypt(refreshed.refresh_token_encrypted) == "refresh-1"
        assert not refreshed.needs_refresh()
        stored = await store.get("A1", Platform.GOOGLE)
        assert encryptor.decrypt(stored.access_token_encrypted) == "fresh"
        assert stored.last_synced_at == watermark

    async def test_rejected_refresh_is_auth_expired(
        self, build_manager, make_credential
    ) -> None:
        manager = build_manager(
            lambda request: httpx.Response(400, json={"error": "invalid_grant"})
        )
        credential = make_credential(
            platform=Platform.GOOGLE, resource_id="locations/1", refresh_token="revoked"
        )

        with pytest.raises(AuthExpiredError):
            await manager.refresh_credential(credential)

    async def test_missing_refresh_token_is_auth_expired(
        self, build_manager, make_credential
    ) -> None:
        manager = build_manager(meta_handler())
        credential = make_credential(platform=Platform.GOOGLE, resource_id="locations/1")

        with pytest.raises(AuthExpiredError):
            await manager.refresh_credential(credential)

    async def test_meta_credentials_pass_through_unchanged(
        self, build_manager, make_credential
    ) -> None:
        calls: list[httpx.Request] = []
        manager = build_manager(meta_handler(calls=calls))
        credential = make_credential(refresh_token="user-token")

        assert await manager.refresh_credential(credential) is credential
        assert calls == []
