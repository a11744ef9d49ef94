"""Tests for credential store implementations."""

from datetime import datetime, timedelta, timezone

from reviewsync.integrations.models import CredentialStatus, Platform

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestGetAndUpsert:
    async def test_get_missing_returns_none(self, credential_store) -> None:
        assert await credential_store.get("A1", Platform.META) is None

    async def test_round_trip(self, credential_store, make_credential, encryptor) -> None:
        credential = make_credential(
            access_token="secret",
            refresh_token="long-lived",
            secondary_resource_id="ig-1",
            token_expiry=T0,
            last_synced_at=T0 - timedelta(days=1),
        )
        await credential_store.upsert(credential)

        stored = await credential_store.get("A1", Platform.META)

        assert stored.resource_id == "page-1"
        assert stored.secondary_resource_id == "ig-1"
        assert stored.token_expiry == T0
        assert stored.token_expiry.tzinfo is not None
        assert stored.last_synced_at == T0 - timedelta(days=1)
        assert stored.status == CredentialStatus.ACTIVE
        assert encryptor.decrypt(stored.access_token_encrypted) == "secret"
        assert encryptor.decrypt(stored.refresh_token_encrypted) == "long-lived"

    async def test_upsert_overwrites_every_field(
        self, credential_store, make_credential, encryptor
    ) -> None:
        await credential_store.upsert(
            make_credential(
                access_token="old",
                refresh_token="old-refresh",
                secondary_resource_id="ig-1",
                last_synced_at=T0,
                status=CredentialStatus.EXPIRED,
            )
        )

        await credential_store.upsert(make_credential(access_token="new", resource_id="page-2"))

        stored = await credential_store.get("A1", Platform.META)
        assert encryptor.decrypt(stored.access_token_encrypted) == "new"
        assert stored.refresh_token_encrypted is None
        assert stored.resource_id == "page-2"
        assert stored.secondary_resource_id is None
        assert stored.last_synced_at is None
        assert stored.status == CredentialStatus.ACTIVE

    async def test_one_record_per_account_and_platform(
        self, credential_store, make_credential
    ) -> None:
        await credential_store.upsert(make_credential())
        await credential_store.upsert(make_credential())
        await credential_store.upsert(
            make_credential(platform=Platform.GOOGLE, resource_id="locations/1")
        )
        await credential_store.upsert(make_credential(account_id="A2"))

        credentials = await credential_store.list_for_account("A1")

        assert [c.platform for c in credentials] == [Platform.GOOGLE, Platform.META]


class TestMarkExpired:
    async def test_marks_once(self, credential_store, make_credential) -> None:
        await credential_store.upsert(make_credential())

        assert await credential_store.mark_expired("A1", Platform.META) is True
        assert await credential_store.mark_expired("A1", Platform.META) is False

        stored = await credential_store.get("A1", Platform.META)
        assert stored.status == CredentialStatus.EXPIRED

    async def test_missing_credential(self, credential_store) -> None:
        assert await credential_store.mark_expired("A1", Platform.META) is False

    async def test_expired_credentials_are_not_listed_active(
        self, credential_store, make_credential
    ) -> None:
        await credential_store.upsert(make_credential())
        await credential_store.upsert(make_credential(account_id="A2"))
        await credential_store.mark_expired("A2", Platform.META)

        active = await credential_store.list_active()

        assert [(c.account_id, c.platform) for c in active] == [("A1", Platform.META)]


class TestTouchSyncedAt:
    async def test_sets_first_watermark(self, credential_store, make_credential) -> None:
        await credential_store.upsert(make_credential())

        assert await credential_store.touch_synced_at("A1", Platform.META, T0) is True

        stored = await credential_store.get("A1", Platform.META)
        assert stored.last_synced_at == T0

    async def test_never_moves_backward(self, credential_store, make_credential) -> None:
        await credential_store.upsert(make_credential(last_synced_at=T0))

        assert (
            await credential_store.touch_synced_at("A1", Platform.META, T0 - timedelta(hours=1))
            is False
        )
        assert await credential_store.touch_synced_at("A1", Platform.META, T0) is False

        stored = await credential_store.get("A1", Platform.META)
        assert stored.last_synced_at == T0

    async def test_moves_forward(self, credential_store, make_credential) -> None:
        await credential_store.upsert(make_credential(last_synced_at=T0))
        later = T0 + timedelta(minutes=5)

        assert await credential_store.touch_synced_at("A1", Platform.META, later) is True

        stored = await credential_store.get("A1", Platform.META)
        assert stored.last_synced_at == later

    async def test_keeps_status_and_tokens(
        self, credential_store, make_credential, encryptor
    ) -> None:
        await credential_store.upsert(make_credential(access_token="tok"))

        await credential_store.touch_synced_at("A1", Platform.META, T0)

        stored = await credential_store.get("A1", Platform.META)
        assert stored.status == CredentialStatus.ACTIVE
        assert encryptor.decrypt(stored.access_token_encrypted) == "tok"

    async def test_missing_credential(self, credential_store) -> None:
        assert await credential_store.touch_synced_at("A1", Platform.META, T0) is False
