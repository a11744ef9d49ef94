"""Sync orchestrator: pulls reviews from every connected platform.

For each requested platform the orchestrator loads and decrypts the
credential, refreshes it when it is about to expire, asks the platform
adapter for reviews newer than the watermark, upserts them and advances the
watermark. Platforms are synced concurrently and fail independently; the
same (account, platform) pair is never synced by two tasks at once.
"""

import asyncio
from datetime import datetime
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field

from reviewsync.core.timeutils import ensure_utc, utcnow
from reviewsync.integrations.adapters.base import ReviewAdapter
from reviewsync.integrations.credentials.encryption import CredentialEncryption
from reviewsync.integrations.errors import AuthExpiredError, CryptoError, TransientError
from reviewsync.integrations.models import (
    DecryptedCredential,
    ExternalReview,
    IntegrationCredential,
    Platform,
    PlatformSyncResult,
    SyncReason,
    SyncReport,
    SyncStatus,
)
from reviewsync.integrations.oauth.manager import OAuthManager
from reviewsync.observability.logging import correlation_scope, get_logger
from reviewsync.storage.base import CredentialStore, ReviewRepository
from reviewsync.sync.locks import KeyedLocks

logger = get_logger(__name__)


class BatchSyncResult(BaseModel):
    """Outcome of syncing several accounts.

    Attributes:
        reports: Sync report per account that completed
        errors: Error message per account that raised unexpectedly
    """

    reports: dict[str, SyncReport] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def total_created(self) -> int:
        return sum(r.total_created for r in self.reports.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "accounts": len(self.reports) + len(self.errors),
            "totalCreated": self.total_created,
            "reports": {account: r.to_dict() for account, r in self.reports.items()},
            "errors": dict(self.errors),
        }


class SyncOrchestrator:
    """Coordinates credential store, adapters and review repository.

    Example:
        >>> orchestrator = SyncOrchestrator(
        ...     credential_store=store,
        ...     review_repository=reviews,
        ...     adapters=build_adapters(),
        ...     encryptor=CredentialEncryption(key),
        ... )
        >>> report = await orchestrator.sync_account("acct-1", {Platform.META})
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        review_repository: ReviewRepository,
        adapters: dict[Platform, ReviewAdapter],
        encryptor: CredentialEncryption,
        oauth_manager: Optional[OAuthManager] = None,
        sync_timeout_seconds: float = 120.0,
        max_concurrent_accounts: int = 4,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            credential_store: Credential persistence
            review_repository: Review persistence
            adapters: Review adapter per platform
            encryptor: Credential cipher
            oauth_manager: Used to refresh credentials nearing expiry
            sync_timeout_seconds: Deadline for syncing one platform
            max_concurrent_accounts: Accounts synced at once in batch runs
            locks: Per-(account, platform) locks, shared when several
                orchestrators run in one process
        """
        self._store = credential_store
        self._reviews = review_repository
        self._adapters = adapters
        self._encryptor = encryptor
        self._oauth = oauth_manager
        self._sync_timeout = sync_timeout_seconds
        self._max_concurrent_accounts = max(1, max_concurrent_accounts)
        self._locks = locks or KeyedLocks()

    @property
    def platforms(self) -> list[Platform]:
        return list(self._adapters)

    async def sync_account(
        self,
        account_id: str,
        platforms: Optional[Iterable[Platform]] = None,
        since: Optional[datetime] = None,
    ) -> SyncReport:
        """Sync reviews for one account.

        Args:
            account_id: Account to sync
            platforms: Platforms to sync (default: every platform with an adapter)
            since: Override the stored watermark for this run

        Returns:
            Per-platform results; never raises for a platform failure
        """
        with correlation_scope("sync"):
            return await self._sync_account(account_id, platforms, since)

    async def _sync_account(
        self,
        account_id: str,
        platforms: Optional[Iterable[Platform]],
        since: Optional[datetime],
    ) -> SyncReport:
        started_at = utcnow()
        targets = list(dict.fromkeys(platforms)) if platforms is not None else self.platforms
        since = ensure_utc(since)

        logger.info(
            "sync_account_started",
            account_id=account_id,
            platforms=[p.value for p in targets],
            since=since.isoformat() if since else None,
        )

        results = await asyncio.gather(
            *(self._sync_platform_guarded(account_id, p, since, started_at) for p in targets)
        )
        report = SyncReport(
            account_id=account_id,
            started_at=started_at,
            results={r.platform: r for r in results},
        )

        logger.info(
            "sync_account_completed",
            account_id=account_id,
            success=report.success,
            total_created=report.total_created,
            duration_ms=int((utcnow() - started_at).total_seconds() * 1000),
        )
        return report

    async def sync_accounts(
        self, account_ids: Iterable[str], since: Optional[datetime] = None
    ) -> BatchSyncResult:
        """Sync several accounts; one account's failure never stops the others."""
        return await self._run_batch({account_id: None for account_id in account_ids}, since)

    async def sync_all_connected(self) -> BatchSyncResult:
        """Sync every account that has at least one active credential."""
        with correlation_scope("batch"):
            by_account: dict[str, list[Platform]] = {}
            for credential in await self._store.list_active():
                if credential.platform in self._adapters:
                    by_account.setdefault(credential.account_id, []).append(credential.platform)
            logger.info("sync_all_connected_started", accounts=len(by_account))
            return await self._run_batch(by_account, None)

    async def _run_batch(
        self,
        targets: dict[str, Optional[list[Platform]]],
        since: Optional[datetime],
    ) -> BatchSyncResult:
        batch = BatchSyncResult()
        semaphore = asyncio.Semaphore(self._max_concurrent_accounts)

        async def run(account_id: str, platforms: Optional[list[Platform]]) -> None:
            async with semaphore:
                try:
                    batch.reports[account_id] = await self.sync_account(
                        account_id, platforms, since
                    )
                except Exception as e:
                    logger.exception("sync_account_failed", account_id=account_id)
                    batch.errors[account_id] = f"{type(e).__name__}: {e}"

        with correlation_scope("batch"):
            await asyncio.gather(*(run(a, p) for a, p in targets.items()))

            logger.info(
                "sync_batch_completed",
                accounts=len(targets),
                failed_accounts=len(batch.errors),
                total_created=batch.total_created,
            )
        return batch

    async def _sync_platform_guarded(
        self,
        account_id: str,
        platform: Platform,
        since: Optional[datetime],
        started_at: datetime,
    ) -> PlatformSyncResult:
        """Run one platform sync under its lock and deadline, isolating failures."""
        try:
            async with self._locks.hold((account_id, platform)):
                result = await asyncio.wait_for(
                    self._sync_platform(account_id, platform, since, started_at),
                    timeout=self._sync_timeout,
                )
        except asyncio.TimeoutError:
            logger.warning(
                "sync_platform_timeout",
                account_id=account_id,
                platform=platform.value,
                timeout_seconds=self._sync_timeout,
            )
            result = PlatformSyncResult.failed_result(
                platform, SyncReason.TIMEOUT, f"Sync exceeded {self._sync_timeout:g}s"
            )
        except Exception as e:
            logger.exception("sync_platform_error", account_id=account_id, platform=platform.value)
            result = PlatformSyncResult.failed_result(
                platform, SyncReason.TRANSIENT_ERROR, f"{type(e).__name__}: {e}"
            )

        logger.info(
            "sync_platform_completed",
            account_id=account_id,
            platform=platform.value,
            status=result.status.value,
            reason=result.reason.value if result.reason else None,
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
            failed=result.failed,
        )
        return result

    async def _sync_platform(
        self,
        account_id: str,
        platform: Platform,
        since: Optional[datetime],
        started_at: datetime,
    ) -> PlatformSyncResult:
        adapter = self._adapters.get(platform)
        if adapter is None:
            return PlatformSyncResult.skipped_result(
                platform, SyncReason.NOT_SUPPORTED, "No adapter for platform"
            )

        credential = await self._store.get(account_id, platform)
        if credential is None:
            return PlatformSyncResult.skipped_result(platform, SyncReason.NOT_CONNECTED)
        if not credential.is_active:
            return PlatformSyncResult.skipped_result(platform, SyncReason.NEEDS_REAUTH)

        try:
            credential = await self._refresh_if_needed(credential)
            decrypted = self._decrypt(credential)
            fetched = await adapter.fetch_reviews(
                decrypted, since if since is not None else credential.last_synced_at
            )
        except CryptoError as e:
            logger.critical(
                "credential_undecryptable",
                account_id=account_id,
                platform=platform.value,
                error=e.message,
                exc_info=True,
            )
            await self._store.mark_expired(account_id, platform)
            return PlatformSyncResult.failed_result(
                platform, SyncReason.CREDENTIAL_UNDECRYPTABLE, e.message
            )
        except AuthExpiredError as e:
            changed = await self._store.mark_expired(account_id, platform)
            logger.warning(
                "credential_marked_expired",
                account_id=account_id,
                platform=platform.value,
                changed=changed,
                error=e.message,
            )
            return PlatformSyncResult.failed_result(platform, SyncReason.AUTH_EXPIRED, e.message)
        except TransientError as e:
            logger.warning(
                "sync_platform_transient_error",
                account_id=account_id,
                platform=platform.value,
                error=e.message,
            )
            return PlatformSyncResult.failed_result(
                platform, SyncReason.TRANSIENT_ERROR, e.message
            )

        reviews = [
            ExternalReview.from_normalized(review, account_id, started_at)
            for review in fetched.reviews
        ]
        counts = await self._reviews.upsert_many(account_id, reviews)
        message = None
        if fetched.truncated:
            # Reviews past the page cap were never read; the watermark stays put
            logger.warning(
                "sync_watermark_held",
                account_id=account_id,
                platform=platform.value,
                watermark=(
                    credential.last_synced_at.isoformat() if credential.last_synced_at else None
                ),
            )
            message = "Pagination stopped at the page cap; watermark not advanced"
        else:
            await self._store.touch_synced_at(account_id, platform, started_at)

        return PlatformSyncResult(
            platform=platform,
            status=SyncStatus.SYNCED,
            created=counts.created,
            updated=counts.updated,
            skipped=fetched.skipped,
            failed=fetched.failed,
            truncated=fetched.truncated,
            message=message,
        )

    async def _refresh_if_needed(self, credential: IntegrationCredential) -> IntegrationCredential:
        if self._oauth is None or not credential.needs_refresh():
            return credential
        if not self._oauth.supports_refresh(credential.platform):
            return credential
        logger.info(
            "credential_refresh_started",
            account_id=credential.account_id,
            platform=credential.platform.value,
        )
        return await self._oauth.refresh_credential(credential)

    def _decrypt(self, credential: IntegrationCredential) -> DecryptedCredential:
        return DecryptedCredential(
            account_id=credential.account_id,
            platform=credential.platform,
            resource_id=credential.resource_id,
            secondary_resource_id=credential.secondary_resource_id,
            access_token=self._encryptor.decrypt(credential.access_token_encrypted),
            refresh_token=self._encryptor.decrypt_optional(credential.refresh_token_encrypted),
        )
