"""Domain models for integration credentials, reviews, and sync reports.

These pydantic models are the shapes passed between the handshake handler,
the credential store, platform adapters, the review repository and the sync
orchestrator. ORM models in reviewsync.storage.models mirror the persisted
ones.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from reviewsync.core.timeutils import ensure_utc, utcnow

# Refresh tokens this close to expiry before handing them to an adapter
TOKEN_REFRESH_BUFFER = timedelta(minutes=5)


class Platform(str, Enum):
    """External review source."""

    GOOGLE = "google"
    META = "meta"

    @classmethod
    def parse(cls, value: "str | Platform") -> "Platform":
        """Parse a platform name, accepting legacy aliases.

        Args:
            value: Platform name such as "google", "meta" or "facebook"

        Returns:
            Matching Platform member

        Raises:
            ValueError: If the name is not a known platform
        """
        if isinstance(value, Platform):
            return value
        normalized = value.strip().lower()
        normalized = _PLATFORM_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown platform: {value!r}") from None


_PLATFORM_ALIASES = {"facebook": "meta"}


class CredentialStatus(str, Enum):
    """Lifecycle state of a stored credential."""

    ACTIVE = "active"
    EXPIRED = "expired"


class IntegrationCredential(BaseModel):
    """Persisted credential record for one (account, platform) pair.

    Token fields hold ciphertext produced by CredentialEncryption; plaintext
    never appears on this model.

    Attributes:
        account_id: Owning account (tenant) identifier
        platform: Review platform
        resource_id: Provider resource id (page id, location name)
        secondary_resource_id: Optional linked id (Instagram business
            account, Google account name)
        access_token_encrypted: Encrypted access token
        refresh_token_encrypted: Encrypted refresh or long-lived token
        token_expiry: When the access token stops being trusted
        last_synced_at: Sync watermark, None before the first sync
        status: Active or expired
    """

    account_id: str = Field(..., min_length=1)
    platform: Platform
    resource_id: str = Field(..., min_length=1)
    secondary_resource_id: Optional[str] = None
    access_token_encrypted: bytes = Field(repr=False)
    refresh_token_encrypted: Optional[bytes] = Field(default=None, repr=False)
    token_expiry: datetime
    last_synced_at: Optional[datetime] = None
    status: CredentialStatus = CredentialStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == CredentialStatus.ACTIVE

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        """Check whether the access token is expired or about to expire.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            True if the token expires within TOKEN_REFRESH_BUFFER
        """
        now = now or utcnow()
        return ensure_utc(self.token_expiry) < now + TOKEN_REFRESH_BUFFER


class DecryptedCredential(BaseModel):
    """Plaintext view of a credential, alive only for one adapter call."""

    account_id: str
    platform: Platform
    resource_id: str
    secondary_resource_id: Optional[str] = None
    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)


class NormalizedReview(BaseModel):
    """A provider review translated into the common shape.

    Attributes:
        id: Deterministic local identifier
        platform: Source platform
        author: Reviewer display name
        rating: Rating on the provider's native scale (0 when absent)
        comment: Review text, possibly empty
        review_date: Provider event time
    """

    id: str = Field(..., min_length=1)
    platform: Platform
    author: str
    rating: int
    comment: str = ""
    review_date: datetime


class ExternalReview(BaseModel):
    """A persisted review as exposed to collaborators."""

    id: str
    account_id: str
    platform: Platform
    author: str
    rating: int
    comment: str
    review_date: datetime
    synced_at: datetime

    @classmethod
    def from_normalized(
        cls, review: NormalizedReview, account_id: str, synced_at: datetime
    ) -> "ExternalReview":
        return cls(
            id=review.id,
            account_id=account_id,
            platform=review.platform,
            author=review.author,
            rating=review.rating,
            comment=review.comment,
            review_date=review.review_date,
            synced_at=synced_at,
        )

    def to_public_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase keys collaborators read."""
        return {
            "id": self.id,
            "accountId": self.account_id,
            "platform": self.platform.value,
            "author": self.author,
            "rating": self.rating,
            "comment": self.comment,
            "reviewDate": self.review_date.isoformat(),
            "syncedAt": self.synced_at.isoformat(),
        }


class FetchResult(BaseModel):
    """Outcome of a successful adapter fetch.

    Attributes:
        reviews: Normalized reviews at or after the since date
        skipped: Provider items dropped as older than the since date
        failed: Provider items that could not be normalized
        truncated: Pagination stopped at the page cap with pages remaining
    """

    reviews: list[NormalizedReview] = Field(default_factory=list)
    skipped: int = 0
    failed: int = 0
    truncated: bool = False


class UpsertCounts(BaseModel):
    """Insert/update tally returned by the review repository."""

    created: int = 0
    updated: int = 0


class SyncStatus(str, Enum):
    """Per-platform sync outcome."""

    SYNCED = "synced"
    SKIPPED = "skipped"
    FAILED = "failed"


class SyncReason(str, Enum):
    """Why a platform was skipped or failed."""

    NOT_CONNECTED = "not_connected"
    NEEDS_REAUTH = "needs_reauth"
    AUTH_EXPIRED = "auth_expired"
    TRANSIENT_ERROR = "transient_error"
    CREDENTIAL_UNDECRYPTABLE = "credential_undecryptable"
    TIMEOUT = "timeout"
    NOT_SUPPORTED = "not_supported"


class PlatformSyncResult(BaseModel):
    """Result of syncing one platform for one account."""

    model_config = ConfigDict(use_enum_values=False)

    platform: Platform
    status: SyncStatus
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    truncated: bool = False
    reason: Optional[SyncReason] = None
    message: Optional[str] = None

    @classmethod
    def skipped_result(
        cls, platform: Platform, reason: SyncReason, message: Optional[str] = None
    ) -> "PlatformSyncResult":
        return cls(platform=platform, status=SyncStatus.SKIPPED, reason=reason, message=message)

    @classmethod
    def failed_result(
        cls, platform: Platform, reason: SyncReason, message: Optional[str] = None
    ) -> "PlatformSyncResult":
        return cls(platform=platform, status=SyncStatus.FAILED, reason=reason, message=message)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
        }
        if self.truncated:
            data["truncated"] = True
        if self.reason is not None:
            data["reason"] = self.reason.value
        if self.message:
            data["message"] = self.message
        return data


class SyncReport(BaseModel):
    """Aggregated per-platform results of one sync invocation."""

    account_id: str
    started_at: datetime
    results: dict[Platform, PlatformSyncResult] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        """True when at least one platform synced."""
        return any(r.status == SyncStatus.SYNCED for r in self.results.values())

    @property
    def total_created(self) -> int:
        return sum(r.created for r in self.results.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "accountId": self.account_id,
            "startedAt": self.started_at.isoformat(),
            "success": self.success,
            "totalCreated": self.total_created,
            "results": {
                platform.value: result.to_dict() for platform, result in self.results.items()
            },
        }
