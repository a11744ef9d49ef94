"""Abstract repository interfaces for the storage layer.

This module defines Protocol classes for the credential store and the review
repository, so the orchestrator and handshake handler can run against either
the SQL or the in-memory implementation.
"""

from datetime import datetime
from typing import Optional, Protocol, Sequence

from reviewsync.integrations.models import (
    ExternalReview,
    IntegrationCredential,
    Platform,
    UpsertCounts,
)


class CredentialStore(Protocol):
    """Protocol for credential persistence, one record per (account, platform)."""

    async def get(self, account_id: str, platform: Platform) -> Optional[IntegrationCredential]:
        """Retrieve the credential for an account and platform.

        Returns:
            The credential if one exists, None otherwise
        """
        ...

    async def upsert(self, credential: IntegrationCredential) -> None:
        """Create or fully overwrite the credential for its (account, platform) key."""
        ...

    async def mark_expired(self, account_id: str, platform: Platform) -> bool:
        """Flag a credential as expired.

        Returns:
            True if the status changed, False if it was already expired or absent
        """
        ...

    async def touch_synced_at(
        self, account_id: str, platform: Platform, timestamp: datetime
    ) -> bool:
        """Advance the sync watermark, never moving it backward.

        Returns:
            True if the stored watermark moved forward
        """
        ...

    async def list_for_account(self, account_id: str) -> list[IntegrationCredential]:
        """List every credential owned by an account."""
        ...

    async def list_active(self) -> list[IntegrationCredential]:
        """List all credentials with status active, across accounts."""
        ...


class ReviewRepository(Protocol):
    """Protocol for normalized review persistence."""

    async def upsert_many(
        self, account_id: str, reviews: Sequence[ExternalReview]
    ) -> UpsertCounts:
        """Insert or update reviews keyed by (platform, account_id, id).

        The whole batch is applied atomically: either every review is
        persisted or none is.

        Returns:
            Number of rows created and updated
        """
        ...

    async def list_for_account(
        self, account_id: str, platform: Optional[Platform] = None
    ) -> list[ExternalReview]:
        """List reviews for an account, newest review_date first."""
        ...

    async def count(self, account_id: str, platform: Optional[Platform] = None) -> int:
        """Count reviews for an account, optionally restricted to a platform."""
        ...
