"""In-memory implementations of the storage protocols.

This module provides dictionary-based storage guarded by asyncio locks,
suitable for development, testing, and single-process deployments.
"""

import asyncio
from datetime import datetime
from typing import Optional, Sequence

from reviewsync.core.timeutils import ensure_utc
from reviewsync.integrations.models import (
    CredentialStatus,
    ExternalReview,
    IntegrationCredential,
    Platform,
    UpsertCounts,
)


class InMemoryCredentialStore:
    """In-memory implementation of CredentialStore.

    Attributes:
        _credentials: Mapping of (account_id, platform) to credential
        _lock: Asyncio lock for safe concurrent access
    """

    def __init__(self) -> None:
        self._credentials: dict[tuple[str, Platform], IntegrationCredential] = {}
        self._lock = asyncio.Lock()

    async def get(self, account_id: str, platform: Platform) -> Optional[IntegrationCredential]:
        async with self._lock:
            credential = self._credentials.get((account_id, platform))
            return credential.model_copy() if credential else None

    async def upsert(self, credential: IntegrationCredential) -> None:
        async with self._lock:
            self._credentials[(credential.account_id, credential.platform)] = (
                credential.model_copy()
            )

    async def mark_expired(self, account_id: str, platform: Platform) -> bool:
        async with self._lock:
            credential = self._credentials.get((account_id, platform))
            if credential is None or credential.status == CredentialStatus.EXPIRED:
                return False
            self._credentials[(account_id, platform)] = credential.model_copy(
                update={"status": CredentialStatus.EXPIRED}
            )
            return True

    async def touch_synced_at(
        self, account_id: str, platform: Platform, timestamp: datetime
    ) -> bool:
        timestamp = ensure_utc(timestamp)
        async with self._lock:
            credential = self._credentials.get((account_id, platform))
            if credential is None:
                return False
            current = ensure_utc(credential.last_synced_at)
            if current is not None and current >= timestamp:
                return False
            self._credentials[(account_id, platform)] = credential.model_copy(
                update={"last_synced_at": timestamp}
            )
            return True

    async def list_for_account(self, account_id: str) -> list[IntegrationCredential]:
        async with self._lock:
            return [
                c.model_copy()
                for (owner, _), c in sorted(self._credentials.items(), key=lambda i: i[0][1].value)
                if owner == account_id
            ]

    async def list_active(self) -> list[IntegrationCredential]:
        async with self._lock:
            return [
                c.model_copy()
                for c in self._credentials.values()
                if c.status == CredentialStatus.ACTIVE
            ]


class InMemoryReviewRepository:
    """In-memory implementation of ReviewRepository.

    Attributes:
        _reviews: Mapping of (platform, account_id, id) to review
        _lock: Asyncio lock for safe concurrent access
    """

    def __init__(self) -> None:
        self._reviews: dict[tuple[Platform, str, str], ExternalReview] = {}
        self._lock = asyncio.Lock()

    async def upsert_many(
        self, account_id: str, reviews: Sequence[ExternalReview]
    ) -> UpsertCounts:
        for review in reviews:
            if review.account_id != account_id:
                raise ValueError(
                    f"Review {review.id} belongs to account {review.account_id}, not {account_id}"
                )

        counts = UpsertCounts()
        async with self._lock:
            seen: set[tuple[Platform, str, str]] = set()
            for review in reviews:
                key = (review.platform, account_id, review.id)
                if key in self._reviews and key not in seen:
                    counts.updated += 1
                elif key not in seen:
                    counts.created += 1
                seen.add(key)
                self._reviews[key] = review.model_copy()
        return counts

    async def list_for_account(
        self, account_id: str, platform: Optional[Platform] = None
    ) -> list[ExternalReview]:
        async with self._lock:
            matches = [
                r.model_copy()
                for (p, owner, _), r in self._reviews.items()
                if owner == account_id and (platform is None or p == platform)
            ]
        matches.sort(key=lambda r: r.id)
        matches.sort(key=lambda r: ensure_utc(r.review_date), reverse=True)
        return matches

    async def count(self, account_id: str, platform: Optional[Platform] = None) -> int:
        async with self._lock:
            return sum(
                1
                for (p, owner, _) in self._reviews
                if owner == account_id and (platform is None or p == platform)
            )
