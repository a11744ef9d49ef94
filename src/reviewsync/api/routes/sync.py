"""Account sync, review listing and integration status routes."""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from reviewsync.api.dependencies import (
    get_credential_store,
    get_orchestrator,
    get_review_repository,
    parse_platform,
)
from reviewsync.core.timeutils import ensure_utc
from reviewsync.integrations.models import Platform
from reviewsync.storage.base import CredentialStore, ReviewRepository
from reviewsync.sync.orchestrator import SyncOrchestrator

router = APIRouter(prefix="/api/v1/accounts", tags=["sync"])


class SyncRequest(BaseModel):
    """Body of a sync trigger.

    Attributes:
        platforms: Platforms to sync; all supported platforms when omitted
        since: Override the stored watermark
    """

    platforms: Optional[list[str]] = Field(default=None)
    since: Optional[datetime] = None


@router.post("/{account_id}/sync")
async def sync_account(
    account_id: str,
    body: Optional[SyncRequest] = Body(default=None),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Sync reviews for one account.

    Per-platform failures are reported in the body; the request itself
    succeeds as long as the report could be produced.

    Example:
        >>> POST /api/v1/accounts/acct-1/sync {"platforms": ["meta"]}
        >>> {"accountId": "acct-1", "success": true, "totalCreated": 3,
        ...  "results": {"meta": {"status": "synced", "created": 3, ...}}}
    """
    body = body or SyncRequest()
    platforms: Optional[list[Platform]] = None
    if body.platforms is not None:
        platforms = [parse_platform(p) for p in body.platforms]

    report = await orchestrator.sync_account(account_id, platforms, ensure_utc(body.since))
    return report.to_dict()


@router.get("/{account_id}/reviews")
async def list_reviews(
    account_id: str,
    platform: Optional[str] = Query(None, description="Restrict to one platform"),
    reviews: ReviewRepository = Depends(get_review_repository),
) -> dict[str, Any]:
    """List persisted reviews, newest first."""
    resolved = parse_platform(platform) if platform else None
    items = await reviews.list_for_account(account_id, resolved)
    return {
        "accountId": account_id,
        "count": len(items),
        "reviews": [review.to_public_dict() for review in items],
    }


@router.get("/{account_id}/integrations")
async def integration_status(
    account_id: str,
    store: CredentialStore = Depends(get_credential_store),
) -> dict[str, Any]:
    """Report connection state per platform without exposing token material."""
    credentials = {c.platform: c for c in await store.list_for_account(account_id)}
    integrations: dict[str, Any] = {}
    for platform in Platform:
        credential = credentials.get(platform)
        if credential is None:
            integrations[platform.value] = {"connected": False, "status": None}
            continue
        integrations[platform.value] = {
            "connected": True,
            "status": credential.status.value,
            "resourceId": credential.resource_id,
            "secondaryResourceId": credential.secondary_resource_id,
            "tokenExpiry": ensure_utc(credential.token_expiry).isoformat(),
            "lastSyncedAt": (
                credential.last_synced_at.isoformat() if credential.last_synced_at else None
            ),
        }
    return {"accountId": account_id, "integrations": integrations}
