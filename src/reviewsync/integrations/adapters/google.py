"""Google Business Profile review adapter."""

from datetime import datetime
from typing import Any, AsyncIterator, Optional

import httpx

from reviewsync.integrations.adapters.base import (
    ReviewAdapter,
    ReviewPage,
    classify_error_response,
    derive_review_id,
    timestamp_token,
)
from reviewsync.integrations.errors import AuthExpiredError, TransientError
from reviewsync.integrations.http import parse_json, request_with_retries
from reviewsync.integrations.models import DecryptedCredential, NormalizedReview, Platform

REVIEWS_API_BASE = "https://mybusiness.googleapis.com/v4"
PAGE_SIZE = 50

STAR_RATINGS = {
    "STAR_RATING_UNSPECIFIED": 0,
    "ONE": 1,
    "TWO": 2,
    "THREE": 3,
    "FOUR": 4,
    "FIVE": 5,
}


def location_path(credential: DecryptedCredential) -> str:
    """Build ``accounts/{a}/locations/{l}`` from the stored identifiers.

    Raises:
        AuthExpiredError: If the owning account is unknown, so the
            credential must be reconnected
    """
    if credential.resource_id.startswith("accounts/"):
        return credential.resource_id
    if not credential.secondary_resource_id:
        raise AuthExpiredError("Google credential has no account; reconnect required")
    return f"{credential.secondary_resource_id}/{credential.resource_id}"


class GoogleReviewAdapter(ReviewAdapter):
    """Reads location reviews, following nextPageToken."""

    platform = Platform.GOOGLE

    async def iter_pages(
        self, client: httpx.AsyncClient, credential: DecryptedCredential
    ) -> AsyncIterator[ReviewPage]:
        url = f"{REVIEWS_API_BASE}/{location_path(credential)}/reviews"
        headers = {"Authorization": f"Bearer {credential.access_token}"}
        page_token: Optional[str] = None

        while True:
            params: dict[str, Any] = {"pageSize": PAGE_SIZE, "orderBy": "updateTime desc"}
            if page_token:
                params["pageToken"] = page_token
            response = await request_with_retries(
                client, "GET", url, self.http_settings, headers=headers, params=params
            )
            if not response.is_success:
                raise classify_error_response(response)

            data = parse_json(response)
            if not isinstance(data, dict):
                raise TransientError("Google reviews response is not an object")
            reviews = data.get("reviews", [])
            if not isinstance(reviews, list):
                raise TransientError("Google reviews field is not a list")

            page_token = data.get("nextPageToken")
            yield ReviewPage(reviews, has_more=bool(page_token))
            if not page_token:
                return

    def normalize(
        self, item: dict[str, Any], credential: DecryptedCredential, ingested_at: datetime
    ) -> NormalizedReview:
        reviewer = item.get("reviewer") or {}
        author = reviewer.get("displayName") or "Anonymous"
        raw_date = item.get("createTime") or item.get("updateTime")

        return NormalizedReview(
            id=derive_review_id(
                self.platform,
                item.get("reviewId"),
                credential.resource_id,
                timestamp_token(raw_date),
                author,
            ),
            platform=self.platform,
            author=author,
            rating=_star_rating(item.get("starRating")),
            comment=item.get("comment") or "",
            review_date=self.resolve_review_date(raw_date, credential, ingested_at),
        )


def _star_rating(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return STAR_RATINGS.get(str(value).upper(), 0) if value is not None else 0
