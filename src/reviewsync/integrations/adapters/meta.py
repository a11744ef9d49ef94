"""Meta (Facebook) page ratings adapter."""

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
from reviewsync.integrations.errors import TransientError
from reviewsync.integrations.http import HttpSettings, parse_json, request_with_retries
from reviewsync.integrations.models import DecryptedCredential, NormalizedReview, Platform

GRAPH_API_BASE = "https://graph.facebook.com"
RATING_FIELDS = "reviewer,rating,created_time,review_text,recommendation_type,open_graph_story"
PAGE_LIMIT = 100


class MetaReviewAdapter(ReviewAdapter):
    """Reads the ratings edge of the connected page, following paging.next.

    The Graph API has no server-side date filter on this edge, so the full
    window is fetched and filtered locally.
    """

    platform = Platform.META

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        http_settings: Optional[HttpSettings] = None,
        max_pages: int = 50,
        api_version: str = "v21.0",
    ) -> None:
        super().__init__(http_client, http_settings, max_pages)
        self.graph_url = f"{GRAPH_API_BASE}/{api_version}"

    async def iter_pages(
        self, client: httpx.AsyncClient, credential: DecryptedCredential
    ) -> AsyncIterator[ReviewPage]:
        url = f"{self.graph_url}/{credential.resource_id}/ratings"
        params: Optional[dict[str, Any]] = {
            "fields": RATING_FIELDS,
            "limit": PAGE_LIMIT,
            "access_token": credential.access_token,
        }

        while True:
            response = await request_with_retries(
                client, "GET", url, self.http_settings, params=params
            )
            if not response.is_success:
                raise classify_error_response(response)

            data = parse_json(response)
            if not isinstance(data, dict) or not isinstance(data.get("data"), list):
                raise TransientError("Graph ratings response has no data list")

            paging = data.get("paging") or {}
            next_url = paging.get("next") if isinstance(paging, dict) else None
            yield ReviewPage(data["data"], has_more=bool(next_url))
            if not next_url:
                return
            # The next link already carries the query, including the token
            url, params = next_url, None

    def normalize(
        self, item: dict[str, Any], credential: DecryptedCredential, ingested_at: datetime
    ) -> NormalizedReview:
        reviewer = item.get("reviewer") or {}
        author = reviewer.get("name") or "Anonymous"
        story = item.get("open_graph_story") or {}
        native_id = item.get("id") or story.get("id")
        raw_date = item.get("created_time")

        rating = item.get("rating")
        return NormalizedReview(
            id=derive_review_id(
                self.platform,
                native_id,
                credential.resource_id,
                timestamp_token(raw_date),
                author,
            ),
            platform=self.platform,
            author=author,
            rating=int(rating) if rating is not None else 0,
            comment=item.get("review_text") or "",
            review_date=self.resolve_review_date(raw_date, credential, ingested_at),
        )
