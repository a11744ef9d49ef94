"""Platform review adapters.

Adapters are keyed by Platform, never by string comparison.
"""

from typing import Optional

import httpx

from reviewsync.integrations.adapters.base import ReviewAdapter
from reviewsync.integrations.adapters.google import GoogleReviewAdapter
from reviewsync.integrations.adapters.meta import MetaReviewAdapter
from reviewsync.integrations.http import HttpSettings
from reviewsync.integrations.models import Platform


def build_adapters(
    http_client: Optional[httpx.AsyncClient] = None,
    http_settings: Optional[HttpSettings] = None,
    graph_api_version: str = "v21.0",
) -> dict[Platform, ReviewAdapter]:
    """Create one adapter per supported platform."""
    return {
        Platform.GOOGLE: GoogleReviewAdapter(http_client, http_settings),
        Platform.META: MetaReviewAdapter(
            http_client, http_settings, api_version=graph_api_version
        ),
    }


__all__ = [
    "GoogleReviewAdapter",
    "MetaReviewAdapter",
    "ReviewAdapter",
    "build_adapters",
]
