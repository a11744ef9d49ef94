"""Base class and helpers shared by platform review adapters.

An adapter fetches every review page a provider offers, normalizes each item
and drops items older than the requested since date. It fails in exactly two
ways: AuthExpiredError when the provider rejects the credential, and
TransientError for everything else.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, AsyncIterator, NamedTuple, Optional

import httpx

from reviewsync.core.timeutils import ensure_utc, utcnow
from reviewsync.integrations.errors import AuthExpiredError, IntegrationError, TransientError
from reviewsync.integrations.http import HttpSettings, client_session
from reviewsync.integrations.models import (
    DecryptedCredential,
    FetchResult,
    NormalizedReview,
    Platform,
)
from reviewsync.observability.logging import get_logger

logger = get_logger(__name__)

MAX_PAGES = 50

# Graph API error codes meaning the token is invalid, expired or lacks permission
GRAPH_AUTH_ERROR_CODES = frozenset({102, 190, 200, 10})

# Graph API rate limiting; reported as OAuthException but the token is fine
GRAPH_THROTTLE_ERROR_CODES = frozenset({4, 17, 32, 341, 613})

class ReviewPage(NamedTuple):
    """Raw items of one provider page and whether another page follows."""

    items: list[Any]
    has_more: bool


_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_]")
_FRACTION = re.compile(r"\.(\d+)")
_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def sanitize_id(value: str) -> str:
    """Replace every character outside [A-Za-z0-9_] with an underscore."""
    return _UNSAFE_ID_CHARS.sub("_", value)


def derive_review_id(
    platform: Platform,
    native_id: Optional[str],
    resource_id: str,
    timestamp: str,
    author: str,
) -> str:
    """Build the deterministic local identifier for a provider review.

    Args:
        platform: Source platform
        native_id: Provider's own review id, if it has one
        resource_id: Page or location the review belongs to
        timestamp: Stable provider timestamp token (epoch millis or raw value)
        author: Reviewer display name

    Returns:
        ``{platform}_{native_id}`` or ``{platform}_{resource}_{timestamp}_{author}``
    """
    if native_id:
        return sanitize_id(f"{platform.value}_{native_id}")
    return sanitize_id(f"{platform.value}_{resource_id}_{timestamp}_{author}")


def parse_provider_datetime(raw: Any) -> Optional[datetime]:
    """Parse an ISO 8601 string or epoch seconds into an aware UTC datetime.

    Handles a trailing ``Z``, compact offsets such as ``+0000`` and fractional
    seconds longer than microseconds.

    Returns:
        Parsed datetime, or None if the value cannot be interpreted
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        try:
            return datetime.fromtimestamp(raw, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(raw, str) or not raw.strip():
        return None

    value = raw.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    value = _COMPACT_OFFSET.sub(r"\1:\2", value)
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError:
        return None


def timestamp_token(raw: Any) -> str:
    """Stable timestamp component for derived ids.

    Parsed dates become epoch milliseconds; unparseable values are used
    verbatim so the id never depends on ingestion time.
    """
    parsed = parse_provider_datetime(raw)
    if parsed is not None:
        return str(int(parsed.timestamp() * 1000))
    if raw is None or raw == "":
        return "undated"
    return str(raw)


def is_graph_throttle_code(code: Any) -> bool:
    """True for Graph rate-limit codes, including the 800xx business use case range."""
    if not isinstance(code, int) or isinstance(code, bool):
        return False
    return code in GRAPH_THROTTLE_ERROR_CODES or 80000 <= code <= 80099


def classify_error_response(response: httpx.Response) -> IntegrationError:
    """Translate a failed provider response into the adapter error taxonomy.

    Args:
        response: Non-2xx provider response

    Returns:
        AuthExpiredError for authentication or permission failures,
        TransientError for anything else
    """
    try:
        body = response.json()
    except ValueError:
        body = None
    error = body.get("error") if isinstance(body, dict) else None
    code = error.get("code") if isinstance(error, dict) else None

    if is_graph_throttle_code(code):
        return TransientError(f"Provider rate limited the request (code {code})")
    if response.status_code in (401, 403):
        return AuthExpiredError(f"Provider rejected credential with HTTP {response.status_code}")
    if isinstance(error, dict) and code in GRAPH_AUTH_ERROR_CODES:
        return AuthExpiredError(
            f"Provider rejected credential: {error.get('message', 'OAuthException')}"
        )

    return TransientError(f"Provider returned HTTP {response.status_code}")


class ReviewAdapter(ABC):
    """Fetches and normalizes reviews from one platform.

    Subclasses implement page iteration and item normalization; this class
    owns the since filter, failure accounting and the page cap.
    """

    platform: Platform

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        http_settings: Optional[HttpSettings] = None,
        max_pages: int = MAX_PAGES,
    ) -> None:
        """Initialize adapter.

        Args:
            http_client: Optional shared HTTP client
            http_settings: Timeout and retry settings
            max_pages: Upper bound on pages fetched per call
        """
        self._http_client = http_client
        self.http_settings = http_settings or HttpSettings()
        self.max_pages = max_pages

    async def fetch_reviews(
        self, credential: DecryptedCredential, since: Optional[datetime] = None
    ) -> FetchResult:
        """Fetch reviews at or after since.

        Args:
            credential: Decrypted credential for this platform
            since: Drop reviews dated before this instant (None fetches all)

        Returns:
            Normalized reviews plus skipped and failed item counts. ``truncated``
            is set when the page cap stopped pagination before the last page.

        Raises:
            AuthExpiredError: If the provider rejects the credential
            TransientError: On network, status or payload failures
        """
        since = ensure_utc(since)
        ingested_at = utcnow()
        result = FetchResult()
        pages = 0

        async with client_session(self._http_client, self.http_settings) as client:
            try:
                async for page in self.iter_pages(client, credential):
                    pages += 1
                    for item in page.items:
                        review = self._normalize_item(item, credential, ingested_at)
                        if review is None:
                            result.failed += 1
                            continue
                        if since is not None and review.review_date < since:
                            result.skipped += 1
                            continue
                        result.reviews.append(review)

                    if page.has_more and pages >= self.max_pages:
                        result.truncated = True
                        logger.warning(
                            "review_pagination_capped",
                            platform=self.platform.value,
                            account_id=credential.account_id,
                            max_pages=self.max_pages,
                        )
                        break
            except httpx.HTTPError as e:
                raise TransientError(f"{self.platform.value} request failed: {e}") from e

        logger.debug(
            "reviews_fetched",
            platform=self.platform.value,
            account_id=credential.account_id,
            pages=pages,
            fetched=len(result.reviews),
            skipped=result.skipped,
            failed=result.failed,
            truncated=result.truncated,
        )
        return result

    @abstractmethod
    def iter_pages(
        self, client: httpx.AsyncClient, credential: DecryptedCredential
    ) -> AsyncIterator[ReviewPage]:
        """Yield each provider page in order with a flag for remaining pages.

        Raises:
            AuthExpiredError: If the provider rejects the credential
            TransientError: On any other failure
        """

    @abstractmethod
    def normalize(
        self, item: dict[str, Any], credential: DecryptedCredential, ingested_at: datetime
    ) -> NormalizedReview:
        """Translate one provider item into a NormalizedReview."""

    def resolve_review_date(
        self, raw: Any, credential: DecryptedCredential, ingested_at: datetime
    ) -> datetime:
        """Parse a provider date, falling back to ingestion time with a warning."""
        parsed = parse_provider_datetime(raw)
        if parsed is not None:
            return parsed
        logger.warning(
            "review_date_unparseable",
            platform=self.platform.value,
            account_id=credential.account_id,
            raw_value=None if raw is None else str(raw)[:64],
        )
        return ingested_at

    def _normalize_item(
        self, item: Any, credential: DecryptedCredential, ingested_at: datetime
    ) -> Optional[NormalizedReview]:
        if not isinstance(item, dict):
            logger.warning(
                "review_item_malformed",
                platform=self.platform.value,
                account_id=credential.account_id,
                item_type=type(item).__name__,
            )
            return None
        try:
            return self.normalize(item, credential, ingested_at)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                "review_item_malformed",
                platform=self.platform.value,
                account_id=credential.account_id,
                error=str(e),
            )
            return None
