"""Outbound HTTP helpers for provider calls.

Provider calls run with a bounded timeout and a small number of retries on
transient network failures and gateway statuses. Authentication failures are
returned to the caller untouched, and a 429 honors the Retry-After header.
"""

import asyncio
import json
import math
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx
from pydantic import BaseModel, Field

from reviewsync.integrations.errors import TransientError
from reviewsync.observability.logging import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


class HttpSettings(BaseModel):
    """Timeout and retry behavior for provider HTTP calls.

    Attributes:
        timeout_seconds: Per-request timeout
        max_retries: Retries after the first attempt
        backoff_ms: Initial backoff, doubled on every retry
        max_retry_after_seconds: Upper bound on a 429 Retry-After wait
    """

    timeout_seconds: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    backoff_ms: int = Field(default=500, ge=0)
    max_retry_after_seconds: float = Field(default=30.0, ge=0)


@asynccontextmanager
async def client_session(
    http_client: Optional[httpx.AsyncClient], settings: HttpSettings
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one owned by this call."""
    if http_client is not None:
        yield http_client
        return
    async with httpx.AsyncClient(timeout=settings.timeout_seconds) as client:
        yield client


async def request_with_retries(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    settings: HttpSettings,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying transient failures with exponential backoff.

    A 429 carrying a Retry-After header in seconds waits that long instead,
    capped at ``max_retry_after_seconds``.

    Args:
        client: HTTP client to send with
        method: HTTP method
        url: Absolute URL
        settings: Timeout and retry settings
        **kwargs: Passed through to httpx (params, data, headers, ...)

    Returns:
        The final response, whatever its status code

    Raises:
        TransientError: If the request never produced a response
    """
    attempt = 0
    while True:
        delay = settings.backoff_ms * (2**attempt) / 1000.0
        try:
            response = await client.request(
                method, url, timeout=settings.timeout_seconds, **kwargs
            )
        except httpx.TransportError as e:
            if attempt >= settings.max_retries:
                raise TransientError(f"{method} {_redact(url)} failed: {type(e).__name__}") from e
            logger.warning(
                "http_request_retrying",
                method=method,
                url=_redact(url),
                attempt=attempt + 1,
                error=type(e).__name__,
            )
        else:
            retryable = response.status_code in RETRYABLE_STATUS_CODES
            if not retryable or attempt >= settings.max_retries:
                return response
            retry_after = _retry_after_seconds(response)
            if retry_after is not None:
                delay = min(retry_after, settings.max_retry_after_seconds)
            logger.warning(
                "http_request_retrying",
                method=method,
                url=_redact(url),
                attempt=attempt + 1,
                status_code=response.status_code,
                delay_seconds=delay,
            )

        await asyncio.sleep(delay)
        attempt += 1


def parse_json(response: httpx.Response) -> Any:
    """Decode a JSON body, treating malformed payloads as transient.

    Raises:
        TransientError: If the body is not valid JSON
    """
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise TransientError(
            f"Provider returned malformed JSON (status {response.status_code})"
        ) from e


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    if response.status_code != 429:
        return None
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    if not math.isfinite(seconds):
        return None
    return max(seconds, 0.0)


def _redact(url: str) -> str:
    """Drop the query string so tokens passed as parameters never reach logs."""
    return url.split("?", 1)[0]
