"""Tests for shared adapter helpers."""

from datetime import datetime, timezone

import httpx
import pytest

from reviewsync.integrations.adapters.base import (
    classify_error_response,
    derive_review_id,
    parse_provider_datetime,
    sanitize_id,
    timestamp_token,
)
from reviewsync.integrations.errors import AuthExpiredError, TransientError
from reviewsync.integrations.models import Platform


class TestReviewIds:
    def test_native_id_is_prefixed_with_platform(self) -> None:
        assert derive_review_id(Platform.META, "123456", "page-1", "0", "Ann") == "meta_123456"

    def test_unsafe_characters_are_replaced(self) -> None:
        review_id = derive_review_id(
            Platform.GOOGLE, "AbC-12/x=", "locations/1", "0", "Ann"
        )
        assert review_id == "google_AbC_12_x_"

    def test_fallback_combines_resource_timestamp_and_author(self) -> None:
        review_id = derive_review_id(
            Platform.META, None, "page-1", "1700000000000", "Jane Doe"
        )
        assert review_id == "meta_page_1_1700000000000_Jane_Doe"

    def test_fallback_is_stable_across_calls(self) -> None:
        first = derive_review_id(
            Platform.META, None, "p", timestamp_token("2024-01-01T00:00:00+0000"), "A"
        )
        second = derive_review_id(
            Platform.META, None, "p", timestamp_token("2024-01-01T00:00:00+0000"), "A"
        )
        assert first == second

    def test_sanitize_keeps_word_characters(self) -> None:
        assert sanitize_id("abc_DEF_123") == "abc_DEF_123"
        assert sanitize_id("a b.c") == "a_b_c"


class TestParseProviderDatetime:
    @pytest.mark.parametrize(
        "raw",
        [
            "2024-01-15T10:30:00Z",
            "2024-01-15T10:30:00+0000",
            "2024-01-15T10:30:00+00:00",
            "2024-01-15T11:30:00+01:00",
            "2024-01-15T10:30:00.000000000Z",
        ],
    )
    def test_parses_provider_formats(self, raw) -> None:
        assert parse_provider_datetime(raw) == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_keeps_microseconds_from_long_fractions(self) -> None:
        parsed = parse_provider_datetime("2024-01-15T10:30:00.123456789Z")
        assert parsed.microsecond == 123456

    def test_epoch_seconds(self) -> None:
        assert parse_provider_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_naive_value_is_utc(self) -> None:
        parsed = parse_provider_datetime("2024-01-15T10:30:00")
        assert parsed.tzinfo is not None
        assert parsed.utcoffset().total_seconds() == 0

    @pytest.mark.parametrize("raw", [None, "", "yesterday", True, {"date": "x"}])
    def test_unparseable_returns_none(self, raw) -> None:
        assert parse_provider_datetime(raw) is None


class TestTimestampToken:
    def test_parsed_date_becomes_epoch_millis(self) -> None:
        assert timestamp_token("1970-01-01T00:00:01Z") == "1000"

    def test_unparseable_value_used_verbatim(self) -> None:
        assert timestamp_token("last tuesday") == "last tuesday"

    def test_missing_value(self) -> None:
        assert timestamp_token(None) == "undated"


class TestClassifyErrorResponse:
    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_statuses(self, status) -> None:
        assert isinstance(classify_error_response(httpx.Response(status)), AuthExpiredError)

    @pytest.mark.parametrize("code", [190, 102, 10, 200])
    def test_graph_token_errors(self, code) -> None:
        response = httpx.Response(400, json={"error": {"code": code, "message": "bad token"}})
        assert isinstance(classify_error_response(response), AuthExpiredError)

    def test_oauth_exception_with_token_code(self) -> None:
        response = httpx.Response(
            400, json={"error": {"type": "OAuthException", "code": 190, "error_subcode": 463}}
        )
        assert isinstance(classify_error_response(response), AuthExpiredError)

    @pytest.mark.parametrize("code", [4, 17, 32, 341, 613, 80001, 80004])
    def test_rate_limit_codes_are_transient(self, code) -> None:
        response = httpx.Response(
            400,
            json={"error": {"type": "OAuthException", "code": code, "message": "Too many calls"}},
        )
        assert isinstance(classify_error_response(response), TransientError)

    def test_rate_limit_wins_over_forbidden_status(self) -> None:
        response = httpx.Response(403, json={"error": {"type": "OAuthException", "code": 4}})
        assert isinstance(classify_error_response(response), TransientError)

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500),
            httpx.Response(404, json={"error": {"code": 100, "type": "GraphMethodException"}}),
            httpx.Response(400, content=b"not json"),
            httpx.Response(400, json={"error": {"type": "OAuthException", "code": 1}}),
            httpx.Response(400, json={"error": {"type": "OAuthException", "code": 17}}),
            httpx.Response(400, json={"error": {"type": "OAuthException", "code": 613}}),
            httpx.Response(429),
        ],
    )
    def test_everything_else_is_transient(self, response) -> None:
        assert isinstance(classify_error_response(response), TransientError)
