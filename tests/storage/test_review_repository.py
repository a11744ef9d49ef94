"""Tests for review repository implementations."""

from datetime import datetime, timedelta, timezone

import pytest

from reviewsync.integrations.models import ExternalReview, Platform

T0 = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_review(
    review_id: str,
    account_id: str = "A1",
    platform: Platform = Platform.META,
    rating: int = 5,
    comment: str = "Nice",
    review_date: datetime = T0,
    synced_at: datetime = T0,
) -> ExternalReview:
    return ExternalReview(
        id=review_id,
        account_id=account_id,
        platform=platform,
        author="Jane",
        rating=rating,
        comment=comment,
        review_date=review_date,
        synced_at=synced_at,
    )


async def test_creates_then_updates(review_repository) -> None:
    first = await review_repository.upsert_many(
        "A1", [make_review("meta_1"), make_review("meta_2")]
    )
    second = await review_repository.upsert_many(
        "A1", [make_review("meta_2", rating=3, comment="Edited"), make_review("meta_3")]
    )

    assert (first.created, first.updated) == (2, 0)
    assert (second.created, second.updated) == (1, 1)
    assert await review_repository.count("A1") == 3

    reviews = {r.id: r for r in await review_repository.list_for_account("A1")}
    assert reviews["meta_2"].rating == 3
    assert reviews["meta_2"].comment == "Edited"


async def test_reupserting_same_batch_creates_nothing(review_repository) -> None:
    batch = [make_review("meta_1"), make_review("meta_2")]
    await review_repository.upsert_many("A1", batch)

    counts = await review_repository.upsert_many("A1", batch)

    assert counts.created == 0
    assert counts.updated == 2
    assert await review_repository.count("A1") == 2


async def test_duplicates_within_batch_count_once(review_repository) -> None:
    counts = await review_repository.upsert_many(
        "A1", [make_review("meta_1", rating=1), make_review("meta_1", rating=4)]
    )

    assert counts.created == 1
    reviews = await review_repository.list_for_account("A1")
    assert [(r.id, r.rating) for r in reviews] == [("meta_1", 4)]


async def test_same_id_on_other_platform_or_account_is_distinct(review_repository) -> None:
    await review_repository.upsert_many("A1", [make_review("x")])
    await review_repository.upsert_many("A1", [make_review("x", platform=Platform.GOOGLE)])
    await review_repository.upsert_many("A2", [make_review("x", account_id="A2")])

    assert await review_repository.count("A1") == 2
    assert await review_repository.count("A1", Platform.GOOGLE) == 1
    assert await review_repository.count("A2") == 1


async def test_empty_batch(review_repository) -> None:
    counts = await review_repository.upsert_many("A1", [])

    assert (counts.created, counts.updated) == (0, 0)


async def test_foreign_review_rejects_whole_batch(review_repository) -> None:
    with pytest.raises(ValueError):
        await review_repository.upsert_many(
            "A1", [make_review("meta_1"), make_review("meta_2", account_id="A2")]
        )

    assert await review_repository.count("A1") == 0
    assert await review_repository.count("A2") == 0


async def test_lists_newest_first_with_platform_filter(review_repository) -> None:
    await review_repository.upsert_many(
        "A1",
        [
            make_review("meta_old", review_date=T0 - timedelta(days=2)),
            make_review("meta_new", review_date=T0),
            make_review(
                "google_mid", platform=Platform.GOOGLE, review_date=T0 - timedelta(days=1)
            ),
        ],
    )

    everything = await review_repository.list_for_account("A1")
    meta_only = await review_repository.list_for_account("A1", Platform.META)

    assert [r.id for r in everything] == ["meta_new", "google_mid", "meta_old"]
    assert [r.id for r in meta_only] == ["meta_new", "meta_old"]
    assert all(r.review_date.tzinfo is not None for r in everything)


async def test_large_batch(review_repository) -> None:
    batch = [make_review(f"meta_{i}") for i in range(1000)]

    counts = await review_repository.upsert_many("A1", batch)
    again = await review_repository.upsert_many("A1", batch)

    assert counts.created == 1000
    assert again.updated == 1000
    assert await review_repository.count("A1") == 1000

