"""SQL implementation of the review repository."""

from typing import Optional, Sequence

from sqlalchemy import desc, func, select, tuple_

from reviewsync.core.timeutils import ensure_utc
from reviewsync.integrations.models import ExternalReview, Platform, UpsertCounts
from reviewsync.storage.database import Database
from reviewsync.storage.models import ExternalReviewModel

# Keeps the IN clause under SQLite's bound-parameter limit
_LOOKUP_CHUNK = 400


class SQLReviewRepository:
    """Review repository backed by SQLAlchemy.

    Upserts run in a single session, so a batch is committed as a whole or
    rolled back as a whole.

    Attributes:
        db: Database instance for session management
    """

    def __init__(self, db: Database):
        self.db = db

    async def upsert_many(
        self, account_id: str, reviews: Sequence[ExternalReview]
    ) -> UpsertCounts:
        """Insert new reviews and update mutable fields of known ones.

        Args:
            account_id: Owning account; every review must belong to it
            reviews: Reviews to persist

        Returns:
            Created and updated counts

        Raises:
            ValueError: If a review belongs to a different account
        """
        for review in reviews:
            if review.account_id != account_id:
                raise ValueError(
                    f"Review {review.id} belongs to account {review.account_id}, not {account_id}"
                )

        # Last occurrence wins when a provider repeats an item within one batch
        unique: dict[tuple[str, str], ExternalReview] = {}
        for review in reviews:
            unique[(review.platform.value, review.id)] = review

        counts = UpsertCounts()
        if not unique:
            return counts

        async with self.db.session() as session:
            existing: dict[tuple[str, str], ExternalReviewModel] = {}
            keys = list(unique)
            for start in range(0, len(keys), _LOOKUP_CHUNK):
                chunk = keys[start : start + _LOOKUP_CHUNK]
                stmt = select(ExternalReviewModel).where(
                    ExternalReviewModel.account_id == account_id,
                    tuple_(ExternalReviewModel.platform, ExternalReviewModel.id).in_(chunk),
                )
                result = await session.execute(stmt)
                for model in result.scalars().all():
                    existing[(model.platform, model.id)] = model

            for key, review in unique.items():
                model = existing.get(key)
                if model is None:
                    session.add(
                        ExternalReviewModel(
                            platform=review.platform.value,
                            account_id=account_id,
                            id=review.id,
                            author=review.author,
                            rating=review.rating,
                            comment=review.comment,
                            review_date=ensure_utc(review.review_date),
                            synced_at=ensure_utc(review.synced_at),
                        )
                    )
                    counts.created += 1
                else:
                    model.author = review.author
                    model.rating = review.rating
                    model.comment = review.comment
                    model.review_date = ensure_utc(review.review_date)
                    model.synced_at = ensure_utc(review.synced_at)
                    counts.updated += 1

        return counts

    async def list_for_account(
        self, account_id: str, platform: Optional[Platform] = None
    ) -> list[ExternalReview]:
        async with self.db.session() as session:
            stmt = select(ExternalReviewModel).where(ExternalReviewModel.account_id == account_id)
            if platform is not None:
                stmt = stmt.where(ExternalReviewModel.platform == platform.value)
            stmt = stmt.order_by(desc(ExternalReviewModel.review_date), ExternalReviewModel.id)
            result = await session.execute(stmt)
            return [self._to_domain(m) for m in result.scalars().all()]

    async def count(self, account_id: str, platform: Optional[Platform] = None) -> int:
        async with self.db.session() as session:
            stmt = (
                select(func.count())
                .select_from(ExternalReviewModel)
                .where(ExternalReviewModel.account_id == account_id)
            )
            if platform is not None:
                stmt = stmt.where(ExternalReviewModel.platform == platform.value)
            result = await session.execute(stmt)
            return int(result.scalar_one())

    @staticmethod
    def _to_domain(model: ExternalReviewModel) -> ExternalReview:
        return ExternalReview(
            id=model.id,
            account_id=model.account_id,
            platform=Platform(model.platform),
            author=model.author,
            rating=model.rating,
            comment=model.comment,
            review_date=ensure_utc(model.review_date),
            synced_at=ensure_utc(model.synced_at),
        )
