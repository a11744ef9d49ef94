"""SQLAlchemy ORM models for credentials and external reviews."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, LargeBinary, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from reviewsync.core.timeutils import utcnow
from reviewsync.storage.base_model import Base


class IntegrationCredentialModel(Base):
    """ORM model for platform credentials.

    One row per (account_id, platform). Token columns hold Fernet
    ciphertext only.

    Attributes:
        account_id: Owning account identifier
        platform: Platform name ("google", "meta")
        resource_id: Provider resource id (page id, location name)
        secondary_resource_id: Optional linked resource id
        access_token_encrypted: Encrypted access token
        refresh_token_encrypted: Encrypted refresh or long-lived token
        token_expiry: Access token expiry
        last_synced_at: Sync watermark
        status: "active" or "expired"
        created_at: Row creation timestamp
        updated_at: Last modification timestamp
    """

    __tablename__ = "integration_credentials"

    account_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    platform: Mapped[str] = mapped_column(String(32), primary_key=True)

    resource_id: Mapped[str] = mapped_column(String(255), nullable=False)
    secondary_resource_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    access_token_encrypted: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    refresh_token_encrypted: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)

    token_expiry: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (Index("idx_credential_status", "status"),)


class ExternalReviewModel(Base):
    """ORM model for normalized external reviews.

    The composite primary key (platform, account_id, id) is the uniqueness
    constraint that makes re-ingestion an update instead of a duplicate.

    Attributes:
        platform: Source platform
        account_id: Owning account identifier
        id: Deterministic review identifier
        author: Reviewer display name
        rating: Rating on the provider's scale
        comment: Review text
        review_date: Provider event time
        synced_at: Ingestion time
    """

    __tablename__ = "external_reviews"

    platform: Mapped[str] = mapped_column(String(32), primary_key=True)
    account_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    id: Mapped[str] = mapped_column(String(512), primary_key=True)

    author: Mapped[str] = mapped_column(String(255), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    review_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_review_account_date", "account_id", "review_date"),)
