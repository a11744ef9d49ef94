"""Storage layer for credentials and reviews.

Provides repository protocols with SQL (SQLAlchemy) and in-memory
implementations.
"""

from reviewsync.storage.base import CredentialStore, ReviewRepository
from reviewsync.storage.credential_repository import SQLCredentialStore
from reviewsync.storage.database import Database, DatabaseConfig
from reviewsync.storage.memory import InMemoryCredentialStore, InMemoryReviewRepository
from reviewsync.storage.review_repository import SQLReviewRepository

__all__ = [
    "CredentialStore",
    "Database",
    "DatabaseConfig",
    "InMemoryCredentialStore",
    "InMemoryReviewRepository",
    "ReviewRepository",
    "SQLCredentialStore",
    "SQLReviewRepository",
]
