"""Storage fixtures running each test against both implementations."""

import pytest

from reviewsync.storage.memory import InMemoryCredentialStore, InMemoryReviewRepository


@pytest.fixture(params=["sql", "memory"])
def credential_store(request):
    if request.param == "sql":
        return request.getfixturevalue("sql_credential_store")
    return InMemoryCredentialStore()


@pytest.fixture(params=["sql", "memory"])
def review_repository(request):
    if request.param == "sql":
        return request.getfixturevalue("sql_review_repository")
    return InMemoryReviewRepository()
