"""FastAPI dependencies for reaching the process-wide services."""

from fastapi import Request

from reviewsync.bootstrap import Services
from reviewsync.integrations.errors import BadRequestError
from reviewsync.integrations.models import Platform
from reviewsync.integrations.oauth.manager import OAuthManager
from reviewsync.storage.base import CredentialStore, ReviewRepository
from reviewsync.sync.orchestrator import SyncOrchestrator


def get_services(request: Request) -> Services:
    """Return the services created by the application lifespan."""
    return request.app.state.services


def get_oauth_manager(request: Request) -> OAuthManager:
    return get_services(request).oauth_manager


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return get_services(request).orchestrator


def get_credential_store(request: Request) -> CredentialStore:
    return get_services(request).credential_store


def get_review_repository(request: Request) -> ReviewRepository:
    return get_services(request).review_repository


def parse_platform(value: str) -> Platform:
    """Parse a platform path or query value.

    Raises:
        BadRequestError: If the platform is unknown
    """
    try:
        return Platform.parse(value)
    except ValueError as e:
        raise BadRequestError(str(e), reason="unknown_platform") from e
