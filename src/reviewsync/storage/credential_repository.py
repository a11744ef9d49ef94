"""SQL implementation of the credential store."""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update

from reviewsync.core.timeutils import ensure_utc, utcnow
from reviewsync.integrations.models import CredentialStatus, IntegrationCredential, Platform
from reviewsync.storage.database import Database
from reviewsync.storage.models import IntegrationCredentialModel


class SQLCredentialStore:
    """Credential store backed by SQLAlchemy.

    Watermark updates are conditional at the statement level, so concurrent
    writers can never move last_synced_at backward.

    Attributes:
        db: Database instance for session management
    """

    def __init__(self, db: Database):
        """Initialize store with database connection.

        Args:
            db: Database instance for session management
        """
        self.db = db

    async def get(self, account_id: str, platform: Platform) -> Optional[IntegrationCredential]:
        async with self.db.session() as session:
            model = await session.get(IntegrationCredentialModel, (account_id, platform.value))
            if model is None:
                return None
            return self._to_domain(model)

    async def upsert(self, credential: IntegrationCredential) -> None:
        """Create or overwrite the credential row.

        Every column is replaced; fields the caller leaves unset are cleared.

        Args:
            credential: Complete credential record
        """
        async with self.db.session() as session:
            model = await session.get(
                IntegrationCredentialModel, (credential.account_id, credential.platform.value)
            )
            if model is None:
                model = IntegrationCredentialModel(
                    account_id=credential.account_id, platform=credential.platform.value
                )
                session.add(model)

            model.resource_id = credential.resource_id
            model.secondary_resource_id = credential.secondary_resource_id
            model.access_token_encrypted = credential.access_token_encrypted
            model.refresh_token_encrypted = credential.refresh_token_encrypted
            model.token_expiry = ensure_utc(credential.token_expiry)
            model.last_synced_at = ensure_utc(credential.last_synced_at)
            model.status = credential.status.value

    async def mark_expired(self, account_id: str, platform: Platform) -> bool:
        async with self.db.session() as session:
            stmt = (
                update(IntegrationCredentialModel)
                .where(
                    IntegrationCredentialModel.account_id == account_id,
                    IntegrationCredentialModel.platform == platform.value,
                    IntegrationCredentialModel.status != CredentialStatus.EXPIRED.value,
                )
                .values(status=CredentialStatus.EXPIRED.value, updated_at=utcnow())
            )
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def touch_synced_at(
        self, account_id: str, platform: Platform, timestamp: datetime
    ) -> bool:
        """Advance last_synced_at to timestamp if it is later than the stored value.

        Args:
            account_id: Owning account
            platform: Credential platform
            timestamp: Candidate watermark

        Returns:
            True if the row was updated
        """
        timestamp = ensure_utc(timestamp)
        async with self.db.session() as session:
            stmt = (
                update(IntegrationCredentialModel)
                .where(
                    IntegrationCredentialModel.account_id == account_id,
                    IntegrationCredentialModel.platform == platform.value,
                    or_(
                        IntegrationCredentialModel.last_synced_at.is_(None),
                        IntegrationCredentialModel.last_synced_at < timestamp,
                    ),
                )
                .values(last_synced_at=timestamp, updated_at=utcnow())
            )
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def list_for_account(self, account_id: str) -> list[IntegrationCredential]:
        async with self.db.session() as session:
            stmt = (
                select(IntegrationCredentialModel)
                .where(IntegrationCredentialModel.account_id == account_id)
                .order_by(IntegrationCredentialModel.platform)
            )
            result = await session.execute(stmt)
            return [self._to_domain(m) for m in result.scalars().all()]

    async def list_active(self) -> list[IntegrationCredential]:
        async with self.db.session() as session:
            stmt = (
                select(IntegrationCredentialModel)
                .where(IntegrationCredentialModel.status == CredentialStatus.ACTIVE.value)
                .order_by(
                    IntegrationCredentialModel.account_id, IntegrationCredentialModel.platform
                )
            )
            result = await session.execute(stmt)
            return [self._to_domain(m) for m in result.scalars().all()]

    @staticmethod
    def _to_domain(model: IntegrationCredentialModel) -> IntegrationCredential:
        return IntegrationCredential(
            account_id=model.account_id,
            platform=Platform(model.platform),
            resource_id=model.resource_id,
            secondary_resource_id=model.secondary_resource_id,
            access_token_encrypted=model.access_token_encrypted,
            refresh_token_encrypted=model.refresh_token_encrypted,
            token_expiry=ensure_utc(model.token_expiry),
            last_synced_at=ensure_utc(model.last_synced_at),
            status=CredentialStatus(model.status),
        )
