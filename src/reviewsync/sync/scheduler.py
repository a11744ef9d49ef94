"""Periodic batch sync using APScheduler.

Runs SyncOrchestrator.sync_all_connected() on a cron schedule inside the
application's event loop.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-untyped]

from reviewsync.sync.orchestrator import BatchSyncResult, SyncOrchestrator

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "sync_all_connected"


def validate_cron(expression: str) -> str:
    """Validate a five-field cron expression.

    Raises:
        ValueError: If the expression is invalid
    """
    from croniter import croniter  # type: ignore[import-untyped]

    try:
        croniter(expression)
    except (ValueError, KeyError) as e:
        raise ValueError(f"Invalid cron expression '{expression}': {e}") from e
    return expression


class SyncScheduler:
    """Schedules the batch sync of every connected account.

    Example:
        >>> scheduler = SyncScheduler(orchestrator, cron_expression="0 */6 * * *")
        >>> await scheduler.start()
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        cron_expression: str = "0 */6 * * *",
        timezone: str = "UTC",
        misfire_grace_time: int = 600,
    ):
        """Initialize the sync scheduler.

        Args:
            orchestrator: Orchestrator whose sync_all_connected() is run
            cron_expression: When to run the batch sync
            timezone: Timezone the cron expression is evaluated in
            misfire_grace_time: Seconds a late run may still start
        """
        self.orchestrator = orchestrator
        self.cron_expression = validate_cron(cron_expression)
        self.timezone = timezone
        self.misfire_grace_time = misfire_grace_time
        self.scheduler = AsyncIOScheduler(timezone=timezone)
        self.last_result: Optional[BatchSyncResult] = None

    async def start(self) -> None:
        """Register the sync job and start the scheduler.

        This should be called during application startup, from a running
        event loop.
        """
        self.scheduler.add_job(
            self.run_once,
            trigger=CronTrigger.from_crontab(self.cron_expression, timezone=self.timezone),
            id=SYNC_JOB_ID,
            misfire_grace_time=self.misfire_grace_time,
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Sync scheduler started with cron '{self.cron_expression}'")

    async def stop(self) -> None:
        """Stop the scheduler without waiting for a running batch."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")

    async def run_once(self) -> BatchSyncResult:
        """Run one batch sync now."""
        logger.info("Scheduled sync triggered")
        result = await self.orchestrator.sync_all_connected()
        self.last_result = result
        logger.info(
            f"Scheduled sync finished: {len(result.reports)} accounts synced, "
            f"{len(result.errors)} failed, {result.total_created} reviews created"
        )
        return result

    def next_run_time(self):
        """Return the next scheduled run time, or None if not scheduled."""
        job = self.scheduler.get_job(SYNC_JOB_ID)
        return job.next_run_time if job else None
