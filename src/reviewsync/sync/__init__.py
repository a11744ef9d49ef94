"""Review sync orchestration and scheduling."""

from reviewsync.sync.locks import KeyedLocks
from reviewsync.sync.orchestrator import BatchSyncResult, SyncOrchestrator

__all__ = ["BatchSyncResult", "KeyedLocks", "SyncOrchestrator"]
