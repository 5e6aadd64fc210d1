"""Cross-branch reconciliation of task records."""

from .cache import (
    CacheEntry,
    CacheState,
    ReconciliationCache,
    ReconciliationError,
    ReconciliationResult,
)
from .cancellation import CancellationToken, ReconciliationCancelled
from .locations import DirectorySighting, file_matches_id, filter_active, locate_latest, reduce_latest
from .remote import load_remote_records, loading_message
from .resolver import STRATEGIES, fold_records, resolve_conflict, status_rank

__all__ = [
    "CacheEntry",
    "CacheState",
    "CancellationToken",
    "DirectorySighting",
    "ReconciliationCache",
    "ReconciliationCancelled",
    "ReconciliationError",
    "ReconciliationResult",
    "STRATEGIES",
    "file_matches_id",
    "filter_active",
    "fold_records",
    "load_remote_records",
    "loading_message",
    "locate_latest",
    "reduce_latest",
    "resolve_conflict",
    "status_rank",
]
