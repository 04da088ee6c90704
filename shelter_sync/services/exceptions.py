"""
Sync error taxonomy

Per-record and per-location problems are recovered locally and reported as
ValidationSkip entries; the exceptions below abort a run.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ValidationSkip:
    """A record, location or program left out of the run, with the reason"""
    stage: str  # normalize, merge, resolve, reconcile
    reason: str  # missing_id, missing_location_name_or_address, unresolved_location, missing_program_name
    reference: Optional[str] = None  # upstream id, location or program name when known

    def to_dict(self) -> dict:
        return {"stage": self.stage, "reason": self.reason, "reference": self.reference}


class ShelterSyncError(Exception):
    """Base class for errors that abort a sync run"""


class UpstreamFetchError(ShelterSyncError):
    """The upstream record sequence could not be fully produced"""


class BatchPersistenceError(ShelterSyncError):
    """A program upsert batch failed; earlier batches remain committed"""

    def __init__(self, batch_index: int, committed_batches: int, cause: Exception):
        self.batch_index = batch_index
        self.committed_batches = committed_batches
        self.cause = cause
        super().__init__(
            f"Program batch {batch_index} failed after {committed_batches} committed batches: {cause}"
        )


class SyncInProgressError(ShelterSyncError):
    """Another sync run holds the single-flight lock"""
