"""
Shelter Sync Service

Runs the full reconciliation pipeline once:

    fetch -> normalize -> merge locations -> resolve location ids
          -> reconcile programs -> batch upsert -> stamp last_refreshed

Each stage consumes the complete output of the previous one. The upstream
fetch is fully materialized before the first write, so an upstream failure
never leaves a partial canonical set behind.
"""
import time
from typing import Any, Callable, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from shelter_sync.config import get_settings
from shelter_sync.connectors.ckan_connector import CKANConnector
from shelter_sync.models.base import SessionLocal
from shelter_sync.services.batch_upsert import BatchUpsertExecutor
from shelter_sync.services.exceptions import UpstreamFetchError
from shelter_sync.services.location_merger import merge_locations
from shelter_sync.services.location_resolver import LocationResolver
from shelter_sync.services.program_reconciler import reconcile_programs
from shelter_sync.services.record_normalizer import normalize_records
from shelter_sync.services.run_lock import single_flight
from shelter_sync.services.sync_summary import SyncSummary, SyncSummaryReporter
from shelter_sync.utils.helpers import utc_now
from shelter_sync.utils.logger import log

settings = get_settings()

RecordSource = Callable[[], Iterable[Dict[str, Any]]]


def run_pipeline(
    session: Session,
    raw_records: Iterable[Dict[str, Any]],
    batch_size: Optional[int] = None,
) -> SyncSummary:
    """
    Reconcile an already-fetched record batch into the store.

    Raises BatchPersistenceError if a program batch fails; everything else
    is counted in the returned summary.
    """
    summary = SyncSummary(started_at=utc_now())
    start_time = time.time()

    raw_records = list(raw_records)
    summary.records_fetched = len(raw_records)

    normalized = normalize_records(raw_records)
    summary.records_dropped = normalized.dropped
    summary.skips.extend(normalized.skips)
    log.info(f"Normalized {len(normalized.records)} records ({normalized.dropped} dropped without id)")

    merged = merge_locations(normalized.records)
    summary.records_skipped = merged.skipped
    summary.locations_total = len(merged.locations)
    summary.skips.extend(merged.skips)
    log.info(f"Total locations after deduplication: {len(merged.locations)} ({merged.skipped} records skipped)")

    resolved = LocationResolver(session).resolve(merged.locations)
    summary.locations_inserted = resolved.inserted
    summary.locations_existing = resolved.existing
    summary.locations_unresolved = resolved.unresolved
    summary.skips.extend(resolved.skips)

    reconciled = reconcile_programs(merged.locations, resolved.ids)
    summary.programs_skipped = reconciled.skipped
    summary.skips.extend(reconciled.skips)

    upserted = BatchUpsertExecutor(session, batch_size or settings.program_batch_size).execute(reconciled.rows)
    summary.programs_inserted = upserted.inserted
    summary.programs_updated = upserted.updated
    summary.program_batches = upserted.batches

    summary.last_refreshed = SyncSummaryReporter(session).stamp_last_refreshed()
    summary.completed_at = utc_now()
    summary.duration_seconds = time.time() - start_time
    summary.log()
    return summary


class ShelterSyncService:
    """Single-flight wrapper around the pipeline, wired to CKAN and the app database"""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        record_source: Optional[RecordSource] = None,
        batch_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.record_source = record_source or CKANConnector().fetch_all_records
        self.batch_size = batch_size or settings.program_batch_size

    def _fetch(self) -> list:
        try:
            return list(self.record_source())
        except UpstreamFetchError:
            raise
        except Exception as e:
            raise UpstreamFetchError(f"Upstream record fetch failed: {e}") from e

    def run_sync(self) -> SyncSummary:
        """Fetch and reconcile once; raises on any fatal error"""
        session = self.session_factory()
        try:
            with single_flight(session.get_bind()):
                log.info("Starting shelter sync...")
                raw_records = self._fetch()
                log.info(f"Total fetched: {len(raw_records)}")
                return run_pipeline(session, raw_records, self.batch_size)
        finally:
            session.close()


def run_sync() -> Dict[str, Any]:
    """Entry point for scheduled runs: one full sync against the configured store"""
    return ShelterSyncService().run_sync().to_dict()
