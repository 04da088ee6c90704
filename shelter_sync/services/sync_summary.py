"""
Sync Summary Reporter

Aggregates run statistics and stamps the singleton shelter_metadata row.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from shelter_sync.models import ShelterMetadata, dialect_insert
from shelter_sync.services.exceptions import ValidationSkip
from shelter_sync.utils.helpers import utc_now
from shelter_sync.utils.logger import log


@dataclass
class SyncSummary:
    """Counts accumulated across every stage of one run"""
    records_fetched: int = 0
    records_dropped: int = 0
    records_skipped: int = 0
    locations_total: int = 0
    locations_inserted: int = 0
    locations_existing: int = 0
    locations_unresolved: int = 0
    programs_inserted: int = 0
    programs_updated: int = 0
    programs_skipped: int = 0
    program_batches: int = 0
    skips: List[ValidationSkip] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_refreshed: Optional[datetime] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "records": {
                "fetched": self.records_fetched,
                "dropped": self.records_dropped,
                "skipped": self.records_skipped,
            },
            "locations": {
                "total": self.locations_total,
                "inserted": self.locations_inserted,
                "already_existed": self.locations_existing,
                "unresolved": self.locations_unresolved,
            },
            "programs": {
                "inserted": self.programs_inserted,
                "updated": self.programs_updated,
                "skipped": self.programs_skipped,
                "batches": self.program_batches,
            },
            "skips": [skip.to_dict() for skip in self.skips[:100]],  # Cap payload size
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "last_refreshed": self.last_refreshed.isoformat() if self.last_refreshed else None,
            "duration_seconds": round(self.duration_seconds, 2),
        }

    def log(self) -> None:
        log.info(
            f"Shelter sync complete in {self.duration_seconds:.1f}s | "
            f"records fetched={self.records_fetched} dropped={self.records_dropped} "
            f"skipped={self.records_skipped} | "
            f"locations inserted={self.locations_inserted} existing={self.locations_existing} "
            f"unresolved={self.locations_unresolved} | "
            f"programs inserted={self.programs_inserted} updated={self.programs_updated} "
            f"skipped={self.programs_skipped}"
        )


class SyncSummaryReporter:
    """Writes the last_refreshed stamp once all upserts of a run have completed"""

    def __init__(self, session: Session):
        self.session = session

    def stamp_last_refreshed(self, now: Optional[datetime] = None) -> datetime:
        """Overwrite shelter_metadata.last_refreshed, creating the row on first use"""
        refreshed_at = now or utc_now()
        insert_stmt = dialect_insert(self.session, ShelterMetadata).values(
            id=ShelterMetadata.SINGLETON_ID,
            last_refreshed=refreshed_at,
        )
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={"last_refreshed": insert_stmt.excluded.last_refreshed},
        )
        self.session.execute(stmt)
        self.session.commit()
        log.info(f"Shelter metadata stamped: last_refreshed={refreshed_at.isoformat()}")
        return refreshed_at

    def get_last_refreshed(self) -> Optional[datetime]:
        metadata = self.session.get(ShelterMetadata, ShelterMetadata.SINGLETON_ID)
        return metadata.last_refreshed if metadata else None
