"""
Program Reconciler

Deduplicates program entries per resolved location. Duplicate
(location_id, program_name) keys merge last-write-wins: occupancy is
time-varying, so the most recent non-null observation is kept.
"""
from dataclasses import dataclass, field, fields, replace
from datetime import date
from typing import Dict, Iterable, List, Optional

from shelter_sync.services.exceptions import ValidationSkip
from shelter_sync.services.location_merger import CanonicalLocation, LocationKey, ProgramEntry
from shelter_sync.utils.logger import log


@dataclass
class ProgramRow:
    """A program ready for persistence, tagged with its owning location id"""
    location_id: int
    program_name: str
    sector: Optional[str] = None
    overnight_service_type: Optional[str] = None
    service_user_count: Optional[int] = None
    capacity_actual_bed: Optional[int] = None
    occupied_beds: Optional[int] = None
    unoccupied_beds: Optional[int] = None
    capacity_actual_room: Optional[int] = None
    occupied_rooms: Optional[int] = None
    unoccupied_rooms: Optional[int] = None
    occupancy_date: Optional[date] = None

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# Fields merged across duplicate program entries
PROGRAM_MERGE_FIELDS = tuple(
    f.name for f in fields(ProgramRow) if f.name not in ("location_id", "program_name")
)


def last_write_wins_program(current: ProgramRow, incoming: ProgramEntry) -> ProgramRow:
    """Return current with every field the incoming entry supplies (non-null) replaced"""
    updates = {
        name: getattr(incoming, name)
        for name in PROGRAM_MERGE_FIELDS
        if getattr(incoming, name) is not None
    }
    return replace(current, **updates)


@dataclass
class ReconcileResult:
    rows: List[ProgramRow] = field(default_factory=list)
    skipped: int = 0
    skips: List[ValidationSkip] = field(default_factory=list)


def reconcile_programs(
    locations: Iterable[CanonicalLocation],
    location_ids: Dict[LocationKey, int],
) -> ReconcileResult:
    """
    Build one ProgramRow per (location_id, trimmed program_name).

    Program names compare case-sensitively, matching the programs table's
    unique constraint. Entries without a program name, and every entry of a
    location without a resolved id, are counted as skipped.
    """
    result = ReconcileResult()

    for location in locations:
        location_id = location_ids.get(location.key)
        if location_id is None:
            result.skipped += len(location.programs)
            result.skips.extend(
                ValidationSkip(stage="reconcile", reason="unresolved_location", reference=entry.record_id)
                for entry in location.programs
            )
            continue

        by_name: Dict[str, ProgramRow] = {}
        for entry in location.programs:
            name = (entry.program_name or "").strip()
            if not name:
                result.skipped += 1
                result.skips.append(ValidationSkip(
                    stage="reconcile",
                    reason="missing_program_name",
                    reference=entry.record_id,
                ))
                continue

            current = by_name.get(name)
            if current is None:
                current = ProgramRow(location_id=location_id, program_name=name)
            by_name[name] = last_write_wins_program(current, entry)

        result.rows.extend(by_name.values())

    log.info(f"Programs reconciled: {len(result.rows)} rows, {result.skipped} skipped")
    return result
