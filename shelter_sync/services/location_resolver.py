"""
Location Resolver

Persists canonical locations and maps each identity key to its durable
location id, using an explicit insert-or-find protocol:

1. INSERT ... ON CONFLICT DO NOTHING RETURNING id
2. on conflict, find the existing row by its identity_key and
   coalesce-fill its null non-identity columns

A location whose id cannot be established is reported as unresolved and
left out of the mapping; resolution never aborts the run.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shelter_sync.models import Location, dialect_insert
from shelter_sync.services.exceptions import ValidationSkip
from shelter_sync.services.location_merger import (
    CanonicalLocation,
    LocationKey,
    LOCATION_SCALAR_FIELDS,
)
from shelter_sync.utils.logger import log

# Identity columns feed identity_key and are never rewritten; only these get filled
IDENTITY_COLUMNS = ("location_name", "address", "city", "province")
FILLABLE_COLUMNS = tuple(name for name in LOCATION_SCALAR_FIELDS if name not in IDENTITY_COLUMNS)


@dataclass
class ResolutionResult:
    ids: Dict[LocationKey, int] = field(default_factory=dict)
    inserted: int = 0
    existing: int = 0
    unresolved: int = 0
    skips: List[ValidationSkip] = field(default_factory=list)


class LocationResolver:
    """Insert-or-find for canonical locations; each location commits on its own"""

    def __init__(self, session: Session):
        self.session = session

    def resolve(self, locations: Iterable[CanonicalLocation]) -> ResolutionResult:
        result = ResolutionResult()

        for location in locations:
            try:
                location_id = self._insert(location)
                if location_id is not None:
                    self.session.commit()
                    result.ids[location.key] = location_id
                    result.inserted += 1
                    continue

                location_id = self._find_existing(location)
                if location_id is None:
                    self.session.rollback()
                    self._mark_unresolved(result, location, "existing row not found after insert conflict")
                    continue

                self._coalesce_fill(location_id, location)
                self.session.commit()
                result.ids[location.key] = location_id
                result.existing += 1

            except SQLAlchemyError as e:
                self.session.rollback()
                self._mark_unresolved(result, location, str(e))

        log.info(
            f"Locations resolved: {result.inserted} inserted, {result.existing} already existed, "
            f"{result.unresolved} unresolved"
        )
        return result

    def _insert(self, location: CanonicalLocation) -> Optional[int]:
        stmt = (
            dialect_insert(self.session, Location)
            .values(
                identity_key=location.identity,
                **{name: getattr(location, name) for name in LOCATION_SCALAR_FIELDS}
            )
            .on_conflict_do_nothing(index_elements=["identity_key"])
            .returning(Location.id)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _find_existing(self, location: CanonicalLocation) -> Optional[int]:
        stmt = select(Location.id).where(Location.identity_key == location.identity)
        return self.session.execute(stmt).scalar_one_or_none()

    def _coalesce_fill(self, location_id: int, location: CanonicalLocation) -> None:
        values = {
            name: func.coalesce(getattr(Location, name), getattr(location, name))
            for name in FILLABLE_COLUMNS
            if getattr(location, name) is not None
        }
        if not values:
            return
        stmt = (
            update(Location)
            .where(Location.id == location_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.session.execute(stmt)

    def _mark_unresolved(self, result: ResolutionResult, location: CanonicalLocation, detail: str) -> None:
        result.unresolved += 1
        result.skips.append(ValidationSkip(
            stage="resolve",
            reason="unresolved_location",
            reference=f"{location.location_name} / {location.address}",
        ))
        log.warning(
            f"Could not resolve location '{location.location_name}' ({location.address}): {detail}. "
            f"Its {len(location.programs)} programs will be skipped"
        )
