"""
Location Merger

Groups normalized records into canonical location aggregates.

Scalar location fields merge first-wins (coalesce_fill_location): a value is
only filled while the aggregate holds None. Program payloads are collected
unmerged; they are deduplicated after location ids are known
(see program_reconciler).
"""
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from shelter_sync.models import fold_identity_part, location_identity
from shelter_sync.services.exceptions import ValidationSkip
from shelter_sync.services.record_normalizer import NormalizedRecord

LocationKey = Tuple[str, str, str, str]

LOCATION_SCALAR_FIELDS = (
    "location_name",
    "address",
    "postal_code",
    "city",
    "province",
    "latitude",
    "longitude",
)


@dataclass
class ProgramEntry:
    """Program payload of a single upstream record"""
    record_id: Optional[str] = None
    program_name: Optional[str] = None
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

    @classmethod
    def from_record(cls, record: NormalizedRecord) -> "ProgramEntry":
        return cls(**{f.name: getattr(record, f.name) for f in fields(cls)})


@dataclass
class CanonicalLocation:
    """One physical shelter location plus every program entry observed for it"""
    location_name: str
    address: str
    postal_code: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    programs: List[ProgramEntry] = field(default_factory=list)

    @property
    def key(self) -> LocationKey:
        return location_identity_key(self.location_name, self.address, self.city, self.province)

    @property
    def identity(self) -> str:
        return location_identity(self.location_name, self.address, self.city, self.province)


def location_identity_key(
    location_name: Optional[str],
    address: Optional[str],
    city: Optional[str],
    province: Optional[str],
) -> LocationKey:
    """Case- and whitespace-insensitive identity; joined, it is Location.identity_key"""
    return tuple(fold_identity_part(value) for value in (location_name, address, city, province))


def coalesce_fill_location(target: CanonicalLocation, incoming: NormalizedRecord) -> None:
    """Fill target fields that are still None from incoming; never replace a non-null value"""
    for name in LOCATION_SCALAR_FIELDS:
        if getattr(target, name) is None:
            value = getattr(incoming, name)
            if value is not None:
                setattr(target, name, value)


@dataclass
class MergeResult:
    locations: List[CanonicalLocation] = field(default_factory=list)
    skipped: int = 0
    skips: List[ValidationSkip] = field(default_factory=list)


def merge_locations(records: Iterable[NormalizedRecord]) -> MergeResult:
    """
    Fold records into one CanonicalLocation per identity key.

    Output order is the order in which each key first appears.
    """
    result = MergeResult()
    by_key: Dict[LocationKey, CanonicalLocation] = {}

    for record in records:
        if not record.location_name or not record.address:
            result.skipped += 1
            result.skips.append(ValidationSkip(
                stage="merge",
                reason="missing_location_name_or_address",
                reference=record.record_id,
            ))
            continue

        key = location_identity_key(record.location_name, record.address, record.city, record.province)
        location = by_key.get(key)
        if location is None:
            location = CanonicalLocation(
                **{name: getattr(record, name) for name in LOCATION_SCALAR_FIELDS}
            )
            by_key[key] = location
            result.locations.append(location)
        else:
            coalesce_fill_location(location, record)

        location.programs.append(ProgramEntry.from_record(record))

    return result
