"""
Record Normalizer

Converts one raw CKAN record into a typed, cleaned NormalizedRecord.
Pure: no I/O and no exceptions. A record without an upstream id is dropped
(normalize_record returns None).
"""
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from dateutil import parser as date_parser

from shelter_sync.services.exceptions import ValidationSkip


@dataclass(frozen=True)
class NormalizedRecord:
    """Typed projection of one upstream record; every field except record_id is optional"""
    record_id: str
    location_name: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
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


# normalized field -> (upstream CKAN column, coercion)
FIELD_MAP = {
    "location_name": ("LOCATION_NAME", "str"),
    "address": ("LOCATION_ADDRESS", "str"),
    "postal_code": ("LOCATION_POSTAL_CODE", "str"),
    "city": ("LOCATION_CITY", "str"),
    "province": ("LOCATION_PROVINCE", "str"),
    "latitude": ("LATITUDE", "float"),
    "longitude": ("LONGITUDE", "float"),
    "program_name": ("PROGRAM_NAME", "str"),
    "sector": ("SECTOR", "str"),
    "overnight_service_type": ("OVERNIGHT_SERVICE_TYPE", "str"),
    "service_user_count": ("SERVICE_USER_COUNT", "int"),
    "capacity_actual_bed": ("CAPACITY_ACTUAL_BED", "int"),
    "occupied_beds": ("OCCUPIED_BEDS", "int"),
    "unoccupied_beds": ("UNOCCUPIED_BEDS", "int"),
    "capacity_actual_room": ("CAPACITY_ACTUAL_ROOM", "int"),
    "occupied_rooms": ("OCCUPIED_ROOMS", "int"),
    "unoccupied_rooms": ("UNOCCUPIED_ROOMS", "int"),
    "occupancy_date": ("OCCUPANCY_DATE", "date"),
}


def clean_str(value: Any) -> Optional[str]:
    """Trimmed string, or None for absent/blank values"""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = clean_str(value)
        if text is None:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_int(value: Any) -> Optional[int]:
    """Integer coercion; "12.7" truncates to 12"""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = to_float(value)
    if number is None:
        return None
    return int(number)


def to_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = clean_str(value)
    if text is None:
        return None
    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError):
        return None


_COERCIONS = {
    "str": clean_str,
    "int": to_int,
    "float": to_float,
    "date": to_date,
}


def _lookup(raw: Dict[str, Any], field_name: str, upstream_name: str) -> Any:
    # CKAN uses upper-case columns; already-renamed maps use the snake_case name
    if upstream_name in raw:
        return raw[upstream_name]
    return raw.get(field_name)


def normalize_record(raw: Dict[str, Any]) -> Optional[NormalizedRecord]:
    """
    Normalize one raw record.

    Returns None when the record has no upstream identity (_id / id).
    """
    record_id = clean_str(raw.get("_id", raw.get("id")))
    if record_id is None:
        return None

    values = {
        field_name: _COERCIONS[kind](_lookup(raw, field_name, upstream_name))
        for field_name, (upstream_name, kind) in FIELD_MAP.items()
    }
    # CKAN calls it LOCATION_ADDRESS, hand-built maps sometimes say location_address
    if values["address"] is None:
        values["address"] = clean_str(raw.get("location_address"))

    return NormalizedRecord(record_id=record_id, **values)


@dataclass
class NormalizationResult:
    records: List[NormalizedRecord] = field(default_factory=list)
    dropped: int = 0
    skips: List[ValidationSkip] = field(default_factory=list)


def normalize_records(raws: Iterable[Dict[str, Any]]) -> NormalizationResult:
    """Normalize a full batch, counting records dropped for a missing id"""
    result = NormalizationResult()
    for position, raw in enumerate(raws):
        record = normalize_record(raw)
        if record is None:
            result.dropped += 1
            result.skips.append(ValidationSkip(
                stage="normalize",
                reason="missing_id",
                reference=f"position {position}",
            ))
            continue
        result.records.append(record)
    return result
