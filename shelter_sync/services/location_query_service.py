"""
Location Query Service

Read-side shaping of stored locations and programs into response payloads.
"""
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from shelter_sync.models import Location, Program
from shelter_sync.services.sync_summary import SyncSummaryReporter
from shelter_sync.utils.helpers import percentage, safe_subtract

LOCATION_FIELDS = ("id", "location_name", "address", "postal_code", "city", "province", "latitude", "longitude")
PROGRAM_FIELDS = (
    "id", "location_id", "program_name", "sector", "overnight_service_type", "service_user_count",
    "capacity_actual_bed", "occupied_beds", "unoccupied_beds",
    "capacity_actual_room", "occupied_rooms", "unoccupied_rooms",
)


def location_to_dict(location: Location) -> Dict:
    return {name: getattr(location, name) for name in LOCATION_FIELDS}


def program_to_dict(program: Program) -> Dict:
    data = {name: getattr(program, name) for name in PROGRAM_FIELDS}
    data["occupancy_date"] = program.occupancy_date.isoformat() if program.occupancy_date else None
    return data


class LocationQueryService:
    """Queries backing the /locations endpoints"""

    def __init__(self, db: Session):
        self.db = db

    def list_locations(
        self,
        sector: Optional[str] = None,
        city: Optional[str] = None,
        min_vacancy_beds: Optional[int] = None,
        min_vacancy_rooms: Optional[int] = None,
    ) -> List[Dict]:
        """
        Locations with their programs matching the filters.

        Locations left without any matching program are omitted.
        """
        location_stmt = select(Location).where(Location.address.is_not(None)).order_by(Location.id)
        if city:
            location_stmt = location_stmt.where(Location.city == city)
        locations = self.db.execute(location_stmt).scalars().all()
        if not locations:
            return []

        program_stmt = select(Program).where(
            Program.location_id.in_([loc.id for loc in locations])
        ).order_by(Program.id)
        if sector:
            program_stmt = program_stmt.where(Program.sector == sector)
        if min_vacancy_beds is not None:
            program_stmt = program_stmt.where(
                Program.capacity_actual_bed - func.coalesce(Program.occupied_beds, 0) >= min_vacancy_beds
            )
        if min_vacancy_rooms is not None:
            program_stmt = program_stmt.where(
                Program.capacity_actual_room - func.coalesce(Program.occupied_rooms, 0) >= min_vacancy_rooms
            )

        programs_by_location: Dict[int, List[Dict]] = {}
        for program in self.db.execute(program_stmt).scalars():
            programs_by_location.setdefault(program.location_id, []).append(program_to_dict(program))

        return [
            {**location_to_dict(loc), "programs": programs_by_location[loc.id]}
            for loc in locations
            if loc.id in programs_by_location
        ]

    def get_location(self, location_id: int) -> Optional[Dict]:
        location = self.db.get(Location, location_id)
        if location is None or location.address is None:
            return None
        return {
            **location_to_dict(location),
            "programs": [program_to_dict(p) for p in location.programs],
        }

    def get_location_occupancy(self, location_id: int) -> Optional[Dict]:
        """Programs with unoccupied counts and occupancy rates derived from capacity"""
        location = self.db.get(Location, location_id)
        if location is None:
            return None

        programs = []
        for p in location.programs:
            programs.append({
                "id": p.id,
                "program_name": p.program_name,
                "capacity_actual_bed": p.capacity_actual_bed,
                "occupied_beds": p.occupied_beds,
                "unoccupied_beds": safe_subtract(p.capacity_actual_bed, p.occupied_beds),
                "capacity_actual_room": p.capacity_actual_room,
                "occupied_rooms": p.occupied_rooms,
                "unoccupied_rooms": safe_subtract(p.capacity_actual_room, p.occupied_rooms),
                "occupancy_rate_beds": percentage(p.occupied_beds, p.capacity_actual_bed),
                "occupancy_rate_rooms": percentage(p.occupied_rooms, p.capacity_actual_room),
                "occupancy_date": p.occupancy_date.isoformat() if p.occupancy_date else None,
            })

        return {**location_to_dict(location), "programs": programs}

    def get_locations_for_map(self) -> List[Dict]:
        stmt = select(Location).where(Location.address.is_not(None)).order_by(Location.id)
        return [location_to_dict(loc) for loc in self.db.execute(stmt).scalars()]

    def get_metadata(self) -> Dict:
        last_refreshed = SyncSummaryReporter(self.db).get_last_refreshed()
        return {"last_refreshed": last_refreshed.isoformat() if last_refreshed else None}
