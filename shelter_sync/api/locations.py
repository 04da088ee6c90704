"""
Shelter location endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional

from shelter_sync.models.base import get_db
from shelter_sync.services.location_query_service import LocationQueryService

router = APIRouter(prefix="/locations", tags=["locations"])


@router.get("")
def get_all_locations(
    sector: Optional[str] = Query(None, description="Program sector, e.g. Men, Women, Families"),
    city: Optional[str] = Query(None),
    min_vacancy_beds: Optional[int] = Query(None, alias="minVacancyBeds", ge=0),
    min_vacancy_rooms: Optional[int] = Query(None, alias="minVacancyRooms", ge=0),
    db: Session = Depends(get_db),
):
    """
    All locations with their programs, optionally filtered.

    Locations with no program matching the filters are left out.
    """
    locations = LocationQueryService(db).list_locations(
        sector=sector,
        city=city,
        min_vacancy_beds=min_vacancy_beds,
        min_vacancy_rooms=min_vacancy_rooms,
    )
    return {"locations": locations}


@router.get("/map")
def get_locations_for_map(db: Session = Depends(get_db)):
    """Basic info and coordinates for every location with an address"""
    return LocationQueryService(db).get_locations_for_map()


@router.get("/metadata")
def get_shelters_metadata(db: Session = Depends(get_db)):
    """When the dataset was last refreshed"""
    return LocationQueryService(db).get_metadata()


@router.get("/{location_id}/location")
def get_location_by_id(location_id: int, db: Session = Depends(get_db)):
    location = LocationQueryService(db).get_location(location_id)
    if location is None:
        raise HTTPException(status_code=404, detail="Location not found")
    return location


@router.get("/{location_id}/occupancy")
def get_location_occupancy(location_id: int, db: Session = Depends(get_db)):
    """Occupancy per program, with unoccupied counts and occupancy rates"""
    occupancy = LocationQueryService(db).get_location_occupancy(location_id)
    if occupancy is None:
        raise HTTPException(status_code=404, detail="Location not found")
    return occupancy
