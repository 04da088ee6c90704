"""
Shelter location, program and sync metadata models

Locations are unique on identity_key, their case/whitespace-folded
name|address|city|province computed in Python, programs on
(location_id, program_name).
"""
from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from shelter_sync.models.base import Base


IDENTITY_SEPARATOR = "\x1f"


def fold_identity_part(value):
    return (value or "").strip().lower()


def location_identity(location_name, address, city, province) -> str:
    """
    Stored identity of a location.

    Folded in Python; SQLite's lower() only folds ASCII.
    """
    return IDENTITY_SEPARATOR.join(
        fold_identity_part(value) for value in (location_name, address, city, province)
    )


class Location(Base):
    """One physical shelter location"""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    identity_key = Column(String, nullable=False, unique=True)

    location_name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    postal_code = Column(String, nullable=True)
    city = Column(String, nullable=True, index=True)
    province = Column(String, nullable=True)

    # Coordinates (upstream rarely supplies these; filled once, never cleared)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    programs = relationship(
        "Program",
        back_populates="location",
        cascade="all, delete-orphan",
        order_by="Program.id",
    )


class Program(Base):
    """A service/program offered at a location, holding its latest occupancy snapshot"""
    __tablename__ = "programs"
    __table_args__ = (
        UniqueConstraint("location_id", "program_name", name="uq_programs_location_program"),
    )

    id = Column(Integer, primary_key=True, index=True)
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True)

    program_name = Column(String, nullable=False)
    sector = Column(String, nullable=True, index=True)  # Families, Men, Women, Youth, Mixed Adult
    overnight_service_type = Column(String, nullable=True)
    service_user_count = Column(Integer, nullable=True)

    # Bed-based capacity
    capacity_actual_bed = Column(Integer, nullable=True)
    occupied_beds = Column(Integer, nullable=True)
    unoccupied_beds = Column(Integer, nullable=True)

    # Room-based capacity
    capacity_actual_room = Column(Integer, nullable=True)
    occupied_rooms = Column(Integer, nullable=True)
    unoccupied_rooms = Column(Integer, nullable=True)

    occupancy_date = Column(Date, nullable=True)

    location = relationship("Location", back_populates="programs")


# Columns overwritten on every program upsert
PROGRAM_MUTABLE_FIELDS = (
    "sector",
    "overnight_service_type",
    "service_user_count",
    "capacity_actual_bed",
    "occupied_beds",
    "unoccupied_beds",
    "capacity_actual_room",
    "occupied_rooms",
    "unoccupied_rooms",
    "occupancy_date",
)


class ShelterMetadata(Base):
    """Singleton row recording when the dataset was last refreshed"""
    __tablename__ = "shelter_metadata"

    SINGLETON_ID = 1

    id = Column(Integer, primary_key=True)
    last_refreshed = Column(DateTime, nullable=True)
