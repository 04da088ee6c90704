"""
Database models for the shelter sync service
"""
from shelter_sync.models.base import Base, engine, SessionLocal, get_db, init_db, dialect_insert
from shelter_sync.models.shelter import (
    Location,
    Program,
    ShelterMetadata,
    PROGRAM_MUTABLE_FIELDS,
    fold_identity_part,
    location_identity,
)

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "dialect_insert",
    "Location",
    "Program",
    "ShelterMetadata",
    "PROGRAM_MUTABLE_FIELDS",
    "fold_identity_part",
    "location_identity",
]
