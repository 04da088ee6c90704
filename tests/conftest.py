"""
Shared fixtures: an in-memory SQLite store per test and raw CKAN record builders.
"""
import os
import tempfile

# Settings are cached on first import; point them at throwaway locations first
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="shelter_sync_logs_"))
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.mkdtemp(), "test.db"))
os.environ.setdefault("ENABLE_SCHEDULER", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shelter_sync.models.base import init_db


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def make_raw(record_id, **overrides):
    """A raw CKAN datastore record for Seaton House, with upper-case column names"""
    raw = {
        "_id": record_id,
        "LOCATION_NAME": "Seaton House",
        "LOCATION_ADDRESS": "339 George St",
        "LOCATION_POSTAL_CODE": "M5A 2N2",
        "LOCATION_CITY": "Toronto",
        "LOCATION_PROVINCE": "ON",
        "PROGRAM_NAME": "Winter Program",
        "SECTOR": "Men",
        "OVERNIGHT_SERVICE_TYPE": "Shelter",
        "SERVICE_USER_COUNT": "80",
        "CAPACITY_ACTUAL_BED": "100",
        "OCCUPIED_BEDS": "80",
        "UNOCCUPIED_BEDS": "20",
        "CAPACITY_ACTUAL_ROOM": None,
        "OCCUPIED_ROOMS": None,
        "UNOCCUPIED_ROOMS": None,
        "OCCUPANCY_DATE": "2024-01-15",
    }
    raw.update(overrides)
    return raw


@pytest.fixture
def raw_record():
    return make_raw
