"""
End-to-end pipeline tests: reconciliation, idempotency, skip accounting,
upstream failure and the single-flight guard.
"""
from datetime import date

import pytest
from sqlalchemy import func, select

from shelter_sync.models import Location, Program, ShelterMetadata
from shelter_sync.services.exceptions import SyncInProgressError, UpstreamFetchError
from shelter_sync.services.run_lock import single_flight
from shelter_sync.services.shelter_sync_service import ShelterSyncService, run_pipeline
from tests.conftest import make_raw


def _count(db, model):
    return db.scalar(select(func.count()).select_from(model))


def seaton_house_records():
    return [
        {
            "id": 1, "location_name": " Seaton House ", "address": "339 George St",
            "city": "Toronto", "province": "ON", "program_name": "Winter Program",
            "capacity_actual_bed": "100", "occupied_beds": "80",
        },
        {
            "id": 2, "location_name": "seaton house", "address": "339 George St",
            "city": "Toronto", "province": "ON", "program_name": "Winter Program",
            "occupied_beds": "85",
        },
    ]


class TestSeatonHouseScenario:

    def test_one_location_one_merged_program(self, db):
        summary = run_pipeline(db, seaton_house_records())

        location = db.execute(select(Location)).scalar_one()
        assert (location.location_name, location.address, location.city, location.province) == \
            ("Seaton House", "339 George St", "Toronto", "ON")

        program = db.execute(select(Program)).scalar_one()
        assert program.program_name == "Winter Program"
        assert program.location_id == location.id
        assert program.capacity_actual_bed == 100
        assert program.occupied_beds == 85

        assert summary.locations_inserted == 1
        assert summary.programs_inserted == 1
        assert summary.programs_skipped == 0


class TestIdempotency:

    def test_second_run_inserts_nothing(self, db):
        records = [
            make_raw(1),
            make_raw(2, PROGRAM_NAME="Overflow"),
            make_raw(3, LOCATION_NAME="Fred Victor", LOCATION_ADDRESS="145 Queen St E"),
        ]
        first = run_pipeline(db, records)
        counts = (_count(db, Location), _count(db, Program))

        second = run_pipeline(db, records)

        assert (_count(db, Location), _count(db, Program)) == counts == (2, 3)
        assert (first.locations_inserted, first.programs_inserted) == (2, 3)
        assert (second.locations_inserted, second.locations_existing) == (0, 2)
        assert (second.programs_inserted, second.programs_updated) == (0, 3)

    def test_second_run_refreshes_program_snapshot(self, db):
        run_pipeline(db, [make_raw(1, OCCUPIED_BEDS="80", OCCUPANCY_DATE="2024-01-15")])
        run_pipeline(db, [make_raw(1, OCCUPIED_BEDS="90", OCCUPANCY_DATE="2024-01-16", LOCATION_POSTAL_CODE=None)])

        program = db.execute(select(Program)).scalar_one()
        assert program.occupied_beds == 90
        assert program.occupancy_date == date(2024, 1, 16)
        assert db.execute(select(Location.postal_code)).scalar_one() == "M5A 2N2"


    def test_non_ascii_case_variant_across_runs(self, db):
        run_pipeline(db, [make_raw(1, LOCATION_NAME="École Shelter")])
        second = run_pipeline(db, [make_raw(2, LOCATION_NAME="école shelter")])

        assert _count(db, Location) == 1
        assert (second.locations_inserted, second.locations_existing) == (0, 1)
        assert (second.programs_inserted, second.programs_updated) == (0, 1)

    def test_city_less_location_stays_separate_across_runs(self, db):
        records = [make_raw(1, LOCATION_CITY=None, LOCATION_PROVINCE=None), make_raw(2)]
        run_pipeline(db, records)
        second = run_pipeline(db, records)

        assert _count(db, Location) == 2
        assert second.locations_existing == 2
        assert db.execute(select(Location.city).order_by(Location.id)).scalars().all() == [None, "Toronto"]


class TestScopingAndSkips:

    def test_same_program_name_at_two_locations(self, db):
        run_pipeline(db, [
            make_raw(1),
            make_raw(2, LOCATION_NAME="Fred Victor", LOCATION_ADDRESS="145 Queen St E"),
        ])
        rows = db.execute(select(Program.location_id, Program.program_name)).all()
        assert len(rows) == 2
        assert len({location_id for location_id, _ in rows}) == 2

    def test_skip_accounting(self, db):
        summary = run_pipeline(db, [
            make_raw(1, PROGRAM_NAME=""),
            make_raw(2),
            make_raw(None),
            make_raw(4, LOCATION_ADDRESS=None),
        ])
        assert summary.records_fetched == 4
        assert summary.records_dropped == 1
        assert summary.records_skipped == 1
        assert summary.programs_skipped == 1
        assert summary.programs_inserted == 1
        assert _count(db, Program) == 1

        reasons = [skip["reason"] for skip in summary.to_dict()["skips"]]
        assert reasons == ["missing_id", "missing_location_name_or_address", "missing_program_name"]

    def test_last_refreshed_is_stamped(self, db):
        summary = run_pipeline(db, [make_raw(1)])
        metadata = db.get(ShelterMetadata, ShelterMetadata.SINGLETON_ID)
        assert metadata.last_refreshed == summary.last_refreshed

        second = run_pipeline(db, [make_raw(1)])
        db.expire_all()
        assert _count(db, ShelterMetadata) == 1
        assert db.get(ShelterMetadata, 1).last_refreshed == second.last_refreshed


class TestShelterSyncService:

    def test_run_sync_uses_record_source(self, session_factory):
        service = ShelterSyncService(session_factory=session_factory, record_source=seaton_house_records)
        summary = service.run_sync()
        assert summary.to_dict()["programs"]["inserted"] == 1

    def test_upstream_failure_persists_nothing(self, session_factory, db):
        def failing_source():
            yield make_raw(1)
            raise ConnectionError("CKAN went away")

        service = ShelterSyncService(session_factory=session_factory, record_source=failing_source)
        with pytest.raises(UpstreamFetchError):
            service.run_sync()

        assert _count(db, Location) == 0
        assert _count(db, ShelterMetadata) == 0

    def test_concurrent_run_is_refused(self, session_factory, engine, db):
        service = ShelterSyncService(session_factory=session_factory, record_source=seaton_house_records)
        with single_flight(engine):
            with pytest.raises(SyncInProgressError):
                service.run_sync()
        assert _count(db, Location) == 0

        service.run_sync()
        assert _count(db, Location) == 1
