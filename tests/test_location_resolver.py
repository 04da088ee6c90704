"""
Tests for the insert-or-find location protocol against SQLite.
"""
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from shelter_sync.models import Location
from shelter_sync.services.location_merger import CanonicalLocation
from shelter_sync.services.location_resolver import LocationResolver


def _location(**overrides):
    values = dict(
        location_name="Seaton House",
        address="339 George St",
        postal_code=None,
        city="Toronto",
        province="ON",
    )
    values.update(overrides)
    return CanonicalLocation(**values)


class TestInsertOrFind:

    def test_new_locations_are_inserted(self, db):
        result = LocationResolver(db).resolve([
            _location(),
            _location(location_name="Fred Victor", address="145 Queen St E"),
        ])
        assert result.inserted == 2
        assert result.existing == 0
        assert len(set(result.ids.values())) == 2
        assert db.scalar(select(func.count()).select_from(Location)) == 2

    def test_second_run_finds_existing_rows(self, db):
        first = LocationResolver(db).resolve([_location()])
        second = LocationResolver(db).resolve([_location(location_name=" SEATON HOUSE ")])
        assert second.inserted == 0
        assert second.existing == 1
        assert list(second.ids.values()) == list(first.ids.values())
        assert db.scalar(select(func.count()).select_from(Location)) == 1

    def test_existing_row_is_coalesce_filled(self, db):
        LocationResolver(db).resolve([_location(postal_code=None, latitude=43.66)])
        LocationResolver(db).resolve([_location(postal_code="M5A 2N2", latitude=40.0, longitude=-79.37)])

        stored = db.execute(select(Location)).scalar_one()
        assert stored.postal_code == "M5A 2N2"
        assert stored.latitude == 43.66
        assert stored.longitude == -79.37

    def test_existing_values_never_cleared(self, db):
        LocationResolver(db).resolve([_location(postal_code="M5A 2N2")])
        LocationResolver(db).resolve([_location(postal_code=None)])
        assert db.execute(select(Location.postal_code)).scalar_one() == "M5A 2N2"

    def test_missing_city_and_province_still_conflict(self, db):
        LocationResolver(db).resolve([_location(city=None, province=None)])
        result = LocationResolver(db).resolve([_location(city=None, province=None)])
        assert result.existing == 1
        assert db.scalar(select(func.count()).select_from(Location)) == 1


class TestResolutionFailure:

    def test_conflict_without_findable_row_is_unresolved(self, db, monkeypatch):
        LocationResolver(db).resolve([_location()])

        resolver = LocationResolver(db)
        monkeypatch.setattr(resolver, "_find_existing", lambda location: None)
        result = resolver.resolve([_location(), _location(location_name="Fred Victor")])

        assert result.unresolved == 1
        assert result.inserted == 1
        assert _location().key not in result.ids
        assert result.skips[0].reason == "unresolved_location"

    def test_database_error_is_contained(self, db, monkeypatch):
        resolver = LocationResolver(db)
        original_insert = resolver._insert

        def flaky_insert(location):
            if location.location_name == "Broken":
                raise OperationalError("INSERT", {}, Exception("disk I/O error"))
            return original_insert(location)

        monkeypatch.setattr(resolver, "_insert", flaky_insert)
        result = resolver.resolve([_location(location_name="Broken"), _location()])

        assert result.unresolved == 1
        assert result.inserted == 1
        assert db.execute(select(Location.location_name)).scalars().all() == ["Seaton House"]


class TestIdentityKey:

    def test_non_ascii_case_variant_finds_existing_row(self, db):
        first = LocationResolver(db).resolve([_location(location_name="École Shelter")])
        second = LocationResolver(db).resolve([_location(location_name="école shelter")])

        assert second.inserted == 0
        assert second.existing == 1
        assert list(second.ids.values()) == list(first.ids.values())
        assert db.scalar(select(func.count()).select_from(Location)) == 1

    def test_identity_key_is_stored_folded(self, db):
        LocationResolver(db).resolve([_location(location_name=" ÉCOLE Shelter ", city=None, province=None)])
        stored = db.execute(select(Location)).scalar_one()
        assert stored.identity_key == "école shelter\x1f339 george st\x1f\x1f"
        assert stored.location_name == " ÉCOLE Shelter "

    def test_city_is_never_filled_into_an_existing_identity(self, db):
        without_city = LocationResolver(db).resolve([_location(city=None, province=None)])
        with_city = LocationResolver(db).resolve([_location()])

        assert with_city.inserted == 1
        assert set(without_city.ids.values()).isdisjoint(with_city.ids.values())
        rows = db.execute(select(Location.city, Location.identity_key).order_by(Location.id)).all()
        assert rows[0] == (None, "seaton house\x1f339 george st\x1f\x1f")
        assert rows[1].city == "Toronto"
