"""
Tests for location grouping and first-wins coalesce merging.
"""
from shelter_sync.services.location_merger import (
    CanonicalLocation,
    coalesce_fill_location,
    location_identity_key,
    merge_locations,
)
from shelter_sync.services.record_normalizer import normalize_record
from tests.conftest import make_raw


def _records(*raws):
    return [normalize_record(raw) for raw in raws]


class TestIdentityKey:

    def test_case_and_whitespace_insensitive(self):
        assert location_identity_key(" Seaton House ", "339 George St", "Toronto", "ON") == \
            location_identity_key("seaton house", "339 GEORGE ST", "toronto", " on")

    def test_missing_city_matches_empty(self):
        assert location_identity_key("A", "B", None, None) == ("a", "b", "", "")

    def test_non_ascii_is_folded(self):
        assert location_identity_key("École Shelter", "1 Rue", None, None) == \
            location_identity_key("école shelter", "1 rue", None, None)

    def test_identity_joins_the_key(self):
        location = CanonicalLocation(location_name="Seaton House", address="339 George St", city="Toronto")
        assert location.identity == "\x1f".join(location.key)


class TestMergeLocations:

    def test_case_variants_merge_into_one_location(self):
        result = merge_locations(_records(
            make_raw(1, LOCATION_NAME=" Seaton House "),
            make_raw(2, LOCATION_NAME="seaton house"),
        ))
        assert len(result.locations) == 1
        location = result.locations[0]
        assert location.location_name == "Seaton House"
        assert len(location.programs) == 2

    def test_non_null_postal_code_survives_later_null(self):
        result = merge_locations(_records(
            make_raw(1, LOCATION_POSTAL_CODE="M5A 2N2"),
            make_raw(2, LOCATION_POSTAL_CODE=None),
        ))
        assert result.locations[0].postal_code == "M5A 2N2"

    def test_null_field_is_filled_by_later_record(self):
        result = merge_locations(_records(
            make_raw(1, LATITUDE=None),
            make_raw(2, LATITUDE="43.65"),
            make_raw(3, LATITUDE="40.00"),
        ))
        assert result.locations[0].latitude == 43.65

    def test_order_is_first_appearance(self):
        result = merge_locations(_records(
            make_raw(1, LOCATION_NAME="B House"),
            make_raw(2, LOCATION_NAME="A House"),
            make_raw(3, LOCATION_NAME="b house"),
        ))
        assert [loc.location_name for loc in result.locations] == ["B House", "A House"]

    def test_records_without_name_or_address_are_skipped(self):
        result = merge_locations(_records(
            make_raw(1, LOCATION_NAME=" "),
            make_raw(2, LOCATION_ADDRESS=None),
            make_raw(3),
        ))
        assert len(result.locations) == 1
        assert result.skipped == 2
        assert [s.reference for s in result.skips] == ["1", "2"]

    def test_programs_are_appended_unmerged(self):
        result = merge_locations(_records(
            make_raw(1, OCCUPIED_BEDS="80"),
            make_raw(2, OCCUPIED_BEDS="85"),
        ))
        assert [p.occupied_beds for p in result.locations[0].programs] == [80, 85]
        assert [p.record_id for p in result.locations[0].programs] == ["1", "2"]


def test_coalesce_fill_never_clobbers():
    target = CanonicalLocation(location_name="A", address="B", city="Toronto", postal_code=None)
    incoming = normalize_record(make_raw(9, LOCATION_CITY="Scarborough", LOCATION_POSTAL_CODE="M1M 1M1"))
    coalesce_fill_location(target, incoming)
    assert target.city == "Toronto"
    assert target.postal_code == "M1M 1M1"
    assert target.location_name == "A"


class TestMissingCityAndProvince:

    def test_later_city_does_not_change_the_key(self):
        result = merge_locations(_records(
            make_raw(1, LOCATION_CITY=None, LOCATION_PROVINCE=None),
            make_raw(2),
            make_raw(3, LOCATION_CITY="  ", LOCATION_PROVINCE=None),
        ))

        assert len(result.locations) == 2
        without_city, with_city = result.locations
        assert without_city.key == ("seaton house", "339 george st", "", "")
        assert (without_city.city, without_city.province) == (None, None)
        assert len(without_city.programs) == 2
        assert with_city.key == ("seaton house", "339 george st", "toronto", "on")
