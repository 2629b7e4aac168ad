import pytest
from pydantic import ValidationError

from localmarket.schemas.delivery import DeliveryZoneConfig, canonical_day, normalize_time_windows
from localmarket.schemas.search import SearchFilterState


def _zone(**overrides):
    values = {"id": "z1", "name": "Zone", "zip_codes": ["94110"]}
    values.update(overrides)
    return DeliveryZoneConfig(**values)


class TestTimeWindows:

    def test_dict_form(self):
        assert normalize_time_windows({"monday": " 9am - 1pm ", "Funday": "x", "Tuesday": ""}) == {
            "Monday": "9am - 1pm",
        }

    def test_list_form(self):
        raw = [
            {"day": "Saturday", "startTime": "8am", "endTime": "noon"},
            {"day": "Sunday", "startTime": "8am"},
            "garbage",
        ]
        assert normalize_time_windows(raw) == {"Saturday": "8am - noon"}

    @pytest.mark.parametrize("raw", [None, {}, [], "9am - 5pm", 42])
    def test_empty_or_unrecognized(self, raw):
        assert normalize_time_windows(raw) == {}


def test_canonical_day():
    assert canonical_day(" THURSDAY ") == "Thursday"
    assert canonical_day("Thur") is None
    assert canonical_day(None) is None


class TestZoneConfig:

    def test_drops_bad_entries(self):
        zone = _zone(
            zip_codes=["94110", "9411", "94103-0001"],
            states=["CA", "California"],
            delivery_days=["monday", "someday"],
        )

        assert zone.zip_codes == ["94110", "94103"]
        assert zone.states == ["CA"]
        assert zone.delivery_days == ["Monday"]

    def test_null_json_columns(self):
        zone = _zone(cities=None, states=None, delivery_days=None, delivery_time_windows=None)

        assert zone.cities == []
        assert zone.delivery_days == []
        assert zone.delivery_time_windows == {}

    def test_city_only_coverage_is_valid(self):
        assert _zone(zip_codes=[], cities=["Oakland"]).cities == ["Oakland"]

    def test_no_coverage_is_rejected(self):
        with pytest.raises(ValidationError):
            _zone(zip_codes=["bad"])

    def test_negative_fee_is_rejected(self):
        with pytest.raises(ValidationError):
            _zone(delivery_fee=-1)


def test_filter_categories_are_normalized():
    filters = SearchFilterState(categories=[" Eggs ", "", "Leafy Greens"])
    assert filters.categories == ["eggs", "leafy greens"]
