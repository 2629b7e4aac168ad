from datetime import datetime, timezone

import pytest

from localmarket.services.delivery_format import (
    format_delivery_date,
    format_delivery_days,
    get_delivery_timing,
    parse_iso,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def test_parse_iso_trailing_z():
    parsed = parse_iso("2026-11-14T10:00:00Z")
    assert parsed.tzinfo is not None
    assert parsed.utcoffset().total_seconds() == 0


def test_parse_iso_rejects_garbage():
    with pytest.raises(ValueError):
        parse_iso("next tuesday")


def test_format_delivery_days():
    assert format_delivery_days(["Tuesday", "Thursday"]) == "Tue, Thur"
    assert format_delivery_days(["monday", "SUNDAY"]) == "Mon, Sun"
    assert format_delivery_days([]) == ""


def test_format_delivery_date():
    assert format_delivery_date("2026-11-14") == "Nov 14"
    assert format_delivery_date("2026-01-05T08:00:00Z") == "Jan 5"


class TestDeliveryTiming:

    def test_future_date_then_days(self):
        timing = get_delivery_timing(["Saturday"], "2026-11-14T00:00:00Z", now=NOW)
        assert timing == ["Nov 14", "Sat"]

    def test_past_date_is_hidden(self):
        assert get_delivery_timing(None, "2026-10-01", now=NOW) == []

    def test_naive_date_compared_as_utc(self):
        assert get_delivery_timing(None, "2026-10-20", now=NOW) == ["Oct 20"]

    def test_days_only(self):
        assert get_delivery_timing(["Monday", "Thursday"], now=NOW) == ["Mon, Thur"]

    def test_nothing(self):
        assert get_delivery_timing(now=NOW) == []
