"""
Delivery eligibility: zone matching, fee waiver and delivery option generation.

The calendar is pinned to Monday 2026-10-19.
"""
from datetime import date
from unittest.mock import MagicMock

import pytest
from freezegun import freeze_time

from localmarket.core.errors import InvalidEligibilityRequest
from localmarket.schemas.delivery import DeliveryCheckRequest, EligibilityStatus
from localmarket.services.delivery_eligibility import (
    REASON_ERROR,
    REASON_NEED_ZIP,
    DeliveryEligibilityService,
    build_check_request,
    check_delivery_eligibility,
    effective_delivery_fee,
)

TODAY = date(2026, 10, 19)


@pytest.fixture
def service(db):
    return DeliveryEligibilityService(db, today_fn=lambda: TODAY)


@pytest.fixture
def zone(make_zone):
    return make_zone(
        "zone-sf",
        zip_codes=["94110", "94103"],
        cities=["San Francisco"],
        states=["CA"],
        delivery_fee=500,
        free_delivery_threshold=5000,
        delivery_days=["Monday", "Thursday"],
    )


@pytest.fixture
def recurring(make_product, zone):
    return make_product(
        "p-recurring",
        delivery_available=True,
        delivery_type="RECURRING",
        delivery_zone_id=zone.id,
        inventory=7,
    )


def _request(product_id, **kwargs):
    return DeliveryCheckRequest(product_id=product_id, **kwargs)


class TestZoneMatching:

    @pytest.mark.asyncio
    async def test_zip_in_zone_is_eligible(self, service, recurring):
        result = await service.check(_request("p-recurring", user_zip_code="94110"))

        assert result.is_eligible is True
        assert result.status == EligibilityStatus.ELIGIBLE
        assert result.matched_zip_code == "94110"
        assert result.delivery_options
        assert all(o.delivery_fee == 500 for o in result.delivery_options)

    @pytest.mark.asyncio
    async def test_zip_outside_zone(self, service, recurring):
        result = await service.check(_request("p-recurring", user_zip_code="10001"))

        assert result.is_eligible is False
        assert result.status == EligibilityStatus.NOT_MATCHED
        assert "10001" in result.reason
        assert result.delivery_options == []

    @pytest.mark.asyncio
    async def test_zip_wins_over_city_and_state(self, service, recurring):
        result = await service.check(_request(
            "p-recurring", user_zip_code="94103", user_city="San Francisco", user_state="CA",
        ))

        assert result.matched_zip_code == "94103"
        assert result.matched_city is None

    @pytest.mark.asyncio
    async def test_city_and_state_match_case_insensitive(self, service, recurring):
        result = await service.check(_request(
            "p-recurring", user_city="san francisco", user_state="ca",
        ))

        assert result.status == EligibilityStatus.ELIGIBLE
        assert result.matched_zip_code is None
        assert result.matched_city == "san francisco"

    @pytest.mark.asyncio
    async def test_city_without_state_asks_for_zip(self, service, recurring):
        result = await service.check(_request("p-recurring", user_city="San Francisco"))

        assert result.status == EligibilityStatus.NOT_MATCHED
        assert result.reason == REASON_NEED_ZIP

    @pytest.mark.asyncio
    async def test_misconfigured_zone_is_not_matched(self, service, make_zone, make_product):
        empty = make_zone("zone-empty", zip_codes=[], cities=[], states=[])
        make_product("p-empty-zone", delivery_available=True, delivery_type="RECURRING",
                     delivery_zone_id=empty.id)

        result = await service.check(_request("p-empty-zone", user_zip_code="94110"))

        assert result.status == EligibilityStatus.NOT_MATCHED
        assert result.is_eligible is False


class TestIneligibleStates:

    @pytest.mark.asyncio
    async def test_unknown_product(self, service):
        result = await service.check(_request("missing", user_zip_code="94110"))
        assert result.status == EligibilityStatus.NOT_FOUND
        assert result.is_eligible is False

    @pytest.mark.asyncio
    async def test_delivery_disabled(self, service, make_product, zone):
        make_product("p-pickup", delivery_available=False, delivery_zone_id=zone.id)

        result = await service.check(_request("p-pickup", user_zip_code="94110"))

        assert result.status == EligibilityStatus.NO_DELIVERY

    @pytest.mark.asyncio
    async def test_delivery_without_zone(self, service, make_product):
        make_product("p-zoneless", delivery_available=True, delivery_type="RECURRING")

        result = await service.check(_request("p-zoneless", user_zip_code="94110"))

        assert result.status == EligibilityStatus.NO_ZONE

    @pytest.mark.asyncio
    async def test_store_failure_becomes_error_result(self):
        session = MagicMock()
        session.query.side_effect = Exception("connection refused")

        result = await DeliveryEligibilityService(session, today_fn=lambda: TODAY).check(
            _request("p-recurring", user_zip_code="94110")
        )

        assert result.status == EligibilityStatus.ERROR
        assert result.is_eligible is False
        assert result.reason == REASON_ERROR


class TestRecurringOptions:

    @pytest.mark.asyncio
    async def test_zone_days_over_eight_weeks(self, service, recurring):
        result = await service.check(_request("p-recurring", user_zip_code="94110"))
        options = result.delivery_options

        assert len(options) == 16
        assert [o.date for o in options] == sorted(o.date for o in options)
        assert len({o.date for o in options}) == 16
        assert {o.day_of_week for o in options} == {"Monday", "Thursday"}
        assert options[0].date == "2026-10-19"
        assert options[1].date == "2026-10-22"
        assert options[-1].date == "2026-12-10"
        assert all(o.is_recurring for o in options)
        assert all(o.inventory == 7 for o in options)
        assert all(o.delivery_zone_id == "zone-sf" for o in options)

    @pytest.mark.asyncio
    async def test_listings_override_zone_days(self, service, recurring, zone, make_listing):
        make_listing(recurring, zone, "Saturday", 3)

        result = await service.check(_request("p-recurring", user_zip_code="94110"))

        assert len(result.delivery_options) == 8
        assert {o.day_of_week for o in result.delivery_options} == {"Saturday"}
        assert all(o.inventory == 3 for o in result.delivery_options)

    @pytest.mark.asyncio
    async def test_zero_inventory_listing_is_skipped_without_fallback(
        self, service, recurring, zone, make_listing,
    ):
        make_listing(recurring, zone, "Monday", 5)
        make_listing(recurring, zone, "Thursday", 0)

        result = await service.check(_request("p-recurring", user_zip_code="94110"))
        days = {o.day_of_week for o in result.delivery_options}

        assert days == {"Monday"}
        assert len(result.delivery_options) == 8

    @pytest.mark.asyncio
    async def test_all_listings_sold_out_means_no_options(self, service, recurring, zone, make_listing):
        make_listing(recurring, zone, "Monday", 0)

        result = await service.check(_request("p-recurring", user_zip_code="94110"))

        assert result.status == EligibilityStatus.ELIGIBLE
        assert result.delivery_options == []

    @pytest.mark.asyncio
    async def test_listings_for_another_zone_are_ignored(
        self, service, recurring, make_zone, make_listing,
    ):
        other = make_zone("zone-oakland", zip_codes=["94601"])
        make_listing(recurring, other, "Saturday", 9)

        result = await service.check(_request("p-recurring", user_zip_code="94110"))

        assert {o.day_of_week for o in result.delivery_options} == {"Monday", "Thursday"}

    @pytest.mark.asyncio
    async def test_time_windows_from_list_form(self, service, make_zone, make_product):
        zone = make_zone(
            "zone-windows",
            delivery_days=["Tuesday"],
            delivery_time_windows=[{"day": "tuesday", "startTime": "8am", "endTime": "noon"}],
        )
        make_product("p-windows", delivery_available=True, delivery_type="RECURRING",
                     delivery_zone_id=zone.id)

        result = await service.check(_request("p-windows", user_zip_code="94110"))

        assert {o.time_window for o in result.delivery_options} == {"8am - noon"}

    @pytest.mark.asyncio
    async def test_default_time_window(self, service, recurring):
        result = await service.check(_request("p-recurring", user_zip_code="94110"))
        assert {o.time_window for o in result.delivery_options} == {"9am - 5pm"}


class TestOneTimeOptions:

    @pytest.mark.asyncio
    async def test_future_dates_only(self, service, make_zone, make_product):
        zone = make_zone("zone-once", delivery_time_windows={"Saturday": "8am - noon"})
        make_product(
            "p-once",
            delivery_available=True,
            delivery_type="ONE_TIME",
            delivery_zone_id=zone.id,
            inventory=4,
            delivery_dates=["2026-11-14", "2026-10-18", "not-a-date", "2026-10-25T10:00:00Z", "2026-10-19"],
        )

        result = await service.check(_request("p-once", user_zip_code="94110"))
        options = result.delivery_options

        assert [o.date for o in options] == ["2026-10-19", "2026-10-25", "2026-11-14"]
        assert options[-1].day_of_week == "Saturday"
        assert options[-1].time_window == "8am - noon"
        assert options[1].time_window == "9am - 5pm"
        assert not any(o.is_recurring for o in options)
        assert all(o.inventory == 4 for o in options)

    @pytest.mark.asyncio
    @freeze_time("2026-10-19 08:00:00")
    async def test_uses_todays_date_by_default(self, db, make_zone, make_product):
        zone = make_zone("zone-once")
        make_product("p-once", delivery_available=True, delivery_type="ONE_TIME",
                     delivery_zone_id=zone.id, delivery_dates=["2026-10-18", "2026-10-20"])

        result = await DeliveryEligibilityService(db).check(_request("p-once", user_zip_code="94110"))

        assert [o.date for o in result.delivery_options] == ["2026-10-20"]


class TestFees:

    @pytest.mark.asyncio
    async def test_threshold_waives_fee(self, service, recurring):
        result = await service.check(_request("p-recurring", user_zip_code="94110", order_subtotal=5000))

        assert all(o.delivery_fee == 0 for o in result.delivery_options)
        assert all(o.free_delivery_threshold == 5000 for o in result.delivery_options)

    @pytest.mark.asyncio
    async def test_below_threshold_pays_fee(self, service, recurring):
        result = await service.check(_request("p-recurring", user_zip_code="94110", order_subtotal=4999))
        assert all(o.delivery_fee == 500 for o in result.delivery_options)

    def test_effective_fee(self):
        assert effective_delivery_fee(500, 5000) == 500
        assert effective_delivery_fee(500, None, 100000) == 500
        assert effective_delivery_fee(500, 5000, 5000) == 0
        assert effective_delivery_fee(0, None) == 0


class TestRequestValidation:

    def test_zip_plus_four_is_trimmed(self):
        request = build_check_request("p1", user_zip_code=" 94110-1234 ", user_state="ca")
        assert request.user_zip_code == "94110"
        assert request.user_state == "CA"

    @pytest.mark.parametrize("kwargs", [
        {"product_id": "  "},
        {"product_id": "p1", "user_zip_code": "9411"},
        {"product_id": "p1", "user_state": "California"},
        {"product_id": "p1", "order_subtotal": -1},
    ])
    def test_bad_input_raises(self, kwargs):
        with pytest.raises(InvalidEligibilityRequest) as exc_info:
            build_check_request(**kwargs)
        assert exc_info.value.errors

    @pytest.mark.asyncio
    async def test_rejected_before_touching_store(self):
        session = MagicMock()

        with pytest.raises(InvalidEligibilityRequest):
            await check_delivery_eligibility(session, "p1", user_zip_code="abcde")

        session.query.assert_not_called()

    @pytest.mark.asyncio
    async def test_service_accepts_plain_dict(self, service, recurring):
        result = await service.check({"product_id": "p-recurring", "user_zip_code": "94110"})
        assert result.status == EligibilityStatus.ELIGIBLE
