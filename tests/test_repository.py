"""Candidate loading: storage filter, translation and schedule checks."""
from datetime import datetime, timedelta

import pytz

from helpers import NOON_WEDNESDAY, make_offer
from restobot.models.offer import OfferDefinition
from restobot.offers.repository import (
    OfferRepositoryReader,
    is_within_schedule,
    normalize_promo_code,
)

TZ = pytz.timezone("Asia/Kolkata")


def offer(**fields):
    return OfferDefinition.from_record(make_offer(benefits={"discount_percentage": 10}, **fields))


class TestSchedule:
    def test_no_constraints(self):
        assert is_within_schedule(offer(), NOON_WEDNESDAY, TZ)

    def test_date_range(self):
        assert not is_within_schedule(
            offer(start_date=NOON_WEDNESDAY + timedelta(days=1)), NOON_WEDNESDAY, TZ
        )
        assert not is_within_schedule(
            offer(end_date=NOON_WEDNESDAY - timedelta(seconds=1)), NOON_WEDNESDAY, TZ
        )
        assert is_within_schedule(
            offer(start_date=NOON_WEDNESDAY, end_date=NOON_WEDNESDAY), NOON_WEDNESDAY, TZ
        )

    def test_naive_dates_are_utc(self):
        naive_start = datetime(2024, 6, 12, 8, 0)
        assert not is_within_schedule(offer(start_date=naive_start), NOON_WEDNESDAY, TZ)

    def test_usage_limit(self):
        assert not is_within_schedule(offer(usage_limit=10, usage_count=10), NOON_WEDNESDAY, TZ)
        assert is_within_schedule(offer(usage_limit=10, usage_count=9), NOON_WEDNESDAY, TZ)
        # zero means no limit
        assert is_within_schedule(offer(usage_limit=0, usage_count=50), NOON_WEDNESDAY, TZ)

    def test_hours_use_local_time(self):
        # 07:30 UTC is 13:00 in Kolkata
        assert is_within_schedule(
            offer(valid_hours_start="12:00", valid_hours_end="15:00"), NOON_WEDNESDAY, TZ
        )
        assert not is_within_schedule(
            offer(valid_hours_start="07:00", valid_hours_end="08:00"), NOON_WEDNESDAY, TZ
        )

    def test_window_bounds_are_inclusive(self):
        assert is_within_schedule(
            offer(valid_hours_start="13:00", valid_hours_end="13:00"), NOON_WEDNESDAY, TZ
        )

    def test_window_crossing_midnight_never_matches(self):
        late = datetime(2024, 6, 12, 18, 0, tzinfo=pytz.utc)  # 23:30 local
        assert not is_within_schedule(
            offer(valid_hours_start="22:00", valid_hours_end="02:00"), late, TZ
        )

    def test_valid_days(self):
        assert is_within_schedule(offer(valid_days=["Wednesday"]), NOON_WEDNESDAY, TZ)
        assert not is_within_schedule(offer(valid_days=["saturday", "sunday"]), NOON_WEDNESDAY, TZ)

    def test_weekday_is_taken_in_local_time(self):
        # Tuesday 20:00 UTC is already Wednesday 01:30 in Kolkata
        tuesday_utc = datetime(2024, 6, 11, 20, 0, tzinfo=pytz.utc)
        assert is_within_schedule(offer(valid_days=["wednesday"]), tuesday_utc, TZ)


def test_normalize_promo_code():
    assert normalize_promo_code("  save10 ") == "SAVE10"
    assert normalize_promo_code("   ") is None
    assert normalize_promo_code(None) is None


class TestFetchCandidates:
    async def test_asks_store_for_active_offers_without_code(self, store, now):
        store.query_offers.return_value = [make_offer(benefits={"discount_percentage": 10})]
        reader = OfferRepositoryReader(store, "Asia/Kolkata")

        candidates = await reader.fetch_candidates(now)

        store.query_offers.assert_awaited_once_with(is_active=True, promo_code=None)
        assert [c.id for c in candidates] == ["1"]

    async def test_normalizes_promo_code(self, store, now):
        store.query_offers.return_value = [
            make_offer(offer_type="promo_code", benefits={"discount_amount": 50}, promo_code="SAVE50"),
        ]
        reader = OfferRepositoryReader(store, "Asia/Kolkata")

        candidates = await reader.fetch_candidates(now, " save50 ")

        store.query_offers.assert_awaited_once_with(is_active=True, promo_code="SAVE50")
        assert len(candidates) == 1

    async def test_drops_rows_the_store_should_not_have_returned(self, store, now):
        store.query_offers.return_value = [
            make_offer("1", benefits={"discount_percentage": 10}, promo_code="OTHER"),
            make_offer("2", benefits={"discount_percentage": 10}, is_active=False),
            make_offer("3", benefits={"discount_percentage": 10}),
        ]
        reader = OfferRepositoryReader(store, "Asia/Kolkata")

        candidates = await reader.fetch_candidates(now)

        assert [c.id for c in candidates] == ["3"]

    async def test_skips_malformed_rows(self, store, now):
        store.query_offers.return_value = [
            make_offer("1", offer_type="mystery"),
            make_offer("2", offer_type="cart_percentage", benefits={}),
            make_offer("3", benefits={"discount_percentage": 10}),
        ]
        reader = OfferRepositoryReader(store, "Asia/Kolkata")

        candidates = await reader.fetch_candidates(now)

        assert [c.id for c in candidates] == ["3"]

    async def test_filters_by_schedule(self, store, now):
        store.query_offers.return_value = [
            make_offer("1", benefits={"discount_percentage": 10}, valid_days=["sunday"]),
            make_offer("2", benefits={"discount_percentage": 10}, usage_limit=1, usage_count=1),
            make_offer("3", benefits={"discount_percentage": 10}, valid_days=["wednesday"]),
        ]
        reader = OfferRepositoryReader(store, "Asia/Kolkata")

        candidates = await reader.fetch_candidates(now)

        assert [c.id for c in candidates] == ["3"]

    async def test_store_failure_yields_no_candidates(self, store, now):
        store.query_offers.side_effect = ConnectionError("database is down")
        reader = OfferRepositoryReader(store, "Asia/Kolkata")

        assert await reader.fetch_candidates(now) == []
