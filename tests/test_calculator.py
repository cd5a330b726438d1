"""End to end offer calculation over a fake offer store."""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytz

from helpers import line, make_offer
from restobot.models.cart import CustomerRef
from restobot.models.offer import AppliedOffer, OfferType, OpenFreeItem, ResolvedFreeItem
from restobot.offers.calculator import OfferCalculator
from restobot.offers.policy import best_single_offer
from restobot.offers.validation import parse_offer_text, prepare_offer


def serve(store, rows):
    """Make the fake store filter rows by promo code the way the SQL does"""
    async def query_offers(is_active=True, promo_code=None):
        return [
            row for row in rows
            if row["is_active"] == is_active
            and (row["promo_code"] or None) == promo_code
        ]
    store.query_offers.side_effect = query_offers


@pytest.fixture
def calculator(store, now):
    return OfferCalculator(store, timezone="Asia/Kolkata", clock=lambda: now)


def percentage(offer_id="pct", pct=10, **fields):
    return make_offer(offer_id, "cart_percentage", benefits={"discount_percentage": pct}, **fields)


class TestTotals:
    async def test_no_offers(self, calculator, store):
        serve(store, [])

        result = await calculator.calculate([line(price="120", quantity=2)])

        assert result.original_amount == Decimal("240.00")
        assert result.discount_amount == Decimal("0.00")
        assert result.final_amount == Decimal("240.00")
        assert result.applied_offers == []

    async def test_no_eligible_offers(self, calculator, store):
        serve(store, [make_offer("flat", "cart_flat_amount",
                                 conditions={"min_amount": 1000}, benefits={"discount_amount": 100})])

        result = await calculator.calculate([line(price="300")])

        assert result.discount_amount == Decimal("0.00")
        assert result.final_amount == result.original_amount

    async def test_ten_percent_of_cart(self, calculator, store):
        serve(store, [percentage(pct=10)])
        cart = [
            line("pizza", price="100"),
            line("pasta", price="100"),
            line("coke", price="50", category_id="drinks"),
        ]

        result = await calculator.calculate(cart)

        assert result.original_amount == Decimal("250.00")
        assert result.discount_amount == Decimal("25.00")
        assert result.final_amount == Decimal("225.00")

    async def test_flat_amount_capped_by_cart_total(self, calculator, store):
        serve(store, [make_offer("flat", "cart_flat_amount", benefits={"discount_amount": 500})])

        result = await calculator.calculate([line(price="100")])

        assert result.discount_amount == Decimal("100.00")
        assert result.final_amount == Decimal("0.00")

    async def test_stacked_discounts_never_exceed_total(self, calculator, store):
        serve(store, [
            percentage("a", pct=60),
            percentage("b", pct=70),
            make_offer("c", "cart_flat_amount", benefits={"discount_amount": 90}),
        ])

        result = await calculator.calculate([line(price="100")])

        assert result.discount_amount == Decimal("100.00")
        assert result.final_amount == Decimal("0.00")
        assert len(result.applied_offers) == 3

    @pytest.mark.parametrize("price, quantity, pct", [
        ("0.01", 1, 33),
        ("99.99", 3, 15),
        ("1234.56", 2, 100),
        ("7.77", 7, "12.5"),
    ])
    async def test_result_bounds(self, calculator, store, price, quantity, pct):
        serve(store, [percentage(pct=pct), make_offer("f", "cart_flat_amount", benefits={"discount_amount": 5})])

        result = await calculator.calculate([line(price=price, quantity=quantity)])

        assert Decimal(0) <= result.discount_amount <= result.original_amount
        assert result.final_amount == max(Decimal(0), result.original_amount - result.discount_amount)

    async def test_empty_cart(self, calculator, store):
        serve(store, [percentage()])

        result = await calculator.calculate([])

        assert result.original_amount == Decimal("0.00")
        assert result.final_amount == Decimal("0.00")
        assert result.applied_offers == []


class TestBuyGetFree:
    async def test_buy_one_get_one_same_item(self, calculator, store):
        serve(store, [make_offer(
            "bogo", "item_buy_get_free",
            benefits={"buy_quantity": 1, "get_quantity": 1, "get_same_item": True},
            items=[{"menu_item_id": "pizza", "item_type": "buy"}],
        )])

        result = await calculator.calculate([line("pizza", price="300", quantity=3)])

        [grant] = result.free_items
        assert isinstance(grant, ResolvedFreeItem)
        assert grant.quantity == 3
        assert grant.unit_price == Decimal("300")
        assert result.discount_amount == Decimal("0.00")
        assert [offer.id for offer in result.applied_offers] == ["bogo"]


class TestPromoCodes:
    def promo(self):
        return make_offer("promo", "promo_code", benefits={"discount_percentage": 10}, promo_code="SAVE10")

    async def test_excluded_without_code(self, calculator, store):
        serve(store, [self.promo()])

        result = await calculator.calculate([line(price="500")])

        assert result.applied_offers == []

    @pytest.mark.parametrize("code", ["SAVE10", "save10", "  Save10 "])
    async def test_included_with_code_in_any_case(self, calculator, store, code):
        serve(store, [self.promo()])

        result = await calculator.calculate([line(price="500")], promo_code=code)

        assert [offer.id for offer in result.applied_offers] == ["promo"]
        assert result.discount_amount == Decimal("50.00")

    async def test_other_code_is_excluded(self, calculator, store):
        serve(store, [self.promo()])

        result = await calculator.calculate([line(price="500")], promo_code="SAVE20")

        assert result.applied_offers == []

    async def test_ignores_store_leaking_promo_offers(self, calculator, store):
        store.query_offers.return_value = [self.promo(), percentage()]

        result = await calculator.calculate([line(price="500")])

        assert [offer.id for offer in result.applied_offers] == ["pct"]


class TestSchedule:
    async def test_valid_days_follow_injected_now(self, store):
        serve(store, [percentage(valid_days=["monday"])])
        calculator = OfferCalculator(store, timezone="Asia/Kolkata")
        cart = [line(price="200")]

        # 2024-06-10 is a Monday
        monday = datetime(2024, 6, 10, 6, 30, tzinfo=pytz.utc)
        for days in range(1, 7):
            other_day = await calculator.calculate(cart, now=monday + timedelta(days=days))
            assert other_day.applied_offers == []

        on_monday = await calculator.calculate(cart, now=monday)
        assert [offer.id for offer in on_monday.applied_offers] == ["pct"]

    async def test_clock_used_when_now_is_omitted(self, store):
        serve(store, [percentage(valid_hours_start="18:00", valid_hours_end="22:00")])
        evening = datetime(2024, 6, 12, 14, 0, tzinfo=pytz.utc)  # 19:30 local
        calculator = OfferCalculator(store, timezone="Asia/Kolkata", clock=lambda: evening)

        result = await calculator.calculate([line(price="200")])

        assert result.discount_amount == Decimal("20.00")


class TestStacking:
    def rows(self):
        return [
            percentage("pct", pct=10, priority=1),
            make_offer("flat", "cart_flat_amount", benefits={"discount_amount": 30}, priority=5),
            make_offer(
                "bogo", "item_buy_get_free",
                benefits={"buy_quantity": 1, "get_quantity": 1},
                items=[
                    {"menu_item_id": "pizza", "item_type": "buy"},
                    {"menu_item_id": "coke", "item_type": "get_free"},
                ],
                priority=3,
            ),
        ]

    async def test_all_eligible_offers_stack_by_priority(self, calculator, store):
        serve(store, self.rows())

        result = await calculator.calculate([line("pizza", price="400")])

        assert [offer.id for offer in result.applied_offers] == ["flat", "bogo", "pct"]
        assert result.discount_amount == Decimal("70.00")
        assert result.final_amount == Decimal("330.00")
        assert isinstance(result.free_items[0], OpenFreeItem)

    async def test_equal_priorities_keep_store_order(self, calculator, store):
        serve(store, [percentage("first", pct=5), percentage("second", pct=5), percentage("third", pct=5)])

        result = await calculator.calculate([line(price="100")])

        assert [offer.id for offer in result.applied_offers] == ["first", "second", "third"]

    async def test_best_single_offer_policy(self, store):
        serve(store, self.rows())
        calculator = OfferCalculator(store, timezone="Asia/Kolkata", stacking_policy=best_single_offer)

        result = await calculator.calculate([line("pizza", price="400")])

        assert [offer.id for offer in result.applied_offers] == ["pct"]
        assert result.discount_amount == Decimal("40.00")

    async def test_offers_without_effect_are_dropped(self, calculator, store):
        serve(store, [
            percentage(),
            make_offer("combo", "combo_meal", benefits={"combo_price": 499}),
            make_offer("drinks", "item_percentage",
                       benefits={"discount_percentage": 20, "categories": ["drinks"]}),
        ])

        result = await calculator.calculate([line(price="100")])

        assert [offer.id for offer in result.applied_offers] == ["pct"]


class TestFailures:
    async def test_store_failure_returns_empty_result(self, calculator, store):
        store.query_offers.side_effect = RuntimeError("connection refused")

        result = await calculator.calculate([line(price="250")])

        assert result.applied_offers == []
        assert result.discount_amount == Decimal("0.00")
        assert result.final_amount == Decimal("250.00")

    async def test_malformed_offer_is_skipped(self, calculator, store):
        serve(store, [
            make_offer("broken", "cart_percentage", benefits={"discount_percentage": "lots"}),
            percentage("ok", pct=10),
        ])

        result = await calculator.calculate([line(price="100")])

        assert [offer.id for offer in result.applied_offers] == ["ok"]

    async def test_offer_failing_to_apply_is_skipped(self, calculator, store, monkeypatch):
        serve(store, [percentage("a", priority=2), percentage("b", priority=1)])
        apply = calculator.applier.apply

        def flaky_apply(offer, cart):
            if offer.id == "a":
                raise ArithmeticError("boom")
            return apply(offer, cart)

        monkeypatch.setattr(calculator.applier, "apply", flaky_apply)

        result = await calculator.calculate([line(price="100")])

        assert [offer.id for offer in result.applied_offers] == ["b"]


class TestCustomerOffers:
    def first_order(self):
        return make_offer("welcome", "customer_based",
                          conditions={"customer_type": "first_time"},
                          benefits={"discount_amount": 75})

    async def test_history_looked_up_once(self, calculator, store, customer):
        serve(store, [self.first_order(), percentage()])
        store.count_prior_orders.return_value = 0

        result = await calculator.calculate([line(price="500")], customer)

        store.count_prior_orders.assert_awaited_once_with(customer)
        assert {offer.id for offer in result.applied_offers} == {"welcome", "pct"}

    async def test_no_lookup_without_segment_offers(self, calculator, store, customer):
        serve(store, [percentage()])

        await calculator.calculate([line(price="500")], customer)

        store.count_prior_orders.assert_not_awaited()

    async def test_no_lookup_for_anonymous_guest(self, calculator, store):
        serve(store, [self.first_order()])

        result = await calculator.calculate([line(price="500")], CustomerRef(table_code="T3"))

        store.count_prior_orders.assert_not_awaited()
        assert result.applied_offers == []

    async def test_history_failure_makes_segment_offers_ineligible(self, calculator, store, customer):
        serve(store, [self.first_order(), percentage()])
        store.count_prior_orders.side_effect = TimeoutError()

        result = await calculator.calculate([line(price="500")], customer)

        assert [offer.id for offer in result.applied_offers] == ["pct"]


class TestRecordUsage:
    def applied(self):
        return [
            AppliedOffer(id="1", name="Ten off", offer_type=OfferType.CART_PERCENTAGE,
                         discount_amount=Decimal("10.00")),
            AppliedOffer(id="2", name="Flat", offer_type=OfferType.CART_FLAT_AMOUNT,
                         discount_amount=Decimal("30.00")),
        ]

    async def test_writes_usage_then_increments(self, calculator, store, customer):
        await calculator.record_usage(self.applied(), "order-1", customer)

        [records] = store.record_offer_usage.await_args.args
        assert [r.offer_id for r in records] == ["1", "2"]
        assert records[0].order_id == "order-1"
        assert records[0].customer_phone == customer.phone
        assert records[1].discount_amount == Decimal("30.00")
        assert [c.args for c in store.increment_offer_usage_count.await_args_list] == [("1",), ("2",)]

    async def test_nothing_to_record(self, calculator, store):
        await calculator.record_usage([], "order-1")

        store.record_offer_usage.assert_not_awaited()
        store.increment_offer_usage_count.assert_not_awaited()

    async def test_failures_are_swallowed(self, calculator, store, customer):
        store.record_offer_usage.side_effect = RuntimeError("insert failed")
        store.increment_offer_usage_count.side_effect = [RuntimeError("update failed"), True]

        await calculator.record_usage(self.applied(), "order-1", customer)

        assert store.increment_offer_usage_count.await_count == 2


class TestPreview:
    async def test_reports_eligibility_and_estimate(self, calculator, store):
        serve(store, [
            percentage("pct", pct=10, priority=1),
            make_offer("big", "cart_flat_amount", conditions={"min_amount": 1000},
                       benefits={"discount_amount": 150}, priority=9),
        ])

        previews = await calculator.preview_offers([line(price="600")])

        assert [p.offer.id for p in previews] == ["big", "pct"]
        assert previews[0].eligible is False
        assert previews[0].reason == "Add ₹400 more to unlock"
        assert previews[1].eligible is True
        assert previews[1].estimated_discount == Decimal("60.00")

    async def test_store_failure(self, calculator, store):
        store.query_offers.side_effect = RuntimeError("down")

        assert await calculator.preview_offers([line()]) == []


class TestValidatePromoCode:
    async def test_valid_code(self, calculator, store):
        serve(store, [make_offer("promo", "promo_code", benefits={"discount_amount": 50},
                                 promo_code="WELCOME50")])

        result = await calculator.validate_promo_code("welcome50", [line(price="300")])

        assert result == {
            "valid": True,
            "code": "WELCOME50",
            "offer_id": "promo",
            "offer_name": "Offer promo",
            "amount": Decimal("50.00"),
            "final_amount": Decimal("250.00"),
        }

    async def test_unknown_code(self, calculator, store):
        serve(store, [])

        result = await calculator.validate_promo_code("NOPE", [line()])

        assert result == {"valid": False, "error": "Invalid or expired promo code"}

    async def test_blank_code_and_empty_cart(self, calculator, store):
        assert (await calculator.validate_promo_code("  ", [line()]))["error"] == "Please enter a promo code"
        assert (await calculator.validate_promo_code("SAVE", []))["error"] == "Your cart is empty"
        store.query_offers.assert_not_awaited()

    async def test_conditions_not_met(self, calculator, store):
        store.query_offers.return_value = [make_offer(
            "promo", "cart_flat_amount", conditions={"min_amount": 1000},
            benefits={"discount_amount": 100}, promo_code="BIGSPENDER",
        )]

        result = await calculator.validate_promo_code("bigspender", [line(price="300")])

        assert result == {"valid": False, "error": "Add ₹700 more to unlock"}


class TestAuthoredOffers:
    async def test_promo_minimum_typed_by_staff_is_enforced(self, calculator, store):
        form, items = parse_offer_text("promo_code=welcome50\ndiscount_amount=50\nmin_amount=300")
        record = prepare_offer("promo_code", {**form, "name": "Welcome"}, items)
        serve(store, [make_offer("welcome", **record)])

        small = await calculator.calculate([line(price="60")], promo_code="welcome50")
        big = await calculator.calculate([line(price="300")], promo_code="welcome50")

        assert small.discount_amount == Decimal("0.00")
        assert small.final_amount == Decimal("60.00")
        assert big.discount_amount == Decimal("50.00")

    async def test_loyalty_audience_survives_authoring(self, calculator, store, customer):
        record = prepare_offer("customer_based", {
            "name": "Loyal", "target_customer_type": "loyalty",
            "min_orders_count": "5", "discount_percentage": "10",
        }, [])
        serve(store, [make_offer("loyal", **record)])
        store.count_prior_orders.return_value = 1

        result = await calculator.calculate([line(price="500")], customer)

        assert result.applied_offers == []
        store.count_prior_orders.assert_awaited_once_with(customer)
