# restobot/offers/benefits.py
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from ..models.cart import CartLine, cart_total
from ..models.offer import (
    AppliedOffer,
    OfferDefinition,
    OfferLineItem,
    OfferType,
    OpenFreeItem,
    ResolvedFreeItem,
)
from ..utils.formatters import format_price
from .eligibility import category_subtotal, matching_quantity

CENT = Decimal("0.01")

def round_money(amount) -> Decimal:
    """Round half up to 2 decimal places"""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)

def percent_of(amount: Decimal, percentage: Decimal) -> Decimal:
    return amount * percentage / Decimal(100)

class BenefitApplier:
    """Turns an eligible offer into a discount and/or free item grants.

    max_discount_amount is only honoured when enforce_discount_cap is set.
    """

    def __init__(self, enforce_discount_cap: bool = False):
        self.enforce_discount_cap = enforce_discount_cap

    def apply(self, offer: OfferDefinition, cart: List[CartLine]) -> AppliedOffer:
        terms = offer.terms
        offer_type = offer.offer_type
        total = cart_total(cart)
        discount = Decimal(0)
        free_items = []

        if offer_type == OfferType.CART_PERCENTAGE:
            discount = percent_of(total, terms.discount_percentage)

        elif offer_type == OfferType.CART_FLAT_AMOUNT:
            discount = min(terms.discount_amount, total)

        elif offer_type in (OfferType.MIN_ORDER_DISCOUNT, OfferType.CUSTOMER_BASED, OfferType.PROMO_CODE):
            discount = self._percentage_or_flat(terms, total)

        elif offer_type == OfferType.CART_THRESHOLD_ITEM:
            free_items = self._threshold_grants(offer)

        elif offer_type == OfferType.ITEM_BUY_GET_FREE:
            free_items = self._buy_get_free_grants(offer, cart)

        elif offer_type == OfferType.ITEM_FREE_ADDON:
            free_items = self._addon_grants(offer)

        elif offer_type in (OfferType.ITEM_PERCENTAGE, OfferType.TIME_BASED):
            if terms.categories:
                discount = self._percentage_or_flat(terms, category_subtotal(cart, terms.categories))

        # combo_meal is priced as a bundle outside the engine

        discount = self._apply_cap(offer, discount)

        return AppliedOffer(
            id=offer.id,
            name=offer.name,
            offer_type=offer_type,
            discount_amount=max(round_money(discount), Decimal("0.00")),
            free_items=free_items,
        )

    @staticmethod
    def _percentage_or_flat(terms, base: Decimal) -> Decimal:
        if terms.discount_percentage:
            return percent_of(base, terms.discount_percentage)
        if terms.discount_amount:
            return min(terms.discount_amount, base)
        return Decimal(0)

    def _apply_cap(self, offer: OfferDefinition, discount: Decimal) -> Decimal:
        cap = getattr(offer.terms, "max_discount_amount", None)
        if self.enforce_discount_cap and cap is not None:
            return min(discount, cap)
        return discount

    @staticmethod
    def _threshold_grants(offer: OfferDefinition) -> list:
        options = offer.free_grant_lines
        if not options:
            return []

        max_price = offer.terms.max_price
        message = "Choose 1 free item"
        if max_price is not None:
            message += f" (up to {format_price(max_price)})"

        return [OpenFreeItem(
            source="threshold_free",
            quantity=1,
            max_price=max_price,
            options=options,
            message=message,
        )]

    @staticmethod
    def _addon_grants(offer: OfferDefinition) -> list:
        options = offer.free_grant_lines
        if not options:
            return []

        max_price = offer.terms.max_price
        message = "Choose 1 free add-on"
        if max_price is not None:
            message += f" (up to {format_price(max_price)})"

        return [OpenFreeItem(
            source="free_addon",
            quantity=1,
            max_price=max_price,
            options=options,
            message=message,
        )]

    def _buy_get_free_grants(self, offer: OfferDefinition, cart: List[CartLine]) -> list:
        terms = offer.terms
        must_buy = offer.must_buy_lines

        qualified_sets = 0
        for line_item in must_buy:
            qualified_sets = max(qualified_sets, matching_quantity(line_item, cart) // terms.buy_quantity)

        if qualified_sets == 0:
            return []

        free_quantity = qualified_sets * terms.get_quantity

        if terms.get_same_item:
            for line_item in must_buy:
                if matching_quantity(line_item, cart) < terms.buy_quantity:
                    continue
                cart_line = self._first_cart_line(line_item, cart)
                if cart_line is None:
                    continue
                return [ResolvedFreeItem(
                    item_id=cart_line.item_id,
                    item_name=cart_line.name,
                    quantity=free_quantity,
                    unit_price=cart_line.price,
                    source="buy_get_same",
                )]
            return []

        options = offer.free_grant_lines
        if not options:
            return []

        return [OpenFreeItem(
            source="buy_get_different",
            quantity=free_quantity,
            options=options,
            message=f"Choose {free_quantity} free item(s) from eligible options",
        )]

    @staticmethod
    def _first_cart_line(line_item: OfferLineItem, cart: List[CartLine]) -> Optional[CartLine]:
        for line in cart:
            if line_item.is_category and line.category_id == line_item.menu_category_id:
                return line
            if not line_item.is_category and line.item_id == line_item.menu_item_id:
                return line
        return None
