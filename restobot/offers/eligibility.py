# restobot/offers/eligibility.py
"""Offer condition checks against a cart.

Every check is a pure function of the offer, the cart and what we know
about the customer. The only lookup, the customer's prior order count, is
done by the caller (or by ``is_eligible_async``) before the check runs.
"""
from decimal import Decimal
from typing import Iterable, List, Optional
from ..models.cart import CartLine, CustomerRef, cart_total
from ..models.offer import CustomerSegment, OfferDefinition, OfferLineItem, OfferType
from ..utils.formatters import format_price

def matching_quantity(line_item: OfferLineItem, cart: Iterable[CartLine]) -> int:
    """Units in the cart covered by an offer line item"""
    if line_item.is_category:
        return sum(line.quantity for line in cart if line.category_id == line_item.menu_category_id)
    return sum(line.quantity for line in cart if line.item_id == line_item.menu_item_id)

def lines_in_categories(cart: Iterable[CartLine], categories: Optional[List[str]]) -> List[CartLine]:
    if not categories:
        return []
    return [line for line in cart if line.category_id and line.category_id in categories]

def needs_order_history(offer: OfferDefinition) -> bool:
    return (offer.offer_type == OfferType.CUSTOMER_BASED
            and offer.terms.customer_type != CustomerSegment.ALL)

class EligibilityEvaluator:
    """Decides whether an offer's conditions hold for a cart"""

    def is_eligible(self, offer: OfferDefinition, cart: List[CartLine],
                    customer: Optional[CustomerRef] = None,
                    prior_orders: Optional[int] = None) -> bool:
        return self.explain(offer, cart, customer, prior_orders) is None

    async def is_eligible_async(self, offer: OfferDefinition, cart: List[CartLine],
                                customer: Optional[CustomerRef], store) -> bool:
        """Same check, looking up the customer's order history first"""
        prior_orders = None
        if needs_order_history(offer) and customer and customer.has_identity:
            prior_orders = await store.count_prior_orders(customer)
        return self.is_eligible(offer, cart, customer, prior_orders)

    def explain(self, offer: OfferDefinition, cart: List[CartLine],
                customer: Optional[CustomerRef] = None,
                prior_orders: Optional[int] = None) -> Optional[str]:
        """Why the offer does not apply, or None when it does"""
        terms = offer.terms
        offer_type = offer.offer_type
        total = cart_total(cart)

        if offer_type in (OfferType.CART_PERCENTAGE, OfferType.CART_FLAT_AMOUNT, OfferType.PROMO_CODE):
            if terms.min_amount and total < terms.min_amount:
                return f"Add {format_price(terms.min_amount - total)} more to unlock"

        elif offer_type == OfferType.MIN_ORDER_DISCOUNT:
            if total < terms.threshold_amount:
                needed = terms.threshold_amount - total
                return f"Spend {format_price(terms.threshold_amount)} to unlock ({format_price(needed)} more needed)"

        elif offer_type == OfferType.CART_THRESHOLD_ITEM:
            threshold = terms.min_amount + terms.threshold_amount
            if total < threshold:
                return f"Spend {format_price(threshold)} to unlock ({format_price(threshold - total)} more)"

        elif offer_type == OfferType.ITEM_BUY_GET_FREE:
            return self._explain_buy_get_free(offer, cart)

        elif offer_type == OfferType.ITEM_FREE_ADDON:
            must_buy = offer.must_buy_lines
            if not must_buy:
                return "Qualifying items not configured"
            if not any(matching_quantity(line, cart) > 0 for line in must_buy):
                return "Add a qualifying item to unlock"

        elif offer_type == OfferType.TIME_BASED:
            if terms.categories and not lines_in_categories(cart, terms.categories):
                return "Add items from the offer categories to unlock"

        elif offer_type == OfferType.CUSTOMER_BASED:
            if terms.min_amount and total < terms.min_amount:
                return f"Add {format_price(terms.min_amount - total)} more to unlock"
            return self._explain_customer(offer, customer, prior_orders)

        return None

    @staticmethod
    def _explain_buy_get_free(offer: OfferDefinition, cart: List[CartLine]) -> Optional[str]:
        must_buy = offer.must_buy_lines
        if not must_buy:
            return "Qualifying items not configured"

        buy_quantity = offer.terms.buy_quantity
        for line_item in must_buy:
            quantity = matching_quantity(line_item, cart)
            if quantity < buy_quantity:
                return (
                    f"Buy {buy_quantity} to get {offer.terms.get_quantity} free "
                    f"({buy_quantity - quantity} more needed)"
                )
        return None

    @staticmethod
    def _explain_customer(offer: OfferDefinition, customer: Optional[CustomerRef],
                          prior_orders: Optional[int]) -> Optional[str]:
        segment = offer.terms.customer_type
        if segment == CustomerSegment.ALL:
            return None
        if customer is None or not customer.has_identity:
            return "Sign in to check eligibility"
        if prior_orders is None:
            return "Order history unavailable"

        if segment == CustomerSegment.FIRST_TIME and prior_orders > 0:
            return "Only for first-time customers"
        if segment == CustomerSegment.RETURNING and prior_orders == 0:
            return "Only for returning customers"
        if segment == CustomerSegment.LOYALTY and prior_orders < offer.terms.min_orders_count:
            return f"Requires {offer.terms.min_orders_count}+ previous orders"
        return None

def category_subtotal(cart: Iterable[CartLine], categories: Optional[List[str]]) -> Decimal:
    return sum((line.line_total for line in lines_in_categories(cart, categories)), Decimal(0))
