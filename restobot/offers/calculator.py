# restobot/offers/calculator.py
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional
import pytz
from ..config import Config
from ..models.cart import CartLine, CustomerRef, cart_total
from ..models.offer import (
    AppliedOffer,
    OfferCalculationResult,
    OfferDefinition,
    OfferPreview,
    OfferUsageRecord,
)
from .benefits import BenefitApplier, round_money
from .eligibility import EligibilityEvaluator, needs_order_history
from .policy import StackingPolicy, get_stacking_policy
from .repository import OfferRepositoryReader, normalize_promo_code

class OfferCalculator:
    """Works out which offers apply to a cart and what they are worth.

    ``store`` is the data access object for offers and orders. It must
    provide ``query_offers``, ``count_prior_orders``,
    ``record_offer_usage`` and ``increment_offer_usage_count``
    (see ``OfferService``).
    """

    def __init__(self, store, timezone: Optional[str] = None,
                 stacking_policy: Optional[StackingPolicy] = None,
                 enforce_discount_cap: Optional[bool] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.repository = OfferRepositoryReader(store, timezone)
        self.evaluator = EligibilityEvaluator()
        if enforce_discount_cap is None:
            enforce_discount_cap = Config.OFFER_ENFORCE_DISCOUNT_CAP
        self.applier = BenefitApplier(enforce_discount_cap)
        self.stacking_policy = stacking_policy or get_stacking_policy(Config.OFFER_STACKING_POLICY)
        self.clock = clock or (lambda: datetime.now(pytz.utc))
        self.logger = logging.getLogger(__name__)

    async def calculate(self, cart: Iterable[CartLine], customer: Optional[CustomerRef] = None,
                        promo_code: Optional[str] = None,
                        now: Optional[datetime] = None) -> OfferCalculationResult:
        """Apply every eligible offer to the cart; never raises"""
        cart = list(cart)
        original_amount = round_money(cart_total(cart))

        try:
            now = now or self.clock()
            candidates = await self.repository.fetch_candidates(now, promo_code)
            prior_orders = await self._prior_orders(candidates, customer)

            eligible = [
                offer for offer in candidates
                if self._is_eligible(offer, cart, customer, prior_orders)
            ]
            # stable: equal priorities keep repository order
            eligible.sort(key=lambda offer: offer.priority, reverse=True)

            applied = []
            for offer in eligible:
                result = self._apply(offer, cart)
                if result is not None and result.has_effect:
                    applied.append(result)

            return self._summarize(original_amount, self.stacking_policy(applied))

        except Exception as e:
            self.logger.error(f"Error calculating offers: {e}", exc_info=True)
            return OfferCalculationResult.empty(original_amount)

    async def preview_offers(self, cart: Iterable[CartLine], customer: Optional[CustomerRef] = None,
                             now: Optional[datetime] = None) -> List[OfferPreview]:
        """Every offer running now, with whether it applies to this cart and why not"""
        cart = list(cart)
        try:
            candidates = await self.repository.fetch_candidates(now or self.clock())
            prior_orders = await self._prior_orders(candidates, customer)

            previews = []
            for offer in sorted(candidates, key=lambda o: o.priority, reverse=True):
                try:
                    reason = self.evaluator.explain(offer, cart, customer, prior_orders)
                    estimate = Decimal("0.00")
                    if reason is None:
                        estimate = self.applier.apply(offer, cart).discount_amount
                except Exception as e:
                    self.logger.warning(f"Skipping offer {offer.id} in preview: {e}")
                    continue
                previews.append(OfferPreview(
                    offer=offer,
                    eligible=reason is None,
                    reason=reason,
                    estimated_discount=estimate,
                ))
            return previews

        except Exception as e:
            self.logger.error(f"Error previewing offers: {e}", exc_info=True)
            return []

    async def validate_promo_code(self, code: str, cart: Iterable[CartLine],
                                  customer: Optional[CustomerRef] = None,
                                  now: Optional[datetime] = None) -> Dict[str, Any]:
        """Check a promo code against the cart before it is remembered for checkout"""
        cart = list(cart)
        code = normalize_promo_code(code)
        if not code:
            return {"valid": False, "error": "Please enter a promo code"}

        total = cart_total(cart)
        if total <= 0:
            return {"valid": False, "error": "Your cart is empty"}

        candidates = await self.repository.fetch_candidates(now or self.clock(), code)
        if not candidates:
            return {"valid": False, "error": "Invalid or expired promo code"}

        prior_orders = await self._prior_orders(candidates, customer)
        first_reason = None
        for offer in sorted(candidates, key=lambda o: o.priority, reverse=True):
            reason = self.evaluator.explain(offer, cart, customer, prior_orders)
            if reason is not None:
                first_reason = first_reason or reason
                continue

            applied = self.applier.apply(offer, cart)
            return {
                "valid": True,
                "code": code,
                "offer_id": offer.id,
                "offer_name": offer.name,
                "amount": applied.discount_amount,
                "final_amount": max(round_money(total - applied.discount_amount), Decimal("0.00")),
            }

        return {"valid": False, "error": first_reason}

    async def record_usage(self, applied_offers: List[AppliedOffer], order_id: str,
                           customer: Optional[CustomerRef] = None):
        """Book applied offers against a placed order.

        Call only after the order is stored. Failures are logged and the
        order stands.
        """
        if not applied_offers:
            return

        records = [
            OfferUsageRecord(
                offer_id=offer.id,
                order_id=order_id,
                customer_email=customer.email if customer else None,
                customer_phone=customer.phone if customer else None,
                discount_amount=offer.discount_amount,
                free_items=offer.free_items,
            )
            for offer in applied_offers
        ]

        try:
            await self.store.record_offer_usage(records)
        except Exception as e:
            self.logger.error(f"Error recording offer usage for order {order_id}: {e}", exc_info=True)

        for offer in applied_offers:
            try:
                await self.store.increment_offer_usage_count(offer.id)
            except Exception as e:
                self.logger.error(f"Error updating usage count of offer {offer.id}: {e}", exc_info=True)

    async def _prior_orders(self, candidates: List[OfferDefinition],
                            customer: Optional[CustomerRef]) -> Optional[int]:
        if customer is None or not customer.has_identity:
            return None
        if not any(needs_order_history(offer) for offer in candidates):
            return None
        try:
            return await self.store.count_prior_orders(customer)
        except Exception as e:
            self.logger.error(f"Error looking up order history: {e}")
            return None

    def _is_eligible(self, offer, cart, customer, prior_orders) -> bool:
        try:
            return self.evaluator.is_eligible(offer, cart, customer, prior_orders)
        except Exception as e:
            self.logger.warning(f"Skipping offer {offer.id}: eligibility check failed: {e}")
            return False

    def _apply(self, offer, cart) -> Optional[AppliedOffer]:
        try:
            return self.applier.apply(offer, cart)
        except Exception as e:
            self.logger.warning(f"Skipping offer {offer.id}: benefit calculation failed: {e}")
            return None

    @staticmethod
    def _summarize(original_amount: Decimal, applied: List[AppliedOffer]) -> OfferCalculationResult:
        discount = sum((offer.discount_amount for offer in applied), Decimal(0))
        discount = min(round_money(discount), original_amount)

        return OfferCalculationResult(
            original_amount=original_amount,
            discount_amount=discount,
            final_amount=max(original_amount - discount, Decimal("0.00")),
            applied_offers=applied,
            free_items=[grant for offer in applied for grant in offer.free_items],
        )
