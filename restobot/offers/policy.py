# restobot/offers/policy.py
"""How several applicable offers combine.

Policies take the applied offers in priority order and return the ones
that should count.
"""
from decimal import Decimal
from typing import Callable, Dict, List
from ..models.offer import AppliedOffer, ResolvedFreeItem

StackingPolicy = Callable[[List[AppliedOffer]], List[AppliedOffer]]

def stack_all(applied: List[AppliedOffer]) -> List[AppliedOffer]:
    """Every applicable offer counts"""
    return list(applied)

def offer_value(applied: AppliedOffer) -> Decimal:
    """Discount plus the menu value of specific free items"""
    free_value = sum(
        (grant.unit_price * grant.quantity
         for grant in applied.free_items if isinstance(grant, ResolvedFreeItem)),
        Decimal(0),
    )
    return applied.discount_amount + free_value

def best_single_offer(applied: List[AppliedOffer]) -> List[AppliedOffer]:
    """Only the most valuable offer counts; ties go to the higher priority"""
    if not applied:
        return []
    return [max(applied, key=offer_value)]

STACKING_POLICIES: Dict[str, StackingPolicy] = {
    "stack": stack_all,
    "best": best_single_offer,
}

def get_stacking_policy(name: str) -> StackingPolicy:
    try:
        return STACKING_POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown stacking policy: {name}")
