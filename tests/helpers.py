"""Builders for offer rows and carts used across the tests."""
from datetime import datetime
from decimal import Decimal

import pytz

from restobot.models.cart import CartLine


# Wednesday 2024-06-12, 13:00 in Asia/Kolkata
NOON_WEDNESDAY = datetime(2024, 6, 12, 7, 30, tzinfo=pytz.utc)


def make_offer(offer_id="1", offer_type="cart_percentage", conditions=None, benefits=None,
               items=None, **fields):
    """Offers row as returned by OfferService.query_offers"""
    record = {
        "id": offer_id,
        "name": f"Offer {offer_id}",
        "description": None,
        "offer_type": offer_type,
        "is_active": True,
        "priority": 0,
        "start_date": None,
        "end_date": None,
        "valid_hours_start": None,
        "valid_hours_end": None,
        "valid_days": None,
        "usage_limit": None,
        "usage_count": 0,
        "promo_code": None,
        "target_customer_type": "all",
        "conditions": conditions or {},
        "benefits": benefits or {},
        "offer_items": items or [],
    }
    record.update(fields)
    return record


def line(item_id="pizza", price="100", quantity=1, category_id="mains", name=None):
    return CartLine(
        item_id=item_id,
        name=name or item_id.title(),
        price=Decimal(price),
        quantity=quantity,
        category_id=category_id,
    )
