# restobot/models/order.py
import json
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, field_validator
from .base import TimeStampedModel

class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class OrderType(str, Enum):
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"

class OrderItem(BaseModel):
    """Individual item in an order"""
    menu_item_id: Optional[str] = None
    name: str
    quantity: int
    price_per_unit: Decimal
    is_free: bool = False

    @field_validator("menu_item_id", mode="before")
    @classmethod
    def _stringify_item(cls, value):
        return None if value is None else str(value)

    @property
    def total_price(self) -> Decimal:
        return Decimal(0) if self.is_free else self.price_per_unit * self.quantity

class Order(TimeStampedModel):
    """Placed order with the amounts the offers produced"""
    order_type: OrderType
    status: OrderStatus
    table_code: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    total_amount: Decimal
    discount_amount: Decimal = Decimal(0)
    final_amount: Decimal
    promo_code: Optional[str] = None
    items: List[OrderItem] = []

    @field_validator("items", mode="before")
    @classmethod
    def _decode_items(cls, value):
        # json_agg arrives as text and is NULL for an order without items
        if value is None:
            return []
        if isinstance(value, str):
            return json.loads(value)
        return value

    @property
    def is_completed(self) -> bool:
        return self.status in [OrderStatus.COMPLETED, OrderStatus.CANCELLED]
