# restobot/models/menu.py
from decimal import Decimal
from typing import Optional
from pydantic import Field, field_validator
from .base import TimeStampedModel
from .cart import CartLine

class MenuCategory(TimeStampedModel):
    """Section of the menu"""
    name: str
    description: Optional[str] = None
    display_order: int = 0
    is_active: bool = True

class MenuItem(TimeStampedModel):
    """Dish or drink that can be ordered"""
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    name: str
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    is_veg: Optional[bool] = None
    is_available: bool = True
    display_order: int = 0

    @field_validator("category_id", mode="before")
    @classmethod
    def _stringify_category(cls, value):
        return None if value is None else str(value)

    def to_cart_line(self, quantity: int = 1) -> CartLine:
        return CartLine(
            item_id=self.id,
            name=self.name,
            price=self.price,
            quantity=quantity,
            category_id=self.category_id,
            is_veg=self.is_veg,
        )
