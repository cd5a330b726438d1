from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

class CartLine(BaseModel):
    """One distinct menu item in the guest's cart"""
    item_id: str
    name: str
    price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)
    category_id: Optional[str] = None
    is_veg: Optional[bool] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

class CustomerRef(BaseModel):
    """Whatever the guest told us about themselves"""
    email: Optional[str] = None
    phone: Optional[str] = None
    table_code: Optional[str] = None

    @property
    def has_identity(self) -> bool:
        return bool(self.email or self.phone)

def cart_total(cart) -> Decimal:
    """Sum of line totals before any discount"""
    return sum((line.line_total for line in cart), Decimal(0))
