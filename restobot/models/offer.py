import json
from datetime import datetime, time
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Mapping, Optional, Union
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from ..exceptions import MalformedOfferError

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

class OfferType(str, Enum):
    """Offer kinds as stored in offers.offer_type"""
    CART_PERCENTAGE = "cart_percentage"
    CART_FLAT_AMOUNT = "cart_flat_amount"
    MIN_ORDER_DISCOUNT = "min_order_discount"
    CART_THRESHOLD_ITEM = "cart_threshold_item"
    ITEM_BUY_GET_FREE = "item_buy_get_free"
    ITEM_FREE_ADDON = "item_free_addon"
    ITEM_PERCENTAGE = "item_percentage"
    COMBO_MEAL = "combo_meal"
    TIME_BASED = "time_based"
    CUSTOMER_BASED = "customer_based"
    PROMO_CODE = "promo_code"

class OfferItemRole(str, Enum):
    """What an offer line item is for"""
    MUST_BUY = "buy"
    FREE_GRANT = "get_free"
    DISCOUNT_TARGET = "discount_target"

_ROLE_ALIASES = {
    "buy": OfferItemRole.MUST_BUY,
    "get": OfferItemRole.FREE_GRANT,
    "get_free": OfferItemRole.FREE_GRANT,
    "free_threshold": OfferItemRole.FREE_GRANT,
    "free_addon": OfferItemRole.FREE_GRANT,
    "qualifying": OfferItemRole.DISCOUNT_TARGET,
    "discount_target": OfferItemRole.DISCOUNT_TARGET,
}

class CustomerSegment(str, Enum):
    ALL = "all"
    FIRST_TIME = "first_time"
    RETURNING = "returning"
    LOYALTY = "loyalty"

class OfferLineItem(BaseModel):
    """Menu item or category attached to an offer"""
    model_config = ConfigDict(frozen=True)

    menu_item_id: Optional[str] = None
    menu_category_id: Optional[str] = None
    role: OfferItemRole = Field(
        default=OfferItemRole.DISCOUNT_TARGET,
        validation_alias=AliasChoices("role", "item_type"),
    )
    quantity: Optional[int] = Field(default=None, ge=1)

    @field_validator("menu_item_id", "menu_category_id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return None if value is None else str(value)

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value):
        if value is None:
            return OfferItemRole.DISCOUNT_TARGET
        if isinstance(value, OfferItemRole):
            return value
        try:
            return _ROLE_ALIASES[str(value).lower()]
        except KeyError:
            raise ValueError(f"unknown offer item role: {value}")

    @model_validator(mode="after")
    def _one_reference(self):
        if bool(self.menu_item_id) == bool(self.menu_category_id):
            raise ValueError("offer line item must reference exactly one menu item or category")
        return self

    @property
    def is_category(self) -> bool:
        return self.menu_category_id is not None

# Per-type terms. Each model reads only the keys meaningful for its offer
# type out of the merged conditions/benefits bags; other keys are ignored.

Percentage = Annotated[Decimal, Field(ge=0, le=100)]
Money = Annotated[Decimal, Field(ge=0)]

class _Terms(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

class _DiscountTerms(_Terms):
    discount_percentage: Optional[Percentage] = None
    discount_amount: Optional[Money] = None
    max_discount_amount: Optional[Money] = None

class CartPercentageTerms(_Terms):
    offer_type: Literal["cart_percentage"] = "cart_percentage"
    discount_percentage: Percentage
    min_amount: Optional[Money] = None
    max_discount_amount: Optional[Money] = None

class CartFlatAmountTerms(_Terms):
    offer_type: Literal["cart_flat_amount"] = "cart_flat_amount"
    discount_amount: Money
    min_amount: Optional[Money] = None

class MinOrderDiscountTerms(_DiscountTerms):
    offer_type: Literal["min_order_discount"] = "min_order_discount"
    threshold_amount: Money = Decimal(0)

    @model_validator(mode="after")
    def _needs_discount(self):
        if self.discount_percentage is None and self.discount_amount is None:
            raise ValueError("min_order_discount needs discount_percentage or discount_amount")
        return self

class CartThresholdItemTerms(_Terms):
    offer_type: Literal["cart_threshold_item"] = "cart_threshold_item"
    min_amount: Money = Decimal(0)
    threshold_amount: Money = Decimal(0)
    max_price: Optional[Money] = None

class BuyGetFreeTerms(_Terms):
    offer_type: Literal["item_buy_get_free"] = "item_buy_get_free"
    buy_quantity: int = Field(default=1, ge=1)
    get_quantity: int = Field(default=1, ge=1)
    get_same_item: bool = False

class FreeAddonTerms(_Terms):
    offer_type: Literal["item_free_addon"] = "item_free_addon"
    max_price: Optional[Money] = None

class _CategoryDiscountTerms(_DiscountTerms):
    categories: Optional[List[str]] = None

    @field_validator("categories", mode="before")
    @classmethod
    def _stringify_categories(cls, value):
        if value is None:
            return None
        return [str(v) for v in value]

class ItemPercentageTerms(_CategoryDiscountTerms):
    offer_type: Literal["item_percentage"] = "item_percentage"

class TimeBasedTerms(_CategoryDiscountTerms):
    offer_type: Literal["time_based"] = "time_based"

class CustomerBasedTerms(_DiscountTerms):
    offer_type: Literal["customer_based"] = "customer_based"
    customer_type: CustomerSegment = CustomerSegment.ALL
    min_orders_count: int = Field(default=5, ge=0)
    min_amount: Optional[Money] = None

class ComboMealTerms(_Terms):
    offer_type: Literal["combo_meal"] = "combo_meal"
    combo_price: Money
    is_customizable: bool = False

class PromoCodeTerms(_DiscountTerms):
    offer_type: Literal["promo_code"] = "promo_code"
    min_amount: Optional[Money] = None

OfferTerms = Annotated[
    Union[
        CartPercentageTerms,
        CartFlatAmountTerms,
        MinOrderDiscountTerms,
        CartThresholdItemTerms,
        BuyGetFreeTerms,
        FreeAddonTerms,
        ItemPercentageTerms,
        TimeBasedTerms,
        CustomerBasedTerms,
        ComboMealTerms,
        PromoCodeTerms,
    ],
    Field(discriminator="offer_type"),
]

_terms_adapter = TypeAdapter(OfferTerms)

def _as_dict(value: Any) -> Dict[str, Any]:
    """jsonb columns arrive as text unless a codec is registered"""
    if value is None:
        return {}
    if isinstance(value, str):
        value = json.loads(value) if value.strip() else {}
    if not isinstance(value, Mapping):
        raise ValueError(f"expected an object, got {type(value).__name__}")
    return dict(value)

def _hhmm(value) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value.strftime("%H:%M")
    text = str(value).strip()
    parts = text.split(":")
    if len(parts) < 2 or not all(p.isdigit() for p in parts[:2]):
        raise ValueError(f"invalid time of day: {value!r}")
    return f"{int(parts[0]):02d}:{int(parts[1]):02d}"

class OfferDefinition(BaseModel):
    """Promotional rule, read-only while a calculation runs"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str] = None
    offer_type: OfferType
    terms: OfferTerms
    is_active: bool = True
    priority: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    valid_hours_start: Optional[str] = None
    valid_hours_end: Optional[str] = None
    valid_days: List[str] = []
    usage_limit: Optional[int] = None
    usage_count: int = 0
    promo_code: Optional[str] = None
    line_items: List[OfferLineItem] = []

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value)

    @field_validator("priority", "usage_count", mode="before")
    @classmethod
    def _zero_when_null(cls, value):
        return 0 if value is None else value

    @field_validator("valid_hours_start", "valid_hours_end", mode="before")
    @classmethod
    def _normalize_hours(cls, value):
        return _hhmm(value)

    @field_validator("valid_days", mode="before")
    @classmethod
    def _normalize_days(cls, value):
        if not value:
            return []
        return [str(day).strip().lower() for day in value]

    @field_validator("promo_code", mode="before")
    @classmethod
    def _normalize_code(cls, value):
        if value is None or not str(value).strip():
            return None
        return str(value).strip().upper()

    @model_validator(mode="after")
    def _terms_match_type(self):
        if self.terms.offer_type != self.offer_type.value:
            raise ValueError(
                f"terms for {self.terms.offer_type} attached to a {self.offer_type.value} offer"
            )
        return self

    @classmethod
    def from_record(cls, record: Mapping[str, Any],
                    items: Optional[Iterable[Mapping[str, Any]]] = None) -> "OfferDefinition":
        """Translate a stored offers row (plus its offer_items) into a definition"""
        record = dict(record)
        offer_id = str(record.get("id")) if record.get("id") is not None else None

        try:
            offer_type = OfferType(record.get("offer_type"))
        except ValueError:
            raise MalformedOfferError(
                f"unknown offer type {record.get('offer_type')!r}", offer_id
            )

        try:
            conditions = _as_dict(record.get("conditions"))
            benefits = _as_dict(record.get("benefits"))
        except ValueError as e:
            raise MalformedOfferError(f"unreadable conditions/benefits: {e}", offer_id) from e

        terms_data = {**conditions, **benefits, "offer_type": offer_type.value}
        if (offer_type == OfferType.CUSTOMER_BASED
                and "customer_type" not in terms_data
                and record.get("target_customer_type")):
            terms_data["customer_type"] = record["target_customer_type"]

        if items is None:
            items = _as_list(record.get("offer_items"))

        try:
            return cls(
                id=record.get("id"),
                name=record.get("name"),
                description=record.get("description"),
                offer_type=offer_type,
                terms=_terms_adapter.validate_python(terms_data),
                is_active=record.get("is_active", True),
                priority=record.get("priority"),
                start_date=record.get("start_date"),
                end_date=record.get("end_date"),
                valid_hours_start=record.get("valid_hours_start"),
                valid_hours_end=record.get("valid_hours_end"),
                valid_days=record.get("valid_days"),
                usage_limit=record.get("usage_limit"),
                usage_count=record.get("usage_count"),
                promo_code=record.get("promo_code"),
                line_items=[OfferLineItem.model_validate(dict(item)) for item in items],
            )
        except ValidationError as e:
            raise MalformedOfferError(f"invalid {offer_type.value} offer: {e}", offer_id) from e

    def lines_with_role(self, role: OfferItemRole) -> List[OfferLineItem]:
        return [line for line in self.line_items if line.role == role]

    @property
    def must_buy_lines(self) -> List[OfferLineItem]:
        return self.lines_with_role(OfferItemRole.MUST_BUY)

    @property
    def free_grant_lines(self) -> List[OfferLineItem]:
        return self.lines_with_role(OfferItemRole.FREE_GRANT)

def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return json.loads(value) if value.strip() else []
    return list(value)

class ResolvedFreeItem(BaseModel):
    """A specific menu item handed out for free"""
    kind: Literal["item"] = "item"
    item_id: str
    item_name: str
    quantity: int = Field(ge=1)
    unit_price: Decimal
    source: str

class OpenFreeItem(BaseModel):
    """A free pick the guest or front of house still has to make"""
    kind: Literal["choice"] = "choice"
    source: str
    quantity: int = Field(default=1, ge=1)
    max_price: Optional[Decimal] = None
    options: List[OfferLineItem] = []
    message: str

FreeItemGrant = Annotated[Union[ResolvedFreeItem, OpenFreeItem], Field(discriminator="kind")]

class AppliedOffer(BaseModel):
    """Effect of a single offer on the cart"""
    id: str
    name: str
    offer_type: OfferType
    discount_amount: Decimal = Decimal("0.00")
    free_items: List[FreeItemGrant] = []

    @property
    def has_effect(self) -> bool:
        return self.discount_amount > 0 or bool(self.free_items)

class OfferCalculationResult(BaseModel):
    """Totals for a cart after offers"""
    original_amount: Decimal
    discount_amount: Decimal = Decimal("0.00")
    final_amount: Decimal
    applied_offers: List[AppliedOffer] = []
    free_items: List[FreeItemGrant] = []

    @classmethod
    def empty(cls, original_amount: Decimal) -> "OfferCalculationResult":
        return cls(
            original_amount=original_amount,
            discount_amount=Decimal("0.00"),
            final_amount=original_amount,
        )

class OfferUsageRecord(BaseModel):
    """Row written to offer_usage once an order is placed"""
    offer_id: str
    order_id: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    discount_amount: Decimal
    free_items: List[FreeItemGrant] = []

class OfferPreview(BaseModel):
    """Offer as shown on the guest offers screen"""
    offer: OfferDefinition
    eligible: bool
    reason: Optional[str] = None
    estimated_discount: Decimal = Decimal("0.00")
