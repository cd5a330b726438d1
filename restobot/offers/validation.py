# restobot/offers/validation.py
"""Offer authoring: turning the admin form into a storable offer.

Anything an offer type needs in order to work is checked here, so that
records the engine would have to skip are never saved in the first place.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple
from ..exceptions import MalformedOfferError, OfferValidationError
from ..models.offer import (
    CustomerSegment,
    OfferDefinition,
    OfferItemRole,
    OfferLineItem,
    OfferType,
    WEEKDAYS,
)

ITEM_SELECTION_TYPES = {
    OfferType.ITEM_BUY_GET_FREE,
    OfferType.CART_THRESHOLD_ITEM,
    OfferType.ITEM_FREE_ADDON,
    OfferType.ITEM_PERCENTAGE,
    OfferType.COMBO_MEAL,
}

CONDITION_NUMBERS = ("min_amount", "threshold_amount")
CONDITION_INTEGERS = ("min_quantity", "min_orders_count")
BENEFIT_NUMBERS = ("discount_percentage", "discount_amount", "max_discount_amount", "max_price", "combo_price")
BENEFIT_INTEGERS = ("buy_quantity", "get_quantity")

def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())

def _to_number(key: str, value: Any, integer: bool = False):
    if _blank(value):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"{key} must be a number")
    if not number.is_finite():
        raise ValueError(f"{key} must be a number")
    if integer:
        if number != number.to_integral_value():
            raise ValueError(f"{key} must be a whole number")
        return int(number)
    return number

def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "y", "on")

def _to_list(value: Any) -> List[str]:
    if _blank(value):
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(v).strip() for v in value if str(v).strip()]

def _to_datetime(key: str, value: Any) -> Optional[datetime]:
    if _blank(value):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError:
        raise ValueError(f"{key} must be a date like 2024-12-31")

def _is_hhmm(value: str) -> bool:
    parts = value.split(":")
    if len(parts) != 2 or not all(p.isdigit() and len(p) == 2 for p in parts):
        return False
    return int(parts[0]) < 24 and int(parts[1]) < 60

def build_conditions_and_benefits(offer_type: str, form: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Split form fields into the conditions and benefits bags"""
    conditions: Dict[str, Any] = {}
    benefits: Dict[str, Any] = {}

    for key in CONDITION_NUMBERS:
        value = _to_number(key, form.get(key))
        if value is not None:
            conditions[key] = value
    for key in CONDITION_INTEGERS:
        value = _to_number(key, form.get(key), integer=True)
        if value is not None:
            conditions[key] = value

    categories = _to_list(form.get("categories"))
    if categories:
        conditions["categories"] = categories
    segment = form.get("customer_type")
    if _blank(segment):
        segment = form.get("target_customer_type")
    if not _blank(segment):
        conditions["customer_type"] = str(segment).strip().lower()

    for key in BENEFIT_NUMBERS:
        value = _to_number(key, form.get(key))
        if value is not None:
            benefits[key] = value
    for key in BENEFIT_INTEGERS:
        value = _to_number(key, form.get(key), integer=True)
        if value is not None:
            benefits[key] = value

    if offer_type == OfferType.ITEM_BUY_GET_FREE and form.get("get_same_item") is not None:
        benefits["get_same_item"] = _to_bool(form["get_same_item"])
    if offer_type == OfferType.COMBO_MEAL and form.get("is_customizable") is not None:
        benefits["is_customizable"] = _to_bool(form["is_customizable"])

    return conditions, benefits

def validate_offer_form(offer_type: str, form: Dict[str, Any],
                        line_items: Sequence[OfferLineItem]) -> List[str]:
    """Every problem with the form; an empty list means it can be saved"""
    errors: List[str] = []

    try:
        offer_type = OfferType(offer_type)
    except ValueError:
        return [f"Unknown offer type: {offer_type}"]

    if _blank(form.get("name")):
        errors.append("Offer name is required")

    try:
        conditions, benefits = build_conditions_and_benefits(offer_type, form)
    except ValueError as e:
        return errors + [str(e)]

    roles = {line.role for line in line_items}

    if offer_type in ITEM_SELECTION_TYPES and not line_items:
        errors.append("Please select at least one menu item or category for this offer type")

    if offer_type == OfferType.ITEM_FREE_ADDON:
        if OfferItemRole.MUST_BUY not in roles:
            errors.append("Please select qualifying items (main items that customer must purchase)")
        if OfferItemRole.FREE_GRANT not in roles:
            errors.append("Please select free add-on items (items that customer can choose for free)")

    if offer_type == OfferType.ITEM_BUY_GET_FREE:
        if OfferItemRole.MUST_BUY not in roles or OfferItemRole.FREE_GRANT not in roles:
            errors.append('BOGO offers must have at least one "Buy" item and one "Get Free" item')

    if offer_type == OfferType.CART_THRESHOLD_ITEM:
        if not conditions.get("threshold_amount"):
            errors.append("Please specify the cart threshold amount")
        if OfferItemRole.FREE_GRANT not in roles:
            errors.append("Please select the items that can be chosen for free")

    if offer_type == OfferType.CART_PERCENTAGE:
        percentage = benefits.get("discount_percentage")
        if percentage is None or not (0 < percentage <= 100):
            errors.append("Discount percentage must be between 1 and 100")

    if offer_type == OfferType.CART_FLAT_AMOUNT:
        if not benefits.get("discount_amount") or benefits["discount_amount"] <= 0:
            errors.append("Discount amount must be greater than zero")

    if offer_type in (OfferType.PROMO_CODE, OfferType.MIN_ORDER_DISCOUNT,
                      OfferType.ITEM_PERCENTAGE, OfferType.TIME_BASED, OfferType.CUSTOMER_BASED):
        if not benefits.get("discount_percentage") and not benefits.get("discount_amount"):
            errors.append("This offer type must have either a discount percentage or flat discount amount")

    if (offer_type != OfferType.CART_PERCENTAGE and "discount_percentage" in benefits
            and not (0 < benefits["discount_percentage"] <= 100)):
        errors.append("Discount percentage must be between 1 and 100")

    if offer_type == OfferType.PROMO_CODE and _blank(form.get("promo_code")):
        errors.append("Please specify the promo code")

    if offer_type == OfferType.ITEM_PERCENTAGE and not conditions.get("categories"):
        errors.append("Please specify the categories the discount applies to")

    if offer_type == OfferType.COMBO_MEAL and not benefits.get("combo_price"):
        errors.append("Please specify the combo price")

    if offer_type == OfferType.CUSTOMER_BASED:
        segment = conditions.get("customer_type", CustomerSegment.ALL.value)
        if segment not in [s.value for s in CustomerSegment]:
            errors.append(f"Unknown customer type: {segment}")
        elif segment == CustomerSegment.LOYALTY and not conditions.get("min_orders_count"):
            errors.append("Please specify minimum orders count")

    errors.extend(_schedule_errors(form))
    return errors

def _schedule_errors(form: Dict[str, Any]) -> List[str]:
    errors = []

    start, end = form.get("valid_hours_start"), form.get("valid_hours_end")
    if not _blank(start) or not _blank(end):
        if _blank(start) or _blank(end):
            errors.append("Both valid hours start and end are required")
        elif not _is_hhmm(str(start).strip()) or not _is_hhmm(str(end).strip()):
            errors.append("Valid hours must be in HH:MM format")
        elif str(start).strip() > str(end).strip():
            errors.append("Valid hours cannot cross midnight; split the offer into two")

    for day in _to_list(form.get("valid_days")):
        if day.lower() not in WEEKDAYS:
            errors.append(f"Unknown day: {day}")

    try:
        start_date = _to_datetime("start_date", form.get("start_date"))
        end_date = _to_datetime("end_date", form.get("end_date"))
        if start_date and end_date and end_date < start_date:
            errors.append("End date must be after start date")
    except (ValueError, TypeError) as e:
        errors.append(str(e))

    try:
        usage_limit = _to_number("usage_limit", form.get("usage_limit"), integer=True)
        if usage_limit is not None and usage_limit < 1:
            errors.append("Usage limit must be at least 1")
        _to_number("priority", form.get("priority"), integer=True)
    except ValueError as e:
        errors.append(str(e))

    return errors

def prepare_offer(offer_type: str, form: Dict[str, Any],
                  line_items: Sequence[OfferLineItem]) -> Dict[str, Any]:
    """Validated offers row, ready for OfferService.create_offer"""
    errors = validate_offer_form(offer_type, form, line_items)
    if errors:
        raise OfferValidationError(errors)

    offer_type = OfferType(offer_type)
    conditions, benefits = build_conditions_and_benefits(offer_type, form)
    valid_days = [day.lower() for day in _to_list(form.get("valid_days"))]
    promo_code = None if _blank(form.get("promo_code")) else str(form["promo_code"]).strip().upper()
    priority = _to_number("priority", form.get("priority"), integer=True)

    record = {
        "offer_type": offer_type.value,
        "name": str(form["name"]).strip(),
        "description": None if _blank(form.get("description")) else str(form["description"]).strip(),
        "is_active": _to_bool(form.get("is_active", True)),
        "priority": 5 if priority is None else priority,
        "start_date": _to_datetime("start_date", form.get("start_date")),
        "end_date": _to_datetime("end_date", form.get("end_date")),
        "usage_limit": _to_number("usage_limit", form.get("usage_limit"), integer=True),
        "promo_code": promo_code,
        "valid_days": valid_days or None,
        "valid_hours_start": None if _blank(form.get("valid_hours_start")) else str(form["valid_hours_start"]).strip(),
        "valid_hours_end": None if _blank(form.get("valid_hours_end")) else str(form["valid_hours_end"]).strip(),
        "target_customer_type": conditions.get("customer_type", "all"),
        "conditions": conditions or None,
        "benefits": benefits or None,
    }

    # The engine must be able to read back whatever we store
    try:
        OfferDefinition.from_record(
            {**record, "id": "draft"},
            items=[line.model_dump() for line in line_items],
        )
    except MalformedOfferError as e:
        raise OfferValidationError([e.message])

    return record

def parse_offer_text(text: str) -> Tuple[Dict[str, str], List[OfferLineItem]]:
    """Read 'key=value' lines typed into the bot.

    ``buy``, ``get`` and ``target`` lines name offer items as
    ``item:<id>`` or ``category:<id>``, optionally followed by ``x<quantity>``.
    """
    form: Dict[str, str] = {}
    line_items: List[OfferLineItem] = []
    roles = {"buy": "buy", "get": "get_free", "target": "discount_target"}

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            raise ValueError(f"Expected key=value, got: {line}")
        key, value = (part.strip() for part in line.split("=", 1))
        key = key.lower()

        if key in roles:
            line_items.append(_parse_item_reference(value, roles[key]))
        else:
            form[key] = value

    return form, line_items

def _parse_item_reference(value: str, role: str) -> OfferLineItem:
    quantity = None
    reference = value
    if " x" in value:
        reference, _, quantity_text = value.rpartition(" x")
        if not quantity_text.strip().isdigit():
            raise ValueError(f"Bad quantity in: {value}")
        quantity = int(quantity_text)

    kind, _, ref_id = reference.strip().partition(":")
    if kind not in ("item", "category") or not ref_id:
        raise ValueError(f"Expected item:<id> or category:<id>, got: {value}")

    if kind == "item":
        return OfferLineItem(menu_item_id=ref_id.strip(), role=role, quantity=quantity)
    return OfferLineItem(menu_category_id=ref_id.strip(), role=role, quantity=quantity)
