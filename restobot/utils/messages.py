# restobot/utils/messages.py
from typing import Any, Dict, List, Optional
from ..models.cart import CartLine
from ..models.offer import OfferCalculationResult, OfferPreview, OpenFreeItem, ResolvedFreeItem
from ..models.order import Order
from .formatters import format_datetime, format_price, format_time_of_day

class Messages:
    @staticmethod
    def format_cart(cart: List[CartLine], result: OfferCalculationResult,
                    promo_code: Optional[str] = None) -> str:
        """Cart lines with offers and totals"""
        if not cart:
            return "🛒 Your cart is empty."

        lines = [
            f"- {line.quantity}x {line.name}: {format_price(line.line_total)}"
            for line in cart
        ]
        text = (
            "🛒 Your cart\n"
            "------------------\n"
            + "\n".join(lines) + "\n"
            "------------------\n"
            f"Subtotal: {format_price(result.original_amount)}\n"
        )

        for offer in result.applied_offers:
            if offer.discount_amount > 0:
                text += f"🎁 {offer.name}: -{format_price(offer.discount_amount)}\n"
            else:
                text += f"🎁 {offer.name}\n"

        for grant in result.free_items:
            text += f"   {Messages.format_free_item(grant)}\n"

        if promo_code:
            text += f"🏷 Promo code: {promo_code}\n"

        text += f"💰 Total: {format_price(result.final_amount)}"
        return text

    @staticmethod
    def format_free_item(grant) -> str:
        """One free item line"""
        if isinstance(grant, ResolvedFreeItem):
            return f"🆓 {grant.quantity}x {grant.item_name} (worth {format_price(grant.unit_price * grant.quantity)})"
        if isinstance(grant, OpenFreeItem):
            return f"🆓 {grant.message}"
        return "🆓 Free item"

    @staticmethod
    def format_offer_previews(previews: List[OfferPreview]) -> str:
        """Offers screen"""
        if not previews:
            return "🎁 No offers running right now."

        text = "🎁 Today's offers\n\n"
        for preview in previews:
            offer = preview.offer
            text += f"{'✅' if preview.eligible else '🔒'} {offer.name}\n"
            if offer.description:
                text += f"{offer.description}\n"
            if offer.valid_hours_start and offer.valid_hours_end:
                text += (
                    f"🕒 {format_time_of_day(offer.valid_hours_start)} - "
                    f"{format_time_of_day(offer.valid_hours_end)}\n"
                )
            if preview.eligible and preview.estimated_discount > 0:
                text += f"You save {format_price(preview.estimated_discount)}\n"
            elif preview.reason:
                text += f"{preview.reason}\n"
            text += "➖➖➖➖➖➖➖➖\n"
        return text

    @staticmethod
    def format_offer(offer: Dict[str, Any]) -> str:
        """Stored offer as shown to admins"""
        text = (
            f"🎁 {offer['name']}\n"
            f"📊 Type: {offer['offer_type']}\n"
            f"⭐ Priority: {offer.get('priority') or 0}\n"
            f"{'✅ Active' if offer['is_active'] else '⏸ Inactive'}\n"
        )
        if offer.get('promo_code'):
            text += f"🏷 Code: {offer['promo_code']}\n"
        if offer.get('usage_limit'):
            text += f"📈 Used: {offer.get('usage_count') or 0}/{offer['usage_limit']}\n"
        else:
            text += f"📈 Used: {offer.get('usage_count') or 0}\n"
        if offer.get('start_date'):
            text += f"📅 From: {format_datetime(offer['start_date'])}\n"
        if offer.get('end_date'):
            text += f"📅 Until: {format_datetime(offer['end_date'])}\n"
        if offer.get('valid_days'):
            text += f"🗓 Days: {', '.join(day.title() for day in offer['valid_days'])}\n"
        return text

    @staticmethod
    def format_usage_stats(offer: Dict[str, Any], stats: Dict[str, Any]) -> str:
        """Offer usage report"""
        return (
            f"📊 {offer['name']}\n\n"
            f"Times used: {stats['total_usage']}\n"
            f"Total discount given: {format_price(stats['total_discount_amount'])}\n"
            f"Order value: {format_price(stats['total_order_amount'])}\n"
            f"Unique customers: {stats['unique_customers']}"
        )

    @staticmethod
    def format_orders(orders: List[Order]) -> str:
        """Guest order history"""
        if not orders:
            return "🧾 No orders yet."

        text = "🧾 Your orders\n\n"
        for order in orders:
            text += (
                f"#{order.id[:8]} · {format_datetime(order.created_at)}\n"
                f"{order.status.value.title()} · {format_price(order.final_amount)}\n"
            )
        return text

    @staticmethod
    def order_confirmation(order_id: str, result: OfferCalculationResult) -> str:
        """Shown after checkout"""
        text = (
            "✅ Order placed!\n\n"
            f"🧾 Order #{order_id[:8]}\n"
            f"Subtotal: {format_price(result.original_amount)}\n"
        )
        if result.discount_amount > 0:
            text += f"Discount: -{format_price(result.discount_amount)}\n"
        for grant in result.free_items:
            text += f"{Messages.format_free_item(grant)}\n"
        text += f"💰 To pay: {format_price(result.final_amount)}"
        return text
