# restobot/utils/keyboards.py
from typing import Any, Dict, List
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, KeyboardButton, ReplyKeyboardMarkup
from ..models.menu import MenuCategory, MenuItem
from ..models.offer import OfferType
from .formatters import format_price

class Keyboards:
    @staticmethod
    def main_menu() -> InlineKeyboardMarkup:
        """Guest main menu"""
        keyboard = [
            [InlineKeyboardButton("🍽 Menu", callback_data="show_menu")],
            [InlineKeyboardButton("🛒 My cart", callback_data="view_cart"),
             InlineKeyboardButton("🎁 Offers", callback_data="view_offers")]
        ]
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def admin_menu() -> InlineKeyboardMarkup:
        """Offer management menu"""
        keyboard = [
            [InlineKeyboardButton("➕ New offer", callback_data="add_offer")],
            [InlineKeyboardButton("📋 Offers", callback_data="list_offers")],
        ]
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def categories_menu(categories: List[MenuCategory]) -> InlineKeyboardMarkup:
        """One button per menu category"""
        keyboard = [
            [InlineKeyboardButton(category.name, callback_data=f"category_{category.id}")]
            for category in categories
        ]
        keyboard.append([InlineKeyboardButton("🛒 My cart", callback_data="view_cart")])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def items_menu(items: List[MenuItem]) -> InlineKeyboardMarkup:
        """Add-to-cart button per menu item"""
        keyboard = [
            [InlineKeyboardButton(
                f"{'🟢' if item.is_veg else '🔴'} {item.name} · {format_price(item.price)}",
                callback_data=f"cartadd_{item.id}"
            )]
            for item in items
        ]
        keyboard.append([
            InlineKeyboardButton("⬅️ Back", callback_data="show_menu"),
            InlineKeyboardButton("🛒 My cart", callback_data="view_cart")
        ])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def cart_menu(has_promo: bool = False) -> InlineKeyboardMarkup:
        """Cart actions"""
        promo_button = (
            InlineKeyboardButton("❌ Remove promo code", callback_data="remove_promo")
            if has_promo else
            InlineKeyboardButton("🏷 Promo code", callback_data="enter_promo")
        )
        keyboard = [
            [InlineKeyboardButton("✅ Place order", callback_data="checkout")],
            [promo_button, InlineKeyboardButton("🎁 Offers", callback_data="view_offers")],
            [InlineKeyboardButton("🍽 Add more", callback_data="show_menu"),
             InlineKeyboardButton("🗑 Clear cart", callback_data="clear_cart")]
        ]
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def contact_request() -> ReplyKeyboardMarkup:
        """Ask for the guest's phone number"""
        return ReplyKeyboardMarkup(
            [[KeyboardButton("📱 Share phone number", request_contact=True)]],
            resize_keyboard=True,
            one_time_keyboard=True
        )

    @staticmethod
    def offer_types() -> InlineKeyboardMarkup:
        """Choose the type of a new offer"""
        keyboard = [
            [InlineKeyboardButton(offer_type.value.replace('_', ' ').title(),
                                  callback_data=f"otype_{offer_type.value}")]
            for offer_type in OfferType
        ]
        keyboard.append([InlineKeyboardButton("🔙 Cancel", callback_data="cancel")])
        return InlineKeyboardMarkup(keyboard)

    @staticmethod
    def offers_list(offers: List[Dict[str, Any]]) -> InlineKeyboardMarkup:
        """Toggle and stats buttons per offer"""
        keyboard = []
        for offer in offers:
            keyboard.append([
                InlineKeyboardButton(
                    f"{'⏸' if offer['is_active'] else '▶️'} {offer['name']}",
                    callback_data=f"toggle_offer_{offer['id']}"
                ),
                InlineKeyboardButton("📊", callback_data=f"offer_stats_{offer['id']}")
            ])
        keyboard.append([InlineKeyboardButton("🔙 Back", callback_data="manage_offers")])
        return InlineKeyboardMarkup(keyboard)
