# restobot/handlers/__init__.py
"""Telegram handlers"""
from .cart_handlers import CartHandler
from .offer_handlers import OfferAdminHandler

__all__ = [
    'CartHandler',
    'OfferAdminHandler',
]
