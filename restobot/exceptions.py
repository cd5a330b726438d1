"""Offer engine exceptions"""
from typing import List, Optional


class OfferError(Exception):
    """Base offer error"""

    def __init__(self, message: str, offer_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.offer_id = offer_id


class MalformedOfferError(OfferError):
    """Stored offer record cannot be read for its offer type"""


class OfferValidationError(OfferError):
    """Offer form rejected at authoring time"""

    def __init__(self, errors: List[str], offer_id: Optional[str] = None):
        super().__init__("; ".join(errors), offer_id)
        self.errors = errors
