"""Offer engine"""
from .benefits import BenefitApplier, round_money
from .calculator import OfferCalculator
from .eligibility import EligibilityEvaluator
from .policy import best_single_offer, get_stacking_policy, stack_all
from .repository import OfferRepositoryReader, is_within_schedule, normalize_promo_code
from .validation import build_conditions_and_benefits, parse_offer_text, prepare_offer, validate_offer_form

__all__ = [
    'BenefitApplier',
    'EligibilityEvaluator',
    'OfferCalculator',
    'OfferRepositoryReader',
    'best_single_offer',
    'build_conditions_and_benefits',
    'get_stacking_policy',
    'is_within_schedule',
    'normalize_promo_code',
    'parse_offer_text',
    'prepare_offer',
    'round_money',
    'stack_all',
    'validate_offer_form',
]
