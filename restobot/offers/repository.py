# restobot/offers/repository.py
import logging
from datetime import datetime
from typing import List, Optional
import pytz
from ..config import Config
from ..exceptions import MalformedOfferError
from ..models.offer import OfferDefinition, WEEKDAYS
from ..utils.formatters import to_local

def normalize_promo_code(code: Optional[str]) -> Optional[str]:
    """Promo codes are matched upper-cased and stripped"""
    if code is None or not code.strip():
        return None
    return code.strip().upper()

def _aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt

def is_within_schedule(offer: OfferDefinition, now: datetime, tz) -> bool:
    """Date range, usage cap, daily window and weekday checks.

    The daily window is compared as "HH:MM" strings, so a window that
    crosses midnight (e.g. 22:00-02:00) never matches.
    """
    now = _aware(now)

    if offer.start_date and _aware(offer.start_date) > now:
        return False
    if offer.end_date and _aware(offer.end_date) < now:
        return False

    # usage_limit of 0 means unlimited
    if offer.usage_limit and offer.usage_count >= offer.usage_limit:
        return False

    local = to_local(now, tz)

    if offer.valid_hours_start and offer.valid_hours_end:
        current_time = local.strftime("%H:%M")
        if current_time < offer.valid_hours_start or current_time > offer.valid_hours_end:
            return False

    if offer.valid_days:
        if WEEKDAYS[local.weekday()] not in offer.valid_days:
            return False

    return True

class OfferRepositoryReader:
    """Loads the offers that are structurally usable right now"""

    def __init__(self, store, timezone: Optional[str] = None):
        self.store = store
        self.tz = pytz.timezone(timezone or Config.TIMEZONE)
        self.logger = logging.getLogger(__name__)

    async def fetch_candidates(self, now: datetime, promo_code: Optional[str] = None) -> List[OfferDefinition]:
        """Active offers for this moment; promo offers only when their code is given"""
        code = normalize_promo_code(promo_code)

        try:
            records = await self.store.query_offers(is_active=True, promo_code=code)
        except Exception as e:
            self.logger.error(f"Error fetching offers: {e}", exc_info=True)
            return []

        candidates = []
        for record in records or []:
            try:
                offer = OfferDefinition.from_record(record)
            except MalformedOfferError as e:
                self.logger.warning(f"Skipping offer {e.offer_id}: {e.message}")
                continue

            if not offer.is_active or offer.promo_code != code:
                continue
            if is_within_schedule(offer, now, self.tz):
                candidates.append(offer)

        return candidates
