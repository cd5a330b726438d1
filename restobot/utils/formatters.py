# restobot/utils/formatters.py
from datetime import datetime
import pytz
from decimal import Decimal
from ..config import Config

def format_price(amount: Decimal) -> str:
    """Format a money amount with the restaurant currency"""
    amount = Decimal(amount)
    if amount == amount.to_integral_value():
        return f"{Config.CURRENCY_SYMBOL}{amount:,.0f}"
    return f"{Config.CURRENCY_SYMBOL}{amount:,.2f}"

def to_local(dt: datetime, tz) -> datetime:
    """Convert to tz; naive datetimes are taken as UTC"""
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(tz)

def format_datetime(dt: datetime) -> str:
    """Format a timestamp in local time"""
    local_time = to_local(dt, pytz.timezone(Config.TIMEZONE))
    return local_time.strftime("%Y-%m-%d %H:%M")

def format_time_of_day(hhmm: str) -> str:
    """'18:30' -> '6:30 PM'"""
    hour, minute = hhmm.split(":")
    hour = int(hour)
    suffix = "PM" if hour >= 12 else "AM"
    display_hour = hour - 12 if hour > 12 else (12 if hour == 0 else hour)
    return f"{display_hour}:{minute} {suffix}"
