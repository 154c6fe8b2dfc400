"""
Date/time and formatting helpers shared across the application.
"""
from datetime import datetime, time, timedelta
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.utils import timezone


def get_local_now():
    """Current datetime in the project's configured timezone"""
    return timezone.localtime(timezone.now())


def get_local_today():
    """Today's date in the project's configured timezone"""
    return timezone.localtime(timezone.now()).date()


def get_local_date(dt):
    """
    Convert a datetime to the configured timezone and extract the date.
    Naive datetimes are assumed to already be local.
    """
    if dt is None:
        return None

    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt)

    return timezone.localtime(dt).date()


def day_bounds(day):
    """
    Aware [start, end) datetimes covering one local calendar day
    """
    start = timezone.make_aware(datetime.combine(day, time.min))
    return start, start + timedelta(days=1)


def month_bounds(year, month):
    """Aware [start, end) datetimes covering one local calendar month"""
    start = timezone.make_aware(datetime(year, month, 1))
    if month == 12:
        end = timezone.make_aware(datetime(year + 1, 1, 1))
    else:
        end = timezone.make_aware(datetime(year, month + 1, 1))
    return start, end


def shift_month(year, month, offset):
    """(year, month) moved by ``offset`` months"""
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def format_currency(amount, symbol=None):
    """Format an amount with the configured currency symbol, e.g. ₹1,250.50"""
    symbol = settings.CURRENCY_SYMBOL if symbol is None else symbol
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        value = Decimal('0')

    if value == value.to_integral_value():
        return f"{symbol}{value:,.0f}"
    return f"{symbol}{value:,.2f}"


def calculate_age(date_of_birth, today=None):
    """Age in whole years, or None when the date of birth is unknown"""
    if not date_of_birth:
        return None
    today = today or get_local_today()
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def digits_only(value):
    """Strip everything but digits from a phone number"""
    return ''.join(ch for ch in (value or '') if ch.isdigit())


def phone_tail(phone, length=10):
    """Last ``length`` digits of a phone number, used to match patients across formats"""
    return digits_only(phone)[-length:]
