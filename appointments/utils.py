# appointments/utils.py - Billing arithmetic and invoice numbering
import time
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from django.core.exceptions import ValidationError
from django.utils.crypto import get_random_string

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
BASE36 = '0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ'

DISCOUNT_PERCENTAGE = 'percentage'
DISCOUNT_FIXED = 'fixed'


def to_money(value):
    """Decimal rounded half-up to 2 places; None and '' count as zero"""
    if value is None or value == '':
        return ZERO
    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value}")


def compute_invoice_totals(items, discount=None, discount_type=None, tax=None):
    """
    Billing arithmetic shared by invoice creation, edits and item replacement.

    Args:
        items: iterable of (unit_price, quantity) pairs
        discount: entered discount value (percent or absolute)
        discount_type: 'percentage', or 'fixed'/empty for an absolute amount
        tax: absolute tax amount added after the discount

    Returns:
        dict with subtotal, discount_amount, tax and total

    Raises:
        ValidationError: negative values or a percentage above 100
    """
    subtotal = ZERO
    for unit_price, quantity in items:
        unit_price = to_money(unit_price)
        quantity = int(quantity)
        if unit_price < 0:
            raise ValidationError("Unit price cannot be negative")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        subtotal += unit_price * quantity
    subtotal = to_money(subtotal)

    discount = to_money(discount)
    tax = to_money(tax)
    if discount < 0:
        raise ValidationError("Discount cannot be negative")
    if tax < 0:
        raise ValidationError("Tax cannot be negative")

    if discount_type == DISCOUNT_PERCENTAGE:
        if discount > 100:
            raise ValidationError("Percentage discount cannot exceed 100%")
        discount_amount = to_money(subtotal * discount / Decimal('100'))
    else:
        discount_amount = discount

    # Discount never takes the bill below zero
    discount_amount = min(discount_amount, subtotal)

    return {
        'subtotal': subtotal,
        'discount_amount': discount_amount,
        'tax': tax,
        'total': to_money(subtotal - discount_amount + tax),
    }


def compute_balance(total, amount_paid):
    return max(ZERO, to_money(total) - to_money(amount_paid))


def generate_invoice_number():
    """
    INV-XXXX-XXXX: the last 4 base-36 digits of the current millisecond
    timestamp followed by 4 random base-36 characters
    """
    millis = int(time.time() * 1000)
    stamp = ''
    while millis:
        millis, digit = divmod(millis, 36)
        stamp = BASE36[digit] + stamp
    return f"INV-{stamp[-4:].rjust(4, '0')}-{get_random_string(4, BASE36)}"
