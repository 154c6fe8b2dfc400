# appointments/templatetags/payment_filters.py
from django import template

from core.utils import format_currency as _format_currency

register = template.Library()


@register.filter
def format_currency(value):
    """
    Usage: {{ invoice.total|format_currency }}
    Returns: ₹1,250 or ₹1,250.50
    """
    if value is None or value == '':
        return _format_currency(0)
    return _format_currency(value)


@register.filter
def display_balance(value):
    """Display balance with proper formatting"""
    try:
        if float(value) <= 0:
            return f"{_format_currency(0)} (Paid in Full)"
    except (ValueError, TypeError):
        return _format_currency(0)
    return _format_currency(value)


INVOICE_STATUS_CLASSES = {
    'DRAFT': 'bg-gray-100 text-gray-700',
    'PENDING': 'bg-yellow-100 text-yellow-800',
    'PARTIAL': 'bg-blue-100 text-blue-800',
    'PAID': 'bg-green-100 text-green-800',
    'CANCELLED': 'bg-red-100 text-red-700',
    'REFUNDED': 'bg-purple-100 text-purple-800',
}


@register.filter
def invoice_status_class(status):
    """CSS badge classes for an invoice status"""
    return INVOICE_STATUS_CLASSES.get(status, 'bg-gray-100 text-gray-700')
