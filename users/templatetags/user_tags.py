# users/templatetags/user_tags.py
from django import template

register = template.Library()


@register.filter
def has_permission(user, module_name):
    """
    Usage: {% if user|has_permission:'billing' %}
    """
    if not user or not user.is_authenticated:
        return False
    return user.has_permission(module_name)
