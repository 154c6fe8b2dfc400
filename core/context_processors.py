from django.conf import settings


def clinic_context(request):
    """Make the current clinic available in all templates"""
    clinic = getattr(request, 'clinic', None)
    return {
        'clinic': clinic,
        'CLINIC_NAME': clinic.name if clinic else 'Dental Practice',
        'CURRENCY_SYMBOL': settings.CURRENCY_SYMBOL,
    }
