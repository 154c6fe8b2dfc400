# reports/analytics.py - Dashboard and analytics queries
"""
Read-only aggregates for the dashboard and the analytics screen.

Revenue is cash received: sums of Payment.amount by paid_at, never invoice
totals. Every query is narrowed to one clinic.
"""
from decimal import Decimal

from django.db.models import Count, Sum
from django.utils import timezone

from appointments.models import Appointment, Invoice, Payment
from core.utils import day_bounds, get_local_today, month_bounds, shift_month
from patients.models import Patient

CHART_MONTHS = 6


def _payments(clinic):
    return Payment.objects.filter(invoice__clinic=clinic)


def _revenue_between(clinic, start, end):
    total = _payments(clinic).filter(paid_at__gte=start, paid_at__lt=end).aggregate(total=Sum('amount'))['total']
    return total or Decimal('0.00')


def _percentage_change(current, previous):
    if previous == 0:
        return 100.0
    return round(float((current - previous) / previous * 100), 1)


def get_dashboard_stats(clinic):
    """Headline numbers for the dashboard cards"""
    today = get_local_today()
    today_start, today_end = day_bounds(today)

    todays_appointments = Appointment.objects.filter(
        clinic=clinic, scheduled_at__gte=today_start, scheduled_at__lt=today_end
    )

    this_month_start, this_month_end = month_bounds(today.year, today.month)
    last_year, last_month = shift_month(today.year, today.month, -1)
    last_month_start, last_month_end = month_bounds(last_year, last_month)

    current_revenue = _revenue_between(clinic, this_month_start, this_month_end)
    previous_revenue = _revenue_between(clinic, last_month_start, last_month_end)

    total_revenue = _payments(clinic).aggregate(total=Sum('amount'))['total'] or Decimal('0.00')

    return {
        'total_patients': Patient.objects.filter(clinic=clinic).count(),
        'today_appointments': todays_appointments.count(),
        'completed_today': todays_appointments.filter(status=Appointment.COMPLETED).count(),
        'total_revenue': total_revenue,
        'current_month_revenue': current_revenue,
        'last_month_revenue': previous_revenue,
        'revenue_change': _percentage_change(current_revenue, previous_revenue),
        'pending_invoices': Invoice.objects.filter(clinic=clinic, status__in=Invoice.OPEN_STATUSES).count(),
    }


def get_upcoming_appointments(clinic, limit=5):
    """Active appointments from the start of today onwards"""
    today_start, _ = day_bounds(get_local_today())
    return list(
        Appointment.objects.filter(
            clinic=clinic,
            scheduled_at__gte=today_start,
            status__in=[Appointment.SCHEDULED, Appointment.CONFIRMED, Appointment.SEATED],
        )
        .select_related('patient', 'doctor')
        .order_by('scheduled_at')[:limit]
    )


def get_todays_appointments(clinic):
    return list(Appointment.get_today(clinic))


def get_recent_activity(clinic, limit=5):
    """
    Latest completed visits and payments merged into one feed.

    Each entry: type ('appointment' or 'payment'), description, amount,
    timestamp and the related object.
    """
    activity = []

    completed = (
        Appointment.objects.filter(clinic=clinic, status=Appointment.COMPLETED)
        .select_related('patient')
        .order_by('-updated_at')[:3]
    )
    for appointment in completed:
        activity.append({
            'type': 'appointment',
            'description': f"Completed visit: {appointment.patient.full_name} ({appointment.type})",
            'amount': None,
            'timestamp': appointment.updated_at,
            'object': appointment,
        })

    payments = (
        _payments(clinic)
        .select_related('invoice__patient')
        .order_by('-paid_at')[:3]
    )
    for payment in payments:
        activity.append({
            'type': 'payment',
            'description': f"Payment from {payment.invoice.patient.full_name} ({payment.get_method_display()})",
            'amount': payment.amount,
            'timestamp': payment.paid_at,
            'object': payment,
        })

    activity.sort(key=lambda entry: entry['timestamp'], reverse=True)
    return activity[:limit]


def _last_months(months=CHART_MONTHS):
    """(year, month) pairs for the last ``months`` months, oldest first"""
    today = get_local_today()
    return [shift_month(today.year, today.month, -offset) for offset in range(months - 1, -1, -1)]


def get_revenue_chart_data(clinic, months=CHART_MONTHS):
    labels = []
    data = []
    for year, month in _last_months(months):
        start, end = month_bounds(year, month)
        labels.append(start.strftime('%b %Y'))
        data.append(float(_revenue_between(clinic, start, end)))
    return {'labels': labels, 'data': data}


def get_appointment_status_distribution(clinic):
    """Appointment count per status, in lifecycle order; statuses with no appointments are omitted"""
    counts = dict(
        Appointment.objects.filter(clinic=clinic)
        .values_list('status')
        .annotate(count=Count('id'))
    )
    labels = []
    data = []
    for status, label in Appointment.STATUS_CHOICES:
        if counts.get(status):
            labels.append(label)
            data.append(counts[status])
    return {'labels': labels, 'data': data}


def get_patient_growth_data(clinic, months=CHART_MONTHS):
    labels = []
    data = []
    patients = Patient.objects.filter(clinic=clinic)
    for year, month in _last_months(months):
        start, end = month_bounds(year, month)
        labels.append(start.strftime('%b %Y'))
        data.append(patients.filter(created_at__gte=start, created_at__lt=end).count())
    return {'labels': labels, 'data': data}


def get_chart_data(clinic):
    return {
        'revenue': get_revenue_chart_data(clinic),
        'appointment_status': get_appointment_status_distribution(clinic),
        'patient_growth': get_patient_growth_data(clinic),
        'generated_at': timezone.now().isoformat(),
    }
