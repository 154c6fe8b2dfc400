# reports/views.py
from datetime import datetime, timedelta
from decimal import Decimal

from django.db.models import Count, DecimalField, F, Sum, Value
from django.db.models.functions import Coalesce
from django.http import JsonResponse
from django.views.generic import TemplateView

from appointments.models import Appointment, Invoice, InvoiceItem, Payment
from core.mixins import ClinicScopedMixin, clinic_permission_required
from core.utils import day_bounds, get_local_today
from . import analytics

MONEY = DecimalField(max_digits=12, decimal_places=2)


class ReportsView(ClinicScopedMixin, TemplateView):
    """
    Analytics screen: financial and operational figures for a date range
    plus the six-month charts.

    Revenue figures use Payment.paid_at (cash received); procedure revenue
    uses invoice line items of visits scheduled in the range.
    """
    template_name = 'reports/reports_dashboard.html'
    required_permission = 'analytics'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)

        date_range = self.request.GET.get('date_range', 'last_30_days')
        custom_start = self.request.GET.get('custom_start')
        custom_end = self.request.GET.get('custom_end')

        start_date, end_date = self._get_date_range(date_range, custom_start, custom_end)

        context.update({
            'date_range': date_range,
            'start_date': start_date,
            'end_date': end_date,
            'custom_start': custom_start or '',
            'custom_end': custom_end or '',
            'stats': analytics.get_dashboard_stats(self.clinic),
        })

        context.update(self._get_financial_reports(start_date, end_date))
        context.update(self._get_operational_reports(start_date, end_date))

        return context

    def _get_date_range(self, date_range, custom_start=None, custom_end=None):
        """
        Calculate start and end dates based on selected range

        Returns:
            Tuple of (start_date, end_date), both inclusive
        """
        today = get_local_today()

        if date_range == 'today':
            start_date = end_date = today
        elif date_range == 'last_7_days':
            start_date = today - timedelta(days=7)
            end_date = today
        elif date_range == 'this_month':
            start_date = today.replace(day=1)
            end_date = today
        elif date_range == 'custom' and custom_start and custom_end:
            try:
                start_date = datetime.strptime(custom_start, '%Y-%m-%d').date()
                end_date = datetime.strptime(custom_end, '%Y-%m-%d').date()

                if start_date > end_date:
                    start_date, end_date = end_date, start_date

            except (ValueError, TypeError):
                start_date = today - timedelta(days=30)
                end_date = today
        else:
            start_date = today - timedelta(days=30)
            end_date = today

        return start_date, end_date

    def _range_bounds(self, start_date, end_date):
        start, _ = day_bounds(start_date)
        _, end = day_bounds(end_date)
        return start, end

    def _get_financial_reports(self, start_date, end_date):
        start, end = self._range_bounds(start_date, end_date)

        payments_in_range = Payment.objects.filter(
            invoice__clinic=self.clinic, paid_at__gte=start, paid_at__lt=end
        )
        total_revenue = payments_in_range.aggregate(
            total=Coalesce(Sum('amount'), Value(0, output_field=MONEY))
        )['total']
        payment_count = payments_in_range.count()

        open_invoices = Invoice.objects.filter(clinic=self.clinic, status__in=Invoice.OPEN_STATUSES)
        total_outstanding = open_invoices.aggregate(
            total=Coalesce(Sum(F('total') - F('amount_paid')), Value(0, output_field=MONEY))
        )['total']

        today = get_local_today()
        overdue = open_invoices.filter(due_date__isnull=False, due_date__lt=today)

        revenue_by_method = payments_in_range.values('method').annotate(
            total=Sum('amount'), count=Count('id')
        ).order_by('-total')
        method_labels = dict(Payment.METHOD_CHOICES)
        revenue_by_method = [
            {'method': method_labels.get(row['method'], row['method']), 'total': row['total'], 'count': row['count']}
            for row in revenue_by_method
        ]

        procedure_revenue = InvoiceItem.objects.filter(
            invoice__clinic=self.clinic,
            clinical_record__isnull=False,
            invoice__appointment__scheduled_at__gte=start,
            invoice__appointment__scheduled_at__lt=end,
        ).exclude(
            invoice__status__in=Invoice.CLOSED_STATUSES
        ).values(
            'clinical_record__procedure__name'
        ).annotate(
            total_revenue=Sum('total'),
            procedure_count=Sum('quantity'),
        ).order_by('-total_revenue')[:10]

        return {
            'total_revenue': total_revenue,
            'payment_count': payment_count,
            'avg_payment': total_revenue / payment_count if payment_count else Decimal('0'),
            'total_outstanding': total_outstanding,
            'overdue_invoices': overdue.select_related('patient').order_by('due_date')[:10],
            'overdue_count': overdue.count(),
            'recent_payments': payments_in_range.select_related(
                'invoice__patient', 'created_by'
            ).order_by('-paid_at')[:15],
            'revenue_by_method': revenue_by_method,
            'procedure_revenue': procedure_revenue,
            'patients_with_balance': open_invoices.values('patient').distinct().count(),
        }

    def _get_operational_reports(self, start_date, end_date):
        start, end = self._range_bounds(start_date, end_date)

        appointments_in_range = Appointment.objects.filter(
            clinic=self.clinic, scheduled_at__gte=start, scheduled_at__lt=end
        )
        status_labels = dict(Appointment.STATUS_CHOICES)
        appointments_by_status = [
            {'status': row['status'], 'label': status_labels.get(row['status'], row['status']), 'count': row['count']}
            for row in appointments_in_range.values('status').annotate(count=Count('id')).order_by('-count')
        ]

        completed = appointments_in_range.filter(status=Appointment.COMPLETED).count()
        no_shows = appointments_in_range.filter(status=Appointment.NO_SHOW).count()
        cancelled = appointments_in_range.filter(status=Appointment.CANCELLED).count()

        # Only visits that were expected to happen count towards the no-show rate
        eligible = completed + no_shows
        no_show_rate = (no_shows / eligible * 100) if eligible > 0 else 0

        by_doctor = appointments_in_range.filter(
            doctor__isnull=False, status=Appointment.COMPLETED
        ).values(
            'doctor__first_name', 'doctor__last_name'
        ).annotate(count=Count('id')).order_by('-count')

        return {
            'total_appointments': appointments_in_range.count(),
            'appointments_by_status': appointments_by_status,
            'completed_appointments': completed,
            'cancelled_appointments': cancelled,
            'no_shows': no_shows,
            'no_show_rate': round(no_show_rate, 1),
            'completed_by_doctor': by_doctor,
        }


@clinic_permission_required('analytics')
def chart_data_api(request):
    """Six-month revenue and patient growth plus the status distribution, as JSON"""
    return JsonResponse(analytics.get_chart_data(request.clinic))
