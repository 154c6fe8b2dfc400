# reports/tests.py
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from appointments.models import Appointment, Invoice
from core.models import Clinic
from core.utils import get_local_today, month_bounds, shift_month
from patients.models import Patient
from users.models import Role, User
from . import analytics


class AnalyticsTestMixin:

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')
        self.patient = Patient.objects.create(
            clinic=self.clinic, first_name='Asha', last_name='Menon', phone='9876543210'
        )

    def make_invoice(self, amount='1000.00', clinic=None, patient=None):
        return Invoice.create_invoice(
            clinic=clinic or self.clinic,
            patient=patient or self.patient,
            items=[{'description': 'Treatment', 'quantity': 1, 'unit_price': Decimal(amount)}],
        )

    def make_appointment(self, scheduled_at, status=Appointment.SCHEDULED):
        return Appointment.objects.create(
            clinic=self.clinic, patient=self.patient, scheduled_at=scheduled_at, status=status
        )


class DashboardStatsTest(AnalyticsTestMixin, TestCase):
    """Test the dashboard headline figures"""

    def last_month_date(self):
        today = get_local_today()
        start, _ = month_bounds(*shift_month(today.year, today.month, -1))
        return start + timedelta(days=1)

    def test_percentage_change(self):
        self.assertEqual(analytics._percentage_change(Decimal('500'), Decimal('0')), 100.0)
        self.assertEqual(analytics._percentage_change(Decimal('0'), Decimal('0')), 100.0)
        self.assertEqual(analytics._percentage_change(Decimal('300'), Decimal('200')), 50.0)
        self.assertEqual(analytics._percentage_change(Decimal('100'), Decimal('200')), -50.0)

    def test_revenue_change_without_last_month(self):
        self.make_invoice().record_payment(Decimal('500'), 'CASH')

        stats = analytics.get_dashboard_stats(self.clinic)
        self.assertEqual(stats['current_month_revenue'], Decimal('500.00'))
        self.assertEqual(stats['last_month_revenue'], Decimal('0.00'))
        self.assertEqual(stats['revenue_change'], 100.0)
        self.assertEqual(stats['pending_invoices'], 1)

    def test_revenue_change_against_last_month(self):
        invoice = self.make_invoice()
        invoice.record_payment(Decimal('200'), 'CASH', paid_at=self.last_month_date())
        invoice.record_payment(Decimal('300'), 'UPI')

        stats = analytics.get_dashboard_stats(self.clinic)
        self.assertEqual(stats['revenue_change'], 50.0)
        self.assertEqual(stats['total_revenue'], Decimal('500.00'))

    def test_stats_are_scoped_to_clinic(self):
        other_clinic = Clinic.objects.create(name='Other Dental')
        stranger = Patient.objects.create(clinic=other_clinic, first_name='Ravi', last_name='K', phone='9123456780')
        self.make_invoice(clinic=other_clinic, patient=stranger).record_payment(Decimal('700'), 'CASH')

        stats = analytics.get_dashboard_stats(self.clinic)
        self.assertEqual(stats['total_patients'], 1)
        self.assertEqual(stats['total_revenue'], Decimal('0.00'))

    def test_today_counts(self):
        self.make_appointment(timezone.now(), status=Appointment.COMPLETED)
        self.make_appointment(timezone.now())
        self.make_appointment(timezone.now() + timedelta(days=2))

        stats = analytics.get_dashboard_stats(self.clinic)
        self.assertEqual(stats['today_appointments'], 2)
        self.assertEqual(stats['completed_today'], 1)


class ActivityFeedTest(AnalyticsTestMixin, TestCase):
    """Test upcoming appointments and the recent activity feed"""

    def test_upcoming_excludes_past_days_and_inactive(self):
        tomorrow = timezone.now() + timedelta(days=1)
        self.make_appointment(timezone.now() - timedelta(days=1))
        self.make_appointment(tomorrow, status=Appointment.CANCELLED)
        expected = self.make_appointment(tomorrow)

        self.assertEqual(analytics.get_upcoming_appointments(self.clinic), [expected])

    def test_upcoming_respects_limit(self):
        for day in range(1, 8):
            self.make_appointment(timezone.now() + timedelta(days=day))
        upcoming = analytics.get_upcoming_appointments(self.clinic, limit=5)
        self.assertEqual(len(upcoming), 5)
        self.assertEqual(upcoming, sorted(upcoming, key=lambda a: a.scheduled_at))

    def test_recent_activity_merges_and_limits(self):
        for _ in range(3):
            self.make_appointment(timezone.now(), status=Appointment.COMPLETED)
        invoice = self.make_invoice('3000.00')
        for _ in range(3):
            invoice.record_payment(Decimal('100'), 'CASH')

        activity = analytics.get_recent_activity(self.clinic)
        self.assertEqual(len(activity), 5)
        self.assertEqual({entry['type'] for entry in activity}, {'appointment', 'payment'})
        timestamps = [entry['timestamp'] for entry in activity]
        self.assertEqual(timestamps, sorted(timestamps, reverse=True))

    def test_payment_entries_carry_amount(self):
        self.make_invoice().record_payment(Decimal('250'), 'CARD')
        entry = analytics.get_recent_activity(self.clinic)[0]
        self.assertEqual(entry['type'], 'payment')
        self.assertEqual(entry['amount'], Decimal('250.00'))
        self.assertIn('Asha Menon', entry['description'])


class ChartDataTest(AnalyticsTestMixin, TestCase):

    def test_six_month_series(self):
        self.make_invoice().record_payment(Decimal('400'), 'CASH')

        data = analytics.get_chart_data(self.clinic)
        self.assertEqual(len(data['revenue']['labels']), 6)
        self.assertEqual(data['revenue']['data'][-1], 400.0)
        self.assertEqual(data['patient_growth']['data'][-1], 1)
        self.assertEqual(sum(data['patient_growth']['data']), 1)

    def test_status_distribution_omits_empty_statuses(self):
        self.make_appointment(timezone.now())
        self.make_appointment(timezone.now(), status=Appointment.COMPLETED)
        self.make_appointment(timezone.now() + timedelta(days=1))

        distribution = analytics.get_appointment_status_distribution(self.clinic)
        self.assertEqual(distribution, {'labels': ['Scheduled', 'Completed'], 'data': [2, 1]})


class ReportsViewTest(AnalyticsTestMixin, TestCase):
    """Test the analytics screen and its JSON endpoint"""

    def setUp(self):
        super().setUp()
        self.admin = User.objects.create_user(
            username='admin', password='s3cret-pass', clinic=self.clinic, role=Role.get_role(Role.ADMIN)
        )
        self.staff = User.objects.create_user(
            username='frontdesk', password='s3cret-pass', clinic=self.clinic, role=Role.get_role(Role.STAFF)
        )

    def test_staff_has_no_analytics_access(self):
        self.client.force_login(self.staff)
        response = self.client.get(reverse('reports:dashboard'))
        self.assertRedirects(response, reverse('core:dashboard'), fetch_redirect_response=False)

        response = self.client.get(reverse('reports:chart_data'))
        self.assertRedirects(response, reverse('core:dashboard'), fetch_redirect_response=False)

    def test_reports_dashboard(self):
        self.make_invoice().record_payment(Decimal('600'), 'CASH')
        self.make_appointment(timezone.now() - timedelta(hours=1), status=Appointment.NO_SHOW)
        self.make_appointment(timezone.now() - timedelta(hours=2), status=Appointment.COMPLETED)

        self.client.force_login(self.admin)
        response = self.client.get(reverse('reports:dashboard'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['total_revenue'], Decimal('600.00'))
        self.assertEqual(response.context['payment_count'], 1)
        self.assertEqual(response.context['total_outstanding'], Decimal('400.00'))
        self.assertEqual(response.context['no_show_rate'], 50.0)

    def test_custom_range_is_ordered(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('reports:dashboard'), {
            'date_range': 'custom', 'custom_start': '2026-03-31', 'custom_end': '2026-03-01',
        })
        self.assertEqual(str(response.context['start_date']), '2026-03-01')
        self.assertEqual(str(response.context['end_date']), '2026-03-31')

    def test_invalid_custom_range_falls_back(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('reports:dashboard'), {
            'date_range': 'custom', 'custom_start': 'soon', 'custom_end': 'later',
        })
        self.assertEqual(response.context['end_date'], get_local_today())
        self.assertEqual(response.context['start_date'], get_local_today() - timedelta(days=30))

    def test_chart_data_endpoint(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('reports:chart_data'))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(set(data), {'revenue', 'appointment_status', 'patient_growth', 'generated_at'})
