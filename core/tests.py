# core/tests.py
from datetime import date
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from patients.models import Patient
from users.models import Role, User
from .models import AuditLog, Clinic
from .utils import calculate_age, format_currency, month_bounds, phone_tail, shift_month


class UtilsTest(TestCase):
    """Test the shared date and formatting helpers"""

    def test_format_currency(self):
        self.assertEqual(format_currency(Decimal('1250.5')), '₹1,250.50')
        self.assertEqual(format_currency(1000), '₹1,000')
        self.assertEqual(format_currency('not a number'), '₹0')
        self.assertEqual(format_currency(Decimal('99.99'), symbol='$'), '$99.99')

    def test_shift_month_across_years(self):
        self.assertEqual(shift_month(2026, 1, -1), (2025, 12))
        self.assertEqual(shift_month(2025, 11, 3), (2026, 2))
        self.assertEqual(shift_month(2026, 6, -17), (2025, 1))

    def test_month_bounds_december(self):
        start, end = month_bounds(2025, 12)
        self.assertEqual(timezone.localtime(start).date(), date(2025, 12, 1))
        self.assertEqual(timezone.localtime(end).date(), date(2026, 1, 1))

    def test_calculate_age(self):
        self.assertEqual(calculate_age(date(2000, 6, 15), today=date(2026, 6, 14)), 25)
        self.assertEqual(calculate_age(date(2000, 6, 15), today=date(2026, 6, 15)), 26)
        self.assertIsNone(calculate_age(None))

    def test_phone_tail(self):
        self.assertEqual(phone_tail('+91 98765-43210'), '9876543210')
        self.assertEqual(phone_tail('09876543210'), '9876543210')


class ClinicModelTest(TestCase):

    def test_slug_is_unique(self):
        first = Clinic.objects.create(name='Smile Dental')
        second = Clinic.objects.create(name='Smile Dental')
        self.assertEqual(first.slug, 'smile-dental')
        self.assertEqual(second.slug, 'smile-dental-2')

    def test_default_clinic_is_the_oldest(self):
        first = Clinic.objects.create(name='Alpha')
        Clinic.objects.create(name='Beta')
        self.assertEqual(Clinic.get_default(), first)


class AuditSignalTest(TestCase):
    """Test automatic audit entries for tenant data"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')

    def test_create_is_logged_with_clinic(self):
        patient = Patient.objects.create(clinic=self.clinic, first_name='Asha', last_name='Menon', phone='9876543210')
        log = AuditLog.objects.get(model_name='patient', object_id=patient.pk, action='create')
        self.assertEqual(log.clinic, self.clinic)
        self.assertEqual(log.object_repr, 'Asha Menon')

    def test_update_records_changed_fields_only(self):
        patient = Patient.objects.create(clinic=self.clinic, first_name='Asha', last_name='Menon', phone='9876543210')
        patient.phone = '9123456780'
        patient.save()

        log = AuditLog.objects.get(model_name='patient', object_id=patient.pk, action='update')
        self.assertEqual(list(log.changes.keys()), ['phone'])
        self.assertEqual(log.changes['phone']['old'], '9876543210')

    def test_save_without_changes_is_not_logged(self):
        patient = Patient.objects.create(clinic=self.clinic, first_name='Asha', last_name='Menon', phone='9876543210')
        patient.save()
        self.assertFalse(AuditLog.objects.filter(model_name='patient', action='update').exists())

    def test_skip_flag(self):
        patient = Patient(clinic=self.clinic, first_name='Asha', last_name='Menon', phone='9876543210')
        patient._skip_audit_log = True
        patient.save()
        self.assertFalse(AuditLog.objects.filter(model_name='patient').exists())

    def test_delete_is_logged(self):
        patient = Patient.objects.create(clinic=self.clinic, first_name='Asha', last_name='Menon', phone='9876543210')
        patient_pk = patient.pk
        patient.delete()
        self.assertTrue(AuditLog.objects.filter(model_name='patient', object_id=patient_pk, action='delete').exists())

    def test_get_field_changes(self):
        old = Clinic(name='Smile Dental', phone='111')
        new = Clinic(name='Smile Dental Care', phone='111')
        changes = AuditLog.get_field_changes(old, new)
        self.assertEqual(changes, {'name': {'old': 'Smile Dental', 'new': 'Smile Dental Care', 'label': 'Name'}})


class CoreViewsTest(TestCase):
    """Test dashboard access, clinic settings and the audit trail"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')
        self.admin = User.objects.create_user(
            username='admin', password='s3cret-pass', clinic=self.clinic, role=Role.get_role(Role.ADMIN)
        )
        self.doctor = User.objects.create_user(
            username='drrao', password='s3cret-pass', clinic=self.clinic, role=Role.get_role(Role.DOCTOR)
        )

    def test_home_redirects_anonymous_to_login(self):
        response = self.client.get(reverse('core:home'))
        self.assertRedirects(response, reverse('users:login'))

    def test_dashboard_requires_login(self):
        response = self.client.get(reverse('core:dashboard'))
        self.assertEqual(response.status_code, 302)
        self.assertIn(reverse('users:login'), response.url)

    def test_dashboard_for_admin(self):
        Patient.objects.create(clinic=self.clinic, first_name='Asha', last_name='Menon', phone='9876543210')
        self.client.force_login(self.admin)

        response = self.client.get(reverse('core:dashboard'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['stats']['total_patients'], 1)
        self.assertTrue(response.context['show_billing'])

    def test_dashboard_hides_billing_from_doctor(self):
        self.client.force_login(self.doctor)
        response = self.client.get(reverse('core:dashboard'))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.context['show_billing'])
        self.assertNotIn('recent_activity', response.context)

    def test_user_without_clinic_is_sent_to_login(self):
        orphan = User.objects.create_user(username='orphan', password='s3cret-pass', role=Role.get_role(Role.ADMIN))
        self.client.force_login(orphan)
        response = self.client.get(reverse('core:dashboard'))
        self.assertRedirects(response, reverse('users:login'))

    def test_clinic_settings_update_is_audited(self):
        self.client.force_login(self.admin)
        response = self.client.post(reverse('core:settings'), {
            'name': 'Smile Dental Care',
            'phone': '080-1234567',
            'email': 'hello@smiledental.in',
            'address': '12 MG Road, Bengaluru',
            'currency': 'inr',
        })
        self.assertRedirects(response, reverse('core:settings'))

        self.clinic.refresh_from_db()
        self.assertEqual(self.clinic.name, 'Smile Dental Care')
        self.assertEqual(self.clinic.currency, 'INR')

        log = AuditLog.objects.get(model_name='clinic', action='update')
        self.assertEqual(log.user, self.admin)
        self.assertIn('name', log.changes)

    def test_doctor_cannot_edit_clinic_settings(self):
        self.client.force_login(self.doctor)
        response = self.client.get(reverse('core:settings'))
        self.assertRedirects(response, reverse('core:dashboard'), fetch_redirect_response=False)

    def test_audit_log_is_scoped_to_clinic(self):
        other_clinic = Clinic.objects.create(name='Other Dental')
        Patient.objects.create(clinic=self.clinic, first_name='Asha', last_name='Menon', phone='9876543210')
        Patient.objects.create(clinic=other_clinic, first_name='Ravi', last_name='Kumar', phone='9123456780')

        self.client.force_login(self.admin)
        response = self.client.get(reverse('core:audit_logs'), {'model_name': 'patient'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([log.object_repr for log in response.context['logs']], ['Asha Menon'])

    def test_audit_log_date_filter(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('core:audit_logs'), {'date_from': 'yesterday'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['active_filters'], [])

    def test_health_check(self):
        response = self.client.get(reverse('core:health'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ok')
