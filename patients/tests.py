# patients/tests.py
from django.core.exceptions import ValidationError
from django.test import TestCase
from django.urls import reverse

from core.models import Clinic
from core.utils import get_local_today
from users.models import Role, User
from .forms import PatientForm, clean_name, clean_phone_number, parse_allergies
from .models import Patient


class PatientModelTest(TestCase):
    """Test patient lookups and normalisation"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')
        self.other_clinic = Clinic.objects.create(name='Other Dental')
        self.asha = Patient.objects.create(
            clinic=self.clinic, first_name='Asha', last_name='Menon', phone='09876543210'
        )

    def test_blank_email_saved_as_null(self):
        patient = Patient.objects.create(
            clinic=self.clinic, first_name='Ravi', last_name='Kumar', phone='9123456780', email=''
        )
        patient.refresh_from_db()
        self.assertIsNone(patient.email)

    def test_search_by_name_and_phone(self):
        Patient.objects.create(clinic=self.clinic, first_name='Ravi', last_name='Kumar', phone='9123456780')
        self.assertEqual(list(Patient.search(self.clinic, 'menon')), [self.asha])
        self.assertEqual(list(Patient.search(self.clinic, '98765')), [self.asha])
        self.assertEqual(len(Patient.search(self.clinic, '')), 2)

    def test_search_is_scoped_to_clinic(self):
        Patient.objects.create(clinic=self.other_clinic, first_name='Asha', last_name='Pillai', phone='9000000001')
        self.assertEqual(list(Patient.search(self.clinic, 'asha')), [self.asha])

    def test_find_by_phone_matches_across_formats(self):
        self.assertEqual(Patient.find_by_phone(self.clinic, '+919876543210'), self.asha)
        self.assertEqual(Patient.find_by_phone(self.clinic, '98765 43210'), self.asha)

    def test_find_by_phone_misses(self):
        self.assertIsNone(Patient.find_by_phone(self.other_clinic, '+919876543210'))
        self.assertIsNone(Patient.find_by_phone(self.clinic, '+919876543211'))
        self.assertIsNone(Patient.find_by_phone(self.clinic, ''))

    def test_update_last_visit_date(self):
        self.asha.update_last_visit_date()
        self.asha.refresh_from_db()
        self.assertEqual(self.asha.last_visit_date, get_local_today())

    def test_age_falls_back_to_booking_age(self):
        self.asha.age = 34
        self.assertEqual(self.asha.current_age, 34)
        self.assertEqual(self.asha.age_display, '34')
        self.asha.age = None
        self.assertEqual(self.asha.age_display, 'N/A')


class PatientFormTest(TestCase):
    """Test patient form cleaning"""

    def test_clean_phone_number(self):
        self.assertEqual(clean_phone_number('+91 98765-43210'), '+919876543210')
        self.assertEqual(clean_phone_number('(080) 1234.5678'), '08012345678')

    def test_invalid_phone_numbers(self):
        for phone in ('', '12345', '98765abc10', '+91987654321098765'):
            with self.assertRaises(ValidationError, msg=phone):
                clean_phone_number(phone)

    def test_clean_name_collapses_whitespace(self):
        self.assertEqual(clean_name('  Asha   Devi '), 'Asha Devi')
        with self.assertRaises(ValidationError):
            clean_name('   ', 'first name')

    def test_parse_allergies(self):
        self.assertEqual(parse_allergies('Penicillin, Latex\nAspirin,,'), ['Penicillin', 'Latex', 'Aspirin'])
        self.assertEqual(parse_allergies(''), [])
        self.assertEqual(parse_allergies(['Latex', ' ']), ['Latex'])

    def test_form_normalises_fields(self):
        form = PatientForm(data={
            'first_name': ' Asha ',
            'last_name': 'Menon',
            'email': 'Asha@Example.com',
            'phone': '98765 43210',
            'allergies': 'Penicillin, Latex',
            'is_active': 'on',
        })
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data['first_name'], 'Asha')
        self.assertEqual(form.cleaned_data['email'], 'asha@example.com')
        self.assertEqual(form.cleaned_data['phone'], '9876543210')
        self.assertEqual(form.cleaned_data['allergies'], ['Penicillin', 'Latex'])

    def test_future_date_of_birth_rejected(self):
        form = PatientForm(data={
            'first_name': 'Asha',
            'last_name': 'Menon',
            'phone': '9876543210',
            'date_of_birth': '2999-01-01',
        })
        self.assertFalse(form.is_valid())
        self.assertIn('date_of_birth', form.errors)


class PatientViewsTest(TestCase):
    """Test patient screens and the lookup endpoints"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')
        self.staff = User.objects.create_user(
            username='frontdesk', password='s3cret-pass', clinic=self.clinic, role=Role.get_role(Role.STAFF)
        )
        self.doctor = User.objects.create_user(
            username='drrao', password='s3cret-pass', clinic=self.clinic, role=Role.get_role(Role.DOCTOR)
        )
        self.patient = Patient.objects.create(
            clinic=self.clinic, first_name='Asha', last_name='Menon', phone='+919876543210'
        )
        self.client.force_login(self.staff)

    def test_list_with_search(self):
        Patient.objects.create(clinic=self.clinic, first_name='Ravi', last_name='Kumar', phone='9123456780')
        response = self.client.get(reverse('patients:patient_list'), {'query': 'Ravi'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([p.first_name for p in response.context['patients']], ['Ravi'])
        self.assertEqual(response.context['total_count'], 2)

    def test_create_patient(self):
        response = self.client.post(reverse('patients:patient_create'), {
            'first_name': 'Ravi',
            'last_name': 'Kumar',
            'email': '',
            'phone': '91234 56780',
            'date_of_birth': '1990-04-12',
            'gender': 'Male',
            'address': '',
            'allergies': 'Latex',
            'notes': '',
            'is_active': 'on',
        })
        patient = Patient.objects.get(first_name='Ravi')
        self.assertRedirects(response, reverse('patients:patient_detail', args=[patient.pk]))
        self.assertEqual(patient.clinic, self.clinic)
        self.assertEqual(patient.phone, '9123456780')
        self.assertIsNone(patient.email)
        self.assertEqual(patient.allergies, ['Latex'])

    def test_patient_of_other_clinic_is_404(self):
        other_clinic = Clinic.objects.create(name='Other Dental')
        stranger = Patient.objects.create(clinic=other_clinic, first_name='Ravi', last_name='K', phone='9123456780')
        response = self.client.get(reverse('patients:patient_detail', args=[stranger.pk]))
        self.assertEqual(response.status_code, 404)

    def test_billing_summary_only_for_billing_roles(self):
        response = self.client.get(reverse('patients:patient_detail', args=[self.patient.pk]))
        self.assertIn('billing_summary', response.context)

        self.client.force_login(self.doctor)
        response = self.client.get(reverse('patients:patient_detail', args=[self.patient.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertNotIn('billing_summary', response.context)

    def test_toggle_active(self):
        self.client.post(reverse('patients:toggle_patient_active', args=[self.patient.pk]))
        self.patient.refresh_from_db()
        self.assertFalse(self.patient.is_active)

    def test_lookup_needs_two_characters(self):
        response = self.client.get(reverse('patients:patient_lookup'), {'q': 'A'})
        self.assertEqual(response.json(), {'results': []})

        response = self.client.get(reverse('patients:patient_lookup'), {'q': 'As'})
        self.assertEqual(response.json()['results'][0]['name'], 'Asha Menon')

    def test_quick_info(self):
        response = self.client.get(reverse('patients:patient_quick_info', args=[self.patient.pk]))
        data = response.json()
        self.assertEqual(data['name'], 'Asha Menon')
        self.assertEqual(data['total_visits'], 0)
        self.assertIsNone(data['last_visit_date'])

    def test_delete_patient(self):
        response = self.client.post(reverse('patients:patient_delete', args=[self.patient.pk]))
        self.assertRedirects(response, reverse('patients:patient_list'))
        self.assertFalse(Patient.objects.filter(pk=self.patient.pk).exists())
