# treatments/tests.py
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse

from core.models import Clinic
from users.models import Role, User
from .forms import TreatmentForm
from .models import Treatment


class TreatmentCatalogTest(TestCase):
    """Test catalog queries and soft deletion"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')
        self.scaling = Treatment.objects.create(
            clinic=self.clinic, code='D1110', name='Scaling and Polishing',
            category='Preventive', standard_cost=Decimal('1200.00'), duration_minutes=90
        )
        self.filling = Treatment.objects.create(
            clinic=self.clinic, code='D2391', name='Composite Filling',
            category='Restorative', standard_cost=Decimal('1500.00'), duration_minutes=45
        )

    def test_str_includes_code(self):
        self.assertEqual(str(self.scaling), 'D1110 - Scaling and Polishing')
        self.assertEqual(str(Treatment(name='Consultation')), 'Consultation')

    def test_duration_display(self):
        self.assertEqual(self.scaling.duration_display, '1h 30m')
        self.assertEqual(self.filling.duration_display, '45m')
        self.assertEqual(Treatment(duration_minutes=120).duration_display, '2h')
        self.assertEqual(Treatment().duration_display, '-')

    def test_deactivated_treatment_leaves_active_catalog(self):
        self.filling.deactivate()
        self.assertEqual(list(Treatment.get_treatments(self.clinic)), [self.scaling])
        self.assertEqual(Treatment.get_all_treatments(self.clinic).count(), 2)
        self.assertEqual(Treatment.get_categories(self.clinic), ['Preventive'])

    def test_catalog_is_scoped_to_clinic(self):
        other_clinic = Clinic.objects.create(name='Other Dental')
        Treatment.objects.create(clinic=other_clinic, name='Extraction', category='Oral Surgery', standard_cost=800)
        self.assertEqual(Treatment.get_categories(self.clinic), ['Preventive', 'Restorative'])
        self.assertEqual(list(Treatment.get_treatments(self.clinic, category='Restorative')), [self.filling])


class TreatmentFormTest(TestCase):

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')
        self.existing = Treatment.objects.create(
            clinic=self.clinic, code='D1110', name='Scaling', category='Preventive', standard_cost=Decimal('1200')
        )

    def form_data(self, **overrides):
        data = {
            'code': 'd1110',
            'name': 'Deep  Scaling',
            'category': 'Periodontic',
            'standard_cost': '2500.00',
            'duration_minutes': '60',
            'description': '',
            'is_active': 'on',
        }
        data.update(overrides)
        return data

    def test_duplicate_code_rejected(self):
        form = TreatmentForm(data=self.form_data(), clinic=self.clinic)
        self.assertFalse(form.is_valid())
        self.assertIn('code', form.errors)

    def test_same_code_allowed_in_another_clinic(self):
        other_clinic = Clinic.objects.create(name='Other Dental')
        form = TreatmentForm(data=self.form_data(), clinic=other_clinic)
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data['code'], 'D1110')
        self.assertEqual(form.cleaned_data['name'], 'Deep Scaling')

    def test_editing_keeps_own_code(self):
        form = TreatmentForm(data=self.form_data(), instance=self.existing, clinic=self.clinic)
        self.assertTrue(form.is_valid(), form.errors)

    def test_negative_cost_rejected(self):
        form = TreatmentForm(data=self.form_data(code='D9999', standard_cost='-1'), clinic=self.clinic)
        self.assertFalse(form.is_valid())
        self.assertIn('standard_cost', form.errors)


class TreatmentViewsTest(TestCase):
    """Test catalog screens and permissions"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')
        self.admin = User.objects.create_user(
            username='admin', password='s3cret-pass', clinic=self.clinic, role=Role.get_role(Role.ADMIN)
        )
        self.doctor = User.objects.create_user(
            username='drrao', password='s3cret-pass', clinic=self.clinic, role=Role.get_role(Role.DOCTOR)
        )
        self.scaling = Treatment.objects.create(
            clinic=self.clinic, code='D1110', name='Scaling', category='Preventive', standard_cost=Decimal('1200')
        )

    def test_admin_creates_treatment(self):
        self.client.force_login(self.admin)
        response = self.client.post(reverse('treatments:treatment_create'), {
            'code': 'D2391',
            'name': 'Composite Filling',
            'category': 'Restorative',
            'standard_cost': '1500.00',
            'duration_minutes': '45',
            'description': '',
            'is_active': 'on',
        })
        self.assertRedirects(response, reverse('treatments:treatment_list'))
        self.assertTrue(Treatment.objects.filter(clinic=self.clinic, code='D2391').exists())

    def test_delete_deactivates(self):
        self.client.force_login(self.admin)
        self.client.post(reverse('treatments:treatment_delete', args=[self.scaling.pk]))
        self.scaling.refresh_from_db()
        self.assertFalse(self.scaling.is_active)

    def test_doctor_cannot_manage_catalog(self):
        self.client.force_login(self.doctor)
        response = self.client.get(reverse('treatments:treatment_list'))
        self.assertRedirects(response, reverse('core:dashboard'), fetch_redirect_response=False)

    def test_options_api_lists_active_treatments(self):
        Treatment.objects.create(
            clinic=self.clinic, code='D0150', name='Old Exam', category='Diagnostic',
            standard_cost=Decimal('300'), is_active=False
        )
        self.client.force_login(self.doctor)
        response = self.client.get(reverse('treatments:treatment_options'))
        data = response.json()
        self.assertEqual([t['code'] for t in data['treatments']], ['D1110'])
        self.assertEqual(data['treatments'][0]['standard_cost'], '1200.00')
        self.assertIn('MOD', data['surfaces'])
