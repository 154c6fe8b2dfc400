# appointments/tests.py
"""
Tests for scheduling, clinical records, billing and the booking webhook
"""
import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core.exceptions import ValidationError
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from core.models import AuditLog, Clinic
from core.utils import get_local_today
from patients.models import Patient
from treatments.models import Treatment
from users.models import Role, User
from .booking import format_booking_phone, split_full_name
from .models import Appointment, ClinicalRecord, Invoice, Payment
from .utils import compute_balance, compute_invoice_totals, generate_invoice_number


def make_user(clinic, username, role_name=Role.ADMIN, **extra):
    return User.objects.create_user(
        username=username,
        password='s3cret-pass',
        clinic=clinic,
        role=Role.get_role(role_name),
        **extra
    )


class ClinicDataMixin:
    """One clinic with an admin, a doctor, a patient and two catalog entries"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')
        self.admin = make_user(self.clinic, 'admin', Role.ADMIN, first_name='Anita', last_name='Shah')
        self.doctor = make_user(self.clinic, 'drrao', Role.DOCTOR, first_name='Vikram', last_name='Rao')
        self.patient = Patient.objects.create(
            clinic=self.clinic, first_name='Asha', last_name='Menon', phone='+919876543210'
        )
        self.filling = Treatment.objects.create(
            clinic=self.clinic, code='D2391', name='Composite Filling',
            category='Restorative', standard_cost=Decimal('1500.00')
        )
        self.scaling = Treatment.objects.create(
            clinic=self.clinic, code='D1110', name='Scaling and Polishing',
            category='Preventive', standard_cost=Decimal('1200.00')
        )

    def make_appointment(self, scheduled_at=None, **extra):
        defaults = {
            'clinic': self.clinic,
            'patient': self.patient,
            'doctor': self.doctor,
            'scheduled_at': scheduled_at or timezone.now(),
            'duration': 30,
        }
        defaults.update(extra)
        return Appointment.objects.create(**defaults)


class BillingArithmeticTest(TestCase):
    """Test invoice total computation"""

    def test_percentage_discount_and_tax(self):
        totals = compute_invoice_totals(
            [(Decimal('1000'), 2), (Decimal('500'), 1)],
            discount=10, discount_type='percentage', tax=50
        )
        self.assertEqual(totals['subtotal'], Decimal('2500.00'))
        self.assertEqual(totals['discount_amount'], Decimal('250.00'))
        self.assertEqual(totals['total'], Decimal('2300.00'))

    def test_fixed_discount_is_capped_at_subtotal(self):
        totals = compute_invoice_totals([(Decimal('100'), 1)], discount=150, discount_type='fixed')
        self.assertEqual(totals['discount_amount'], Decimal('100.00'))
        self.assertEqual(totals['total'], Decimal('0.00'))

    def test_rounding_is_half_up(self):
        totals = compute_invoice_totals([(Decimal('33.33'), 1)], discount=Decimal('12.5'), discount_type='percentage')
        self.assertEqual(totals['discount_amount'], Decimal('4.17'))
        self.assertEqual(totals['total'], Decimal('29.16'))

    def test_percentage_above_100_rejected(self):
        with self.assertRaises(ValidationError):
            compute_invoice_totals([(Decimal('100'), 1)], discount=101, discount_type='percentage')

    def test_negative_tax_rejected(self):
        with self.assertRaises(ValidationError):
            compute_invoice_totals([(Decimal('100'), 1)], tax=-1)

    def test_balance_never_negative(self):
        self.assertEqual(compute_balance(Decimal('100'), Decimal('150')), Decimal('0.00'))
        self.assertEqual(compute_balance(Decimal('100'), Decimal('40')), Decimal('60.00'))

    def test_invoice_number_format(self):
        self.assertRegex(generate_invoice_number(), r'^INV-[0-9A-Z]{4}-[0-9A-Z]{4}$')


class AppointmentStatusTest(ClinicDataMixin, TestCase):
    """Test the appointment lifecycle"""

    def test_full_visit_lifecycle(self):
        appointment = self.make_appointment()
        for status in (Appointment.CONFIRMED, Appointment.SEATED, Appointment.IN_PROGRESS, Appointment.COMPLETED):
            appointment.update_status(status, user=self.admin)

        appointment.refresh_from_db()
        self.patient.refresh_from_db()
        self.assertEqual(appointment.status, Appointment.COMPLETED)
        self.assertEqual(self.patient.last_visit_date, get_local_today())
        self.assertEqual(
            AuditLog.objects.filter(model_name='appointment', object_id=appointment.pk, action='status_change').count(),
            4
        )

    def test_invalid_transition_rejected(self):
        appointment = self.make_appointment()
        with self.assertRaises(ValidationError):
            appointment.update_status(Appointment.COMPLETED)
        appointment.refresh_from_db()
        self.assertEqual(appointment.status, Appointment.SCHEDULED)

    def test_unknown_status_rejected(self):
        appointment = self.make_appointment()
        with self.assertRaises(ValidationError):
            appointment.update_status('ARCHIVED')

    def test_no_show_not_allowed_for_future_dates(self):
        appointment = self.make_appointment(scheduled_at=timezone.now() + timedelta(days=2))
        with self.assertRaises(ValidationError) as cm:
            appointment.update_status(Appointment.NO_SHOW)
        self.assertIn('future dates', ' '.join(cm.exception.messages))

    def test_cancel_logs_cancel_action(self):
        appointment = self.make_appointment(scheduled_at=timezone.now() + timedelta(days=2))
        appointment.update_status(Appointment.CANCELLED, user=self.admin)

        log = AuditLog.objects.get(model_name='appointment', object_id=appointment.pk, action='cancel')
        self.assertEqual(log.user, self.admin)
        self.assertEqual(log.changes['status']['new'], Appointment.CANCELLED)

    def test_cancelled_can_be_rescheduled(self):
        appointment = self.make_appointment(status=Appointment.CANCELLED)
        self.assertEqual(appointment.update_status(Appointment.SCHEDULED), Appointment.CANCELLED)


class AppointmentValidationTest(ClinicDataMixin, TestCase):
    """Test appointment model validation"""

    def setUp(self):
        super().setUp()
        self.start = timezone.now() + timedelta(days=1)
        self.existing = self.make_appointment(scheduled_at=self.start)

    def test_overlapping_appointment_rejected(self):
        appointment = Appointment(
            clinic=self.clinic, patient=self.patient, doctor=self.doctor,
            scheduled_at=self.start + timedelta(minutes=15), duration=30,
        )
        with self.assertRaises(ValidationError):
            appointment.full_clean()

    def test_back_to_back_appointment_allowed(self):
        appointment = Appointment(
            clinic=self.clinic, patient=self.patient, doctor=self.doctor,
            scheduled_at=self.start + timedelta(minutes=30), duration=30,
        )
        appointment.full_clean()

    def test_cancelled_appointment_frees_the_slot(self):
        self.existing.update_status(Appointment.CANCELLED)
        appointment = Appointment(
            clinic=self.clinic, patient=self.patient, doctor=self.doctor,
            scheduled_at=self.start, duration=30,
        )
        appointment.full_clean()

    def test_more_than_a_year_ahead_rejected(self):
        appointment = Appointment(
            clinic=self.clinic, patient=self.patient,
            scheduled_at=timezone.now() + timedelta(days=400), duration=30,
        )
        with self.assertRaises(ValidationError) as cm:
            appointment.full_clean()
        self.assertIn('scheduled_at', cm.exception.message_dict)

    def test_patient_of_another_clinic_rejected(self):
        other_clinic = Clinic.objects.create(name='Other Dental')
        stranger = Patient.objects.create(clinic=other_clinic, first_name='Ravi', last_name='K', phone='9123456780')
        appointment = Appointment(
            clinic=self.clinic, patient=stranger,
            scheduled_at=timezone.now() + timedelta(days=3), duration=30,
        )
        with self.assertRaises(ValidationError) as cm:
            appointment.full_clean()
        self.assertIn('patient', cm.exception.message_dict)


class ClinicalRecordTest(ClinicDataMixin, TestCase):
    """Test clinical records and their audit entries"""

    def setUp(self):
        super().setUp()
        self.appointment = self.make_appointment()

    def test_create_record_with_price_override_is_audited(self):
        record = ClinicalRecord.create_record(
            self.appointment, self.filling.pk, user=self.doctor,
            tooth_number='36', surface='O', cost_override=Decimal('1000.00')
        )

        self.assertEqual(record.effective_cost, Decimal('1000.00'))
        self.assertTrue(record.has_price_override)
        log = AuditLog.objects.get(model_name='clinicalrecord', object_id=record.pk, action='price_override')
        self.assertEqual(log.reason, 'Manual price override')
        self.assertEqual(log.changes['cost'], {'old': '1500.00', 'new': '1000.00'})

    def test_record_at_catalog_price_has_no_override_entry(self):
        record = ClinicalRecord.create_record(self.appointment, self.filling.pk, tooth_number='36')
        self.assertEqual(record.effective_cost, Decimal('1500.00'))
        self.assertFalse(AuditLog.objects.filter(action='price_override').exists())

    def test_zero_cost_override_is_an_override(self):
        record = ClinicalRecord.create_record(self.appointment, self.scaling.pk, cost_override=Decimal('0'))
        self.assertEqual(record.effective_cost, Decimal('0'))
        self.assertTrue(AuditLog.objects.filter(action='price_override', object_id=record.pk).exists())

    def test_procedure_of_another_clinic_rejected(self):
        other_clinic = Clinic.objects.create(name='Other Dental')
        foreign = Treatment.objects.create(
            clinic=other_clinic, name='Extraction', category='Oral Surgery', standard_cost=Decimal('800')
        )
        with self.assertRaises(ValidationError) as cm:
            ClinicalRecord.create_record(self.appointment, foreign.pk)
        self.assertEqual(cm.exception.messages, ['Treatment not found'])

    def test_update_override_is_audited(self):
        record = ClinicalRecord.create_record(self.appointment, self.filling.pk, tooth_number='36')
        record.update_record(user=self.doctor, cost_override=Decimal('1300.00'))

        log = AuditLog.objects.get(model_name='clinicalrecord', object_id=record.pk, action='price_override')
        self.assertEqual(log.reason, 'Price override updated')

    def test_delete_logs_old_values_once(self):
        record = ClinicalRecord.create_record(self.appointment, self.filling.pk, tooth_number='36', diagnosis='Caries')
        record_pk = record.pk
        record.delete_record(user=self.doctor)

        logs = AuditLog.objects.filter(model_name='clinicalrecord', object_id=record_pk, action='delete')
        self.assertEqual(logs.count(), 1)
        self.assertEqual(logs.get().changes['old']['diagnosis'], 'Caries')
        self.assertFalse(ClinicalRecord.objects.filter(pk=record_pk).exists())

    def test_tooth_history(self):
        ClinicalRecord.create_record(self.appointment, self.filling.pk, tooth_number='36')
        ClinicalRecord.create_record(self.appointment, self.scaling.pk, tooth_number='11')
        history = ClinicalRecord.tooth_history(self.patient, '36')
        self.assertEqual([r.procedure for r in history], [self.filling])


class InvoiceTest(ClinicDataMixin, TestCase):
    """Test invoice creation, payments and reconciliation"""

    def setUp(self):
        super().setUp()
        self.appointment = self.make_appointment()

    def make_invoice(self, amount='1000.00', **extra):
        return Invoice.create_invoice(
            clinic=self.clinic,
            patient=self.patient,
            items=[{'description': 'Consultation', 'quantity': 1, 'unit_price': Decimal(amount)}],
            **extra
        )

    def test_generate_from_appointment(self):
        ClinicalRecord.create_record(self.appointment, self.filling.pk, tooth_number='36')
        ClinicalRecord.create_record(self.appointment, self.scaling.pk, cost_override=Decimal('0'))

        invoice = Invoice.generate_from_appointment(self.appointment, user=self.admin)

        self.assertEqual(invoice.status, Invoice.PENDING)
        self.assertEqual(invoice.items.count(), 2)
        self.assertEqual(invoice.subtotal, Decimal('1500.00'))
        self.assertEqual(invoice.total, Decimal('1500.00'))
        self.assertEqual(self.appointment.invoice, invoice)
        self.assertRegex(invoice.invoice_number, r'^INV-[0-9A-Z]{4}-[0-9A-Z]{4}$')
        self.assertTrue(all(item.clinical_record_id for item in invoice.items.all()))

    def test_appointment_invoiced_only_once(self):
        ClinicalRecord.create_record(self.appointment, self.filling.pk)
        Invoice.generate_from_appointment(self.appointment)
        with self.assertRaises(ValidationError):
            Invoice.generate_from_appointment(self.appointment)

    def test_generate_without_records_rejected(self):
        with self.assertRaises(ValidationError) as cm:
            Invoice.generate_from_appointment(self.appointment)
        self.assertIn('No treatments found', cm.exception.messages[0])

    def test_invoice_needs_items(self):
        with self.assertRaises(ValidationError):
            Invoice.create_invoice(clinic=self.clinic, patient=self.patient, items=[])

    def test_partial_then_full_payment(self):
        invoice = self.make_invoice()

        first = invoice.record_payment(Decimal('400'), 'CASH', user=self.admin)
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.PARTIAL)
        self.assertEqual(invoice.balance, Decimal('600.00'))

        second = invoice.record_payment(Decimal('600'), 'UPI', reference='UPI123', user=self.admin)
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.PAID)
        self.assertEqual(invoice.amount_paid, Decimal('1000.00'))

        date_str = get_local_today().strftime('%Y%m%d')
        self.assertEqual(first.receipt_number, f'RCP-{date_str}-0001')
        self.assertEqual(second.receipt_number, f'RCP-{date_str}-0002')
        self.assertEqual(AuditLog.objects.filter(model_name='invoice', action='payment').count(), 2)

    def test_overpayment_rejected(self):
        invoice = self.make_invoice()
        with self.assertRaises(ValidationError):
            invoice.record_payment(Decimal('1000.01'), 'CASH')
        self.assertFalse(Payment.objects.exists())

    def test_payment_on_cancelled_invoice_rejected(self):
        invoice = self.make_invoice()
        invoice.update_details(status=Invoice.CANCELLED)
        with self.assertRaises(ValidationError):
            invoice.record_payment(Decimal('100'), 'CASH')

    def test_discount_is_not_reapplied_on_later_edits(self):
        invoice = self.make_invoice()

        invoice.update_details(discount=Decimal('10'), discount_type='percentage')
        self.assertEqual(invoice.discount_amount, Decimal('100.00'))
        self.assertEqual(invoice.total, Decimal('900.00'))

        invoice.update_details(tax=Decimal('18'))
        invoice.refresh_from_db()
        self.assertEqual(invoice.discount, Decimal('10.00'))
        self.assertEqual(invoice.discount_amount, Decimal('100.00'))
        self.assertEqual(invoice.total, Decimal('918.00'))

    def test_replace_items_reconciles_status(self):
        invoice = self.make_invoice()
        invoice.record_payment(Decimal('500'), 'CASH')

        invoice.refresh_from_db()
        invoice.replace_items([{'description': 'Adjusted fee', 'quantity': 2, 'unit_price': Decimal('200')}])

        invoice.refresh_from_db()
        self.assertEqual(invoice.total, Decimal('400.00'))
        self.assertEqual(invoice.status, Invoice.PAID)
        self.assertEqual(invoice.balance, Decimal('0.00'))

    def test_zero_total_invoice_is_settled(self):
        ClinicalRecord.create_record(self.appointment, self.filling.pk, cost_override=Decimal('0'))

        invoice = Invoice.generate_from_appointment(self.appointment)
        self.assertEqual(invoice.total, Decimal('0.00'))
        self.assertEqual(invoice.status, Invoice.PAID)
        self.assertEqual(invoice.balance, Decimal('0.00'))
        with self.assertRaises(ValidationError):
            invoice.record_payment(Decimal('0.01'), 'CASH')

    def test_full_discount_settles_invoice(self):
        invoice = self.make_invoice('800.00')
        invoice.update_details(discount=Decimal('100'), discount_type='percentage')

        invoice.refresh_from_db()
        self.assertEqual(invoice.total, Decimal('0.00'))
        self.assertEqual(invoice.status, Invoice.PAID)

    def test_items_repriced_to_zero_settle_invoice(self):
        invoice = self.make_invoice('500.00')
        invoice.replace_items([{'description': 'Goodwill check-up', 'quantity': 1, 'unit_price': Decimal('0')}])

        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.PAID)

    def test_explicit_status_wins_over_reconciliation(self):
        invoice = self.make_invoice()
        invoice.record_payment(Decimal('400'), 'CASH')
        invoice.refresh_from_db()

        invoice.update_details(status=Invoice.PAID, notes='Balance waived')
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.PAID)
        self.assertEqual(invoice.amount_paid, Decimal('400.00'))
        self.assertEqual(invoice.balance, Decimal('600.00'))

        # Without an explicit status the payments decide again
        invoice.update_details(tax=Decimal('0'))
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.PARTIAL)

    def test_receipt_sequence_is_numeric(self):
        invoice = self.make_invoice()
        prefix = f"RCP-{get_local_today().strftime('%Y%m%d')}-"
        for seq in ('9999', '10000'):
            Payment.objects.create(
                invoice=invoice, amount=Decimal('1.00'), method='CASH', receipt_number=f'{prefix}{seq}'
            )

        payment = invoice.record_payment(Decimal('10'), 'CASH')
        self.assertEqual(payment.receipt_number, f'{prefix}10001')

    def test_taken_receipt_number_is_redrawn(self):
        invoice = self.make_invoice()
        first = invoice.record_payment(Decimal('100'), 'CASH')
        prefix = first.receipt_number.rsplit('-', 1)[0]

        with patch.object(Payment, 'next_receipt_number', side_effect=[first.receipt_number, f'{prefix}-0002']):
            second = invoice.record_payment(Decimal('100'), 'CASH')

        self.assertEqual(second.receipt_number, f'{prefix}-0002')
        self.assertEqual(invoice.payments.count(), 2)

    def test_billing_summary_excludes_cancelled(self):
        paid = self.make_invoice('1000.00')
        paid.record_payment(Decimal('250'), 'CASH')
        cancelled = self.make_invoice('500.00')
        cancelled.update_details(status=Invoice.CANCELLED)

        summary = Invoice.get_patient_billing_summary(self.patient)
        self.assertEqual(summary['invoice_count'], 1)
        self.assertEqual(summary['total_billed'], Decimal('1000.00'))
        self.assertEqual(summary['total_paid'], Decimal('250.00'))
        self.assertEqual(summary['outstanding'], Decimal('750.00'))

    def test_delete_invoice_removes_payments(self):
        invoice = self.make_invoice()
        invoice.record_payment(Decimal('100'), 'CASH')
        invoice.delete_invoice(user=self.admin)
        self.assertFalse(Invoice.objects.exists())
        self.assertFalse(Payment.objects.exists())


class AppointmentViewsTest(ClinicDataMixin, TestCase):
    """Test scheduling and clinical record views"""

    def setUp(self):
        super().setUp()
        self.staff = make_user(self.clinic, 'frontdesk', Role.STAFF)
        self.appointment = self.make_appointment()

    def test_schedule_renders(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('appointments:schedule'))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Asha Menon')

    def test_appointment_of_other_clinic_is_404(self):
        other_clinic = Clinic.objects.create(name='Other Dental')
        outsider = make_user(other_clinic, 'outsider', Role.ADMIN)
        self.client.force_login(outsider)

        response = self.client.get(reverse('appointments:appointment_detail', args=[self.appointment.pk]))
        self.assertEqual(response.status_code, 404)

    def test_create_appointment(self):
        self.client.force_login(self.admin)
        scheduled = timezone.localtime(timezone.now() + timedelta(days=3)).replace(hour=10, minute=0)
        response = self.client.post(reverse('appointments:appointment_create'), {
            'patient': self.patient.pk,
            'doctor': self.doctor.pk,
            'scheduled_at': scheduled.strftime('%Y-%m-%dT%H:%M'),
            'duration': 45,
            'type': '',
            'chief_complaint': 'Tooth ache',
            'notes': '',
        })
        created = Appointment.objects.exclude(pk=self.appointment.pk).get()
        self.assertRedirects(response, reverse('appointments:appointment_detail', args=[created.pk]))
        self.assertEqual(created.type, Appointment.DEFAULT_TYPE)
        self.assertEqual(created.clinic, self.clinic)

    def test_update_status_view(self):
        self.client.force_login(self.staff)
        response = self.client.post(
            reverse('appointments:update_appointment_status', args=[self.appointment.pk]),
            {'status': Appointment.CONFIRMED}
        )
        self.assertRedirects(response, reverse('appointments:appointment_detail', args=[self.appointment.pk]))
        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.status, Appointment.CONFIRMED)

    def test_invalid_status_change_shows_error(self):
        self.client.force_login(self.admin)
        response = self.client.post(
            reverse('appointments:update_appointment_status', args=[self.appointment.pk]),
            {'status': Appointment.COMPLETED},
            follow=True
        )
        self.assertContains(response, 'Cannot change status')
        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.status, Appointment.SCHEDULED)

    def test_staff_cannot_add_clinical_records(self):
        self.client.force_login(self.staff)
        response = self.client.post(
            reverse('appointments:clinical_record_create', args=[self.appointment.pk]),
            {'procedure': self.filling.pk, 'tooth_number': '36'}
        )
        self.assertRedirects(response, reverse('core:dashboard'), fetch_redirect_response=False)
        self.assertFalse(ClinicalRecord.objects.exists())

    def test_doctor_adds_clinical_record(self):
        self.client.force_login(self.doctor)
        self.client.post(
            reverse('appointments:clinical_record_create', args=[self.appointment.pk]),
            {'procedure': self.filling.pk, 'tooth_number': '36', 'surface': 'O', 'cost_override': ''}
        )
        record = ClinicalRecord.objects.get()
        self.assertEqual(record.created_by, self.doctor)
        self.assertIsNone(record.cost_override)

    def test_invoiced_record_cannot_be_deleted(self):
        record = ClinicalRecord.create_record(self.appointment, self.filling.pk)
        Invoice.generate_from_appointment(self.appointment)

        self.client.force_login(self.doctor)
        self.client.post(reverse('appointments:clinical_record_delete', args=[record.pk]))
        self.assertTrue(ClinicalRecord.objects.filter(pk=record.pk).exists())

    def test_tooth_history_json(self):
        ClinicalRecord.create_record(self.appointment, self.filling.pk, tooth_number='36')
        self.client.force_login(self.doctor)
        response = self.client.get(
            reverse('appointments:tooth_history', args=[self.patient.pk, '36']),
            HTTP_ACCEPT='application/json'
        )
        data = response.json()
        self.assertEqual(data['tooth_number'], '36')
        self.assertEqual(data['records'][0]['procedure'], 'Composite Filling')


class BillingViewsTest(ClinicDataMixin, TestCase):
    """Test invoice and payment views"""

    def setUp(self):
        super().setUp()
        self.appointment = self.make_appointment()
        ClinicalRecord.create_record(self.appointment, self.filling.pk, tooth_number='36')
        self.client.force_login(self.admin)

    def test_generate_invoice_view(self):
        response = self.client.post(reverse('appointments:invoice_generate', args=[self.appointment.pk]))
        invoice = Invoice.objects.get()
        self.assertRedirects(response, reverse('appointments:invoice_detail', args=[invoice.pk]))

    def test_generate_twice_redirects_to_existing_invoice(self):
        invoice = Invoice.generate_from_appointment(self.appointment)
        response = self.client.post(reverse('appointments:invoice_generate', args=[self.appointment.pk]))
        self.assertRedirects(response, reverse('appointments:invoice_detail', args=[invoice.pk]))
        self.assertEqual(Invoice.objects.count(), 1)

    def test_invoice_detail_renders(self):
        invoice = Invoice.generate_from_appointment(self.appointment)
        response = self.client.get(reverse('appointments:invoice_detail', args=[invoice.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, invoice.invoice_number)
        self.assertIn('payment_form', response.context)

    def test_record_payment_view(self):
        invoice = Invoice.generate_from_appointment(self.appointment)
        self.client.post(
            reverse('appointments:record_payment', args=[invoice.pk]),
            {'amount': '1500.00', 'method': 'CARD', 'reference': '', 'notes': ''}
        )
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.PAID)
        self.assertEqual(invoice.payments.get().created_by, self.admin)

    def test_overpayment_view_rejected(self):
        invoice = Invoice.generate_from_appointment(self.appointment)
        response = self.client.post(
            reverse('appointments:record_payment', args=[invoice.pk]),
            {'amount': '2000.00', 'method': 'CASH'},
            follow=True
        )
        self.assertContains(response, 'cannot exceed outstanding balance')
        self.assertFalse(Payment.objects.exists())

    def test_manual_invoice_create(self):
        response = self.client.post(reverse('appointments:invoice_create'), {
            'patient': self.patient.pk,
            'appointment': '',
            'due_date': '',
            'notes': 'Walk-in',
            'discount': '5',
            'discount_type': 'percentage',
            'tax': '0',
            'items-TOTAL_FORMS': '2',
            'items-INITIAL_FORMS': '0',
            'items-MIN_NUM_FORMS': '0',
            'items-MAX_NUM_FORMS': '1000',
            'items-0-description': 'X-ray',
            'items-0-quantity': '2',
            'items-0-unit_price': '300',
            'items-1-description': 'Consultation',
            'items-1-quantity': '1',
            'items-1-unit_price': '400',
        })
        invoice = Invoice.objects.get()
        self.assertRedirects(response, reverse('appointments:invoice_detail', args=[invoice.pk]))
        self.assertEqual(invoice.subtotal, Decimal('1000.00'))
        self.assertEqual(invoice.total, Decimal('950.00'))

    def item_edit_data(self, record_pk, unit_price='1400.00'):
        return {
            'items-TOTAL_FORMS': '1',
            'items-INITIAL_FORMS': '1',
            'items-MIN_NUM_FORMS': '0',
            'items-MAX_NUM_FORMS': '1000',
            'items-0-clinical_record': record_pk,
            'items-0-description': 'Composite Filling (Tooth 36)',
            'items-0-quantity': '1',
            'items-0-unit_price': unit_price,
        }

    def test_editing_items_keeps_clinical_record_links(self):
        invoice = Invoice.generate_from_appointment(self.appointment)
        record = ClinicalRecord.objects.get()
        url = reverse('appointments:invoice_items_update', args=[invoice.pk])

        response = self.client.get(url)
        self.assertEqual(response.context['formset'].forms[0].initial['clinical_record'], record.pk)

        response = self.client.post(url, self.item_edit_data(record.pk))
        self.assertRedirects(response, reverse('appointments:invoice_detail', args=[invoice.pk]))

        invoice.refresh_from_db()
        self.assertEqual(invoice.total, Decimal('1400.00'))
        self.assertEqual(invoice.items.get().clinical_record, record)

        # The record stays protected from deletion
        self.client.force_login(self.doctor)
        self.client.post(reverse('appointments:clinical_record_delete', args=[record.pk]))
        self.assertTrue(ClinicalRecord.objects.filter(pk=record.pk).exists())

    def test_item_cannot_link_record_of_other_clinic(self):
        invoice = Invoice.generate_from_appointment(self.appointment)
        record = ClinicalRecord.objects.get()

        other_clinic = Clinic.objects.create(name='Other Dental')
        other_patient = Patient.objects.create(
            clinic=other_clinic, first_name='Ravi', last_name='Kumar', phone='+919812345678'
        )
        crown = Treatment.objects.create(
            clinic=other_clinic, name='Ceramic Crown', category='Prosthodontic', standard_cost=Decimal('12000.00')
        )
        other_visit = Appointment.objects.create(clinic=other_clinic, patient=other_patient, scheduled_at=timezone.now())
        foreign_record = ClinicalRecord.create_record(other_visit, crown.pk)

        response = self.client.post(
            reverse('appointments:invoice_items_update', args=[invoice.pk]),
            self.item_edit_data(foreign_record.pk)
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(invoice.items.get().clinical_record, record)

    def test_doctor_has_no_billing_access(self):
        invoice = Invoice.generate_from_appointment(self.appointment)
        self.client.force_login(self.doctor)
        response = self.client.get(reverse('appointments:invoice_detail', args=[invoice.pk]))
        self.assertRedirects(response, reverse('core:dashboard'), fetch_redirect_response=False)

    def test_invoice_of_other_clinic_is_404(self):
        invoice = Invoice.generate_from_appointment(self.appointment)
        other_clinic = Clinic.objects.create(name='Other Dental')
        self.client.force_login(make_user(other_clinic, 'outsider', Role.ADMIN))
        response = self.client.get(reverse('appointments:invoice_detail', args=[invoice.pk]))
        self.assertEqual(response.status_code, 404)


class BookingHelpersTest(TestCase):

    def test_split_full_name(self):
        self.assertEqual(split_full_name('Asha Devi Rao'), ('Asha', 'Devi Rao'))
        self.assertEqual(split_full_name('Madonna'), ('Madonna', ''))

    def test_format_booking_phone(self):
        self.assertEqual(format_booking_phone('09876543210', '+91'), '+919876543210')
        self.assertEqual(format_booking_phone('98765 43210', '+91'), '+919876543210')
        self.assertEqual(format_booking_phone('+44 20 7946 0958', '+91'), '+442079460958')


class BookingWebhookTest(TestCase):
    """Test the public online booking endpoint"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')
        self.url = reverse('booking_webhook')
        self.booking_date = (get_local_today() + timedelta(days=7)).isoformat()
        self.payload = {
            'fullName': 'Asha Menon',
            'phoneNumber': '09876543210',
            'age': '34',
            'gender': 'female',
            'address': '12 MG Road',
            'dentalService': 'Cleaning',
            'date': self.booking_date,
            'time': '10:30',
        }

    def post(self, payload):
        return self.client.post(self.url, data=json.dumps(payload), content_type='application/json')

    def test_health_check(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ok')

    def test_new_booking(self):
        response = self.post(self.payload)
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data['success'])
        self.assertFalse(data['duplicate'])

        patient = Patient.objects.get(pk=data['patientId'])
        self.assertEqual(patient.phone, '+919876543210')
        self.assertEqual(patient.gender, 'Female')
        self.assertEqual(patient.age, 34)

        appointment = Appointment.objects.get(pk=data['appointmentId'])
        self.assertEqual(appointment.clinic, self.clinic)
        self.assertEqual(appointment.status, Appointment.SCHEDULED)
        self.assertEqual(appointment.duration, 30)
        self.assertEqual(appointment.type, 'Cleaning')
        self.assertEqual(appointment.notes, 'Online booking - Cleaning')
        self.assertEqual(appointment.local_scheduled_at.strftime('%Y-%m-%d %H:%M'), f'{self.booking_date} 10:30')

    def test_repeat_booking_is_duplicate(self):
        first = self.post(self.payload).json()
        second = self.post(self.payload).json()
        self.assertTrue(second['duplicate'])
        self.assertEqual(first['appointmentId'], second['appointmentId'])
        self.assertEqual(Appointment.objects.count(), 1)

    def test_existing_patient_matched_by_phone_tail(self):
        existing = Patient.objects.create(clinic=self.clinic, first_name='A', last_name='M', phone='9876543210')
        data = self.post(dict(self.payload, fullName='Asha Devi Menon')).json()

        self.assertEqual(data['patientId'], existing.pk)
        existing.refresh_from_db()
        self.assertEqual(existing.first_name, 'Asha')
        self.assertEqual(existing.last_name, 'Devi Menon')
        self.assertEqual(Patient.objects.count(), 1)

    def test_nested_payload_and_default_type(self):
        payload = dict(self.payload)
        payload.pop('dentalService')
        data = self.post({'data': payload}).json()
        appointment = Appointment.objects.get(pk=data['appointmentId'])
        self.assertEqual(appointment.type, Appointment.DEFAULT_TYPE)
        self.assertEqual(appointment.notes, 'Online booking')

    def test_missing_fields(self):
        payload = dict(self.payload)
        payload.pop('phoneNumber')
        response = self.post(payload)
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()['success'])

    def test_bad_date(self):
        response = self.post(dict(self.payload, date='14/03/2026'))
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Appointment.objects.exists())

    def test_invalid_json(self):
        response = self.client.post(self.url, data='not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)

    def test_clinic_selected_by_slug(self):
        second = Clinic.objects.create(name='Bright Smiles')
        data = self.post(dict(self.payload, clinic=second.slug)).json()
        self.assertEqual(Appointment.objects.get(pk=data['appointmentId']).clinic, second)

    def test_no_clinic_configured(self):
        Clinic.objects.all().delete()
        response = self.post(self.payload)
        self.assertEqual(response.status_code, 500)
