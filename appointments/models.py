# appointments/models.py
import logging
from datetime import timedelta
from decimal import Decimal

from django.db import IntegrityError, models, transaction
from django.db.models import Sum
from django.core.validators import MinValueValidator, MaxValueValidator
from django.core.exceptions import ValidationError
from django.utils import timezone

from core.models import AuditLog
from core.utils import get_local_date, get_local_today, day_bounds
from treatments.models import Treatment
from .utils import (
    compute_invoice_totals, compute_balance, generate_invoice_number, to_money,
    DISCOUNT_PERCENTAGE, DISCOUNT_FIXED, ZERO,
)

logger = logging.getLogger(__name__)

RECEIPT_NUMBER_ATTEMPTS = 5


class Appointment(models.Model):
    """A scheduled patient visit and its status lifecycle"""
    SCHEDULED = 'SCHEDULED'
    CONFIRMED = 'CONFIRMED'
    SEATED = 'SEATED'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    NO_SHOW = 'NO_SHOW'

    STATUS_CHOICES = [
        (SCHEDULED, 'Scheduled'),
        (CONFIRMED, 'Confirmed'),
        (SEATED, 'Seated'),
        (IN_PROGRESS, 'In Progress'),
        (COMPLETED, 'Completed'),
        (CANCELLED, 'Cancelled'),
        (NO_SHOW, 'No Show'),
    ]

    # Statuses that occupy the doctor's chair time
    ACTIVE_STATUSES = [SCHEDULED, CONFIRMED, SEATED, IN_PROGRESS]
    UPCOMING_STATUSES = [SCHEDULED, CONFIRMED]

    VALID_TRANSITIONS = {
        SCHEDULED: [CONFIRMED, SEATED, CANCELLED, NO_SHOW],
        CONFIRMED: [SEATED, CANCELLED, NO_SHOW],
        SEATED: [IN_PROGRESS, CANCELLED],
        IN_PROGRESS: [COMPLETED],
        COMPLETED: [],
        CANCELLED: [SCHEDULED],
        NO_SHOW: [SCHEDULED],
    }

    # Only allowed once the appointment day has arrived
    DATE_RESTRICTED_STATUSES = [COMPLETED, NO_SHOW]

    DEFAULT_TYPE = 'General Consultation'
    MAX_DAYS_AHEAD = 365

    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='appointments')
    patient = models.ForeignKey('patients.Patient', on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey('users.User', on_delete=models.SET_NULL, null=True, blank=True,
                               related_name='doctor_appointments',
                               help_text="Treating doctor (online bookings start without one)")

    scheduled_at = models.DateTimeField()
    duration = models.PositiveIntegerField(
        default=30,
        validators=[MinValueValidator(15), MaxValueValidator(480)],
        help_text="Duration in minutes"
    )
    type = models.CharField(max_length=100, default=DEFAULT_TYPE)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=SCHEDULED)
    chief_complaint = models.TextField(max_length=500, blank=True)
    notes = models.TextField(max_length=1000, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['scheduled_at']
        indexes = [
            models.Index(fields=['clinic', 'scheduled_at'], name='appt_clinic_time_idx'),
            models.Index(fields=['clinic', 'status'], name='appt_clinic_status_idx'),
            models.Index(fields=['doctor', 'scheduled_at'], name='appt_doctor_time_idx'),
            models.Index(fields=['patient'], name='appt_patient_idx'),
        ]

    def __str__(self):
        return f"{self.patient.full_name} - {self.local_scheduled_at.strftime('%Y-%m-%d %I:%M %p')}"

    @property
    def local_scheduled_at(self):
        return timezone.localtime(self.scheduled_at)

    @property
    def end_at(self):
        return self.scheduled_at + timedelta(minutes=self.duration or 0)

    @property
    def is_future(self):
        """Appointment day is after today (local time)"""
        return get_local_date(self.scheduled_at) > get_local_today()

    @property
    def is_today(self):
        return get_local_date(self.scheduled_at) == get_local_today()

    @property
    def allowed_transitions(self):
        return self.VALID_TRANSITIONS.get(self.status, [])

    @property
    def invoice(self):
        """The invoice billed for this visit, if any"""
        return self.invoices.order_by('created_at').first()

    def clean(self):
        """Model-level validation"""
        if self.chief_complaint:
            self.chief_complaint = self.chief_complaint.strip()
        if self.notes:
            self.notes = self.notes.strip()

        if self.patient_id and self.clinic_id and self.patient.clinic_id != self.clinic_id:
            raise ValidationError({'patient': 'Patient does not belong to this clinic.'})

        if self.doctor_id and self.clinic_id and self.doctor.clinic_id != self.clinic_id:
            raise ValidationError({'doctor': 'Doctor does not belong to this clinic.'})

        if self.scheduled_at:
            latest = timezone.now() + timedelta(days=self.MAX_DAYS_AHEAD)
            if self.scheduled_at > latest:
                raise ValidationError({
                    'scheduled_at': 'Appointments cannot be scheduled more than one year ahead.'
                })

        if self.doctor_id and self.scheduled_at and self.duration and self.status in self.ACTIVE_STATUSES:
            conflicts = self.get_conflicting_appointments(
                self.doctor, self.scheduled_at, self.duration, exclude_appointment_id=self.pk
            )
            if conflicts:
                other = conflicts[0]
                raise ValidationError(
                    f'{self.doctor.full_name} already has an appointment with {other.patient.full_name} '
                    f'at {other.local_scheduled_at.strftime("%I:%M %p")} that overlaps this time.'
                )

    def update_status(self, new_status, user=None, request=None):
        """
        Move the appointment along its lifecycle.

        Raises:
            ValidationError: unknown status, transition not allowed, or a
                completed/no-show status on an appointment still in the future
        """
        status_labels = dict(self.STATUS_CHOICES)
        if new_status not in status_labels:
            raise ValidationError(f'Unknown appointment status: {new_status}')

        if new_status not in self.allowed_transitions:
            raise ValidationError(
                f'Cannot change status from {self.get_status_display()} to {status_labels[new_status]}'
            )

        if new_status in self.DATE_RESTRICTED_STATUSES and self.is_future:
            raise ValidationError(
                f'Cannot mark appointment as "{status_labels[new_status]}" for future dates. '
                f'This appointment is scheduled for {self.local_scheduled_at.strftime("%B %d, %Y")}.'
            )

        old_status = self.status
        with transaction.atomic():
            self.status = new_status
            self._skip_audit_log = True
            try:
                self.save(update_fields=['status', 'updated_at'])
            finally:
                self._skip_audit_log = False

            if new_status == self.COMPLETED:
                self.patient.update_last_visit_date()

            AuditLog.log_action(
                user=user,
                action='cancel' if new_status == self.CANCELLED else 'status_change',
                model_instance=self,
                changes={'status': {'old': old_status, 'new': new_status, 'label': 'Status'}},
                request=request,
                description=f"Status changed from {status_labels[old_status]} to {status_labels[new_status]}"
            )

        logger.info(f"Appointment {self.pk} status {old_status} -> {new_status}")
        return old_status

    @classmethod
    def get_conflicting_appointments(cls, doctor, start, duration_minutes, exclude_appointment_id=None):
        """Active appointments of the doctor overlapping [start, start + duration)"""
        end = start + timedelta(minutes=duration_minutes)
        longest = timedelta(minutes=480)

        candidates = cls.objects.filter(
            doctor=doctor,
            status__in=cls.ACTIVE_STATUSES,
            scheduled_at__lt=end,
            scheduled_at__gt=start - longest,
        ).select_related('patient')

        if exclude_appointment_id:
            candidates = candidates.exclude(id=exclude_appointment_id)

        return [appt for appt in candidates if appt.end_at > start]

    @classmethod
    def get_appointments(cls, clinic, date=None, doctor=None, status=None):
        queryset = cls.objects.filter(clinic=clinic).select_related('patient', 'doctor')
        if date:
            start, end = day_bounds(date)
            queryset = queryset.filter(scheduled_at__gte=start, scheduled_at__lt=end)
        if doctor:
            queryset = queryset.filter(doctor=doctor)
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by('scheduled_at')

    @classmethod
    def get_upcoming(cls, clinic, limit=5):
        return (
            cls.objects.filter(
                clinic=clinic,
                scheduled_at__gte=timezone.now(),
                status__in=cls.UPCOMING_STATUSES,
            )
            .select_related('patient', 'doctor')
            .order_by('scheduled_at')[:limit]
        )

    @classmethod
    def get_today(cls, clinic):
        return cls.get_appointments(clinic, date=get_local_today())


class ClinicalRecord(models.Model):
    """A procedure performed during a visit"""
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='clinical_records')
    patient = models.ForeignKey('patients.Patient', on_delete=models.CASCADE, related_name='clinical_records')
    procedure = models.ForeignKey(Treatment, on_delete=models.PROTECT, related_name='clinical_records')

    tooth_number = models.CharField(max_length=3, blank=True)
    surface = models.CharField(max_length=10, blank=True, choices=Treatment.SURFACE_CHOICES)
    diagnosis = models.TextField(max_length=500, blank=True)
    notes = models.TextField(max_length=1000, blank=True)
    cost_override = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True,
        validators=[MinValueValidator(Decimal('0'))],
        help_text="Price charged instead of the catalog price"
    )

    created_by = models.ForeignKey('users.User', on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='clinical_records')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    EDITABLE_FIELDS = ['tooth_number', 'surface', 'diagnosis', 'notes', 'cost_override']

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['patient', 'tooth_number'], name='clinical_tooth_idx'),
            models.Index(fields=['appointment'], name='clinical_appt_idx'),
        ]

    def __str__(self):
        if self.tooth_number:
            return f"{self.procedure.name} (Tooth {self.tooth_number})"
        return self.procedure.name

    @property
    def clinic(self):
        return self.appointment.clinic

    @property
    def effective_cost(self):
        if self.cost_override is not None:
            return self.cost_override
        return self.procedure.standard_cost

    @property
    def has_price_override(self):
        return self.cost_override is not None and self.cost_override != self.procedure.standard_cost

    def _values_snapshot(self):
        return {
            'appointment_id': self.appointment_id,
            'patient_id': self.patient_id,
            'procedure': self.procedure.name,
            'tooth_number': self.tooth_number,
            'surface': self.surface,
            'diagnosis': self.diagnosis,
            'notes': self.notes,
            'cost_override': str(self.cost_override) if self.cost_override is not None else None,
        }

    @classmethod
    def for_patient(cls, patient):
        return cls.objects.filter(patient=patient).select_related(
            'procedure', 'appointment', 'created_by'
        ).order_by('-created_at')

    @classmethod
    def for_appointment(cls, appointment):
        return cls.objects.filter(appointment=appointment).select_related(
            'procedure', 'created_by'
        ).order_by('created_at')

    @classmethod
    def tooth_history(cls, patient, tooth_number):
        return cls.objects.filter(patient=patient, tooth_number=tooth_number).select_related(
            'procedure', 'appointment'
        ).order_by('-created_at')

    @classmethod
    def create_record(cls, appointment, procedure_id, user=None, request=None, **data):
        """
        Record a procedure against an appointment.

        Raises:
            ValidationError: "Treatment not found" when the procedure is not
                in the appointment's clinic catalog
        """
        procedure = Treatment.objects.filter(pk=procedure_id, clinic=appointment.clinic).first()
        if procedure is None:
            raise ValidationError("Treatment not found")

        cost_override = data.get('cost_override')
        with transaction.atomic():
            record = cls(
                appointment=appointment,
                patient=appointment.patient,
                procedure=procedure,
                created_by=user if user is not None and user.is_authenticated else None,
                **{field: data[field] for field in cls.EDITABLE_FIELDS if field in data}
            )
            record.full_clean()
            record.save()

            if cost_override is not None and to_money(cost_override) != procedure.standard_cost:
                AuditLog.log_action(
                    user=user,
                    action='price_override',
                    model_instance=record,
                    changes={'cost': {'old': str(procedure.standard_cost), 'new': str(to_money(cost_override))}},
                    request=request,
                    description=f"Price override on {procedure.name}",
                    reason="Manual price override",
                )

        return record

    def update_record(self, user=None, request=None, **data):
        """Update the editable fields; cost override changes get their own audit entry"""
        old_cost = self.effective_cost
        old_override = self.cost_override

        for field in self.EDITABLE_FIELDS:
            if field in data:
                setattr(self, field, data[field])

        with transaction.atomic():
            self.full_clean()
            self.save()

            if 'cost_override' in data and self.cost_override != old_override:
                AuditLog.log_action(
                    user=user,
                    action='price_override',
                    model_instance=self,
                    changes={'cost': {
                        'old': str(old_cost),
                        'new': str(self.cost_override) if self.cost_override is not None else None,
                    }},
                    request=request,
                    description=f"Price override changed on {self.procedure.name}",
                    reason="Price override updated",
                )

        return self

    def delete_record(self, user=None, request=None):
        """Audit the deleted values, then delete"""
        with transaction.atomic():
            AuditLog.log_action(
                user=user,
                action='delete',
                model_instance=self,
                changes={'old': self._values_snapshot()},
                request=request,
                description=f"Deleted clinical record: {self}",
            )
            self._skip_audit_log = True
            self.delete()


class Invoice(models.Model):
    """Billing document for a patient, optionally tied to a visit"""
    DRAFT = 'DRAFT'
    PENDING = 'PENDING'
    PARTIAL = 'PARTIAL'
    PAID = 'PAID'
    CANCELLED = 'CANCELLED'
    REFUNDED = 'REFUNDED'

    STATUS_CHOICES = [
        (DRAFT, 'Draft'),
        (PENDING, 'Pending'),
        (PARTIAL, 'Partially Paid'),
        (PAID, 'Paid'),
        (CANCELLED, 'Cancelled'),
        (REFUNDED, 'Refunded'),
    ]

    # Invoices that no longer take payments
    CLOSED_STATUSES = [CANCELLED, REFUNDED]
    OPEN_STATUSES = [PENDING, PARTIAL]

    DISCOUNT_TYPE_CHOICES = [
        (DISCOUNT_PERCENTAGE, 'Percentage'),
        (DISCOUNT_FIXED, 'Fixed Amount'),
    ]

    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='invoices')
    patient = models.ForeignKey('patients.Patient', on_delete=models.CASCADE, related_name='invoices')
    appointment = models.ForeignKey(Appointment, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='invoices')

    invoice_number = models.CharField(max_length=20, unique=True)
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    discount = models.DecimalField(max_digits=10, decimal_places=2, default=0,
                                   help_text="Entered discount: a percentage or a fixed amount")
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPE_CHOICES, blank=True)
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0,
                                          help_text="Discount applied in currency")
    tax = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    amount_paid = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    due_date = models.DateField(null=True, blank=True)
    notes = models.TextField(max_length=500, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['clinic', 'status'], name='invoice_clinic_status_idx'),
            models.Index(fields=['clinic', 'created_at'], name='invoice_clinic_created_idx'),
            models.Index(fields=['patient'], name='invoice_patient_idx'),
        ]

    def __str__(self):
        return f"{self.invoice_number} - {self.patient.full_name}"

    @property
    def balance(self):
        return compute_balance(self.total, self.amount_paid)

    @property
    def is_closed(self):
        return self.status in self.CLOSED_STATUSES

    @property
    def is_overdue(self):
        if not self.due_date or self.status not in self.OPEN_STATUSES:
            return False
        return self.due_date < get_local_today()

    def _item_pairs(self):
        return [(item.unit_price, item.quantity) for item in self.items.all()]

    def apply_totals(self, item_pairs):
        """Recompute subtotal/discount/tax/total from line items"""
        totals = compute_invoice_totals(item_pairs, self.discount, self.discount_type, self.tax)
        self.subtotal = totals['subtotal']
        self.discount_amount = totals['discount_amount']
        self.tax = totals['tax']
        self.total = totals['total']
        self.discount = to_money(self.discount)

    def reconcile(self, save=True):
        """
        Sync amount_paid with the recorded payments and derive the status.
        Cancelled, refunded and draft invoices keep their status.
        """
        paid = self.payments.aggregate(total=Sum('amount'))['total'] or ZERO
        self.amount_paid = to_money(paid)

        if self.status not in self.CLOSED_STATUSES + [self.DRAFT]:
            if self.amount_paid >= self.total:
                self.status = self.PAID
            elif self.amount_paid > 0:
                self.status = self.PARTIAL
            else:
                self.status = self.PENDING

        if save:
            self.save(update_fields=['amount_paid', 'status', 'updated_at'])

    @staticmethod
    def _unique_invoice_number():
        number = generate_invoice_number()
        while Invoice.objects.filter(invoice_number=number).exists():
            number = generate_invoice_number()
        return number

    @staticmethod
    def _clean_items(items):
        """Normalise item dicts; at least one item is required"""
        if not items:
            raise ValidationError("An invoice needs at least one item")

        cleaned = []
        for item in items:
            description = (item.get('description') or '').strip()
            if not description:
                raise ValidationError("Every invoice item needs a description")
            quantity = int(item.get('quantity') or 1)
            unit_price = to_money(item.get('unit_price'))
            if quantity < 1:
                raise ValidationError("Quantity must be at least 1")
            if unit_price < 0:
                raise ValidationError("Unit price cannot be negative")
            cleaned.append({
                'description': description[:200],
                'quantity': quantity,
                'unit_price': unit_price,
                'clinical_record': item.get('clinical_record'),
            })
        return cleaned

    def _create_items(self, items):
        InvoiceItem.objects.bulk_create([
            InvoiceItem(
                invoice=self,
                description=item['description'],
                quantity=item['quantity'],
                unit_price=item['unit_price'],
                total=to_money(item['unit_price'] * item['quantity']),
                clinical_record=item['clinical_record'],
            )
            for item in items
        ])

    @classmethod
    def get_invoices(cls, clinic, patient=None, status=None, limit=None):
        queryset = cls.objects.filter(clinic=clinic).select_related('patient')
        if patient:
            queryset = queryset.filter(patient=patient)
        if status:
            queryset = queryset.filter(status=status)
        queryset = queryset.order_by('-created_at')
        if limit:
            queryset = queryset[:limit]
        return queryset

    @classmethod
    def get_invoice(cls, clinic, pk):
        """Invoice with items (and their clinical record / procedure) and payments, or DoesNotExist"""
        return (
            cls.objects.select_related('patient', 'appointment', 'clinic')
            .prefetch_related('items__clinical_record__procedure', 'payments')
            .get(clinic=clinic, pk=pk)
        )

    @classmethod
    def create_invoice(cls, clinic, patient, items, appointment=None, discount=None,
                       discount_type='', tax=None, due_date=None, notes='', user=None):
        """
        Create a PENDING invoice with its line items (PAID when it totals zero).

        ``items`` is a list of dicts: description, quantity, unit_price and
        an optional clinical_record.
        """
        if patient.clinic_id != clinic.pk:
            raise ValidationError("Patient does not belong to this clinic")
        if appointment is not None and appointment.patient_id != patient.pk:
            raise ValidationError("Appointment does not belong to this patient")

        items = cls._clean_items(items)

        invoice = cls(
            clinic=clinic,
            patient=patient,
            appointment=appointment,
            discount=to_money(discount),
            discount_type=discount_type or '',
            tax=to_money(tax),
            due_date=due_date,
            notes=(notes or '').strip(),
            status=cls.PENDING,
        )
        invoice.apply_totals([(item['unit_price'], item['quantity']) for item in items])
        if invoice.total == ZERO:
            invoice.status = cls.PAID

        with transaction.atomic():
            invoice.invoice_number = cls._unique_invoice_number()
            invoice._current_user = user
            invoice.save()
            invoice._create_items(items)

        logger.info(f"Invoice {invoice.invoice_number} created for patient {patient.pk}, total {invoice.total}")
        return invoice

    @classmethod
    def generate_from_appointment(cls, appointment, user=None):
        """One line item per clinical record of the visit, priced at its effective cost"""
        if appointment.invoices.exists():
            raise ValidationError("This appointment has already been invoiced")

        records = list(ClinicalRecord.for_appointment(appointment))
        if not records:
            raise ValidationError("No treatments found for this appointment")

        items = [
            {
                'description': str(record),
                'quantity': 1,
                'unit_price': record.effective_cost,
                'clinical_record': record,
            }
            for record in records
        ]

        return cls.create_invoice(
            clinic=appointment.clinic,
            patient=appointment.patient,
            items=items,
            appointment=appointment,
            user=user,
        )

    def record_payment(self, amount, method, reference='', notes='', paid_at=None, user=None, request=None):
        """
        Add a payment and update amount_paid/status.

        Raises:
            ValidationError: closed invoice, non-positive amount, or an amount
                above the outstanding balance
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than 0")

        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().get(pk=self.pk)

            if invoice.is_closed:
                raise ValidationError(f"Cannot record a payment on a {invoice.get_status_display().lower()} invoice")
            if amount > invoice.balance:
                raise ValidationError("Payment amount cannot exceed outstanding balance")

            payment = Payment(
                invoice=invoice,
                amount=amount,
                method=method,
                reference=(reference or '').strip(),
                notes=(notes or '').strip(),
                paid_at=paid_at or timezone.now(),
                created_by=user if user is not None and user.is_authenticated else None,
            )
            payment.full_clean(exclude=['receipt_number'])
            payment._skip_audit_log = True
            payment.save()

            invoice.reconcile()

            AuditLog.log_action(
                user=user,
                action='payment',
                model_instance=invoice,
                changes={'amount': str(amount), 'method': method, 'receipt_number': payment.receipt_number},
                request=request,
                description=f"Payment of {amount} recorded ({payment.receipt_number})",
            )

        self.amount_paid = invoice.amount_paid
        self.status = invoice.status
        logger.info(f"Payment {payment.receipt_number} of {amount} recorded on {self.invoice_number}")
        return payment

    def update_details(self, user=None, **changes):
        """
        Edit notes, due date, discount, discount type, tax and status.
        Totals are recomputed when discount, discount type or tax change;
        an explicitly given status is kept as given.
        """
        allowed = {'notes', 'due_date', 'discount', 'discount_type', 'tax', 'status'}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Cannot update invoice field(s): {', '.join(sorted(unknown))}")

        if 'notes' in changes:
            self.notes = (changes['notes'] or '').strip()
        if 'due_date' in changes:
            self.due_date = changes['due_date']
        if 'status' in changes and changes['status'] not in dict(self.STATUS_CHOICES):
            raise ValidationError(f"Unknown invoice status: {changes['status']}")

        if {'discount', 'discount_type', 'tax'} & set(changes):
            if 'discount' in changes:
                self.discount = to_money(changes['discount'])
            if 'discount_type' in changes:
                self.discount_type = changes['discount_type'] or ''
            if 'tax' in changes:
                self.tax = to_money(changes['tax'])
            self.apply_totals(self._item_pairs())

        with transaction.atomic():
            self._current_user = user
            if 'status' in changes:
                self.status = changes['status']
                self.amount_paid = to_money(self.payments.aggregate(total=Sum('amount'))['total'] or ZERO)
            else:
                self.reconcile(save=False)
            self.full_clean(exclude=['invoice_number'])
            self.save()

        return self

    def replace_items(self, items, user=None):
        """Replace every line item, recompute totals and reconcile payment status"""
        items = self._clean_items(items)

        with transaction.atomic():
            self.items.all().delete()
            self._create_items(items)
            self.apply_totals([(item['unit_price'], item['quantity']) for item in items])
            self._current_user = user
            self.reconcile(save=False)
            self.save()

        logger.info(f"Invoice {self.invoice_number} items replaced, new total {self.total}")
        return self

    def delete_invoice(self, user=None):
        """Delete the invoice with its items and payments"""
        number = self.invoice_number
        with transaction.atomic():
            self._current_user = user
            self.delete()
        logger.info(f"Invoice {number} deleted")

    @classmethod
    def get_patient_billing_summary(cls, patient):
        """Total billed, total paid and outstanding over the patient's non-cancelled invoices"""
        invoices = cls.objects.filter(patient=patient).exclude(status__in=cls.CLOSED_STATUSES)
        totals = invoices.aggregate(billed=Sum('total'), paid=Sum('amount_paid'))
        billed = to_money(totals['billed'] or ZERO)
        paid = to_money(totals['paid'] or ZERO)
        outstanding = sum((invoice.balance for invoice in invoices), ZERO)
        return {
            'total_billed': billed,
            'total_paid': paid,
            'outstanding': to_money(outstanding),
            'invoice_count': invoices.count(),
        }


class InvoiceItem(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    description = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=10, decimal_places=2,
                                     validators=[MinValueValidator(Decimal('0'))])
    total = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    clinical_record = models.ForeignKey(ClinicalRecord, on_delete=models.SET_NULL, null=True, blank=True,
                                        related_name='invoice_items')

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.description} x{self.quantity}"

    def save(self, *args, **kwargs):
        self.total = to_money(to_money(self.unit_price) * self.quantity)
        super().save(*args, **kwargs)


class Payment(models.Model):
    """A single payment against an invoice"""
    METHOD_CHOICES = [
        ('CASH', 'Cash'),
        ('CARD', 'Card'),
        ('UPI', 'UPI'),
        ('BANK_TRANSFER', 'Bank Transfer'),
        ('INSURANCE', 'Insurance'),
        ('OTHER', 'Other'),
    ]

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=10, decimal_places=2,
                                 validators=[MinValueValidator(Decimal('0.01'))])
    method = models.CharField(max_length=20, choices=METHOD_CHOICES, default='CASH')
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(max_length=500, blank=True)
    paid_at = models.DateTimeField(default=timezone.now)

    # Receipt tracking
    receipt_number = models.CharField(max_length=50, blank=True, unique=True)

    # Track who processed this payment
    created_by = models.ForeignKey(
        'users.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='processed_payments',
        help_text="Staff member who processed this payment"
    )

    class Meta:
        ordering = ['-paid_at']
        indexes = [
            models.Index(fields=['invoice'], name='payment_invoice_idx'),
            models.Index(fields=['paid_at'], name='payment_paid_at_idx'),
        ]

    def __str__(self):
        return f"{self.receipt_number} - {self.amount} - {self.invoice.invoice_number}"

    @property
    def clinic(self):
        return self.invoice.clinic

    @staticmethod
    def next_receipt_number():
        """RCP-YYYYMMDD-NNNN, numbered per day across all clinics"""
        prefix = f"RCP-{get_local_today().strftime('%Y%m%d')}-"
        issued = Payment.objects.filter(receipt_number__startswith=prefix).values_list('receipt_number', flat=True)
        last_seq = max((int(number.rsplit('-', 1)[-1]) for number in issued), default=0)
        return f'{prefix}{last_seq + 1:04d}'

    def save(self, *args, **kwargs):
        if self.receipt_number:
            super().save(*args, **kwargs)
            return

        # A concurrent payment can take the same number; draw a fresh one
        for attempt in range(RECEIPT_NUMBER_ATTEMPTS):
            self.receipt_number = self.next_receipt_number()
            try:
                with transaction.atomic():
                    super().save(*args, **kwargs)
                return
            except IntegrityError:
                if attempt == RECEIPT_NUMBER_ATTEMPTS - 1:
                    raise
                logger.warning(f"Receipt number {self.receipt_number} already taken, retrying")
