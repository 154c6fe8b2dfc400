# appointments/forms.py
from decimal import Decimal

from django import forms
from django.core.exceptions import ValidationError
from django.forms import formset_factory

from patients.models import Patient
from treatments.models import Treatment
from users.models import User, Role
from .models import Appointment, ClinicalRecord, Invoice, Payment
from .utils import compute_invoice_totals, DISCOUNT_PERCENTAGE

INPUT_CLASS = 'mt-1 block w-full rounded-md border-gray-300 shadow-sm'


def clinic_doctors(clinic):
    """Active staff of the clinic who can be booked as the treating doctor"""
    return User.objects.filter(
        clinic=clinic,
        is_active=True,
        role__name__in=[Role.DOCTOR, Role.ADMIN],
    ).order_by('first_name', 'last_name')


class AppointmentForm(forms.ModelForm):
    """Form for creating/editing appointments"""

    class Meta:
        model = Appointment
        fields = ['patient', 'doctor', 'scheduled_at', 'duration', 'type', 'chief_complaint', 'notes']
        widgets = {
            'patient': forms.Select(attrs={'class': INPUT_CLASS}),
            'doctor': forms.Select(attrs={'class': INPUT_CLASS}),
            'scheduled_at': forms.DateTimeInput(
                attrs={'class': INPUT_CLASS, 'type': 'datetime-local'},
                format='%Y-%m-%dT%H:%M'
            ),
            'duration': forms.NumberInput(attrs={'class': INPUT_CLASS, 'step': '15', 'min': '15', 'max': '480'}),
            'type': forms.TextInput(attrs={'class': INPUT_CLASS, 'placeholder': 'General Consultation'}),
            'chief_complaint': forms.Textarea(attrs={
                'rows': 2,
                'class': INPUT_CLASS,
                'placeholder': "Patient's reason for visit"
            }),
            'notes': forms.Textarea(attrs={
                'rows': 3,
                'class': INPUT_CLASS,
                'placeholder': 'Internal notes'
            }),
        }
        labels = {
            'scheduled_at': 'Date & Time',
            'duration': 'Duration (minutes)',
            'type': 'Treatment Type',
        }

    def __init__(self, *args, **kwargs):
        clinic = kwargs.pop('clinic')
        super().__init__(*args, **kwargs)

        # Model validation needs the tenant before _post_clean runs
        self.instance.clinic = clinic

        self.fields['scheduled_at'].input_formats = ['%Y-%m-%dT%H:%M', '%Y-%m-%d %H:%M']
        self.fields['patient'].queryset = Patient.objects.filter(
            clinic=clinic, is_active=True
        ).order_by('last_name', 'first_name')
        self.fields['doctor'].queryset = clinic_doctors(clinic)
        self.fields['doctor'].required = False
        self.fields['doctor'].empty_label = 'Unassigned'
        self.fields['type'].required = False

    def clean_type(self):
        return (self.cleaned_data.get('type') or '').strip() or Appointment.DEFAULT_TYPE


class ClinicalRecordForm(forms.ModelForm):
    """A procedure performed during the visit"""

    class Meta:
        model = ClinicalRecord
        fields = ['procedure', 'tooth_number', 'surface', 'diagnosis', 'notes', 'cost_override']
        widgets = {
            'procedure': forms.Select(attrs={'class': INPUT_CLASS}),
            'tooth_number': forms.TextInput(attrs={'class': INPUT_CLASS, 'placeholder': '36'}),
            'surface': forms.Select(attrs={'class': INPUT_CLASS}),
            'diagnosis': forms.Textarea(attrs={'class': INPUT_CLASS, 'rows': 2}),
            'notes': forms.Textarea(attrs={'class': INPUT_CLASS, 'rows': 3}),
            'cost_override': forms.NumberInput(attrs={'class': INPUT_CLASS, 'step': '0.01', 'min': '0'}),
        }
        help_texts = {
            'cost_override': 'Leave blank to bill the catalog price',
        }

    def __init__(self, *args, **kwargs):
        clinic = kwargs.pop('clinic')
        super().__init__(*args, **kwargs)
        self.fields['procedure'].queryset = Treatment.get_treatments(clinic)
        if self.instance.pk:
            # The procedure of an existing record is fixed
            self.fields['procedure'].disabled = True

    def clean_tooth_number(self):
        return (self.cleaned_data.get('tooth_number') or '').strip()

    def record_data(self):
        """Editable values as keyword arguments for ClinicalRecord.create_record/update_record"""
        return {field: self.cleaned_data.get(field) for field in ClinicalRecord.EDITABLE_FIELDS}


class InvoiceItemForm(forms.Form):
    description = forms.CharField(max_length=200, widget=forms.TextInput(attrs={'class': INPUT_CLASS}))
    quantity = forms.IntegerField(min_value=1, initial=1, widget=forms.NumberInput(attrs={'class': INPUT_CLASS}))
    unit_price = forms.DecimalField(
        min_value=Decimal('0'), max_digits=10, decimal_places=2,
        widget=forms.NumberInput(attrs={'class': INPUT_CLASS, 'step': '0.01'})
    )
    clinical_record = forms.ModelChoiceField(
        queryset=ClinicalRecord.objects.none(), required=False, widget=forms.HiddenInput
    )

    def __init__(self, *args, clinic=None, **kwargs):
        super().__init__(*args, **kwargs)
        if clinic is not None:
            self.fields['clinical_record'].queryset = ClinicalRecord.objects.filter(appointment__clinic=clinic)


class BaseInvoiceItemFormSet(forms.BaseFormSet):

    def clean(self):
        super().clean()
        if any(self.errors):
            return
        if not self.cleaned_items():
            raise ValidationError('Add at least one item to the invoice.')

    def cleaned_items(self):
        return [
            form.cleaned_data for form in self.forms
            if form.cleaned_data and not form.cleaned_data.get('DELETE')
        ]


InvoiceItemFormSet = formset_factory(InvoiceItemForm, formset=BaseInvoiceItemFormSet, extra=1, can_delete=True)


class InvoiceAdjustmentsMixin:
    """Shared validation of the discount/tax fields"""

    def clean_adjustments(self, cleaned_data, item_pairs):
        try:
            compute_invoice_totals(
                item_pairs,
                cleaned_data.get('discount'),
                cleaned_data.get('discount_type'),
                cleaned_data.get('tax'),
            )
        except ValidationError as e:
            raise ValidationError(e.messages)


def _discount_fields():
    return {
        'discount': forms.DecimalField(
            required=False, min_value=Decimal('0'), max_digits=10, decimal_places=2,
            widget=forms.NumberInput(attrs={'class': INPUT_CLASS, 'step': '0.01'})
        ),
        'discount_type': forms.ChoiceField(
            required=False,
            choices=[('', 'Fixed Amount'), (DISCOUNT_PERCENTAGE, 'Percentage')],
            widget=forms.Select(attrs={'class': INPUT_CLASS})
        ),
        'tax': forms.DecimalField(
            required=False, min_value=Decimal('0'), max_digits=10, decimal_places=2,
            widget=forms.NumberInput(attrs={'class': INPUT_CLASS, 'step': '0.01'})
        ),
    }


class InvoiceForm(InvoiceAdjustmentsMixin, forms.Form):
    """Header of a new invoice; line items come from InvoiceItemFormSet"""
    patient = forms.ModelChoiceField(queryset=Patient.objects.none(), widget=forms.Select(attrs={'class': INPUT_CLASS}))
    appointment = forms.ModelChoiceField(
        queryset=Appointment.objects.none(), required=False,
        widget=forms.Select(attrs={'class': INPUT_CLASS})
    )
    due_date = forms.DateField(required=False, widget=forms.DateInput(attrs={'class': INPUT_CLASS, 'type': 'date'}))
    notes = forms.CharField(
        required=False, max_length=500,
        widget=forms.Textarea(attrs={'class': INPUT_CLASS, 'rows': 2})
    )

    def __init__(self, *args, **kwargs):
        clinic = kwargs.pop('clinic')
        super().__init__(*args, **kwargs)
        self.fields.update(_discount_fields())
        self.fields['patient'].queryset = Patient.objects.filter(clinic=clinic).order_by('last_name', 'first_name')
        self.fields['appointment'].queryset = Appointment.objects.filter(clinic=clinic).select_related('patient')

    def clean(self):
        cleaned_data = super().clean()
        patient = cleaned_data.get('patient')
        appointment = cleaned_data.get('appointment')
        if patient and appointment and appointment.patient_id != patient.pk:
            raise ValidationError('The selected appointment belongs to another patient.')
        return cleaned_data

    def validate_with_items(self, items):
        """Check discount/tax against the submitted items"""
        try:
            self.clean_adjustments(self.cleaned_data, [(i['unit_price'], i['quantity']) for i in items])
        except ValidationError as e:
            self.add_error(None, e)
            return False
        return True


class InvoiceUpdateForm(InvoiceAdjustmentsMixin, forms.ModelForm):
    """Edit an invoice's header: notes, due date, discount, tax and status"""

    class Meta:
        model = Invoice
        fields = ['notes', 'due_date', 'status']
        widgets = {
            'notes': forms.Textarea(attrs={'class': INPUT_CLASS, 'rows': 2}),
            'due_date': forms.DateInput(attrs={'class': INPUT_CLASS, 'type': 'date'}, format='%Y-%m-%d'),
            'status': forms.Select(attrs={'class': INPUT_CLASS}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields.update(_discount_fields())
        self.initial.update({
            'discount': self.instance.discount,
            'discount_type': self.instance.discount_type,
            'tax': self.instance.tax,
        })

    def clean(self):
        cleaned_data = super().clean()
        self.clean_adjustments(cleaned_data, self.instance._item_pairs())
        return cleaned_data

    def changed_values(self):
        """Only the fields the user actually changed, for Invoice.update_details"""
        return {name: self.cleaned_data.get(name) for name in self.changed_data}


class PaymentForm(forms.ModelForm):
    """Record a payment against an invoice"""

    class Meta:
        model = Payment
        fields = ['amount', 'method', 'reference', 'notes']
        widgets = {
            'amount': forms.NumberInput(attrs={'class': INPUT_CLASS, 'step': '0.01', 'min': '0.01'}),
            'method': forms.Select(attrs={'class': INPUT_CLASS}),
            'reference': forms.TextInput(attrs={'class': INPUT_CLASS, 'placeholder': 'Transaction / cheque reference'}),
            'notes': forms.Textarea(attrs={'class': INPUT_CLASS, 'rows': 2}),
        }

    def __init__(self, *args, **kwargs):
        self.invoice = kwargs.pop('invoice')
        super().__init__(*args, **kwargs)
        if not self.is_bound:
            self.initial['amount'] = self.invoice.balance

    def clean_amount(self):
        amount = self.cleaned_data.get('amount')
        if amount is not None and amount > self.invoice.balance:
            raise ValidationError(
                f'Payment amount cannot exceed outstanding balance ({self.invoice.balance}).'
            )
        return amount
