# appointments/payment_views.py - Invoices and payments
import logging

from django.contrib import messages
from django.core.exceptions import ValidationError
from django.db.models import Q, Sum
from django.http import Http404
from django.shortcuts import get_object_or_404, redirect, render
from django.views.decorators.http import require_POST
from django.views.generic import ListView, DetailView

from core.email_service import EmailService
from core.mixins import ClinicScopedMixin, clinic_permission_required
from patients.models import Patient
from .forms import InvoiceForm, InvoiceItemFormSet, InvoiceUpdateForm, PaymentForm
from .models import Appointment, Invoice
from .utils import ZERO

logger = logging.getLogger(__name__)


def _get_clinic_invoice(request, pk):
    try:
        return Invoice.get_invoice(request.clinic, pk)
    except Invoice.DoesNotExist:
        raise Http404("Invoice not found")


class InvoiceListView(ClinicScopedMixin, ListView):
    """Invoice list with filtering capabilities"""
    model = Invoice
    template_name = 'appointments/invoice_list.html'
    context_object_name = 'invoices'
    paginate_by = 25
    required_permission = 'billing'

    def get_queryset(self):
        status = self.request.GET.get('status')
        if status not in dict(Invoice.STATUS_CHOICES):
            status = None

        patient = None
        patient_id = self.request.GET.get('patient')
        if patient_id:
            patient = Patient.objects.filter(pk=patient_id, clinic=self.clinic).first()

        queryset = Invoice.get_invoices(self.clinic, patient=patient, status=status)

        search_query = self.request.GET.get('search')
        if search_query:
            queryset = queryset.filter(
                Q(invoice_number__icontains=search_query) |
                Q(patient__first_name__icontains=search_query) |
                Q(patient__last_name__icontains=search_query)
            )
        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        open_invoices = Invoice.objects.filter(clinic=self.clinic, status__in=Invoice.OPEN_STATUSES)
        totals = open_invoices.aggregate(total=Sum('total'), paid=Sum('amount_paid'))
        context.update({
            'status_choices': Invoice.STATUS_CHOICES,
            'status_filter': self.request.GET.get('status', ''),
            'search_query': self.request.GET.get('search', ''),
            'open_count': open_invoices.count(),
            'outstanding_total': (totals['total'] or ZERO) - (totals['paid'] or ZERO),
        })
        return context


class InvoiceDetailView(ClinicScopedMixin, DetailView):
    model = Invoice
    template_name = 'appointments/invoice_detail.html'
    context_object_name = 'invoice'
    required_permission = 'billing'

    def get_object(self, queryset=None):
        return _get_clinic_invoice(self.request, self.kwargs['pk'])

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        invoice = self.object
        context['items'] = invoice.items.all()
        context['payments'] = invoice.payments.select_related('created_by').all()
        if not invoice.is_closed and invoice.balance > 0:
            context['payment_form'] = PaymentForm(invoice=invoice)
        return context


@clinic_permission_required('billing')
def invoice_create(request):
    """Create an invoice by hand: header form plus line-item formset"""
    clinic = request.clinic
    initial = {}
    patient_id = request.GET.get('patient')
    if patient_id:
        initial['patient'] = Patient.objects.filter(pk=patient_id, clinic=clinic).first()

    if request.method == 'POST':
        form = InvoiceForm(request.POST, clinic=clinic)
        formset = InvoiceItemFormSet(request.POST, prefix='items', form_kwargs={'clinic': clinic})
        if form.is_valid() and formset.is_valid():
            items = formset.cleaned_items()
            if form.validate_with_items(items):
                data = form.cleaned_data
                try:
                    invoice = Invoice.create_invoice(
                        clinic=clinic,
                        patient=data['patient'],
                        items=items,
                        appointment=data.get('appointment'),
                        discount=data.get('discount'),
                        discount_type=data.get('discount_type'),
                        tax=data.get('tax'),
                        due_date=data.get('due_date'),
                        notes=data.get('notes'),
                        user=request.user,
                    )
                except ValidationError as e:
                    messages.error(request, ' '.join(e.messages))
                else:
                    messages.success(request, f'Invoice {invoice.invoice_number} created successfully.')
                    return redirect('appointments:invoice_detail', pk=invoice.pk)
    else:
        form = InvoiceForm(initial=initial, clinic=clinic)
        formset = InvoiceItemFormSet(prefix='items', form_kwargs={'clinic': clinic})

    return render(request, 'appointments/invoice_form.html', {
        'form': form,
        'formset': formset,
    })


@require_POST
@clinic_permission_required('billing')
def invoice_generate(request, appointment_pk):
    """Invoice a visit from its clinical records"""
    appointment = get_object_or_404(Appointment, pk=appointment_pk, clinic=request.clinic)

    existing = appointment.invoice
    if existing:
        messages.info(request, f'This appointment is already invoiced as {existing.invoice_number}.')
        return redirect('appointments:invoice_detail', pk=existing.pk)

    try:
        invoice = Invoice.generate_from_appointment(appointment, user=request.user)
    except ValidationError as e:
        messages.error(request, ' '.join(e.messages))
        return redirect('appointments:appointment_detail', pk=appointment.pk)

    messages.success(request, f'Invoice {invoice.invoice_number} generated for {invoice.total}.')
    return redirect('appointments:invoice_detail', pk=invoice.pk)


@clinic_permission_required('billing')
def invoice_update(request, pk):
    """Edit notes, due date, discount, tax and status"""
    invoice = _get_clinic_invoice(request, pk)

    if request.method == 'POST':
        form = InvoiceUpdateForm(request.POST, instance=invoice)
        if form.is_valid():
            changes = form.changed_values()
            if not changes:
                messages.info(request, 'No changes were made.')
                return redirect('appointments:invoice_detail', pk=invoice.pk)
            try:
                invoice.update_details(user=request.user, **changes)
            except ValidationError as e:
                messages.error(request, ' '.join(e.messages))
            else:
                messages.success(request, f'Invoice {invoice.invoice_number} updated successfully.')
                return redirect('appointments:invoice_detail', pk=invoice.pk)
    else:
        form = InvoiceUpdateForm(instance=invoice)

    return render(request, 'appointments/invoice_update.html', {
        'form': form,
        'invoice': invoice,
    })


@clinic_permission_required('billing')
def invoice_items_update(request, pk):
    """Replace every line item of an invoice"""
    invoice = _get_clinic_invoice(request, pk)

    if request.method == 'POST':
        formset = InvoiceItemFormSet(request.POST, prefix='items', form_kwargs={'clinic': request.clinic})
        if formset.is_valid():
            try:
                invoice.replace_items(formset.cleaned_items(), user=request.user)
            except ValidationError as e:
                messages.error(request, ' '.join(e.messages))
            else:
                messages.success(request, f'Invoice {invoice.invoice_number} items updated. New total: {invoice.total}.')
                return redirect('appointments:invoice_detail', pk=invoice.pk)
    else:
        formset = InvoiceItemFormSet(
            prefix='items',
            form_kwargs={'clinic': request.clinic},
            initial=[
                {
                    'description': item.description,
                    'quantity': item.quantity,
                    'unit_price': item.unit_price,
                    'clinical_record': item.clinical_record_id,
                }
                for item in invoice.items.all()
            ],
        )

    return render(request, 'appointments/invoice_items_form.html', {
        'formset': formset,
        'invoice': invoice,
    })


@require_POST
@clinic_permission_required('billing')
def record_payment(request, pk):
    invoice = _get_clinic_invoice(request, pk)
    form = PaymentForm(request.POST, invoice=invoice)

    if not form.is_valid():
        for errors in form.errors.values():
            for error in errors:
                messages.error(request, error)
        return redirect('appointments:invoice_detail', pk=invoice.pk)

    data = form.cleaned_data
    try:
        payment = invoice.record_payment(
            amount=data['amount'],
            method=data['method'],
            reference=data.get('reference', ''),
            notes=data.get('notes', ''),
            user=request.user,
            request=request,
        )
    except ValidationError as e:
        messages.error(request, ' '.join(e.messages))
    else:
        messages.success(
            request,
            f'Payment of {payment.amount:,.2f} recorded successfully. Receipt: {payment.receipt_number}'
        )

    return redirect('appointments:invoice_detail', pk=invoice.pk)


@require_POST
@clinic_permission_required('billing')
def invoice_delete(request, pk):
    invoice = _get_clinic_invoice(request, pk)
    number = invoice.invoice_number
    invoice.delete_invoice(user=request.user)
    messages.success(request, f'Invoice {number} and its payments have been deleted.')
    return redirect('appointments:invoice_list')


@require_POST
@clinic_permission_required('billing')
def invoice_send_email(request, pk):
    invoice = _get_clinic_invoice(request, pk)
    if not invoice.patient.email:
        messages.warning(request, f'{invoice.patient.full_name} has no email address on file.')
    elif EmailService.send_invoice_email(invoice):
        messages.success(request, f'Invoice {invoice.invoice_number} emailed to {invoice.patient.email}.')
    else:
        messages.error(request, 'Failed to send the invoice email.')
    return redirect('appointments:invoice_detail', pk=invoice.pk)


class PatientBillingSummaryView(ClinicScopedMixin, DetailView):
    """All invoices of one patient with billed / paid / outstanding totals"""
    model = Patient
    template_name = 'appointments/patient_billing_summary.html'
    context_object_name = 'patient'
    required_permission = 'billing'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['invoices'] = Invoice.get_invoices(self.clinic, patient=self.object)
        context['summary'] = Invoice.get_patient_billing_summary(self.object)
        return context
