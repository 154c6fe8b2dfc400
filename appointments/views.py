# appointments/views.py
import json
import logging
from datetime import datetime, timedelta

from django.contrib import messages
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST, require_http_methods
from django.views.generic import TemplateView, DetailView, CreateView, UpdateView

from core.email_service import EmailService
from core.mixins import ClinicScopedMixin, clinic_permission_required
from core.utils import get_local_today
from patients.models import Patient
from .booking import process_booking, BookingError
from .forms import AppointmentForm, ClinicalRecordForm, clinic_doctors
from .models import Appointment, ClinicalRecord

logger = logging.getLogger(__name__)


# ============================================================================
# Scheduling
# ============================================================================

class AppointmentScheduleView(ClinicScopedMixin, TemplateView):
    """One day of the clinic's schedule, filterable by doctor and status"""
    template_name = 'appointments/schedule.html'
    required_permission = 'appointments'

    def get_selected_date(self):
        date_str = self.request.GET.get('date')
        if date_str:
            try:
                return datetime.strptime(date_str, '%Y-%m-%d').date()
            except ValueError:
                messages.warning(self.request, 'Invalid date, showing today instead.')
        return get_local_today()

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        selected_date = self.get_selected_date()

        doctor = None
        doctor_id = self.request.GET.get('doctor')
        if doctor_id:
            doctor = clinic_doctors(self.clinic).filter(pk=doctor_id).first()

        status = self.request.GET.get('status')
        if status not in dict(Appointment.STATUS_CHOICES):
            status = None

        appointments = Appointment.get_appointments(self.clinic, date=selected_date, doctor=doctor, status=status)

        context.update({
            'appointments': appointments,
            'selected_date': selected_date,
            'previous_date': selected_date - timedelta(days=1),
            'next_date': selected_date + timedelta(days=1),
            'is_today': selected_date == get_local_today(),
            'doctors': clinic_doctors(self.clinic),
            'doctor_filter': doctor.pk if doctor else '',
            'status_filter': status or '',
            'status_choices': Appointment.STATUS_CHOICES,
        })
        return context


class AppointmentDetailView(ClinicScopedMixin, DetailView):
    model = Appointment
    template_name = 'appointments/appointment_detail.html'
    context_object_name = 'appointment'
    required_permission = 'appointments'

    def get_queryset(self):
        return super().get_queryset().select_related('patient', 'doctor')

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        appointment = self.object
        user = self.request.user
        status_labels = dict(Appointment.STATUS_CHOICES)

        context['clinical_records'] = ClinicalRecord.for_appointment(appointment)
        context['status_options'] = [
            (status, status_labels[status]) for status in appointment.allowed_transitions
        ]
        context['can_edit_records'] = user.has_permission('clinical_records')
        if context['can_edit_records']:
            context['record_form'] = ClinicalRecordForm(clinic=self.clinic)
        if user.has_permission('billing'):
            context['invoice'] = appointment.invoice
        return context


class AppointmentCreateView(ClinicScopedMixin, CreateView):
    model = Appointment
    form_class = AppointmentForm
    template_name = 'appointments/appointment_form.html'
    required_permission = 'appointments'

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['clinic'] = self.clinic
        return kwargs

    def get_initial(self):
        initial = super().get_initial()
        patient_id = self.request.GET.get('patient')
        if patient_id:
            patient = Patient.objects.filter(pk=patient_id, clinic=self.clinic).first()
            if patient:
                initial['patient'] = patient
        if self.request.user.is_doctor:
            initial['doctor'] = self.request.user
        return initial

    def form_valid(self, form):
        form.instance.status = Appointment.SCHEDULED
        response = super().form_valid(form)
        logger.info(f"Appointment {self.object.pk} created by {self.request.user.username}")
        messages.success(
            self.request,
            f'Appointment for {self.object.patient.full_name} scheduled on '
            f'{self.object.local_scheduled_at.strftime("%B %d, %Y at %I:%M %p")}.'
        )
        return response

    def get_success_url(self):
        return reverse('appointments:appointment_detail', kwargs={'pk': self.object.pk})


class AppointmentUpdateView(ClinicScopedMixin, UpdateView):
    model = Appointment
    form_class = AppointmentForm
    template_name = 'appointments/appointment_form.html'
    context_object_name = 'appointment'
    required_permission = 'appointments'

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['clinic'] = self.clinic
        return kwargs

    def form_valid(self, form):
        if form.instance.status in (Appointment.COMPLETED, Appointment.CANCELLED, Appointment.NO_SHOW):
            messages.error(self.request, f'A {form.instance.get_status_display().lower()} appointment cannot be edited.')
            return redirect('appointments:appointment_detail', pk=form.instance.pk)
        messages.success(self.request, 'Appointment updated successfully.')
        return super().form_valid(form)

    def get_success_url(self):
        return reverse('appointments:appointment_detail', kwargs={'pk': self.object.pk})


@require_POST
@clinic_permission_required('appointments')
def update_appointment_status(request, pk):
    """Move an appointment along its lifecycle and notify the patient"""
    appointment = get_object_or_404(
        Appointment.objects.select_related('patient', 'clinic', 'doctor'),
        pk=pk, clinic=request.clinic
    )
    new_status = request.POST.get('status', '')

    try:
        appointment.update_status(new_status, user=request.user, request=request)
    except ValidationError as e:
        messages.error(request, ' '.join(e.messages))
        return redirect('appointments:appointment_detail', pk=pk)

    email_sent = False
    if new_status == Appointment.CONFIRMED:
        email_sent = EmailService.send_appointment_confirmed_email(appointment)
    elif new_status == Appointment.CANCELLED:
        email_sent = EmailService.send_appointment_cancelled_email(appointment)

    status_display = appointment.get_status_display()
    if email_sent:
        messages.success(
            request,
            f'Appointment for {appointment.patient.full_name} has been marked as {status_display.lower()} '
            f'and a notification email was sent.'
        )
    else:
        messages.success(
            request,
            f'Appointment for {appointment.patient.full_name} has been marked as {status_display.lower()}.'
        )

    # Completed visits go straight to billing when they are not invoiced yet
    if (new_status == Appointment.COMPLETED and request.user.has_permission('billing')
            and appointment.clinical_records.exists() and appointment.invoice is None):
        messages.info(request, 'This visit can now be invoiced.')

    next_url = request.POST.get('next')
    if next_url == 'schedule':
        return redirect(f"{reverse('appointments:schedule')}?date={appointment.local_scheduled_at.date().isoformat()}")
    return redirect('appointments:appointment_detail', pk=pk)


# ============================================================================
# Clinical records
# ============================================================================

@require_POST
@clinic_permission_required('clinical_records')
def clinical_record_create(request, appointment_pk):
    appointment = get_object_or_404(Appointment, pk=appointment_pk, clinic=request.clinic)
    form = ClinicalRecordForm(request.POST, clinic=request.clinic)

    if not form.is_valid():
        for field, errors in form.errors.items():
            for error in errors:
                messages.error(request, f'{field}: {error}' if field != '__all__' else error)
        return redirect('appointments:appointment_detail', pk=appointment.pk)

    try:
        record = ClinicalRecord.create_record(
            appointment,
            form.cleaned_data['procedure'].pk,
            user=request.user,
            request=request,
            **form.record_data()
        )
    except ValidationError as e:
        messages.error(request, ' '.join(e.messages))
    else:
        messages.success(request, f'{record} added to the visit.')

    return redirect('appointments:appointment_detail', pk=appointment.pk)


@clinic_permission_required('clinical_records')
def clinical_record_update(request, pk):
    record = get_object_or_404(
        ClinicalRecord.objects.select_related('appointment', 'procedure', 'patient'),
        pk=pk, appointment__clinic=request.clinic
    )

    if request.method == 'POST':
        form = ClinicalRecordForm(request.POST, instance=record, clinic=request.clinic)
        if form.is_valid():
            try:
                record.update_record(user=request.user, request=request, **form.record_data())
            except ValidationError as e:
                messages.error(request, ' '.join(e.messages))
            else:
                messages.success(request, 'Clinical record updated successfully.')
                return redirect('appointments:appointment_detail', pk=record.appointment_id)
    else:
        form = ClinicalRecordForm(instance=record, clinic=request.clinic)

    return render(request, 'appointments/clinical_record_form.html', {
        'form': form,
        'record': record,
        'appointment': record.appointment,
    })


@require_POST
@clinic_permission_required('clinical_records')
def clinical_record_delete(request, pk):
    record = get_object_or_404(ClinicalRecord, pk=pk, appointment__clinic=request.clinic)
    appointment_pk = record.appointment_id
    description = str(record)

    if record.invoice_items.exists():
        messages.error(request, f'{description} has been invoiced and cannot be deleted.')
        return redirect('appointments:appointment_detail', pk=appointment_pk)

    record.delete_record(user=request.user, request=request)
    messages.success(request, f'{description} removed from the visit.')
    return redirect('appointments:appointment_detail', pk=appointment_pk)


@clinic_permission_required('patients')
def tooth_history(request, patient_pk, tooth_number):
    """Every procedure recorded on one tooth of a patient, newest first"""
    patient = get_object_or_404(Patient, pk=patient_pk, clinic=request.clinic)
    records = ClinicalRecord.tooth_history(patient, tooth_number)

    if request.headers.get('Accept', '').startswith('application/json'):
        return JsonResponse({
            'tooth_number': tooth_number,
            'records': [
                {
                    'id': record.pk,
                    'procedure': record.procedure.name,
                    'surface': record.surface,
                    'diagnosis': record.diagnosis,
                    'cost': str(record.effective_cost),
                    'date': record.appointment.local_scheduled_at.strftime('%Y-%m-%d'),
                }
                for record in records
            ],
        })

    return render(request, 'appointments/tooth_history.html', {
        'patient': patient,
        'tooth_number': tooth_number,
        'records': records,
    })


# ============================================================================
# Online booking webhook
# ============================================================================

@csrf_exempt
@require_http_methods(["GET", "POST"])
def booking_webhook(request):
    """Public endpoint receiving submissions from the online booking form"""
    if request.method == 'GET':
        return JsonResponse({
            'status': 'ok',
            'message': 'Booking webhook endpoint is active',
            'timestamp': timezone.now().isoformat(),
        })

    try:
        payload = json.loads(request.body or b'{}')
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JsonResponse({'success': False, 'error': 'Invalid JSON body'}, status=400)

    try:
        result = process_booking(payload)
    except BookingError as e:
        logger.warning(f"Booking webhook rejected: {e.message}")
        return JsonResponse({'success': False, 'error': e.message}, status=e.status)
    except ValidationError as e:
        logger.warning(f"Booking webhook validation error: {e.messages}")
        return JsonResponse({'success': False, 'error': ' '.join(e.messages)}, status=400)
    except DatabaseError:
        logger.exception("Booking webhook failed")
        return JsonResponse({'success': False, 'error': 'Failed to process booking'}, status=500)

    if result['duplicate']:
        message = 'Booking already exists'
    else:
        message = 'Booking confirmed successfully!'

    return JsonResponse({
        'success': True,
        'message': message,
        'patientId': result['patient_id'],
        'appointmentId': result['appointment_id'],
        'duplicate': result['duplicate'],
    })
