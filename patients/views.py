# patients/views.py
import logging

from django.contrib import messages
from django.db.models import Q, ProtectedError
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect
from django.urls import reverse_lazy
from django.views.decorators.http import require_POST
from django.views.generic import ListView, DetailView, CreateView, UpdateView, DeleteView

from core.mixins import ClinicScopedMixin, clinic_permission_required
from appointments.models import Invoice
from .models import Patient
from .forms import PatientForm, PatientSearchForm

logger = logging.getLogger(__name__)


class PatientListView(ClinicScopedMixin, ListView):
    """Patients of the clinic, optionally narrowed by a name/phone search"""
    model = Patient
    template_name = 'patients/patient_list.html'
    context_object_name = 'patients'
    paginate_by = 25
    required_permission = 'patients'

    def get_queryset(self):
        self.query = self.request.GET.get('query', '').strip()
        if self.query:
            # Search results are capped, no pagination needed
            self.paginate_by = None
            return Patient.search(self.clinic, self.query)

        queryset = super().get_queryset()
        status = self.request.GET.get('status')
        if status == 'active':
            queryset = queryset.filter(is_active=True)
        elif status == 'inactive':
            queryset = queryset.filter(is_active=False)
        return queryset.order_by('-created_at')

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['form'] = PatientSearchForm(self.request.GET)
        context['query'] = self.query
        context['status_filter'] = self.request.GET.get('status', '')
        context['total_count'] = Patient.objects.filter(clinic=self.clinic).count()
        return context


class PatientDetailView(ClinicScopedMixin, DetailView):
    """Patient profile with recent visits, clinical history and billing"""
    model = Patient
    template_name = 'patients/patient_detail.html'
    context_object_name = 'patient'
    required_permission = 'patients'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        patient = self.object
        user = self.request.user

        context['recent_appointments'] = (
            patient.appointments.select_related('doctor').order_by('-scheduled_at')[:10]
        )
        context['clinical_records'] = (
            patient.clinical_records.select_related('procedure', 'appointment', 'created_by')
            .order_by('-created_at')
        )

        if user.has_permission('billing'):
            context['recent_invoices'] = patient.invoices.order_by('-created_at')[:5]
            context['billing_summary'] = Invoice.get_patient_billing_summary(patient)

        context['can_edit_records'] = user.has_permission('clinical_records')
        return context


class PatientCreateView(ClinicScopedMixin, CreateView):
    model = Patient
    form_class = PatientForm
    template_name = 'patients/patient_form.html'
    required_permission = 'patients'

    def form_valid(self, form):
        form.instance.clinic = self.clinic
        response = super().form_valid(form)
        logger.info(f"Patient {self.object.pk} created in clinic {self.clinic.slug}")
        messages.success(self.request, f'Patient {self.object.full_name} created successfully.')
        return response

    def get_success_url(self):
        return reverse_lazy('patients:patient_detail', kwargs={'pk': self.object.pk})


class PatientUpdateView(ClinicScopedMixin, UpdateView):
    model = Patient
    form_class = PatientForm
    template_name = 'patients/patient_form.html'
    context_object_name = 'patient'
    required_permission = 'patients'

    def form_valid(self, form):
        messages.success(self.request, f'Patient {form.instance.full_name} updated successfully.')
        return super().form_valid(form)

    def get_success_url(self):
        return reverse_lazy('patients:patient_detail', kwargs={'pk': self.object.pk})


class PatientDeleteView(ClinicScopedMixin, DeleteView):
    """Delete a patient together with their appointments and invoices"""
    model = Patient
    template_name = 'patients/patient_confirm_delete.html'
    context_object_name = 'patient'
    required_permission = 'patients'
    success_url = reverse_lazy('patients:patient_list')

    def form_valid(self, form):
        patient = self.get_object()
        name = patient.full_name
        try:
            response = super().form_valid(form)
        except ProtectedError:
            messages.error(self.request, f'Patient {name} cannot be deleted while records reference them.')
            return redirect('patients:patient_detail', pk=patient.pk)
        logger.info(f"Patient {name} deleted from clinic {self.clinic.slug} by {self.request.user.username}")
        messages.success(self.request, f'Patient {name} has been deleted.')
        return response


@require_POST
@clinic_permission_required('patients')
def toggle_patient_active(request, pk):
    """Toggle patient active status"""
    patient = get_object_or_404(Patient, pk=pk, clinic=request.clinic)
    patient.is_active = not patient.is_active
    patient.save()

    status = 'activated' if patient.is_active else 'deactivated'
    messages.success(request, f'Patient {patient.full_name} has been {status}.')

    return redirect('patients:patient_detail', pk=pk)


@clinic_permission_required('patients')
def patient_quick_info(request, pk):
    """Quick patient info as JSON for the appointment form"""
    patient = get_object_or_404(Patient, pk=pk, clinic=request.clinic)

    recent_appointments = patient.appointments.select_related('doctor').order_by('-scheduled_at')[:3]

    data = {
        'id': patient.pk,
        'name': patient.full_name,
        'email': patient.email,
        'phone': patient.phone,
        'age': patient.age_display,
        'allergies': patient.allergies,
        'last_visit_date': patient.last_visit_date.isoformat() if patient.last_visit_date else None,
        'recent_appointments': [
            {
                'date': apt.local_scheduled_at.strftime('%Y-%m-%d %H:%M'),
                'type': apt.type,
                'status': apt.get_status_display(),
            }
            for apt in recent_appointments
        ],
        'total_visits': patient.appointments.filter(status='COMPLETED').count(),
    }
    return JsonResponse(data)


@clinic_permission_required('patients')
def patient_lookup(request):
    """Type-ahead search used by the appointment and invoice forms"""
    query = request.GET.get('q', '').strip()
    if len(query) < 2:
        return JsonResponse({'results': []})

    patients = Patient.search(request.clinic, query)
    return JsonResponse({
        'results': [
            {'id': p.pk, 'name': p.full_name, 'phone': p.phone}
            for p in patients
        ]
    })
