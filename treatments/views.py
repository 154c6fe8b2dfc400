# treatments/views.py
import logging

from django.contrib import messages
from django.db.models import Q
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect
from django.urls import reverse_lazy
from django.views.decorators.http import require_POST
from django.views.generic import ListView, CreateView, UpdateView

from core.mixins import ClinicScopedMixin, clinic_permission_required
from .models import Treatment
from .forms import TreatmentForm

logger = logging.getLogger(__name__)


class TreatmentListView(ClinicScopedMixin, ListView):
    """Treatment catalog with search and category filter"""
    model = Treatment
    template_name = 'treatments/treatment_list.html'
    context_object_name = 'treatments'
    paginate_by = 50
    required_permission = 'treatments'

    def get_queryset(self):
        if self.request.GET.get('show_inactive'):
            queryset = Treatment.get_all_treatments(self.clinic)
        else:
            queryset = Treatment.get_treatments(self.clinic)

        category = self.request.GET.get('category')
        if category:
            queryset = queryset.filter(category=category)

        search_query = self.request.GET.get('search')
        if search_query:
            queryset = queryset.filter(
                Q(name__icontains=search_query) |
                Q(code__icontains=search_query) |
                Q(description__icontains=search_query)
            )

        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context.update({
            'categories': Treatment.get_categories(self.clinic),
            'category_filter': self.request.GET.get('category', ''),
            'search_query': self.request.GET.get('search', ''),
            'show_inactive': bool(self.request.GET.get('show_inactive')),
        })
        return context


class TreatmentFormMixin:
    model = Treatment
    form_class = TreatmentForm
    template_name = 'treatments/treatment_form.html'
    required_permission = 'treatments'
    success_url = reverse_lazy('treatments:treatment_list')

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['clinic'] = self.clinic
        return kwargs


class TreatmentCreateView(TreatmentFormMixin, ClinicScopedMixin, CreateView):

    def form_valid(self, form):
        form.instance.clinic = self.clinic
        messages.success(self.request, f'Treatment "{form.instance.name}" created successfully.')
        return super().form_valid(form)


class TreatmentUpdateView(TreatmentFormMixin, ClinicScopedMixin, UpdateView):
    context_object_name = 'treatment'

    def form_valid(self, form):
        messages.success(self.request, f'Treatment "{form.instance.name}" updated successfully.')
        return super().form_valid(form)


@require_POST
@clinic_permission_required('treatments')
def deactivate_treatment(request, pk):
    """Soft delete: the treatment stays on past clinical records and invoices"""
    treatment = get_object_or_404(Treatment, pk=pk, clinic=request.clinic)
    treatment.deactivate()
    logger.info(f"Treatment {treatment.pk} deactivated by {request.user.username}")
    messages.success(request, f'Treatment "{treatment.name}" has been removed from the catalog.')
    return redirect('treatments:treatment_list')


@clinic_permission_required('appointments')
def treatment_options_api(request):
    """Active catalog entries as JSON for the clinical record form"""
    treatments = Treatment.get_treatments(request.clinic, request.GET.get('category') or None)
    return JsonResponse({
        'treatments': [
            {
                'id': t.pk,
                'code': t.code,
                'name': t.name,
                'category': t.category,
                'standard_cost': str(t.standard_cost),
            }
            for t in treatments
        ],
        'surfaces': [code for code, _ in Treatment.SURFACE_CHOICES],
    })
