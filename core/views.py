# core/views.py
import logging
from datetime import datetime

from django.contrib import messages
from django.shortcuts import redirect
from django.urls import reverse_lazy
from django.views.generic import TemplateView, ListView, UpdateView

from .forms import ClinicForm
from .mixins import ClinicScopedMixin
from .models import AuditLog, Clinic
from .utils import day_bounds
from reports import analytics

logger = logging.getLogger(__name__)


def home(request):
    """Root URL: staff land on the dashboard, everyone else on the login page"""
    if request.user.is_authenticated:
        return redirect('core:dashboard')
    return redirect('users:login')


class DashboardView(ClinicScopedMixin, TemplateView):
    """Clinic dashboard: headline stats, upcoming visits and recent activity"""
    template_name = 'core/dashboard.html'
    required_permission = 'dashboard'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        user = self.request.user

        context['stats'] = analytics.get_dashboard_stats(self.clinic)
        context['upcoming_appointments'] = analytics.get_upcoming_appointments(self.clinic)
        context['todays_appointments'] = analytics.get_todays_appointments(self.clinic)

        # Revenue figures are only shown to users who can see billing
        context['show_billing'] = user.has_permission('billing')
        if context['show_billing']:
            context['recent_activity'] = analytics.get_recent_activity(self.clinic)

        return context


class ClinicSettingsView(ClinicScopedMixin, UpdateView):
    """Edit the signed-in user's clinic profile"""
    model = Clinic
    form_class = ClinicForm
    template_name = 'core/clinic_settings.html'
    required_permission = 'clinic'
    success_url = reverse_lazy('core:settings')

    def get_object(self, queryset=None):
        return self.clinic

    def form_valid(self, form):
        original = Clinic.objects.get(pk=self.clinic.pk)
        response = super().form_valid(form)

        changes = AuditLog.get_field_changes(original, self.object)
        if changes:
            AuditLog.log_action(
                user=self.request.user,
                action='update',
                model_instance=self.object,
                changes=changes,
                request=self.request,
                description=f"Updated {len(changes)} clinic setting(s)"
            )
            logger.info(f"Clinic {self.object.slug} settings updated by {self.request.user.username}")
            messages.success(self.request, f'Settings updated successfully. {len(changes)} setting(s) changed.')
        else:
            messages.info(self.request, 'No changes were made.')

        return response

    def form_invalid(self, form):
        messages.error(self.request, 'Please correct the errors in the form.')
        return super().form_invalid(form)


def _parse_filter_date(value):
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except (TypeError, ValueError):
        return None


class AuditLogListView(ClinicScopedMixin, ListView):
    """Audit trail of the current clinic, filterable by user, action, module and date"""
    model = AuditLog
    template_name = 'core/audit_log_list.html'
    context_object_name = 'logs'
    paginate_by = 50
    required_permission = 'clinic'

    FILTER_KEYS = ('user', 'action', 'model_name', 'date_from', 'date_to')

    def get_queryset(self):
        params = self.request.GET
        queryset = super().get_queryset().select_related('user').order_by('-timestamp')
        self.active_filters = []

        user_id = params.get('user', '')
        if user_id.isdigit():
            member = self.clinic.staff.filter(pk=int(user_id)).first()
            if member is not None:
                queryset = queryset.filter(user=member)
                self.active_filters.append(f"User: {member.full_name}")

        action = params.get('action')
        if action in dict(AuditLog.ACTION_CHOICES):
            queryset = queryset.filter(action=action)
            self.active_filters.append(f"Action: {dict(AuditLog.ACTION_CHOICES)[action]}")

        model_name = params.get('model_name')
        if model_name:
            queryset = queryset.filter(model_name=model_name)
            self.active_filters.append(f"Module: {model_name.title()}")

        date_from = _parse_filter_date(params.get('date_from'))
        if date_from:
            queryset = queryset.filter(timestamp__gte=day_bounds(date_from)[0])
            self.active_filters.append(f"From: {date_from:%b %d, %Y}")

        date_to = _parse_filter_date(params.get('date_to'))
        if date_to:
            queryset = queryset.filter(timestamp__lt=day_bounds(date_to)[1])
            self.active_filters.append(f"To: {date_to:%b %d, %Y}")

        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context.update({
            'users': self.clinic.staff.filter(is_active=True).order_by('first_name', 'last_name'),
            'action_choices': AuditLog.ACTION_CHOICES,
            'model_choices': (
                AuditLog.objects.filter(clinic=self.clinic)
                .values_list('model_name', flat=True).distinct().order_by('model_name')
            ),
            'filters': {key: self.request.GET.get(key, '') for key in self.FILTER_KEYS},
            'active_filters': getattr(self, 'active_filters', []),
        })
        return context
