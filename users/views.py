#users/views.py
from django.shortcuts import redirect
from django.contrib.auth import logout
from django.contrib.auth.decorators import login_required
from django.contrib import messages
from django.urls import reverse_lazy
from django.views.generic import ListView, CreateView, UpdateView
from django.db.models import Q
from django.utils.cache import add_never_cache_headers
from django.views.decorators.http import require_http_methods

from core.mixins import ClinicScopedMixin
from .models import Role, User
from .forms import StaffForm

STAFF_SEARCH_FIELDS = ('username', 'first_name', 'last_name', 'email')


@require_http_methods(["GET", "POST"])
@login_required
def custom_logout(request):
    """Sign out and send the browser back to the login page uncached"""
    logout(request)
    response = redirect('users:login')
    add_never_cache_headers(response)
    return response


class StaffListView(ClinicScopedMixin, ListView):
    """Staff accounts of the current clinic"""
    model = User
    template_name = 'users/staff_list.html'
    context_object_name = 'staff_members'
    paginate_by = 25
    required_permission = 'clinic'

    def get_queryset(self):
        staff = super().get_queryset().select_related('role')
        term = self.request.GET.get('search', '').strip()
        if term:
            match = Q()
            for field in STAFF_SEARCH_FIELDS:
                match |= Q(**{f'{field}__icontains': term})
            staff = staff.filter(match)

        role_name = self.request.GET.get('role')
        if role_name in dict(Role.ROLE_CHOICES):
            staff = staff.filter(role__name=role_name)
        return staff.order_by('last_name', 'first_name', 'username')

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context.update(
            search_query=self.request.GET.get('search', ''),
            role_filter=self.request.GET.get('role', ''),
        )
        return context


class StaffFormMixin(ClinicScopedMixin):
    model = User
    form_class = StaffForm
    template_name = 'users/staff_form.html'
    required_permission = 'clinic'
    success_url = reverse_lazy('users:staff_list')

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['request_user'] = self.request.user
        return kwargs


class StaffCreateView(StaffFormMixin, CreateView):

    def form_valid(self, form):
        form.instance.clinic = self.clinic
        messages.success(self.request, f'Staff account {form.instance.username} created.')
        return super().form_valid(form)


class StaffUpdateView(StaffFormMixin, UpdateView):
    context_object_name = 'staff_member'

    def form_valid(self, form):
        if form.instance.pk == self.request.user.pk and not form.cleaned_data.get('is_active'):
            messages.error(self.request, 'You cannot deactivate your own account.')
            return self.form_invalid(form)
        messages.success(self.request, f'Staff account {form.instance.username} updated.')
        return super().form_valid(form)
