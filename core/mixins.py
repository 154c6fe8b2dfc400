# core/mixins.py
"""
Tenant scoping for staff views.

Every staff screen needs a signed-in user who belongs to a clinic and whose
role grants the screen's module permission. Querysets are always narrowed to
``request.clinic`` so records of another clinic resolve to 404.
"""
from functools import wraps

from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.contrib.auth.mixins import LoginRequiredMixin
from django.shortcuts import redirect


def _deny(request, message):
    messages.error(request, message)
    return redirect('core:dashboard')


def check_clinic_access(request, permission=None):
    """
    Returns None when the request may proceed, otherwise an error message
    """
    if getattr(request, 'clinic', None) is None:
        return 'Your account is not linked to a clinic.'
    if permission and not request.user.has_permission(permission):
        return 'You do not have permission to access this page.'
    return None


class ClinicScopedMixin(LoginRequiredMixin):
    """
    Mixin for class-based views: login + clinic + module permission.
    Set ``required_permission`` to a module name (e.g. 'billing').
    """
    required_permission = None

    def dispatch(self, request, *args, **kwargs):
        if not request.user.is_authenticated:
            return self.handle_no_permission()

        error = check_clinic_access(request, self.required_permission)
        if error:
            if self.required_permission == 'dashboard':
                # Denials redirect to the dashboard itself
                messages.error(request, error)
                return redirect('users:login')
            return _deny(request, error)

        self.clinic = request.clinic
        return super().dispatch(request, *args, **kwargs)

    def get_queryset(self):
        return super().get_queryset().filter(clinic=self.clinic)


def clinic_permission_required(permission=None):
    """Decorator version of ClinicScopedMixin for function views"""
    def decorator(view_func):
        @login_required
        @wraps(view_func)
        def _wrapped(request, *args, **kwargs):
            error = check_clinic_access(request, permission)
            if error:
                return _deny(request, error)
            return view_func(request, *args, **kwargs)
        return _wrapped
    return decorator
