# core/middleware.py
"""
Per-request state for staff pages.

AuditMiddleware exposes the signed-in user to the audit signal handlers,
ClinicMiddleware resolves the tenant, and NoCacheMiddleware keeps patient
data out of the browser cache once a user signs out.
"""
import threading

from django.utils.cache import add_never_cache_headers, patch_cache_control

_request_state = threading.local()


def get_current_user():
    """User of the request being handled on this thread, or None"""
    return getattr(_request_state, 'user', None)


def set_current_user(user):
    _request_state.user = user


def _authenticated_user(request):
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return user
    return None


class AuditMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        set_current_user(_authenticated_user(request))
        try:
            return self.get_response(request)
        finally:
            set_current_user(None)


class ClinicMiddleware:
    """Sets ``request.clinic``: the signed-in user's clinic, else None"""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = _authenticated_user(request)
        request.clinic = user.clinic if user is not None else None
        return self.get_response(request)


class NoCacheMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)
        if _authenticated_user(request) is not None:
            add_never_cache_headers(response)
            patch_cache_control(response, no_cache=True, no_store=True, must_revalidate=True, private=True)
            response['Pragma'] = 'no-cache'
            response['Expires'] = '0'
        return response
