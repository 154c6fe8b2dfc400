#core/urls.py
from django.urls import path
from . import views
from .health_check import health_check

app_name = 'core'

urlpatterns = [
    path('', views.home, name='home'),
    path('dashboard/', views.DashboardView.as_view(), name='dashboard'),

    # Clinic administration
    path('settings/', views.ClinicSettingsView.as_view(), name='settings'),
    path('audit-logs/', views.AuditLogListView.as_view(), name='audit_logs'),

    path('health/', health_check, name='health'),
]
