# appointments/urls.py - Scheduling, clinical records and billing
from django.urls import path
from . import views, payment_views

app_name = 'appointments'

urlpatterns = [
    # Schedule and appointment CRUD
    path('', views.AppointmentScheduleView.as_view(), name='schedule'),
    path('create/', views.AppointmentCreateView.as_view(), name='appointment_create'),
    path('<int:pk>/', views.AppointmentDetailView.as_view(), name='appointment_detail'),
    path('<int:pk>/edit/', views.AppointmentUpdateView.as_view(), name='appointment_update'),
    path('<int:pk>/update-status/', views.update_appointment_status, name='update_appointment_status'),

    # Clinical records
    path('<int:appointment_pk>/records/add/', views.clinical_record_create, name='clinical_record_create'),
    path('records/<int:pk>/edit/', views.clinical_record_update, name='clinical_record_update'),
    path('records/<int:pk>/delete/', views.clinical_record_delete, name='clinical_record_delete'),
    path('patients/<int:patient_pk>/teeth/<str:tooth_number>/', views.tooth_history, name='tooth_history'),

    # Invoices
    path('invoices/', payment_views.InvoiceListView.as_view(), name='invoice_list'),
    path('invoices/create/', payment_views.invoice_create, name='invoice_create'),
    path('invoices/<int:pk>/', payment_views.InvoiceDetailView.as_view(), name='invoice_detail'),
    path('invoices/<int:pk>/edit/', payment_views.invoice_update, name='invoice_update'),
    path('invoices/<int:pk>/items/', payment_views.invoice_items_update, name='invoice_items_update'),
    path('invoices/<int:pk>/delete/', payment_views.invoice_delete, name='invoice_delete'),
    path('invoices/<int:pk>/send/', payment_views.invoice_send_email, name='invoice_send_email'),
    path('<int:appointment_pk>/invoice/', payment_views.invoice_generate, name='invoice_generate'),

    # Payments
    path('invoices/<int:pk>/payments/add/', payment_views.record_payment, name='record_payment'),
    path('patients/<int:pk>/billing/', payment_views.PatientBillingSummaryView.as_view(), name='patient_billing_summary'),
]
