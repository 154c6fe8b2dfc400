# appointments/admin.py
from django.contrib import admin
from django.utils.html import format_html

from .models import Appointment, ClinicalRecord, Invoice, InvoiceItem, Payment


class ClinicalRecordInline(admin.TabularInline):
    model = ClinicalRecord
    extra = 0
    fields = ['procedure', 'tooth_number', 'surface', 'cost_override', 'created_by']
    readonly_fields = ['created_by']


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ['patient', 'doctor', 'scheduled_at', 'duration', 'type', 'status_badge', 'clinic']
    list_filter = ['clinic', 'status', 'doctor']
    search_fields = ['patient__first_name', 'patient__last_name', 'patient__phone', 'type']
    date_hierarchy = 'scheduled_at'
    readonly_fields = ['created_at', 'updated_at']
    inlines = [ClinicalRecordInline]

    def status_badge(self, obj):
        colors = {
            'SCHEDULED': 'gray',
            'CONFIRMED': 'blue',
            'SEATED': 'teal',
            'IN_PROGRESS': 'orange',
            'COMPLETED': 'green',
            'CANCELLED': 'red',
            'NO_SHOW': 'purple',
        }
        return format_html(
            '<span style="color: {};">{}</span>',
            colors.get(obj.status, 'black'),
            obj.get_status_display()
        )
    status_badge.short_description = 'Status'

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('patient', 'doctor', 'clinic')


@admin.register(ClinicalRecord)
class ClinicalRecordAdmin(admin.ModelAdmin):
    list_display = ['procedure', 'patient', 'tooth_number', 'surface', 'cost_override', 'created_at']
    list_filter = ['procedure__category']
    search_fields = ['patient__first_name', 'patient__last_name', 'procedure__name', 'tooth_number']
    readonly_fields = ['created_at', 'updated_at']


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    readonly_fields = ['total']


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    readonly_fields = ['receipt_number', 'created_by']


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'patient', 'total', 'amount_paid', 'status', 'due_date', 'created_at']
    list_filter = ['clinic', 'status']
    search_fields = ['invoice_number', 'patient__first_name', 'patient__last_name']
    readonly_fields = ['invoice_number', 'subtotal', 'discount_amount', 'total', 'amount_paid',
                       'created_at', 'updated_at']
    inlines = [InvoiceItemInline, PaymentInline]

    fieldsets = (
        ('Invoice', {
            'fields': ('invoice_number', 'clinic', 'patient', 'appointment', 'status', 'due_date', 'notes')
        }),
        ('Amounts', {
            'fields': ('subtotal', 'discount', 'discount_type', 'discount_amount', 'tax', 'total', 'amount_paid')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ['collapse']
        }),
    )


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['receipt_number', 'invoice', 'amount', 'method', 'paid_at', 'created_by']
    list_filter = ['method']
    search_fields = ['receipt_number', 'invoice__invoice_number', 'reference']
    date_hierarchy = 'paid_at'
    readonly_fields = ['receipt_number']
