from django.contrib import admin
from .models import Clinic, AuditLog


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'phone', 'currency', 'is_active']
    search_fields = ['name', 'slug']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['timestamp', 'clinic', 'user', 'action', 'model_name', 'object_repr']
    list_filter = ['action', 'model_name', 'clinic']
    search_fields = ['object_repr', 'description', 'reason']
    readonly_fields = [f.name for f in AuditLog._meta.fields]

    def has_add_permission(self, request):
        return False
