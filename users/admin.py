from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, Role


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name', 'display_name', 'updated_at']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['username', 'full_name', 'clinic', 'role', 'is_active']
    list_filter = ['clinic', 'role', 'is_active', 'is_superuser']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Clinic', {'fields': ('clinic', 'role', 'phone')}),
    )
