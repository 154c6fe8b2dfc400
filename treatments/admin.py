from django.contrib import admin
from .models import Treatment


@admin.register(Treatment)
class TreatmentAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'category', 'standard_cost', 'clinic', 'is_active']
    list_filter = ['clinic', 'category', 'is_active']
    search_fields = ['name', 'code']
