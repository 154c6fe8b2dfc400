# treatments/models.py
from decimal import Decimal

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator


class ActiveTreatmentManager(models.Manager):
    def get_queryset(self):
        return super().get_queryset().filter(is_active=True)


class Treatment(models.Model):
    """A procedure on the clinic's price list"""
    CATEGORY_CHOICES = [
        ('Preventive', 'Preventive'),
        ('Restorative', 'Restorative'),
        ('Endodontic', 'Endodontic'),
        ('Periodontic', 'Periodontic'),
        ('Prosthodontic', 'Prosthodontic'),
        ('Orthodontic', 'Orthodontic'),
        ('Oral Surgery', 'Oral Surgery'),
        ('Cosmetic', 'Cosmetic'),
        ('Diagnostic', 'Diagnostic'),
        ('Emergency', 'Emergency'),
    ]

    # Tooth surfaces a procedure can be recorded against
    SURFACE_CHOICES = [
        ('O', 'Occlusal'),
        ('M', 'Mesial'),
        ('D', 'Distal'),
        ('B', 'Buccal'),
        ('L', 'Lingual'),
        ('I', 'Incisal'),
        ('MOD', 'Mesio-Occluso-Distal'),
        ('DO', 'Disto-Occlusal'),
        ('MO', 'Mesio-Occlusal'),
    ]

    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='treatments')
    code = models.CharField(max_length=20, blank=True)
    name = models.CharField(max_length=100)
    description = models.TextField(max_length=500, blank=True)
    standard_cost = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0'))],
        help_text="Default price billed for this procedure"
    )
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    duration_minutes = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(5), MaxValueValidator(480)],
        help_text="Typical chair time in minutes"
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()  # Default manager
    active = ActiveTreatmentManager()  # Active catalog entries only

    class Meta:
        ordering = ['category', 'name']
        indexes = [
            models.Index(fields=['clinic', 'is_active', 'category'], name='treatment_catalog_idx'),
        ]

    def __str__(self):
        if self.code:
            return f"{self.code} - {self.name}"
        return self.name

    @property
    def duration_display(self):
        if not self.duration_minutes:
            return '-'
        hours, minutes = divmod(self.duration_minutes, 60)
        if hours and minutes:
            return f"{hours}h {minutes}m"
        elif hours:
            return f"{hours}h"
        return f"{minutes}m"

    def deactivate(self):
        """Soft delete: hidden from the active catalog, kept for past records"""
        self.is_active = False
        self.save(update_fields=['is_active', 'updated_at'])

    @classmethod
    def get_treatments(cls, clinic, category=None):
        queryset = cls.active.filter(clinic=clinic)
        if category:
            queryset = queryset.filter(category=category)
        return queryset.order_by('category', 'name')

    @classmethod
    def get_all_treatments(cls, clinic):
        return cls.objects.filter(clinic=clinic).order_by('category', 'name')

    @classmethod
    def get_categories(cls, clinic):
        """Distinct categories of the clinic's active treatments"""
        return list(
            cls.active.filter(clinic=clinic)
            .order_by('category')
            .values_list('category', flat=True)
            .distinct()
        )
