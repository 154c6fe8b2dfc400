# patients/models.py
from django.db import models
from django.core.validators import MinLengthValidator, MinValueValidator, MaxValueValidator

from core.utils import calculate_age, get_local_today, phone_tail


class Patient(models.Model):
    GENDER_CHOICES = [
        ('Male', 'Male'),
        ('Female', 'Female'),
        ('Other', 'Other'),
    ]

    SEARCH_LIMIT = 50

    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, related_name='patients')

    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50)
    email = models.EmailField(null=True, blank=True)
    phone = models.CharField(max_length=15, validators=[MinLengthValidator(10)])
    date_of_birth = models.DateField(null=True, blank=True)
    age = models.PositiveIntegerField(
        null=True, blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(150)],
        help_text="Age given at online booking when the date of birth is unknown"
    )
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True)
    address = models.CharField(max_length=200, blank=True)
    allergies = models.JSONField(default=list, blank=True, help_text="List of known allergies")
    notes = models.TextField(max_length=500, blank=True)
    last_visit_date = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['clinic', 'last_name', 'first_name'], name='patient_clinic_name_idx'),
            models.Index(fields=['clinic', 'phone'], name='patient_clinic_phone_idx'),
        ]

    def __str__(self):
        return self.full_name

    def save(self, *args, **kwargs):
        # Blank emails are stored as NULL
        if not self.email:
            self.email = None
        super().save(*args, **kwargs)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def current_age(self):
        """Age from date of birth, falling back to the age captured at booking"""
        if self.date_of_birth:
            return calculate_age(self.date_of_birth)
        return self.age

    @property
    def age_display(self):
        age = self.current_age
        return str(age) if age is not None else 'N/A'

    @property
    def allergies_display(self):
        return ', '.join(self.allergies) if self.allergies else 'None known'

    def update_last_visit_date(self):
        self.last_visit_date = get_local_today()
        self.save(update_fields=['last_visit_date', 'updated_at'])

    @classmethod
    def search(cls, clinic, query):
        """Name (case-insensitive) or phone match within a clinic, newest first"""
        queryset = cls.objects.filter(clinic=clinic)
        query = (query or '').strip()
        if query:
            queryset = queryset.filter(
                models.Q(first_name__icontains=query) |
                models.Q(last_name__icontains=query) |
                models.Q(phone__contains=query)
            )
        return queryset.order_by('-created_at')[:cls.SEARCH_LIMIT]

    @classmethod
    def find_by_phone(cls, clinic, phone):
        """
        Patient of the clinic whose phone ends with the same 10 digits.
        Phones are stored in mixed formats (+91..., 0..., plain), so the
        comparison is done on the digit tail.
        """
        tail = phone_tail(phone)
        if not tail:
            return None
        for patient in cls.objects.filter(clinic=clinic, phone__contains=tail[-4:]).order_by('-created_at'):
            if phone_tail(patient.phone) == tail:
                return patient
        return None
