# users/models.py
from django.contrib.auth.models import AbstractUser
from django.db import models


class Role(models.Model):
    SUPERADMIN = 'SUPERADMIN'
    ADMIN = 'ADMIN'
    DOCTOR = 'DOCTOR'
    STAFF = 'STAFF'

    ROLE_CHOICES = [
        (SUPERADMIN, 'Super Admin'),
        (ADMIN, 'Admin'),
        (DOCTOR, 'Doctor'),
        (STAFF, 'Staff'),
    ]

    MODULES = [
        'dashboard',
        'patients',
        'appointments',
        'clinical_records',
        'treatments',
        'billing',
        'analytics',
        'clinic',
    ]

    DEFAULT_PERMISSIONS = {
        SUPERADMIN: {module: True for module in MODULES},
        ADMIN: {module: True for module in MODULES},
        DOCTOR: {
            'dashboard': True,
            'patients': True,
            'appointments': True,
            'clinical_records': True,
            'treatments': False,
            'billing': False,
            'analytics': False,
            'clinic': False,
        },
        STAFF: {
            'dashboard': True,
            'patients': True,
            'appointments': True,
            'clinical_records': False,
            'treatments': False,
            'billing': True,
            'analytics': False,
            'clinic': False,
        },
    }

    name = models.CharField(max_length=20, choices=ROLE_CHOICES, unique=True)
    display_name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    permissions = models.JSONField(default=dict, blank=True, help_text="Module permissions")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.display_name

    def save(self, *args, **kwargs):
        # Fill default permissions for the built-in roles when none are set
        if not self.permissions:
            self.permissions = dict(self.DEFAULT_PERMISSIONS.get(self.name, {}))
        if not self.display_name:
            self.display_name = dict(self.ROLE_CHOICES).get(self.name, self.name)
        super().save(*args, **kwargs)

    @classmethod
    def get_role(cls, name):
        """Get (or lazily create) one of the built-in roles"""
        role, _ = cls.objects.get_or_create(name=name)
        return role


class User(AbstractUser):

    clinic = models.ForeignKey('core.Clinic', on_delete=models.PROTECT, null=True, blank=True,
                               related_name='staff')
    role = models.ForeignKey(Role, on_delete=models.PROTECT, null=True, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.get_full_name()} ({self.username})"

    def has_permission(self, module_name):
        """Check if user has permission for a specific module"""
        if self.is_superuser:
            return True
        if not self.role:
            return False
        return bool(self.role.permissions.get(module_name, False))

    def has_role(self, *role_names):
        return self.role is not None and self.role.name in role_names

    @property
    def is_doctor(self):
        return self.has_role(Role.DOCTOR)

    @property
    def full_name(self):
        return self.get_full_name() or self.username
