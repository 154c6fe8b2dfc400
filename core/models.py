# core/models.py
from django.db import models
from django.utils.text import slugify


class Clinic(models.Model):
    """Tenant boundary - every patient, appointment and invoice belongs to one clinic"""
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=100, unique=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    currency = models.CharField(max_length=3, default='INR', help_text="ISO currency code used on invoices")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            base_slug = slugify(self.name)[:90] or 'clinic'
            slug = base_slug
            counter = 2
            while Clinic.objects.filter(slug=slug).exclude(pk=self.pk).exists():
                slug = f"{base_slug}-{counter}"
                counter += 1
            self.slug = slug
        super().save(*args, **kwargs)

    @classmethod
    def get_default(cls):
        """First clinic in the system (used by the public booking webhook)"""
        return cls.objects.order_by('id').first()


class AuditLog(models.Model):
    """Audit logging with detailed change tracking"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('login', 'Login'),
        ('logout', 'Logout'),
        ('login_failed', 'Login Failed'),
        ('cancel', 'Cancel'),
        ('status_change', 'Status Change'),
        ('price_override', 'Price Override'),
        ('payment', 'Payment'),
    ]

    clinic = models.ForeignKey('core.Clinic', on_delete=models.CASCADE, null=True, blank=True,
                               related_name='audit_logs')
    user = models.ForeignKey('users.User', on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)

    # Model info
    model_name = models.CharField(max_length=50)
    object_id = models.PositiveIntegerField(null=True, blank=True)
    object_repr = models.CharField(max_length=200, blank=True)

    # Change details
    changes = models.JSONField(default=dict, blank=True)
    reason = models.CharField(max_length=255, blank=True)
    description = models.TextField(blank=True, help_text="Human-readable description of the change")

    # Request info
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=255, blank=True)

    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['clinic', 'timestamp'], name='audit_clinic_time_idx'),
            models.Index(fields=['model_name', 'object_id'], name='audit_model_obj_idx'),
            models.Index(fields=['action', 'timestamp'], name='audit_action_time_idx'),
        ]
        verbose_name = 'Audit Log'
        verbose_name_plural = 'Audit Logs'

    def __str__(self):
        who = self.user.username if self.user else 'system'
        return f"[{self.get_action_display()}] {self.model_name} #{self.object_id or '-'} by {who}"

    @classmethod
    def _new_entry(cls, action, model_name, object_id=None, object_repr='', clinic_id=None,
                   user=None, request=None, **extra):
        """Unsaved entry with the request's client address attached"""
        entry = cls(
            clinic_id=clinic_id,
            user=user if user is not None and user.is_authenticated else None,
            action=action,
            model_name=model_name,
            object_id=object_id,
            object_repr=(object_repr or '')[:200],
            **extra
        )
        if request is not None:
            entry.ip_address = cls.get_client_ip(request)
            entry.user_agent = request.META.get('HTTP_USER_AGENT', '')[:255]
        return entry

    @classmethod
    def log_action(cls, user, action, model_instance, changes=None, request=None, description='', reason=''):
        """
        Record an action performed on a tenant-scoped object.

        ``changes`` is free-form JSON: field diffs from get_field_changes,
        ``{'old': {...}}`` snapshots for deletions, or payment details.
        """
        entry = cls._new_entry(
            action,
            model_instance._meta.model_name,
            object_id=model_instance.pk,
            object_repr=str(model_instance),
            clinic_id=cls.get_clinic_id(model_instance),
            user=user,
            request=request,
            changes=changes or {},
            description=description,
            reason=reason,
        )
        entry.save()
        return entry

    @classmethod
    def log_login(cls, user, request, success=True):
        entry = cls._new_entry(
            'login' if success else 'login_failed',
            'user',
            object_id=user.pk,
            object_repr=user.username,
            clinic_id=user.clinic_id,
            user=user if success else None,
            request=request,
            description='Signed in' if success else 'Sign-in rejected',
        )
        entry.save()
        return entry

    @classmethod
    def log_logout(cls, user, request):
        entry = cls._new_entry(
            'logout',
            'user',
            object_id=user.pk,
            object_repr=user.username,
            clinic_id=user.clinic_id,
            user=user,
            request=request,
            description='Signed out',
        )
        entry.save()
        return entry

    @classmethod
    def log_failed_login(cls, username, request=None):
        """Unknown or wrong credentials; the clinic is taken from the account when it exists"""
        from users.models import User

        account = User.objects.filter(username=username).only('pk', 'clinic_id').first() if username else None
        entry = cls._new_entry(
            'login_failed',
            'user',
            object_id=account.pk if account else None,
            object_repr=username or 'Unknown',
            clinic_id=account.clinic_id if account else None,
            request=request,
            description=f"Failed login attempt for username: {username}",
        )
        entry.save()
        return entry

    @staticmethod
    def get_clinic_id(instance):
        """Owning clinic of a tenant-scoped instance (or the clinic itself)"""
        if isinstance(instance, Clinic):
            return instance.pk
        clinic_id = getattr(instance, 'clinic_id', None)
        if clinic_id is None:
            clinic = getattr(instance, 'clinic', None)
            clinic_id = getattr(clinic, 'pk', None)
        return clinic_id

    @staticmethod
    def get_client_ip(request):
        forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
        if forwarded:
            return forwarded.split(',')[0].strip() or None
        return request.META.get('REMOTE_ADDR') or None

    @staticmethod
    def format_field_value(value):
        """JSON-safe display form of a field value"""
        if value is None:
            return 'None'
        if isinstance(value, bool):
            return 'Yes' if value else 'No'
        if isinstance(value, (list, tuple)):
            return ', '.join(map(str, value))
        if hasattr(value, 'strftime'):
            return value.strftime('%Y-%m-%d %H:%M:%S')
        return str(value)

    @classmethod
    def get_field_changes(cls, old_instance, new_instance, fields_to_track=None, fields_to_ignore=None):
        """
        Field-by-field diff of two instances of the same model.

        Returns:
            {field_name: {'old': ..., 'new': ..., 'label': 'Field Label'}}
        """
        ignored = set(fields_to_ignore or ('created_at', 'updated_at', 'password', 'last_login'))
        changes = {}
        for field in new_instance._meta.concrete_fields:
            if field.name in ignored or (fields_to_track and field.name not in fields_to_track):
                continue
            before = getattr(old_instance, field.attname, None)
            after = getattr(new_instance, field.attname, None)
            if before == after:
                continue
            changes[field.name] = {
                'old': cls.format_field_value(before),
                'new': cls.format_field_value(after),
                'label': str(field.verbose_name).title(),
            }
        return changes
