# core/signals.py
"""
Automatic audit trail for the tenant apps, plus sign-in activity.

Models flag ``_skip_audit_log`` when they write a more specific entry
themselves (status changes, payments, clinical record deletion).
"""
import sys

from django.contrib.auth.signals import user_logged_in, user_logged_out, user_login_failed
from django.db.models.signals import post_delete, post_save, pre_save
from django.dispatch import receiver

from .middleware import get_current_user
from .models import AuditLog

AUDITED_APPS = {'patients', 'treatments', 'appointments', 'users'}

# Pre-save copies keyed by "<Model>_<pk>", consumed by the post_save handler
_original_instances = {}


def _is_audited(sender, instance, raw=False):
    if raw or 'migrate' in sys.argv:
        return False
    if sender._meta.app_label not in AUDITED_APPS:
        return False
    return not getattr(instance, '_skip_audit_log', False)


def _snapshot_key(sender, pk):
    return f"{sender.__name__}_{pk}"


def _write_entry(sender, instance, action, description, changes=None):
    AuditLog.objects.create(
        clinic_id=AuditLog.get_clinic_id(instance),
        user=get_current_user() or getattr(instance, '_current_user', None),
        action=action,
        model_name=sender._meta.model_name,
        object_id=instance.pk,
        object_repr=str(instance)[:200],
        changes=changes or {},
        description=description,
    )


def _describe_update(sender, changes):
    if sender.__name__ == 'Appointment' and 'status' in changes:
        new_status = changes['status']['new']
        if new_status == 'CANCELLED':
            return 'cancel', 'Cancelled appointment'
        if new_status == 'COMPLETED':
            return 'update', 'Marked appointment as completed'
    labels = ', '.join(change['label'] for change in changes.values())
    return 'update', f"Updated {sender._meta.verbose_name}: {labels}"


@receiver(pre_save)
def store_original_instance(sender, instance, raw=False, **kwargs):
    if not instance.pk or not _is_audited(sender, instance, raw):
        return
    original = sender._default_manager.filter(pk=instance.pk).first()
    if original is not None:
        _original_instances[_snapshot_key(sender, instance.pk)] = original


@receiver(post_save)
def log_model_save(sender, instance, created, raw=False, **kwargs):
    if not _is_audited(sender, instance, raw):
        return

    if created:
        _write_entry(sender, instance, 'create', f"Created new {sender._meta.verbose_name}: {instance}")
        return

    original = _original_instances.pop(_snapshot_key(sender, instance.pk), None)
    if original is None:
        _write_entry(sender, instance, 'update', f"Updated {sender._meta.verbose_name}: {instance}")
        return

    changes = AuditLog.get_field_changes(original, instance)
    if not changes:
        return
    action, description = _describe_update(sender, changes)
    _write_entry(sender, instance, action, description, changes)


@receiver(post_delete)
def log_model_delete(sender, instance, **kwargs):
    if _is_audited(sender, instance):
        _write_entry(sender, instance, 'delete', f"Deleted {sender._meta.verbose_name}: {instance}")


@receiver(user_logged_in)
def log_user_login(sender, request, user, **kwargs):
    AuditLog.log_login(user, request)


@receiver(user_logged_out)
def log_user_logout(sender, request, user, **kwargs):
    if user is not None:
        AuditLog.log_logout(user, request)


@receiver(user_login_failed)
def log_failed_login(sender, credentials, request=None, **kwargs):
    AuditLog.log_failed_login(credentials.get('username'), request)
