# appointments/booking.py - Online booking intake
"""
Turns a booking-form submission into a patient + appointment.

Payloads arrive either flat or nested under ``data``::

    {"fullName": "Asha Rao", "phoneNumber": "09876543210", "age": "34",
     "gender": "Female", "address": "...", "dentalService": "Cleaning",
     "date": "2026-03-14", "time": "10:30", "clinic": "smile-dental"}
"""
import logging
from datetime import datetime

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.models import Clinic
from core.utils import digits_only
from patients.models import Patient
from .models import Appointment

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('fullName', 'phoneNumber', 'date', 'time')


class BookingError(Exception):
    """Booking rejected; carries the HTTP status for the webhook response"""

    def __init__(self, message, status=400):
        super().__init__(message)
        self.message = message
        self.status = status


def extract_booking_data(payload):
    if isinstance(payload, dict) and isinstance(payload.get('data'), dict):
        return payload['data']
    if not isinstance(payload, dict):
        raise BookingError('Invalid booking payload')
    return payload


def split_full_name(full_name):
    """'Asha Devi Rao' -> ('Asha', 'Devi Rao')"""
    parts = full_name.strip().split(' ', 1)
    first_name = parts[0]
    last_name = parts[1].strip() if len(parts) > 1 else ''
    return first_name[:50], last_name[:50]


def format_booking_phone(phone, country_code=None):
    """
    Numbers without a leading '+' get the default country code after
    leading zeros are dropped: '09876543210' -> '+919876543210'
    """
    country_code = country_code or settings.BOOKING_DEFAULT_COUNTRY_CODE
    phone = phone.strip()
    for ch in ' -()':
        phone = phone.replace(ch, '')
    if phone.startswith('+'):
        return phone[:15]
    return (country_code + digits_only(phone).lstrip('0'))[:15]


def parse_schedule(date_str, time_str):
    try:
        naive = datetime.strptime(f"{date_str.strip()} {time_str.strip()}", '%Y-%m-%d %H:%M')
    except (ValueError, AttributeError):
        raise BookingError('Invalid date or time format; expected YYYY-MM-DD and HH:MM')
    return timezone.make_aware(naive)


def _parse_age(age):
    try:
        age = int(str(age).strip())
    except (TypeError, ValueError):
        return None
    return age if 0 <= age <= 150 else None


def _parse_gender(gender):
    gender = (gender or '').strip().capitalize()
    return gender if gender in dict(Patient.GENDER_CHOICES) else ''


def resolve_clinic(slug=None):
    clinic = None
    if slug:
        clinic = Clinic.objects.filter(slug=slug).first()
    if clinic is None:
        clinic = Clinic.get_default()
    if clinic is None:
        raise BookingError('No clinic configured in system', status=500)
    return clinic


def process_booking(payload):
    """
    Create or update the patient and schedule the appointment.

    Returns:
        dict with patient_id, appointment_id and duplicate flag

    Raises:
        BookingError: missing fields (400), bad date/time (400), no clinic (500)
    """
    data = extract_booking_data(payload)

    missing = [field for field in REQUIRED_FIELDS if not str(data.get(field) or '').strip()]
    if missing:
        raise BookingError(f"Missing required fields: {', '.join(REQUIRED_FIELDS)}")

    first_name, last_name = split_full_name(str(data['fullName']))
    phone = format_booking_phone(str(data['phoneNumber']))
    scheduled_at = parse_schedule(str(data['date']), str(data['time']))
    clinic = resolve_clinic(data.get('clinic'))

    age = _parse_age(data.get('age'))
    gender = _parse_gender(data.get('gender'))
    address = str(data.get('address') or '').strip()[:200]
    service = str(data.get('dentalService') or '').strip()[:100]

    with transaction.atomic():
        patient = Patient.find_by_phone(clinic, phone)
        if patient:
            patient.first_name = first_name
            patient.last_name = last_name
            if age is not None:
                patient.age = age
            if gender:
                patient.gender = gender
            if address:
                patient.address = address
            patient.save()
            logger.info(f"Online booking: updated patient {patient.pk} in clinic {clinic.slug}")
        else:
            patient = Patient.objects.create(
                clinic=clinic,
                first_name=first_name,
                last_name=last_name,
                phone=phone,
                age=age,
                gender=gender,
                address=address,
            )
            logger.info(f"Online booking: created patient {patient.pk} in clinic {clinic.slug}")

        existing = Appointment.objects.filter(patient=patient, scheduled_at=scheduled_at).first()
        if existing:
            logger.info(f"Online booking: appointment {existing.pk} already exists")
            return {
                'patient_id': patient.pk,
                'appointment_id': existing.pk,
                'duplicate': True,
            }

        appointment = Appointment.objects.create(
            clinic=clinic,
            patient=patient,
            scheduled_at=scheduled_at,
            duration=30,
            type=service or Appointment.DEFAULT_TYPE,
            status=Appointment.SCHEDULED,
            notes=f"Online booking - {service}" if service else "Online booking",
        )

    logger.info(f"Online booking: appointment {appointment.pk} scheduled for {scheduled_at.isoformat()}")
    return {
        'patient_id': patient.pk,
        'appointment_id': appointment.pk,
        'duplicate': False,
    }
