"""
Patient notifications through the Brevo transactional email API
"""
from django.template.loader import render_to_string
from django.conf import settings
import logging
import sib_api_v3_sdk
from sib_api_v3_sdk.rest import ApiException

from core.utils import format_currency, get_local_date

logger = logging.getLogger(__name__)


def send_email_via_api(recipient_email, subject, html_content, recipient_name=None, sender_name=None):
    """
    Send email using the Brevo API.
    Returns True on success; False when not configured or when delivery fails.
    """
    if not settings.BREVO_API_KEY:
        logger.info(f"BREVO_API_KEY not configured, skipping email '{subject}' to {recipient_email}")
        return False

    try:
        configuration = sib_api_v3_sdk.Configuration()
        configuration.api_key['api-key'] = settings.BREVO_API_KEY

        api_instance = sib_api_v3_sdk.TransactionalEmailsApi(
            sib_api_v3_sdk.ApiClient(configuration)
        )

        sender = {
            "name": sender_name or settings.DEFAULT_FROM_NAME,
            "email": settings.DEFAULT_FROM_EMAIL
        }

        to = [{"email": recipient_email}]
        if recipient_name:
            to[0]["name"] = recipient_name

        send_smtp_email = sib_api_v3_sdk.SendSmtpEmail(
            to=to,
            sender=sender,
            subject=subject,
            html_content=html_content
        )

        api_response = api_instance.send_transac_email(send_smtp_email)
        logger.info(f"Email '{subject}' sent to {recipient_email}, message id {api_response.message_id}")
        return True

    except ApiException as e:
        logger.error(f"Brevo API error: {e}")
        logger.error(f"Response body: {e.body if hasattr(e, 'body') else 'No body'}")
        return False


class EmailService:
    """Email notifications sent to patients"""

    @staticmethod
    def _appointment_context(appointment):
        scheduled = appointment.local_scheduled_at
        return {
            'patient_name': appointment.patient.full_name,
            'appointment_date': scheduled.strftime('%B %d, %Y'),
            'appointment_time': scheduled.strftime('%I:%M %p'),
            'treatment_type': appointment.type,
            'doctor': appointment.doctor.full_name if appointment.doctor else 'To be assigned',
            'clinic_name': appointment.clinic.name,
            'clinic_phone': appointment.clinic.phone,
        }

    @staticmethod
    def send_appointment_confirmed_email(appointment):
        """Send email when an appointment is confirmed"""
        if not appointment.patient.email:
            logger.info(f"Appointment {appointment.id}: patient has no email, skipping confirmation")
            return False

        html_message = render_to_string(
            'emails/appointment_confirmed.html',
            EmailService._appointment_context(appointment)
        )
        success = send_email_via_api(
            recipient_email=appointment.patient.email,
            subject='Appointment Confirmed',
            html_content=html_message,
            recipient_name=appointment.patient.full_name,
            sender_name=appointment.clinic.name,
        )
        if not success:
            logger.warning(f"Confirmation email not sent for appointment {appointment.id}")
        return success

    @staticmethod
    def send_appointment_cancelled_email(appointment):
        """Send email when an appointment is cancelled"""
        if not appointment.patient.email:
            logger.info(f"Appointment {appointment.id}: patient has no email, skipping cancellation")
            return False

        html_message = render_to_string(
            'emails/appointment_cancelled.html',
            EmailService._appointment_context(appointment)
        )
        success = send_email_via_api(
            recipient_email=appointment.patient.email,
            subject='Appointment Cancelled',
            html_content=html_message,
            recipient_name=appointment.patient.full_name,
            sender_name=appointment.clinic.name,
        )
        if not success:
            logger.warning(f"Cancellation email not sent for appointment {appointment.id}")
        return success

    @staticmethod
    def send_invoice_email(invoice):
        """Send the invoice summary to the patient"""
        patient = invoice.patient
        if not patient.email:
            logger.info(f"Invoice {invoice.invoice_number}: patient has no email, skipping")
            return False

        context = {
            'patient_name': patient.first_name,
            'invoice_number': invoice.invoice_number,
            'invoice_date': get_local_date(invoice.created_at).strftime('%B %d, %Y'),
            'items': [
                {
                    'description': item.description,
                    'quantity': item.quantity,
                    'total': format_currency(item.total),
                }
                for item in invoice.items.all()
            ],
            'subtotal': format_currency(invoice.subtotal),
            'discount': format_currency(invoice.discount_amount),
            'tax': format_currency(invoice.tax),
            'total': format_currency(invoice.total),
            'balance': format_currency(invoice.balance),
            'due_date': invoice.due_date.strftime('%B %d, %Y') if invoice.due_date else None,
            'clinic_name': invoice.clinic.name,
        }
        html_content = render_to_string('emails/invoice_issued.html', context)

        success = send_email_via_api(
            recipient_email=patient.email,
            subject=f"Invoice {invoice.invoice_number} from {invoice.clinic.name}",
            html_content=html_content,
            recipient_name=patient.full_name,
            sender_name=invoice.clinic.name,
        )
        if not success:
            logger.warning(f"Invoice email not sent for {invoice.invoice_number}")
        return success
