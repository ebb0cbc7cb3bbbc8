import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)

SUBJECT = "Scholarship Application Successfully Submitted - Naukrivalaa Foundation"


def send_application_confirmation(*, application, gateway_order_id) -> bool:
    """Email the applicant that their fee is paid and the application is under review.

    Returns True when the message was handed to the mail backend. Never raises.
    """
    if not getattr(settings, "EMAIL_ENABLED", False):
        logger.warning(
            "Email provider not configured; skipping confirmation for %s", application.application_id
        )
        return False

    try:
        context = {
            "application": application,
            "order_id": gateway_order_id,
            "fee": settings.APPLICATION_FEE,
        }
        text = render_to_string("emails/application_confirmation.txt", context)
        html = render_to_string("emails/application_confirmation.html", context)
        reply_to = [settings.REPLY_TO_EMAIL] if getattr(settings, "REPLY_TO_EMAIL", "") else None
        msg = EmailMultiAlternatives(
            SUBJECT, text, settings.DEFAULT_FROM_EMAIL, [application.email], reply_to=reply_to
        )
        msg.attach_alternative(html, "text/html")
        msg.send(fail_silently=settings.EMAIL_FAIL_SILENTLY)
    except Exception:
        logger.exception(
            "Failed to send confirmation email to %s for %s", application.email, application.application_id
        )
        return False

    logger.info("Confirmation email sent for %s", application.application_id)
    return True
