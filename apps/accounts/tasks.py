import logging
from smtplib import SMTPException

from celery import shared_task
from django.conf import settings
from django.contrib.auth.tokens import default_token_generator
from django.core.mail import send_mail
from django.utils.encoding import force_bytes
from django.utils.http import urlsafe_base64_encode

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_password_reset_email(self, user_id: str):
    """
    Mints the reset token here, inside the worker, so it never sits in the broker.
    """
    from .models import User

    user = User.objects.filter(pk=user_id, is_active=True).first()
    if user is None:
        logger.warning("Reset e-mail skipped: user %s not found or inactive", user_id)
        return

    uid = urlsafe_base64_encode(force_bytes(user.pk))
    token = default_token_generator.make_token(user)
    link = f"{settings.FRONTEND_URL}/reset-password?uid={uid}&token={token}"

    try:
        send_mail(
            subject="Reset your password",
            message=(
                f"Hi {user.first_name or user.email},\n\n"
                "Someone asked to reset the password for this account. "
                "If it was you, open the link below; otherwise ignore this e-mail.\n\n"
                f"{link}\n"
            ),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[user.email],
        )
    except (SMTPException, OSError) as exc:
        logger.warning("Reset e-mail for user %s failed, retrying: %s", user_id, exc)
        raise self.retry(exc=exc)

    logger.info("Reset e-mail sent", extra={"user_id": str(user.pk)})
