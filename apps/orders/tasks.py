import logging
from smtplib import SMTPException

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "pending": "We received your order and will confirm it shortly.",
    "confirmed": "Your order is confirmed and being prepared.",
    "shipped": "Your order is on its way.",
    "delivered": "Your order was delivered. Enjoy!",
    "cancelled": "Your order was cancelled. Any reserved items were released.",
}


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_order_status_email(self, order_id: str, status: str):
    from .models import Order

    order = Order.objects.select_related("user").filter(pk=order_id).first()
    if order is None:
        logger.warning("Status e-mail skipped: order %s not found", order_id)
        return

    lines = [
        f"Hi {order.user.first_name or order.user.email},",
        "",
        STATUS_MESSAGES.get(status, f"Your order status is now {status}."),
        "",
        f"Order: {order.order_number}",
        f"Total: {order.total}",
    ]
    if status == "shipped" and order.tracking_number:
        lines.append(f"Tracking number: {order.tracking_number}")
    lines.append(f"Details: {settings.FRONTEND_URL}/orders/{order.id}")

    try:
        send_mail(
            subject=f"Order {order.order_number}: {status}",
            message="\n".join(lines),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[order.user.email],
        )
    except (SMTPException, OSError) as exc:
        logger.warning("Status e-mail for %s failed, retrying: %s", order.order_number, exc)
        raise self.retry(exc=exc)

    logger.info("Status e-mail sent", extra={"order_id": str(order.id), "order_number": order.order_number})
