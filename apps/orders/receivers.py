from django.dispatch import receiver

from .signals import order_created, order_status_changed
from .tasks import send_order_status_email


@receiver(order_created)
def notify_user_on_creation(sender, order, **kwargs):
    send_order_status_email.delay(str(order.id), order.status)


@receiver(order_status_changed)
def notify_user_on_status_change(sender, order, old_status, new_status, **kwargs):
    send_order_status_email.delay(str(order.id), new_status)
