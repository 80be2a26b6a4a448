import logging
import secrets

from django.conf import settings

from apps.utils.exceptions import GenerationExhausted

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = "ORD"
SEQUENCE_DIGITS = 11


def _random_sequence() -> str:
    return f"{secrets.randbelow(10 ** SEQUENCE_DIGITS):0{SEQUENCE_DIGITS}d}"


def max_attempts() -> int:
    return int(getattr(settings, "ORDER_NUMBER_MAX_ATTEMPTS", 5))


def generate_order_number() -> str:
    """
    ORD + 11 random digits, checked against persisted orders.

    The unique column on Order.order_number is the final arbiter; the
    service retries its insert if a concurrent checkout wins the race.
    """
    from .models import Order

    for attempt in range(1, max_attempts() + 1):
        candidate = f"{ORDER_NUMBER_PREFIX}{_random_sequence()}"
        if not Order.objects.filter(order_number=candidate).exists():
            return candidate
        logger.warning("Order number collision on attempt %d", attempt)

    raise GenerationExhausted()
