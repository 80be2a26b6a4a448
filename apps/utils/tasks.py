import logging

from celery import shared_task
from django.utils import timezone

from .models import IdempotencyKey

logger = logging.getLogger(__name__)


@shared_task
def purge_expired_idempotency_keys():
    deleted, _ = IdempotencyKey.objects.filter(expires_at__lt=timezone.now()).delete()
    if deleted:
        logger.info("Purged %d expired idempotency keys", deleted)
    return deleted
