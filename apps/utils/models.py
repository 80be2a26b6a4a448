import uuid

from django.db import models
from django.utils import timezone


class TimestampedModel(models.Model):
    """
    Common timestamps for all models
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class IdempotencyKey(models.Model):
    """
    Stored response for a client-supplied Idempotency-Key.
    A replay with the same key and body gets this response back.
    """
    key = models.CharField(max_length=128, unique=True)
    route = models.CharField(max_length=255)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField()
    response_body = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField(db_index=True)

    class Meta:
        db_table = "idempotency_keys"

    def __str__(self):
        return f"{self.route} [{self.response_status}]"

    def is_expired(self):
        return timezone.now() >= self.expires_at
