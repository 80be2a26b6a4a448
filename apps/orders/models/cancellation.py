import uuid

from django.conf import settings
from django.db import models

from .order import Order

__all__ = ["OrderCancellation"]


class OrderCancellation(models.Model):
    """One row per cancelled order."""

    class CancelledBy(models.TextChoices):
        CUSTOMER = "CUSTOMER", "Customer"
        ADMIN = "ADMIN", "Admin"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.OneToOneField(Order, related_name="cancellation", on_delete=models.CASCADE)

    # Status the order left; only pending or confirmed orders can be cancelled
    previous_status = models.CharField(max_length=20, choices=Order.Status.choices)
    reason = models.TextField(blank=True)
    cancelled_by = models.CharField(max_length=20, choices=CancelledBy.choices, default=CancelledBy.CUSTOMER)
    cancelled_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        related_name="orders_cancelled",
        on_delete=models.SET_NULL,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_cancellations"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["cancelled_by", "created_at"], name="cancel_by_created_idx"),
        ]

    def __str__(self):
        return f"{self.order_id} cancelled by {self.get_cancelled_by_display().lower()}"
