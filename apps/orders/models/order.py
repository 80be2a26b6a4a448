from django.conf import settings
from django.db import models

from apps.utils.models import TimestampedModel

__all__ = ["Order", "OrderQuerySet"]


class OrderQuerySet(models.QuerySet):
    def with_items(self):
        """Full aggregate (order + items + timeline) in a fixed number of queries."""
        return self.select_related("user", "cancellation").prefetch_related(
            "items",
            "timeline",
        )

    def for_user(self, user):
        return self.filter(user=user)


class Order(TimestampedModel):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        SHIPPED = "shipped", "Shipped"
        DELIVERED = "delivered", "Delivered"
        CANCELLED = "cancelled", "Cancelled"

    order_number = models.CharField(max_length=14, unique=True, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="orders")

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)

    subtotal = models.DecimalField(max_digits=10, decimal_places=2)
    tax = models.DecimalField(max_digits=10, decimal_places=2)
    shipping = models.DecimalField(max_digits=10, decimal_places=2)
    total = models.DecimalField(max_digits=10, decimal_places=2)

    # Snapshot of Address (JSON) to prevent historical drift
    shipping_address = models.JSONField()
    billing_address = models.JSONField()
    address = models.ForeignKey(
        "customers.Address",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="orders",
    )

    payment_method = models.CharField(max_length=50, blank=True)
    tracking_number = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True, help_text="Internal notes")
    customer_notes = models.TextField(blank=True)

    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="order_user_created_idx"),
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total__gte=0),
                name="order_total_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.order_number} [{self.status}]"

    @property
    def item_count(self):
        return sum(item.quantity for item in self.items.all())
