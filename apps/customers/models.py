# apps/customers/models.py
from django.conf import settings
from django.db import models
from django.db.models import Q

from apps.utils.models import TimestampedModel


class Address(TimestampedModel):
    class AddressType(models.TextChoices):
        SHIPPING = "shipping", "Shipping"
        BILLING = "billing", "Billing"
        BOTH = "both", "Shipping & Billing"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="addresses",
    )
    type = models.CharField(max_length=10, choices=AddressType.choices, default=AddressType.BOTH)

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    company = models.CharField(max_length=100, blank=True)

    address_line1 = models.CharField(max_length=255)
    address_line2 = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    postal_code = models.CharField(max_length=20)
    country = models.CharField(max_length=100, default="United States")
    phone = models.CharField(max_length=20, blank=True)

    label = models.CharField(max_length=100, blank=True)  # Home, Work, etc
    delivery_instructions = models.TextField(blank=True)

    is_default = models.BooleanField(default=False)

    class Meta:
        ordering = ["-is_default", "-created_at"]
        indexes = [
            models.Index(fields=["user", "is_default"], name="address_user_default_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user"],
                condition=Q(is_default=True),
                name="uniq_default_address_per_user",
            )
        ]

    def __str__(self):
        return f"{self.label or self.address_line1} ({self.user_id})"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def as_order_snapshot(self):
        """
        Snapshot-safe representation for Orders
        """
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "company": self.company,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "phone": self.phone,
        }
