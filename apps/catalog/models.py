# apps/catalog/models.py
import uuid

from django.db import models
from django.utils.text import slugify

from apps.utils.models import TimestampedModel


def _unique_slug(model, value, instance_pk):
    base_slug = slugify(value)[:200] or "item"
    slug_candidate = base_slug
    counter = 1
    while model.objects.filter(slug=slug_candidate).exclude(pk=instance_pk).exists():
        slug_candidate = f"{base_slug}-{counter}"
        counter += 1
    return slug_candidate


class Category(models.Model):
    """
    Product category tree (e.g. Electronics > Audio > Headphones)
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    description = models.TextField(blank=True)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name="subcategories",
    )
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name_plural = "Categories"
        ordering = ["sort_order", "name"]
        indexes = [
            models.Index(fields=["parent", "sort_order"], name="category_parent_sort_idx"),
            models.Index(fields=["is_active"], name="category_active_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["parent", "name"],
                name="uniq_category_per_parent_name",
            )
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = _unique_slug(Category, self.name, self.pk)
        super().save(*args, **kwargs)


class Product(TimestampedModel):
    """
    Sellable item. `stock_quantity` is only changed through InventoryService.
    """
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    sku = models.CharField(
        max_length=100,
        unique=True,
        help_text="Human-readable code (e.g. HP-BT-500)",
    )
    description = models.TextField(blank=True)
    category = models.ForeignKey(
        Category,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="products",
    )

    price = models.DecimalField(max_digits=10, decimal_places=2)
    stock_quantity = models.PositiveIntegerField(default=0)
    in_stock = models.BooleanField(default=False)

    images = models.JSONField(default=list, blank=True)
    specifications = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["title"]
        indexes = [
            models.Index(fields=["is_active", "category"], name="product_active_category_idx"),
            models.Index(fields=["price"], name="product_price_idx"),
            models.Index(fields=["created_at"], name="product_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gte=0),
                name="product_price_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.sku} - {self.title}"

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = _unique_slug(Product, self.title, self.pk)
        self.in_stock = self.stock_quantity > 0
        super().save(*args, **kwargs)

    @property
    def primary_image(self):
        return self.images[0] if self.images else None
