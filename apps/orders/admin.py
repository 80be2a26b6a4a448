import json

from django.contrib import admin
from django.utils.html import format_html

from .models import Cart, CartItem, Order, OrderCancellation, OrderItem, OrderTimeline


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("product", "product_title", "product_sku", "unit_price", "quantity", "line_total")

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class OrderTimelineInline(admin.TabularInline):
    model = OrderTimeline
    extra = 0
    readonly_fields = ("timestamp", "previous_status", "status", "note", "created_by")

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Read-only order view. Status changes go through the API so the
    workflow rules and stock release always apply.
    """
    list_display = ("order_number", "user", "status", "total", "created_at")
    list_filter = ("status", "created_at")
    search_fields = ("order_number", "user__email", "tracking_number")
    inlines = [OrderItemInline, OrderTimelineInline]

    readonly_fields = (
        "id",
        "order_number",
        "user",
        "status",
        "subtotal",
        "tax",
        "shipping",
        "total",
        "formatted_shipping_address",
        "formatted_billing_address",
        "payment_method",
        "tracking_number",
        "customer_notes",
        "created_at",
        "updated_at",
        "shipped_at",
        "delivered_at",
        "cancelled_at",
    )

    fieldsets = (
        ("Order Details", {
            "fields": ("order_number", "id", "status", "user", "tracking_number")
        }),
        ("Financials", {
            "fields": ("subtotal", "tax", "shipping", "total", "payment_method")
        }),
        ("Addresses", {
            "fields": ("formatted_shipping_address", "formatted_billing_address")
        }),
        ("Notes", {
            "fields": ("customer_notes", "notes")
        }),
        ("System Data", {
            "fields": ("created_at", "updated_at", "shipped_at", "delivered_at", "cancelled_at"),
            "classes": ("collapse",)
        }),
    )

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.display(description="Shipping Address Snapshot")
    def formatted_shipping_address(self, obj):
        return format_html("<pre>{}</pre>", json.dumps(obj.shipping_address, indent=2))

    @admin.display(description="Billing Address Snapshot")
    def formatted_billing_address(self, obj):
        return format_html("<pre>{}</pre>", json.dumps(obj.billing_address, indent=2))


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    readonly_fields = ("product", "quantity", "added_at")
    can_delete = False


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "updated_at")
    search_fields = ("user__email",)
    readonly_fields = ("user", "created_at", "updated_at")
    inlines = [CartItemInline]

    def has_add_permission(self, request):
        return False


@admin.register(OrderCancellation)
class OrderCancellationAdmin(admin.ModelAdmin):
    list_display = ("order", "previous_status", "cancelled_by", "created_at")
    list_filter = ("cancelled_by",)
    search_fields = ("order__order_number", "reason")
    readonly_fields = ("order", "previous_status", "reason", "cancelled_by", "cancelled_by_user", "created_at")

    def has_delete_permission(self, request, obj=None):
        return False
