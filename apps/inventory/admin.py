# apps/inventory/admin.py
from django.contrib import admin

from .models import StockMovementLog


@admin.register(StockMovementLog)
class StockMovementLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "movement_type", "product", "quantity_change", "balance_after", "reference")
    list_filter = ("movement_type", "created_at")
    search_fields = ("reference", "product__sku")

    def has_add_permission(self, request):
        return False  # Logs are immutable/system-generated

    def has_change_permission(self, request, obj=None):
        return False
