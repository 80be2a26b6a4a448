# apps/catalog/admin.py
from django.contrib import admin

from .models import Category, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "parent", "is_active", "sort_order")
    list_filter = ("is_active", "parent")
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}
    ordering = ("sort_order", "name")


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("sku", "title", "category", "price", "stock_quantity", "in_stock", "is_active")
    search_fields = ("sku", "title", "description")
    list_filter = ("category", "is_active", "in_stock")
    list_editable = ("price", "is_active")
    readonly_fields = ("stock_quantity", "in_stock", "created_at", "updated_at")
