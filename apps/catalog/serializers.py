# apps/catalog/serializers.py
from rest_framework import serializers

from .models import Category, Product


class CategorySerializer(serializers.ModelSerializer):
    subcategories = serializers.SerializerMethodField(read_only=True)

    class Meta:
        model = Category
        fields = [
            "id",
            "name",
            "slug",
            "description",
            "parent",
            "is_active",
            "sort_order",
            "subcategories",
        ]
        read_only_fields = ["slug"]

    def get_subcategories(self, obj):
        qs = obj.subcategories.filter(is_active=True).order_by("sort_order", "name")
        return CategorySerializer(qs, many=True, context=self.context).data


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True, default=None)

    class Meta:
        model = Product
        fields = [
            "id",
            "title",
            "slug",
            "sku",
            "description",
            "category",
            "category_name",
            "price",
            "stock_quantity",
            "in_stock",
            "images",
            "specifications",
            "is_active",
            "created_at",
            "updated_at",
        ]
        # Stock moves only through the inventory adjustment endpoint
        read_only_fields = ["slug", "stock_quantity", "in_stock", "created_at", "updated_at"]

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError("Price cannot be negative.")
        return value
