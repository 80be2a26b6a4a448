from rest_framework import serializers

from .models import StockMovementLog


class StockAdjustmentSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    delta = serializers.IntegerField()
    reason = serializers.CharField(max_length=80)

    def validate_delta(self, value):
        if value == 0:
            raise serializers.ValidationError("Delta must be non-zero.")
        return value


class StockMovementLogSerializer(serializers.ModelSerializer):
    sku = serializers.CharField(source="product.sku", read_only=True)

    class Meta:
        model = StockMovementLog
        fields = [
            "id", "product", "sku", "quantity_change", "movement_type",
            "reference", "balance_after", "created_at",
        ]
