from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.permissions import IsAdmin

from .models import StockMovementLog
from .serializers import StockAdjustmentSerializer, StockMovementLogSerializer
from .services import InventoryService


class StockAdjustmentView(APIView):
    """
    POST: manual stock correction (admin only).
    """
    permission_classes = [IsAdmin]

    def post(self, request):
        serializer = StockAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        product = InventoryService.manual_adjustment(
            product_id=data["product_id"],
            delta_qty=data["delta"],
            user=request.user,
            reason=data["reason"],
        )
        return Response(
            {
                "product_id": str(product.id),
                "sku": product.sku,
                "stock_quantity": product.stock_quantity,
                "in_stock": product.in_stock,
            },
            status=status.HTTP_200_OK,
        )


class StockMovementListView(generics.ListAPIView):
    permission_classes = [IsAdmin]
    serializer_class = StockMovementLogSerializer
    filterset_fields = ["product", "movement_type"]

    def get_queryset(self):
        return StockMovementLog.objects.select_related("product")
