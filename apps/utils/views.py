from django.conf import settings
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response


@api_view(["GET"])
@permission_classes([AllowAny])
def storefront_config(request):
    """Checkout constants, so cart previews price exactly like the server."""
    return Response({
        "currency": "USD",
        "tax_rate": str(settings.ORDER_TAX_RATE),
        "free_shipping_threshold": str(settings.FREE_SHIPPING_THRESHOLD),
        "flat_shipping_fee": str(settings.FLAT_SHIPPING_FEE),
        "max_item_quantity": settings.CART_MAX_ITEM_QUANTITY,
    })
