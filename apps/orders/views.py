from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.accounts.permissions import IsAdmin, IsAuthenticatedUser, IsOwnerOrAdmin
from apps.utils.middleware import STORE_RESPONSE_HEADER

from .serializers import (
    CartItemAddSerializer,
    CartItemUpdateSerializer,
    CartSerializer,
    CheckoutSerializer,
    DateWindowSerializer,
    OrderCancelSerializer,
    OrderHistoryQuerySerializer,
    OrderListSerializer,
    OrderSerializer,
    OrderStatisticsSerializer,
    OrderStatusUpdateSerializer,
)
from .services import CartService, OrderService


class OrderViewSet(viewsets.GenericViewSet):
    """
    POST   /api/orders/                 checkout (cart -> order)
    GET    /api/orders/                 own order history
    GET    /api/orders/statistics/      admin
    GET    /api/orders/{id}/            owner or admin
    POST   /api/orders/{id}/cancel/     owner or admin
    PUT    /api/orders/{id}/status/     admin
    """
    serializer_class = OrderSerializer
    owner_field = "user_id"

    def get_permissions(self):
        if self.action in ("statistics", "update_status"):
            return [IsAdmin()]
        if self.action in ("retrieve", "cancel"):
            return [IsOwnerOrAdmin()]
        return [IsAuthenticatedUser()]

    def _get_checked_order(self, request, pk):
        order = OrderService.get_order(pk)
        self.check_object_permissions(request, order)
        return order

    def list(self, request):
        params = OrderHistoryQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        qs = OrderService.get_order_history(request.user, **params.validated_data)
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(OrderListSerializer(page, many=True).data)
        return Response(OrderListSerializer(qs, many=True).data)

    def create(self, request):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderService.create_order_from_cart(request.user, **serializer.validated_data)

        response = Response(
            OrderSerializer(OrderService.get_order(order.pk)).data,
            status=status.HTTP_201_CREATED,
        )
        # Retries with the same Idempotency-Key replay this response
        response[STORE_RESPONSE_HEADER] = "1"
        return response

    def retrieve(self, request, pk=None):
        order = self._get_checked_order(request, pk)
        return Response(OrderSerializer(order).data)

    @action(detail=False, methods=["get"])
    def statistics(self, request):
        params = DateWindowSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        stats = OrderService.get_order_statistics(**params.validated_data)
        return Response(OrderStatisticsSerializer(stats).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        self._get_checked_order(request, pk)
        serializer = OrderCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderService.cancel_order(pk, request.user, reason=serializer.validated_data["reason"])
        return Response(OrderSerializer(OrderService.get_order(order.pk)).data)

    @action(detail=True, methods=["put"], url_path="status")
    def update_status(self, request, pk=None):
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = OrderService.update_order_status(
            pk,
            data["status"],
            actor=request.user,
            override=data["override"],
            tracking_number=data.get("tracking_number") or None,
            note=data.get("note", ""),
        )
        return Response(OrderSerializer(OrderService.get_order(order.pk)).data)


class CartViewSet(viewsets.ViewSet):
    """
    GET    /api/cart/
    POST   /api/cart/items/
    PATCH  /api/cart/items/{item_id}/
    DELETE /api/cart/items/{item_id}/
    POST   /api/cart/clear/
    GET    /api/cart/validate/
    """

    def list(self, request):
        cart = CartService.get_cart(request.user)
        return Response(CartSerializer(cart).data)

    @action(detail=False, methods=["post"], url_path="items")
    def add_item(self, request):
        serializer = CartItemAddSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        cart = CartService.add_item(
            request.user,
            serializer.validated_data["product_id"],
            serializer.validated_data["quantity"],
        )
        return Response(CartSerializer(cart).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["patch", "delete"], url_path=r"items/(?P<item_id>[^/.]+)")
    def item(self, request, item_id=None):
        if request.method == "DELETE":
            cart = CartService.remove_item(request.user, item_id)
            return Response(CartSerializer(cart).data)

        serializer = CartItemUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = CartService.update_item(request.user, item_id, serializer.validated_data["quantity"])
        return Response(CartSerializer(cart).data)

    @action(detail=False, methods=["post"])
    def clear(self, request):
        CartService.clear_cart(request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["get"])
    def validate(self, request):
        return Response(CartService.validate_cart(request.user))
