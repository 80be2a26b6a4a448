# apps/web_admin/views.py
from rest_framework import filters, mixins, viewsets
from rest_framework.response import Response
from rest_framework.views import APIView
from django_filters import rest_framework as django_filters

from apps.accounts.permissions import IsAdmin
from apps.orders.filters import OrderFilter
from apps.orders.models import Order
from apps.orders.serializers import DateWindowSerializer, OrderSerializer

from .serializers import AdminOrderSerializer, AdminUserSerializer, AdminUserUpdateSerializer, DashboardSerializer
from .services import AdminService


class DashboardView(APIView):
    """
    GET /api/admin/dashboard/?start_date=&end_date=
    """
    permission_classes = [IsAdmin]

    def get(self, request):
        params = DateWindowSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        data = AdminService.dashboard(**params.validated_data)
        return Response(DashboardSerializer(data).data)


class AdminOrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Every customer's orders. Status changes go through /api/orders/{id}/status/.
    """
    permission_classes = [IsAdmin]
    filter_backends = [django_filters.DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = OrderFilter
    search_fields = ["order_number", "user__email", "tracking_number"]
    ordering_fields = ["created_at", "total", "status"]

    def get_queryset(self):
        if self.action == "retrieve":
            return Order.objects.with_items()
        return Order.objects.select_related("user")

    def get_serializer_class(self):
        if self.action == "retrieve":
            return OrderSerializer
        return AdminOrderSerializer


class AdminUserViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    permission_classes = [IsAdmin]
    serializer_class = AdminUserSerializer
    filter_backends = [django_filters.DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ["role", "is_active"]
    search_fields = ["email", "first_name", "last_name"]
    http_method_names = ["get", "patch", "head", "options"]

    def get_queryset(self):
        return AdminService.users_queryset()

    def partial_update(self, request, pk=None):
        serializer = AdminUserUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        user = AdminService.update_user(request.user, pk, dict(serializer.validated_data))
        return Response(AdminUserSerializer(user).data)
