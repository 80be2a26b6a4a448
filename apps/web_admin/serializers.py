from rest_framework import serializers

from apps.accounts.models import Role, User
from apps.orders.models import Order
from apps.orders.serializers import OrderStatisticsSerializer


class AdminOrderSerializer(serializers.ModelSerializer):
    customer_email = serializers.EmailField(source="user.email", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_email",
            "status",
            "total",
            "payment_method",
            "tracking_number",
            "created_at",
        ]


class AdminUserSerializer(serializers.ModelSerializer):
    order_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "first_name",
            "last_name",
            "phone",
            "role",
            "is_active",
            "date_joined",
            "last_login",
            "order_count",
        ]
        read_only_fields = fields


class AdminUserUpdateSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    last_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=Role.choices, required=False)
    is_active = serializers.BooleanField(required=False)


class CountsSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    active = serializers.IntegerField()


class UserCountsSerializer(CountsSerializer):
    admins = serializers.IntegerField()


class ProductCountsSerializer(CountsSerializer):
    out_of_stock = serializers.IntegerField()


class DashboardSerializer(serializers.Serializer):
    orders = OrderStatisticsSerializer()
    users = UserCountsSerializer()
    products = ProductCountsSerializer()
    recent_orders = AdminOrderSerializer(many=True)
