from rest_framework import serializers

from apps.accounts.models import User
from apps.utils.validators import validate_phone

from .models import Address


class AddressSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Address
        fields = [
            "id",
            "type",
            "first_name",
            "last_name",
            "full_name",
            "company",
            "address_line1",
            "address_line2",
            "city",
            "state",
            "postal_code",
            "country",
            "phone",
            "label",
            "delivery_instructions",
            "is_default",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]
        extra_kwargs = {"phone": {"validators": [validate_phone]}}


class ProfileSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)
    addresses = AddressSerializer(many=True, read_only=True)

    class Meta:
        model = User
        fields = ["id", "email", "first_name", "last_name", "full_name", "phone", "role", "date_joined", "addresses"]
        read_only_fields = ["id", "email", "role", "date_joined"]
        extra_kwargs = {"phone": {"validators": [validate_phone]}}


class UserStatisticsSerializer(serializers.Serializer):
    total_addresses = serializers.IntegerField()
    default_address = AddressSerializer(allow_null=True)
    total_orders = serializers.IntegerField()
    total_spent = serializers.DecimalField(max_digits=12, decimal_places=2)
    account_age_days = serializers.IntegerField()
