import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q, Sum
from django.utils import timezone

from apps.utils.exceptions import NotFound

from .models import Address

logger = logging.getLogger(__name__)


class CustomerService:
    """
    Address book rules. Every write locks the owner's row first so the
    one-default-per-user rule cannot race.
    """

    @staticmethod
    def _lock_owner(user):
        return get_user_model().objects.select_for_update().get(pk=user.pk)

    @staticmethod
    def list_addresses(user, address_type=None, is_default=None):
        qs = Address.objects.filter(user=user)
        if address_type:
            # "both" addresses satisfy either role
            qs = qs.filter(Q(type=address_type) | Q(type=Address.AddressType.BOTH))
        if is_default is not None:
            qs = qs.filter(is_default=is_default)
        return qs

    @staticmethod
    def get_address(user, address_id) -> Address:
        try:
            return Address.objects.get(pk=address_id, user=user)
        except (Address.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound("Address not found.")

    @staticmethod
    @transaction.atomic
    def create_address(user, **data) -> Address:
        CustomerService._lock_owner(user)
        is_default = data.pop("is_default", False)

        # First address is ALWAYS default
        if not Address.objects.filter(user=user).exists():
            is_default = True

        if is_default:
            Address.objects.filter(user=user, is_default=True).update(is_default=False)

        address = Address.objects.create(user=user, is_default=is_default, **data)
        logger.info("Address %s created", address.id, extra={"user_id": str(user.pk)})
        return address

    @staticmethod
    @transaction.atomic
    def update_address(user, address_id, data) -> Address:
        CustomerService._lock_owner(user)
        address = CustomerService.get_address(user, address_id)

        make_default = data.pop("is_default", None)
        for field, value in data.items():
            setattr(address, field, value)
        address.save()

        if make_default and not address.is_default:
            address = CustomerService.set_default_address(user, address.id)
        return address

    @staticmethod
    @transaction.atomic
    def delete_address(user, address_id) -> None:
        CustomerService._lock_owner(user)
        address = CustomerService.get_address(user, address_id)
        was_default = address.is_default
        address.delete()

        if was_default:
            successor = Address.objects.filter(user=user).order_by("-created_at").first()
            if successor:
                successor.is_default = True
                successor.save(update_fields=["is_default", "updated_at"])

    @staticmethod
    @transaction.atomic
    def set_default_address(user, address_id) -> Address:
        CustomerService._lock_owner(user)
        target_address = CustomerService.get_address(user, address_id)

        if target_address.is_default:
            return target_address

        # Unset previous default before setting the new one
        Address.objects.filter(user=user, is_default=True).update(is_default=False)

        target_address.is_default = True
        target_address.save(update_fields=["is_default", "updated_at"])
        return target_address

    @staticmethod
    def get_default_address(user):
        return Address.objects.filter(user=user, is_default=True).first()

    @staticmethod
    def get_statistics(user) -> dict:
        default = CustomerService.get_default_address(user)
        orders = user.orders.exclude(status="cancelled")
        return {
            "total_addresses": Address.objects.filter(user=user).count(),
            "default_address": default,
            "total_orders": user.orders.count(),
            "total_spent": orders.aggregate(total=Sum("total"))["total"] or 0,
            "account_age_days": (timezone.now() - user.date_joined).days,
        }
