# apps/web_admin/services.py
import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count, Q

from apps.accounts.models import Role
from apps.catalog.models import Product
from apps.orders.models import Order
from apps.orders.services import OrderService
from apps.utils.exceptions import Forbidden, NotFound

logger = logging.getLogger(__name__)

User = get_user_model()

RECENT_ORDERS_LIMIT = 5


class AdminService:

    @staticmethod
    def dashboard(start_date=None, end_date=None) -> dict:
        users = User.objects.aggregate(
            total=Count("id"),
            active=Count("id", filter=Q(is_active=True)),
            admins=Count("id", filter=Q(role=Role.ADMIN)),
        )
        products = Product.objects.aggregate(
            total=Count("id"),
            active=Count("id", filter=Q(is_active=True)),
            out_of_stock=Count("id", filter=Q(is_active=True, stock_quantity=0)),
        )
        recent = Order.objects.select_related("user").order_by("-created_at")[:RECENT_ORDERS_LIMIT]

        return {
            "orders": OrderService.get_order_statistics(start_date, end_date),
            "users": users,
            "products": products,
            "recent_orders": list(recent),
        }

    @staticmethod
    def users_queryset():
        return User.objects.annotate(order_count=Count("orders"))

    @staticmethod
    @transaction.atomic
    def update_user(actor, user_id, data: dict):
        try:
            user = User.objects.select_for_update().get(pk=user_id)
        except (User.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound("User not found.")

        new_role = data.get("role", user.role)
        if data.get("is_active") is False and (user.role == Role.ADMIN or new_role == Role.ADMIN):
            raise Forbidden("Admin accounts cannot be deactivated.")
        if user.pk == actor.pk and new_role != user.role:
            raise Forbidden("You cannot change your own role.")

        for field, value in data.items():
            setattr(user, field, value)
        if "role" in data:
            user.is_staff = new_role == Role.ADMIN
        user.save()

        logger.info(
            "User %s updated by %s: %s",
            user.email,
            actor.email,
            sorted(data),
            extra={"user_id": str(actor.pk)},
        )
        return AdminService.users_queryset().get(pk=user.pk)
