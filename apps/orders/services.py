import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from apps.accounts.policies import is_admin, require_owner_or_admin
from apps.catalog.models import Product
from apps.customers.models import Address
from apps.inventory.services import InventoryService
from apps.utils.exceptions import (
    Forbidden,
    GenerationExhausted,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    ValidationError,
)

from .models import Cart, CartItem, Order, OrderCancellation, OrderItem, OrderTimeline
from .numbering import generate_order_number, max_attempts
from .pricing import ZERO, compute_totals, to_money
from .signals import order_created, order_status_changed

logger = logging.getLogger(__name__)

Status = Order.Status

# Allowed single-step moves. Terminal states map to nothing.
TRANSITIONS = {
    Status.PENDING: {Status.CONFIRMED, Status.CANCELLED},
    Status.CONFIRMED: {Status.SHIPPED, Status.CANCELLED},
    Status.SHIPPED: {Status.DELIVERED},
    Status.DELIVERED: set(),
    Status.CANCELLED: set(),
}

# Happy path; the admin override may skip forward along it, never back.
FORWARD_PATH = [Status.PENDING, Status.CONFIRMED, Status.SHIPPED, Status.DELIVERED]

REQUIRED_ADDRESS_FIELDS = ("first_name", "last_name", "address_line1", "city", "state", "postal_code", "country")
SNAPSHOT_ADDRESS_FIELDS = REQUIRED_ADDRESS_FIELDS + ("company", "address_line2", "phone")


def validate_transition(current: str, new: str, override: bool = False) -> None:
    """
    Raises InvalidTransition unless `current -> new` is legal.
    """
    current, new = Status(current), Status(new)
    if current == new:
        raise InvalidTransition(f"Order is already {current}.")

    if new in TRANSITIONS[current]:
        return

    if override and current in FORWARD_PATH and new in FORWARD_PATH:
        if FORWARD_PATH.index(new) > FORWARD_PATH.index(current):
            return

    raise InvalidTransition(
        f"Cannot move order from {current} to {new}.",
        details={"from": current, "to": new},
    )


def _merge_lines(items):
    merged = {}
    for item in items:
        try:
            qty = int(item["quantity"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Each item needs a product_id and an integer quantity.")
        if qty <= 0:
            raise ValidationError("Quantity must be a positive integer.")
        pid = str(item["product_id"])
        merged[pid] = merged.get(pid, 0) + qty
    return [{"product_id": pid, "quantity": qty} for pid, qty in merged.items()]


class CartService:
    """
    Cart reads and writes. Prices always come from the catalog.
    """

    @staticmethod
    def get_cart(user) -> Cart:
        cart, _ = Cart.objects.get_or_create(user=user)
        return Cart.objects.prefetch_related("items__product").get(pk=cart.pk)

    @staticmethod
    def _check_quantity(product: Product, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError("Quantity must be a positive integer.")
        if quantity > settings.CART_MAX_ITEM_QUANTITY:
            raise ValidationError(f"At most {settings.CART_MAX_ITEM_QUANTITY} units per item.")
        if quantity > product.stock_quantity:
            raise InsufficientStock(
                f"Only {product.stock_quantity} of {product.title} available.",
                details={"product_id": str(product.id), "requested": quantity, "available": product.stock_quantity},
            )

    @staticmethod
    @transaction.atomic
    def add_item(user, product_id, quantity: int = 1) -> Cart:
        try:
            product = Product.objects.get(pk=product_id)
        except (Product.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound("Product not found.")
        if not product.is_active:
            raise ValidationError(f"{product.title} is currently unavailable.")

        cart, _ = Cart.objects.select_for_update().get_or_create(user=user)
        item = CartItem.objects.filter(cart=cart, product=product).first()
        new_quantity = quantity + (item.quantity if item else 0)
        CartService._check_quantity(product, new_quantity)

        if item:
            item.quantity = new_quantity
            item.save(update_fields=["quantity"])
        else:
            CartItem.objects.create(cart=cart, product=product, quantity=new_quantity)

        cart.save(update_fields=["updated_at"])
        return CartService.get_cart(user)

    @staticmethod
    def _get_item(user, item_id) -> CartItem:
        try:
            return CartItem.objects.select_related("product").get(pk=item_id, cart__user=user)
        except (CartItem.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound("Cart item not found.")

    @staticmethod
    @transaction.atomic
    def update_item(user, item_id, quantity: int) -> Cart:
        item = CartService._get_item(user, item_id)
        CartService._check_quantity(item.product, quantity)
        item.quantity = quantity
        item.save(update_fields=["quantity"])
        return CartService.get_cart(user)

    @staticmethod
    def remove_item(user, item_id) -> Cart:
        CartService._get_item(user, item_id).delete()
        return CartService.get_cart(user)

    @staticmethod
    def clear_cart(user) -> None:
        CartItem.objects.filter(cart__user=user).delete()

    @staticmethod
    def validate_cart(user) -> dict:
        cart = CartService.get_cart(user)
        items = [{"product_id": i.product_id, "quantity": i.quantity} for i in cart.items.all()]
        if not items:
            return {"is_valid": False, "errors": ["Cart is empty."]}
        errors = InventoryService.check_availability(items)
        return {"is_valid": not errors, "errors": errors}

    @staticmethod
    def get_checkout_items(user) -> list:
        """
        Locks the cart row so a double-submitted checkout serializes.
        """
        cart = Cart.objects.select_for_update().filter(user=user).first()
        if cart is None or not cart.items.exists():
            raise ValidationError("Cart is empty.")

        return [
            {"product_id": item.product_id, "quantity": item.quantity}
            for item in cart.items.all()
        ]

    @staticmethod
    def summarize(cart: Cart) -> dict:
        totals = compute_totals(cart.subtotal)
        return {**totals.as_dict(), "item_count": cart.item_count}


class OrderService:

    # --- Checkout -----------------------------------------------------------

    @staticmethod
    def _snapshot_address(data, kind: str) -> dict:
        if not isinstance(data, dict):
            raise ValidationError(f"{kind.capitalize()} address is required.")
        missing = [f for f in REQUIRED_ADDRESS_FIELDS if not str(data.get(f) or "").strip()]
        if missing:
            raise ValidationError(
                f"{kind.capitalize()} address is incomplete.",
                details={f: ["This field is required."] for f in missing},
            )
        return {f: data.get(f) or "" for f in SNAPSHOT_ADDRESS_FIELDS}

    @staticmethod
    def _resolve_address(user, address_id, address_data, kind: str):
        """
        Returns (Address or None, snapshot dict). Saved addresses must
        belong to the user and be usable for `kind`.
        """
        if address_id:
            try:
                address = Address.objects.get(pk=address_id, user=user)
            except (Address.DoesNotExist, ValueError, DjangoValidationError):
                raise NotFound(f"{kind.capitalize()} address not found.")
            if address.type not in (kind, Address.AddressType.BOTH):
                raise ValidationError(f"Address cannot be used for {kind}.")
            return address, address.as_order_snapshot()

        if address_data:
            return None, OrderService._snapshot_address(address_data, kind)

        raise ValidationError(f"{kind.capitalize()} address is required.")

    @staticmethod
    def _insert_order(**fields) -> Order:
        """
        Persist with a freshly minted number; a unique-constraint race
        with a concurrent checkout retries inside a savepoint.
        """
        for attempt in range(1, max_attempts() + 1):
            order_number = generate_order_number()
            try:
                with transaction.atomic():
                    return Order.objects.create(order_number=order_number, **fields)
            except IntegrityError:
                if not Order.objects.filter(order_number=order_number).exists():
                    raise
                logger.warning("Order number %s taken concurrently (attempt %d)", order_number, attempt)
        raise GenerationExhausted()

    @staticmethod
    @transaction.atomic
    def create_order(
        user,
        items,
        shipping_address,
        billing_address=None,
        payment_method: str = "",
        customer_notes: str = "",
        address=None,
    ) -> Order:
        """
        Secure Order Creation:
        1. Lock product rows and check stock for every line
        2. Price lines from the catalog (never from the client)
        3. Persist order, items, timeline and decrement stock in one transaction
        """
        lines = _merge_lines(items or [])
        if not lines:
            raise ValidationError("Order must contain at least one item.")

        shipping_snapshot = OrderService._snapshot_address(shipping_address, "shipping")
        billing_snapshot = (
            OrderService._snapshot_address(billing_address, "billing") if billing_address else shipping_snapshot
        )

        # A. Lock + validate (InsufficientStock aborts everything)
        products = InventoryService.lock_and_validate(lines)

        # B. Trusted price calculation
        subtotal = Decimal("0.00")
        priced = []
        for line in lines:
            product = products[line["product_id"]]
            line_total = product.price * line["quantity"]
            subtotal += line_total
            priced.append((product, line["quantity"], line_total))

        totals = compute_totals(subtotal)

        # C. Order row
        order = OrderService._insert_order(
            user=user,
            status=Status.PENDING,
            subtotal=totals.subtotal,
            tax=totals.tax,
            shipping=totals.shipping,
            total=totals.total,
            shipping_address=shipping_snapshot,
            billing_address=billing_snapshot,
            address=address,
            payment_method=payment_method or "",
            customer_notes=customer_notes or "",
        )

        # D. Items (snapshots)
        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                product=product,
                product_title=product.title,
                product_sku=product.sku,
                product_image=product.primary_image or "",
                unit_price=product.price,
                quantity=qty,
                line_total=to_money(line_total),
            )
            for product, qty, line_total in priced
        ])

        # E. Stock decrement under the locks taken in A
        InventoryService.reserve_stock(lines, reference=order.order_number, user=user)

        # F. Timeline
        OrderTimeline.objects.create(
            order=order,
            status=Status.PENDING,
            note="Order placed.",
            created_by=user,
        )

        logger.info(
            "Order %s created",
            order.order_number,
            extra={"order_id": str(order.id), "order_number": order.order_number, "user_id": str(user.pk)},
        )
        transaction.on_commit(lambda: order_created.send(sender=Order, order=order))
        return order

    @staticmethod
    @transaction.atomic
    def create_order_from_cart(
        user,
        shipping_address_id=None,
        shipping_address=None,
        billing_address_id=None,
        billing_address=None,
        payment_method: str = "",
        customer_notes: str = "",
    ) -> Order:
        """
        Checkout entry point: cart -> order, then the cart is emptied.
        """
        items = CartService.get_checkout_items(user)

        address, shipping_snapshot = OrderService._resolve_address(
            user, shipping_address_id, shipping_address, "shipping"
        )
        if billing_address_id or billing_address:
            _, billing_snapshot = OrderService._resolve_address(
                user, billing_address_id, billing_address, "billing"
            )
        else:
            billing_snapshot = shipping_snapshot

        order = OrderService.create_order(
            user,
            items,
            shipping_address=shipping_snapshot,
            billing_address=billing_snapshot,
            payment_method=payment_method,
            customer_notes=customer_notes,
            address=address,
        )
        CartService.clear_cart(user)
        return order

    # --- Lifecycle ----------------------------------------------------------

    @staticmethod
    def _get_for_update(order_id) -> Order:
        try:
            return Order.objects.select_for_update().get(pk=order_id)
        except (Order.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound("Order not found.")

    @staticmethod
    @transaction.atomic
    def update_order_status(
        order_id,
        new_status: str,
        actor,
        override: bool = False,
        tracking_number=None,
        note: str = "",
    ) -> Order:
        if new_status not in Status.values:
            raise ValidationError(
                f"Unknown status '{new_status}'.",
                details={"status": [f"Must be one of: {', '.join(Status.values)}."]},
            )

        order = OrderService._get_for_update(order_id)

        require_owner_or_admin(actor, order.user_id).enforce()
        admin = is_admin(actor)
        if not admin and new_status != Status.CANCELLED:
            raise Forbidden("Only administrators can change order status.")
        if override and not admin:
            raise Forbidden("Only administrators can override the order workflow.")

        validate_transition(order.status, new_status, override=override)

        previous = order.status
        now = timezone.now()
        order.status = new_status
        update_fields = ["status", "updated_at"]

        if new_status in (Status.SHIPPED, Status.DELIVERED) and order.shipped_at is None:
            order.shipped_at = now
            update_fields.append("shipped_at")
        if tracking_number:
            order.tracking_number = tracking_number
            update_fields.append("tracking_number")
        if new_status == Status.DELIVERED:
            order.delivered_at = now
            update_fields.append("delivered_at")
        if new_status == Status.CANCELLED:
            order.cancelled_at = now
            update_fields.append("cancelled_at")

        order.save(update_fields=update_fields)

        if new_status == Status.CANCELLED:
            # Compensating action: give the reserved units back
            InventoryService.release_stock(
                [{"product_id": i.product_id, "quantity": i.quantity} for i in order.items.all()],
                reference=f"CANCEL-{order.order_number}",
                user=actor,
            )
            OrderCancellation.objects.create(
                order=order,
                previous_status=previous,
                reason=note,
                cancelled_by=(
                    OrderCancellation.CancelledBy.ADMIN if admin else OrderCancellation.CancelledBy.CUSTOMER
                ),
                cancelled_by_user=actor,
            )

        OrderTimeline.objects.create(
            order=order,
            previous_status=previous,
            status=new_status,
            note=note or ("Administrative override." if override else ""),
            created_by=actor,
        )

        logger.info(
            "Order %s: %s -> %s",
            order.order_number,
            previous,
            new_status,
            extra={"order_id": str(order.id), "order_number": order.order_number, "user_id": str(actor.pk)},
        )
        transaction.on_commit(
            lambda: order_status_changed.send(
                sender=Order, order=order, old_status=previous, new_status=new_status
            )
        )
        return order

    @staticmethod
    def cancel_order(order_id, actor, reason: str = "") -> Order:
        return OrderService.update_order_status(order_id, Status.CANCELLED, actor, note=reason)

    # --- Reads --------------------------------------------------------------

    @staticmethod
    def get_order(order_id) -> Order:
        try:
            return Order.objects.with_items().get(pk=order_id)
        except (Order.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound("Order not found.")

    @staticmethod
    def get_order_history(user, status=None, start_date=None, end_date=None):
        qs = Order.objects.for_user(user).prefetch_related("items")
        if status:
            qs = qs.filter(status=status)
        if start_date:
            qs = qs.filter(created_at__gte=start_date)
        if end_date:
            qs = qs.filter(created_at__lte=end_date)
        return qs.order_by("-created_at")

    @staticmethod
    def get_order_statistics(start_date=None, end_date=None) -> dict:
        """
        Counts and totals per status inside the window. Revenue and the
        average exclude cancelled orders.
        """
        qs = Order.objects.all()
        if start_date:
            qs = qs.filter(created_at__gte=start_date)
        if end_date:
            qs = qs.filter(created_at__lte=end_date)

        by_status = {s: {"count": 0, "total": ZERO} for s in Status.values}
        rows = qs.order_by().values("status").annotate(count=Count("id"), total=Sum("total"))
        for row in rows:
            by_status[row["status"]] = {"count": row["count"], "total": to_money(row["total"] or 0)}

        total_orders = sum(s["count"] for s in by_status.values())
        billable = {k: v for k, v in by_status.items() if k != Status.CANCELLED}
        billable_count = sum(s["count"] for s in billable.values())
        total_revenue = sum((s["total"] for s in billable.values()), ZERO)
        average = to_money(total_revenue / billable_count) if billable_count else ZERO

        daily = (
            qs.annotate(day=TruncDate("created_at"))
            .order_by()
            .values("day")
            .annotate(
                count=Count("id"),
                revenue=Sum("total", filter=~Q(status=Status.CANCELLED)),
            )
            .order_by("day")
        )

        return {
            "total_orders": total_orders,
            "total_revenue": to_money(total_revenue),
            "average_order_value": average,
            "orders_by_status": by_status,
            "daily": [
                {"date": row["day"], "count": row["count"], "revenue": to_money(row["revenue"] or 0)}
                for row in daily
            ],
        }
