import logging
import uuid
from typing import Dict, Iterable, List

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F

from apps.catalog.models import Product
from apps.utils.exceptions import InsufficientStock, NotFound, ValidationError

from .models import StockMovementLog

logger = logging.getLogger(__name__)


def _merge_items(items: Iterable[Dict]) -> Dict[str, int]:
    """
    Collapse duplicate product lines and reject non-positive quantities.
    Returns {product_id(str): quantity}.
    """
    merged: Dict[str, int] = {}
    for item in items:
        qty = int(item["quantity"])
        if qty <= 0:
            raise ValidationError("Quantity must be a positive integer.")
        pid = str(item["product_id"])
        merged[pid] = merged.get(pid, 0) + qty
    return merged


def _uuid_ids(ids: Iterable[str]) -> List[str]:
    """Drop ids that can never match a product row (they surface as unavailable)."""
    valid = []
    for pid in ids:
        try:
            uuid.UUID(pid)
        except ValueError:
            continue
        valid.append(pid)
    return valid


class InventoryService:
    """
    Core Logic for Inventory Management.
    ALL stock changes must pass through here.
    """

    @staticmethod
    def check_availability(items: List[Dict]) -> List[str]:
        """
        Lock-free pre-check (cart validation). Returns human-readable problems;
        the authoritative check happens in reserve_stock under row locks.
        """
        wanted = _merge_items(items)
        products = {str(p.id): p for p in Product.objects.filter(id__in=_uuid_ids(wanted))}
        problems = []
        for pid, qty in wanted.items():
            product = products.get(pid)
            if product is None or not product.is_active:
                problems.append(f"Product {pid} is no longer available.")
            elif product.stock_quantity < qty:
                problems.append(
                    f"Only {product.stock_quantity} of {product.title} available (requested {qty})."
                )
        return problems

    @staticmethod
    @transaction.atomic
    def lock_and_validate(items: List[Dict]) -> Dict[str, Product]:
        """
        Locks product rows in deterministic order to prevent deadlocks,
        then checks every line. Raises InsufficientStock on the first short line.
        """
        wanted = _merge_items(items)
        product_ids = sorted(wanted.keys())

        products = (
            Product.objects
            .select_for_update()
            .filter(id__in=_uuid_ids(product_ids))
            .order_by("id")
        )
        product_map = {str(p.id): p for p in products}

        for pid in product_ids:
            qty_needed = wanted[pid]
            product = product_map.get(pid)
            if product is None or not product.is_active:
                raise NotFound(f"Product {pid} is no longer available.", code="product_unavailable")
            if product.stock_quantity < qty_needed:
                raise InsufficientStock(
                    f"Insufficient stock for {product.sku}. "
                    f"Required: {qty_needed}, Available: {product.stock_quantity}",
                    details={"product_id": pid, "requested": qty_needed, "available": product.stock_quantity},
                )

        return product_map

    @staticmethod
    @transaction.atomic
    def reserve_stock(items: List[Dict], reference: str, user=None) -> Dict[str, Product]:
        """
        Check-and-decrement under the same row locks (checkout).
        Returns the locked products keyed by id for pricing.
        """
        product_map = InventoryService.lock_and_validate(items)
        wanted = _merge_items(items)
        logs = []

        for pid, qty in wanted.items():
            product = product_map[pid]
            Product.objects.filter(pk=product.pk).update(stock_quantity=F("stock_quantity") - qty)
            product.refresh_from_db(fields=["stock_quantity"])
            Product.objects.filter(pk=product.pk).update(in_stock=product.stock_quantity > 0)
            product.in_stock = product.stock_quantity > 0

            logs.append(StockMovementLog(
                product=product,
                quantity_change=-qty,
                movement_type=StockMovementLog.MovementType.RESERVATION,
                reference=reference,
                balance_after=product.stock_quantity,
                created_by=user,
            ))

        StockMovementLog.objects.bulk_create(logs)
        logger.info("Reserved stock for %s (%d lines)", reference, len(logs))
        return product_map

    @staticmethod
    @transaction.atomic
    def release_stock(items: List[Dict], reference: str, user=None) -> None:
        """
        Reverses a reservation (e.g., Order Cancellation).
        """
        wanted = _merge_items(items)
        product_ids = sorted(wanted.keys())

        products = Product.objects.select_for_update().filter(id__in=product_ids).order_by("id")
        logs = []

        for product in products:
            qty = wanted[str(product.id)]
            Product.objects.filter(pk=product.pk).update(
                stock_quantity=F("stock_quantity") + qty,
                in_stock=True,
            )
            product.refresh_from_db(fields=["stock_quantity", "in_stock"])

            logs.append(StockMovementLog(
                product=product,
                quantity_change=qty,
                movement_type=StockMovementLog.MovementType.RELEASE,
                reference=reference,
                balance_after=product.stock_quantity,
                created_by=user,
            ))

        StockMovementLog.objects.bulk_create(logs)
        logger.info("Released stock for %s (%d lines)", reference, len(logs))

    @staticmethod
    @transaction.atomic
    def manual_adjustment(product_id, delta_qty: int, user, reason: str) -> Product:
        """
        For Cycle Counts / Audits / opening stock.
        """
        try:
            product = Product.objects.select_for_update().get(pk=product_id)
        except (Product.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFound("Product not found.")

        if product.stock_quantity + delta_qty < 0:
            raise ValidationError(
                f"Adjustment would make stock negative (current {product.stock_quantity}, delta {delta_qty})."
            )

        Product.objects.filter(pk=product.pk).update(
            stock_quantity=F("stock_quantity") + delta_qty,
        )
        product.refresh_from_db(fields=["stock_quantity"])
        product.in_stock = product.stock_quantity > 0
        product.save(update_fields=["in_stock", "updated_at"])

        StockMovementLog.objects.create(
            product=product,
            quantity_change=delta_qty,
            movement_type=StockMovementLog.MovementType.ADJUSTMENT,
            reference=f"MANUAL: {reason}"[:100],
            balance_after=product.stock_quantity,
            created_by=user,
        )
        return product

