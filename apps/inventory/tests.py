from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from apps.catalog.models import Product
from apps.inventory.models import StockMovementLog
from apps.inventory.services import InventoryService
from apps.utils.exceptions import InsufficientStock, NotFound, ValidationError

User = get_user_model()


class InventoryServiceTests(TestCase):
    def setUp(self):
        self.mouse = Product.objects.create(sku="MS-1", title="Mouse", price=Decimal("20.00"), stock_quantity=5)
        self.pad = Product.objects.create(sku="PD-1", title="Pad", price=Decimal("5.00"), stock_quantity=1)

    def test_reserve_decrements_and_logs(self):
        InventoryService.reserve_stock(
            [{"product_id": self.mouse.id, "quantity": 2}, {"product_id": self.pad.id, "quantity": 1}],
            reference="ORD00000000001",
        )
        self.mouse.refresh_from_db()
        self.pad.refresh_from_db()
        self.assertEqual(self.mouse.stock_quantity, 3)
        self.assertEqual(self.pad.stock_quantity, 0)
        self.assertFalse(self.pad.in_stock)
        self.assertEqual(
            StockMovementLog.objects.filter(reference="ORD00000000001").count(), 2
        )

    def test_short_line_reserves_nothing(self):
        with self.assertRaises(InsufficientStock):
            InventoryService.reserve_stock(
                [{"product_id": self.mouse.id, "quantity": 1}, {"product_id": self.pad.id, "quantity": 2}],
                reference="ORD00000000002",
            )
        self.mouse.refresh_from_db()
        self.assertEqual(self.mouse.stock_quantity, 5)
        self.assertFalse(StockMovementLog.objects.exists())

    def test_duplicate_lines_are_merged(self):
        with self.assertRaises(InsufficientStock):
            InventoryService.reserve_stock(
                [{"product_id": self.pad.id, "quantity": 1}, {"product_id": self.pad.id, "quantity": 1}],
                reference="ORD00000000003",
            )

    def test_release_restores_stock(self):
        items = [{"product_id": self.pad.id, "quantity": 1}]
        InventoryService.reserve_stock(items, reference="ORD00000000004")
        InventoryService.release_stock(items, reference="ORD00000000004")
        self.pad.refresh_from_db()
        self.assertEqual(self.pad.stock_quantity, 1)
        self.assertTrue(self.pad.in_stock)

    def test_manual_adjustment_rejects_negative_result(self):
        with self.assertRaises(ValidationError):
            InventoryService.manual_adjustment(self.pad.id, -2, user=None, reason="audit")

    def test_manual_adjustment_unknown_product(self):
        with self.assertRaises(NotFound):
            InventoryService.manual_adjustment("00000000-0000-0000-0000-000000000000", 1, user=None, reason="x")

    def test_manual_adjustment_malformed_id_is_not_found(self):
        with self.assertRaises(NotFound):
            InventoryService.manual_adjustment("not-a-uuid", 1, user=None, reason="x")

    def test_malformed_product_id_is_unavailable(self):
        problems = InventoryService.check_availability([{"product_id": "not-a-uuid", "quantity": 1}])
        self.assertEqual(problems, ["Product not-a-uuid is no longer available."])

        with self.assertRaises(NotFound) as ctx:
            InventoryService.reserve_stock([{"product_id": "not-a-uuid", "quantity": 1}], reference="R-1")
        self.assertEqual(ctx.exception.code, "product_unavailable")

    def test_check_availability_reports_problems(self):
        problems = InventoryService.check_availability([{"product_id": self.pad.id, "quantity": 3}])
        self.assertEqual(len(problems), 1)
        self.assertIn("Pad", problems[0])


class StockAdjustmentApiTests(APITestCase):
    def setUp(self):
        self.product = Product.objects.create(sku="KB-1", title="Keyboard", price=Decimal("50.00"))
        self.admin = User.objects.create_admin(email="admin@example.com", password="Str0ngPass!")
        self.customer = User.objects.create_user(email="cust@example.com", password="Str0ngPass!")

    def test_admin_can_adjust(self):
        self.client.force_authenticate(self.admin)
        res = self.client.post(
            "/api/inventory/adjustments/",
            {"product_id": str(self.product.id), "delta": 7, "reason": "opening stock"},
            format="json",
        )
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["stock_quantity"], 7)
        self.assertTrue(res.data["in_stock"])

    def test_customer_is_forbidden(self):
        self.client.force_authenticate(self.customer)
        res = self.client.post(
            "/api/inventory/adjustments/",
            {"product_id": str(self.product.id), "delta": 7, "reason": "x"},
            format="json",
        )
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(res.data["error"]["code"], "forbidden")
