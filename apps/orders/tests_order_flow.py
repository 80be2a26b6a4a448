from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.test import APITestCase

from apps.catalog.models import Product
from apps.customers.services import CustomerService
from apps.orders.models import Cart, CartItem, Order
from apps.orders.services import CartService, OrderService

User = get_user_model()

SHIPPING = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "address_line1": "12 Analytical Way",
    "city": "Springfield",
    "state": "IL",
    "postal_code": "62701",
    "country": "United States",
}


class CheckoutApiTests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="cust@example.com", password="Str0ngPass!")
        self.product = Product.objects.create(
            sku="SPK-1", title="Speaker", price=Decimal("60.00"), stock_quantity=3
        )
        self.client.force_authenticate(self.user)

    def fill_cart(self, qty=2):
        CartService.add_item(self.user, self.product.id, qty)

    def test_checkout_with_inline_address(self):
        self.fill_cart()

        res = self.client.post("/api/orders/", {"shipping_address": SHIPPING}, format="json")

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertRegex(res.data["order_number"], r"^ORD\d{11}$")
        self.assertEqual(res.data["status"], "pending")
        self.assertEqual(res.data["subtotal"], "120.00")
        self.assertEqual(res.data["shipping"], "0.00")
        self.assertEqual(res.data["total"], "129.60")
        self.assertEqual(len(res.data["items"]), 1)
        self.assertFalse(CartItem.objects.filter(cart__user=self.user).exists())

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 1)

    def test_checkout_with_saved_address(self):
        address = CustomerService.create_address(self.user, **SHIPPING)
        self.fill_cart(1)

        res = self.client.post(
            "/api/orders/",
            {"shipping_address_id": str(address.id), "payment_method": "card"},
            format="json",
        )

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertEqual(res.data["shipping_address"]["postal_code"], "62701")
        self.assertEqual(res.data["payment_method"], "card")

    def test_foreign_saved_address_is_not_found(self):
        other = User.objects.create_user(email="other@example.com", password="Str0ngPass!")
        address = CustomerService.create_address(other, **SHIPPING)
        self.fill_cart(1)

        res = self.client.post("/api/orders/", {"shipping_address_id": str(address.id)}, format="json")

        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(Order.objects.exists())

    def test_missing_address_is_validation_error(self):
        self.fill_cart(1)
        res = self.client.post("/api/orders/", {}, format="json")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["error"]["code"], "validation_error")
        self.assertIn("shipping_address", res.data["error"]["details"])

    def test_empty_cart_is_validation_error(self):
        res = self.client.post("/api/orders/", {"shipping_address": SHIPPING}, format="json")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["error"]["message"], "Cart is empty.")

    def test_insufficient_stock_is_conflict_and_persists_nothing(self):
        self.fill_cart(3)
        Product.objects.filter(pk=self.product.pk).update(stock_quantity=2)

        res = self.client.post("/api/orders/", {"shipping_address": SHIPPING}, format="json")

        self.assertEqual(res.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(res.data["error"]["code"], "insufficient_stock")
        self.assertFalse(Order.objects.exists())
        # The cart survives a failed checkout
        self.assertTrue(CartItem.objects.filter(cart__user=self.user).exists())

    def test_anonymous_checkout_is_unauthorized(self):
        self.client.force_authenticate(None)
        res = self.client.post("/api/orders/", {"shipping_address": SHIPPING}, format="json")
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(res.data["error"]["code"], "unauthorized")

    def test_idempotency_key_replays_instead_of_reordering(self):
        self.fill_cart(1)
        body = {"shipping_address": SHIPPING}

        first = self.client.post("/api/orders/", body, format="json", HTTP_IDEMPOTENCY_KEY="checkout-1")
        second = self.client.post("/api/orders/", body, format="json", HTTP_IDEMPOTENCY_KEY="checkout-1")

        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertNotIn("X-Store-Idempotency", first)
        self.assertEqual(second.status_code, status.HTTP_201_CREATED)
        self.assertEqual(second["Idempotent-Replay"], "true")
        self.assertEqual(second.json()["id"], first.json()["id"])
        self.assertEqual(Order.objects.count(), 1)

    def test_idempotency_key_with_different_body_is_rejected(self):
        self.fill_cart(1)
        self.client.post(
            "/api/orders/", {"shipping_address": SHIPPING}, format="json", HTTP_IDEMPOTENCY_KEY="checkout-2"
        )

        res = self.client.post(
            "/api/orders/",
            {"shipping_address": {**SHIPPING, "city": "Shelbyville"}},
            format="json",
            HTTP_IDEMPOTENCY_KEY="checkout-2",
        )

        self.assertEqual(res.status_code, 422)
        self.assertEqual(res.json()["error"]["code"], "idempotency_mismatch")


class OrderAccessApiTests(APITestCase):
    def setUp(self):
        self.owner = User.objects.create_user(email="owner@example.com", password="Str0ngPass!")
        self.stranger = User.objects.create_user(email="stranger@example.com", password="Str0ngPass!")
        self.admin = User.objects.create_admin(email="admin@example.com", password="Str0ngPass!")
        self.product = Product.objects.create(
            sku="LMP-1", title="Lamp", price=Decimal("25.00"), stock_quantity=10
        )
        self.order = OrderService.create_order(
            self.owner,
            [{"product_id": self.product.id, "quantity": 1}],
            shipping_address=SHIPPING,
        )

    def url(self, suffix=""):
        return f"/api/orders/{self.order.id}/{suffix}"

    def test_owner_can_read(self):
        self.client.force_authenticate(self.owner)
        res = self.client.get(self.url())
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["order_number"], self.order.order_number)
        self.assertEqual(len(res.data["timeline"]), 1)

    def test_stranger_is_forbidden_and_sees_no_order_fields(self):
        self.client.force_authenticate(self.stranger)
        res = self.client.get(self.url())

        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(set(res.data), {"error"})
        self.assertEqual(res.data["error"]["code"], "forbidden")
        self.assertNotIn(self.order.order_number, res.content.decode())

    def test_admin_can_read_any_order(self):
        self.client.force_authenticate(self.admin)
        self.assertEqual(self.client.get(self.url()).status_code, status.HTTP_200_OK)

    def test_unknown_order_is_404(self):
        self.client.force_authenticate(self.admin)
        res = self.client.get("/api/orders/00000000-0000-0000-0000-000000000000/")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(res.data["error"]["code"], "not_found")

    def test_list_shows_only_own_orders(self):
        OrderService.create_order(
            self.stranger, [{"product_id": self.product.id, "quantity": 1}], shipping_address=SHIPPING
        )
        self.client.force_authenticate(self.owner)

        res = self.client.get("/api/orders/")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["results"][0]["order_number"], self.order.order_number)

    def test_stranger_cannot_cancel(self):
        self.client.force_authenticate(self.stranger)
        res = self.client.post(self.url("cancel/"), {"reason": "nope"}, format="json")

        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)

    def test_owner_cancels(self):
        self.client.force_authenticate(self.owner)
        res = self.client.post(self.url("cancel/"), {"reason": "Ordered twice"}, format="json")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["status"], "cancelled")
        self.assertEqual(res.data["cancellation_reason"], "Ordered twice")

    def test_cancel_after_shipping_is_invalid_transition(self):
        OrderService.update_order_status(self.order.id, "shipped", self.admin, override=True)
        self.client.force_authenticate(self.owner)

        res = self.client.post(self.url("cancel/"), format="json")

        self.assertEqual(res.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(res.data["error"]["code"], "invalid_transition")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.SHIPPED)

    def test_admin_advances_status(self):
        self.client.force_authenticate(self.admin)
        res = self.client.put(self.url("status/"), {"status": "confirmed"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["status"], "confirmed")

    def test_admin_skip_requires_override(self):
        self.client.force_authenticate(self.admin)
        res = self.client.put(self.url("status/"), {"status": "delivered"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_409_CONFLICT)

        res = self.client.put(
            self.url("status/"), {"status": "delivered", "override": True}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["status"], "delivered")

    def test_owner_cannot_use_status_route(self):
        self.client.force_authenticate(self.owner)
        res = self.client.put(self.url("status/"), {"status": "cancelled"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

    def test_statistics_admin_only(self):
        self.client.force_authenticate(self.owner)
        self.assertEqual(self.client.get("/api/orders/statistics/").status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        res = self.client.get("/api/orders/statistics/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["total_orders"], 1)
        self.assertEqual(res.data["total_revenue"], str(self.order.total))
        self.assertEqual(res.data["orders_by_status"]["pending"]["count"], 1)


class CartApiTests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="cart@example.com", password="Str0ngPass!")
        self.product = Product.objects.create(
            sku="MUG-1", title="Mug", price=Decimal("12.50"), stock_quantity=4
        )
        self.client.force_authenticate(self.user)

    def test_add_update_remove(self):
        res = self.client.post(
            "/api/cart/items/", {"product_id": str(self.product.id), "quantity": 2}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertEqual(res.data["totals"]["subtotal"], "25.00")
        self.assertEqual(res.data["totals"]["item_count"], 2)
        item_id = res.data["items"][0]["id"]

        res = self.client.patch(f"/api/cart/items/{item_id}/", {"quantity": 3}, format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["items"][0]["quantity"], 3)

        res = self.client.delete(f"/api/cart/items/{item_id}/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["items"], [])

    def test_adding_more_than_stock_conflicts(self):
        res = self.client.post(
            "/api/cart/items/", {"product_id": str(self.product.id), "quantity": 5}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(res.data["error"]["code"], "insufficient_stock")

    def test_inactive_product_cannot_be_added(self):
        Product.objects.filter(pk=self.product.pk).update(is_active=False)
        res = self.client.post(
            "/api/cart/items/", {"product_id": str(self.product.id), "quantity": 1}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

    def test_validate_reports_stock_drift(self):
        CartService.add_item(self.user, self.product.id, 4)
        Product.objects.filter(pk=self.product.pk).update(stock_quantity=1)

        res = self.client.get("/api/cart/validate/")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertFalse(res.data["is_valid"])
        self.assertEqual(len(res.data["errors"]), 1)

    def test_clear(self):
        CartService.add_item(self.user, self.product.id, 1)
        res = self.client.post("/api/cart/clear/")
        self.assertEqual(res.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Cart.objects.get(user=self.user).items.exists())
