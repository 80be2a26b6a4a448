from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.test import APITestCase

from apps.catalog.models import Product
from apps.orders.services import OrderService

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


class BackOfficeApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_admin(email="admin@example.com", password="Str0ngPass!")
        self.customer = User.objects.create_user(email="cust@example.com", password="Str0ngPass!")
        self.product = Product.objects.create(sku="BK-1", title="Book", price=Decimal("15.00"), stock_quantity=3)
        self.order = OrderService.create_order(
            self.customer, [{"product_id": self.product.id, "quantity": 1}], shipping_address=SHIPPING
        )
        self.client.force_authenticate(self.admin)

    def test_dashboard(self):
        res = self.client.get("/api/admin/dashboard/")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["orders"]["total_orders"], 1)
        self.assertEqual(res.data["users"]["total"], 2)
        self.assertEqual(res.data["users"]["admins"], 1)
        self.assertEqual(res.data["products"]["total"], 1)
        self.assertEqual(res.data["recent_orders"][0]["order_number"], self.order.order_number)

    def test_customer_cannot_reach_back_office(self):
        self.client.force_authenticate(self.customer)
        for url in ("/api/admin/dashboard/", "/api/admin/orders/", "/api/admin/users/"):
            res = self.client.get(url)
            self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN, url)

    def test_order_search_by_email(self):
        res = self.client.get("/api/admin/orders/", {"search": "cust@"})
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["results"][0]["customer_email"], "cust@example.com")

        res = self.client.get("/api/admin/orders/", {"status": "shipped"})
        self.assertEqual(res.data["count"], 0)

    def test_order_detail(self):
        res = self.client.get(f"/api/admin/orders/{self.order.id}/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(len(res.data["items"]), 1)

    def test_deactivate_customer(self):
        res = self.client.patch(f"/api/admin/users/{self.customer.id}/", {"is_active": False}, format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertFalse(res.data["is_active"])
        self.assertEqual(res.data["order_count"], 1)

    def test_admin_cannot_be_deactivated(self):
        other_admin = User.objects.create_admin(email="ops@example.com", password="Str0ngPass!")
        res = self.client.patch(f"/api/admin/users/{other_admin.id}/", {"is_active": False}, format="json")
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        other_admin.refresh_from_db()
        self.assertTrue(other_admin.is_active)

    def test_promote_customer(self):
        res = self.client.patch(f"/api/admin/users/{self.customer.id}/", {"role": "admin"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.customer.refresh_from_db()
        self.assertTrue(self.customer.is_admin)
        self.assertTrue(self.customer.is_staff)

    def test_cannot_change_own_role(self):
        res = self.client.patch(f"/api/admin/users/{self.admin.id}/", {"role": "customer"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

    def test_users_cannot_be_deleted(self):
        res = self.client.delete(f"/api/admin/users/{self.customer.id}/")
        self.assertEqual(res.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
