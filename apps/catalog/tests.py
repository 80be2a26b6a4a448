# apps/catalog/tests.py
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from apps.inventory.models import StockMovementLog

from .models import Category, Product

User = get_user_model()


class CatalogModelTests(TestCase):
    def test_slugs_are_unique(self):
        first = Product.objects.create(sku="A-1", title="Desk Lamp", price=Decimal("10.00"))
        second = Product.objects.create(sku="A-2", title="Desk Lamp", price=Decimal("12.00"))
        self.assertEqual(first.slug, "desk-lamp")
        self.assertEqual(second.slug, "desk-lamp-1")

    def test_in_stock_follows_quantity(self):
        product = Product.objects.create(sku="A-3", title="Chair", price=Decimal("50.00"))
        self.assertFalse(product.in_stock)
        product.stock_quantity = 2
        product.save()
        self.assertTrue(product.in_stock)

    def test_seed_catalog_books_opening_stock(self):
        call_command("seed_catalog", "--stock", "7", stdout=StringIO())

        self.assertTrue(Category.objects.filter(parent__isnull=True).exists())
        product = Product.objects.first()
        self.assertEqual(product.stock_quantity, 7)
        self.assertEqual(StockMovementLog.objects.filter(product=product).count(), 1)


class CatalogApiTests(APITestCase):
    def setUp(self):
        self.category = Category.objects.create(name="Audio")
        self.visible = Product.objects.create(
            sku="SP-1", title="Speaker", price=Decimal("80.00"), category=self.category, stock_quantity=4
        )
        self.hidden = Product.objects.create(
            sku="SP-2", title="Old Speaker", price=Decimal("20.00"), is_active=False
        )
        self.admin = User.objects.create_admin(email="admin@example.com", password="Str0ngPass!")
        self.customer = User.objects.create_user(email="cust@example.com", password="Str0ngPass!")

    def test_public_list_hides_inactive(self):
        res = self.client.get("/api/catalog/products/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual([p["sku"] for p in res.data["results"]], ["SP-1"])

    def test_admin_sees_inactive(self):
        self.client.force_authenticate(self.admin)
        res = self.client.get("/api/catalog/products/")
        self.assertEqual(res.data["count"], 2)

    def test_filter_by_price_and_category(self):
        res = self.client.get("/api/catalog/products/", {"min_price": "50", "category_slug": "audio"})
        self.assertEqual(res.data["count"], 1)

    def test_detail_by_slug(self):
        res = self.client.get(f"/api/catalog/products/{self.visible.slug}/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["category_name"], "Audio")

    def test_customer_cannot_write(self):
        self.client.force_authenticate(self.customer)
        res = self.client.post(
            "/api/catalog/products/", {"sku": "X-1", "title": "X", "price": "1.00"}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_creates_product_without_stock(self):
        self.client.force_authenticate(self.admin)
        res = self.client.post(
            "/api/catalog/products/",
            {"sku": "X-1", "title": "Xylophone", "price": "30.00", "stock_quantity": 99},
            format="json",
        )
        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertEqual(res.data["stock_quantity"], 0)
        self.assertEqual(res.data["slug"], "xylophone")

    def test_negative_price_rejected(self):
        self.client.force_authenticate(self.admin)
        res = self.client.post(
            "/api/catalog/products/", {"sku": "X-2", "title": "Bad", "price": "-1.00"}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

    def test_categories_are_public(self):
        Category.objects.create(name="Headphones", parent=self.category)
        res = self.client.get("/api/catalog/categories/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["results"][0]["subcategories"][0]["name"], "Headphones")
