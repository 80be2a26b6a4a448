from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from apps.customers.models import Address
from apps.customers.services import CustomerService
from apps.utils.exceptions import NotFound

User = get_user_model()

ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "address_line1": "12 Analytical Way",
    "city": "Springfield",
    "state": "IL",
    "postal_code": "62701",
}


class AddressServiceTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="ada@example.com", password="Str0ngPass!")

    def test_first_address_becomes_default(self):
        first = CustomerService.create_address(self.user, **ADDRESS)
        second = CustomerService.create_address(self.user, **ADDRESS)
        self.assertTrue(first.is_default)
        self.assertFalse(second.is_default)

    def test_set_default_moves_the_flag(self):
        first = CustomerService.create_address(self.user, **ADDRESS)
        second = CustomerService.create_address(self.user, **ADDRESS)

        CustomerService.set_default_address(self.user, second.id)

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertFalse(first.is_default)
        self.assertTrue(second.is_default)
        self.assertEqual(Address.objects.filter(user=self.user, is_default=True).count(), 1)

    def test_creating_a_new_default_clears_the_old_one(self):
        CustomerService.create_address(self.user, **ADDRESS)
        CustomerService.create_address(self.user, is_default=True, **ADDRESS)
        self.assertEqual(Address.objects.filter(user=self.user, is_default=True).count(), 1)

    def test_deleting_default_promotes_newest(self):
        first = CustomerService.create_address(self.user, **ADDRESS)
        CustomerService.create_address(self.user, **ADDRESS)
        newest = CustomerService.create_address(self.user, **ADDRESS)

        CustomerService.delete_address(self.user, first.id)

        newest.refresh_from_db()
        self.assertTrue(newest.is_default)

    def test_database_rejects_two_defaults(self):
        CustomerService.create_address(self.user, **ADDRESS)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Address.objects.create(user=self.user, is_default=True, **ADDRESS)

    def test_other_users_address_is_not_found(self):
        other = User.objects.create_user(email="bob@example.com", password="Str0ngPass!")
        address = CustomerService.create_address(other, **ADDRESS)
        with self.assertRaises(NotFound):
            CustomerService.set_default_address(self.user, address.id)

    def test_order_snapshot_has_no_identity(self):
        address = CustomerService.create_address(self.user, **ADDRESS)
        snapshot = address.as_order_snapshot()
        self.assertEqual(snapshot["postal_code"], "62701")
        self.assertNotIn("id", snapshot)


class AddressApiTests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="ada@example.com", password="Str0ngPass!")
        self.other = User.objects.create_user(email="bob@example.com", password="Str0ngPass!")
        self.client.force_authenticate(self.user)

    def test_create_and_list(self):
        res = self.client.post("/api/users/addresses/", ADDRESS, format="json")
        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertTrue(res.data["is_default"])

        res = self.client.get("/api/users/addresses/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(len(res.data), 1)

    def test_default_action(self):
        CustomerService.create_address(self.user, **ADDRESS)
        second = CustomerService.create_address(self.user, **ADDRESS)

        res = self.client.post(f"/api/users/addresses/{second.id}/default/")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertTrue(res.data["is_default"])

    def test_default_action_with_malformed_id_is_404(self):
        res = self.client.post("/api/users/addresses/not-a-uuid/default/")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(res.data["error"]["code"], "not_found")

    def test_foreign_address_is_404(self):
        address = CustomerService.create_address(self.other, **ADDRESS)
        res = self.client.get(f"/api/users/addresses/{address.id}/")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(res.data["error"]["code"], "not_found")

    def test_anonymous_is_401(self):
        self.client.force_authenticate(None)
        res = self.client.get("/api/users/addresses/")
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_profile_update(self):
        res = self.client.patch("/api/users/profile/", {"first_name": "Ada"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["first_name"], "Ada")

    def test_statistics(self):
        CustomerService.create_address(self.user, **ADDRESS)
        res = self.client.get("/api/users/statistics/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["total_addresses"], 1)
        self.assertEqual(res.data["total_orders"], 0)
        self.assertIsNotNone(res.data["default_address"])
