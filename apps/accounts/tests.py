# apps/accounts/tests.py
import os
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.contrib.auth.tokens import default_token_generator
from django.core import mail
from django.core.cache import cache
from django.core.management import CommandError, call_command
from django.test import TestCase, override_settings
from rest_framework import status
from django.utils.encoding import force_bytes
from django.utils.http import urlsafe_base64_encode
from rest_framework.test import APITestCase

from apps.utils.exceptions import Forbidden, Unauthorized

from .models import Role
from .policies import require_admin, require_auth, require_owner_or_admin

User = get_user_model()


class PolicyTests(TestCase):
    def setUp(self):
        self.customer = User.objects.create_user(email="cust@example.com", password="Str0ngPass!")
        self.admin = User.objects.create_admin(email="admin@example.com", password="Str0ngPass!")

    def test_require_auth(self):
        self.assertTrue(require_auth(self.customer).allowed)

        for caller in (None, AnonymousUser()):
            decision = require_auth(caller)
            self.assertFalse(decision.allowed)
            self.assertIs(decision.error, Unauthorized)

    def test_inactive_user_is_unauthenticated(self):
        self.customer.is_active = False
        self.assertIs(require_auth(self.customer).error, Unauthorized)

    def test_require_admin(self):
        self.assertTrue(require_admin(self.admin).allowed)
        decision = require_admin(self.customer)
        self.assertFalse(decision.allowed)
        self.assertIs(decision.error, Forbidden)
        self.assertIs(require_admin(None).error, Unauthorized)

    def test_require_owner_or_admin(self):
        other = User.objects.create_user(email="other@example.com", password="Str0ngPass!")

        self.assertTrue(require_owner_or_admin(self.customer, self.customer.id).allowed)
        self.assertTrue(require_owner_or_admin(self.admin, self.customer.id).allowed)
        self.assertIs(require_owner_or_admin(other, self.customer.id).error, Forbidden)
        self.assertIs(require_owner_or_admin(other, None).error, Forbidden)

    def test_enforce_raises_with_reason(self):
        with self.assertRaisesMessage(Forbidden, "Admin privileges required."):
            require_admin(self.customer).enforce()
        require_admin(self.admin).enforce()


class UserManagerTests(TestCase):
    def test_create_user_normalizes_email(self):
        user = User.objects.create_user(email="Mixed@Example.COM", password="Str0ngPass!")
        self.assertEqual(user.email, "mixed@example.com")
        self.assertEqual(user.role, Role.CUSTOMER)
        self.assertFalse(user.is_staff)

    def test_create_admin(self):
        admin = User.objects.create_admin(email="boss@example.com", password="Str0ngPass!")
        self.assertTrue(admin.is_admin)
        self.assertTrue(admin.is_staff)
        self.assertFalse(admin.is_superuser)

    @override_settings(DEBUG=True)
    def test_create_admin_command(self):
        env = {"ADMIN_EMAIL": "ops@example.com", "ADMIN_PASSWORD": "Str0ngPass!"}
        with mock.patch.dict(os.environ, env):
            call_command("create_admin", stdout=StringIO())
        user = User.objects.get(email="ops@example.com")
        self.assertEqual(user.role, Role.ADMIN)
        self.assertTrue(user.check_password("Str0ngPass!"))

    @override_settings(DEBUG=True)
    def test_create_admin_command_promotes_existing_user(self):
        User.objects.create_user(email="cust@example.com", password="Str0ngPass!")
        call_command("create_admin", "--email", "cust@example.com", "--password", "N3w-Pass!", stdout=StringIO())
        user = User.objects.get(email="cust@example.com")
        self.assertTrue(user.is_admin)
        self.assertTrue(user.check_password("N3w-Pass!"))

    def test_create_admin_command_locked_without_debug(self):
        with mock.patch.dict(os.environ, {"ALLOW_CREATE_ADMIN_IN_PROD": ""}):
            with self.assertRaises(CommandError):
                call_command("create_admin", "--email", "x@example.com", "--password", "p", stdout=StringIO())


class AuthApiTests(APITestCase):
    def setUp(self):
        # auth endpoints are throttled per client IP
        cache.clear()

    def register(self, **overrides):
        payload = {"email": "new@example.com", "password": "C0rrect-Horse", "first_name": "New"}
        payload.update(overrides)
        return self.client.post("/api/auth/register/", payload, format="json")

    def test_register_returns_tokens(self):
        res = self.register()
        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertIn("access", res.data)
        self.assertIn("refresh", res.data)
        self.assertEqual(res.data["user"]["role"], "customer")

    def test_register_duplicate_email(self):
        self.register()
        res = self.register(email="NEW@example.com")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["error"]["code"], "email_taken")

    def test_register_rejects_bad_phone(self):
        res = self.register(phone="not-a-phone")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("phone", res.data["error"]["details"])

    def test_login_and_me(self):
        self.register()
        res = self.client.post(
            "/api/auth/login/", {"email": "new@example.com", "password": "C0rrect-Horse"}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_200_OK)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {res.data['access']}")
        me = self.client.get("/api/auth/me/")
        self.assertEqual(me.status_code, status.HTTP_200_OK)
        self.assertEqual(me.data["email"], "new@example.com")

    def test_login_wrong_password(self):
        self.register()
        res = self.client.post(
            "/api/auth/login/", {"email": "new@example.com", "password": "nope"}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(res.data["error"]["code"], "invalid_credentials")

    def test_me_requires_token(self):
        res = self.client.get("/api/auth/me/")
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_blacklists_refresh_token(self):
        tokens = self.register().data
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")

        res = self.client.post("/api/auth/logout/", {"refresh": tokens["refresh"]}, format="json")
        self.assertEqual(res.status_code, status.HTTP_204_NO_CONTENT)

        res = self.client.post("/api/auth/token/refresh/", {"refresh": tokens["refresh"]}, format="json")
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)


class PasswordResetApiTests(APITestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(email="ada@example.com", password="Old-Pass-123")

    def reset(self, password="Brand-New-456", **overrides):
        payload = {
            "uid": urlsafe_base64_encode(force_bytes(self.user.pk)),
            "token": default_token_generator.make_token(self.user),
            "password": password,
        }
        payload.update(overrides)
        return self.client.post("/api/auth/reset-password/", payload, format="json")

    def test_forgot_password_sends_reset_link(self):
        res = self.client.post("/api/auth/forgot-password/", {"email": "ADA@example.com"}, format="json")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["ada@example.com"])
        self.assertIn("/reset-password?uid=", mail.outbox[0].body)

    def test_unknown_email_gets_the_same_answer(self):
        known = self.client.post("/api/auth/forgot-password/", {"email": "ada@example.com"}, format="json")
        unknown = self.client.post("/api/auth/forgot-password/", {"email": "nobody@example.com"}, format="json")

        self.assertEqual(unknown.status_code, status.HTTP_200_OK)
        self.assertEqual(unknown.data, known.data)
        self.assertEqual(len(mail.outbox), 1)

    def test_reset_changes_password_and_token_is_single_use(self):
        payload_token = default_token_generator.make_token(self.user)

        res = self.reset(token=payload_token)
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("Brand-New-456"))

        again = self.reset(token=payload_token, password="Another-789")
        self.assertEqual(again.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(again.data["error"]["code"], "invalid_reset_token")

    def test_reset_revokes_refresh_tokens(self):
        login = self.client.post(
            "/api/auth/login/", {"email": "ada@example.com", "password": "Old-Pass-123"}, format="json"
        )
        self.reset()

        res = self.client.post("/api/auth/token/refresh/", {"refresh": login.data["refresh"]}, format="json")
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_garbage_uid_is_rejected(self):
        res = self.reset(uid="%%%")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["error"]["code"], "invalid_reset_token")

    def test_weak_password_is_rejected(self):
        res = self.reset(password="12345678")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("password", res.data["error"]["details"])
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("Old-Pass-123"))
