# apps/utils/tests.py
import json
import logging
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import Client, RequestFactory, SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework import serializers, status
from rest_framework.exceptions import NotAuthenticated
from rest_framework.test import APITestCase

from .exceptions import GenerationExhausted, InsufficientStock, custom_exception_handler
from .logging import JSONFormatter
from .middleware import IdempotencyMiddleware
from .models import IdempotencyKey
from .tasks import purge_expired_idempotency_keys
from .validators import validate_phone


class ValidatorTests(SimpleTestCase):
    def test_phone_validator(self):
        self.assertEqual(validate_phone("+1 (555) 010-9999"), "+1 (555) 010-9999")
        self.assertEqual(validate_phone(""), "")
        with self.assertRaises(serializers.ValidationError):
            validate_phone("123")  # Invalid


class ExceptionHandlerTests(SimpleTestCase):
    def test_business_error_envelope(self):
        exc = InsufficientStock("Only 1 left.", details={"available": 1})
        response = custom_exception_handler(exc, {})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(
            response.data,
            {"error": {"code": "insufficient_stock", "message": "Only 1 left.", "details": {"available": 1}}},
        )

    def test_generation_exhausted_is_retryable(self):
        response = custom_exception_handler(GenerationExhausted(), {})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response["Retry-After"], "1")
        self.assertEqual(response.data["error"]["code"], "generation_exhausted")

    def test_drf_exceptions_are_mapped(self):
        response = custom_exception_handler(NotAuthenticated(), {})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data["error"]["code"], "unauthorized")

        response = custom_exception_handler(serializers.ValidationError({"email": ["Required."]}), {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"]["code"], "validation_error")
        self.assertEqual(response.data["error"]["details"], {"email": ["Required."]})

    def test_unexpected_error_hides_internals(self):
        with self.assertLogs("apps.utils.exceptions", level="ERROR"):
            response = custom_exception_handler(RuntimeError("db password is hunter2"), {})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data, {"error": {"code": "internal_error", "message": "Internal Server Error"}})


class JSONFormatterTests(SimpleTestCase):
    def make_record(self, msg, args=None, **extra):
        record = logging.LogRecord("storefront", logging.INFO, __file__, 1, msg, args, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_scrubs_sensitive_keys(self):
        record = self.make_record({"email": "a@b.c", "password": "secret", "nested": {"token": "t"}})
        payload = json.loads(JSONFormatter().format(record))
        self.assertIn("***REDACTED***", payload["msg"])
        self.assertNotIn("secret", payload["msg"])

    def test_copies_context_fields(self):
        record = self.make_record("Order placed", order_number="ORD00000000001", user_id="u1")
        payload = json.loads(JSONFormatter().format(record))
        self.assertEqual(payload["order_number"], "ORD00000000001")
        self.assertEqual(payload["user_id"], "u1")
        self.assertEqual(payload["lvl"], "INFO")


class IdempotencyKeyTests(TestCase):
    def test_purge_removes_only_expired(self):
        now = timezone.now()
        IdempotencyKey.objects.create(
            key="old", route="/api/orders/", request_hash="x", response_status=201,
            expires_at=now - timedelta(minutes=1),
        )
        fresh = IdempotencyKey.objects.create(
            key="new", route="/api/orders/", request_hash="x", response_status=201,
            expires_at=now + timedelta(minutes=10),
        )

        self.assertEqual(purge_expired_idempotency_keys(), 1)
        self.assertEqual(list(IdempotencyKey.objects.all()), [fresh])
        self.assertFalse(fresh.is_expired())

    def test_malformed_content_length_skips_idempotency(self):
        request = RequestFactory().post(
            "/api/orders/",
            data="{}",
            content_type="application/json",
            HTTP_IDEMPOTENCY_KEY="k-1",
            CONTENT_LENGTH="not-a-number",
        )
        middleware = IdempotencyMiddleware(lambda req: None)

        self.assertIsNone(middleware.process_request(request))
        self.assertFalse(hasattr(request, "_idempotency_key"))


class PlatformEndpointTests(APITestCase):
    def test_health(self):
        res = self.client.get("/api/health/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.json()["components"], {"db": "ok", "cache": "ok"})

    def test_public_config_exposes_pricing(self):
        res = self.client.get("/api/config/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["tax_rate"], "0.08")
        self.assertEqual(res.data["free_shipping_threshold"], "100.00")
        self.assertEqual(res.data["flat_shipping_fee"], "9.99")
        self.assertEqual(res.data["max_item_quantity"], 99)

    def test_unknown_api_route_is_404(self):
        res = self.client.get("/api/orders/does-not-exist/nowhere/")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)


class MiddlewareStackTests(TestCase):
    """Plain Django client: full MIDDLEWARE chain and real JWT authentication."""

    def setUp(self):
        self.client = Client()
        cache.clear()
        get_user_model().objects.create_user(email="ada@example.com", password="Str0ngPass!")

    def test_health_through_full_stack(self):
        res = self.client.get("/api/health/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.json()["status"], "ok")

    def test_bearer_token_round_trip(self):
        login = self.client.post(
            "/api/auth/login/",
            json.dumps({"email": "ada@example.com", "password": "Str0ngPass!"}),
            content_type="application/json",
        )
        self.assertEqual(login.status_code, status.HTTP_200_OK)

        res = self.client.get("/api/auth/me/", HTTP_AUTHORIZATION=f"Bearer {login.json()['access']}")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.json()["email"], "ada@example.com")

    def test_missing_token_uses_error_envelope(self):
        res = self.client.get("/api/orders/")
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(res.json()["error"]["code"], "unauthorized")
