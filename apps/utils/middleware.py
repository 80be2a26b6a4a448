import hashlib
import json
import logging
import time
import uuid
from datetime import timedelta

from django.conf import settings
from django.core.cache import cache
from django.http import JsonResponse
from django.utils import timezone
from django.utils.deprecation import MiddlewareMixin

from .exceptions import error_body
from .models import IdempotencyKey

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "HTTP_IDEMPOTENCY_KEY"
STORE_RESPONSE_HEADER = "X-Store-Idempotency"
MAX_REQUEST_BODY_SIZE = 2 * 1024 * 1024  # 2MB Limit for Idempotency
ALLOWED_CONTENT_TYPES = {"application/json"}
LOCK_TIMEOUT = 60


class RequestLogMiddleware(MiddlewareMixin):
    """
    One structured log line per API request.
    """

    def process_request(self, request):
        request._log_started = time.monotonic()

    def process_response(self, request, response):
        started = getattr(request, "_log_started", None)
        if started is None or not request.path.startswith("/api/"):
            return response

        user = getattr(request, "user", None)
        logger.info(
            "%s %s -> %s",
            request.method,
            request.path,
            response.status_code,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": int((time.monotonic() - started) * 1000),
                "user_id": str(user.pk) if user is not None and user.is_authenticated else None,
            },
        )
        return response


class IdempotencyMiddleware(MiddlewareMixin):
    """
    Replays the stored response for a repeated POST carrying the same
    Idempotency-Key, credentials and body.

    Views opt in to storage by setting the X-Store-Idempotency response header.
    The key is scoped by the Authorization header because JWT authentication
    only resolves the user later, inside the DRF view.
    """

    def process_request(self, request):
        if request.method != "POST":
            return None

        raw_key = request.META.get(IDEMPOTENCY_HEADER)
        if not raw_key:
            return None

        try:
            content_length = int(request.META.get("CONTENT_LENGTH") or 0)
        except ValueError:
            logger.warning("Idempotency: Malformed Content-Length, skipping.")
            return None
        if content_length > MAX_REQUEST_BODY_SIZE:
            logger.warning("Idempotency: Request body too large, skipping.")
            return None

        if request.content_type.startswith("multipart/form-data"):
            return None

        auth = request.META.get("HTTP_AUTHORIZATION", "")
        key = hashlib.sha256(f"{auth}:{request.path}:{raw_key}".encode()).hexdigest()
        body_hash = hashlib.sha256(request.body or b"").hexdigest()

        rec = IdempotencyKey.objects.filter(key=key).first()
        if rec and not rec.is_expired():
            if rec.request_hash != body_hash:
                return JsonResponse(
                    error_body("idempotency_mismatch", "Idempotency-Key was already used with a different payload."),
                    status=422,
                )
            if rec.response_body is not None:
                response = JsonResponse(
                    rec.response_body,
                    status=rec.response_status,
                    safe=isinstance(rec.response_body, dict),
                )
                response["Idempotent-Replay"] = "true"
                return response

        # Concurrency lock: a second in-flight request with the same key is rejected
        lock_key = f"idemp_lock:{key}"
        request_id = uuid.uuid4().hex
        if not cache.add(lock_key, request_id, timeout=LOCK_TIMEOUT):
            return JsonResponse(
                error_body("request_in_progress", "Request is currently being processed. Please wait."),
                status=409,
            )

        request._idempotency_key = key
        request._idempotency_request_hash = body_hash
        request._idempotency_lock_key = lock_key
        request._idempotency_req_id = request_id
        return None

    def process_response(self, request, response):
        # Internal marker; never reaches the client
        store = response.get(STORE_RESPONSE_HEADER) == "1"
        if store:
            del response[STORE_RESPONSE_HEADER]

        key = getattr(request, "_idempotency_key", None)
        lock_key = getattr(request, "_idempotency_lock_key", None)
        req_id = getattr(request, "_idempotency_req_id", None)

        # Only release the lock if we own it
        if lock_key and req_id and cache.get(lock_key) == req_id:
            cache.delete(lock_key)

        if not key:
            return response

        # 5xx responses stay retryable
        if not (200 <= response.status_code < 500):
            return response

        if not store:
            return response

        content_type = response.get("Content-Type", "").split(";")[0].strip()
        if content_type not in ALLOWED_CONTENT_TYPES:
            logger.warning("Idempotency: Skipping store (content-type %s)", content_type)
            return response

        if hasattr(response, "render") and not getattr(response, "is_rendered", True):
            response.render()

        body_bytes = getattr(response, "content", b"") or b""
        if len(body_bytes) > MAX_REQUEST_BODY_SIZE:
            logger.warning("Idempotency: Skipping store (body too large)")
            return response

        try:
            body_json = json.loads(body_bytes.decode("utf-8"))
        except ValueError:
            logger.warning("Idempotency: Skipping store (body is not JSON)")
            return response

        IdempotencyKey.objects.update_or_create(
            key=key,
            defaults={
                "route": request.path,
                "request_hash": getattr(request, "_idempotency_request_hash", ""),
                "response_status": response.status_code,
                "response_body": body_json,
                "expires_at": timezone.now() + timedelta(minutes=settings.IDEMPOTENCY_KEY_TTL),
            },
        )
        return response


class GlobalExceptionMiddleware(MiddlewareMixin):
    """
    Last line of defense for non-DRF views.
    """

    def process_exception(self, request, exception):
        logger.exception("Unhandled Middleware Exception: %s", exception)
        if request.path.startswith("/api/"):
            return JsonResponse(
                error_body("internal_error", "Internal Server Error"),
                status=500,
            )
        return None  # Let Django's default 500 handler work for HTML
