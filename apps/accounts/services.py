import logging

from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from django.contrib.auth.tokens import default_token_generator
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils.encoding import force_str
from django.utils.http import urlsafe_base64_decode
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from apps.utils.exceptions import Unauthorized, ValidationError

from .models import User
from .tasks import send_password_reset_email

logger = logging.getLogger(__name__)


class AuthService:

    @staticmethod
    def issue_tokens(user: User) -> dict:
        refresh = RefreshToken.for_user(user)
        refresh["role"] = user.role
        return {
            "refresh": str(refresh),
            "access": str(refresh.access_token),
        }

    @staticmethod
    @transaction.atomic
    def register(email: str, password: str, **profile) -> tuple:
        email = User.objects.normalize_email(email).lower()
        if User.objects.filter(email__iexact=email).exists():
            raise ValidationError("An account with this email already exists.", code="email_taken")

        try:
            validate_password(password, user=User(email=email, **profile))
        except DjangoValidationError as exc:
            raise ValidationError("Password is too weak.", details={"password": exc.messages})

        try:
            user = User.objects.create_user(email=email, password=password, **profile)
        except IntegrityError:
            raise ValidationError("An account with this email already exists.", code="email_taken")

        logger.info("Registered user", extra={"user_id": str(user.id)})
        return user, AuthService.issue_tokens(user)

    @staticmethod
    def login(email: str, password: str) -> tuple:
        user = authenticate(username=email.lower(), password=password)
        if user is None:
            raise Unauthorized("Invalid email or password.", code="invalid_credentials")
        if not user.is_active:
            raise Unauthorized("Account is inactive.", code="account_inactive")
        return user, AuthService.issue_tokens(user)

    @staticmethod
    def logout(refresh_token: str) -> None:
        try:
            RefreshToken(refresh_token).blacklist()
        except TokenError:
            raise ValidationError("Invalid or expired refresh token.", code="invalid_token")

    @staticmethod
    def request_password_reset(email: str) -> None:
        """Queues the reset e-mail; unknown addresses are ignored so callers cannot probe for accounts."""
        user = User.objects.filter(email__iexact=email, is_active=True).first()
        if user is None:
            logger.info("Password reset requested for unknown e-mail")
            return
        send_password_reset_email.delay(str(user.pk))

    @staticmethod
    @transaction.atomic
    def reset_password(uid: str, token: str, password: str) -> User:
        try:
            user = User.objects.get(pk=force_str(urlsafe_base64_decode(uid)))
        except (TypeError, ValueError, OverflowError, User.DoesNotExist, DjangoValidationError):
            user = None

        if user is None or not default_token_generator.check_token(user, token):
            raise ValidationError("Reset link is invalid or has expired.", code="invalid_reset_token")

        try:
            validate_password(password, user=user)
        except DjangoValidationError as exc:
            raise ValidationError("Password is too weak.", details={"password": exc.messages})

        user.set_password(password)
        user.save(update_fields=["password"])

        # Sessions opened with the old password end at their next refresh
        for outstanding in OutstandingToken.objects.filter(user=user):
            BlacklistedToken.objects.get_or_create(token=outstanding)

        logger.info("Password reset", extra={"user_id": str(user.pk)})
        return user
