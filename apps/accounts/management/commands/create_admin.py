import os

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from apps.accounts.models import Role


class Command(BaseCommand):
    help = "Create or promote a storefront admin. Credentials default to ADMIN_EMAIL / ADMIN_PASSWORD."

    def add_arguments(self, parser):
        parser.add_argument("--email", default=os.getenv("ADMIN_EMAIL"))
        parser.add_argument("--password", default=os.getenv("ADMIN_PASSWORD"))

    def handle(self, *args, **options):
        if not settings.DEBUG and os.getenv("ALLOW_CREATE_ADMIN_IN_PROD") != "True":
            raise CommandError("Refusing to run with DEBUG off; set ALLOW_CREATE_ADMIN_IN_PROD=True.")

        email, password = options["email"], options["password"]
        if not email or not password:
            raise CommandError("An email and a password are required.")

        User = get_user_model()
        user = User.objects.filter(email__iexact=email).first()

        if user is None:
            User.objects.create_admin(email=email, password=password)
            self.stdout.write(self.style.SUCCESS(f"Created admin {email.lower()}"))
            return

        user.role = Role.ADMIN
        user.is_staff = True
        user.is_active = True
        user.set_password(password)
        user.save(update_fields=["role", "is_staff", "is_active", "password"])
        self.stdout.write(self.style.WARNING(f"Promoted existing user {user.email} to admin"))
