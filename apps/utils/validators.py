import re

from rest_framework import serializers

PHONE_RE = re.compile(r"^\+?\d{7,15}$")
PHONE_SEPARATORS = re.compile(r"[\s().-]")


def validate_phone(value):
    """Accepts common separators; stores what the user typed."""
    if value and not PHONE_RE.match(PHONE_SEPARATORS.sub("", str(value))):
        raise serializers.ValidationError("Invalid phone number format.")
    return value
