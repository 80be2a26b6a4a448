from django.contrib import admin

from .models import Address


@admin.register(Address)
class AddressAdmin(admin.ModelAdmin):
    list_display = ("user", "label", "type", "city", "postal_code", "is_default")
    list_filter = ("type", "country", "is_default")
    search_fields = ("user__email", "postal_code", "address_line1")
    raw_id_fields = ("user",)
