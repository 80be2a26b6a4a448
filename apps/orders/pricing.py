"""
Order totals.

All money is Decimal and rounded to cents with ROUND_HALF_UP. Rates are
read from settings on every call so they can be overridden per test.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import NamedTuple

from django.conf import settings

from apps.utils.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class OrderTotals(NamedTuple):
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    def as_dict(self):
        return self._asdict()


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(subtotal) -> OrderTotals:
    try:
        subtotal = Decimal(str(subtotal))
    except InvalidOperation:
        raise ValidationError("Subtotal must be a number.")
    if not subtotal.is_finite() or subtotal < 0:
        raise ValidationError("Subtotal must be a non-negative amount.")

    tax = to_money(subtotal * Decimal(str(settings.ORDER_TAX_RATE)))

    if subtotal >= Decimal(str(settings.FREE_SHIPPING_THRESHOLD)):
        shipping = ZERO
    else:
        shipping = to_money(settings.FLAT_SHIPPING_FEE)

    total = to_money(subtotal + tax + shipping)
    return OrderTotals(to_money(subtotal), tax, shipping, total)
