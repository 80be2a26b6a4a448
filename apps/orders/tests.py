# apps/orders/tests.py
import re
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core import mail
from django.test import SimpleTestCase, TestCase, override_settings

from apps.catalog.models import Product
from apps.orders.models import Order, OrderCancellation, OrderItem, OrderTimeline
from apps.orders.numbering import generate_order_number
from apps.orders.pricing import compute_totals
from apps.orders.services import OrderService, validate_transition
from apps.utils.exceptions import (
    Forbidden,
    GenerationExhausted,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    ValidationError,
)

User = get_user_model()

ORDER_NUMBER_RE = re.compile(r"^ORD\d{11}$")

SHIPPING = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "address_line1": "12 Analytical Way",
    "city": "Springfield",
    "state": "IL",
    "postal_code": "62701",
    "country": "United States",
}


class PricingTests(SimpleTestCase):
    def test_below_threshold_pays_flat_fee(self):
        totals = compute_totals(Decimal("50.00"))
        self.assertEqual(totals.subtotal, Decimal("50.00"))
        self.assertEqual(totals.tax, Decimal("4.00"))
        self.assertEqual(totals.shipping, Decimal("9.99"))
        self.assertEqual(totals.total, Decimal("63.99"))

    def test_above_threshold_ships_free(self):
        totals = compute_totals(Decimal("150.00"))
        self.assertEqual(totals.tax, Decimal("12.00"))
        self.assertEqual(totals.shipping, Decimal("0.00"))
        self.assertEqual(totals.total, Decimal("162.00"))

    def test_threshold_is_inclusive(self):
        self.assertEqual(compute_totals(Decimal("100.00")).shipping, Decimal("0.00"))
        self.assertEqual(compute_totals(Decimal("99.99")).shipping, Decimal("9.99"))

    def test_tax_rounds_half_up(self):
        totals = compute_totals(Decimal("10.0625"))
        # 10.0625 * 0.08 = 0.805
        self.assertEqual(totals.tax, Decimal("0.81"))
        self.assertEqual(totals.subtotal, Decimal("10.06"))
        self.assertEqual(totals.total, Decimal("20.86"))

    def test_zero_subtotal(self):
        totals = compute_totals(0)
        self.assertEqual(totals.tax, Decimal("0.00"))
        self.assertEqual(totals.total, Decimal("9.99"))

    def test_negative_subtotal_rejected(self):
        with self.assertRaises(ValidationError):
            compute_totals(Decimal("-0.01"))

    def test_same_input_same_output(self):
        self.assertEqual(compute_totals("42.42"), compute_totals("42.42"))

    @override_settings(ORDER_TAX_RATE=Decimal("0.10"), FLAT_SHIPPING_FEE=Decimal("5.00"))
    def test_rates_come_from_settings(self):
        totals = compute_totals(Decimal("20.00"))
        self.assertEqual(totals.tax, Decimal("2.00"))
        self.assertEqual(totals.total, Decimal("27.00"))


class StateMachineTests(SimpleTestCase):
    def test_happy_path_steps(self):
        validate_transition("pending", "confirmed")
        validate_transition("confirmed", "shipped")
        validate_transition("shipped", "delivered")

    def test_cancel_only_before_shipping(self):
        validate_transition("pending", "cancelled")
        validate_transition("confirmed", "cancelled")
        for status in ("shipped", "delivered"):
            with self.assertRaises(InvalidTransition):
                validate_transition(status, "cancelled", override=True)

    def test_skip_needs_override(self):
        with self.assertRaises(InvalidTransition):
            validate_transition("pending", "delivered")
        validate_transition("pending", "delivered", override=True)

    def test_backward_never_allowed(self):
        with self.assertRaises(InvalidTransition):
            validate_transition("shipped", "confirmed", override=True)

    def test_terminal_states_are_final(self):
        for target in ("pending", "confirmed", "shipped"):
            with self.assertRaises(InvalidTransition):
                validate_transition("cancelled", target, override=True)

    def test_same_state_rejected(self):
        with self.assertRaises(InvalidTransition):
            validate_transition("pending", "pending")


class OrderFixtureMixin:
    def setUp(self):
        self.customer = User.objects.create_user(email="cust@example.com", password="Str0ngPass!")
        self.stranger = User.objects.create_user(email="other@example.com", password="Str0ngPass!")
        self.admin = User.objects.create_admin(email="admin@example.com", password="Str0ngPass!")
        self.headphones = Product.objects.create(
            sku="HP-1", title="Headphones", price=Decimal("40.00"), stock_quantity=5
        )
        self.cable = Product.objects.create(
            sku="CB-1", title="Cable", price=Decimal("5.00"), stock_quantity=10
        )

    def place_order(self, qty=1, user=None):
        return OrderService.create_order(
            user or self.customer,
            [{"product_id": self.headphones.id, "quantity": qty}],
            shipping_address=SHIPPING,
        )


class OrderNumberTests(OrderFixtureMixin, TestCase):
    def test_format(self):
        for _ in range(20):
            self.assertRegex(generate_order_number(), ORDER_NUMBER_RE)

    def test_collision_draws_again(self):
        taken = self.place_order().order_number[3:]
        with mock.patch("apps.orders.numbering._random_sequence", side_effect=[taken, "00000000042"]):
            self.assertEqual(generate_order_number(), "ORD00000000042")

    @override_settings(ORDER_NUMBER_MAX_ATTEMPTS=3)
    def test_gives_up_after_bounded_attempts(self):
        taken = self.place_order().order_number[3:]
        with mock.patch("apps.orders.numbering._random_sequence", return_value=taken) as seq:
            with self.assertRaises(GenerationExhausted):
                generate_order_number()
        self.assertEqual(seq.call_count, 3)

    def test_insert_race_retries_with_fresh_number(self):
        existing = self.place_order()
        with mock.patch(
            "apps.orders.services.generate_order_number",
            side_effect=[existing.order_number, "ORD00000000077"],
        ):
            order = self.place_order()
        self.assertEqual(order.order_number, "ORD00000000077")
        self.assertEqual(Order.objects.count(), 2)


class CreateOrderTests(OrderFixtureMixin, TestCase):
    def test_creates_pending_order_with_catalog_prices(self):
        order = OrderService.create_order(
            self.customer,
            [
                {"product_id": self.headphones.id, "quantity": 2},
                {"product_id": self.cable.id, "quantity": 1},
            ],
            shipping_address=SHIPPING,
        )

        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertRegex(order.order_number, ORDER_NUMBER_RE)
        self.assertEqual(order.subtotal, Decimal("85.00"))
        self.assertEqual(order.tax, Decimal("6.80"))
        self.assertEqual(order.shipping, Decimal("9.99"))
        self.assertEqual(order.total, Decimal("101.79"))
        self.assertEqual(order.items.count(), 2)
        self.assertEqual(order.billing_address, order.shipping_address)
        self.assertEqual(OrderTimeline.objects.filter(order=order).count(), 1)

        self.headphones.refresh_from_db()
        self.assertEqual(self.headphones.stock_quantity, 3)

    def test_insufficient_stock_persists_nothing(self):
        with self.assertRaises(InsufficientStock):
            OrderService.create_order(
                self.customer,
                [
                    {"product_id": self.cable.id, "quantity": 1},
                    {"product_id": self.headphones.id, "quantity": 6},
                ],
                shipping_address=SHIPPING,
            )

        self.assertFalse(Order.objects.exists())
        self.assertFalse(OrderItem.objects.exists())
        self.cable.refresh_from_db()
        self.assertEqual(self.cable.stock_quantity, 10)

    def test_incomplete_address_rejected(self):
        with self.assertRaises(ValidationError):
            OrderService.create_order(
                self.customer,
                [{"product_id": self.cable.id, "quantity": 1}],
                shipping_address={"first_name": "Ada"},
            )
        self.assertFalse(Order.objects.exists())

    def test_empty_items_rejected(self):
        with self.assertRaises(ValidationError):
            OrderService.create_order(self.customer, [], shipping_address=SHIPPING)

    def test_created_signal_queues_email_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            order = self.place_order()
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(order.order_number, mail.outbox[0].subject)
        self.assertEqual(mail.outbox[0].to, ["cust@example.com"])


class OrderLifecycleTests(OrderFixtureMixin, TestCase):
    def test_owner_cancels_pending_order_and_stock_returns(self):
        order = self.place_order(qty=2)

        OrderService.cancel_order(order.id, self.customer, reason="Changed my mind")

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.CANCELLED)
        self.assertIsNotNone(order.cancelled_at)
        self.headphones.refresh_from_db()
        self.assertEqual(self.headphones.stock_quantity, 5)

        cancellation = OrderCancellation.objects.get(order=order)
        self.assertEqual(cancellation.reason, "Changed my mind")
        self.assertEqual(cancellation.cancelled_by, OrderCancellation.CancelledBy.CUSTOMER)
        self.assertEqual(cancellation.previous_status, Order.Status.PENDING)
        self.assertEqual(order.timeline.last().status, Order.Status.CANCELLED)

    def test_cancelling_shipped_order_fails_and_keeps_status(self):
        order = self.place_order()
        OrderService.update_order_status(order.id, "confirmed", self.admin)
        OrderService.update_order_status(order.id, "shipped", self.admin, tracking_number="1Z999")

        with self.assertRaises(InvalidTransition):
            OrderService.cancel_order(order.id, self.customer)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.SHIPPED)
        self.assertEqual(order.tracking_number, "1Z999")
        self.assertIsNotNone(order.shipped_at)

    def test_cancelling_delivered_order_fails(self):
        order = self.place_order()
        OrderService.update_order_status(order.id, "delivered", self.admin, override=True)

        with self.assertRaises(InvalidTransition):
            OrderService.cancel_order(order.id, self.admin)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.DELIVERED)
        self.assertIsNotNone(order.delivered_at)

    def test_skip_without_override_rejected(self):
        order = self.place_order()
        with self.assertRaises(InvalidTransition):
            OrderService.update_order_status(order.id, "shipped", self.admin)

    def test_owner_cannot_advance_status(self):
        order = self.place_order()
        with self.assertRaises(Forbidden):
            OrderService.update_order_status(order.id, "confirmed", self.customer)

    def test_stranger_cannot_cancel(self):
        order = self.place_order()
        with self.assertRaises(Forbidden):
            OrderService.cancel_order(order.id, self.stranger)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PENDING)

    def test_unknown_order(self):
        with self.assertRaises(NotFound):
            OrderService.update_order_status("00000000-0000-0000-0000-000000000000", "confirmed", self.admin)
        with self.assertRaises(NotFound):
            OrderService.get_order("not-a-uuid")

    def test_unknown_status_rejected(self):
        order = self.place_order()
        with self.assertRaises(ValidationError):
            OrderService.update_order_status(order.id, "refunded", self.admin)

    def test_status_change_emails_customer_after_commit(self):
        order = self.place_order()
        with self.captureOnCommitCallbacks(execute=True):
            OrderService.update_order_status(order.id, "confirmed", self.admin)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("confirmed", mail.outbox[0].subject)


class OrderQueryTests(OrderFixtureMixin, TestCase):
    def test_history_is_scoped_and_filtered(self):
        mine = self.place_order()
        self.place_order(user=self.stranger)
        OrderService.cancel_order(mine.id, self.customer)
        self.place_order()

        history = OrderService.get_order_history(self.customer)
        self.assertEqual(history.count(), 2)
        self.assertTrue(all(o.user_id == self.customer.id for o in history))

        cancelled = OrderService.get_order_history(self.customer, status="cancelled")
        self.assertEqual([o.id for o in cancelled], [mine.id])

    def test_get_order_loads_aggregate_in_fixed_queries(self):
        order = self.place_order()
        with self.assertNumQueries(3):
            loaded = OrderService.get_order(order.id)
            list(loaded.items.all())
            list(loaded.timeline.all())

    def test_statistics_exclude_cancelled_revenue(self):
        kept = self.place_order()
        dropped = self.place_order()
        OrderService.cancel_order(dropped.id, self.customer)

        stats = OrderService.get_order_statistics()

        self.assertEqual(stats["total_orders"], 2)
        self.assertEqual(stats["total_revenue"], kept.total)
        self.assertEqual(stats["average_order_value"], kept.total)
        self.assertEqual(set(stats["orders_by_status"]), set(Order.Status.values))
        self.assertEqual(stats["orders_by_status"]["cancelled"]["count"], 1)
        self.assertEqual(stats["orders_by_status"]["shipped"], {"count": 0, "total": Decimal("0.00")})
        self.assertEqual(len(stats["daily"]), 1)
        self.assertEqual(stats["daily"][0]["count"], 2)
        self.assertEqual(stats["daily"][0]["revenue"], kept.total)

    def test_statistics_are_empty_without_orders(self):
        stats = OrderService.get_order_statistics()
        self.assertEqual(stats["total_orders"], 0)
        self.assertEqual(stats["average_order_value"], Decimal("0.00"))
        self.assertEqual(stats["daily"], [])
