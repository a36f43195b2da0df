# orders/tests/test_order_service.py

from dataclasses import replace
from decimal import Decimal
from unittest import mock

from django.test import TestCase, override_settings

from events.models import TicketType
from events.services.inventory import catalog_snapshot
from orders.models import Order
from orders.services.exceptions import (
    CouponExhaustedError,
    CouponUserLimitError,
    EmptyCartError,
    InvalidContactError,
    SoldOutError,
)
from orders.services.order_lifecycle import InvalidOrderTransitionError
from orders.services.order_service import (
    create_or_update_order,
    mark_order_failed,
    retry_order,
    validate_contact,
)
from orders.services.reconciliation import complete_order

from .factories import (
    CONTACT,
    TEST_CONFIG,
    create_coupon,
    create_event,
    create_ticket_type,
    locked_order,
    snapshot_for,
)


class OrderCreationTests(TestCase):
    """
    GUARANTEES:
    - Totals are locked server-side and stock reserved at that moment
    - Resource errors leave the order in pending_creation with the error recorded
    - Concurrent checkouts never oversell
    - Terminal orders are immutable
    """

    def setUp(self):
        self.event = create_event()
        self.regular = create_ticket_type(self.event, name="Regular", price="500.00", total=10)
        self.vip = create_ticket_type(self.event, name="VIP", price="2000.00", total=2)

    # ======================================================
    # CONTACT
    # ======================================================

    def test_contact_is_normalized(self):
        contact = validate_contact("  Otieno ", "OTIENO@Example.com ", "0712345678")
        self.assertEqual(contact.name, "Otieno")
        self.assertEqual(contact.email, "otieno@example.com")

    def test_contact_requires_name_and_valid_email(self):
        with self.assertRaises(InvalidContactError):
            validate_contact("", "a@example.com")
        with self.assertRaises(InvalidContactError):
            validate_contact("Otieno", "not-an-email")

    # ======================================================
    # LOCKING
    # ======================================================

    def test_create_locks_totals_and_reserves_stock(self):
        order = locked_order(self.event, (self.regular, 2), (self.vip, 1))

        self.assertEqual(order.order_status, Order.STATUS_PENDING_PAYMENT_INITIATION)
        self.assertEqual(order.original_total_amount, Decimal("3000.00"))
        self.assertEqual(order.total_amount, Decimal("3000.00"))
        self.assertTrue(order.inventory_reserved)
        self.assertIsNotNone(order.totals_locked_at)
        self.assertEqual(order.items.count(), 2)
        self.assertTrue(order.order_no.startswith("ORD"))

        self.regular.refresh_from_db()
        self.vip.refresh_from_db()
        self.assertEqual(self.regular.quantity_available, 8)
        self.assertEqual(self.vip.quantity_available, 1)

    def test_catalog_price_wins_over_cart_display_price(self):
        from carts.services import CartLine, CartSnapshot

        cart = CartSnapshot.from_lines(
            self.event.id,
            [CartLine(ticket_type_id=str(self.regular.id), quantity=1, display_unit_price=Decimal("1.00"))],
        )
        order = create_or_update_order(cart, CONTACT)
        self.assertEqual(order.total_amount, Decimal("500.00"))

    def test_sold_out_leaves_order_pending_creation_with_error(self):
        with self.assertRaises(SoldOutError) as ctx:
            locked_order(self.event, (self.vip, 3))

        self.assertEqual(ctx.exception.ticket_type_name, "VIP")

        order = Order.objects.get()
        self.assertEqual(order.order_status, Order.STATUS_PENDING_CREATION)
        self.assertEqual(order.error_code, "sold_out")
        self.assertFalse(order.inventory_reserved)
        self.assertEqual(order.items.count(), 0)

        self.vip.refresh_from_db()
        self.assertEqual(self.vip.quantity_available, 2)

    def test_no_oversell_across_checkouts(self):
        results = []
        for _ in range(4):
            try:
                locked_order(self.event, (self.vip, 1))
                results.append("ok")
            except SoldOutError:
                results.append("sold_out")

        self.assertEqual(results.count("ok"), 2)
        self.assertEqual(results.count("sold_out"), 2)

        self.vip.refresh_from_db()
        self.assertEqual(self.vip.quantity_available, 0)

    def test_stale_catalog_read_cannot_oversell(self):
        # Another checkout takes the last VIP seats after prices and stock were read.
        stale = catalog_snapshot([self.vip.id, self.regular.id])
        TicketType.objects.filter(pk=self.vip.pk).update(quantity_available=0)

        with mock.patch("orders.services.order_service.catalog_snapshot", return_value=stale):
            with self.assertRaises(SoldOutError) as ctx:
                locked_order(self.event, (self.regular, 2), (self.vip, 1))

        self.assertEqual(ctx.exception.ticket_type_name, "VIP")
        self.assertEqual(ctx.exception.remaining, 0)

        self.regular.refresh_from_db()
        self.vip.refresh_from_db()
        self.assertEqual(self.regular.quantity_available, 10)
        self.assertEqual(self.vip.quantity_available, 0)

        order = Order.objects.get()
        self.assertEqual(order.order_status, Order.STATUS_PENDING_CREATION)
        self.assertFalse(order.inventory_reserved)

    @override_settings(CHECKOUT={"CURRENCY": "UGX"})
    def test_order_currency_comes_from_checkout_settings(self):
        order = locked_order(self.event, (self.regular, 1))
        self.assertEqual(order.currency, "UGX")

        mark_order_failed(order, reason=Order.FAILURE_STK_PUSH_FAILED)
        with override_settings(CHECKOUT={"CURRENCY": "KES"}):
            retry = retry_order(order)
        self.assertEqual(retry.currency, "UGX")

    def test_explicit_config_currency(self):
        order = create_or_update_order(
            snapshot_for(self.event, (self.regular, 1)),
            CONTACT,
            config=replace(TEST_CONFIG, currency="TZS"),
        )
        self.assertEqual(order.currency, "TZS")

    def test_inactive_event_cannot_be_ordered(self):
        snapshot = snapshot_for(self.event, (self.regular, 1))
        self.event.is_active = False
        self.event.save()

        with self.assertRaises(EmptyCartError):
            create_or_update_order(snapshot, CONTACT)
        self.assertFalse(Order.objects.exists())

    # ======================================================
    # COUPONS
    # ======================================================

    def test_coupon_is_applied_but_not_consumed_at_lock(self):
        coupon = create_coupon(code="SAVE10", value="10", usage_limit=5)

        order = locked_order(self.event, (self.regular, 2), coupon_code="save10")

        coupon.refresh_from_db()
        self.assertEqual(order.total_amount, Decimal("900.00"))
        self.assertEqual(order.discount_amount, Decimal("100.00"))
        self.assertEqual(order.coupon_code, "SAVE10")
        self.assertEqual(coupon.used_count, 0)
        self.assertFalse(order.coupon_redeemed)

    def test_exhausted_coupon_is_recorded_on_order(self):
        create_coupon(code="GONE", value="10", usage_limit=1, used_count=1)

        with self.assertRaises(CouponExhaustedError):
            locked_order(self.event, (self.regular, 1), coupon_code="GONE")

        order = Order.objects.get()
        self.assertEqual(order.order_status, Order.STATUS_PENDING_CREATION)
        self.assertEqual(order.error_code, "coupon_exhausted")

        self.regular.refresh_from_db()
        self.assertEqual(self.regular.quantity_available, 10)

    def test_per_user_limit_counts_redeemed_orders(self):
        create_coupon(code="ONCE", value="10", per_user_limit=1)

        first = locked_order(self.event, (self.regular, 1), coupon_code="ONCE", owner_id="user:7")
        first.order_status = Order.STATUS_PROCESSING
        first.save()
        complete_order(first)

        with self.assertRaises(CouponUserLimitError):
            locked_order(self.event, (self.regular, 1), coupon_code="ONCE", owner_id="user:7")

        # Another buyer is unaffected.
        other = locked_order(self.event, (self.regular, 1), coupon_code="ONCE", owner_id="user:8")
        self.assertEqual(other.coupon_code, "ONCE")

    # ======================================================
    # UPDATE / RETRY
    # ======================================================

    def test_update_releases_then_relocks(self):
        order = locked_order(self.event, (self.regular, 4))

        updated = create_or_update_order(
            snapshot_for(self.event, (self.regular, 1)),
            CONTACT,
            order=order,
        )

        self.assertEqual(updated.pk, order.pk)
        self.assertEqual(updated.total_amount, Decimal("500.00"))
        self.regular.refresh_from_db()
        self.assertEqual(self.regular.quantity_available, 9)

    def test_update_of_in_flight_order_is_rejected(self):
        order = locked_order(self.event, (self.regular, 1))
        Order.objects.filter(pk=order.pk).update(order_status=Order.STATUS_STK_PUSH_SENT)

        with self.assertRaises(InvalidOrderTransitionError):
            create_or_update_order(snapshot_for(self.event, (self.regular, 2)), CONTACT, order=order)

    def test_mark_failed_releases_inventory_once(self):
        order = locked_order(self.event, (self.regular, 3))

        mark_order_failed(order, reason=Order.FAILURE_INTERNAL_ERROR)

        order.refresh_from_db()
        self.regular.refresh_from_db()
        self.assertEqual(order.order_status, Order.STATUS_FAILED)
        self.assertTrue(order.inventory_released)
        self.assertIsNotNone(order.failed_at)
        self.assertEqual(self.regular.quantity_available, 10)

        with self.assertRaises(InvalidOrderTransitionError):
            mark_order_failed(order, reason=Order.FAILURE_INTERNAL_ERROR)

    def test_retry_creates_new_order_linked_to_failed_one(self):
        order = locked_order(self.event, (self.regular, 2))
        mark_order_failed(order, reason=Order.FAILURE_STK_PUSH_FAILED)

        retry = retry_order(order)

        self.assertNotEqual(retry.pk, order.pk)
        self.assertEqual(retry.supersedes_id, order.pk)
        self.assertEqual(retry.order_status, Order.STATUS_PENDING_PAYMENT_INITIATION)
        self.assertEqual(retry.total_amount, Decimal("1000.00"))

        order.refresh_from_db()
        self.assertEqual(order.order_status, Order.STATUS_FAILED)

    def test_only_failed_orders_can_be_retried(self):
        order = locked_order(self.event, (self.regular, 1))
        with self.assertRaises(InvalidOrderTransitionError):
            retry_order(order)

    # ======================================================
    # IMMUTABILITY
    # ======================================================

    def test_terminal_order_is_immutable(self):
        order = locked_order(self.event, (self.regular, 1))
        mark_order_failed(order, reason=Order.FAILURE_PAYMENT_TIMEOUT)

        order.refresh_from_db()
        order.order_status = Order.STATUS_COMPLETED
        with self.assertRaises(ValueError):
            order.save()

        order.refresh_from_db()
        order.total_amount = Decimal("1.00")
        with self.assertRaises(ValueError):
            order.save()
