# orders/tests/test_timeout_guard.py

from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from orders.models import Order, PaymentAttempt
from orders.services.payment_service import initiate_payment
from orders.services.timeout_guard import expire_if_stale, expire_stale_orders, is_stale

from .factories import TEST_CONFIG, FakeGateway, create_event, create_ticket_type, locked_order


class TimeoutGuardTests(TestCase):
    """
    GUARANTEES:
    - In-flight orders fail with payment_timeout once past the ceiling
    - Their stock is released and open attempts expire
    - Fresh orders are untouched
    """

    def setUp(self):
        self.event = create_event()
        self.regular = create_ticket_type(self.event, price="500.00", total=10)
        self.order = locked_order(self.event, (self.regular, 3))
        initiate_payment(
            self.order, Order.METHOD_MPESA_STK, phone="0712345678", gateway=FakeGateway(), config=TEST_CONFIG
        )
        self.order.refresh_from_db()

    def _later(self, seconds):
        return timezone.now() + timedelta(seconds=seconds)

    def test_fresh_order_is_not_stale(self):
        self.assertFalse(is_stale(self.order, config=TEST_CONFIG))
        self.assertEqual(expire_stale_orders(config=TEST_CONFIG), [])

    def test_stale_push_order_is_failed(self):
        expired = expire_stale_orders(config=TEST_CONFIG, now=self._later(301))

        self.assertEqual(expired, [self.order.pk])
        self.order.refresh_from_db()
        self.regular.refresh_from_db()
        self.assertEqual(self.order.order_status, Order.STATUS_FAILED)
        self.assertEqual(self.order.failure_reason, Order.FAILURE_PAYMENT_TIMEOUT)
        self.assertEqual(self.regular.quantity_available, 10)

        attempt = PaymentAttempt.objects.get(order=self.order)
        self.assertEqual(attempt.status, PaymentAttempt.STATUS_EXPIRED)

    def test_sweep_is_idempotent(self):
        expire_stale_orders(config=TEST_CONFIG, now=self._later(301))
        self.assertEqual(expire_stale_orders(config=TEST_CONFIG, now=self._later(400)), [])

        self.regular.refresh_from_db()
        self.assertEqual(self.regular.quantity_available, 10)

    def test_dry_run_changes_nothing(self):
        candidates = expire_stale_orders(config=TEST_CONFIG, now=self._later(301), dry_run=True)

        self.assertEqual(candidates, [self.order.pk])
        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, Order.STATUS_STK_PUSH_SENT)

    def test_abandoned_locked_order_releases_stock(self):
        abandoned = locked_order(self.event, (self.regular, 2))

        expire_stale_orders(config=TEST_CONFIG, now=self._later(301))

        abandoned.refresh_from_db()
        self.assertEqual(abandoned.order_status, Order.STATUS_FAILED)
        self.assertEqual(abandoned.failure_reason, Order.FAILURE_PAYMENT_TIMEOUT)

    def test_completed_orders_are_never_expired(self):
        Order.objects.filter(pk=self.order.pk).update(order_status=Order.STATUS_COMPLETED)

        self.assertEqual(expire_stale_orders(config=TEST_CONFIG, now=self._later(3600)), [])

    def test_lazy_check_on_read(self):
        order = expire_if_stale(self.order, config=TEST_CONFIG, now=self._later(301))
        self.assertEqual(order.order_status, Order.STATUS_FAILED)

    def test_management_command(self):
        out = StringIO()
        call_command("expire_stale_orders", "--timeout-seconds", "0", stdout=out)

        self.assertIn("Stale orders: 1", out.getvalue())
        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, Order.STATUS_FAILED)
