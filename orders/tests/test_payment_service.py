# orders/tests/test_payment_service.py

from decimal import Decimal
from unittest import mock

from django.test import TestCase

from orders.models import Order, PaymentAttempt
from orders.services.exceptions import (
    DuplicatePaymentAttemptError,
    InvalidPhoneNumberError,
    PaymentInitiationError,
    UnsupportedPaymentMethodError,
)
from orders.services.order_lifecycle import InvalidOrderTransitionError
from orders.services.payment_service import generate_manual_reference, initiate_payment

from .factories import (
    TEST_CONFIG,
    FakeGateway,
    create_coupon,
    create_event,
    create_ticket_type,
    locked_order,
    provider_down,
)


class PushPaymentInitiationTests(TestCase):
    """
    GUARANTEES:
    - Phone is validated before any DB change or provider call
    - A second initiation never reaches the provider
    - Provider failure fails the order, keeps the raw message, releases stock
    """

    def setUp(self):
        self.event = create_event()
        self.regular = create_ticket_type(self.event, price="500.00", total=10)
        self.order = locked_order(self.event, (self.regular, 2))

    def test_push_sent_records_attempt(self):
        gateway = FakeGateway(checkout_request_id="ws_CO_001")

        result = initiate_payment(
            self.order, Order.METHOD_MPESA_STK, phone="0712 345 678", gateway=gateway, config=TEST_CONFIG
        )

        self.assertEqual(result.correlation_id, "ws_CO_001")
        self.assertEqual(result.order_status, Order.STATUS_STK_PUSH_SENT)
        self.assertEqual(gateway.call_count, 1)
        self.assertEqual(gateway.calls[0]["phone_number"], "254712345678")
        self.assertEqual(gateway.calls[0]["amount"], 1000)
        self.assertLessEqual(len(gateway.calls[0]["account_reference"]), 12)

        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, Order.STATUS_STK_PUSH_SENT)
        self.assertEqual(self.order.checkout_request_id, "ws_CO_001")
        self.assertEqual(self.order.customer_phone, "254712345678")
        self.assertIsNotNone(self.order.payment_initiated_at)

        attempt = PaymentAttempt.objects.get(correlation_id="ws_CO_001")
        self.assertEqual(attempt.status, PaymentAttempt.STATUS_PENDING)
        self.assertEqual(attempt.amount, Decimal("1000.00"))

    def test_invalid_phone_rejected_before_anything(self):
        gateway = FakeGateway()

        with self.assertRaises(InvalidPhoneNumberError):
            initiate_payment(self.order, Order.METHOD_MPESA_STK, phone="0812", gateway=gateway, config=TEST_CONFIG)

        self.assertEqual(gateway.call_count, 0)
        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, Order.STATUS_PENDING_PAYMENT_INITIATION)

    def test_duplicate_initiation_never_reaches_provider(self):
        gateway = FakeGateway()
        initiate_payment(self.order, Order.METHOD_MPESA_STK, phone="0712345678", gateway=gateway, config=TEST_CONFIG)

        with self.assertRaises(DuplicatePaymentAttemptError) as ctx:
            initiate_payment(
                self.order, Order.METHOD_MPESA_STK, phone="0712345678", gateway=gateway, config=TEST_CONFIG
            )

        self.assertEqual(gateway.call_count, 1)
        self.assertEqual(ctx.exception.correlation_id, gateway.checkout_request_id)
        self.assertEqual(PaymentAttempt.objects.filter(order=self.order).count(), 1)

    def test_duplicate_while_processing_is_rejected(self):
        Order.objects.filter(pk=self.order.pk).update(order_status=Order.STATUS_PROCESSING)
        gateway = FakeGateway()

        with self.assertRaises(DuplicatePaymentAttemptError):
            initiate_payment(
                self.order, Order.METHOD_MPESA_STK, phone="0712345678", gateway=gateway, config=TEST_CONFIG
            )

        self.assertEqual(gateway.call_count, 0)
        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, Order.STATUS_PROCESSING)

    def test_provider_failure_fails_order_and_releases_stock(self):
        gateway = provider_down()

        with self.assertRaises(PaymentInitiationError) as ctx:
            initiate_payment(
                self.order, Order.METHOD_MPESA_STK, phone="0712345678", gateway=gateway, config=TEST_CONFIG
            )

        self.assertIn("System is busy", ctx.exception.provider_message)
        self.assertNotIn("System is busy", ctx.exception.detail)

        self.order.refresh_from_db()
        self.regular.refresh_from_db()
        self.assertEqual(self.order.order_status, Order.STATUS_FAILED)
        self.assertEqual(self.order.failure_reason, Order.FAILURE_STK_PUSH_FAILED)
        self.assertIn("System is busy", self.order.provider_message)
        self.assertTrue(self.order.inventory_released)
        self.assertEqual(self.regular.quantity_available, 10)

    def test_unexpected_gateway_crash_is_internal_error(self):
        gateway = FakeGateway(error=RuntimeError("boom"))

        with self.assertRaises(RuntimeError):
            initiate_payment(
                self.order, Order.METHOD_MPESA_STK, phone="0712345678", gateway=gateway, config=TEST_CONFIG
            )

        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, Order.STATUS_FAILED)
        self.assertEqual(self.order.failure_reason, Order.FAILURE_INTERNAL_ERROR)

    def test_failed_order_cannot_be_paid_again(self):
        with self.assertRaises(PaymentInitiationError):
            initiate_payment(
                self.order, Order.METHOD_MPESA_STK, phone="0712345678", gateway=provider_down(), config=TEST_CONFIG
            )

        gateway = FakeGateway()
        with self.assertRaises(InvalidOrderTransitionError):
            initiate_payment(
                self.order, Order.METHOD_MPESA_STK, phone="0712345678", gateway=gateway, config=TEST_CONFIG
            )
        self.assertEqual(gateway.call_count, 0)

    def test_unsupported_method(self):
        with self.assertRaises(UnsupportedPaymentMethodError):
            initiate_payment(self.order, "card", config=TEST_CONFIG)

    def test_order_without_locked_totals_cannot_be_paid(self):
        Order.objects.filter(pk=self.order.pk).update(order_status=Order.STATUS_PENDING_CREATION)
        gateway = FakeGateway()

        with self.assertRaises(InvalidOrderTransitionError):
            initiate_payment(
                self.order, Order.METHOD_MPESA_STK, phone="0712345678", gateway=gateway, config=TEST_CONFIG
            )
        self.assertEqual(gateway.call_count, 0)


class ManualAndComplimentaryPaymentTests(TestCase):
    def setUp(self):
        self.event = create_event()
        self.regular = create_ticket_type(self.event, price="500.00", total=10)

    def test_manual_reference_fits_paybill_account(self):
        reference = generate_manual_reference(TEST_CONFIG)
        self.assertTrue(reference.startswith("NAKS_"))
        self.assertEqual(len(reference), 12)

    def test_manual_reference_skips_references_already_taken(self):
        taken = locked_order(self.event, (self.regular, 1))
        PaymentAttempt.objects.create(
            order=taken,
            correlation_id="NAKS_TAKEN01",
            method=Order.METHOD_MANUAL_TRANSFER,
            amount=taken.total_amount,
            status=PaymentAttempt.STATUS_PENDING,
        )
        order = locked_order(self.event, (self.regular, 1))

        with mock.patch(
            "orders.services.payment_service.generate_manual_reference",
            side_effect=["NAKS_TAKEN01", "NAKS_FRESH01"],
        ):
            result = initiate_payment(order, Order.METHOD_MANUAL_TRANSFER, config=TEST_CONFIG)

        self.assertEqual(result.correlation_id, "NAKS_FRESH01")

    def test_manual_reference_uses_letters_and_digits(self):
        references = {generate_manual_reference(TEST_CONFIG) for _ in range(50)}

        self.assertEqual(len(references), 50)
        for reference in references:
            self.assertRegex(reference, r"^NAKS_[A-Z0-9]{7}$")

    def test_manual_transfer_returns_paybill_instructions(self):
        order = locked_order(self.event, (self.regular, 1))

        result = initiate_payment(order, Order.METHOD_MANUAL_TRANSFER, config=TEST_CONFIG)

        self.assertEqual(result.order_status, Order.STATUS_PENDING_MANUAL)
        self.assertEqual(result.manual_instructions["paybill_number"], "4168319")
        self.assertEqual(result.manual_instructions["account_reference"], result.correlation_id)
        self.assertEqual(result.manual_instructions["amount"], 500)

        order.refresh_from_db()
        self.assertEqual(order.order_status, Order.STATUS_PENDING_MANUAL)
        self.assertEqual(order.checkout_request_id, result.correlation_id)
        self.assertTrue(PaymentAttempt.objects.filter(correlation_id=result.correlation_id).exists())

    def test_manual_transfer_is_guarded_against_duplicates(self):
        order = locked_order(self.event, (self.regular, 1))
        initiate_payment(order, Order.METHOD_MANUAL_TRANSFER, config=TEST_CONFIG)

        with self.assertRaises(DuplicatePaymentAttemptError):
            initiate_payment(order, Order.METHOD_MANUAL_TRANSFER, config=TEST_CONFIG)

    def test_fully_discounted_order_completes_without_provider(self):
        create_coupon(code="COMP100", value="100")
        order = locked_order(self.event, (self.regular, 2), coupon_code="COMP100")
        gateway = FakeGateway()

        result = initiate_payment(
            order, Order.METHOD_MPESA_STK, phone="0712345678", gateway=gateway, config=TEST_CONFIG
        )

        self.assertEqual(result.method, Order.METHOD_COMPLIMENTARY)
        self.assertEqual(gateway.call_count, 0)

        order.refresh_from_db()
        self.assertEqual(order.order_status, Order.STATUS_COMPLETED)
        self.assertTrue(order.coupon_redeemed)
        self.assertEqual(order.tickets.count(), 2)
