# coupons/tests/test_resolver.py

from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from coupons.models import Coupon
from coupons.services import apply_coupon, compute_discount, redeem_coupon, resolve_coupon
from events.models import Event
from orders.services.exceptions import (
    CouponExhaustedError,
    CouponExpiredError,
    CouponNotApplicableError,
    CouponNotFoundError,
)


class DiscountMathTests(SimpleTestCase):
    """
    GUARANTEES:
    - total = original - discount, never negative
    - fixed discounts clamp at the original total
    """

    def _coupon(self, discount_type, value):
        return Coupon(organizer_id="org-1", code="X", discount_type=discount_type, discount_value=Decimal(value))

    def test_no_coupon(self):
        result = compute_discount(None, Decimal("1000.00"))
        self.assertEqual(result.discount_amount, Decimal("0.00"))
        self.assertEqual(result.discounted_total, Decimal("1000.00"))

    def test_percentage(self):
        result = compute_discount(self._coupon(Coupon.TYPE_PERCENTAGE, "10"), Decimal("1000.00"))
        self.assertEqual(result.discount_amount, Decimal("100.00"))
        self.assertEqual(result.discounted_total, Decimal("900.00"))

    def test_percentage_rounds_to_cents(self):
        result = compute_discount(self._coupon(Coupon.TYPE_PERCENTAGE, "15"), Decimal("333.33"))
        self.assertEqual(result.discount_amount, Decimal("50.00"))
        self.assertEqual(result.discounted_total, Decimal("283.33"))

    def test_full_percentage(self):
        result = compute_discount(self._coupon(Coupon.TYPE_PERCENTAGE, "100"), Decimal("750.00"))
        self.assertEqual(result.discounted_total, Decimal("0.00"))

    def test_fixed_below_total(self):
        result = compute_discount(self._coupon(Coupon.TYPE_FIXED, "250"), Decimal("1000.00"))
        self.assertEqual(result.discounted_total, Decimal("750.00"))

    def test_fixed_above_total_clamps_to_zero(self):
        result = compute_discount(self._coupon(Coupon.TYPE_FIXED, "5000"), Decimal("1000.00"))
        self.assertEqual(result.discount_amount, Decimal("1000.00"))
        self.assertEqual(result.discounted_total, Decimal("0.00"))

    def test_negative_total_is_rejected(self):
        with self.assertRaises(ValueError):
            compute_discount(None, Decimal("-1"))


class CouponResolverTests(TestCase):
    """
    GUARANTEES:
    - Lookup is case-insensitive and scoped to the event's organizer
    - Expired / exhausted / foreign-event coupons are rejected
    - Applying never consumes a use; redeeming never passes the limit
    """

    def setUp(self):
        self.event = Event.objects.create(organizer_id="org-1", name="Koroga Festival")
        self.other_event = Event.objects.create(organizer_id="org-1", name="Rhumba Nite")
        self.foreign_event = Event.objects.create(organizer_id="org-2", name="Other Org Gig")

        self.coupon = Coupon.objects.create(
            organizer_id="org-1",
            code="save10",
            discount_type=Coupon.TYPE_PERCENTAGE,
            discount_value=Decimal("10"),
            usage_limit=2,
        )

    def test_code_is_stored_uppercase(self):
        self.assertEqual(self.coupon.code, "SAVE10")

    def test_lookup_is_case_insensitive(self):
        self.assertEqual(resolve_coupon(" Save10 ", event=self.event).pk, self.coupon.pk)

    def test_unknown_code(self):
        with self.assertRaises(CouponNotFoundError):
            resolve_coupon("NOPE", event=self.event)

    def test_blank_code(self):
        with self.assertRaises(CouponNotFoundError):
            resolve_coupon("   ", event=self.event)

    def test_other_organizer_cannot_use_code(self):
        with self.assertRaises(CouponNotFoundError):
            resolve_coupon("SAVE10", event=self.foreign_event)

    def test_inactive_coupon_is_not_found(self):
        Coupon.objects.filter(pk=self.coupon.pk).update(is_active=False)
        with self.assertRaises(CouponNotFoundError):
            resolve_coupon("SAVE10", event=self.event)

    def test_not_yet_valid(self):
        Coupon.objects.filter(pk=self.coupon.pk).update(valid_from=timezone.now() + timedelta(days=1))
        with self.assertRaises(CouponNotFoundError):
            resolve_coupon("SAVE10", event=self.event)

    def test_expired(self):
        Coupon.objects.filter(pk=self.coupon.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
        with self.assertRaises(CouponExpiredError):
            resolve_coupon("SAVE10", event=self.event)

    def test_exhausted(self):
        Coupon.objects.filter(pk=self.coupon.pk).update(used_count=2)
        with self.assertRaises(CouponExhaustedError):
            resolve_coupon("SAVE10", event=self.event)

    def test_restricted_to_other_event(self):
        self.coupon.applicable_event_ids = [str(self.other_event.id)]
        self.coupon.save()

        with self.assertRaises(CouponNotApplicableError):
            resolve_coupon("SAVE10", event=self.event)
        self.assertEqual(resolve_coupon("SAVE10", event=self.other_event).pk, self.coupon.pk)

    def test_apply_does_not_consume_a_use(self):
        result = apply_coupon("SAVE10", Decimal("1000.00"), event=self.event)

        self.coupon.refresh_from_db()
        self.assertEqual(result.discounted_total, Decimal("900.00"))
        self.assertEqual(self.coupon.used_count, 0)

    def test_redeem_stops_at_limit(self):
        self.assertTrue(redeem_coupon(self.coupon.pk))
        self.assertTrue(redeem_coupon(self.coupon.pk))
        self.assertFalse(redeem_coupon(self.coupon.pk))

        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.used_count, 2)

    def test_unlimited_coupon_redeems_freely(self):
        Coupon.objects.filter(pk=self.coupon.pk).update(usage_limit=None)
        for _ in range(5):
            self.assertTrue(redeem_coupon(self.coupon.pk))

    def test_percentage_above_100_is_invalid(self):
        with self.assertRaises(ValidationError):
            Coupon.objects.create(
                organizer_id="org-1",
                code="TOOMUCH",
                discount_type=Coupon.TYPE_PERCENTAGE,
                discount_value=Decimal("150"),
            )
