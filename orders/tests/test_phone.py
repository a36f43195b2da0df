# orders/tests/test_phone.py

from django.test import SimpleTestCase

from orders.services.exceptions import InvalidPhoneNumberError
from orders.services.phone import normalize_msisdn


class NormalizeMsisdnTests(SimpleTestCase):
    def test_local_formats(self):
        self.assertEqual(normalize_msisdn("0712345678"), "254712345678")
        self.assertEqual(normalize_msisdn("0112345678"), "254112345678")
        self.assertEqual(normalize_msisdn("712345678"), "254712345678")

    def test_international_formats(self):
        self.assertEqual(normalize_msisdn("254712345678"), "254712345678")
        self.assertEqual(normalize_msisdn("+254 712-345-678"), "254712345678")

    def test_invalid_numbers(self):
        for raw in ("", None, "0812345678", "07123", "25471234567", "abc0712345678", "44712345678"):
            with self.assertRaises(InvalidPhoneNumberError, msg=repr(raw)):
                normalize_msisdn(raw)
