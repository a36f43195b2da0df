# public/tests/test_mpesa.py

"""
Daraja client + callback parsing. No network: urlopen is patched.
"""

import base64
import io
import json
from decimal import Decimal
from unittest import mock
from urllib.error import HTTPError, URLError

from django.core.cache import cache
from django.test import SimpleTestCase

from orders.services.exceptions import PaymentProviderError
from orders.services.reconciliation import OUTCOME_CANCELLED, OUTCOME_FAILED, OUTCOME_SUCCESS
from orders.tests.factories import stk_callback_payload
from public.services.mpesa import (
    MpesaConfig,
    MpesaGateway,
    parse_stk_callback,
    verify_callback_token,
)

CONFIG = MpesaConfig(
    environment="sandbox",
    consumer_key="ck",
    consumer_secret="cs",
    shortcode="174379",
    passkey="passkey",
    callback_url="https://tickets.example.com/api/public/payments/mpesa/callback/",
    callback_token="s3cret",
    timeout_seconds=5,
)

TOKEN_BODY = {"access_token": "tok-123", "expires_in": "3599"}
ACCEPTED_BODY = {
    "MerchantRequestID": "29115-34620561-1",
    "CheckoutRequestID": "ws_CO_191020261200001",
    "ResponseCode": "0",
    "ResponseDescription": "Success. Request accepted for processing",
    "CustomerMessage": "Success. Request accepted for processing",
}


def _response(body: dict):
    resp = mock.MagicMock()
    resp.read.return_value = json.dumps(body).encode("utf-8")
    cm = mock.MagicMock()
    cm.__enter__.return_value = resp
    return cm


class MpesaGatewayTests(SimpleTestCase):
    """
    GUARANTEES:
    - OAuth token is fetched once and cached
    - STK push carries shortcode/password/timestamp and the tokenised callback URL
    - Every transport or provider rejection is a PaymentProviderError
    """

    def setUp(self):
        cache.clear()
        self.gateway = MpesaGateway(CONFIG)

    def tearDown(self):
        cache.clear()

    def push(self, **overrides):
        kwargs = {
            "amount": 1000,
            "phone_number": "254712345678",
            "account_reference": "A1B2C3D4E5F6G7",
            "description": "Tickets for Nairobi Jazz Night",
        }
        kwargs.update(overrides)
        return self.gateway.stk_push(**kwargs)

    @mock.patch("public.services.mpesa.urlopen")
    def test_access_token_is_cached(self, urlopen):
        urlopen.return_value = _response(TOKEN_BODY)

        self.assertEqual(self.gateway.access_token(), "tok-123")
        self.assertEqual(self.gateway.access_token(), "tok-123")

        self.assertEqual(urlopen.call_count, 1)
        request = urlopen.call_args.args[0]
        expected = base64.b64encode(b"ck:cs").decode("ascii")
        self.assertEqual(request.get_header("Authorization"), f"Basic {expected}")
        self.assertIn("/oauth/v1/generate?grant_type=client_credentials", request.full_url)

    @mock.patch("public.services.mpesa.urlopen")
    def test_stk_push_request_shape(self, urlopen):
        urlopen.side_effect = [_response(TOKEN_BODY), _response(ACCEPTED_BODY)]

        result = self.push()

        self.assertEqual(result.checkout_request_id, "ws_CO_191020261200001")
        self.assertEqual(result.merchant_request_id, "29115-34620561-1")

        request = urlopen.call_args_list[1].args[0]
        self.assertTrue(request.full_url.endswith("/mpesa/stkpush/v1/processrequest"))
        self.assertEqual(request.get_header("Authorization"), "Bearer tok-123")

        sent = json.loads(request.data.decode("utf-8"))
        self.assertEqual(sent["BusinessShortCode"], "174379")
        self.assertEqual(sent["Amount"], 1000)
        self.assertEqual(sent["PartyA"], "254712345678")
        self.assertEqual(sent["PhoneNumber"], "254712345678")
        self.assertEqual(sent["TransactionType"], "CustomerPayBillOnline")
        self.assertEqual(len(sent["AccountReference"]), 12)
        self.assertLessEqual(len(sent["TransactionDesc"]), 13)
        self.assertTrue(sent["CallBackURL"].endswith("?token=s3cret"))

        expected_password = base64.b64encode(f"174379passkey{sent['Timestamp']}".encode()).decode("ascii")
        self.assertEqual(sent["Password"], expected_password)
        self.assertEqual(len(sent["Timestamp"]), 14)

    @mock.patch("public.services.mpesa.urlopen")
    def test_rejected_push_raises_with_provider_message(self, urlopen):
        urlopen.side_effect = [
            _response(TOKEN_BODY),
            _response({"ResponseCode": "1", "ResponseDescription": "Invalid PhoneNumber"}),
        ]

        with self.assertRaises(PaymentProviderError) as ctx:
            self.push()

        self.assertIn("Invalid PhoneNumber", ctx.exception.provider_message)

    @mock.patch("public.services.mpesa.urlopen")
    def test_http_error_body_is_surfaced(self, urlopen):
        body = io.BytesIO(json.dumps({"errorMessage": "System is busy"}).encode("utf-8"))
        urlopen.side_effect = [
            _response(TOKEN_BODY),
            HTTPError("https://sandbox.safaricom.co.ke", 500, "Server Error", {}, body),
        ]

        with self.assertRaises(PaymentProviderError) as ctx:
            self.push()

        self.assertIn("500", ctx.exception.provider_message)
        self.assertIn("System is busy", ctx.exception.provider_message)

    @mock.patch("public.services.mpesa.urlopen")
    def test_unreachable_provider(self, urlopen):
        urlopen.side_effect = URLError("timed out")

        with self.assertRaises(PaymentProviderError) as ctx:
            self.push()

        self.assertIn("timed out", ctx.exception.provider_message)

    @mock.patch("public.services.mpesa.urlopen")
    def test_amount_below_one_never_calls_provider(self, urlopen):
        with self.assertRaises(PaymentProviderError):
            self.push(amount=0)

        urlopen.assert_not_called()

    @mock.patch("public.services.mpesa.urlopen")
    def test_missing_credentials(self, urlopen):
        gateway = MpesaGateway(MpesaConfig(shortcode="174379", passkey="p", callback_url="https://x/cb"))

        with self.assertRaises(PaymentProviderError):
            gateway.stk_push(amount=10, phone_number="254712345678", account_reference="X", description="Y")

        urlopen.assert_not_called()


class MpesaCallbackParsingTests(SimpleTestCase):
    """
    GUARANTEES:
    - ResultCode 0 -> success, 1032 -> cancelled, anything else -> failed
    - CallbackMetadata amount / receipt / phone are extracted
    - Non-STK payloads raise ValueError
    """

    def test_success(self):
        cb = parse_stk_callback(stk_callback_payload("ws_CO_1", amount=1000, receipt="QJK1ABC2DE"))

        self.assertEqual(cb.correlation_id, "ws_CO_1")
        self.assertEqual(cb.outcome, OUTCOME_SUCCESS)
        self.assertEqual(cb.result_code, 0)
        self.assertEqual(cb.amount, Decimal("1000"))
        self.assertEqual(cb.receipt_number, "QJK1ABC2DE")
        self.assertEqual(cb.phone_number, "254712345678")

    def test_cancelled_by_user(self):
        cb = parse_stk_callback(stk_callback_payload("ws_CO_2", result_code=1032))

        self.assertEqual(cb.outcome, OUTCOME_CANCELLED)
        self.assertIsNone(cb.amount)
        self.assertEqual(cb.receipt_number, "")

    def test_other_codes_are_failures(self):
        cb = parse_stk_callback(stk_callback_payload("ws_CO_3", result_code=2001))
        self.assertEqual(cb.outcome, OUTCOME_FAILED)
        self.assertEqual(cb.result_code, 2001)

    def test_malformed_payloads(self):
        for payload in (
            {},
            None,
            [],
            ["Body"],
            "Body",
            {"Body": []},
            {"Body": {}},
            {"Body": {"stkCallback": {"ResultCode": 0}}},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(ValueError):
                    parse_stk_callback(payload)

        with self.assertRaises(ValueError):
            parse_stk_callback({"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_4", "ResultCode": "x"}}})


class CallbackTokenTests(SimpleTestCase):
    def test_token_check(self):
        self.assertTrue(verify_callback_token(CONFIG, "s3cret"))
        self.assertFalse(verify_callback_token(CONFIG, "wrong"))
        self.assertFalse(verify_callback_token(CONFIG, None))

    def test_unconfigured_token_disables_check(self):
        self.assertTrue(verify_callback_token(MpesaConfig(), None))

    def test_callback_url_with_token(self):
        self.assertEqual(
            CONFIG.callback_url_with_token,
            "https://tickets.example.com/api/public/payments/mpesa/callback/?token=s3cret",
        )
        self.assertEqual(MpesaConfig(callback_url="https://x/cb").callback_url_with_token, "https://x/cb")
