# public/services/mpesa.py
"""
M-PESA DARAJA CLIENT (Lipa na M-Pesa Online / STK push)

- OAuth client-credentials token (cached until shortly before expiry)
- STK push request (BusinessShortCode + Password + Timestamp)
- Callback parsing into the provider-neutral ProviderCallback
- Shared-secret token check for the callback URL

Every transport or provider rejection surfaces as PaymentProviderError
carrying the provider's own message.
"""

from __future__ import annotations

import base64
import hmac
import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from orders.services.exceptions import PaymentProviderError
from orders.services.reconciliation import (
    OUTCOME_CANCELLED,
    OUTCOME_FAILED,
    OUTCOME_SUCCESS,
    ProviderCallback,
)

logger = logging.getLogger(__name__)

BASE_URLS = {
    "sandbox": "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}

RESULT_SUCCESS = 0
RESULT_CANCELLED_BY_USER = 1032

ACCOUNT_REFERENCE_MAX = 12
TRANSACTION_DESC_MAX = 13


@dataclass(frozen=True)
class MpesaConfig:
    environment: str = "sandbox"
    consumer_key: str = ""
    consumer_secret: str = ""
    shortcode: str = ""
    passkey: str = ""
    callback_url: str = ""
    callback_token: str = ""
    timeout_seconds: int = 25

    @classmethod
    def from_settings(cls) -> "MpesaConfig":
        payments = getattr(settings, "PAYMENTS", {}) or {}
        raw = payments.get("MPESA") or {}
        return cls(
            environment=(raw.get("ENVIRONMENT") or "sandbox").strip().lower(),
            consumer_key=(raw.get("CONSUMER_KEY") or "").strip(),
            consumer_secret=(raw.get("CONSUMER_SECRET") or "").strip(),
            shortcode=(raw.get("SHORTCODE") or "").strip(),
            passkey=(raw.get("PASSKEY") or "").strip(),
            callback_url=(raw.get("CALLBACK_URL") or "").strip(),
            callback_token=(raw.get("CALLBACK_TOKEN") or "").strip(),
            timeout_seconds=int(raw.get("TIMEOUT_SECONDS") or 25),
        )

    @property
    def base_url(self) -> str:
        return BASE_URLS.get(self.environment, BASE_URLS["sandbox"])

    @property
    def callback_url_with_token(self) -> str:
        if not self.callback_token:
            return self.callback_url
        sep = "&" if "?" in self.callback_url else "?"
        return f"{self.callback_url}{sep}token={self.callback_token}"


@dataclass(frozen=True)
class StkPushResult:
    checkout_request_id: str
    merchant_request_id: str
    customer_message: str
    raw: dict


def _safe_preview(text: str, limit: int = 800) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"


def _parse_json(raw: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw or "")
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _provider_message(body: dict) -> str:
    return str(
        body.get("errorMessage")
        or body.get("ResponseDescription")
        or body.get("CustomerMessage")
        or body.get("error_description")
        or "M-Pesa rejected request"
    )


class MpesaGateway:
    """Thin Daraja client. One instance per request is fine; tokens are cached."""

    def __init__(self, config: MpesaConfig):
        self.config = config

    # ------------------------------
    # Transport
    # ------------------------------
    def _request_json(self, method: str, url: str, *, headers: dict, body: dict | None = None) -> dict:
        data = None
        if body is not None:
            data = json.dumps(body, ensure_ascii=False).encode("utf-8")

        req = Request(
            url,
            data=data,
            headers={"Content-Type": "application/json", "Accept": "application/json", **headers},
            method=method,
        )

        try:
            with urlopen(req, timeout=self.config.timeout_seconds) as resp:
                raw = resp.read().decode("utf-8", errors="replace")
        except HTTPError as e:
            try:
                raw = e.read().decode("utf-8", errors="replace")
            except OSError:
                raw = ""
            parsed = _parse_json(raw)
            if parsed is not None:
                raise PaymentProviderError(f"M-Pesa HTTPError: {e.code} {_provider_message(parsed)}") from e
            raise PaymentProviderError(f"M-Pesa HTTPError: {e.code} {_safe_preview(raw or str(e))}") from e
        except URLError as e:
            raise PaymentProviderError(f"M-Pesa URLError: {e.reason}") from e
        except (TimeoutError, OSError) as e:
            raise PaymentProviderError(f"M-Pesa request failed: {e}") from e

        parsed = _parse_json(raw)
        if parsed is None:
            raise PaymentProviderError(f"M-Pesa returned non-JSON: {_safe_preview(raw)}")
        return parsed

    # ------------------------------
    # OAuth
    # ------------------------------
    def _token_cache_key(self) -> str:
        return f"mpesa:token:{self.config.environment}:{self.config.consumer_key}"

    def access_token(self) -> str:
        cached = cache.get(self._token_cache_key())
        if cached:
            return cached

        if not self.config.consumer_key or not self.config.consumer_secret:
            raise PaymentProviderError("M-Pesa consumer key/secret are not configured")

        basic = base64.b64encode(
            f"{self.config.consumer_key}:{self.config.consumer_secret}".encode("utf-8")
        ).decode("ascii")

        body = self._request_json(
            "GET",
            f"{self.config.base_url}/oauth/v1/generate?grant_type=client_credentials",
            headers={"Authorization": f"Basic {basic}"},
        )

        token = str(body.get("access_token") or "").strip()
        if not token:
            raise PaymentProviderError(f"M-Pesa OAuth failed: {_provider_message(body)}")

        try:
            expires_in = int(body.get("expires_in") or 3599)
        except (TypeError, ValueError):
            expires_in = 3599

        cache.set(self._token_cache_key(), token, timeout=max(expires_in - 60, 60))
        return token

    # ------------------------------
    # STK push
    # ------------------------------
    def password(self, timestamp: str) -> str:
        raw = f"{self.config.shortcode}{self.config.passkey}{timestamp}"
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def stk_push(
        self,
        *,
        amount: int,
        phone_number: str,
        account_reference: str,
        description: str,
        now=None,
    ) -> StkPushResult:
        if int(amount) < 1:
            raise PaymentProviderError("M-Pesa amount must be at least 1")

        if not self.config.shortcode or not self.config.passkey or not self.config.callback_url:
            raise PaymentProviderError("M-Pesa shortcode/passkey/callback URL are not configured")

        timestamp = timezone.localtime(now or timezone.now()).strftime("%Y%m%d%H%M%S")

        payload = {
            "BusinessShortCode": self.config.shortcode,
            "Password": self.password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(amount),
            "PartyA": phone_number,
            "PartyB": self.config.shortcode,
            "PhoneNumber": phone_number,
            "CallBackURL": self.config.callback_url_with_token,
            "AccountReference": str(account_reference)[:ACCOUNT_REFERENCE_MAX],
            "TransactionDesc": str(description)[:TRANSACTION_DESC_MAX],
        }

        body = self._request_json(
            "POST",
            f"{self.config.base_url}/mpesa/stkpush/v1/processrequest",
            headers={"Authorization": f"Bearer {self.access_token()}"},
            body=payload,
        )

        if str(body.get("ResponseCode")) != "0" or not body.get("CheckoutRequestID"):
            raise PaymentProviderError(_provider_message(body))

        logger.info(
            "STK push accepted",
            extra={"checkout_request_id": body.get("CheckoutRequestID"), "reference": payload["AccountReference"]},
        )

        return StkPushResult(
            checkout_request_id=str(body["CheckoutRequestID"]),
            merchant_request_id=str(body.get("MerchantRequestID") or ""),
            customer_message=str(body.get("CustomerMessage") or ""),
            raw=body,
        )


# ============================================================
# CALLBACKS
# ============================================================


def verify_callback_token(config: MpesaConfig, token: str | None) -> bool:
    """Unconfigured token means the check is disabled (dev/sandbox only)."""
    if not config.callback_token:
        return True
    if not token:
        return False
    return hmac.compare_digest(config.callback_token, str(token).strip())


def _metadata(callback: dict) -> dict[str, Any]:
    items = ((callback.get("CallbackMetadata") or {}).get("Item")) or []
    out = {}
    for item in items:
        if isinstance(item, dict) and "Name" in item:
            out[str(item["Name"])] = item.get("Value")
    return out


def parse_stk_callback(payload: dict) -> ProviderCallback:
    """
    Map the Daraja `Body.stkCallback` envelope onto ProviderCallback.

    Raises ValueError for payloads that are not STK callbacks.
    """
    if not isinstance(payload, dict):
        raise ValueError("Callback body must be a JSON object")

    body = payload.get("Body")
    callback = body.get("stkCallback") if isinstance(body, dict) else None
    if not isinstance(callback, dict):
        raise ValueError("Missing Body.stkCallback")

    correlation_id = str(callback.get("CheckoutRequestID") or "").strip()
    if not correlation_id:
        raise ValueError("Missing CheckoutRequestID")

    try:
        result_code = int(callback.get("ResultCode"))
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid ResultCode") from exc

    if result_code == RESULT_SUCCESS:
        outcome = OUTCOME_SUCCESS
    elif result_code == RESULT_CANCELLED_BY_USER:
        outcome = OUTCOME_CANCELLED
    else:
        outcome = OUTCOME_FAILED

    meta = _metadata(callback)

    amount = None
    if meta.get("Amount") is not None:
        try:
            amount = Decimal(str(meta["Amount"]))
        except InvalidOperation:
            amount = None

    return ProviderCallback(
        correlation_id=correlation_id,
        outcome=outcome,
        result_code=result_code,
        result_description=str(callback.get("ResultDesc") or ""),
        amount=amount,
        receipt_number=str(meta.get("MpesaReceiptNumber") or ""),
        phone_number=str(meta.get("PhoneNumber") or ""),
        raw=payload,
    )
