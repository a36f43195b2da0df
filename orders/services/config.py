# orders/services/config.py

"""
Checkout configuration, materialised from settings.CHECKOUT once and passed
into services explicitly (tests construct their own instances).
"""

from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings


@dataclass(frozen=True)
class CheckoutConfig:
    payment_timeout_seconds: int = 300
    currency: str = "KES"
    manual_paybill_number: str = "4168319"
    manual_reference_prefix: str = "NAKS"
    subscription_poll_seconds: float = 2.0
    subscription_max_seconds: int = 330

    @classmethod
    def from_settings(cls) -> "CheckoutConfig":
        raw = getattr(settings, "CHECKOUT", {}) or {}
        defaults = cls()
        return cls(
            payment_timeout_seconds=int(raw.get("PAYMENT_TIMEOUT_SECONDS", defaults.payment_timeout_seconds)),
            currency=str(raw.get("CURRENCY") or defaults.currency),
            manual_paybill_number=str(raw.get("MANUAL_PAYBILL_NUMBER") or defaults.manual_paybill_number),
            manual_reference_prefix=str(raw.get("MANUAL_REFERENCE_PREFIX") or defaults.manual_reference_prefix),
            subscription_poll_seconds=float(raw.get("SUBSCRIPTION_POLL_SECONDS", defaults.subscription_poll_seconds)),
            subscription_max_seconds=int(raw.get("SUBSCRIPTION_MAX_SECONDS", defaults.subscription_max_seconds)),
        )
