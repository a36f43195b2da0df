# coupons/models/coupon.py

"""
COUPON MODEL

- Code is unique per organizer and stored upper-cased (lookups are case-insensitive).
- applicable_event_ids: list of event ids; empty list means "all of this organizer's events".
- used_count only moves at order COMPLETION (coupons.services.resolver.redeem_coupon),
  never when a buyer previews or applies a code.
- used_count <= usage_limit is enforced in the database when a limit is set.
"""

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class Coupon(models.Model):
    TYPE_PERCENTAGE = "percentage"
    TYPE_FIXED = "fixed"

    DISCOUNT_TYPE_CHOICES = (
        (TYPE_PERCENTAGE, "Percentage"),
        (TYPE_FIXED, "Fixed amount"),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    organizer_id = models.CharField(max_length=128, db_index=True)
    code = models.CharField(max_length=40)

    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPE_CHOICES)
    discount_value = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )

    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    per_user_limit = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)

    valid_from = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    applicable_event_ids = models.JSONField(default=list, blank=True)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["organizer_id", "code"],
                name="unique_coupon_code_per_organizer",
            ),
            models.CheckConstraint(
                condition=models.Q(usage_limit__isnull=True)
                | models.Q(used_count__lte=models.F("usage_limit")),
                name="coupon_used_within_limit",
            ),
        ]

    @staticmethod
    def normalize_code(code) -> str:
        return str(code or "").strip().upper()

    def clean(self):
        if self.discount_type == self.TYPE_PERCENTAGE and self.discount_value is not None:
            if self.discount_value > Decimal("100"):
                raise ValidationError({"discount_value": "Percentage cannot exceed 100"})

        if self.valid_from and self.expires_at and self.valid_from >= self.expires_at:
            raise ValidationError({"expires_at": "Expiry must be after valid_from"})

        if not isinstance(self.applicable_event_ids, list):
            raise ValidationError({"applicable_event_ids": "Must be a list of event ids"})

    def save(self, *args, **kwargs):
        self.code = self.normalize_code(self.code)
        self.applicable_event_ids = [str(x) for x in (self.applicable_event_ids or [])]
        self.full_clean()
        return super().save(*args, **kwargs)

    def is_expired(self, now=None) -> bool:
        now = now or timezone.now()
        return bool(self.expires_at and now >= self.expires_at)

    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and self.used_count >= self.usage_limit

    def applies_to_event(self, event_id) -> bool:
        ids = self.applicable_event_ids or []
        return not ids or str(event_id) in ids

    def __str__(self):
        return f"{self.code} ({self.discount_type} {self.discount_value})"
