# orders/migrations/0001_initial.py

from __future__ import annotations

import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

import orders.models.ticket


ORDER_STATUS_CHOICES = [
    ("pending_creation", "Pending creation"),
    ("pending_payment_initiation", "Pending payment initiation"),
    ("processing", "Processing"),
    ("stk_push_sent", "STK push sent"),
    ("pending_manual", "Pending manual payment"),
    ("completed", "Completed"),
    ("failed", "Failed"),
]

PAYMENT_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("processing", "Processing"),
    ("completed", "Completed"),
    ("failed", "Failed"),
]

FAILURE_REASON_CHOICES = [
    ("stk_push_failed", "STK push failed"),
    ("payment_timeout", "Payment timeout"),
    ("internal_error", "Internal error"),
    ("payment_declined", "Payment declined"),
    ("payment_cancelled", "Payment cancelled"),
    ("manual_rejected", "Manual payment rejected"),
    ("amount_mismatch", "Amount mismatch"),
]

PAYMENT_METHOD_CHOICES = [
    ("mpesa_stk", "M-Pesa STK push"),
    ("manual_transfer", "Manual paybill transfer"),
    ("complimentary", "Complimentary"),
]

ATTEMPT_STATUS_CHOICES = [
    ("initiated", "Initiated"),
    ("pending", "Pending"),
    ("completed", "Completed"),
    ("failed", "Failed"),
    ("cancelled", "Cancelled"),
    ("expired", "Expired"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("events", "0001_initial"),
        ("coupons", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "order_no",
                    models.CharField(
                        blank=True,
                        help_text="System-generated public order reference",
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("owner_id", models.CharField(db_index=True, default="anonymous", max_length=128)),
                ("customer_name", models.CharField(max_length=255)),
                ("customer_email", models.EmailField(max_length=254)),
                ("customer_phone", models.CharField(blank=True, default="", max_length=20)),
                ("currency", models.CharField(default="KES", max_length=3)),
                ("original_total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("discount_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("coupon_code", models.CharField(blank=True, default="", max_length=40)),
                ("coupon_redeemed", models.BooleanField(default=False)),
                (
                    "order_status",
                    models.CharField(choices=ORDER_STATUS_CHOICES, default="pending_creation", max_length=40),
                ),
                (
                    "payment_status",
                    models.CharField(choices=PAYMENT_STATUS_CHOICES, default="pending", max_length=20),
                ),
                (
                    "failure_reason",
                    models.CharField(blank=True, choices=FAILURE_REASON_CHOICES, default="", max_length=40),
                ),
                (
                    "payment_method",
                    models.CharField(blank=True, choices=PAYMENT_METHOD_CHOICES, default="", max_length=20),
                ),
                (
                    "checkout_request_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Correlation id of the active payment attempt",
                        max_length=100,
                        null=True,
                    ),
                ),
                ("error_code", models.CharField(blank=True, default="", max_length=60)),
                (
                    "result_description",
                    models.TextField(blank=True, default="", help_text="Payer-safe status description"),
                ),
                (
                    "provider_message",
                    models.TextField(blank=True, default="", help_text="Raw provider message (support only)"),
                ),
                ("inventory_reserved", models.BooleanField(default=False)),
                ("inventory_released", models.BooleanField(default=False)),
                ("tickets_issued_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("totals_locked_at", models.DateTimeField(blank=True, null=True)),
                ("payment_initiated_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "coupon",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to="coupons.coupon",
                    ),
                ),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="events.event",
                    ),
                ),
                (
                    "supersedes",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="retries",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["order_status", "payment_initiated_at"], name="order_status_initiated_idx"),
                    models.Index(fields=["owner_id", "created_at"], name="order_owner_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("ticket_type_name", models.CharField(max_length=120)),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("quantity", models.PositiveIntegerField()),
                ("line_total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="orders.order",
                    ),
                ),
                (
                    "ticket_type",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="order_items",
                        to="events.tickettype",
                    ),
                ),
            ],
            options={
                "ordering": ["ticket_type_name"],
                "constraints": [
                    models.UniqueConstraint(fields=("order", "ticket_type"), name="unique_ticket_type_per_order"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentAttempt",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("correlation_id", models.CharField(max_length=100, unique=True)),
                ("merchant_request_id", models.CharField(blank=True, default="", max_length=100)),
                ("method", models.CharField(choices=PAYMENT_METHOD_CHOICES, max_length=20)),
                ("amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("phone_number", models.CharField(blank=True, default="", max_length=20)),
                ("status", models.CharField(choices=ATTEMPT_STATUS_CHOICES, default="initiated", max_length=20)),
                ("result_code", models.IntegerField(blank=True, null=True)),
                ("result_description", models.TextField(blank=True, default="")),
                ("receipt_number", models.CharField(blank=True, default="", max_length=40)),
                ("paid_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("raw_payload", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payments",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Ticket",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "ticket_no",
                    models.CharField(default=orders.models.ticket.generate_ticket_no, max_length=32, unique=True),
                ),
                (
                    "token",
                    models.CharField(
                        default=orders.models.ticket.generate_ticket_token,
                        editable=False,
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("ticket_type_name", models.CharField(max_length=120)),
                ("issued_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("is_redeemed", models.BooleanField(default=False)),
                ("redeemed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="tickets",
                        to="orders.order",
                    ),
                ),
                (
                    "ticket_type",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="tickets",
                        to="events.tickettype",
                    ),
                ),
            ],
            options={
                "ordering": ["issued_at", "ticket_no"],
            },
        ),
    ]
