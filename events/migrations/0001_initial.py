# events/migrations/0001_initial.py

from __future__ import annotations

import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Event",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "organizer_id",
                    models.CharField(
                        db_index=True,
                        help_text="Identity of the organizer that owns this event (coupon scope).",
                        max_length=128,
                    ),
                ),
                ("name", models.CharField(db_index=True, max_length=255)),
                ("venue", models.CharField(blank=True, default="", max_length=255)),
                ("starts_at", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["organizer_id", "created_at"], name="event_organizer_created_idx")],
            },
        ),
        migrations.CreateModel(
            name="TicketType",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=120)),
                (
                    "unit_price",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                ("quantity_total", models.PositiveIntegerField()),
                ("quantity_available", models.PositiveIntegerField()),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="ticket_types",
                        to="events.event",
                    ),
                ),
            ],
            options={
                "ordering": ["event", "unit_price"],
                "indexes": [models.Index(fields=["event", "is_active"], name="ticket_type_event_active_idx")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity_available__lte", models.F("quantity_total"))),
                        name="ticket_type_available_within_total",
                    )
                ],
            },
        ),
    ]
