# events/models/event.py

import uuid

from django.db import models


class Event(models.Model):
    """
    A ticketed event published by an organizer.

    Only the fields the checkout flow reads live here; listing/marketing
    content is owned by the storefront UI.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    organizer_id = models.CharField(
        max_length=128,
        db_index=True,
        help_text="Identity of the organizer that owns this event (coupon scope).",
    )

    name = models.CharField(max_length=255, db_index=True)
    venue = models.CharField(max_length=255, blank=True, default="")
    starts_at = models.DateTimeField(null=True, blank=True)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["organizer_id", "created_at"], name="event_organizer_created_idx"),
        ]

    def __str__(self):
        return self.name
