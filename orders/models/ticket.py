# orders/models/ticket.py

"""
TICKET

- Exactly one row per purchased unit of a completed order.
- ticket_no is the human-facing id; token is the unguessable single-use
  payload encoded into the scannable code. Both are unique system-wide.
- Redemption is one-way: once redeemed, a ticket can never be un-redeemed.
"""

import secrets
import uuid

from django.db import models
from django.utils import timezone

from events.models import TicketType

from .order import Order


def generate_ticket_no() -> str:
    return f"TKT-{secrets.token_hex(6).upper()}"


def generate_ticket_token() -> str:
    return secrets.token_urlsafe(32)


class Ticket(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    ticket_no = models.CharField(max_length=32, unique=True, default=generate_ticket_no)
    token = models.CharField(max_length=64, unique=True, default=generate_ticket_token, editable=False)

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="tickets")
    ticket_type = models.ForeignKey(TicketType, on_delete=models.PROTECT, related_name="tickets")
    ticket_type_name = models.CharField(max_length=120)

    issued_at = models.DateTimeField(default=timezone.now)

    is_redeemed = models.BooleanField(default=False)
    redeemed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["issued_at", "ticket_no"]

    @property
    def qr_payload(self) -> str:
        return f"{self.ticket_no}.{self.token}"

    def save(self, *args, **kwargs):
        if self.pk and not self._state.adding:
            previous = Ticket.objects.filter(pk=self.pk).values("is_redeemed", "token").first()
            if previous is not None:
                if previous["is_redeemed"] and not self.is_redeemed:
                    raise ValueError("A redeemed ticket cannot be un-redeemed.")
                if previous["token"] != self.token:
                    raise ValueError("A ticket token cannot be reissued.")

        if self.is_redeemed and not self.redeemed_at:
            self.redeemed_at = timezone.now()

        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.ticket_no} | {self.ticket_type_name}"
