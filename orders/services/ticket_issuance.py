# orders/services/ticket_issuance.py

"""
TICKET ISSUANCE

issue_tickets(order) -> list[Ticket]
ensure_tickets_issued(order) -> Order       (lazy recovery on status reads)
issue_missing_tickets() -> list[order ids]  (recovery sweep)

HARD RULES:
- Only for orders already durably `completed`
- Exactly one Ticket per purchased unit (sum of item quantities)
- At most once per order: a second call raises AlreadyIssuedError
  and creates nothing
- A completed order whose issuance failed (tickets_issued_at IS NULL) is
  picked up again by the recovery paths until it has its tickets
"""

from __future__ import annotations

import logging

from django.db import DatabaseError, transaction
from django.utils import timezone

from orders.models import Order, Ticket
from orders.models.ticket import generate_ticket_no, generate_ticket_token
from orders.services.exceptions import AlreadyIssuedError
from orders.services.order_lifecycle import InvalidOrderTransitionError

logger = logging.getLogger(__name__)


@transaction.atomic
def issue_tickets(order: Order) -> list[Ticket]:
    order = Order.objects.select_for_update().get(pk=order.pk)

    if order.order_status != Order.STATUS_COMPLETED:
        raise InvalidOrderTransitionError(
            f"Tickets can only be issued for completed orders (order {order.order_no} is '{order.order_status}')"
        )

    if order.tickets_issued_at is not None or order.tickets.exists():
        raise AlreadyIssuedError(order_id=order.id)

    now = timezone.now()
    tickets = []
    for item in order.items.select_related("ticket_type").all():
        for _ in range(int(item.quantity)):
            tickets.append(
                Ticket(
                    order=order,
                    ticket_type=item.ticket_type,
                    ticket_type_name=item.ticket_type_name,
                    ticket_no=generate_ticket_no(),
                    token=generate_ticket_token(),
                    issued_at=now,
                )
            )

    Ticket.objects.bulk_create(tickets)

    order.tickets_issued_at = now
    order.save(update_fields=["tickets_issued_at", "updated_at"])

    logger.info("Tickets issued", extra={"order_id": str(order.id), "count": len(tickets)})
    return list(order.tickets.all())


def try_issue_tickets(order: Order) -> int:
    """
    Issue tickets for a completed order, leaving a failure to the recovery
    paths. Returns the number of tickets created by this call.
    """
    try:
        return len(issue_tickets(order))
    except AlreadyIssuedError:
        logger.info("Tickets already issued", extra={"order_id": str(order.id)})
        return 0
    except DatabaseError:
        logger.exception("Ticket issuance failed; will be retried", extra={"order_id": str(order.id)})
        return 0


def needs_tickets(order: Order) -> bool:
    return order.order_status == Order.STATUS_COMPLETED and order.tickets_issued_at is None


def ensure_tickets_issued(order: Order) -> Order:
    if needs_tickets(order) and try_issue_tickets(order):
        order.refresh_from_db()
    return order


def issue_missing_tickets(*, dry_run: bool = False) -> list:
    """Returns the ids of completed orders that were (or, on dry run, would be) given their tickets."""
    candidates = list(
        Order.objects.filter(order_status=Order.STATUS_COMPLETED, tickets_issued_at__isnull=True).order_by(
            "completed_at"
        )
    )
    if dry_run:
        return [order.id for order in candidates]

    recovered = []
    for order in candidates:
        if try_issue_tickets(order):
            recovered.append(order.id)

    if recovered:
        logger.warning("Recovered ticket issuance for completed orders", extra={"count": len(recovered)})
    return recovered
