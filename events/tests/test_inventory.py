# events/tests/test_inventory.py

from datetime import timedelta
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone

from events.models import Event, TicketType
from events.services import catalog_snapshot, release_tickets, reserve_tickets
from orders.services.exceptions import SoldOutError


class TicketInventoryTests(TestCase):
    """
    Tests for ticket stock reservation.

    GUARANTEES:
    - Reservation is all-or-nothing across ticket types
    - Stock never goes negative (no oversell)
    - Release never exceeds the organizer allocation
    """

    def setUp(self):
        self.event = Event.objects.create(
            organizer_id="org-1",
            name="Nairobi Jazz Night",
            venue="KICC",
            starts_at=timezone.now() + timedelta(days=7),
        )
        self.regular = TicketType.objects.create(
            event=self.event,
            name="Regular",
            unit_price=Decimal("500.00"),
            quantity_total=10,
            quantity_available=10,
        )
        self.vip = TicketType.objects.create(
            event=self.event,
            name="VIP",
            unit_price=Decimal("2000.00"),
            quantity_total=2,
            quantity_available=2,
        )

    # ======================================================
    # SNAPSHOT
    # ======================================================

    def test_catalog_snapshot_reads_current_price_and_stock(self):
        snapshot = catalog_snapshot([self.regular.id, self.vip.id])

        entry = snapshot[str(self.regular.id)]
        self.assertEqual(entry.unit_price, Decimal("500.00"))
        self.assertEqual(entry.available, 10)
        self.assertTrue(entry.is_active)
        self.assertEqual(entry.event_id, str(self.event.id))

    def test_catalog_snapshot_marks_inactive_event(self):
        self.event.is_active = False
        self.event.save()

        snapshot = catalog_snapshot([self.regular.id])
        self.assertFalse(snapshot[str(self.regular.id)].is_active)

    def test_catalog_snapshot_empty_input(self):
        self.assertEqual(catalog_snapshot([]), {})

    # ======================================================
    # RESERVE
    # ======================================================

    def test_reserve_decrements_stock(self):
        reserve_tickets({self.regular.id: 3, self.vip.id: 1})

        self.regular.refresh_from_db()
        self.vip.refresh_from_db()
        self.assertEqual(self.regular.quantity_available, 7)
        self.assertEqual(self.vip.quantity_available, 1)

    def test_reserve_sold_out_rolls_back_every_line(self):
        with self.assertRaises(SoldOutError) as ctx:
            reserve_tickets({self.regular.id: 2, self.vip.id: 3})

        self.assertEqual(ctx.exception.ticket_type_name, "VIP")
        self.assertEqual(ctx.exception.remaining, 2)
        self.assertEqual(ctx.exception.requested, 3)

        self.regular.refresh_from_db()
        self.vip.refresh_from_db()
        self.assertEqual(self.regular.quantity_available, 10)
        self.assertEqual(self.vip.quantity_available, 2)

    def test_reserve_inactive_ticket_type_is_rejected(self):
        self.regular.is_active = False
        self.regular.save()

        with self.assertRaises(SoldOutError):
            reserve_tickets({self.regular.id: 1})

    def test_sequential_checkouts_never_oversell(self):
        # Remaining = 2, three buyers each want one.
        successes = 0
        for _ in range(3):
            try:
                reserve_tickets({self.vip.id: 1})
                successes += 1
            except SoldOutError:
                pass

        self.vip.refresh_from_db()
        self.assertEqual(successes, 2)
        self.assertEqual(self.vip.quantity_available, 0)
        self.assertTrue(self.vip.is_sold_out)

    def test_reserve_checks_live_stock_not_an_earlier_read(self):
        snapshot = catalog_snapshot([self.vip.id])
        self.assertEqual(snapshot[str(self.vip.id)].available, 2)

        # Drained by another checkout after the read above.
        TicketType.objects.filter(id=self.vip.id).update(quantity_available=1)

        with self.assertRaises(SoldOutError) as ctx:
            reserve_tickets({self.regular.id: 1, self.vip.id: 2})

        self.assertEqual(ctx.exception.remaining, 1)

        self.regular.refresh_from_db()
        self.vip.refresh_from_db()
        self.assertEqual(self.regular.quantity_available, 10)
        self.assertEqual(self.vip.quantity_available, 1)

    def test_reserve_rejects_fractional_quantity(self):
        with self.assertRaises(ValueError):
            reserve_tickets({self.regular.id: 1.5})

    def test_zero_quantity_lines_are_ignored(self):
        reserve_tickets({self.regular.id: 0})

        self.regular.refresh_from_db()
        self.assertEqual(self.regular.quantity_available, 10)

    # ======================================================
    # RELEASE
    # ======================================================

    def test_release_restores_reserved_stock(self):
        reserve_tickets({self.regular.id: 4})
        restored = release_tickets({self.regular.id: 4})

        self.regular.refresh_from_db()
        self.assertEqual(restored, 1)
        self.assertEqual(self.regular.quantity_available, 10)

    def test_release_never_exceeds_allocation(self):
        restored = release_tickets({self.regular.id: 1})

        self.regular.refresh_from_db()
        self.assertEqual(restored, 0)
        self.assertEqual(self.regular.quantity_available, 10)

    # ======================================================
    # DB CONSTRAINTS
    # ======================================================

    def test_available_cannot_exceed_total(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                TicketType.objects.filter(id=self.vip.id).update(quantity_available=5)
