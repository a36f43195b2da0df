# orders/management/commands/expire_stale_orders.py

from __future__ import annotations

from dataclasses import replace

from django.core.management.base import BaseCommand

from orders.services.config import CheckoutConfig
from orders.services.ticket_issuance import issue_missing_tickets
from orders.services.timeout_guard import expire_stale_orders


class Command(BaseCommand):
    help = (
        "Fail orders stuck awaiting payment past the checkout timeout and release their tickets, "
        "then issue tickets for completed orders that are still missing them."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the orders that would be expired without changing anything.",
        )
        parser.add_argument(
            "--timeout-seconds",
            type=int,
            default=None,
            help="Override CHECKOUT['PAYMENT_TIMEOUT_SECONDS'] for this run.",
        )

    def handle(self, *args, **options):
        dry_run = bool(options.get("dry_run"))
        config = CheckoutConfig.from_settings()

        if options.get("timeout_seconds") is not None:
            config = replace(config, payment_timeout_seconds=int(options["timeout_seconds"]))

        if dry_run:
            self.stdout.write("DRY RUN: no database changes will be saved.")

        order_ids = expire_stale_orders(config=config, dry_run=dry_run)

        for order_id in order_ids:
            self.stdout.write(f"{'WOULD EXPIRE' if dry_run else 'EXPIRED'} {order_id}")

        self.stdout.write(self.style.SUCCESS(f"Stale orders: {len(order_ids)}"))

        recovered = issue_missing_tickets(dry_run=dry_run)

        for order_id in recovered:
            self.stdout.write(f"{'WOULD ISSUE TICKETS' if dry_run else 'ISSUED TICKETS'} {order_id}")

        self.stdout.write(self.style.SUCCESS(f"Ticket recoveries: {len(recovered)}"))
