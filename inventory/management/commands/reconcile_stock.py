import uuid

from django.core.management.base import BaseCommand, CommandError

from inventory.dashboard import reconciliation_rows


class Command(BaseCommand):
    help = "Print on-hand, in-transit and total units per product and variation."

    def add_arguments(self, parser):
        parser.add_argument("--product-id", dest="product_id", help="Optional product UUID.")

    def handle(self, *args, **options):
        product_id = options.get("product_id")
        if product_id:
            try:
                product_id = uuid.UUID(product_id)
            except ValueError:
                raise CommandError(f"--product-id must be a UUID, got {product_id!r}.")

        rows = reconciliation_rows(product_id)
        if not rows:
            self.stdout.write(self.style.WARNING("No stock recorded."))
            return

        self.stdout.write(self.style.MIGRATE_HEADING("product_id / variation_id: on_hand + in_transit = total"))
        for row in rows:
            self.stdout.write(
                f"{row['product_id']} / {row['variation_id'] or '-'}: "
                f"{row['on_hand']} + {row['in_transit']} = {row['total']}"
            )

        in_transit = sum(row["in_transit"] for row in rows)
        self.stdout.write(self.style.SUCCESS(f"Reconciled {len(rows)} stock keys; {in_transit} units in transit."))
