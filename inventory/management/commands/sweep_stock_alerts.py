import uuid

from django.core.management.base import BaseCommand, CommandError

from core.models import Branch
from inventory.alerts import open_alerts, sweep_alerts


class Command(BaseCommand):
    help = "Re-evaluate stock alerts for one branch or all active branches."

    def add_arguments(self, parser):
        parser.add_argument("--branch-id", dest="branch_id", help="Optional branch UUID.")

    def handle(self, *args, **options):
        branch_id = options.get("branch_id")

        branches = Branch.objects.filter(is_active=True)
        if branch_id:
            try:
                branch_id = uuid.UUID(branch_id)
            except ValueError:
                raise CommandError(f"--branch-id must be a UUID, got {branch_id!r}.")
            branches = branches.filter(id=branch_id)
            if not branches.exists():
                raise CommandError(f"No active branch with id {branch_id}.")

        total_checked = 0
        for branch in branches:
            checked = sweep_alerts(branch.id)
            total_checked += checked
            open_count = open_alerts(branch.id).count()
            self.stdout.write(self.style.SUCCESS(f"Branch {branch.code}: checked {checked} stock levels, {open_count} open alerts."))

        self.stdout.write(self.style.SUCCESS(f"Alert sweep complete. Stock levels checked: {total_checked}."))
