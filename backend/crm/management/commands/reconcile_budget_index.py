from django.core.management.base import BaseCommand, CommandError
from properties.models import Property
from crm.budget_index import run_reconcile


class Command(BaseCommand):
    help = "Assign budget indices to extracted categories (one property, or every property with pending categories)."

    def add_arguments(self, parser):
        parser.add_argument("--property", type=str, default=None, dest="unique_id", help="Limit to one property unique id")

    def handle(self, *args, **options):
        unique_id = options.get("unique_id")
        try:
            stats = run_reconcile(unique_id=unique_id)
        except Property.DoesNotExist:
            raise CommandError(f"Property '{unique_id}' not found")

        if unique_id:
            self.stdout.write(self.style.SUCCESS(
                f"{unique_id}: assigned {stats['assigned']} categories over {stats['documents']} documents"
            ))
            return
        self.stdout.write(self.style.SUCCESS(
            f"Reconciled {stats['properties']} properties: assigned={stats['assigned']} errors={stats['errors']}"
        ))
