"""
Django management command to send eligible budget documents to the automation service.
"""
from django.core.management.base import BaseCommand, CommandError
from crm.exceptions import CrmSyncError, abort_label
from crm.extraction import run_extraction


class Command(BaseCommand):
    help = "Trigger category extraction for properties in renovation with a budget and no categories"

    def add_arguments(self, parser):
        parser.add_argument("--property", type=str, default=None, dest="unique_id", help="Limit to one property unique id")

    def handle(self, *args, **options):
        try:
            stats = run_extraction(unique_id=options.get("unique_id"))
        except CrmSyncError as e:
            raise CommandError(f"{abort_label(e)}: {e}")

        self.stdout.write(
            f"eligible={stats['eligible']} called={stats['called']} "
            f"failed={stats['failed']} skipped={stats['skipped']}"
        )
        style = self.style.WARNING if stats["failed"] else self.style.SUCCESS
        self.stdout.write(style("Category extraction trigger completed."))
