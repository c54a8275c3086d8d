"""
Django management command to sync one CRM record by its row id.
"""
from django.core.management.base import BaseCommand, CommandError
from crm.exceptions import CrmSyncError, abort_label
from crm.phases import VIEWS_BY_KEY
from crm.sync_engine import sync_single_record


class Command(BaseCommand):
    help = "Fetch one CRM record (rec...) and upsert it into the property store"

    def add_arguments(self, parser):
        parser.add_argument("record_id", type=str, help="CRM row id, e.g. recXXXXXXXXXXXXXX")
        parser.add_argument("--view", type=str, default=None, choices=sorted(VIEWS_BY_KEY), help="Treat the record as read from this view")

    def handle(self, *args, **options):
        try:
            result = sync_single_record(options["record_id"], view_key=options.get("view"))
        except CrmSyncError as e:
            raise CommandError(f"{abort_label(e)}: {e}")

        changed = ", ".join(result.get("changed_fields", [])) or "-"
        self.stdout.write(self.style.SUCCESS(
            f"{result['unique_id']}: {result['action']} (phase={result.get('phase')}, changed={changed})"
        ))
