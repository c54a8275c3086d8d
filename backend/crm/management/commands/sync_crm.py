"""
Django management command to sync properties from the CRM views.
"""
import logging
from django.core.management.base import BaseCommand, CommandError
from crm.exceptions import CrmSyncError, abort_label
from crm.models import CrmSyncRun
from crm.phases import VIEWS_BY_KEY
from crm.sync_engine import run_crm_sync, run_view_sync

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Sync CRM views into the local property store (all views in priority order, or one view)"

    def add_arguments(self, parser):
        parser.add_argument("--view", type=str, default=None, choices=sorted(VIEWS_BY_KEY), help="Sync a single view")
        parser.add_argument("--no-extraction", action="store_true", help="Do not trigger category extraction after the sync")

    def handle(self, *args, **options):
        view_key = options.get("view")
        trigger_extraction = False if options.get("no_extraction") else None

        self.stdout.write(self.style.SUCCESS(f"Starting CRM sync ({view_key or 'all views'})..."))
        try:
            if view_key:
                stats = run_view_sync(view_key, run_type=CrmSyncRun.RUN_MANUAL, trigger_extraction=trigger_extraction)
            else:
                stats = run_crm_sync(run_type=CrmSyncRun.RUN_MANUAL, trigger_extraction=trigger_extraction)
        except CrmSyncError as e:
            logger.error("CRM sync aborted: %s", e)
            raise CommandError(f"{abort_label(e)}: {e}")

        totals = stats.get("totals", {})
        self.stdout.write(
            f"fetched={totals.get('fetched', 0)} created={totals.get('created', 0)} "
            f"updated={totals.get('updated', 0)} unchanged={totals.get('unchanged', 0)} "
            f"skipped={totals.get('skipped', 0)} duplicates={totals.get('skipped_duplicate', 0)} "
            f"errors={totals.get('errors', 0)}"
        )
        for key, view_stats in stats.get("views", {}).items():
            if view_stats.get("incomplete"):
                self.stdout.write(self.style.WARNING(f"View {key} incomplete: {view_stats.get('error')}"))
        orphaned = stats.get("orphaned", {})
        if orphaned.get("moved"):
            self.stdout.write(self.style.WARNING(f"Moved {orphaned['moved']} absent properties to orphaned."))
        if totals.get("errors"):
            self.stdout.write(self.style.WARNING("CRM sync completed with record errors."))
        else:
            self.stdout.write(self.style.SUCCESS("CRM sync completed."))
