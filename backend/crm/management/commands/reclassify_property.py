from django.core.management.base import BaseCommand, CommandError
from properties.models import Phase, Property
from crm.sync_engine import reclassify_property


class Command(BaseCommand):
    help = "Re-resolve a property's phase from its stored status, or set it explicitly with --phase."

    def add_arguments(self, parser):
        parser.add_argument("unique_id", type=str)
        parser.add_argument("--phase", type=str, default=None, choices=Phase.values, help="Force this phase")

    def handle(self, *args, **options):
        unique_id = options["unique_id"]
        try:
            result = reclassify_property(unique_id, phase=options.get("phase"))
        except Property.DoesNotExist:
            raise CommandError(f"Property '{unique_id}' not found")

        if result["changed"]:
            self.stdout.write(self.style.SUCCESS(
                f"{unique_id}: {result['previous_phase']} -> {result['phase']} ({result['rule']})"
            ))
        else:
            self.stdout.write(f"{unique_id}: phase unchanged ({result['phase']})")
