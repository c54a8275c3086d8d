import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


PHASE_CHOICES = [
    ("upcoming-settlement", "Upcoming Settlement"),
    ("initial-check", "Initial Check"),
    ("budget-pending-renovator", "Budget Pending (Renovator)"),
    ("budget-pending-client", "Budget Pending (Client)"),
    ("budget-to-start", "Reno To Start"),
    ("in-progress", "Reno In Progress"),
    ("furnishing", "Furnishing"),
    ("final-check", "Final Check"),
    ("cleaning", "Cleaning"),
    ("fixes", "Reno Fixes"),
    ("done", "Done"),
    ("orphaned", "Orphaned"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Property",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("unique_id", models.CharField(help_text="Unique ID from CRM engagements", max_length=64, unique=True)),
                ("source_record_id", models.CharField(blank=True, db_index=True, help_text="CRM row id (rec...). Informational, never used as lookup key", max_length=32, null=True)),
                ("name", models.CharField(blank=True, max_length=255, null=True)),
                ("address", models.CharField(blank=True, max_length=500, null=True)),
                ("property_type", models.CharField(blank=True, max_length=50, null=True)),
                ("phase", models.CharField(blank=True, choices=PHASE_CHOICES, db_index=True, max_length=32, null=True)),
                ("raw_status", models.CharField(blank=True, help_text="Set Up Status exactly as read from the CRM", max_length=255, null=True)),
                ("phase_changed_at", models.DateTimeField(blank=True, null=True)),
                ("document_urls", models.TextField(blank=True, null=True)),
                ("client_name", models.CharField(blank=True, max_length=255, null=True)),
                ("client_email", models.CharField(blank=True, max_length=255, null=True)),
                ("renovation_type", models.CharField(blank=True, max_length=100, null=True)),
                ("area", models.CharField(blank=True, help_text="Area cluster", max_length=100, null=True)),
                ("renovator_name", models.CharField(blank=True, max_length=255, null=True)),
                ("estimated_visit_date", models.DateField(blank=True, null=True)),
                ("real_settlement_date", models.DateField(blank=True, null=True)),
                ("reno_start_date", models.DateField(blank=True, null=True)),
                ("estimated_end_date", models.DateField(blank=True, null=True)),
                ("days_to_visit", models.IntegerField(blank=True, null=True)),
                ("reno_duration", models.IntegerField(blank=True, help_text="Renovation duration in days", null=True)),
                ("notes", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("last_synced_at", models.DateTimeField(blank=True, help_text="Last time sync wrote this property", null=True)),
            ],
            options={
                "verbose_name": "Property",
                "verbose_name_plural": "Properties",
                "db_table": "properties_property",
                "indexes": [models.Index(fields=["phase", "updated_at"], name="property_phase_updated_idx")],
            },
        ),
        migrations.CreateModel(
            name="PropertyCategory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("percentage", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("budget_index", models.PositiveSmallIntegerField(blank=True, default=1, null=True)),
                ("budget_index_reconciled_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "property",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="categories",
                        to="properties.property",
                        to_field="unique_id",
                    ),
                ),
            ],
            options={
                "verbose_name": "Property Category",
                "verbose_name_plural": "Property Categories",
                "db_table": "properties_category",
                "ordering": ["property", "budget_index", "created_at", "id"],
                "indexes": [models.Index(fields=["property", "created_at"], name="category_property_created_idx")],
            },
        ),
    ]
