from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="CrmSyncRun",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("run_type", models.CharField(choices=[("MANUAL", "MANUAL"), ("AUTO", "AUTO")], default="AUTO", max_length=10)),
                ("status", models.CharField(choices=[("RUNNING", "RUNNING"), ("SUCCESS", "SUCCESS"), ("FAILED", "FAILED")], default="RUNNING", max_length=10)),
                ("scope", models.CharField(default="ALL", help_text="View key, ALL, or a maintenance job name", max_length=32)),
                ("started_at", models.DateTimeField(auto_now_add=True)),
                ("finished_at", models.DateTimeField(blank=True, null=True)),
                ("stats", models.JSONField(blank=True, default=dict)),
                ("error", models.TextField(blank=True, null=True)),
            ],
            options={
                "db_table": "crm_sync_run",
                "ordering": ["-started_at", "-id"],
                "indexes": [
                    models.Index(fields=["started_at"], name="crm_sync_run_started_idx"),
                    models.Index(fields=["status"], name="crm_sync_run_status_idx"),
                    models.Index(fields=["run_type"], name="crm_sync_run_type_idx"),
                ],
            },
        ),
    ]
