from django.db import models


class CrmSyncRun(models.Model):
    """
    Tracks each CRM sync or maintenance run (manual or scheduled) for audit + troubleshooting.
    """
    RUN_MANUAL = "MANUAL"
    RUN_AUTO = "AUTO"

    STATUS_RUNNING = "RUNNING"
    STATUS_SUCCESS = "SUCCESS"
    STATUS_FAILED = "FAILED"

    SCOPE_ALL = "ALL"

    run_type = models.CharField(max_length=10, choices=[(RUN_MANUAL, RUN_MANUAL), (RUN_AUTO, RUN_AUTO)], default=RUN_AUTO)
    status = models.CharField(max_length=10, choices=[(STATUS_RUNNING, STATUS_RUNNING), (STATUS_SUCCESS, STATUS_SUCCESS), (STATUS_FAILED, STATUS_FAILED)], default=STATUS_RUNNING)
    scope = models.CharField(max_length=32, default=SCOPE_ALL, help_text="View key, ALL, or a maintenance job name")

    started_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField(blank=True, null=True)

    stats = models.JSONField(default=dict, blank=True)
    error = models.TextField(blank=True, null=True)

    class Meta:
        db_table = "crm_sync_run"
        ordering = ["-started_at", "-id"]
        indexes = [
            models.Index(fields=["started_at"], name="crm_sync_run_started_idx"),
            models.Index(fields=["status"], name="crm_sync_run_status_idx"),
            models.Index(fields=["run_type"], name="crm_sync_run_type_idx"),
        ]

    def __str__(self) -> str:
        return f"CrmSyncRun({self.id}) {self.run_type} {self.scope} {self.status}"
