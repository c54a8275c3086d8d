from django.contrib import admin
from .models import CrmSyncRun


@admin.register(CrmSyncRun)
class CrmSyncRunAdmin(admin.ModelAdmin):
    list_display = ['id', 'run_type', 'scope', 'status', 'started_at', 'finished_at']
    list_filter = ['status', 'run_type', 'scope']
    readonly_fields = ['run_type', 'scope', 'status', 'started_at', 'finished_at', 'stats', 'error']
    date_hierarchy = 'started_at'
