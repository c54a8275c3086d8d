from rest_framework import serializers
from .models import CrmSyncRun


class CrmSyncRunSerializer(serializers.ModelSerializer):
    """Serializer for CRM sync runs."""

    class Meta:
        model = CrmSyncRun
        fields = ['id', 'run_type', 'scope', 'status', 'started_at', 'finished_at', 'stats', 'error']
        read_only_fields = fields


class CrmSyncRunListSerializer(serializers.ModelSerializer):
    """List view without the (potentially large) stats payload."""
    totals = serializers.SerializerMethodField()

    class Meta:
        model = CrmSyncRun
        fields = ['id', 'run_type', 'scope', 'status', 'started_at', 'finished_at', 'totals', 'error']
        read_only_fields = fields

    def get_totals(self, obj):
        stats = obj.stats or {}
        return stats.get('totals')
