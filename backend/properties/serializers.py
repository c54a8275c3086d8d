from rest_framework import serializers
from .models import Property, PropertyCategory


class PropertyCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = PropertyCategory
        fields = ['id', 'name', 'percentage', 'budget_index', 'budget_index_reconciled_at', 'created_at']
        read_only_fields = fields


class PropertySerializer(serializers.ModelSerializer):
    phase_display = serializers.CharField(source='get_phase_display', read_only=True)
    document_url_list = serializers.ReadOnlyField()
    categories = PropertyCategorySerializer(many=True, read_only=True)

    class Meta:
        model = Property
        fields = '__all__'
        read_only_fields = ['created_at', 'updated_at', 'last_synced_at', 'phase_changed_at']


class PropertyListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for phase-partitioned listings."""
    phase_display = serializers.CharField(source='get_phase_display', read_only=True)
    category_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Property
        fields = [
            'id', 'unique_id', 'name', 'address', 'phase', 'phase_display', 'raw_status',
            'client_name', 'renovator_name', 'area', 'reno_start_date', 'estimated_end_date',
            'category_count', 'last_synced_at', 'updated_at',
        ]
