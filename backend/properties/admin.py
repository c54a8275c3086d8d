from django.contrib import admin
from .models import Property, PropertyCategory


class PropertyCategoryInline(admin.TabularInline):
    model = PropertyCategory
    extra = 0
    fields = ['name', 'percentage', 'budget_index', 'budget_index_reconciled_at', 'created_at']
    readonly_fields = ['budget_index_reconciled_at']


@admin.register(Property)
class PropertyAdmin(admin.ModelAdmin):
    list_display = ['unique_id', 'address', 'phase', 'raw_status', 'renovator_name', 'last_synced_at']
    list_filter = ['phase', 'area', 'renovation_type']
    search_fields = ['unique_id', 'name', 'address', 'client_name']
    readonly_fields = ['created_at', 'updated_at', 'last_synced_at', 'phase_changed_at']
    inlines = [PropertyCategoryInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('unique_id', 'source_record_id', 'name', 'address', 'property_type')
        }),
        ('Workflow', {
            'fields': ('phase', 'raw_status', 'phase_changed_at')
        }),
        ('Client & Renovation', {
            'fields': ('client_name', 'client_email', 'renovation_type', 'area', 'renovator_name')
        }),
        ('Dates', {
            'fields': ('estimated_visit_date', 'real_settlement_date', 'reno_start_date', 'estimated_end_date', 'days_to_visit', 'reno_duration')
        }),
        ('Budget Documents', {
            'fields': ('document_urls',)
        }),
        ('Notes', {
            'fields': ('notes',)
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at', 'last_synced_at')
        }),
    )


@admin.register(PropertyCategory)
class PropertyCategoryAdmin(admin.ModelAdmin):
    list_display = ['property', 'name', 'percentage', 'budget_index', 'created_at']
    list_filter = ['budget_index']
    search_fields = ['property__unique_id', 'name']
    readonly_fields = ['updated_at', 'budget_index_reconciled_at']
