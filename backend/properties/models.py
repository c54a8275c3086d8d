from django.db import models
from django.utils import timezone


class Phase(models.TextChoices):
    """
    Renovation workflow phases, in workflow order.
    """
    UPCOMING_SETTLEMENT = 'upcoming-settlement', 'Upcoming Settlement'
    INITIAL_CHECK = 'initial-check', 'Initial Check'
    BUDGET_PENDING_RENOVATOR = 'budget-pending-renovator', 'Budget Pending (Renovator)'
    BUDGET_PENDING_CLIENT = 'budget-pending-client', 'Budget Pending (Client)'
    BUDGET_TO_START = 'budget-to-start', 'Reno To Start'
    IN_PROGRESS = 'in-progress', 'Reno In Progress'
    FURNISHING = 'furnishing', 'Furnishing'
    FINAL_CHECK = 'final-check', 'Final Check'
    CLEANING = 'cleaning', 'Cleaning'
    FIXES = 'fixes', 'Reno Fixes'
    DONE = 'done', 'Done'
    ORPHANED = 'orphaned', 'Orphaned'


class PropertyQuerySet(models.QuerySet):
    def visible(self):
        """Properties shown in phase-partitioned listings (never orphaned)."""
        return self.exclude(phase=Phase.ORPHANED).exclude(phase__isnull=True)

    def in_phase(self, phase):
        return self.filter(phase=phase)


class Property(models.Model):
    """
    A property under renovation, kept in sync with the CRM properties table.
    """
    # Cross-reference identifier shared with the CRM (never regenerated)
    unique_id = models.CharField(max_length=64, unique=True, help_text="Unique ID from CRM engagements")
    source_record_id = models.CharField(
        max_length=32,
        blank=True,
        null=True,
        db_index=True,
        help_text="CRM row id (rec...). Informational, never used as lookup key",
    )

    # Basic Information
    name = models.CharField(max_length=255, blank=True, null=True)
    address = models.CharField(max_length=500, blank=True, null=True)
    property_type = models.CharField(max_length=50, blank=True, null=True)

    # Workflow
    phase = models.CharField(max_length=32, choices=Phase.choices, blank=True, null=True, db_index=True)
    raw_status = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        help_text="Set Up Status exactly as read from the CRM",
    )
    phase_changed_at = models.DateTimeField(blank=True, null=True)

    # Budget documents (comma-joined, ordered)
    document_urls = models.TextField(blank=True, null=True)

    # Enrichment
    client_name = models.CharField(max_length=255, blank=True, null=True)
    client_email = models.CharField(max_length=255, blank=True, null=True)
    renovation_type = models.CharField(max_length=100, blank=True, null=True)
    area = models.CharField(max_length=100, blank=True, null=True, help_text="Area cluster")
    renovator_name = models.CharField(max_length=255, blank=True, null=True)

    # Dates
    estimated_visit_date = models.DateField(blank=True, null=True)
    real_settlement_date = models.DateField(blank=True, null=True)
    reno_start_date = models.DateField(blank=True, null=True)
    estimated_end_date = models.DateField(blank=True, null=True)
    days_to_visit = models.IntegerField(blank=True, null=True)
    reno_duration = models.IntegerField(blank=True, null=True, help_text="Renovation duration in days")

    # Operator-owned, never written by sync
    notes = models.TextField(blank=True, null=True)

    # Metadata
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    last_synced_at = models.DateTimeField(null=True, blank=True, help_text="Last time sync wrote this property")

    objects = PropertyQuerySet.as_manager()

    class Meta:
        db_table = 'properties_property'
        indexes = [
            models.Index(fields=['phase', 'updated_at'], name='property_phase_updated_idx'),
        ]
        verbose_name = 'Property'
        verbose_name_plural = 'Properties'

    def __str__(self):
        return f"{self.unique_id}: {self.address or 'N/A'}"

    @property
    def document_url_list(self):
        return split_urls(self.document_urls)


class PropertyCategory(models.Model):
    """
    Cost category extracted from a budget document by the automation service.

    Rows are inserted out of band, so budget_index starts at the default and is
    corrected later by crm.budget_index.
    """
    property = models.ForeignKey(
        Property,
        on_delete=models.CASCADE,
        to_field='unique_id',
        related_name='categories',
    )
    name = models.CharField(max_length=255)
    percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    budget_index = models.PositiveSmallIntegerField(default=1, blank=True, null=True)
    budget_index_reconciled_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'properties_category'
        ordering = ['property', 'budget_index', 'created_at', 'id']
        indexes = [
            models.Index(fields=['property', 'created_at'], name='category_property_created_idx'),
        ]
        verbose_name = 'Property Category'
        verbose_name_plural = 'Property Categories'

    def __str__(self):
        return f"{self.property_id} #{self.budget_index}: {self.name}"


def split_urls(value):
    """Split a comma-joined URL list, keeping only http(s) entries in order."""
    if not value:
        return []
    return [u.strip() for u in value.split(',') if u.strip().startswith(('http://', 'https://'))]
