from django.db.models import Count
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets
from rest_framework.filters import SearchFilter, OrderingFilter

from .models import Property
from .pagination import StandardResultsSetPagination
from .serializers import PropertySerializer, PropertyListSerializer

TRUTHY = {'1', 'true', 'yes'}


class PropertyViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read-only access to synced properties.

    Orphaned properties are hidden unless ?include_orphaned=1 is passed.
    """
    serializer_class = PropertySerializer

    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ['phase', 'area', 'renovation_type']
    search_fields = ['unique_id', 'name', 'address', 'client_name']
    ordering_fields = ['updated_at', 'created_at', 'unique_id', 'phase_changed_at', 'id']
    ordering = ['-updated_at']

    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        include_orphaned = str(self.request.query_params.get('include_orphaned', '')).lower() in TRUTHY
        queryset = Property.objects.all() if include_orphaned else Property.objects.visible()
        if self.action == 'list':
            return queryset.annotate(category_count=Count('categories'))
        return queryset.prefetch_related('categories')

    def get_serializer_class(self):
        if self.action == 'list':
            return PropertyListSerializer
        return PropertySerializer
