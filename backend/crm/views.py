"""
API views for the CRM sync pipeline (admin only).
"""
import logging

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics
from rest_framework import status as http_status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from properties.models import Property
from properties.pagination import StandardResultsSetPagination

from .budget_index import run_reconcile
from .exceptions import (
    SourceRequestError,
    SourceUnavailableError,
    StoreUnavailableError,
    SyncAlreadyRunningError,
    SyncConfigurationError,
)
from .extraction import run_extraction
from .models import CrmSyncRun
from .phases import get_view, VIEWS_BY_KEY
from .serializers import CrmSyncRunListSerializer, CrmSyncRunSerializer
from .sync_engine import run_crm_sync, run_view_sync

logger = logging.getLogger(__name__)


def _error_response(e):
    """Translate pipeline aborts into HTTP responses."""
    if isinstance(e, SyncAlreadyRunningError):
        return Response({'detail': str(e), 'error': 'Sync already running'}, status=http_status.HTTP_409_CONFLICT)
    if isinstance(e, SyncConfigurationError):
        return Response({'detail': str(e), 'error': 'Configuration missing'}, status=http_status.HTTP_500_INTERNAL_SERVER_ERROR)
    if isinstance(e, (SourceUnavailableError, StoreUnavailableError)):
        return Response({'detail': str(e), 'error': 'Service unavailable'}, status=http_status.HTTP_503_SERVICE_UNAVAILABLE)
    if isinstance(e, SourceRequestError):
        return Response({'detail': str(e), 'error': 'CRM request failed'}, status=http_status.HTTP_502_BAD_GATEWAY)
    return None


@api_view(['POST'])
@permission_classes([IsAdminUser])
def manual_sync(request):
    """
    Manually trigger a CRM sync.
    Body: {"view": "<view key>"} to sync one view, omit for a full run.
    """
    view_key = request.data.get('view') or None
    if view_key and get_view(view_key) is None:
        return Response(
            {'detail': f"Unknown view '{view_key}'", 'valid_views': sorted(VIEWS_BY_KEY)},
            status=http_status.HTTP_400_BAD_REQUEST,
        )

    try:
        if view_key:
            stats = run_view_sync(view_key, run_type=CrmSyncRun.RUN_MANUAL)
        else:
            stats = run_crm_sync(run_type=CrmSyncRun.RUN_MANUAL)
    except Exception as e:
        response = _error_response(e)
        if response is None:
            raise
        logger.error("Manual CRM sync failed: %s", e)
        return response

    return Response(stats, status=http_status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAdminUser])
def trigger_category_extraction(request):
    """
    Send eligible properties' budget documents to the automation service.
    Body: {"property_id": "<unique id>"} to limit to one property.
    """
    unique_id = request.data.get('property_id') or None
    try:
        stats = run_extraction(unique_id=unique_id, run_type=CrmSyncRun.RUN_MANUAL)
    except Exception as e:
        response = _error_response(e)
        if response is None:
            raise
        logger.error("Category extraction trigger failed: %s", e)
        return response

    return Response(stats, status=http_status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAdminUser])
def reconcile_budget_index(request):
    """
    Assign budget indices to a property's extracted categories.
    Body: {"property_id": "<unique id>"}.
    """
    unique_id = request.data.get('property_id')
    if not unique_id:
        return Response({'detail': 'property_id is required'}, status=http_status.HTTP_400_BAD_REQUEST)
    if not Property.objects.filter(unique_id=unique_id).exists():
        return Response({'detail': f"Property '{unique_id}' not found"}, status=http_status.HTTP_404_NOT_FOUND)

    stats = run_reconcile(unique_id=unique_id, run_type=CrmSyncRun.RUN_MANUAL)
    return Response(stats, status=http_status.HTTP_200_OK)


class CrmSyncRunListView(generics.ListAPIView):
    queryset = CrmSyncRun.objects.all()
    serializer_class = CrmSyncRunListSerializer
    permission_classes = [IsAdminUser]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_fields = ['status', 'run_type', 'scope']
    ordering_fields = ['started_at', 'finished_at', 'id']
    ordering = ['-started_at']
    pagination_class = StandardResultsSetPagination


class CrmSyncRunDetailView(generics.RetrieveAPIView):
    queryset = CrmSyncRun.objects.all()
    serializer_class = CrmSyncRunSerializer
    permission_classes = [IsAdminUser]
