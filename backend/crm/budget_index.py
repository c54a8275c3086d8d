"""
Budget-index reconciler.

The automation service inserts PropertyCategory rows without telling us which
budget document each row came from; they all land with the default index.
Once a property's extraction calls have been made, this job assigns indices
after the fact, assuming the service inserted categories document by document
and in roughly equal numbers.

This is a best-effort heuristic. When the category count does not divide
evenly by the document count the split is ambiguous; it is logged, never
fatal. Reconciled rows are stamped, so running the job again is a no-op.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from properties.models import Property, PropertyCategory, split_urls

from .models import CrmSyncRun

logger = logging.getLogger(__name__)

BUDGET_INDEX_SCOPE = "budget-index"


def partition_indices(count: int, documents: int) -> List[int]:
    """
    Budget index for each of `count` ordered categories split over `documents`.

    Contiguous groups whose sizes differ by at most one, larger groups first:
    6 over 2 -> [1, 1, 1, 2, 2, 2]; 7 over 3 -> [1, 1, 1, 2, 2, 3, 3].
    """
    if count <= 0:
        return []
    if documents <= 1:
        return [1] * count

    base, extra = divmod(count, documents)
    indices: List[int] = []
    for group in range(documents):
        size = base + (1 if group < extra else 0)
        indices.extend([group + 1] * size)
    return indices


def pending_categories(unique_id: str):
    return (
        PropertyCategory.objects.filter(property_id=unique_id, budget_index_reconciled_at__isnull=True)
        .filter(Q(budget_index__isnull=True) | Q(budget_index=1))
        .order_by("created_at", "id")
    )


def reconcile_budget_indices(prop: Property) -> Dict[str, Any]:
    """
    Assign budget indices to the property's unreconciled categories in creation order.
    """
    documents = split_urls(prop.document_urls)
    result: Dict[str, Any] = {"unique_id": prop.unique_id, "documents": len(documents), "assigned": 0}

    if not documents:
        result["skipped"] = "no documents"
        return result

    with transaction.atomic():
        categories = list(pending_categories(prop.unique_id).select_for_update())
        if not categories:
            result["skipped"] = "no pending categories"
            return result

        if len(documents) > 1 and len(categories) % len(documents):
            logger.warning(
                "Ambiguous budget split for %s: %s categories over %s documents, using balanced groups",
                prop.unique_id, len(categories), len(documents),
            )
            result["ambiguous"] = True

        now = timezone.now()
        for category, index in zip(categories, partition_indices(len(categories), len(documents))):
            category.budget_index = index
            category.budget_index_reconciled_at = now
            category.updated_at = now
        PropertyCategory.objects.bulk_update(categories, ["budget_index", "budget_index_reconciled_at", "updated_at"])

    result["assigned"] = len(categories)
    logger.info("Budget indices assigned for %s: %s categories over %s documents", prop.unique_id, len(categories), len(documents))
    return result


def reconcile_property(unique_id: str) -> Dict[str, Any]:
    prop = Property.objects.get(unique_id=unique_id)
    return reconcile_budget_indices(prop)


def reconcile_all() -> Dict[str, Any]:
    """
    Re-derive work from scratch: every property that still has unreconciled
    categories gets reconciled. Errors on one property do not stop the rest.
    """
    pending = (
        PropertyCategory.objects.filter(budget_index_reconciled_at__isnull=True)
        .filter(Q(budget_index__isnull=True) | Q(budget_index=1))
        .values_list("property_id", flat=True)
        .distinct()
    )
    stats: Dict[str, Any] = {"properties": 0, "assigned": 0, "errors": 0, "details": []}
    for property_id in sorted(set(pending)):
        stats["properties"] += 1
        try:
            detail = reconcile_property(property_id)
        except Exception as e:
            logger.error("Budget index reconcile failed for %s: %s", property_id, e, exc_info=True)
            stats["errors"] += 1
            stats["details"].append({"unique_id": property_id, "error": str(e)})
            continue
        stats["assigned"] += detail["assigned"]
        stats["details"].append(detail)
    return stats


def run_reconcile(*, unique_id: Optional[str] = None, run_type: str = CrmSyncRun.RUN_MANUAL) -> Dict[str, Any]:
    """Convenience function used by views/commands/tasks; records a CrmSyncRun."""
    from .sync_engine import execute_run

    if unique_id:
        return execute_run(run_type, BUDGET_INDEX_SCOPE, lambda stats: reconcile_property(unique_id), "Budget index reconcile")
    return execute_run(run_type, BUDGET_INDEX_SCOPE, lambda stats: reconcile_all(), "Budget index reconcile")
