"""
Category extraction trigger.

Properties in renovation with a budget document and no categories yet are sent
to the automation service, one POST per document. The service inserts
PropertyCategory rows out of band; eligibility is re-evaluated on every pass,
so a failed call is retried implicitly the next time the trigger runs.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests
from kombu.exceptions import OperationalError

from django.conf import settings
from django.db.models import Exists, OuterRef, QuerySet

from properties.models import Phase, Property, PropertyCategory, split_urls

from .exceptions import SyncConfigurationError
from .models import CrmSyncRun

logger = logging.getLogger(__name__)

EXTRACTION_SCOPE = "extraction"


def is_eligible(phase: Optional[str], document_urls: Sequence[str], category_count: int) -> bool:
    """A property needs extraction when it is in renovation, has a document and has no categories."""
    return phase == Phase.IN_PROGRESS and len(document_urls) > 0 and category_count == 0


def eligible_properties(unique_id: Optional[str] = None) -> QuerySet:
    """Same predicate as is_eligible, expressed in SQL."""
    has_categories = PropertyCategory.objects.filter(property_id=OuterRef("unique_id"))
    qs = (
        Property.objects.filter(phase=Phase.IN_PROGRESS)
        .exclude(document_urls__isnull=True)
        .exclude(document_urls="")
        .filter(~Exists(has_categories))
        .order_by("-created_at", "id")
    )
    if unique_id:
        qs = qs.filter(unique_id=unique_id)
    return qs


def build_payloads(prop: Property) -> List[Dict[str, Any]]:
    """One payload per document URL, tagged with its 1-based budget_index."""
    return [
        {
            "document_url": url,
            "property_id": prop.unique_id,
            "unique_id": prop.unique_id,
            "property_name": prop.name,
            "address": prop.address,
            "client_name": prop.client_name,
            "client_email": prop.client_email,
            "renovation_type": prop.renovation_type,
            "area": prop.area,
            "budget_index": index,
        }
        for index, url in enumerate(split_urls(prop.document_urls), start=1)
    ]


class AutomationWebhookClient:
    """
    POSTs extraction requests to the automation service. Any 2xx is success;
    the response body is ignored.
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None, session: Optional[requests.Session] = None) -> None:
        self.url = url if url is not None else getattr(settings, "AUTOMATION_WEBHOOK_URL", "")
        self.timeout = timeout if timeout is not None else getattr(settings, "AUTOMATION_WEBHOOK_TIMEOUT", 30)
        self._session = session or requests.Session()

        if not self.url:
            raise SyncConfigurationError("AUTOMATION_WEBHOOK_URL not configured")

    def send(self, payload: Dict[str, Any]) -> bool:
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(
                "Extraction webhook failed for %s (budget %s): %s",
                payload.get("unique_id"), payload.get("budget_index"), e,
            )
            return False
        logger.info("Extraction webhook accepted %s (budget %s)", payload.get("unique_id"), payload.get("budget_index"))
        return True


def _schedule_reconcile(unique_id: str) -> bool:
    """
    Queue the deferred budget-index reconcile. A broker outage is logged and
    left to `reconcile_budget_index` / `reconcile_all_budget_indices_task`.
    """
    from .tasks import reconcile_budget_index_task

    delay = getattr(settings, "BUDGET_INDEX_RECONCILE_DELAY", 10)
    try:
        reconcile_budget_index_task.apply_async(args=[unique_id], countdown=delay)
    except OperationalError as e:
        logger.warning("Could not schedule budget index reconcile for %s: %s", unique_id, e)
        return False
    return True


def trigger_extraction(
    unique_id: Optional[str] = None,
    *,
    client: Optional[AutomationWebhookClient] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """
    Send every eligible property's documents to the automation service.

    Calls are sequential with AUTOMATION_WEBHOOK_DELAY seconds between them.
    Returns {eligible, called, failed, skipped, details}.
    """
    client = client or AutomationWebhookClient()
    delay = getattr(settings, "AUTOMATION_WEBHOOK_DELAY", 0.5)

    stats: Dict[str, Any] = {"eligible": 0, "called": 0, "failed": 0, "skipped": 0, "details": []}

    properties = list(eligible_properties(unique_id))
    if unique_id and not properties:
        stats["skipped"] += 1
        stats["details"].append({"unique_id": unique_id, "result": "not eligible"})

    first_call = True
    for prop in properties:
        payloads = build_payloads(prop)
        if not payloads:
            stats["skipped"] += 1
            stats["details"].append({"unique_id": prop.unique_id, "result": "no valid document URL"})
            continue

        stats["eligible"] += 1
        succeeded = 0
        for payload in payloads:
            if not first_call and delay:
                sleep(delay)
            first_call = False

            if client.send(payload):
                succeeded += 1
                stats["called"] += 1
            else:
                stats["failed"] += 1

        detail = {
            "unique_id": prop.unique_id,
            "documents": len(payloads),
            "succeeded": succeeded,
            "result": "ok" if succeeded == len(payloads) else "partial" if succeeded else "failed",
        }
        if succeeded:
            detail["reconcile_scheduled"] = _schedule_reconcile(prop.unique_id)
        stats["details"].append(detail)

    logger.info(
        "Category extraction: eligible=%s called=%s failed=%s skipped=%s",
        stats["eligible"], stats["called"], stats["failed"], stats["skipped"],
    )
    return stats


def run_extraction(*, unique_id: Optional[str] = None, run_type: str = CrmSyncRun.RUN_MANUAL) -> Dict[str, Any]:
    """Convenience function used by views/commands/tasks; records a CrmSyncRun."""
    from .sync_engine import execute_run

    client = AutomationWebhookClient()
    return execute_run(
        run_type,
        EXTRACTION_SCOPE,
        lambda stats: trigger_extraction(unique_id, client=client),
        "Category extraction",
    )
