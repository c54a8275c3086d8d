"""
Celery tasks for the CRM sync pipeline.
"""
import logging
from celery import shared_task
from crm.models import CrmSyncRun

logger = logging.getLogger(__name__)


@shared_task
def sync_crm_task():
    """
    Periodic task: full sync of every CRM view.
    """
    from crm.sync_engine import run_crm_sync

    try:
        logger.info("Starting automatic CRM sync...")
        stats = run_crm_sync(run_type=CrmSyncRun.RUN_AUTO)
        logger.info("Automatic CRM sync completed successfully")
        return stats
    except Exception as e:
        logger.error("Error in automatic CRM sync: %s", e, exc_info=True)
        raise


@shared_task
def sync_crm_view_task(view_key=None, trigger_extraction=None):
    """
    Manual/adhoc CRM sync, optionally limited to one view.
    """
    from crm.sync_engine import run_crm_sync, run_view_sync

    try:
        logger.info("Starting manual CRM sync (view=%s)...", view_key or "ALL")
        if view_key:
            stats = run_view_sync(view_key, run_type=CrmSyncRun.RUN_MANUAL, trigger_extraction=trigger_extraction)
        else:
            stats = run_crm_sync(run_type=CrmSyncRun.RUN_MANUAL, trigger_extraction=trigger_extraction)
        logger.info("Manual CRM sync completed successfully")
        return stats
    except Exception as e:
        logger.error("Error in manual CRM sync: %s", e, exc_info=True)
        raise


@shared_task
def trigger_extraction_task(unique_id=None):
    """
    Periodic task: send eligible budget documents to the automation service.
    """
    from crm.extraction import run_extraction

    try:
        return run_extraction(unique_id=unique_id, run_type=CrmSyncRun.RUN_AUTO)
    except Exception as e:
        logger.error("Error in category extraction trigger: %s", e, exc_info=True)
        raise


@shared_task
def reconcile_budget_index_task(unique_id):
    """
    Deferred task scheduled after extraction calls succeed for a property.
    """
    from crm.budget_index import reconcile_property

    try:
        return reconcile_property(unique_id)
    except Exception as e:
        logger.error("Error reconciling budget indices for %s: %s", unique_id, e, exc_info=True)
        raise


@shared_task
def reconcile_all_budget_indices_task():
    from crm.budget_index import run_reconcile

    try:
        return run_reconcile(run_type=CrmSyncRun.RUN_AUTO)
    except Exception as e:
        logger.error("Error reconciling budget indices: %s", e, exc_info=True)
        raise
