# backend/crm/sync_engine.py
"""
CRM -> store sync engine.

Design goals:
- Drain each phase-tagged CRM view page by page
- Map, resolve and upsert every record (per-record isolation, bounded thread pool)
- Force phase + canonical status for phase-authoritative views after the view is drained
- Sweep properties no view returned to "orphaned" after a clean full run
- Provide structured stats for manual and scheduled runs (CrmSyncRun)

This module does NOT depend on DRF views. Both management commands and API views call this.
"""
from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from django.conf import settings
from django.db import DatabaseError, connection
from django.utils import timezone

from properties.models import Phase, Property

from .exceptions import (
    CrmSyncError,
    SourceRequestError,
    SourceUnavailableError,
    StoreUnavailableError,
    SyncAlreadyRunningError,
    SyncConfigurationError,
    UnmappableRecordError,
)
from .field_mapping import NormalizedRecord, map_record
from .models import CrmSyncRun
from .phases import SOURCE_VIEWS, SourceView, get_view, resolve
from .services import AirtableClient
from .upsert import PropertyUpserter, UpsertResult

logger = logging.getLogger(__name__)

SYNC_SCOPES = [CrmSyncRun.SCOPE_ALL] + [v.key for v in SOURCE_VIEWS]
CHUNK_SIZE = 500


def _chunked(items: List[Any], size: int) -> Iterable[List[Any]]:
    if size <= 0:
        yield items
        return
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _empty_view_stats(view: SourceView) -> Dict[str, Any]:
    return {
        "view": view.key,
        "pages": 0,
        "fetched": 0,
        "created": 0,
        "updated": 0,
        "unchanged": 0,
        "skipped": 0,
        "skipped_duplicate": 0,
        "errors": 0,
        "corrected": 0,
        "incomplete": False,
        "phases": {},
        "details": [],
    }


@dataclass(frozen=True)
class SyncConfig:
    views: List[str]  # view keys, in processing order
    max_workers: int
    orphan_absent: bool
    trigger_extraction: bool
    stale_minutes: int


def probe_store() -> None:
    """Raise StoreUnavailableError when the database cannot be reached."""
    try:
        connection.ensure_connection()
    except DatabaseError as e:
        raise StoreUnavailableError(f"Database unreachable: {e}") from e


def ensure_single_flight(stale_minutes: int) -> None:
    """
    Refuse to start while another sync run is RUNNING.

    Runs older than `stale_minutes` are assumed dead and marked FAILED.
    """
    cutoff = timezone.now() - timedelta(minutes=stale_minutes)
    running = CrmSyncRun.objects.filter(status=CrmSyncRun.STATUS_RUNNING, scope__in=SYNC_SCOPES)

    stale = running.filter(started_at__lt=cutoff).update(
        status=CrmSyncRun.STATUS_FAILED,
        finished_at=timezone.now(),
        error="Marked stale: no completion recorded",
    )
    if stale:
        logger.warning("Marked %s stale CRM sync run(s) as failed", stale)

    active = running.filter(started_at__gte=cutoff).first()
    if active is not None:
        raise SyncAlreadyRunningError(f"Sync run {active.id} ({active.scope}) is still running since {active.started_at.isoformat()}")


def execute_run(run_type: str, scope: str, work: Callable[[Dict[str, Any]], Dict[str, Any]], label: str) -> Dict[str, Any]:
    """
    Record a CrmSyncRun around `work(stats)`: RUNNING, then SUCCESS or FAILED.

    Failures are persisted on the run and re-raised.
    """
    run = CrmSyncRun.objects.create(
        run_type=run_type,
        status=CrmSyncRun.STATUS_RUNNING,
        scope=scope,
        stats={},
    )

    started = timezone.now()
    stats: Dict[str, Any] = {"run_id": run.id, "started_at": started.isoformat()}

    try:
        stats.update(work(stats) or {})

        finished = timezone.now()
        stats["finished_at"] = finished.isoformat()
        stats["duration_seconds"] = (finished - started).total_seconds()

        run.status = CrmSyncRun.STATUS_SUCCESS
        run.finished_at = finished
        run.stats = stats
        run.save(update_fields=["status", "finished_at", "stats"])
        return stats

    except Exception as e:
        finished = timezone.now()
        run.status = CrmSyncRun.STATUS_FAILED
        run.finished_at = finished
        run.error = str(e)
        run.stats = stats
        run.save(update_fields=["status", "finished_at", "error", "stats"])
        logger.error("%s failed", label, exc_info=True)
        raise


class CrmSyncEngine:
    def __init__(
        self,
        config: SyncConfig,
        client: Optional[AirtableClient] = None,
        upserter: Optional[PropertyUpserter] = None,
    ):
        self.config = config
        self.client = client or AirtableClient()
        self.upserter = upserter or PropertyUpserter()

    def _views(self) -> List[SourceView]:
        views: List[SourceView] = []
        for key in self.config.views:
            view = get_view(key)
            if view is None:
                raise SyncConfigurationError(f"Unknown CRM view '{key}'")
            if not self.client.view_id_for(key):
                raise SyncConfigurationError(f"No view id configured for CRM view '{key}'")
            views.append(view)
        return views

    def _check_configured(self) -> None:
        if not self.client.is_configured:
            raise SyncConfigurationError("Airtable credentials not configured (AIRTABLE_API_KEY / AIRTABLE_BASE_ID)")

    def run(self, run_type: str = CrmSyncRun.RUN_AUTO) -> Dict[str, Any]:
        """
        Sync every configured view in priority order.

        A full run (all views) also sweeps absent properties to orphaned.
        Returns stats dict.
        """
        self._check_configured()
        views = self._views()
        probe_store()
        ensure_single_flight(self.config.stale_minutes)

        full_run = {v.key for v in views} == {v.key for v in SOURCE_VIEWS}
        scope = CrmSyncRun.SCOPE_ALL if full_run else ",".join(v.key for v in views)[:32]

        def work(stats: Dict[str, Any]) -> Dict[str, Any]:
            claims: Dict[str, str] = {}
            seen_record_ids: Set[str] = set()
            phase_counts: Counter = Counter()
            totals: Counter = Counter()
            incomplete = False

            stats["views"] = {}
            for view in views:
                view_stats = self.sync_view(view, claims=claims, seen_record_ids=seen_record_ids)
                stats["views"][view.key] = view_stats
                incomplete = incomplete or view_stats["incomplete"]
                phase_counts.update(view_stats["phases"])
                for key in ("fetched", "created", "updated", "unchanged", "skipped", "skipped_duplicate", "errors", "corrected"):
                    totals[key] += view_stats[key]

            stats["totals"] = dict(totals)
            stats["phase_counts"] = dict(phase_counts)
            stats["incomplete"] = incomplete

            if not full_run:
                stats["orphaned"] = {"skipped": True, "reason": "partial run"}
            elif not self.config.orphan_absent:
                stats["orphaned"] = {"skipped": True, "reason": "disabled"}
            elif incomplete:
                logger.warning("Skipping absence sweep: at least one view was incomplete")
                stats["orphaned"] = {"skipped": True, "reason": "incomplete views"}
            else:
                stats["orphaned"] = {"moved": self.sweep_absent(seen_record_ids, set(claims))}

            if self.config.trigger_extraction and any(v.key == "in-progress" for v in views):
                stats["extraction"] = self._run_extraction()

            logger.info(
                "CRM sync finished: fetched=%s created=%s updated=%s unchanged=%s skipped=%s duplicates=%s errors=%s",
                totals["fetched"], totals["created"], totals["updated"], totals["unchanged"],
                totals["skipped"], totals["skipped_duplicate"], totals["errors"],
            )
            return stats

        return execute_run(run_type, scope, work, "CRM sync")

    # -----------------------------
    # Individual sync steps
    # -----------------------------

    def sync_view(
        self,
        view: SourceView,
        claims: Optional[Dict[str, str]] = None,
        seen_record_ids: Optional[Set[str]] = None,
    ) -> Dict[str, Any]:
        """
        Drain one view: fetch page -> map + resolve + upsert -> next page.

        `claims` maps unique_id -> view key for the whole run; an identifier
        already claimed by an earlier view is skipped as a duplicate.
        """
        claims = {} if claims is None else claims
        seen_record_ids = set() if seen_record_ids is None else seen_record_ids
        stats = _empty_view_stats(view)
        touched: List[str] = []

        view_id = self.client.view_id_for(view.key)
        pages = self.client.iter_pages(view_id)
        while True:
            try:
                records = next(pages)
            except StopIteration:
                break
            except CrmSyncError as e:
                if stats["pages"] == 0:
                    if isinstance(e, SourceRequestError):
                        raise SourceRequestError(f"View '{view.key}' request rejected: {e}", status_code=e.status_code) from e
                    raise SourceUnavailableError(f"View '{view.key}' could not be fetched: {e}") from e
                logger.error("View %s stopped after page %s: %s", view.key, stats["pages"], e)
                stats["incomplete"] = True
                stats["error"] = str(e)
                break

            stats["pages"] += 1
            stats["fetched"] += len(records)
            self._process_page(view, records, claims, seen_record_ids, stats, touched)

        if stats["fetched"] == 0:
            logger.info("View %s returned no records", view.key)

        if view.authoritative and touched:
            stats["corrected"] = self.force_authoritative(view, touched)

        logger.info(
            "View %s: fetched=%s created=%s updated=%s unchanged=%s skipped=%s duplicates=%s errors=%s",
            view.key, stats["fetched"], stats["created"], stats["updated"], stats["unchanged"],
            stats["skipped"], stats["skipped_duplicate"], stats["errors"],
        )
        return stats

    def _process_page(
        self,
        view: SourceView,
        records: List[Dict[str, Any]],
        claims: Dict[str, str],
        seen_record_ids: Set[str],
        stats: Dict[str, Any],
        touched: List[str],
    ) -> None:
        grouped: Dict[str, List[NormalizedRecord]] = {}
        for raw in records:
            if raw.get("id"):
                seen_record_ids.add(raw["id"])
            try:
                record = map_record(raw)
            except UnmappableRecordError as e:
                logger.warning("Skipping CRM record %s in view %s: %s", e.record_id, view.key, e.reason)
                stats["skipped"] += 1
                stats["details"].append({"record_id": e.record_id, "action": "skipped", "reason": e.reason})
                continue

            owner = claims.get(record.unique_id)
            if owner is not None and owner != view.key:
                stats["skipped_duplicate"] += 1
                continue
            claims[record.unique_id] = view.key
            grouped.setdefault(record.unique_id, []).append(record)

        for result in self._upsert_groups(view, list(grouped.values())):
            self._tally(result, stats)
            if result.ok:
                touched.append(result.unique_id)

    def _upsert_group(self, view: SourceView, group: List[NormalizedRecord]) -> List[UpsertResult]:
        return [self.upserter.upsert(record, view=view) for record in group]

    def _upsert_group_in_thread(self, view: SourceView, group: List[NormalizedRecord]) -> List[UpsertResult]:
        try:
            return self._upsert_group(view, group)
        finally:
            connection.close()

    def _upsert_groups(self, view: SourceView, groups: List[List[NormalizedRecord]]) -> List[UpsertResult]:
        if self.config.max_workers <= 1 or len(groups) <= 1:
            return [result for group in groups for result in self._upsert_group(view, group)]

        results: List[UpsertResult] = []
        with ThreadPoolExecutor(max_workers=min(self.config.max_workers, len(groups))) as ex:
            futures = {ex.submit(self._upsert_group_in_thread, view, group): group for group in groups}
            for f in as_completed(futures):
                group = futures[f]
                try:
                    results.extend(f.result())
                except Exception as e:
                    logger.error("Upsert worker failed for %s: %s", group[0].unique_id, e, exc_info=True)
                    results.extend(UpsertResult(UpsertResult.ERROR, r.unique_id, error=str(e)) for r in group)
        return results

    @staticmethod
    def _tally(result: UpsertResult, stats: Dict[str, Any]) -> None:
        if result.action == UpsertResult.ERROR:
            stats["errors"] += 1
        else:
            stats[result.action] += 1
        if result.phase:
            phase = str(result.phase)
            stats["phases"][phase] = stats["phases"].get(phase, 0) + 1
        if result.action != UpsertResult.UNCHANGED:
            stats["details"].append(result.as_detail())

    def force_authoritative(self, view: SourceView, unique_ids: List[str]) -> int:
        """
        Force phase + canonical status on every touched row that still differs.
        Returns number of rows corrected.
        """
        now = timezone.now()
        corrected = 0
        for chunk in _chunked(sorted(set(unique_ids)), CHUNK_SIZE):
            rows = Property.objects.filter(unique_id__in=chunk)
            corrected += rows.exclude(phase=view.phase).update(
                phase=view.phase,
                raw_status=view.canonical_status,
                phase_changed_at=now,
                last_synced_at=now,
                updated_at=now,
            )
            corrected += rows.filter(phase=view.phase).exclude(raw_status=view.canonical_status).update(
                raw_status=view.canonical_status,
                last_synced_at=now,
                updated_at=now,
            )
        if corrected:
            logger.info("View %s: corrected phase/status on %s properties", view.key, corrected)
        return corrected

    def sweep_absent(self, seen_record_ids: Set[str], claimed_unique_ids: Set[str]) -> int:
        """
        Move properties that no view returned in this run to orphaned. Never deletes.
        """
        candidates = (
            Property.objects.exclude(source_record_id__isnull=True)
            .exclude(source_record_id="")
            .exclude(phase=Phase.ORPHANED)
            .values_list("id", "source_record_id", "unique_id")
        )
        absent = [
            pk for pk, record_id, unique_id in candidates
            if record_id not in seen_record_ids and unique_id not in claimed_unique_ids
        ]
        if not absent:
            return 0

        now = timezone.now()
        moved = 0
        for chunk in _chunked(absent, CHUNK_SIZE):
            moved += Property.objects.filter(id__in=chunk).update(
                phase=Phase.ORPHANED,
                phase_changed_at=now,
                last_synced_at=now,
                updated_at=now,
            )
        logger.info("Moved %s properties absent from every CRM view to orphaned", moved)
        return moved

    def _run_extraction(self) -> Dict[str, Any]:
        from .extraction import trigger_extraction

        try:
            return trigger_extraction()
        except CrmSyncError as e:
            logger.error("Category extraction after sync failed: %s", e)
            return {"error": str(e)}


def _build_config(views: List[str], trigger_extraction: Optional[bool] = None) -> SyncConfig:
    if trigger_extraction is None:
        trigger_extraction = getattr(settings, "CRM_TRIGGER_EXTRACTION_AFTER_SYNC", True)
    return SyncConfig(
        views=views,
        max_workers=getattr(settings, "CRM_SYNC_MAX_WORKERS", 4),
        orphan_absent=getattr(settings, "CRM_ORPHAN_ABSENT", True),
        trigger_extraction=trigger_extraction,
        stale_minutes=getattr(settings, "CRM_SYNC_STALE_MINUTES", 120),
    )


def run_crm_sync(
    *,
    run_type: str = CrmSyncRun.RUN_AUTO,
    trigger_extraction: Optional[bool] = None,
    client: Optional[AirtableClient] = None,
) -> Dict[str, Any]:
    """
    Convenience function used by views/commands/tasks.
    """
    cfg = _build_config([v.key for v in SOURCE_VIEWS], trigger_extraction)
    engine = CrmSyncEngine(cfg, client=client)
    return engine.run(run_type=run_type)


def run_view_sync(
    view_key: str,
    *,
    run_type: str = CrmSyncRun.RUN_MANUAL,
    trigger_extraction: Optional[bool] = None,
    client: Optional[AirtableClient] = None,
) -> Dict[str, Any]:
    cfg = _build_config([view_key], trigger_extraction)
    engine = CrmSyncEngine(cfg, client=client)
    return engine.run(run_type=run_type)


def sync_single_record(
    record_id: str,
    *,
    view_key: Optional[str] = None,
    run_type: str = CrmSyncRun.RUN_MANUAL,
    client: Optional[AirtableClient] = None,
) -> Dict[str, Any]:
    """
    Fetch one CRM record by its row id and upsert it.

    The view, when given, is applied exactly as in a view pass (authoritative
    views force their phase).
    """
    view = None
    if view_key:
        view = get_view(view_key)
        if view is None:
            raise SyncConfigurationError(f"Unknown CRM view '{view_key}'")

    client = client or AirtableClient()
    if not client.is_configured:
        raise SyncConfigurationError("Airtable credentials not configured (AIRTABLE_API_KEY / AIRTABLE_BASE_ID)")
    probe_store()

    def work(stats: Dict[str, Any]) -> Dict[str, Any]:
        raw = client.get_record(record_id)
        record = map_record(raw)
        result = PropertyUpserter().upsert(record, view=view)
        if result.action == UpsertResult.ERROR:
            raise CrmSyncError(f"Upsert failed for {record.unique_id}: {result.error}")
        return {"record_id": record_id, "view": view_key, **result.as_detail()}

    return execute_run(run_type, f"record:{record_id}"[:32], work, "CRM single-record sync")


def reclassify_property(unique_id: str, *, phase: Optional[str] = None) -> Dict[str, Any]:
    """
    Re-resolve (or explicitly set) the phase of one stored property.

    Without `phase` the stored raw status is run through the resolver again,
    so a property whose status now maps to a phase moves; otherwise it keeps
    its current phase.
    """
    instance = Property.objects.get(unique_id=unique_id)
    previous = instance.phase

    if phase is not None:
        if phase not in Phase.values:
            raise ValueError(f"Unknown phase '{phase}'. Valid phases: {', '.join(Phase.values)}")
        new_phase, rule = phase, "manual"
    else:
        resolution = resolve(None, instance.raw_status, previous)
        new_phase, rule = resolution.phase, resolution.rule

    changed = new_phase != previous
    if changed:
        instance.phase = new_phase
        instance.phase_changed_at = timezone.now()
        instance.save(update_fields=["phase", "phase_changed_at", "updated_at"])
        logger.info("Reclassified %s: %s -> %s (%s)", unique_id, previous, new_phase, rule)

    return {
        "unique_id": unique_id,
        "previous_phase": previous,
        "phase": str(new_phase),
        "rule": rule,
        "changed": changed,
    }
