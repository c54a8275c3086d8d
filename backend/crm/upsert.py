"""
Idempotent find-or-create of Property rows from normalized CRM records.

The lookup key is `unique_id` only. Existing rows get a field-level diff over
the sync-owned fields, and only differing fields are written. Operator-owned
fields (notes) are never part of the diff.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from django.db import transaction
from django.utils import timezone

from properties.models import Property

from .field_mapping import NormalizedRecord
from .phases import PhaseResolution, SourceView, resolve

logger = logging.getLogger(__name__)

# Always written from the source, including None (the CRM cleared the value).
SYNC_OWNED_FIELDS: Tuple[str, ...] = (
    "name",
    "address",
    "property_type",
    "client_name",
    "client_email",
    "renovation_type",
    "area",
    "renovator_name",
    "estimated_visit_date",
    "real_settlement_date",
    "reno_start_date",
    "estimated_end_date",
    "days_to_visit",
    "reno_duration",
)

# Written only when the source supplies a value.
STICKY_FIELDS: Tuple[str, ...] = ("source_record_id", "document_urls")


@dataclass
class UpsertResult:
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    ERROR = "error"

    action: str
    unique_id: str
    phase: Optional[str] = None
    changed_fields: List[str] = field(default_factory=list)
    error: Optional[str] = None
    rule: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.action != self.ERROR

    def as_detail(self) -> Dict[str, Any]:
        detail: Dict[str, Any] = {"unique_id": self.unique_id, "action": self.action}
        if self.phase:
            detail["phase"] = str(self.phase)
        if self.changed_fields:
            detail["changed_fields"] = self.changed_fields
        if self.error:
            detail["error"] = self.error
        return detail


def desired_values(record: NormalizedRecord, resolution: PhaseResolution) -> Dict[str, Any]:
    values: Dict[str, Any] = {name: getattr(record, name) for name in SYNC_OWNED_FIELDS}
    values["phase"] = resolution.phase
    values["raw_status"] = resolution.status
    if record.source_record_id:
        values["source_record_id"] = record.source_record_id
    if record.document_urls:
        values["document_urls"] = record.document_urls_text
    return values


def diff_fields(instance: Property, values: Dict[str, Any]) -> List[str]:
    return [name for name, value in values.items() if getattr(instance, name) != value]


class PropertyUpserter:
    """
    Applies NormalizedRecords to the store, one record per transaction.
    """

    def upsert(self, record: NormalizedRecord, view: Union[SourceView, str, None] = None) -> UpsertResult:
        try:
            with transaction.atomic():
                instance = (
                    Property.objects.select_for_update()
                    .filter(unique_id=record.unique_id)
                    .first()
                )
                previous_phase = instance.phase if instance is not None else None
                resolution = resolve(view, record.status, previous_phase)
                values = desired_values(record, resolution)

                if instance is None:
                    self._insert(record, values)
                    return UpsertResult(
                        UpsertResult.CREATED,
                        record.unique_id,
                        phase=resolution.phase,
                        changed_fields=sorted(values),
                        rule=resolution.rule,
                    )

                changed = diff_fields(instance, values)
                if not changed:
                    return UpsertResult(UpsertResult.UNCHANGED, record.unique_id, phase=resolution.phase, rule=resolution.rule)

                self._update(instance, values, changed)
                return UpsertResult(
                    UpsertResult.UPDATED,
                    record.unique_id,
                    phase=resolution.phase,
                    changed_fields=changed,
                    rule=resolution.rule,
                )
        except Exception as e:
            logger.error("Upsert failed for %s: %s", record.unique_id, e, exc_info=True)
            return UpsertResult(UpsertResult.ERROR, record.unique_id, error=str(e))

    def _insert(self, record: NormalizedRecord, values: Dict[str, Any]) -> Property:
        now = timezone.now()
        return Property.objects.create(
            unique_id=record.unique_id,
            last_synced_at=now,
            phase_changed_at=now,
            **values,
        )

    def _update(self, instance: Property, values: Dict[str, Any], changed: List[str]) -> None:
        now = timezone.now()
        update_fields = list(changed)
        if "phase" in changed:
            instance.phase_changed_at = now
            update_fields.append("phase_changed_at")
        for name in changed:
            setattr(instance, name, values[name])
        instance.last_synced_at = now
        update_fields += ["last_synced_at", "updated_at"]
        instance.save(update_fields=update_fields)
