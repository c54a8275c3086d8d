"""
CRM record -> NormalizedRecord.

Field identity in the CRM is unstable (columns get renamed, lookups get
re-created), so every logical field is read through an ordered list of
candidate keys: display names and field IDs. The first non-empty value wins.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Mapping, Optional, Tuple

from .exceptions import UnmappableRecordError
from .utils import as_text, extract_urls, first_value, parse_date_robust, parse_int, truncate_field

FIELD_CANDIDATES: Dict[str, Tuple[str, ...]] = {
    "unique_id": (
        "UNIQUEID (from Engagements)",
        "Unique ID (From Engagements)",
        "Unique ID From Engagements",
        "Unique ID",
    ),
    "name": ("Property Name", "Name", "Property name"),
    "address": ("Address", "address"),
    "property_type": ("Type", "Property Type"),
    "status": ("Set Up Status", "Set up status"),
    "client_name": ("Client Name", "Client name"),
    "client_email": ("Client email", "Client Email"),
    "renovation_type": ("Required reno", "Required Reno"),
    "area": ("Area Cluster", "Area cluster"),
    "renovator_name": ("Renovator Name", "Renovator name"),
    "estimated_visit_date": ("Est. visit date", "Estimated Visit Date", "Estimated visit date", "fldIhqPOAFL52MMBn"),
    "real_settlement_date": ("Real settlement date", "Real Settlement Date", "fldpQgS6HzhX0nXal"),
    "reno_start_date": ("fldCnB9pCmpG5khiH", "Reno Start Date", "Reno start date", "Start Date"),
    "estimated_end_date": ("Est. Reno End Date", "Estimated Reno End Date", "Estimated End Date"),
    "days_to_visit": ("Days to visit", "Days to Visit"),
    "reno_duration": ("Reno Duration", "Reno duration"),
    "document_urls": ("fldVOO4zqx5HUzIjz", "TECH - Budget Attachment (URLs)", "TECH - Budget Attachment", "Budget PDF"),
}

TEXT_LIMITS = {
    "name": 255,
    "address": 500,
    "property_type": 50,
    "status": 255,
    "client_name": 255,
    "client_email": 255,
    "renovation_type": 100,
    "area": 100,
    "renovator_name": 255,
}
DATE_FIELDS = ("estimated_visit_date", "real_settlement_date", "reno_start_date", "estimated_end_date")
INT_FIELDS = ("days_to_visit", "reno_duration")


@dataclass(frozen=True)
class NormalizedRecord:
    unique_id: str
    source_record_id: Optional[str] = None
    status: Optional[str] = None
    name: Optional[str] = None
    address: Optional[str] = None
    property_type: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    renovation_type: Optional[str] = None
    area: Optional[str] = None
    renovator_name: Optional[str] = None
    estimated_visit_date: Optional[date] = None
    real_settlement_date: Optional[date] = None
    reno_start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None
    days_to_visit: Optional[int] = None
    reno_duration: Optional[int] = None
    document_urls: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def document_urls_text(self) -> Optional[str]:
        return ",".join(self.document_urls) if self.document_urls else None


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def lookup(fields: Mapping[str, Any], logical_name: str) -> Any:
    """Return the first non-empty value among the candidates for `logical_name`."""
    for key in FIELD_CANDIDATES[logical_name]:
        value = fields.get(key)
        if not _is_empty(value):
            return value
    return None


def map_record(record: Mapping[str, Any]) -> NormalizedRecord:
    """
    Translate a raw CRM record ({"id", "fields", "createdTime"}) into a NormalizedRecord.

    Raises UnmappableRecordError when no identifier candidate yields a value.
    """
    record_id = record.get("id")
    fields = record.get("fields") or {}

    unique_id = as_text(lookup(fields, "unique_id"))
    if not unique_id:
        raise UnmappableRecordError(record_id, "no Unique ID in any candidate field")

    values: Dict[str, Any] = {}
    for name, limit in TEXT_LIMITS.items():
        values[name] = truncate_field(as_text(lookup(fields, name)), limit)
    for name in DATE_FIELDS:
        values[name] = parse_date_robust(lookup(fields, name))
    for name in INT_FIELDS:
        values[name] = parse_int(lookup(fields, name))

    return NormalizedRecord(
        unique_id=truncate_field(unique_id, 64),
        source_record_id=first_value(record_id),
        document_urls=tuple(extract_urls(lookup(fields, "document_urls"))),
        **values,
    )
