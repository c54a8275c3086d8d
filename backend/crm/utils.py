"""
Shared helpers for CRM field parsing.
Keep all value coercion here so the mapper, sync engine and commands are consistent.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable, List, Optional
import logging

logger = logging.getLogger(__name__)

URL_PREFIXES = ("http://", "https://")


def safe_strip(value: Any) -> Any:
    """Safely strip a value, returning None if value is None or empty string."""
    if value is None:
        return None
    if isinstance(value, str):
        v = value.strip()
        return v if v else None
    return value


def truncate_field(value: Optional[str], max_len: int) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    if not value:
        return None
    return value[:max_len]


def first_value(value: Any) -> Any:
    """
    Collapse CRM lookup/rollup values to a scalar.

    Linked fields come back as single-element lists; empty lists mean "no value".
    """
    if isinstance(value, (list, tuple)):
        for item in value:
            item = safe_strip(item)
            if item is not None:
                return item
        return None
    return safe_strip(value)


def as_text(value: Any) -> Optional[str]:
    value = first_value(value)
    if value is None:
        return None
    if isinstance(value, dict):
        # Collaborator / select objects
        value = value.get("name") or value.get("email")
    return safe_strip(str(value)) if value is not None else None


def parse_date_robust(date_value: Any) -> Optional[date]:
    """
    Date parser for CRM date fields.
    Accepts: date/datetime objects, ISO strings, common day-first formats; returns date or None.
    """
    date_value = first_value(date_value)
    if not date_value:
        return None

    if isinstance(date_value, datetime):
        return date_value.date()
    if isinstance(date_value, date):
        return date_value

    s = str(date_value).strip()
    if not s or s.lower() == "null":
        return None

    fmts = (
        "%Y-%m-%d",
        "%d/%m/%Y",
        "%d-%m-%Y",
        "%Y/%m/%d",
        "%d/%m/%y",
    )
    for fmt in fmts:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue

    # ISO datetime (e.g. 2026-01-15T21:51:41.000Z)
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        logger.debug("Unparseable date value %r", s)
        return None


def parse_int(value: Any) -> Optional[int]:
    value = first_value(value)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        return int(float(text))
    except (TypeError, ValueError):
        return None


def _iter_url_candidates(value: Any) -> Iterable[str]:
    if value is None:
        return
    if isinstance(value, dict):
        url = value.get("url")
        if url:
            yield from _iter_url_candidates(url)
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            yield from _iter_url_candidates(item)
        return
    for part in str(value).split(","):
        yield part.strip()


def extract_urls(value: Any) -> List[str]:
    """
    Extract an ordered, de-duplicated list of http(s) URLs.

    Handles plain strings, comma-separated strings, lists of strings and
    attachment objects ({"url": ...}).
    """
    seen: set[str] = set()
    urls: List[str] = []
    for candidate in _iter_url_candidates(value):
        if not candidate or not candidate.startswith(URL_PREFIXES):
            continue
        if candidate in seen:
            continue
        seen.add(candidate)
        urls.append(candidate)
    return urls
