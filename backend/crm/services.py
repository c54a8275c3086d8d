# backend/crm/services.py
"""
Airtable REST client for the properties table.

- Reuses a single requests.Session (keep-alive, bearer token)
- Pages through a view with the `offset` cursor
- Retries HTTP 429 with exponential backoff
- Maps transport failures to the crm.exceptions taxonomy
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterator, List, Optional

import requests

from django.conf import settings

from .exceptions import SourceRequestError, SourceUnavailableError

logger = logging.getLogger(__name__)


class AirtableClient:
    """
    Client for reading CRM records from Airtable.
    """

    BACKOFF_BASE_SECONDS = 1.0

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self.api_url = getattr(settings, "AIRTABLE_API_URL", "https://api.airtable.com/v0").rstrip("/")
        self.api_key = getattr(settings, "AIRTABLE_API_KEY", "")
        self.base_id = getattr(settings, "AIRTABLE_BASE_ID", "")
        self.table = getattr(settings, "AIRTABLE_PROPERTIES_TABLE", "")
        self.timeout = getattr(settings, "AIRTABLE_TIMEOUT", 30)
        self.page_size = getattr(settings, "AIRTABLE_PAGE_SIZE", 100)
        self.max_retries = max(1, getattr(settings, "AIRTABLE_MAX_RETRIES", 3))
        self.view_ids: Dict[str, str] = dict(getattr(settings, "AIRTABLE_VIEW_IDS", {}))

        if not self.api_key:
            logger.warning("AIRTABLE_API_KEY not configured")
        if not self.base_id:
            logger.warning("AIRTABLE_BASE_ID not configured")

        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {self.api_key}"})

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.base_id and self.table)

    def view_id_for(self, view_key: str) -> Optional[str]:
        return self.view_ids.get(view_key) or None

    # -----------------------
    # HTTP helpers
    # -----------------------

    def _table_url(self, record_id: Optional[str] = None) -> str:
        url = f"{self.api_url}/{self.base_id}/{self.table}"
        return f"{url}/{record_id}" if record_id else url

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        attempt = 0
        while True:
            attempt += 1
            try:
                response = self._session.get(url, params=params, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as e:
                raise SourceUnavailableError(f"Airtable unreachable: {e}") from e

            if response.status_code == 429 and attempt < self.max_retries:
                delay = self.BACKOFF_BASE_SECONDS * (2 ** (attempt - 1))
                logger.warning("Airtable rate limited (attempt %s/%s), retrying in %.1fs", attempt, self.max_retries, delay)
                time.sleep(delay)
                continue

            if response.status_code == 429 or response.status_code >= 500:
                raise SourceUnavailableError(f"Airtable returned {response.status_code}")
            if response.status_code >= 400:
                raise SourceRequestError(
                    f"Airtable request failed ({response.status_code}): {response.text[:200]}",
                    status_code=response.status_code,
                )

            try:
                return response.json()
            except ValueError as e:
                raise SourceUnavailableError("Airtable returned a non-JSON body") from e

    # -----------------------
    # Public API
    # -----------------------

    def iter_pages(self, view_id: str) -> Iterator[List[Dict[str, Any]]]:
        """
        Yield one list of raw records per page of `view_id`.

        Errors surface from the page request that failed, so callers can tell a
        first-page failure from a mid-pagination one.
        """
        params: Dict[str, Any] = {"view": view_id, "pageSize": self.page_size}
        page = 0
        while True:
            page += 1
            payload = self._get(self._table_url(), params=params)
            records = payload.get("records") or []
            logger.debug("Airtable view %s page %s: %s records", view_id, page, len(records))
            yield records

            offset = payload.get("offset")
            if not offset:
                return
            params = {**params, "offset": offset}

    def get_record(self, record_id: str) -> Dict[str, Any]:
        return self._get(self._table_url(record_id))
