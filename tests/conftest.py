"""Pytest configuration and shared fixtures."""

from unittest import mock

import pytest
from rest_framework.test import APIClient

from crm.phases import SOURCE_VIEWS


class FakeAirtableClient:
    """In-memory stand-in for crm.services.AirtableClient.

    `pages` maps a view key to a list of pages; a page is a list of raw
    records, or an exception instance raised when that page is requested.
    Views without pages return one empty page.
    """

    def __init__(self, pages=None, records=None, configured=True):
        self.pages = pages or {}
        self.records = records or {}
        self.is_configured = configured
        self.requested_views = []

    def view_id_for(self, view_key):
        return view_key

    def iter_pages(self, view_id):
        self.requested_views.append(view_id)
        for page in self.pages.get(view_id, [[]]):
            if isinstance(page, Exception):
                raise page
            yield page

    def get_record(self, record_id):
        return self.records[record_id]


@pytest.fixture
def make_record():
    """Factory for raw CRM records."""
    counter = {"n": 0}

    def _make(unique_id, status=None, record_id=None, **fields):
        counter["n"] += 1
        body = {"Unique ID": unique_id, "Address": f"Calle {unique_id} 1"}
        if status is not None:
            body["Set Up Status"] = status
        body.update(fields)
        return {
            "id": record_id or f"rec{counter['n']:014d}",
            "fields": body,
            "createdTime": "2025-01-01T00:00:00.000Z",
        }

    return _make


@pytest.fixture
def fake_client():
    return FakeAirtableClient


@pytest.fixture
def all_view_keys():
    return [v.key for v in SOURCE_VIEWS]


@pytest.fixture
def webhook_session():
    """Patch the requests.Session used by the automation webhook client."""
    with mock.patch("crm.extraction.requests.Session") as session_cls:
        session = session_cls.return_value
        session.post.return_value = mock.Mock(status_code=200)
        yield session


@pytest.fixture
def api_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client
