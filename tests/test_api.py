"""Tests for the property and CRM sync API endpoints."""

from unittest import mock

import pytest
from rest_framework.test import APIClient

from crm.exceptions import SourceRequestError, SourceUnavailableError
from crm.models import CrmSyncRun
from properties.models import Phase, Property, PropertyCategory

pytestmark = pytest.mark.django_db


@pytest.fixture
def properties():
    active = Property.objects.create(unique_id="API-1", name="Piso Sol", phase=Phase.IN_PROGRESS)
    PropertyCategory.objects.create(property=active, name="Electricidad")
    Property.objects.create(unique_id="API-2", name="Piso Luna", phase=Phase.CLEANING)
    Property.objects.create(unique_id="API-3", name="Piso Mar", phase=Phase.ORPHANED)


class TestPropertyApi:
    def test_list_hides_orphaned(self, api_client, properties):
        response = api_client.get("/api/properties/")

        assert response.status_code == 200
        ids = {row["unique_id"] for row in response.data["results"]}
        assert ids == {"API-1", "API-2"}

    def test_include_orphaned(self, api_client, properties):
        response = api_client.get("/api/properties/", {"include_orphaned": "1"})

        assert response.data["count"] == 3

    def test_filter_by_phase(self, api_client, properties):
        response = api_client.get("/api/properties/", {"phase": "in-progress"})

        rows = response.data["results"]
        assert [row["unique_id"] for row in rows] == ["API-1"]
        assert rows[0]["category_count"] == 1

    def test_detail_includes_categories(self, api_client, properties):
        prop = Property.objects.get(unique_id="API-1")

        response = api_client.get(f"/api/properties/{prop.pk}/")

        assert response.status_code == 200
        assert [c["name"] for c in response.data["categories"]] == ["Electricidad"]

    def test_requires_admin(self, django_user_model, properties):
        user = django_user_model.objects.create_user(username="viewer", password="pw")
        client = APIClient()
        client.force_authenticate(user=user)

        assert client.get("/api/crm/runs/").status_code == 403
        assert client.post("/api/crm/sync/").status_code == 403


class TestSyncApi:
    def test_manual_sync_returns_stats(self, api_client, fake_client, make_record):
        client = fake_client(pages={"cleaning": [[make_record("API-10", status="Cleaning")]]})

        with mock.patch("crm.sync_engine.AirtableClient", return_value=client):
            response = api_client.post("/api/crm/sync/", {}, format="json")

        assert response.status_code == 200
        assert response.data["totals"]["created"] == 1
        assert CrmSyncRun.objects.get().run_type == CrmSyncRun.RUN_MANUAL

    def test_manual_sync_single_view(self, api_client, fake_client):
        client = fake_client()

        with mock.patch("crm.sync_engine.AirtableClient", return_value=client):
            response = api_client.post("/api/crm/sync/", {"view": "budget"}, format="json")

        assert response.status_code == 200
        assert client.requested_views == ["budget"]

    def test_unknown_view_is_rejected(self, api_client):
        response = api_client.post("/api/crm/sync/", {"view": "garden"}, format="json")

        assert response.status_code == 400
        assert "cleaning" in response.data["valid_views"]

    def test_already_running_is_a_conflict(self, api_client, fake_client):
        CrmSyncRun.objects.create(status=CrmSyncRun.STATUS_RUNNING, scope=CrmSyncRun.SCOPE_ALL)

        with mock.patch("crm.sync_engine.AirtableClient", return_value=fake_client()):
            response = api_client.post("/api/crm/sync/", {}, format="json")

        assert response.status_code == 409

    def test_source_outage_is_service_unavailable(self, api_client, fake_client):
        client = fake_client(pages={"cleaning": [SourceUnavailableError("timeout")]})

        with mock.patch("crm.sync_engine.AirtableClient", return_value=client):
            response = api_client.post("/api/crm/sync/", {}, format="json")

        assert response.status_code == 503

    def test_rejected_view_request_is_bad_gateway(self, api_client, fake_client):
        client = fake_client(pages={"cleaning": [SourceRequestError("invalid token", status_code=401)]})

        with mock.patch("crm.sync_engine.AirtableClient", return_value=client):
            response = api_client.post("/api/crm/sync/", {}, format="json")

        assert response.status_code == 502

    def test_runs_filter_by_status(self, api_client):
        CrmSyncRun.objects.create(status=CrmSyncRun.STATUS_SUCCESS, stats={"totals": {"created": 2}})
        CrmSyncRun.objects.create(status=CrmSyncRun.STATUS_FAILED, error="boom")

        response = api_client.get("/api/crm/runs/", {"status": CrmSyncRun.STATUS_FAILED})

        assert response.data["count"] == 1
        run_id = response.data["results"][0]["id"]
        detail = api_client.get(f"/api/crm/runs/{run_id}/")
        assert detail.data["error"] == "boom"


class TestMaintenanceApi:
    def test_extraction_trigger(self, api_client, webhook_session):
        Property.objects.create(unique_id="API-20", phase=Phase.IN_PROGRESS, document_urls="https://files.test/a.pdf")

        response = api_client.post("/api/crm/extraction/trigger/", {"property_id": "API-20"}, format="json")

        assert response.status_code == 200
        assert response.data["called"] == 1
        assert webhook_session.post.call_args.kwargs["json"]["unique_id"] == "API-20"

    def test_extraction_without_webhook_url(self, settings, api_client):
        settings.AUTOMATION_WEBHOOK_URL = ""

        response = api_client.post("/api/crm/extraction/trigger/", {}, format="json")

        assert response.status_code == 500

    def test_budget_index_requires_property(self, api_client):
        response = api_client.post("/api/crm/budget-index/", {}, format="json")
        assert response.status_code == 400

    def test_budget_index_unknown_property(self, api_client):
        response = api_client.post("/api/crm/budget-index/", {"property_id": "NOPE"}, format="json")
        assert response.status_code == 404

    def test_budget_index_assigns(self, api_client):
        prop = Property.objects.create(unique_id="API-30", phase=Phase.IN_PROGRESS, document_urls="https://files.test/a.pdf")
        PropertyCategory.objects.create(property=prop, name="Fontanería")

        response = api_client.post("/api/crm/budget-index/", {"property_id": "API-30"}, format="json")

        assert response.status_code == 200
        assert response.data["assigned"] == 1
