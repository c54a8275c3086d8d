"""Tests for the category extraction trigger."""

from unittest import mock

import pytest
import requests
from kombu.exceptions import OperationalError

from crm.exceptions import SyncConfigurationError
from crm.extraction import (
    AutomationWebhookClient,
    build_payloads,
    eligible_properties,
    is_eligible,
    run_extraction,
    trigger_extraction,
)
from crm.models import CrmSyncRun
from properties.models import Phase, Property, PropertyCategory


class TestEligibility:
    @pytest.mark.parametrize(
        "phase, urls, categories, expected",
        [
            (Phase.IN_PROGRESS, ["https://files.test/a.pdf"], 0, True),
            (Phase.IN_PROGRESS, ["https://files.test/a.pdf", "https://files.test/b.pdf"], 0, True),
            (Phase.IN_PROGRESS, [], 0, False),
            (Phase.IN_PROGRESS, ["https://files.test/a.pdf"], 3, False),
            (Phase.FURNISHING, ["https://files.test/a.pdf"], 0, False),
            (None, ["https://files.test/a.pdf"], 0, False),
        ],
    )
    def test_is_eligible(self, phase, urls, categories, expected):
        assert is_eligible(phase, urls, categories) is expected

    @pytest.mark.django_db
    def test_queryset_matches_predicate(self):
        Property.objects.create(unique_id="E-1", phase=Phase.IN_PROGRESS, document_urls="https://files.test/1.pdf")
        Property.objects.create(unique_id="E-2", phase=Phase.IN_PROGRESS, document_urls="")
        Property.objects.create(unique_id="E-3", phase=Phase.CLEANING, document_urls="https://files.test/3.pdf")
        done = Property.objects.create(unique_id="E-4", phase=Phase.IN_PROGRESS, document_urls="https://files.test/4.pdf")
        PropertyCategory.objects.create(property=done, name="Electricidad", percentage=10)

        assert list(eligible_properties().values_list("unique_id", flat=True)) == ["E-1"]


@pytest.mark.django_db
def test_one_payload_per_document_with_budget_index():
    prop = Property.objects.create(
        unique_id="E-10",
        name="Piso Centro",
        address="Calle Mayor 10",
        phase=Phase.IN_PROGRESS,
        client_name="Marta",
        client_email="marta@example.com",
        renovation_type="Light reno",
        area="Centro",
        document_urls="https://files.test/a.pdf,https://files.test/b.pdf",
    )

    payloads = build_payloads(prop)

    assert [p["budget_index"] for p in payloads] == [1, 2]
    assert [p["document_url"] for p in payloads] == ["https://files.test/a.pdf", "https://files.test/b.pdf"]
    assert set(payloads[0]) == {
        "document_url", "property_id", "unique_id", "property_name", "address",
        "client_name", "client_email", "renovation_type", "area", "budget_index",
    }
    assert payloads[0]["property_id"] == "E-10"


@pytest.mark.django_db
class TestTrigger:
    def test_calls_once_per_document_with_delay_between_calls(self, settings, webhook_session):
        settings.AUTOMATION_WEBHOOK_DELAY = 0.5
        Property.objects.create(unique_id="E-20", phase=Phase.IN_PROGRESS, document_urls="https://files.test/a.pdf,https://files.test/b.pdf")
        Property.objects.create(unique_id="E-21", phase=Phase.IN_PROGRESS, document_urls="https://files.test/c.pdf")
        sleep = mock.Mock()

        stats = trigger_extraction(sleep=sleep)

        assert webhook_session.post.call_count == 3
        assert sleep.call_args_list == [mock.call(0.5), mock.call(0.5)]
        assert stats["eligible"] == 2
        assert stats["called"] == 3
        assert stats["failed"] == 0
        for call in webhook_session.post.call_args_list:
            assert call.kwargs["timeout"] == settings.AUTOMATION_WEBHOOK_TIMEOUT

    def test_failures_are_counted_and_the_pass_continues(self, webhook_session):
        Property.objects.create(unique_id="E-30", phase=Phase.IN_PROGRESS, document_urls="https://files.test/a.pdf")
        Property.objects.create(unique_id="E-31", phase=Phase.IN_PROGRESS, document_urls="https://files.test/b.pdf")
        Property.objects.create(unique_id="E-32", phase=Phase.IN_PROGRESS, document_urls="https://files.test/c.pdf")
        bad_status = mock.Mock()
        bad_status.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        webhook_session.post.side_effect = [requests.Timeout("read timed out"), bad_status, mock.Mock()]

        stats = trigger_extraction()

        assert webhook_session.post.call_count == 3
        assert stats["failed"] == 2
        assert stats["called"] == 1

    def test_success_schedules_budget_index_reconcile(self, settings, webhook_session):
        settings.BUDGET_INDEX_RECONCILE_DELAY = 10
        Property.objects.create(unique_id="E-40", phase=Phase.IN_PROGRESS, document_urls="https://files.test/a.pdf")

        with mock.patch("crm.tasks.reconcile_budget_index_task.apply_async") as apply_async:
            trigger_extraction()

        apply_async.assert_called_once_with(args=["E-40"], countdown=10)

    def test_failed_calls_do_not_schedule_reconcile(self, webhook_session):
        Property.objects.create(unique_id="E-41", phase=Phase.IN_PROGRESS, document_urls="https://files.test/a.pdf")
        webhook_session.post.side_effect = requests.ConnectionError("refused")

        with mock.patch("crm.tasks.reconcile_budget_index_task.apply_async") as apply_async:
            trigger_extraction()

        apply_async.assert_not_called()

    def test_broker_outage_does_not_stop_the_pass(self, webhook_session):
        Property.objects.create(unique_id="E-45", phase=Phase.IN_PROGRESS, document_urls="https://files.test/a.pdf")
        Property.objects.create(unique_id="E-46", phase=Phase.IN_PROGRESS, document_urls="https://files.test/b.pdf")

        with mock.patch(
            "crm.tasks.reconcile_budget_index_task.apply_async",
            side_effect=OperationalError("broker down"),
        ):
            stats = trigger_extraction()

        assert webhook_session.post.call_count == 2
        assert stats["called"] == 2
        assert [d["reconcile_scheduled"] for d in stats["details"]] == [False, False]

    def test_property_with_categories_is_not_called_again(self, webhook_session):
        prop = Property.objects.create(unique_id="E-50", phase=Phase.IN_PROGRESS, document_urls="https://files.test/a.pdf")
        PropertyCategory.objects.create(property=prop, name="Fontanería", percentage=0)

        stats = trigger_extraction(unique_id="E-50")

        webhook_session.post.assert_not_called()
        assert stats["skipped"] == 1

    def test_missing_webhook_url_is_a_configuration_error(self, settings, webhook_session):
        settings.AUTOMATION_WEBHOOK_URL = ""
        Property.objects.create(unique_id="E-60", phase=Phase.IN_PROGRESS, document_urls="https://files.test/a.pdf")

        with pytest.raises(SyncConfigurationError):
            trigger_extraction()

        webhook_session.post.assert_not_called()

    def test_run_extraction_records_a_run(self, webhook_session):
        stats = run_extraction()

        run = CrmSyncRun.objects.get(id=stats["run_id"])
        assert run.scope == "extraction"
        assert run.status == CrmSyncRun.STATUS_SUCCESS


def test_webhook_client_posts_json_with_timeout():
    session = mock.Mock()
    client = AutomationWebhookClient(url="https://automation.test/hook", timeout=7, session=session)

    assert client.send({"unique_id": "E-70", "budget_index": 1}) is True
    session.post.assert_called_once_with("https://automation.test/hook", json={"unique_id": "E-70", "budget_index": 1}, timeout=7)
