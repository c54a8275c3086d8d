"""Tests for the idempotent property upsert."""

from datetime import date, timedelta
from unittest import mock

import pytest
from django.forms.models import model_to_dict
from django.utils import timezone

from crm.field_mapping import map_record
from crm.phases import get_view
from crm.upsert import PropertyUpserter, UpsertResult
from properties.models import Phase, Property

pytestmark = pytest.mark.django_db


@pytest.fixture
def upserter():
    return PropertyUpserter()


def _snapshot(unique_id):
    return model_to_dict(Property.objects.get(unique_id=unique_id))


def test_identical_input_twice_is_created_then_unchanged(upserter, make_record):
    record = map_record(make_record("SP-100", status="Check inicial", **{"Reno Start Date": "2025-04-01"}))

    first = upserter.upsert(record, view=get_view("initial-check"))
    before = _snapshot("SP-100")
    synced_at = Property.objects.get(unique_id="SP-100").last_synced_at
    second = upserter.upsert(record, view=get_view("initial-check"))

    assert first.action == UpsertResult.CREATED
    assert second.action == UpsertResult.UNCHANGED
    assert _snapshot("SP-100") == before
    assert Property.objects.get(unique_id="SP-100").last_synced_at == synced_at
    assert Property.objects.count() == 1


def test_created_row_carries_mapped_fields(upserter, make_record):
    record = map_record(make_record(
        "SP-101",
        status="Reno to start",
        record_id="recSP101",
        **{"Client Name": ["Luis"], "Real settlement date": "2025-01-20"},
    ))

    result = upserter.upsert(record)
    prop = Property.objects.get(unique_id="SP-101")

    assert result.phase == Phase.BUDGET_TO_START
    assert prop.phase == Phase.BUDGET_TO_START
    assert prop.raw_status == "Reno to start"
    assert prop.client_name == "Luis"
    assert prop.real_settlement_date == date(2025, 1, 20)
    assert prop.source_record_id == "recSP101"
    assert prop.last_synced_at is not None
    assert prop.phase_changed_at is not None


def test_update_writes_only_differing_fields_and_keeps_notes(upserter, make_record):
    upserter.upsert(map_record(make_record("SP-102", status="Check inicial")))
    Property.objects.filter(unique_id="SP-102").update(notes="keys with the porter")

    result = upserter.upsert(map_record(make_record("SP-102", status="Check inicial", **{"Renovator Name": "Obras Sur"})))
    prop = Property.objects.get(unique_id="SP-102")

    assert result.action == UpsertResult.UPDATED
    assert "renovator_name" in result.changed_fields
    assert "phase" not in result.changed_fields
    assert prop.renovator_name == "Obras Sur"
    assert prop.notes == "keys with the porter"


def test_phase_change_bumps_phase_changed_at(upserter, make_record):
    upserter.upsert(map_record(make_record("SP-103", status="Check inicial")))
    first_change = timezone.now() - timedelta(days=3)
    Property.objects.filter(unique_id="SP-103").update(phase_changed_at=first_change)

    upserter.upsert(map_record(make_record("SP-103", status="Final check")))
    prop = Property.objects.get(unique_id="SP-103")

    assert prop.phase == Phase.FINAL_CHECK
    assert prop.phase_changed_at > first_change


def test_unrecognized_status_keeps_previous_phase(upserter, make_record):
    upserter.upsert(map_record(make_record("SP-104", status="Final check")))

    result = upserter.upsert(map_record(make_record("SP-104", status="On hold - owner abroad")))
    prop = Property.objects.get(unique_id="SP-104")

    assert result.action == UpsertResult.UPDATED
    assert prop.phase == Phase.FINAL_CHECK
    assert prop.raw_status == "On hold - owner abroad"


def test_documents_are_not_cleared_when_source_omits_them(upserter, make_record):
    upserter.upsert(map_record(make_record(
        "SP-105", status="Reno in progress", **{"fldVOO4zqx5HUzIjz": "https://files.test/budget.pdf"},
    )))

    result = upserter.upsert(map_record(make_record("SP-105", status="Reno in progress")))

    assert result.action == UpsertResult.UNCHANGED
    assert Property.objects.get(unique_id="SP-105").document_urls == "https://files.test/budget.pdf"


def test_authoritative_view_overwrites_status(upserter, make_record):
    result = upserter.upsert(map_record(make_record("SP-106", status="Obras en proceso")), view=get_view("in-progress"))
    prop = Property.objects.get(unique_id="SP-106")

    assert result.phase == Phase.IN_PROGRESS
    assert prop.raw_status == "Reno in progress"


def test_write_failure_becomes_error_result(upserter, make_record):
    with mock.patch.object(PropertyUpserter, "_insert", side_effect=RuntimeError("disk full")):
        result = upserter.upsert(map_record(make_record("SP-107", status="Check inicial")))

    assert result.action == UpsertResult.ERROR
    assert result.error == "disk full"
    assert not Property.objects.filter(unique_id="SP-107").exists()
