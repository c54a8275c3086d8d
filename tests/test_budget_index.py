"""Tests for the budget-index reconciler."""

from datetime import timedelta

import pytest
from django.utils import timezone

from crm.budget_index import partition_indices, reconcile_all, reconcile_budget_indices, run_reconcile
from crm.models import CrmSyncRun
from properties.models import Phase, Property, PropertyCategory


@pytest.mark.parametrize(
    "count, documents, expected",
    [
        (6, 2, [1, 1, 1, 2, 2, 2]),
        (7, 3, [1, 1, 1, 2, 2, 3, 3]),
        (4, 1, [1, 1, 1, 1]),
        (2, 3, [1, 2]),
        (0, 2, []),
    ],
)
def test_partition_indices(count, documents, expected):
    assert partition_indices(count, documents) == expected


def _property_with_categories(unique_id, documents, count):
    prop = Property.objects.create(
        unique_id=unique_id,
        phase=Phase.IN_PROGRESS,
        document_urls=",".join(f"https://files.test/{unique_id}-{i}.pdf" for i in range(1, documents + 1)),
    )
    base = timezone.now() - timedelta(hours=1)
    # Insert out of creation order so ordering by created_at is what matters
    for i in reversed(range(count)):
        PropertyCategory.objects.create(property=prop, name=f"cat-{i}", created_at=base + timedelta(seconds=i))
    return prop


def _indices(unique_id):
    return list(
        PropertyCategory.objects.filter(property_id=unique_id)
        .order_by("created_at", "id")
        .values_list("budget_index", flat=True)
    )


@pytest.mark.django_db
class TestReconcile:
    def test_six_categories_over_two_documents(self):
        prop = _property_with_categories("B-1", documents=2, count=6)

        result = reconcile_budget_indices(prop)

        assert _indices("B-1") == [1, 1, 1, 2, 2, 2]
        assert result["assigned"] == 6
        assert "ambiguous" not in result

    def test_seven_categories_over_three_documents_is_flagged(self):
        prop = _property_with_categories("B-2", documents=3, count=7)

        result = reconcile_budget_indices(prop)

        assert _indices("B-2") == [1, 1, 1, 2, 2, 3, 3]
        assert result["ambiguous"] is True

    def test_single_document_assigns_index_one(self):
        prop = _property_with_categories("B-3", documents=1, count=3)

        reconcile_budget_indices(prop)

        assert _indices("B-3") == [1, 1, 1]
        assert not PropertyCategory.objects.filter(property_id="B-3", budget_index_reconciled_at__isnull=True).exists()

    def test_rerun_is_a_no_op(self):
        prop = _property_with_categories("B-4", documents=2, count=4)
        reconcile_budget_indices(prop)
        first = _indices("B-4")

        result = reconcile_budget_indices(prop)

        assert _indices("B-4") == first == [1, 1, 2, 2]
        assert result["assigned"] == 0

    def test_categories_with_an_explicit_index_are_left_alone(self):
        prop = _property_with_categories("B-5", documents=2, count=2)
        PropertyCategory.objects.create(property=prop, name="manual", budget_index=2, created_at=timezone.now() - timedelta(days=1))

        reconcile_budget_indices(prop)

        assert PropertyCategory.objects.get(name="manual").budget_index_reconciled_at is None
        assert _indices("B-5") == [2, 1, 2]

    def test_no_documents_is_skipped(self):
        prop = Property.objects.create(unique_id="B-6", phase=Phase.IN_PROGRESS)
        PropertyCategory.objects.create(property=prop, name="x")

        result = reconcile_budget_indices(prop)

        assert result["skipped"] == "no documents"
        assert PropertyCategory.objects.get(property_id="B-6").budget_index_reconciled_at is None

    def test_reconcile_all_visits_every_pending_property(self):
        _property_with_categories("B-7", documents=2, count=2)
        _property_with_categories("B-8", documents=1, count=1)

        stats = reconcile_all()

        assert stats["properties"] == 2
        assert stats["assigned"] == 3
        assert _indices("B-7") == [1, 2]

    def test_run_reconcile_records_a_run(self):
        _property_with_categories("B-9", documents=2, count=2)

        stats = run_reconcile(unique_id="B-9")

        assert stats["assigned"] == 2
        assert CrmSyncRun.objects.get(id=stats["run_id"]).scope == "budget-index"
