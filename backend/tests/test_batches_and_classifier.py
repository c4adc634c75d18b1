# Overview: Pytest coverage for batch ranking and threshold classification.

from datetime import date, timedelta

import pytest

from booking_ledger.errors import DependencyLookupFailure, ValidationError
from booking_ledger.services import classifier
from booking_ledger.services.batch_service import (
    create_batch,
    critical_batches,
    expiry_status,
    get_batch_priority,
    rank,
)


TODAY = date(2024, 3, 1)


class TestRank:

    def test_ascending_with_undated_last(self):
        batches = [
            {"batch_number": "B", "expiry_date": date(2024, 1, 1)},
            {"batch_number": "D", "expiry_date": None},
            {"batch_number": "A", "expiry_date": date(2023, 6, 1)},
            {"batch_number": "C", "expiry_date": date(2025, 1, 1)},
        ]
        assert [b["batch_number"] for b in rank(batches)] == ["A", "B", "C", "D"]

    def test_stable_for_equal_dates(self):
        batches = [
            {"batch_number": "first", "expiry_date": date(2024, 5, 1)},
            {"batch_number": "x", "expiry_date": None},
            {"batch_number": "second", "expiry_date": date(2024, 5, 1)},
            {"batch_number": "y", "expiry_date": None},
        ]
        assert [b["batch_number"] for b in rank(batches)] == ["first", "second", "x", "y"]

    def test_does_not_mutate_input(self):
        batches = [{"expiry_date": date(2025, 1, 1)}, {"expiry_date": date(2024, 1, 1)}]
        rank(batches)
        assert batches[0]["expiry_date"] == date(2025, 1, 1)


class TestExpiryStatus:

    @pytest.mark.parametrize("offset, status, days", [
        (-10, "expired", 10),
        (-1, "expired", 1),
        (0, "critical", 0),
        (7, "critical", 7),
        (8, "warning", 8),
        (30, "warning", 30),
        (31, "ok", 31),
    ])
    def test_bands(self, offset, status, days):
        result = expiry_status(TODAY + timedelta(days=offset), TODAY)
        assert result.status == status
        assert result.days == days

    def test_no_date(self):
        result = expiry_status(None, TODAY)
        assert result.status == "no_date"
        assert result.days is None


class TestClassifier:

    @pytest.mark.parametrize("elapsed, tier", [
        (-5, "active"),
        (0, "active"),
        (30, "active"),
        (31, "recent"),
        (60, "recent"),
        (61, "warning"),
        (90, "warning"),
        (91, "urgent"),
        (400, "urgent"),
    ])
    def test_inactivity_bands(self, elapsed, tier):
        assert classifier.classify_inactivity(elapsed) == tier

    def test_generic_bands(self):
        bands = ((10, "low"), (20, "mid"))
        assert classifier.classify(10, bands, "high") == "low"
        assert classifier.classify(11, bands, "high") == "mid"
        assert classifier.classify(21, bands, "high") == "high"

    def test_classify_clients_orders_most_inactive_first(self):
        clients = [
            {"name": "a", "last_visit": TODAY - timedelta(days=95)},
            {"name": "b", "last_visit": TODAY - timedelta(days=200)},
            {"name": "c", "last_visit": TODAY - timedelta(days=3)},
            {"name": "d", "last_visit": None},
        ]
        tiers = classifier.classify_clients(clients, TODAY)

        assert [c["name"] for c in tiers["urgent"]] == ["b", "a"]
        assert tiers["urgent"][0]["days_since_last_visit"] == 200
        assert [c["name"] for c in tiers["active"]] == ["c"]
        assert [c["name"] for c in tiers["never"]] == ["d"]
        assert tiers["warning"] == [] and tiers["recent"] == []


class TestBatchService:

    def test_priority_from_store(self, db_session, tenant_a, product):
        today = date.today()
        create_batch(tenant_a.id, product.id, "LATE", 5, expiry_date=today + timedelta(days=90))
        create_batch(tenant_a.id, product.id, "NODATE", 2)
        create_batch(tenant_a.id, product.id, "SOON", 1, expiry_date=today + timedelta(days=3))
        create_batch(tenant_a.id, product.id, "GONE", 4, expiry_date=today - timedelta(days=2))

        rows = get_batch_priority(tenant_a.id, product.id, today=today)
        assert [r["batch_number"] for r in rows] == ["GONE", "SOON", "LATE", "NODATE"]
        assert [r["priority"] for r in rows] == [1, 2, 3, 4]
        assert [r["expiry_status"] for r in rows] == ["expired", "critical", "ok", "no_date"]
        assert rows[0]["product_name"] == "Esmalte Vermelho"

        alerts = critical_batches(tenant_a.id, today=today)
        assert [r["batch_number"] for r in alerts] == ["GONE", "SOON"]

    def test_batches_are_tenant_scoped(self, db_session, tenant_a, tenant_b, product):
        create_batch(tenant_a.id, product.id, "A1", 1)
        assert get_batch_priority(tenant_b.id) == []

    def test_create_batch_validation(self, db_session, tenant_a, product):
        with pytest.raises(ValidationError):
            create_batch(tenant_a.id, product.id, "X", -1)
        with pytest.raises(ValidationError):
            create_batch(tenant_a.id, product.id, "X", 1,
                         manufacturing_date=date(2024, 5, 1), expiry_date=date(2024, 4, 1))
        with pytest.raises(DependencyLookupFailure):
            create_batch(tenant_a.id, 99999, "X", 1)
