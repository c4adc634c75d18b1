# Overview: Pytest coverage for payables/receivables status handling.

from datetime import date

import pytest

from booking_ledger.errors import InvalidTransitionError, TenantAccessError, ValidationError
from booking_ledger.models import AccountReceivable
from booking_ledger.services import ledger_service
from booking_ledger.services.cascade_service import post_event
from booking_ledger.time_utils import utctoday


@pytest.fixture
def receivable(db_session, tenant_a):
    entry = ledger_service.create_receivable(
        tenant_id=tenant_a.id,
        description="Venda de Pacote: Teste",
        amount_cents=5000,
        due_date=date(2030, 1, 10),
        reference_type="package_sale",
        reference_id=1,
    )
    db_session.commit()
    return entry


class TestEffectiveStatus:

    def test_overdue_is_derived(self, db_session, receivable):
        assert ledger_service.effective_status(receivable, date(2030, 1, 10)) == "pending"
        assert ledger_service.effective_status(receivable, date(2030, 1, 11)) == "overdue"
        # never stored
        assert receivable.status == "pending"

    def test_settled_entries_are_never_overdue(self, db_session, tenant_a, receivable):
        ledger_service.mark_receivable_received(tenant_a.id, receivable.id, date(2030, 1, 5))
        assert ledger_service.effective_status(receivable, date(2031, 1, 1)) == "received"

    def test_list_filters_on_effective_status(self, db_session, tenant_a, receivable):
        ledger_service.create_receivable(
            tenant_id=tenant_a.id,
            description="Futuro",
            amount_cents=100,
            due_date=date(2030, 2, 1),
            reference_type="package_sale",
            reference_id=2,
        )
        db_session.commit()
        today = date(2030, 1, 20)

        overdue = ledger_service.list_receivables(tenant_a.id, status="overdue", today=today)
        pending = ledger_service.list_receivables(tenant_a.id, status="pending", today=today)
        everything = ledger_service.list_receivables(tenant_a.id, today=today)

        assert [row["description"] for row in overdue] == ["Venda de Pacote: Teste"]
        assert [row["description"] for row in pending] == ["Futuro"]
        assert [row["status"] for row in everything] == ["overdue", "pending"]

    def test_unknown_status_filter(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            ledger_service.list_payables(tenant_a.id, status="received")


class TestSettlement:

    def test_receive_sets_payment_date(self, db_session, tenant_a, receivable):
        entry = ledger_service.mark_receivable_received(tenant_a.id, receivable.id)
        assert entry.status == "received"
        assert entry.payment_date == utctoday()

    def test_overdue_can_be_received(self, db_session, tenant_a, receivable):
        """Due in 2030-01 and settled later still works."""
        entry = ledger_service.mark_receivable_received(tenant_a.id, receivable.id, date(2030, 3, 1))
        assert entry.payment_date == date(2030, 3, 1)

    def test_double_settlement_rejected(self, db_session, tenant_a, receivable):
        ledger_service.mark_receivable_received(tenant_a.id, receivable.id)
        with pytest.raises(InvalidTransitionError):
            ledger_service.mark_receivable_received(tenant_a.id, receivable.id)

    def test_cancelled_is_final(self, db_session, tenant_a, receivable):
        ledger_service.cancel_entry(tenant_a.id, "receivable", receivable.id)
        with pytest.raises(InvalidTransitionError):
            ledger_service.mark_receivable_received(tenant_a.id, receivable.id)

    def test_pay_stock_entry_payable(self, db_session, tenant_a, product):
        result = post_event(tenant_a.id, "stock_entry", {"product_id": product.id, "quantity": 2})
        payable = ledger_service.mark_payable_paid(tenant_a.id, result.derived_id("account_payable"))
        assert payable.status == "paid"

    def test_other_tenant_cannot_settle(self, db_session, tenant_b, receivable):
        with pytest.raises(TenantAccessError):
            ledger_service.mark_receivable_received(tenant_b.id, receivable.id)
        db_session.expire_all()
        assert db_session.get(AccountReceivable, receivable.id).status == "pending"


class TestTotals:

    def test_receivable_totals(self, db_session, tenant_a, receivable):
        ledger_service.create_receivable(
            tenant_id=tenant_a.id,
            description="Recebido",
            amount_cents=700,
            due_date=utctoday(),
            status="received",
            payment_date=utctoday(),
            reference_type="product_sale",
            reference_id=9,
        )
        ledger_service.create_receivable(
            tenant_id=tenant_a.id,
            description="Em aberto",
            amount_cents=300,
            due_date=date(2030, 6, 1),
            reference_type="product_sale",
            reference_id=10,
        )
        db_session.commit()

        totals = ledger_service.receivable_totals(tenant_a.id, today=date(2030, 1, 20))
        assert totals == {"open_cents": 5300, "overdue_cents": 5000, "received_cents": 700}
