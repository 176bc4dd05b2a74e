from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from fiscal_ledger.errors import DuplicateCodeError, NoLinesError, NotDraftError, StateConflict
from fiscal_ledger.models import JournalEntry
from fiscal_ledger.payments.calculations import AllocationInput
from fiscal_ledger.payments.service import register_payment
from fiscal_ledger.purchasing.service import (
    add_bill_line,
    cancel_bill,
    create_draft_bill,
    finalize_bill,
    list_bills,
    remove_bill_line,
)
from fiscal_ledger.suppliers.service import create_supplier


@pytest.fixture
def supplier(db, user):
    return create_supplier(db, company_id=user.company_id, actor_id=user.id, tax_id="J987654321", name="Paper Inc")


def _bill(db, user, supplier, number="B-100", *, lines=(("Paper", "2", "100.00", "16"),)):
    bill = create_draft_bill(
        db,
        company_id=user.company_id,
        actor_id=user.id,
        supplier_id=supplier.id,
        bill_number=number,
        bill_date=date(2024, 4, 2),
        due_date=date(2024, 5, 2),
    )
    for description, quantity, unit_price, tax_rate in lines:
        add_bill_line(
            db,
            company_id=user.company_id,
            actor_id=user.id,
            bill_id=bill.id,
            description=description,
            quantity=Decimal(quantity),
            unit_price=Decimal(unit_price),
            tax_rate=Decimal(tax_rate),
        )
    return bill


def test_draft_bill_totals(db, user, supplier):
    bill = _bill(db, user, supplier, lines=(("Paper", "2", "100.00", "16"), ("Pens", "3", "3.33", "0")))
    assert bill.subtotal == Decimal("209.99")
    assert bill.tax_amount == Decimal("32.00")
    assert bill.total == Decimal("241.99")
    assert bill.status == "pending"
    assert not bill.is_finalized


def test_finalize_posts_expense_tax_and_payable(db, user, supplier, ledger):
    bill = _bill(db, user, supplier)
    finalize_bill(db, company_id=user.company_id, actor_id=user.id, bill_id=bill.id)

    assert bill.is_finalized
    assert bill.status == "pending"
    entry = db.get(JournalEntry, bill.journal_entry_id)
    assert entry.source_type == "bill"
    assert entry.description == "Bill B-100 - Paper Inc"
    assert {line.account_id: (line.debit, line.credit) for line in entry.lines} == {
        ledger["5.1.01"]: (Decimal("200.00"), Decimal("0.00")),
        ledger["1.1.04"]: (Decimal("32.00"), Decimal("0.00")),
        ledger["2.1.01"]: (Decimal("0.00"), Decimal("232.00")),
    }


def test_finalized_bill_is_frozen(db, user, supplier, ledger):
    bill = _bill(db, user, supplier)
    finalize_bill(db, company_id=user.company_id, actor_id=user.id, bill_id=bill.id)

    with pytest.raises(NotDraftError) as exc_info:
        add_bill_line(
            db,
            company_id=user.company_id,
            actor_id=user.id,
            bill_id=bill.id,
            description="Late",
            quantity=Decimal("1"),
            unit_price=Decimal("1"),
        )
    assert exc_info.value.current_state == "finalized"
    with pytest.raises(NotDraftError):
        finalize_bill(db, company_id=user.company_id, actor_id=user.id, bill_id=bill.id)


def test_finalize_requires_lines(db, user, supplier, ledger):
    bill = _bill(db, user, supplier, lines=())
    with pytest.raises(NoLinesError):
        finalize_bill(db, company_id=user.company_id, actor_id=user.id, bill_id=bill.id)


def test_zero_total_bill_finalizes_without_entry(db, user, supplier, ledger):
    bill = _bill(db, user, supplier, lines=(("Sample", "1", "0", "0"),))
    finalize_bill(db, company_id=user.company_id, actor_id=user.id, bill_id=bill.id)
    assert bill.is_finalized
    assert bill.journal_entry_id is None


def test_supplier_bill_number_is_unique(db, user, supplier):
    _bill(db, user, supplier)
    with pytest.raises(DuplicateCodeError):
        _bill(db, user, supplier)


def test_remove_line_recalculates(db, user, supplier):
    bill = _bill(db, user, supplier, lines=(("Paper", "2", "100.00", "16"), ("Pens", "1", "10.00", "0")))
    remove_bill_line(db, company_id=user.company_id, actor_id=user.id, bill_id=bill.id, line_id=bill.lines[0].id)
    assert bill.total == Decimal("10.00")
    assert len(bill.lines) == 1


def test_cancel_reverses_entry(db, user, supplier, ledger):
    bill = _bill(db, user, supplier)
    finalize_bill(db, company_id=user.company_id, actor_id=user.id, bill_id=bill.id)
    cancel_bill(db, company_id=user.company_id, actor_id=user.id, bill_id=bill.id)

    assert bill.status == "cancelled"
    reversal = db.query(JournalEntry).filter(JournalEntry.reverses_id == bill.journal_entry_id).one()
    assert reversal.source_type == "bill_cancellation"
    assert reversal.total_debit == Decimal("232.00")

    with pytest.raises(StateConflict) as exc_info:
        cancel_bill(db, company_id=user.company_id, actor_id=user.id, bill_id=bill.id)
    assert exc_info.value.current_state == "cancelled"


def test_cancel_refuses_paid_bill(db, user, supplier, ledger):
    bill = _bill(db, user, supplier)
    finalize_bill(db, company_id=user.company_id, actor_id=user.id, bill_id=bill.id)
    register_payment(
        db,
        company_id=user.company_id,
        actor_id=user.id,
        payment_type="expense",
        payment_date=date(2024, 4, 10),
        payment_method="check",
        amount=Decimal("32.00"),
        allocations=[AllocationInput("bill", bill.id, Decimal("32.00"))],
    )
    with pytest.raises(StateConflict):
        cancel_bill(db, company_id=user.company_id, actor_id=user.id, bill_id=bill.id)
    assert bill.status == "partial"


def test_list_bills_filters_by_finalized(db, user, supplier, ledger):
    first = _bill(db, user, supplier, "B-1")
    _bill(db, user, supplier, "B-2")
    finalize_bill(db, company_id=user.company_id, actor_id=user.id, bill_id=first.id)

    assert [bill.bill_number for bill in list_bills(db, user.company_id, finalized=True)] == ["B-1"]
    assert [bill.bill_number for bill in list_bills(db, user.company_id, finalized=False)] == ["B-2"]


def test_bill_api_lifecycle(client: TestClient, ledger):
    supplier = client.post("/api/suppliers", json={"tax_id": "J987654321", "name": "Paper Inc", "bank_account_type": "checking"})
    assert supplier.status_code == 201
    assert supplier.json()["tax_id"] == "J-98765432-1"

    created = client.post(
        "/api/bills",
        json={"supplier_id": supplier.json()["id"], "bill_number": "B-100", "bill_date": "2024-04-02"},
    )
    assert created.status_code == 201
    bill_id = created.json()["id"]
    assert created.json()["is_finalized"] is False

    line = client.post(
        f"/api/bills/{bill_id}/lines",
        json={"description": "Paper", "quantity": "2", "unit_price": "100.00", "tax_rate": "16"},
    )
    assert line.status_code == 201
    assert Decimal(line.json()["total"]) == Decimal("232")

    finalized = client.post(f"/api/bills/{bill_id}/finalize")
    assert finalized.status_code == 200
    assert finalized.json()["is_finalized"] is True
    assert finalized.json()["journal_entry_id"] is not None

    late = client.post(
        f"/api/bills/{bill_id}/lines",
        json={"description": "Late", "quantity": "1", "unit_price": "1.00"},
    )
    assert late.status_code == 409
    assert late.json()["current_state"] == "finalized"

    cancelled = client.post(f"/api/bills/{bill_id}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert client.get("/api/bills", params={"status": "cancelled"}).json()[0]["id"] == bill_id


def test_bill_line_amounts_are_rounded_before_totals(db, user, supplier):
    bill = _bill(db, user, supplier, lines=(("Screws", "3.00004", "1.005", "0"),))
    line = bill.lines[0]

    assert line.quantity == Decimal("3.0000")
    assert line.unit_price == Decimal("1.01")
    assert bill.total == line.line_total == Decimal("3.03")
