from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from fiscal_ledger.account_defaults import set_account_default
from fiscal_ledger.accounting.service import reverse_journal_entry
from fiscal_ledger.chart_of_accounts.service import create_account, import_standard_chart
from fiscal_ledger.errors import MissingAccountDefaultError, NotDraftError, StateConflict, ValidationError
from fiscal_ledger.models import FiscalSequence, JournalEntry
from fiscal_ledger.sales.service import (
    add_invoice_line,
    create_credit_note,
    create_customer,
    create_draft_invoice,
    issue_invoice,
    remove_invoice_line,
    update_draft_invoice,
)


def _lines_by_account(entry: JournalEntry) -> dict:
    return {line.account_id: (line.debit, line.credit) for line in entry.lines}


def _draft_invoice(db, user, *, unit_price="50.00", quantity="2", tax_rate="16"):
    customer = create_customer(db, company_id=user.company_id, actor_id=user.id, tax_id="J123456789", name="Acme Corp")
    invoice = create_draft_invoice(
        db, company_id=user.company_id, actor_id=user.id, customer_id=customer.id, invoice_date=date(2024, 5, 10)
    )
    add_invoice_line(
        db,
        company_id=user.company_id,
        actor_id=user.id,
        invoice_id=invoice.id,
        description="Widgets",
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        tax_rate=Decimal(tax_rate),
    )
    return invoice


def _create_customer(client: TestClient, tax_id="J-12345678-9", name="Acme Corp") -> dict:
    response = client.post("/api/customers", json={"tax_id": tax_id, "name": name})
    assert response.status_code == 201
    return response.json()


def _create_invoice_with_line(client: TestClient, customer_id: int) -> dict:
    created = client.post("/api/invoices", json={"customer_id": customer_id, "invoice_date": "2024-05-10"})
    assert created.status_code == 201
    invoice_id = created.json()["id"]
    line = client.post(
        f"/api/invoices/{invoice_id}/lines",
        json={"description": "Widgets", "quantity": "2", "unit_price": "50.00", "tax_rate": "16"},
    )
    assert line.status_code == 201
    return line.json()


def test_issue_posts_receivable_sales_and_tax(db, user):
    company_id = user.company_id
    receivable = create_account(db, company_id=company_id, actor_id=user.id, code="1.1.03", name="Accounts Receivable", account_type="asset")
    create_account(db, company_id=company_id, actor_id=user.id, code="1.1.01", name="Cash", account_type="asset")
    sales = create_account(db, company_id=company_id, actor_id=user.id, code="4.1", name="Sales", account_type="income")
    tax = create_account(db, company_id=company_id, actor_id=user.id, code="2.3", name="Tax Payable", account_type="liability")
    set_account_default(db, company_id, "AR", receivable.id)
    set_account_default(db, company_id, "SALES", sales.id)
    set_account_default(db, company_id, "VAT_PAYABLE", tax.id)

    invoice = _draft_invoice(db, user)
    assert (invoice.subtotal, invoice.tax_amount, invoice.total) == (Decimal("100.00"), Decimal("16.00"), Decimal("116.00"))

    issued = issue_invoice(db, company_id=company_id, actor_id=user.id, invoice_id=invoice.id)
    assert issued.status == "issued"
    assert issued.invoice_number == "FAC-00000001"
    assert issued.control_number == "00-00000001"

    entry = db.get(JournalEntry, issued.journal_entry_id)
    assert entry.status == "posted"
    assert entry.source_type == "invoice"
    assert entry.description == "Invoice FAC-00000001 - Acme Corp"
    assert _lines_by_account(entry) == {
        receivable.id: (Decimal("116.00"), Decimal("0.00")),
        sales.id: (Decimal("0.00"), Decimal("100.00")),
        tax.id: (Decimal("0.00"), Decimal("16.00")),
    }


def test_issued_invoice_is_frozen(db, user, ledger):
    invoice = _draft_invoice(db, user)
    issue_invoice(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id)

    with pytest.raises(NotDraftError) as exc_info:
        issue_invoice(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id)
    assert exc_info.value.current_state == "issued"
    with pytest.raises(NotDraftError):
        update_draft_invoice(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id, data={"notes": "late edit"})
    with pytest.raises(NotDraftError):
        remove_invoice_line(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id, line_id=invoice.lines[0].id)


def test_missing_default_does_not_consume_a_number(db, user):
    invoice = _draft_invoice(db, user)
    with pytest.raises(MissingAccountDefaultError) as exc_info:
        issue_invoice(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id)
    assert exc_info.value.current_state == "unconfigured"
    assert invoice.status == "draft"
    assert invoice.invoice_number is None
    assert db.query(FiscalSequence).filter(FiscalSequence.current_number > 0).count() == 0

    import_standard_chart(db, company_id=user.company_id, actor_id=user.id)
    issued = issue_invoice(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id)
    assert issued.invoice_number == "FAC-00000001"


def test_zero_total_invoice_is_issued_without_entry(db, user, ledger):
    invoice = _draft_invoice(db, user, unit_price="0")
    issued = issue_invoice(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id)
    assert issued.total == Decimal("0.00")
    assert issued.invoice_number == "FAC-00000001"
    assert issued.journal_entry_id is None


def test_credit_note_reverses_invoice_entry(db, user, ledger):
    invoice = _draft_invoice(db, user)
    issue_invoice(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id)

    note = create_credit_note(
        db,
        company_id=user.company_id,
        actor_id=user.id,
        invoice_id=invoice.id,
        reason="Goods returned",
        note_date=date(2024, 5, 20),
    )
    assert note.note_number == "NC-00000001"
    assert note.total == Decimal("116.00")
    assert invoice.status == "cancelled"

    reversal = db.get(JournalEntry, note.journal_entry_id)
    original = db.get(JournalEntry, invoice.journal_entry_id)
    assert reversal.reverses_id == original.id
    assert reversal.source_type == "credit_note"
    assert _lines_by_account(reversal) == {
        account_id: (credit, debit) for account_id, (debit, credit) in _lines_by_account(original).items()
    }

    with pytest.raises(StateConflict) as exc_info:
        create_credit_note(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id, reason="Again")
    assert exc_info.value.current_state == "cancelled"


def test_credit_note_requires_issued_invoice(db, user, ledger):
    invoice = _draft_invoice(db, user)
    with pytest.raises(StateConflict) as exc_info:
        create_credit_note(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id, reason="Oops")
    assert exc_info.value.current_state == "draft"


def test_draft_dates_are_validated(db, user, ledger):
    invoice = _draft_invoice(db, user)
    with pytest.raises(ValidationError):
        update_draft_invoice(
            db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id, data={"due_date": date(2024, 5, 1)}
        )


def test_customer_api_normalizes_tax_id(client: TestClient):
    customer = _create_customer(client, tax_id="j 12345678 9")
    assert customer["tax_id"] == "J-12345678-9"
    assert customer["tax_id_type"] == "J"

    duplicate = client.post("/api/customers", json={"tax_id": "J123456789", "name": "Acme Again"})
    assert duplicate.status_code == 422

    invalid = client.post("/api/customers", json={"tax_id": "X1", "name": "Nobody"})
    assert invalid.status_code == 400
    assert invalid.json()["kind"] == "validation_error"

    archived = client.delete(f"/api/customers/{customer['id']}")
    assert archived.status_code == 200
    assert archived.json()["is_active"] is False
    assert client.post("/api/invoices", json={"customer_id": customer["id"], "invoice_date": "2024-05-10"}).status_code == 400


def test_invoice_api_lifecycle(client: TestClient, ledger):
    customer = _create_customer(client)
    invoice = _create_invoice_with_line(client, customer["id"])
    assert Decimal(invoice["total"]) == Decimal("116")
    assert invoice["status"] == "draft"

    issued = client.post(f"/api/invoices/{invoice['id']}/issue")
    assert issued.status_code == 200
    body = issued.json()
    assert body["invoice_number"] == "FAC-00000001"
    assert body["control_number"] == "00-00000001"
    assert body["invoice"]["status"] == "issued"
    assert Decimal(body["invoice"]["balance"]) == Decimal("116")

    again = client.post(f"/api/invoices/{invoice['id']}/issue")
    assert again.status_code == 409
    assert again.json()["current_state"] == "issued"

    listed = client.get("/api/invoices", params={"status": "issued"})
    assert [row["id"] for row in listed.json()] == [invoice["id"]]

    note = client.post(f"/api/invoices/{invoice['id']}/credit-note", json={"reason": "Returned", "note_date": "2024-05-11"})
    assert note.status_code == 201
    assert note.json()["note_number"] == "NC-00000001"
    assert client.get(f"/api/invoices/{invoice['id']}").json()["status"] == "cancelled"
    assert len(client.get("/api/credit-notes", params={"invoice_id": invoice["id"]}).json()) == 1


def test_issue_without_lines_is_a_conflict(client: TestClient, ledger):
    customer = _create_customer(client)
    created = client.post("/api/invoices", json={"customer_id": customer["id"], "invoice_date": "2024-05-10"})

    response = client.post(f"/api/invoices/{created.json()['id']}/issue")
    assert response.status_code == 409
    assert response.json() == {"detail": "Invoice has no lines.", "kind": "state_conflict", "current_state": "draft"}


def test_draft_invoice_lines_can_be_removed_and_deleted(client: TestClient, ledger):
    customer = _create_customer(client)
    invoice = _create_invoice_with_line(client, customer["id"])

    removed = client.delete(f"/api/invoices/{invoice['id']}/lines/{invoice['lines'][0]['id']}")
    assert removed.status_code == 200
    assert removed.json()["lines"] == []
    assert Decimal(removed.json()["total"]) == Decimal("0")

    assert client.delete(f"/api/invoices/{invoice['id']}").json() == {"status": "ok"}
    assert client.get(f"/api/invoices/{invoice['id']}").status_code == 404


def test_tax_profile_sets_line_rate(client: TestClient, ledger):
    profiles = client.get("/api/tax-profiles").json()
    assert [profile["name"] for profile in profiles] == ["IVA General 16%", "IVA Reducido 8%", "Exento 0%"]
    reduced = profiles[1]

    customer = _create_customer(client)
    created = client.post("/api/invoices", json={"customer_id": customer["id"], "invoice_date": "2024-05-10"})
    invoice_id = created.json()["id"]

    line = client.post(
        f"/api/invoices/{invoice_id}/lines",
        json={"description": "Food", "quantity": "1", "unit_price": "100.00", "tax_profile_id": reduced["id"]},
    )
    assert line.status_code == 201
    assert Decimal(line.json()["lines"][0]["tax_rate"]) == Decimal("8")
    assert Decimal(line.json()["tax_amount"]) == Decimal("8")

    mismatch = client.post(
        f"/api/invoices/{invoice_id}/lines",
        json={"description": "Food", "quantity": "1", "unit_price": "100.00", "tax_rate": "16", "tax_profile_id": reduced["id"]},
    )
    assert mismatch.status_code == 400


def test_default_tax_profiles_are_idempotent(client: TestClient):
    first = client.post("/api/tax-profiles/defaults")
    second = client.post("/api/tax-profiles/defaults")
    assert first.status_code == 200
    assert len(second.json()) == 3
    assert [profile["is_default"] for profile in second.json()] == [True, False, False]


def test_invoice_entry_is_only_undone_by_a_credit_note(db, user, ledger):
    invoice = _draft_invoice(db, user)
    issue_invoice(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id)

    with pytest.raises(StateConflict) as exc_info:
        reverse_journal_entry(db, user.company_id, invoice.journal_entry_id)
    assert exc_info.value.current_state == "posted"
    assert db.query(JournalEntry).filter(JournalEntry.reverses_id == invoice.journal_entry_id).count() == 0

    note = create_credit_note(
        db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id, reason="Goods returned"
    )
    assert note.journal_entry_id is not None
    assert invoice.status == "cancelled"


def test_line_amounts_are_rounded_before_totals(db, user, ledger):
    invoice = _draft_invoice(db, user, unit_price="0.005", quantity="1000", tax_rate="0")
    line = invoice.lines[0]

    assert line.unit_price == Decimal("0.01")
    assert line.line_subtotal == Decimal("10.00")
    assert invoice.total == line.line_total == Decimal("10.00")

    issue_invoice(db, company_id=user.company_id, actor_id=user.id, invoice_id=invoice.id)
    entry = db.get(JournalEntry, invoice.journal_entry_id)
    assert entry.total_debit == invoice.total
