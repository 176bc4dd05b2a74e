from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from fiscal_ledger.auth import create_access_token
from fiscal_ledger.models import Company, Customer


def _journal_payload(ledger, debit="100.00", credit="100.00", **extra):
    return {
        "entry_date": "2024-02-01",
        "description": "Owner contribution",
        "lines": [
            {"account_id": ledger["1.1.01"], "debit": debit},
            {"account_id": ledger["3.1"], "credit": credit},
        ],
        **extra,
    }


def test_health_and_root(client: TestClient):
    assert client.get("/api/health").json() == {"status": "ok"}
    assert client.get("/").json() == {"status": "ok"}


def test_unbalanced_entry_maps_to_422(client: TestClient, ledger):
    response = client.post("/api/journal-entries", json=_journal_payload(ledger, credit="90.00"))
    assert response.status_code == 422
    assert response.json()["kind"] == "invariant_violation"
    assert client.get("/api/journal-entries").json() == []


def test_invalid_account_maps_to_400(client: TestClient, ledger):
    payload = _journal_payload(ledger)
    payload["lines"][0]["account_id"] = ledger["1.1"]
    response = client.post("/api/journal-entries", json=payload)
    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"


def test_missing_record_maps_to_404(client: TestClient):
    for path in ("/api/invoices/999", "/api/bills/999", "/api/payments/999", "/api/journal-entries/999"):
        response = client.get(path)
        assert response.status_code == 404, path
        assert response.json()["kind"] == "not_found"


def test_journal_entry_api_and_trial_balance(client: TestClient, ledger):
    posted = client.post("/api/journal-entries", json=_journal_payload(ledger, reference="CAP-1"))
    assert posted.status_code == 201
    body = posted.json()
    assert body["entry_number"] == 1
    assert body["status"] == "posted"
    assert {line["account_code"] for line in body["lines"]} == {"1.1.01", "3.1"}

    draft = client.post("/api/journal-entries", json=_journal_payload(ledger, post=False))
    assert draft.json()["status"] == "draft"
    assert draft.json()["entry_number"] is None

    cancel_posted = client.post(f"/api/journal-entries/{body['id']}/cancel")
    assert cancel_posted.status_code == 409
    assert cancel_posted.json()["current_state"] == "posted"

    reversal = client.post(f"/api/journal-entries/{body['id']}/reverse", json={})
    assert reversal.status_code == 201
    assert reversal.json()["reverses_id"] == body["id"]
    assert reversal.json()["description"] == "Reversal of entry #1"

    again = client.post(f"/api/journal-entries/{body['id']}/reverse", json={})
    assert again.status_code == 409
    assert again.json()["current_state"] == "reversed"

    trial = client.get("/api/reports/trial-balance", params={"as_of": "2024-12-31"}).json()
    assert trial["is_balanced"] is True
    assert Decimal(trial["total_debit"]) == Decimal("200")
    cash = next(row for row in trial["rows"] if row["account_code"] == "1.1.01")
    assert Decimal(cash["balance"]) == Decimal("0")

    before = client.get("/api/reports/account-balances", params={"as_of": "2024-01-31"}).json()
    assert before == []


def test_other_tenants_records_are_invisible(client: TestClient, db, ledger):
    other = Company(name="Other Company", base_currency="USD")
    db.add(other)
    db.flush()
    customer = Customer(company_id=other.id, tax_id="J-11111111-1", tax_id_type="J", name="Hidden")
    db.add(customer)
    db.flush()
    customer_id = customer.id
    db.commit()

    assert client.get(f"/api/customers/{customer_id}").status_code == 404
    assert client.get("/api/customers").json() == []
    response = client.post("/api/invoices", json={"customer_id": customer_id, "invoice_date": "2024-05-10"})
    assert response.status_code == 404


def test_request_validation_errors_are_422(client: TestClient):
    response = client.post("/api/customers", json={"name": "No tax id"})
    assert response.status_code == 422


@pytest.mark.real_auth
def test_bearer_token_is_required(client: TestClient, user):
    assert client.get("/api/customers").status_code == 401

    bad = client.get("/api/customers", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401

    token = create_access_token({"sub": str(user.id)})
    ok = client.get("/api/customers", headers={"Authorization": f"Bearer {token}"})
    assert ok.status_code == 200
    assert ok.json() == []
