from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from fiscal_ledger.banking.service import (
    create_bank_account,
    delete_bank_account,
    get_book_balance,
    reconcile_bank,
    recalculate_bank_balance,
    register_bank_transaction,
)
from fiscal_ledger.errors import AccountInUseError, InvalidAccountError, StateConflict, ValidationError
from fiscal_ledger.models import BankTransaction, JournalEntry


def _account(db, user, code="BANK-1", initial_balance="1000.00", chart_account_id=None):
    return create_bank_account(
        db,
        company_id=user.company_id,
        actor_id=user.id,
        code=code,
        bank_name="First Bank",
        account_number=f"0102-{code}",
        initial_balance=Decimal(initial_balance),
        chart_account_id=chart_account_id,
    )


def _register(db, user, account_id, transaction_type, amount, day, **kwargs):
    return register_bank_transaction(
        db,
        company_id=user.company_id,
        actor_id=user.id,
        bank_account_id=account_id,
        transaction_type=transaction_type,
        amount=Decimal(amount),
        transaction_date=date(2024, 6, day),
        description=f"{transaction_type} {amount}",
        **kwargs,
    )


def test_deposit_withdrawal_and_reconciliation(db, user):
    account = _account(db, user)
    deposit = _register(db, user, account.id, "deposit", "200.00", 3)
    withdrawal = _register(db, user, account.id, "withdrawal", "50.00", 10)
    assert account.current_balance == Decimal("1150.00")

    reconciliation = reconcile_bank(
        db,
        company_id=user.company_id,
        actor_id=user.id,
        bank_account_id=account.id,
        reconciliation_date=date(2024, 7, 1),
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 30),
        balance_per_bank=Decimal("1150.00"),
        transaction_ids=[deposit.id, withdrawal.id],
    )
    assert reconciliation.balance_per_books == Decimal("1150.00")
    assert reconciliation.difference == Decimal("0.00")
    assert reconciliation.status == "completed"
    assert {deposit.status, withdrawal.status} == {"reconciled"}
    assert deposit.reconciliation_id == reconciliation.id


def test_reconciliation_reports_difference(db, user):
    account = _account(db, user)
    deposit = _register(db, user, account.id, "deposit", "200.00", 3)
    reconciliation = reconcile_bank(
        db,
        company_id=user.company_id,
        actor_id=user.id,
        bank_account_id=account.id,
        reconciliation_date=date(2024, 7, 1),
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 30),
        balance_per_bank=Decimal("1195.00"),
        transaction_ids=[deposit.id],
    )
    assert reconciliation.difference == Decimal("-5.00")


def test_transaction_cannot_be_reconciled_twice(db, user):
    account = _account(db, user)
    deposit = _register(db, user, account.id, "deposit", "200.00", 3)
    kwargs = dict(
        company_id=user.company_id,
        actor_id=user.id,
        bank_account_id=account.id,
        reconciliation_date=date(2024, 7, 1),
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 30),
        balance_per_bank=Decimal("1200.00"),
        transaction_ids=[deposit.id],
    )
    reconcile_bank(db, **kwargs)
    with pytest.raises(StateConflict) as exc_info:
        reconcile_bank(db, **kwargs)
    assert exc_info.value.current_state == "reconciled"


def test_reconciliation_rejects_out_of_period_transactions(db, user):
    account = _account(db, user)
    deposit = _register(db, user, account.id, "deposit", "200.00", 3)
    with pytest.raises(ValidationError):
        reconcile_bank(
            db,
            company_id=user.company_id,
            actor_id=user.id,
            bank_account_id=account.id,
            reconciliation_date=date(2024, 7, 1),
            start_date=date(2024, 6, 5),
            end_date=date(2024, 6, 30),
            balance_per_bank=Decimal("1200.00"),
            transaction_ids=[deposit.id],
        )
    assert deposit.status == "pending"


def test_transfer_moves_both_balances(db, user):
    source = _account(db, user, "BANK-1")
    destination = _account(db, user, "BANK-2", initial_balance="0")
    _register(db, user, source.id, "transfer", "300.00", 5, destination_account_id=destination.id)

    assert source.current_balance == Decimal("700.00")
    assert destination.current_balance == Decimal("300.00")
    assert get_book_balance(db, user.company_id, destination.id) == Decimal("300.00")


def test_transfer_validation(db, user):
    account = _account(db, user)
    with pytest.raises(ValidationError):
        _register(db, user, account.id, "transfer", "10.00", 5)
    with pytest.raises(ValidationError):
        _register(db, user, account.id, "transfer", "10.00", 5, destination_account_id=account.id)
    with pytest.raises(ValidationError):
        _register(db, user, account.id, "deposit", "0", 5)


def test_book_balance_as_of_date(db, user):
    account = _account(db, user)
    _register(db, user, account.id, "deposit", "200.00", 3)
    _register(db, user, account.id, "withdrawal", "50.00", 20)

    assert get_book_balance(db, user.company_id, account.id, as_of=date(2024, 6, 1)) == Decimal("1000.00")
    assert get_book_balance(db, user.company_id, account.id, as_of=date(2024, 6, 10)) == Decimal("1200.00")
    assert get_book_balance(db, user.company_id, account.id) == Decimal("1150.00")


def test_recalculate_matches_incremental_balance(db, user):
    account = _account(db, user)
    _register(db, user, account.id, "deposit", "200.00", 3)
    _register(db, user, account.id, "withdrawal", "1500.00", 4)
    assert account.current_balance == Decimal("-300.00")

    account.current_balance = Decimal("0")
    recalculate_bank_balance(db, user.company_id, account.id)
    assert account.current_balance == Decimal("-300.00")


def test_idempotent_transaction_replay(db, user):
    account = _account(db, user)
    first = _register(db, user, account.id, "deposit", "200.00", 3, idempotency_key="dep-1")
    second = _register(db, user, account.id, "deposit", "200.00", 3, idempotency_key="dep-1")
    assert first.id == second.id
    assert account.current_balance == Decimal("1200.00")
    assert db.query(BankTransaction).count() == 1


def test_linked_accounts_post_journal_entries(db, user, ledger):
    account = _account(db, user, chart_account_id=ledger["1.1.02"])
    deposit = _register(db, user, account.id, "deposit", "200.00", 3, counterpart_account_id=ledger["3.1"])
    withdrawal = _register(db, user, account.id, "withdrawal", "25.00", 4, counterpart_account_id=ledger["5.1.02"])
    unlinked = _register(db, user, account.id, "deposit", "10.00", 5)

    entry = db.get(JournalEntry, deposit.journal_entry_id)
    assert entry.source_type == "bank_transaction"
    assert {line.account_id: (line.debit, line.credit) for line in entry.lines} == {
        ledger["1.1.02"]: (Decimal("200.00"), Decimal("0.00")),
        ledger["3.1"]: (Decimal("0.00"), Decimal("200.00")),
    }
    fee = db.get(JournalEntry, withdrawal.journal_entry_id)
    assert {line.account_id: (line.debit, line.credit) for line in fee.lines} == {
        ledger["5.1.02"]: (Decimal("25.00"), Decimal("0.00")),
        ledger["1.1.02"]: (Decimal("0.00"), Decimal("25.00")),
    }
    assert unlinked.journal_entry_id is None


def test_bank_account_rules(db, user, ledger):
    with pytest.raises(InvalidAccountError):
        _account(db, user, chart_account_id=ledger["4.1"])

    account = _account(db, user)
    _register(db, user, account.id, "deposit", "1.00", 3)
    with pytest.raises(AccountInUseError):
        delete_bank_account(db, company_id=user.company_id, actor_id=user.id, bank_account_id=account.id)


def test_banking_api_flow(client: TestClient):
    created = client.post(
        "/api/bank-accounts",
        json={"code": "BANK-1", "bank_name": "First Bank", "account_number": "0102-0001", "initial_balance": "1000.00"},
    )
    assert created.status_code == 201
    account_id = created.json()["id"]

    ids = []
    for transaction_type, amount in (("deposit", "200.00"), ("withdrawal", "50.00")):
        response = client.post(
            "/api/bank-transactions",
            json={
                "bank_account_id": account_id,
                "transaction_type": transaction_type,
                "amount": amount,
                "transaction_date": "2024-06-03",
                "description": transaction_type,
            },
        )
        assert response.status_code == 201
        ids.append(response.json()["id"])

    assert Decimal(client.get(f"/api/bank-accounts/{account_id}").json()["current_balance"]) == Decimal("1150")
    balance = client.get(f"/api/bank-accounts/{account_id}/balance", params={"as_of": "2024-06-30"}).json()
    assert Decimal(balance["balance"]) == Decimal("1150")

    reconciliation = client.post(
        "/api/bank-reconciliations",
        json={
            "bank_account_id": account_id,
            "reconciliation_date": "2024-07-01",
            "start_date": "2024-06-01",
            "end_date": "2024-06-30",
            "balance_per_bank": "1150.00",
            "transaction_ids": ids,
        },
    )
    assert reconciliation.status_code == 201
    assert Decimal(reconciliation.json()["difference"]) == Decimal("0")
    assert reconciliation.json()["transaction_ids"] == sorted(ids)

    listed = client.get("/api/bank-transactions", params={"bank_account_id": account_id, "status": "reconciled"})
    assert sorted(row["id"] for row in listed.json()) == sorted(ids)

    assert client.delete(f"/api/bank-accounts/{account_id}").status_code == 422
