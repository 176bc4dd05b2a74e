from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from fiscal_ledger.accounting.posting import build_transfer_entry
from fiscal_ledger.accounting.service import load_postable_accounts, post_journal_entry
from fiscal_ledger.audit import record_audit_event
from fiscal_ledger.errors import (
    AccountInUseError,
    DuplicateCodeError,
    InvalidAccountError,
    NotFoundError,
    StateConflict,
    ValidationError,
)
from fiscal_ledger.models import BankAccount, BankReconciliation, BankTransaction
from fiscal_ledger.utils import ZERO, to_money

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("deposit", "withdrawal", "transfer")
BANK_ACCOUNT_TYPES = ("checking", "savings", "credit")


# Bank accounts

def list_bank_accounts(db: Session, company_id: int, *, active: Optional[bool] = None) -> Sequence[BankAccount]:
    query = db.query(BankAccount).filter(BankAccount.company_id == company_id)
    if active is not None:
        query = query.filter(BankAccount.is_active.is_(active))
    return query.order_by(BankAccount.code.asc()).all()


def get_bank_account(db: Session, company_id: int, bank_account_id: int) -> BankAccount:
    account = (
        db.query(BankAccount)
        .filter(BankAccount.company_id == company_id, BankAccount.id == bank_account_id)
        .first()
    )
    if not account:
        raise NotFoundError("Bank account not found.")
    return account


def _check_chart_account(db: Session, company_id: int, chart_account_id: Optional[int]) -> None:
    if chart_account_id is None:
        return
    account = load_postable_accounts(db, company_id, [chart_account_id])[chart_account_id]
    if account.type not in {"asset", "liability"}:
        raise InvalidAccountError(f"Account {account.code} must be an asset or liability account.")


def create_bank_account(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    code: str,
    bank_name: str,
    account_number: str,
    account_type: str = "checking",
    currency: str = "USD",
    chart_account_id: Optional[int] = None,
    initial_balance: Decimal = ZERO,
    notes: Optional[str] = None,
) -> BankAccount:
    code = (code or "").strip()
    if not code or not (bank_name or "").strip() or not (account_number or "").strip():
        raise ValidationError("Code, bank name and account number are required.")
    if account_type not in BANK_ACCOUNT_TYPES:
        raise ValidationError(f"Account type must be one of: {', '.join(BANK_ACCOUNT_TYPES)}.")
    if db.query(BankAccount.id).filter(BankAccount.company_id == company_id, BankAccount.code == code).first():
        raise DuplicateCodeError(f"Bank account code '{code}' already exists.")
    _check_chart_account(db, company_id, chart_account_id)

    account = BankAccount(
        company_id=company_id,
        code=code,
        bank_name=bank_name.strip(),
        account_number=account_number.strip(),
        account_type=account_type,
        currency=currency,
        chart_account_id=chart_account_id,
        initial_balance=to_money(initial_balance),
        current_balance=to_money(initial_balance),
        is_active=True,
        notes=notes,
    )
    db.add(account)
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="bank_account",
        entity_id=account.id,
        action="create",
        payload={"code": code, "initial_balance": account.initial_balance},
    )
    return account


def update_bank_account(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    bank_account_id: int,
    data: dict,
) -> BankAccount:
    account = get_bank_account(db, company_id, bank_account_id)
    if data.get("code") is not None:
        code = data["code"].strip()
        clash = (
            db.query(BankAccount.id)
            .filter(BankAccount.company_id == company_id, BankAccount.code == code, BankAccount.id != account.id)
            .first()
        )
        if clash:
            raise DuplicateCodeError(f"Bank account code '{code}' already exists.")
        account.code = code
    if data.get("account_type") is not None and data["account_type"] not in BANK_ACCOUNT_TYPES:
        raise ValidationError(f"Account type must be one of: {', '.join(BANK_ACCOUNT_TYPES)}.")
    if "chart_account_id" in data:
        _check_chart_account(db, company_id, data["chart_account_id"])
        account.chart_account_id = data["chart_account_id"]
    for key in ("bank_name", "account_number", "account_type", "currency", "is_active"):
        if data.get(key) is not None:
            setattr(account, key, data[key])
    if "notes" in data:
        account.notes = data["notes"]
    if data.get("initial_balance") is not None:
        account.initial_balance = to_money(data["initial_balance"])
        db.flush()
        recalculate_bank_balance(db, company_id, account.id)
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="bank_account",
        entity_id=account.id,
        action="update",
        payload=data,
    )
    return account


def delete_bank_account(db: Session, *, company_id: int, actor_id: Optional[int], bank_account_id: int) -> None:
    account = get_bank_account(db, company_id, bank_account_id)
    has_transactions = (
        db.query(BankTransaction.id)
        .filter(
            or_(
                BankTransaction.bank_account_id == account.id,
                BankTransaction.destination_account_id == account.id,
            )
        )
        .first()
    )
    has_reconciliations = (
        db.query(BankReconciliation.id).filter(BankReconciliation.bank_account_id == account.id).first()
    )
    if has_transactions or has_reconciliations:
        raise AccountInUseError("Bank accounts with transactions cannot be deleted; deactivate it instead.")
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="bank_account",
        entity_id=account.id,
        action="delete",
        payload={"code": account.code},
    )
    db.delete(account)
    db.flush()


# Balances

def transaction_effect(transaction: BankTransaction, bank_account_id: int) -> Decimal:
    """Signed effect of ``transaction`` on the given bank account."""
    amount = to_money(transaction.amount)
    if transaction.transaction_type == "deposit":
        return amount if transaction.bank_account_id == bank_account_id else ZERO
    if transaction.transaction_type == "withdrawal":
        return -amount if transaction.bank_account_id == bank_account_id else ZERO
    effect = ZERO
    if transaction.bank_account_id == bank_account_id:
        effect -= amount
    if transaction.destination_account_id == bank_account_id:
        effect += amount
    return effect


def _sum_amounts(db: Session, *criteria) -> Decimal:
    total = db.query(func.coalesce(func.sum(BankTransaction.amount), 0)).filter(*criteria).scalar()
    return to_money(total)


def get_book_balance(db: Session, company_id: int, bank_account_id: int, as_of: Optional[date] = None) -> Decimal:
    """Initial balance plus the effect of every transaction dated on or before ``as_of``."""
    account = get_bank_account(db, company_id, bank_account_id)
    dated = [BankTransaction.company_id == company_id]
    if as_of is not None:
        dated.append(BankTransaction.transaction_date <= as_of)

    incoming = _sum_amounts(
        db,
        *dated,
        BankTransaction.bank_account_id == account.id,
        BankTransaction.transaction_type == "deposit",
    ) + _sum_amounts(
        db,
        *dated,
        BankTransaction.destination_account_id == account.id,
        BankTransaction.transaction_type == "transfer",
    )
    outgoing = _sum_amounts(
        db,
        *dated,
        BankTransaction.bank_account_id == account.id,
        BankTransaction.transaction_type.in_(("withdrawal", "transfer")),
    )
    return to_money(account.initial_balance) + incoming - outgoing


def recalculate_bank_balance(db: Session, company_id: int, bank_account_id: int) -> BankAccount:
    account = get_bank_account(db, company_id, bank_account_id)
    account.current_balance = get_book_balance(db, company_id, bank_account_id)
    return account


# Transactions

def _lock_bank_accounts(db: Session, company_id: int, account_ids: Iterable[int]) -> dict[int, BankAccount]:
    wanted = sorted(set(account_ids))
    accounts = (
        db.query(BankAccount)
        .filter(BankAccount.company_id == company_id, BankAccount.id.in_(wanted))
        .order_by(BankAccount.id.asc())
        .with_for_update()
        .all()
    )
    by_id = {account.id: account for account in accounts}
    if len(by_id) != len(wanted):
        raise NotFoundError("Bank account not found.")
    return by_id


def list_bank_transactions(
    db: Session,
    company_id: int,
    *,
    bank_account_id: Optional[int] = None,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Sequence[BankTransaction]:
    query = db.query(BankTransaction).filter(BankTransaction.company_id == company_id)
    if bank_account_id:
        query = query.filter(
            or_(
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.destination_account_id == bank_account_id,
            )
        )
    if status:
        query = query.filter(BankTransaction.status == status)
    if start_date:
        query = query.filter(BankTransaction.transaction_date >= start_date)
    if end_date:
        query = query.filter(BankTransaction.transaction_date <= end_date)
    return query.order_by(BankTransaction.transaction_date.desc(), BankTransaction.id.desc()).all()


def _journal_accounts(
    transaction_type: str,
    source: BankAccount,
    destination: Optional[BankAccount],
    counterpart_account_id: Optional[int],
) -> Optional[tuple[int, int]]:
    """Return ``(debit_account_id, credit_account_id)`` or None when nothing is linked."""
    if transaction_type == "transfer":
        if source.chart_account_id and destination is not None and destination.chart_account_id:
            if source.chart_account_id == destination.chart_account_id:
                return None
            return destination.chart_account_id, source.chart_account_id
        return None
    if not source.chart_account_id or not counterpart_account_id:
        return None
    if transaction_type == "deposit":
        return source.chart_account_id, counterpart_account_id
    return counterpart_account_id, source.chart_account_id


def register_bank_transaction(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    bank_account_id: int,
    transaction_type: str,
    amount: Decimal,
    transaction_date: date,
    description: str,
    reference: Optional[str] = None,
    destination_account_id: Optional[int] = None,
    counterpart_account_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> BankTransaction:
    if idempotency_key:
        existing = (
            db.query(BankTransaction)
            .filter(BankTransaction.company_id == company_id, BankTransaction.idempotency_key == idempotency_key)
            .first()
        )
        if existing is not None:
            logger.info("Replayed bank transaction company_id=%s id=%s", company_id, existing.id)
            return existing

    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Transaction type must be one of: {', '.join(TRANSACTION_TYPES)}.")
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Transaction amount must be greater than zero.")
    if not (description or "").strip():
        raise ValidationError("Transaction description is required.")
    if transaction_type == "transfer":
        if destination_account_id is None:
            raise ValidationError("Transfers require a destination account.")
        if destination_account_id == bank_account_id:
            raise ValidationError("Transfer destination must be a different account.")
    elif destination_account_id is not None:
        raise ValidationError("Only transfers can have a destination account.")

    locked = _lock_bank_accounts(
        db,
        company_id,
        [bank_account_id] + ([destination_account_id] if destination_account_id else []),
    )
    source = locked[bank_account_id]
    destination = locked.get(destination_account_id) if destination_account_id else None
    for account in locked.values():
        if not account.is_active:
            raise ValidationError(f"Bank account {account.code} is inactive.")
    if counterpart_account_id is not None:
        load_postable_accounts(db, company_id, [counterpart_account_id])

    transaction = BankTransaction(
        company_id=company_id,
        bank_account_id=source.id,
        transaction_type=transaction_type,
        amount=amount,
        transaction_date=transaction_date,
        reference=reference,
        description=description.strip(),
        destination_account_id=destination.id if destination else None,
        status="pending",
        idempotency_key=idempotency_key or None,
        created_by=actor_id,
    )
    db.add(transaction)
    db.flush()

    for account in locked.values():
        account.current_balance = to_money(account.current_balance) + transaction_effect(transaction, account.id)
        account.updated_at = datetime.utcnow()

    journal_accounts = _journal_accounts(transaction_type, source, destination, counterpart_account_id)
    if journal_accounts is not None:
        debit_account_id, credit_account_id = journal_accounts
        entry = post_journal_entry(
            db,
            build_transfer_entry(
                company_id=company_id,
                entry_date=transaction_date,
                debit_account_id=debit_account_id,
                credit_account_id=credit_account_id,
                amount=amount,
                description=transaction.description,
                source_type="bank_transaction",
                reference=reference,
                source_id=transaction.id,
            ),
            created_by=actor_id,
        )
        transaction.journal_entry_id = entry.id

    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="bank_transaction",
        entity_id=transaction.id,
        action="register",
        payload={"type": transaction_type, "amount": amount, "bank_account_id": source.id},
    )
    logger.info(
        "Registered bank %s company_id=%s id=%s account=%s amount=%s",
        transaction_type,
        company_id,
        transaction.id,
        source.code,
        amount,
    )
    return transaction


# Reconciliation

def reconcile_bank(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    bank_account_id: int,
    reconciliation_date: date,
    start_date: date,
    end_date: date,
    balance_per_bank: Decimal,
    transaction_ids: Iterable[int],
    notes: Optional[str] = None,
) -> BankReconciliation:
    if start_date > end_date:
        raise ValidationError("Reconciliation start date must be on or before the end date.")
    account = _lock_bank_accounts(db, company_id, [bank_account_id])[bank_account_id]

    wanted = sorted(set(transaction_ids))
    transactions = []
    if wanted:
        transactions = (
            db.query(BankTransaction)
            .filter(BankTransaction.company_id == company_id, BankTransaction.id.in_(wanted))
            .order_by(BankTransaction.id.asc())
            .with_for_update()
            .all()
        )
        if len(transactions) != len(wanted):
            raise NotFoundError("One or more bank transactions were not found.")
    for transaction in transactions:
        if transaction.status != "pending":
            raise StateConflict(
                f"Bank transaction {transaction.id} is already reconciled.",
                current_state=transaction.status,
            )
        if account.id not in {transaction.bank_account_id, transaction.destination_account_id}:
            raise ValidationError(f"Bank transaction {transaction.id} does not belong to account {account.code}.")
        if not start_date <= transaction.transaction_date <= end_date:
            raise ValidationError(f"Bank transaction {transaction.id} falls outside the reconciliation period.")

    balance_per_books = get_book_balance(db, company_id, account.id, as_of=end_date)
    balance_per_bank = to_money(balance_per_bank)
    reconciliation = BankReconciliation(
        company_id=company_id,
        bank_account_id=account.id,
        reconciliation_date=reconciliation_date,
        start_date=start_date,
        end_date=end_date,
        balance_per_books=balance_per_books,
        balance_per_bank=balance_per_bank,
        difference=balance_per_bank - balance_per_books,
        notes=notes,
        status="completed",
        reconciled_by=actor_id,
        completed_at=datetime.utcnow(),
    )
    db.add(reconciliation)
    db.flush()
    for transaction in transactions:
        transaction.status = "reconciled"
        transaction.reconciliation_id = reconciliation.id
        transaction.updated_at = datetime.utcnow()
    db.flush()

    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="bank_reconciliation",
        entity_id=reconciliation.id,
        action="complete",
        payload={"transactions": wanted, "difference": reconciliation.difference},
    )
    if reconciliation.difference != 0:
        logger.warning(
            "Reconciliation %s for account %s closed with difference %s",
            reconciliation.id,
            account.code,
            reconciliation.difference,
        )
    else:
        logger.info("Reconciliation %s for account %s balanced", reconciliation.id, account.code)
    return reconciliation


def get_reconciliation(db: Session, company_id: int, reconciliation_id: int) -> BankReconciliation:
    reconciliation = (
        db.query(BankReconciliation)
        .filter(BankReconciliation.company_id == company_id, BankReconciliation.id == reconciliation_id)
        .first()
    )
    if not reconciliation:
        raise NotFoundError("Bank reconciliation not found.")
    return reconciliation


def list_reconciliations(
    db: Session, company_id: int, *, bank_account_id: Optional[int] = None
) -> Sequence[BankReconciliation]:
    query = db.query(BankReconciliation).filter(BankReconciliation.company_id == company_id)
    if bank_account_id:
        query = query.filter(BankReconciliation.bank_account_id == bank_account_id)
    return query.order_by(BankReconciliation.end_date.desc(), BankReconciliation.id.desc()).all()
