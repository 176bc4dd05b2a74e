from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from fiscal_ledger.auth import get_current_user
from fiscal_ledger.banking import schemas
from fiscal_ledger.banking import service
from fiscal_ledger.db import get_db
from fiscal_ledger.models import BankReconciliation, User

router = APIRouter(prefix="/api", tags=["banking"])


def _serialize_reconciliation(reconciliation: BankReconciliation) -> schemas.BankReconciliationResponse:
    return schemas.BankReconciliationResponse(
        id=reconciliation.id,
        bank_account_id=reconciliation.bank_account_id,
        reconciliation_date=reconciliation.reconciliation_date,
        start_date=reconciliation.start_date,
        end_date=reconciliation.end_date,
        balance_per_books=reconciliation.balance_per_books,
        balance_per_bank=reconciliation.balance_per_bank,
        difference=reconciliation.difference,
        notes=reconciliation.notes,
        status=reconciliation.status,
        completed_at=reconciliation.completed_at,
        transaction_ids=sorted(tx.id for tx in reconciliation.transactions),
    )


# Bank accounts

@router.get("/bank-accounts", response_model=List[schemas.BankAccountResponse])
def list_bank_accounts(
    active: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return service.list_bank_accounts(db, current_user.company_id, active=active)


@router.post("/bank-accounts", response_model=schemas.BankAccountResponse, status_code=status.HTTP_201_CREATED)
def create_bank_account(
    payload: schemas.BankAccountCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    account = service.create_bank_account(
        db, company_id=current_user.company_id, actor_id=current_user.id, **payload.model_dump()
    )
    db.commit()
    db.refresh(account)
    return account


@router.get("/bank-accounts/{bank_account_id}", response_model=schemas.BankAccountResponse)
def get_bank_account(bank_account_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return service.get_bank_account(db, current_user.company_id, bank_account_id)


@router.patch("/bank-accounts/{bank_account_id}", response_model=schemas.BankAccountResponse)
def update_bank_account(
    bank_account_id: int,
    payload: schemas.BankAccountUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    account = service.update_bank_account(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        bank_account_id=bank_account_id,
        data=payload.model_dump(exclude_unset=True),
    )
    db.commit()
    db.refresh(account)
    return account


@router.delete("/bank-accounts/{bank_account_id}", response_model=dict)
def delete_bank_account(bank_account_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    service.delete_bank_account(db, company_id=current_user.company_id, actor_id=current_user.id, bank_account_id=bank_account_id)
    db.commit()
    return {"status": "ok"}


@router.get("/bank-accounts/{bank_account_id}/balance", response_model=schemas.BookBalanceResponse)
def bank_account_balance(
    bank_account_id: int,
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    balance = service.get_book_balance(db, current_user.company_id, bank_account_id, as_of)
    return schemas.BookBalanceResponse(bank_account_id=bank_account_id, as_of=as_of, balance=balance)


@router.post("/bank-accounts/{bank_account_id}/recalculate", response_model=schemas.BankAccountResponse)
def recalculate_balance(bank_account_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    account = service.recalculate_bank_balance(db, current_user.company_id, bank_account_id)
    db.commit()
    db.refresh(account)
    return account


# Transactions

@router.get("/bank-transactions", response_model=List[schemas.BankTransactionResponse])
def list_bank_transactions(
    bank_account_id: Optional[int] = None,
    status_filter: Optional[schemas.TransactionStatus] = Query(None, alias="status"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return service.list_bank_transactions(
        db,
        current_user.company_id,
        bank_account_id=bank_account_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
    )


@router.post("/bank-transactions", response_model=schemas.BankTransactionResponse, status_code=status.HTTP_201_CREATED)
def create_bank_transaction(
    payload: schemas.BankTransactionCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    transaction = service.register_bank_transaction(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        idempotency_key=idempotency_key,
        **payload.model_dump(),
    )
    db.commit()
    db.refresh(transaction)
    return transaction


# Reconciliations

@router.get("/bank-reconciliations", response_model=List[schemas.BankReconciliationResponse])
def list_reconciliations(
    bank_account_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    reconciliations = service.list_reconciliations(db, current_user.company_id, bank_account_id=bank_account_id)
    return [_serialize_reconciliation(item) for item in reconciliations]


@router.post(
    "/bank-reconciliations",
    response_model=schemas.BankReconciliationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_reconciliation(
    payload: schemas.BankReconciliationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    reconciliation = service.reconcile_bank(
        db, company_id=current_user.company_id, actor_id=current_user.id, **payload.model_dump()
    )
    db.commit()
    return _serialize_reconciliation(service.get_reconciliation(db, current_user.company_id, reconciliation.id))


@router.get("/bank-reconciliations/{reconciliation_id}", response_model=schemas.BankReconciliationResponse)
def get_reconciliation(reconciliation_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _serialize_reconciliation(service.get_reconciliation(db, current_user.company_id, reconciliation_id))
