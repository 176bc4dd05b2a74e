from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fiscal_ledger.accounting import schemas
from fiscal_ledger.accounting.posting import JournalEntryInput, JournalLineInput
from fiscal_ledger.accounting.service import (
    cancel_draft_journal_entry,
    create_draft_journal_entry,
    get_account_balances,
    get_journal_entry,
    get_trial_balance,
    list_journal_entries,
    post_draft_journal_entry,
    post_journal_entry,
    reverse_journal_entry,
)
from fiscal_ledger.auth import get_current_user
from fiscal_ledger.db import get_db
from fiscal_ledger.models import Account, JournalEntry, User

router = APIRouter(prefix="/api", tags=["journal-entries"])


def _to_response(db: Session, entry: JournalEntry) -> schemas.JournalEntryResponse:
    account_ids = {line.account_id for line in entry.lines}
    accounts = {account.id: account for account in db.query(Account).filter(Account.id.in_(account_ids)).all()}
    return schemas.JournalEntryResponse(
        id=entry.id,
        entry_number=entry.entry_number,
        entry_date=entry.entry_date,
        description=entry.description,
        reference=entry.reference,
        status=entry.status,
        source_type=entry.source_type,
        source_id=entry.source_id,
        reverses_id=entry.reverses_id,
        total_debit=entry.total_debit,
        total_credit=entry.total_credit,
        created_at=entry.created_at,
        posted_at=entry.posted_at,
        lines=[
            schemas.JournalLineResponse(
                id=line.id,
                account_id=line.account_id,
                account_code=accounts[line.account_id].code if line.account_id in accounts else None,
                account_name=accounts[line.account_id].name if line.account_id in accounts else None,
                description=line.description,
                debit=line.debit,
                credit=line.credit,
            )
            for line in entry.lines
        ],
    )


@router.post("/journal-entries", response_model=schemas.JournalEntryResponse, status_code=status.HTTP_201_CREATED)
def create_journal_entry_endpoint(
    payload: schemas.JournalEntryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    entry_input = JournalEntryInput(
        company_id=current_user.company_id,
        entry_date=payload.entry_date,
        description=payload.description,
        reference=payload.reference,
        lines=[
            JournalLineInput(account_id=line.account_id, debit=line.debit, credit=line.credit, description=line.description)
            for line in payload.lines
        ],
    )
    if payload.post:
        entry = post_journal_entry(db, entry_input, created_by=current_user.id)
    else:
        entry = create_draft_journal_entry(db, entry_input, created_by=current_user.id)
    db.commit()
    return _to_response(db, entry)


@router.get("/journal-entries", response_model=List[schemas.JournalEntryResponse])
def list_journal_entries_endpoint(
    limit: int = Query(50, ge=1, le=200),
    search: Optional[str] = Query(None),
    account_id: Optional[int] = Query(None),
    status_filter: Optional[schemas.JournalStatus] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    entries = list_journal_entries(
        db,
        current_user.company_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
        account_id=account_id,
        search=search,
        limit=limit,
    )
    return [_to_response(db, entry) for entry in entries]


@router.get("/journal-entries/{entry_id}", response_model=schemas.JournalEntryResponse)
def get_journal_entry_endpoint(entry_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _to_response(db, get_journal_entry(db, current_user.company_id, entry_id))


@router.post("/journal-entries/{entry_id}/post", response_model=schemas.JournalEntryResponse)
def post_draft_endpoint(entry_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    entry = post_draft_journal_entry(db, current_user.company_id, entry_id)
    db.commit()
    return _to_response(db, entry)


@router.post("/journal-entries/{entry_id}/cancel", response_model=schemas.JournalEntryResponse)
def cancel_draft_endpoint(entry_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    entry = cancel_draft_journal_entry(db, current_user.company_id, entry_id)
    db.commit()
    return _to_response(db, entry)


@router.post(
    "/journal-entries/{entry_id}/reverse",
    response_model=schemas.JournalEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
def reverse_entry_endpoint(
    entry_id: int,
    payload: schemas.JournalEntryReverse,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    entry = reverse_journal_entry(
        db,
        current_user.company_id,
        entry_id,
        entry_date=payload.entry_date,
        description=payload.description,
        created_by=current_user.id,
    )
    db.commit()
    return _to_response(db, entry)


@router.get("/reports/account-balances", response_model=List[schemas.AccountBalanceResponse])
def account_balances(
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = get_account_balances(db, current_user.company_id, as_of or date.today())
    return [schemas.AccountBalanceResponse.model_validate(row) for row in rows]


@router.get("/reports/trial-balance", response_model=schemas.TrialBalanceResponse)
def trial_balance(
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = get_trial_balance(db, current_user.company_id, as_of or date.today())
    return schemas.TrialBalanceResponse(
        as_of=result.as_of,
        rows=[schemas.AccountBalanceResponse.model_validate(row) for row in result.rows],
        total_debit=result.total_debit,
        total_credit=result.total_credit,
        is_balanced=result.is_balanced,
    )
