from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fiscal_ledger.auth import get_current_user
from fiscal_ledger.db import get_db
from fiscal_ledger.models import Bill, User
from fiscal_ledger.purchasing import schemas
from fiscal_ledger.purchasing import service

router = APIRouter(prefix="/api", tags=["bills"])


def _serialize_bill(bill: Bill) -> schemas.BillResponse:
    return schemas.BillResponse(
        id=bill.id,
        supplier_id=bill.supplier_id,
        supplier_name=bill.supplier.name if bill.supplier else None,
        bill_number=bill.bill_number,
        status=bill.status,
        bill_date=bill.bill_date,
        due_date=bill.due_date,
        currency=bill.currency,
        exchange_rate=bill.exchange_rate,
        notes=bill.notes,
        subtotal=bill.subtotal,
        tax_amount=bill.tax_amount,
        total=bill.total,
        amount_paid=bill.amount_paid,
        balance=bill.balance,
        is_finalized=bill.is_finalized,
        finalized_at=bill.finalized_at,
        journal_entry_id=bill.journal_entry_id,
        created_at=bill.created_at,
        lines=[schemas.BillLineResponse.model_validate(line) for line in bill.lines],
    )


@router.get("/bills", response_model=List[schemas.BillResponse])
def list_bills(
    status_filter: Optional[schemas.BillStatus] = Query(None, alias="status"),
    supplier_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    finalized: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    bills = service.list_bills(
        db,
        current_user.company_id,
        status=status_filter,
        supplier_id=supplier_id,
        start_date=start_date,
        end_date=end_date,
        finalized=finalized,
    )
    return [_serialize_bill(bill) for bill in bills]


@router.post("/bills", response_model=schemas.BillResponse, status_code=status.HTTP_201_CREATED)
def create_bill(payload: schemas.BillCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    bill = service.create_draft_bill(db, company_id=current_user.company_id, actor_id=current_user.id, **payload.model_dump())
    db.commit()
    return _serialize_bill(service.get_bill(db, current_user.company_id, bill.id))


@router.get("/bills/{bill_id}", response_model=schemas.BillResponse)
def get_bill(bill_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _serialize_bill(service.get_bill(db, current_user.company_id, bill_id))


@router.post("/bills/{bill_id}/lines", response_model=schemas.BillResponse, status_code=status.HTTP_201_CREATED)
def add_bill_line(
    bill_id: int,
    payload: schemas.BillLineCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service.add_bill_line(
        db, company_id=current_user.company_id, actor_id=current_user.id, bill_id=bill_id, **payload.model_dump()
    )
    db.commit()
    return _serialize_bill(service.get_bill(db, current_user.company_id, bill_id))


@router.delete("/bills/{bill_id}/lines/{line_id}", response_model=schemas.BillResponse)
def remove_bill_line(
    bill_id: int,
    line_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service.remove_bill_line(db, company_id=current_user.company_id, actor_id=current_user.id, bill_id=bill_id, line_id=line_id)
    db.commit()
    return _serialize_bill(service.get_bill(db, current_user.company_id, bill_id))


@router.post("/bills/{bill_id}/finalize", response_model=schemas.BillResponse)
def finalize_bill(bill_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    service.finalize_bill(db, company_id=current_user.company_id, actor_id=current_user.id, bill_id=bill_id)
    db.commit()
    return _serialize_bill(service.get_bill(db, current_user.company_id, bill_id))


@router.post("/bills/{bill_id}/cancel", response_model=schemas.BillResponse)
def cancel_bill(bill_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    service.cancel_bill(db, company_id=current_user.company_id, actor_id=current_user.id, bill_id=bill_id)
    db.commit()
    return _serialize_bill(service.get_bill(db, current_user.company_id, bill_id))
