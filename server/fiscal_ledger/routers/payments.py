from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from fiscal_ledger.auth import get_current_user
from fiscal_ledger.db import get_db
from fiscal_ledger.models import User
from fiscal_ledger.payments import schemas
from fiscal_ledger.payments.aging import get_aging_report
from fiscal_ledger.payments.calculations import AllocationInput
from fiscal_ledger.payments.service import get_payment, list_payments, register_payment

router = APIRouter(prefix="/api", tags=["payments"])


@router.post("/payments", response_model=schemas.PaymentResponse, status_code=status.HTTP_201_CREATED)
def create_payment(
    payload: schemas.PaymentCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    payment = register_payment(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        payment_type=payload.payment_type,
        payment_date=payload.payment_date,
        payment_method=payload.payment_method,
        amount=payload.amount,
        currency=payload.currency,
        reference=payload.reference,
        description=payload.description,
        account_id=payload.account_id,
        allocations=[
            AllocationInput(document_type=item.document_type, document_id=item.document_id, amount=item.amount)
            for item in payload.allocations
        ],
        idempotency_key=idempotency_key,
    )
    db.commit()
    return get_payment(db, current_user.company_id, payment.id)


@router.get("/payments", response_model=List[schemas.PaymentResponse])
def list_payments_endpoint(
    payment_type: Optional[schemas.PaymentType] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    document_type: Optional[schemas.DocumentType] = None,
    document_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return list_payments(
        db,
        current_user.company_id,
        payment_type=payment_type,
        start_date=start_date,
        end_date=end_date,
        document_type=document_type,
        document_id=document_id,
    )


@router.get("/payments/{payment_id}", response_model=schemas.PaymentResponse)
def get_payment_endpoint(payment_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return get_payment(db, current_user.company_id, payment_id)


@router.get("/reports/aging", response_model=schemas.AgingReportResponse)
def aging_report(
    report_type: schemas.AgingReportType = Query("receivable"),
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    report = get_aging_report(db, current_user.company_id, report_type, as_of or date.today())
    return schemas.AgingReportResponse(
        report_type=report.report_type,
        as_of=report.as_of,
        rows=[schemas.AgingRowResponse.model_validate(row) for row in report.rows],
        totals=schemas.AgingTotals(**report.totals),
    )
