from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fiscal_ledger.auth import get_current_user
from fiscal_ledger.db import get_db
from fiscal_ledger.models import Invoice, User
from fiscal_ledger.sales import schemas
from fiscal_ledger.sales import service

router = APIRouter(prefix="/api", tags=["sales"])


def _serialize_invoice(invoice: Invoice) -> schemas.InvoiceResponse:
    return schemas.InvoiceResponse(
        id=invoice.id,
        customer_id=invoice.customer_id,
        customer_name=invoice.customer.name if invoice.customer else None,
        invoice_number=invoice.invoice_number,
        control_number=invoice.control_number,
        status=invoice.status,
        invoice_date=invoice.invoice_date,
        due_date=invoice.due_date,
        currency=invoice.currency,
        exchange_rate=invoice.exchange_rate,
        notes=invoice.notes,
        subtotal=invoice.subtotal,
        tax_amount=invoice.tax_amount,
        total=invoice.total,
        amount_paid=invoice.amount_paid,
        balance=invoice.balance,
        journal_entry_id=invoice.journal_entry_id,
        issued_at=invoice.issued_at,
        created_at=invoice.created_at,
        lines=[schemas.InvoiceLineResponse.model_validate(line) for line in invoice.lines],
    )


# Customers

@router.get("/customers", response_model=List[schemas.CustomerResponse])
def list_customers(
    search: Optional[str] = None,
    active: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return service.list_customers(db, current_user.company_id, search=search, active=active)


@router.post("/customers", response_model=schemas.CustomerResponse, status_code=status.HTTP_201_CREATED)
def create_customer(
    payload: schemas.CustomerCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    customer = service.create_customer(
        db, company_id=current_user.company_id, actor_id=current_user.id, **payload.model_dump()
    )
    db.commit()
    db.refresh(customer)
    return customer


@router.get("/customers/{customer_id}", response_model=schemas.CustomerResponse)
def get_customer(customer_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return service.get_customer(db, current_user.company_id, customer_id)


@router.patch("/customers/{customer_id}", response_model=schemas.CustomerResponse)
def update_customer(
    customer_id: int,
    payload: schemas.CustomerUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    customer = service.update_customer(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        customer_id=customer_id,
        data=payload.model_dump(exclude_unset=True),
    )
    db.commit()
    db.refresh(customer)
    return customer


@router.delete("/customers/{customer_id}", response_model=schemas.CustomerResponse)
def archive_customer(customer_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    customer = service.archive_customer(db, company_id=current_user.company_id, actor_id=current_user.id, customer_id=customer_id)
    db.commit()
    db.refresh(customer)
    return customer


# Tax profiles

@router.get("/tax-profiles", response_model=List[schemas.TaxProfileResponse])
def list_tax_profiles(
    active: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return service.list_tax_profiles(db, current_user.company_id, active=active)


@router.post("/tax-profiles", response_model=schemas.TaxProfileResponse, status_code=status.HTTP_201_CREATED)
def create_tax_profile(
    payload: schemas.TaxProfileCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    profile = service.create_tax_profile(
        db, company_id=current_user.company_id, actor_id=current_user.id, **payload.model_dump()
    )
    db.commit()
    db.refresh(profile)
    return profile


@router.post("/tax-profiles/defaults", response_model=List[schemas.TaxProfileResponse])
def create_default_tax_profiles(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    service.create_default_tax_profiles(db, current_user.company_id)
    db.commit()
    return service.list_tax_profiles(db, current_user.company_id)


@router.patch("/tax-profiles/{profile_id}", response_model=schemas.TaxProfileResponse)
def update_tax_profile(
    profile_id: int,
    payload: schemas.TaxProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    profile = service.update_tax_profile(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        profile_id=profile_id,
        data=payload.model_dump(exclude_unset=True),
    )
    db.commit()
    db.refresh(profile)
    return profile


# Invoices

@router.get("/invoices", response_model=List[schemas.InvoiceResponse])
def list_invoices(
    status_filter: Optional[schemas.InvoiceStatus] = Query(None, alias="status"),
    customer_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    invoices = service.list_invoices(
        db,
        current_user.company_id,
        status=status_filter,
        customer_id=customer_id,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )
    return [_serialize_invoice(invoice) for invoice in invoices]


@router.post("/invoices", response_model=schemas.InvoiceResponse, status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: schemas.InvoiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    invoice = service.create_draft_invoice(
        db, company_id=current_user.company_id, actor_id=current_user.id, **payload.model_dump()
    )
    db.commit()
    return _serialize_invoice(service.get_invoice(db, current_user.company_id, invoice.id))


@router.get("/invoices/{invoice_id}", response_model=schemas.InvoiceResponse)
def get_invoice(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _serialize_invoice(service.get_invoice(db, current_user.company_id, invoice_id))


@router.patch("/invoices/{invoice_id}", response_model=schemas.InvoiceResponse)
def update_invoice(
    invoice_id: int,
    payload: schemas.InvoiceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service.update_draft_invoice(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        invoice_id=invoice_id,
        data=payload.model_dump(exclude_unset=True),
    )
    db.commit()
    return _serialize_invoice(service.get_invoice(db, current_user.company_id, invoice_id))


@router.delete("/invoices/{invoice_id}", response_model=dict)
def delete_invoice(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    service.delete_draft_invoice(db, company_id=current_user.company_id, actor_id=current_user.id, invoice_id=invoice_id)
    db.commit()
    return {"status": "ok"}


@router.post("/invoices/{invoice_id}/lines", response_model=schemas.InvoiceResponse, status_code=status.HTTP_201_CREATED)
def add_invoice_line(
    invoice_id: int,
    payload: schemas.InvoiceLineCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service.add_invoice_line(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        invoice_id=invoice_id,
        **payload.model_dump(),
    )
    db.commit()
    return _serialize_invoice(service.get_invoice(db, current_user.company_id, invoice_id))


@router.delete("/invoices/{invoice_id}/lines/{line_id}", response_model=schemas.InvoiceResponse)
def remove_invoice_line(
    invoice_id: int,
    line_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service.remove_invoice_line(
        db, company_id=current_user.company_id, actor_id=current_user.id, invoice_id=invoice_id, line_id=line_id
    )
    db.commit()
    return _serialize_invoice(service.get_invoice(db, current_user.company_id, invoice_id))


@router.post("/invoices/{invoice_id}/issue", response_model=schemas.InvoiceIssueResponse)
def issue_invoice(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    invoice = service.issue_invoice(db, company_id=current_user.company_id, actor_id=current_user.id, invoice_id=invoice_id)
    db.commit()
    invoice = service.get_invoice(db, current_user.company_id, invoice.id)
    return schemas.InvoiceIssueResponse(
        invoice_number=invoice.invoice_number,
        control_number=invoice.control_number,
        invoice=_serialize_invoice(invoice),
    )


@router.post(
    "/invoices/{invoice_id}/credit-note",
    response_model=schemas.CreditNoteResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_credit_note(
    invoice_id: int,
    payload: schemas.CreditNoteCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    note = service.create_credit_note(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        invoice_id=invoice_id,
        reason=payload.reason,
        note_date=payload.note_date,
    )
    db.commit()
    db.refresh(note)
    return note


@router.get("/credit-notes", response_model=List[schemas.CreditNoteResponse])
def list_credit_notes(
    invoice_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return service.list_credit_notes(db, current_user.company_id, invoice_id=invoice_id)


@router.get("/credit-notes/{note_id}", response_model=schemas.CreditNoteResponse)
def get_credit_note(note_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return service.get_credit_note(db, current_user.company_id, note_id)
