from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from fiscal_ledger.account_defaults import resolve_role_account
from fiscal_ledger.accounting.posting import build_invoice_entry
from fiscal_ledger.accounting.service import load_postable_accounts, post_journal_entry, reverse_source_entry
from fiscal_ledger.audit import record_audit_event
from fiscal_ledger.errors import (
    DuplicateCodeError,
    InvalidAccountError,
    NoLinesError,
    NotDraftError,
    NotFoundError,
    StateConflict,
    ValidationError,
)
from fiscal_ledger.models import (
    Account,
    CreditNote,
    Customer,
    Invoice,
    InvoiceLine,
    PaymentAllocation,
    TaxProfile,
)
from fiscal_ledger.sales.calculations import (
    DocumentLineInput,
    calculate_document_totals,
    calculate_line_totals,
    validate_line_values,
)
from fiscal_ledger.sequences.service import next_fiscal_number
from fiscal_ledger.utils import ZERO, quantize_rate, to_money, to_quantity
from fiscal_ledger.utils.tax_id import normalize_tax_id

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ("name", "trade_name", "address", "city", "state", "phone", "email", "notes")
DEFAULT_TAX_PROFILES = (
    ("IVA General 16%", Decimal("16.0000"), True),
    ("IVA Reducido 8%", Decimal("8.0000"), False),
    ("Exento 0%", Decimal("0.0000"), False),
)


# Customers

def list_customers(
    db: Session,
    company_id: int,
    *,
    search: Optional[str] = None,
    active: Optional[bool] = None,
) -> Sequence[Customer]:
    query = db.query(Customer).filter(Customer.company_id == company_id)
    if active is not None:
        query = query.filter(Customer.is_active.is_(active))
    if search:
        like = f"%{search}%"
        query = query.filter(
            Customer.name.ilike(like) | Customer.trade_name.ilike(like) | Customer.tax_id.ilike(like)
        )
    return query.order_by(Customer.name.asc()).all()


def get_customer(db: Session, company_id: int, customer_id: int) -> Customer:
    customer = db.query(Customer).filter(Customer.company_id == company_id, Customer.id == customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found.")
    return customer


def _ensure_unique_customer_tax_id(db: Session, company_id: int, tax_id: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(Customer.id).filter(Customer.company_id == company_id, Customer.tax_id == tax_id)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise DuplicateCodeError(f"A customer with tax id {tax_id} already exists.")


def create_customer(db: Session, *, company_id: int, actor_id: Optional[int], tax_id: str, name: str, **fields) -> Customer:
    formatted, tax_id_type = normalize_tax_id(tax_id)
    if not (name or "").strip():
        raise ValidationError("Customer name is required.")
    _ensure_unique_customer_tax_id(db, company_id, formatted)
    customer = Customer(company_id=company_id, tax_id=formatted, tax_id_type=tax_id_type, name=name.strip())
    for key in CUSTOMER_FIELDS[1:]:
        if key in fields:
            setattr(customer, key, fields[key])
    db.add(customer)
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="customer",
        entity_id=customer.id,
        action="create",
        payload={"tax_id": customer.tax_id, "name": customer.name},
    )
    return customer


def update_customer(db: Session, *, company_id: int, actor_id: Optional[int], customer_id: int, data: dict) -> Customer:
    customer = get_customer(db, company_id, customer_id)
    if data.get("tax_id"):
        formatted, tax_id_type = normalize_tax_id(data["tax_id"])
        _ensure_unique_customer_tax_id(db, company_id, formatted, exclude_id=customer.id)
        customer.tax_id = formatted
        customer.tax_id_type = tax_id_type
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("Customer name is required.")
    for key in CUSTOMER_FIELDS:
        if key in data:
            setattr(customer, key, data[key].strip() if key == "name" else data[key])
    if data.get("is_active") is not None:
        customer.is_active = data["is_active"]
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="customer",
        entity_id=customer.id,
        action="update",
        payload=data,
    )
    return customer


def archive_customer(db: Session, *, company_id: int, actor_id: Optional[int], customer_id: int) -> Customer:
    return update_customer(db, company_id=company_id, actor_id=actor_id, customer_id=customer_id, data={"is_active": False})


# Tax profiles

def list_tax_profiles(db: Session, company_id: int, *, active: Optional[bool] = None) -> Sequence[TaxProfile]:
    query = db.query(TaxProfile).filter(TaxProfile.company_id == company_id)
    if active is not None:
        query = query.filter(TaxProfile.is_active.is_(active))
    return query.order_by(TaxProfile.rate.desc(), TaxProfile.name.asc()).all()


def get_tax_profile(db: Session, company_id: int, profile_id: int) -> TaxProfile:
    profile = db.query(TaxProfile).filter(TaxProfile.company_id == company_id, TaxProfile.id == profile_id).first()
    if not profile:
        raise NotFoundError("Tax profile not found.")
    return profile


def _check_profile_account(db: Session, company_id: int, account_id: Optional[int], expected_type: str) -> None:
    if account_id is None:
        return
    account = load_postable_accounts(db, company_id, [account_id])[account_id]
    if account.type != expected_type:
        raise InvalidAccountError(f"Account {account.code} must be an {expected_type} account.")


def _clear_other_defaults(db: Session, company_id: int, keep_id: int) -> None:
    for other in db.query(TaxProfile).filter(TaxProfile.company_id == company_id, TaxProfile.id != keep_id).all():
        other.is_default = False


def create_tax_profile(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    name: str,
    rate: Decimal,
    is_default: bool = False,
    sales_account_id: Optional[int] = None,
    tax_account_id: Optional[int] = None,
) -> TaxProfile:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Tax profile name is required.")
    if Decimal(rate) < 0 or Decimal(rate) > 100:
        raise ValidationError("Tax rate must be between 0 and 100.")
    if db.query(TaxProfile.id).filter(TaxProfile.company_id == company_id, TaxProfile.name == name).first():
        raise DuplicateCodeError(f"Tax profile '{name}' already exists.")
    _check_profile_account(db, company_id, sales_account_id, "income")
    _check_profile_account(db, company_id, tax_account_id, "liability")

    profile = TaxProfile(
        company_id=company_id,
        name=name,
        rate=quantize_rate(rate),
        is_default=is_default,
        is_active=True,
        sales_account_id=sales_account_id,
        tax_account_id=tax_account_id,
    )
    db.add(profile)
    db.flush()
    if is_default:
        _clear_other_defaults(db, company_id, profile.id)
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="tax_profile",
        entity_id=profile.id,
        action="create",
        payload={"name": name, "rate": profile.rate},
    )
    return profile


def update_tax_profile(db: Session, *, company_id: int, actor_id: Optional[int], profile_id: int, data: dict) -> TaxProfile:
    profile = get_tax_profile(db, company_id, profile_id)
    if data.get("name") is not None:
        name = data["name"].strip()
        clash = (
            db.query(TaxProfile.id)
            .filter(TaxProfile.company_id == company_id, TaxProfile.name == name, TaxProfile.id != profile.id)
            .first()
        )
        if clash:
            raise DuplicateCodeError(f"Tax profile '{name}' already exists.")
        profile.name = name
    if data.get("rate") is not None:
        if Decimal(data["rate"]) < 0 or Decimal(data["rate"]) > 100:
            raise ValidationError("Tax rate must be between 0 and 100.")
        profile.rate = quantize_rate(data["rate"])
    if "sales_account_id" in data:
        _check_profile_account(db, company_id, data["sales_account_id"], "income")
        profile.sales_account_id = data["sales_account_id"]
    if "tax_account_id" in data:
        _check_profile_account(db, company_id, data["tax_account_id"], "liability")
        profile.tax_account_id = data["tax_account_id"]
    if data.get("is_active") is not None:
        profile.is_active = data["is_active"]
    if data.get("is_default") is not None:
        profile.is_default = data["is_default"]
        if profile.is_default:
            _clear_other_defaults(db, company_id, profile.id)
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="tax_profile",
        entity_id=profile.id,
        action="update",
        payload=data,
    )
    return profile


def create_default_tax_profiles(db: Session, company_id: int) -> list[TaxProfile]:
    """Create the standard VAT profiles that are missing. Safe to call repeatedly."""
    existing = {profile.name for profile in db.query(TaxProfile).filter(TaxProfile.company_id == company_id).all()}
    has_default = any(
        profile.is_default for profile in db.query(TaxProfile).filter(TaxProfile.company_id == company_id).all()
    )
    created: list[TaxProfile] = []
    for name, rate, is_default in DEFAULT_TAX_PROFILES:
        if name in existing:
            continue
        profile = TaxProfile(
            company_id=company_id,
            name=name,
            rate=rate,
            is_default=is_default and not has_default,
            is_active=True,
        )
        db.add(profile)
        created.append(profile)
    db.flush()
    return created


# Invoices

def get_invoice(db: Session, company_id: int, invoice_id: int, *, for_update: bool = False) -> Invoice:
    query = (
        db.query(Invoice)
        .options(selectinload(Invoice.lines), selectinload(Invoice.customer))
        .filter(Invoice.company_id == company_id, Invoice.id == invoice_id)
    )
    if for_update:
        query = query.with_for_update()
    invoice = query.first()
    if not invoice:
        raise NotFoundError("Invoice not found.")
    return invoice


def list_invoices(
    db: Session,
    company_id: int,
    *,
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
) -> Sequence[Invoice]:
    query = (
        db.query(Invoice)
        .options(selectinload(Invoice.customer))
        .filter(Invoice.company_id == company_id)
    )
    if status:
        query = query.filter(Invoice.status == status)
    if customer_id:
        query = query.filter(Invoice.customer_id == customer_id)
    if start_date:
        query = query.filter(Invoice.invoice_date >= start_date)
    if end_date:
        query = query.filter(Invoice.invoice_date <= end_date)
    if search:
        like = f"%{search}%"
        query = query.join(Customer).filter(Invoice.invoice_number.ilike(like) | Customer.name.ilike(like))
    return query.order_by(Invoice.invoice_date.desc(), Invoice.id.desc()).all()


def _ensure_draft(invoice: Invoice) -> None:
    if invoice.status != "draft":
        raise NotDraftError("Only draft invoices can be changed.", current_state=invoice.status)


def _validate_dates(document_date: date, due_date: Optional[date]) -> None:
    if due_date is not None and due_date < document_date:
        raise ValidationError("Due date cannot be before the document date.")


def _active_customer(db: Session, company_id: int, customer_id: int) -> Customer:
    customer = get_customer(db, company_id, customer_id)
    if not customer.is_active:
        raise ValidationError("Customer is archived.")
    return customer


def recalculate_invoice_totals(invoice: Invoice) -> None:
    totals = calculate_document_totals(
        DocumentLineInput(quantity=line.quantity, unit_price=line.unit_price, tax_rate=line.tax_rate)
        for line in invoice.lines
    )
    invoice.subtotal = totals.subtotal
    invoice.tax_amount = totals.tax_amount
    invoice.total = totals.total


def recalculate_invoice_balance(db: Session, invoice: Invoice) -> None:
    applied_total = (
        db.query(func.coalesce(func.sum(PaymentAllocation.amount_applied), 0))
        .filter(PaymentAllocation.document_type == "invoice", PaymentAllocation.document_id == invoice.id)
        .scalar()
    )
    invoice.amount_paid = to_money(applied_total)


def update_invoice_status(invoice: Invoice) -> None:
    if invoice.status not in {"issued", "paid"}:
        return
    invoice.status = "paid" if invoice.balance <= 0 else "issued"


def create_draft_invoice(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    customer_id: int,
    invoice_date: date,
    due_date: Optional[date] = None,
    currency: str = "USD",
    exchange_rate: Decimal = Decimal("1"),
    notes: Optional[str] = None,
) -> Invoice:
    _active_customer(db, company_id, customer_id)
    _validate_dates(invoice_date, due_date)
    if Decimal(exchange_rate) <= 0:
        raise ValidationError("Exchange rate must be greater than zero.")
    invoice = Invoice(
        company_id=company_id,
        customer_id=customer_id,
        status="draft",
        invoice_date=invoice_date,
        due_date=due_date,
        currency=currency,
        exchange_rate=exchange_rate,
        notes=notes,
        subtotal=ZERO,
        tax_amount=ZERO,
        total=ZERO,
        amount_paid=ZERO,
        created_by=actor_id,
    )
    db.add(invoice)
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="invoice",
        entity_id=invoice.id,
        action="create_draft",
        payload={"customer_id": customer_id},
    )
    return invoice


def update_draft_invoice(db: Session, *, company_id: int, actor_id: Optional[int], invoice_id: int, data: dict) -> Invoice:
    invoice = get_invoice(db, company_id, invoice_id, for_update=True)
    _ensure_draft(invoice)
    if data.get("customer_id") is not None:
        invoice.customer_id = _active_customer(db, company_id, data["customer_id"]).id
    if data.get("exchange_rate") is not None and Decimal(data["exchange_rate"]) <= 0:
        raise ValidationError("Exchange rate must be greater than zero.")
    for key in ("invoice_date", "currency", "exchange_rate"):
        if data.get(key) is not None:
            setattr(invoice, key, data[key])
    for key in ("due_date", "notes"):
        if key in data:
            setattr(invoice, key, data[key])
    _validate_dates(invoice.invoice_date, invoice.due_date)
    invoice.updated_at = datetime.utcnow()
    db.flush()
    return invoice


def delete_draft_invoice(db: Session, *, company_id: int, actor_id: Optional[int], invoice_id: int) -> None:
    invoice = get_invoice(db, company_id, invoice_id, for_update=True)
    _ensure_draft(invoice)
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="invoice",
        entity_id=invoice.id,
        action="delete_draft",
    )
    db.delete(invoice)
    db.flush()


def add_invoice_line(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    invoice_id: int,
    description: str,
    quantity: Decimal,
    unit_price: Decimal,
    tax_rate: Optional[Decimal] = None,
    tax_profile_id: Optional[int] = None,
) -> Invoice:
    invoice = get_invoice(db, company_id, invoice_id, for_update=True)
    _ensure_draft(invoice)
    if not (description or "").strip():
        raise ValidationError("Line description is required.")

    profile = None
    if tax_profile_id is not None:
        profile = get_tax_profile(db, company_id, tax_profile_id)
        if not profile.is_active:
            raise ValidationError(f"Tax profile '{profile.name}' is inactive.")
        if tax_rate is not None and quantize_rate(tax_rate) != quantize_rate(profile.rate):
            raise ValidationError("Tax rate does not match the selected tax profile.")
        tax_rate = profile.rate
    rate = quantize_rate(tax_rate if tax_rate is not None else 0)
    quantity = to_quantity(quantity)
    unit_price = to_money(unit_price)
    validate_line_values(quantity, unit_price, rate)

    line_subtotal, line_tax, line_total = calculate_line_totals(
        DocumentLineInput(quantity=quantity, unit_price=unit_price, tax_rate=rate)
    )
    next_order = max((line.sort_order for line in invoice.lines), default=0) + 1
    invoice.lines.append(
        InvoiceLine(
            description=description.strip(),
            quantity=quantity,
            unit_price=unit_price,
            tax_profile_id=profile.id if profile else None,
            tax_rate=rate,
            line_subtotal=line_subtotal,
            tax_amount=line_tax,
            line_total=line_total,
            sort_order=next_order,
        )
    )
    recalculate_invoice_totals(invoice)
    invoice.updated_at = datetime.utcnow()
    db.flush()
    return invoice


def remove_invoice_line(db: Session, *, company_id: int, actor_id: Optional[int], invoice_id: int, line_id: int) -> Invoice:
    invoice = get_invoice(db, company_id, invoice_id, for_update=True)
    _ensure_draft(invoice)
    line = next((line for line in invoice.lines if line.id == line_id), None)
    if line is None:
        raise NotFoundError("Invoice line not found.")
    invoice.lines.remove(line)
    recalculate_invoice_totals(invoice)
    invoice.updated_at = datetime.utcnow()
    db.flush()
    return invoice


def _resolve_invoice_accounts(
    db: Session, company_id: int, invoice: Invoice
) -> tuple[int, dict[int, Decimal], dict[int, Decimal]]:
    """Return ``(receivable_id, revenue_by_account, tax_by_account)`` for issuance."""
    receivable = resolve_role_account(db, company_id, "AR")
    role_cache: dict[str, Account] = {}

    def role_account(role: str) -> int:
        if role not in role_cache:
            role_cache[role] = resolve_role_account(db, company_id, role)
        return role_cache[role].id

    revenue: dict[int, Decimal] = {}
    taxes: dict[int, Decimal] = {}
    for line in invoice.lines:
        profile = line.tax_profile
        sales_account_id = profile.sales_account_id if profile and profile.sales_account_id else role_account("SALES")
        revenue[sales_account_id] = revenue.get(sales_account_id, ZERO) + to_money(line.line_subtotal)
        if to_money(line.tax_amount) > 0:
            tax_account_id = profile.tax_account_id if profile and profile.tax_account_id else role_account("VAT_PAYABLE")
            taxes[tax_account_id] = taxes.get(tax_account_id, ZERO) + to_money(line.tax_amount)

    load_postable_accounts(db, company_id, [receivable.id, *revenue.keys(), *taxes.keys()])
    return receivable.id, revenue, taxes


def issue_invoice(db: Session, *, company_id: int, actor_id: Optional[int], invoice_id: int) -> Invoice:
    invoice = get_invoice(db, company_id, invoice_id, for_update=True)
    if invoice.status != "draft":
        logger.warning("Refused to issue invoice id=%s in status %s", invoice.id, invoice.status)
        raise NotDraftError("Only draft invoices can be issued.", current_state=invoice.status)
    if not invoice.lines:
        raise NoLinesError("Invoice has no lines.", current_state=invoice.status)
    recalculate_invoice_totals(invoice)

    # Everything that can fail runs before a fiscal number is taken.
    entry_input = None
    if to_money(invoice.total) > 0:
        receivable_id, revenue, taxes = _resolve_invoice_accounts(db, company_id, invoice)
        entry_input = build_invoice_entry(
            company_id=company_id,
            entry_date=invoice.invoice_date,
            receivable_account_id=receivable_id,
            revenue_by_account=revenue,
            tax_by_account=taxes,
            description=f"Invoice for {invoice.customer.name}",
            source_id=invoice.id,
        )

    numbers = next_fiscal_number(db, company_id, "invoice")
    invoice.invoice_number = numbers.number
    invoice.control_number = numbers.control_number

    if entry_input is not None:
        entry = post_journal_entry(
            db,
            replace(
                entry_input,
                description=f"Invoice {numbers.number} - {invoice.customer.name}",
                reference=numbers.number,
            ),
            created_by=actor_id,
        )
        invoice.journal_entry_id = entry.id

    invoice.status = "issued"
    invoice.issued_at = datetime.utcnow()
    invoice.issued_by = actor_id
    invoice.updated_at = datetime.utcnow()
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="invoice",
        entity_id=invoice.id,
        action="issue",
        payload={"invoice_number": invoice.invoice_number, "total": invoice.total},
    )
    logger.info(
        "Issued invoice company_id=%s id=%s number=%s control=%s total=%s",
        company_id,
        invoice.id,
        invoice.invoice_number,
        invoice.control_number,
        invoice.total,
    )
    return invoice


# Credit notes

def create_credit_note(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    invoice_id: int,
    reason: str,
    note_date: Optional[date] = None,
) -> CreditNote:
    """Fully reverse an issued invoice. Partial credit notes are not supported."""
    invoice = get_invoice(db, company_id, invoice_id, for_update=True)
    if invoice.status not in {"issued", "paid"}:
        raise StateConflict(
            "Credit notes can only be issued against issued or paid invoices.",
            current_state=invoice.status,
        )
    if not (reason or "").strip():
        raise ValidationError("A reason is required for a credit note.")
    note_date = note_date or date.today()
    if note_date < invoice.invoice_date:
        raise ValidationError("Credit note date cannot be before the invoice date.")

    numbers = next_fiscal_number(db, company_id, "credit_note")
    note = CreditNote(
        company_id=company_id,
        invoice_id=invoice.id,
        note_number=numbers.number,
        control_number=numbers.control_number,
        note_date=note_date,
        reason=reason.strip(),
        subtotal=invoice.subtotal,
        tax_amount=invoice.tax_amount,
        total=invoice.total,
        created_by=actor_id,
    )
    db.add(note)
    db.flush()

    if invoice.journal_entry_id:
        entry = reverse_source_entry(
            db,
            company_id,
            invoice.journal_entry_id,
            entry_date=note_date,
            description=f"Credit note {note.note_number} for invoice {invoice.invoice_number}",
            source_type="credit_note",
            source_id=note.id,
            created_by=actor_id,
        )
        note.journal_entry_id = entry.id

    invoice.status = "cancelled"
    invoice.updated_at = datetime.utcnow()
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="credit_note",
        entity_id=note.id,
        action="create",
        payload={"invoice_id": invoice.id, "note_number": note.note_number, "total": note.total},
    )
    logger.info(
        "Credit note %s issued for invoice %s company_id=%s",
        note.note_number,
        invoice.invoice_number,
        company_id,
    )
    return note


def get_credit_note(db: Session, company_id: int, note_id: int) -> CreditNote:
    note = db.query(CreditNote).filter(CreditNote.company_id == company_id, CreditNote.id == note_id).first()
    if not note:
        raise NotFoundError("Credit note not found.")
    return note


def list_credit_notes(db: Session, company_id: int, *, invoice_id: Optional[int] = None) -> Sequence[CreditNote]:
    query = db.query(CreditNote).options(selectinload(CreditNote.invoice)).filter(CreditNote.company_id == company_id)
    if invoice_id:
        query = query.filter(CreditNote.invoice_id == invoice_id)
    return query.order_by(CreditNote.note_date.desc(), CreditNote.id.desc()).all()
